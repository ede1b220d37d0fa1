"""
MODULE_DESCRIPTION: LMS HTTP Client - Token-Bearing Requests with One-Shot Refresh

===================================================================================
PURPOSE AND OVERVIEW
===================================================================================

ApiClient is the single shared client every page-level call goes through. It
wraps one httpx.AsyncClient (cookies persist across calls, the equivalent of
withCredentials) and adds:

    1. Authorization: Bearer <access token> from the injected SessionStore
    2. JSON bodies by default, multipart when files are given
    3. A fixed timeout (REQUEST_TIMEOUT) on every call
    4. Transparent recovery from ONE expired-token 401 per logical request
    5. Session teardown + redirect to sign-in when recovery is impossible
    6. Normalization of every failure into the ApiError hierarchy

===================================================================================
401 RECOVERY FLOW
===================================================================================

    request ──> 2xx ──────────────────────────────> return response
           ├──> non-401 error ────────────────────> raise ApiError
           └──> 401 (not an auth endpoint, not yet retried)
                 │  mark retried in the ledger
                 ├── refresh token present
                 │     └── RefreshCoordinator.refresh()  (shared in-flight)
                 │           ├── ok   -> resend once with the new token,
                 │           │           return / raise its result as is
                 │           └── fail -> teardown
                 └── no refresh token -> teardown

    teardown = SessionStore.clear() + redirect_to_sign_in(navigator)
               (no redirect when already on /sign-in)

A second 401 after the resend is surfaced as AuthenticationError; the client
never loops.

===================================================================================
USER SYNC POLICY
===================================================================================

Only login and refresh responses, and the explicit fetch_current_user() call,
write the session. Responses of any other endpoint never touch the session,
whatever user data they carry.

===================================================================================
"""

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from lms_client.auth.navigation import Navigator, redirect_to_sign_in
from lms_client.auth.refresh import RefreshCoordinator
from lms_client.auth.session import SessionStore
from lms_client.client.ledger import RequestLedger, RequestRecord, RequestState
from lms_client.config.settings import (
    API_ENDPOINTS,
    AUTH_ENDPOINTS,
    DEFAULT_HEADERS,
    LOGIN_PATH,
    PROACTIVE_REFRESH_ENABLED,
    REFRESH_PATH,
    REQUEST_TIMEOUT,
    SIGN_IN_PATH,
    get_api_base_url,
)
from lms_client.exceptions.errors import (
    ApiError,
    AuthenticationError,
    ServerError,
    SessionExpiredError,
)
from lms_client.exceptions.handlers import error_from_response, error_from_transport
from lms_client.models.auth import LoginRequest, LoginResponse, UserRecord
from lms_client.models.responses import ErrorPayload
from lms_client.utils.debug import print__api_debug, print__token_debug

logger = logging.getLogger(__name__)


def is_auth_endpoint(path: str) -> bool:
    """Login and refresh never go through the refresh-and-retry path."""
    return path.split("?", 1)[0].rstrip("/") in AUTH_ENDPOINTS


class ApiClient:
    def __init__(
        self,
        session_store: SessionStore,
        navigator: Optional[Navigator] = None,
        *,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        proactive_refresh: Optional[bool] = None,
        sign_in_path: str = SIGN_IN_PATH,
    ):
        self.session_store = session_store
        self.navigator = navigator if navigator is not None else Navigator()
        self.sign_in_path = sign_in_path
        self.proactive_refresh = (
            PROACTIVE_REFRESH_ENABLED if proactive_refresh is None else proactive_refresh
        )
        self.ledger = RequestLedger()

        self._http = httpx.AsyncClient(
            base_url=base_url or get_api_base_url(),
            timeout=httpx.Timeout(timeout if timeout is not None else REQUEST_TIMEOUT),
            transport=transport,
        )
        self.refresher = RefreshCoordinator(session_store, self._http, REFRESH_PATH)

    # ==================================================================
    # LIFECYCLE
    # ==================================================================

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def base_url(self) -> str:
        return str(self._http.base_url)

    # ==================================================================
    # REQUESTS
    # ==================================================================

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        files: Any = None,
        data: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """Send a request and return the successful response.

        Raises:
            SessionExpiredError: the 401 could not be recovered; the session
                has been cleared.
            ApiError: any other failure, normalized.
        """
        method = method.upper()
        auth_endpoint = is_auth_endpoint(path)

        if self.proactive_refresh and not auth_endpoint:
            await self._refresh_if_expired()

        record = self.ledger.open(method, path)
        send_kwargs = dict(
            body=body, params=params, headers=headers, files=files, data=data, timeout=timeout
        )

        token = self.session_store.access_token
        record.transition(RequestState.SENT)
        response = await self._send(record, method, path, token, **send_kwargs)

        if response.status_code == 401 and not auth_endpoint and not record.retried:
            return await self._recover_from_401(record, method, path, token, send_kwargs)

        if response.is_error:
            record.transition(RequestState.FAILED_OTHER)
            self._log_failure(record, response)
            raise error_from_response(response, method, path)

        record.transition(RequestState.SUCCESS)
        return response

    async def _recover_from_401(
        self,
        record: RequestRecord,
        method: str,
        path: str,
        failed_token: Optional[str],
        send_kwargs: Dict[str, Any],
    ) -> httpx.Response:
        record.transition(RequestState.FAILED_401_FIRST)
        record.retries += 1
        record.transition(RequestState.REFRESHING)
        print__token_debug(f"🔐 401 on {method} {path} - attempting token refresh")

        try:
            new_token = await self.refresher.refresh(failed_token=failed_token)
        except SessionExpiredError:
            record.transition(RequestState.RETRIED_FAILED)
            self.teardown()
            raise

        response = await self._send(record, method, path, new_token, **send_kwargs)
        if response.is_error:
            record.transition(RequestState.RETRIED_FAILED)
            self._log_failure(record, response)
            raise error_from_response(response, method, path)

        record.transition(RequestState.RETRIED_SUCCESS)
        return response

    async def _refresh_if_expired(self) -> None:
        store = self.session_store
        if store.refresh_token and store.access_token_expired():
            print__token_debug("⌛ Access token expired - refreshing before sending")
            try:
                await self.refresher.refresh()
            except SessionExpiredError:
                self.teardown()
                raise

    async def _send(
        self,
        record: RequestRecord,
        method: str,
        path: str,
        token: Optional[str],
        *,
        body: Any,
        params: Optional[Dict[str, Any]],
        headers: Optional[Dict[str, str]],
        files: Any,
        data: Optional[Dict[str, Any]],
        timeout: Optional[float],
    ) -> httpx.Response:
        # The request is rebuilt for every attempt instead of patching the
        # previous httpx.Request
        merged_headers = dict(DEFAULT_HEADERS)
        if files is not None:
            # httpx writes the multipart boundary itself
            merged_headers.pop("Content-Type", None)
        merged_headers.update(headers or {})
        if token:
            merged_headers["Authorization"] = f"Bearer {token}"

        extra = {}
        if timeout is not None:
            extra["timeout"] = httpx.Timeout(timeout)

        request = self._http.build_request(
            method,
            path,
            json=body if files is None and data is None else None,
            params=params,
            headers=merged_headers,
            files=files,
            data=data,
            **extra,
        )

        print__api_debug(
            f"➡️ API Request #{record.request_id}: {method} {request.url} hasToken={bool(token)}"
        )
        try:
            response = await self._http.send(request)
        except httpx.TransportError as exc:
            if record.state == RequestState.REFRESHING:
                record.transition(RequestState.RETRIED_FAILED)
            else:
                record.transition(RequestState.FAILED_OTHER)
            logger.error("API Error: %s %s - %s", method, path, type(exc).__name__)
            raise error_from_transport(exc, method, path) from exc

        print__api_debug(
            f"⬅️ API Response #{record.request_id}: {path} status={response.status_code}"
        )
        return response

    def _log_failure(self, record: RequestRecord, response: httpx.Response) -> None:
        logger.error(
            "API Error: %s %s status=%s state=%s",
            record.method,
            record.path,
            response.status_code,
            record.state.value,
        )

    def teardown(self) -> None:
        """Clear the session and send the app to sign-in (once)."""
        logger.warning("Session teardown: clearing tokens and redirecting to sign-in")
        self.session_store.clear()
        redirect_to_sign_in(self.navigator, self.sign_in_path)

    # ==================================================================
    # CONVENIENCE METHODS
    # ==================================================================

    async def get(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, body: Any = None, **kwargs) -> httpx.Response:
        return await self.request("POST", path, body, **kwargs)

    async def put(self, path: str, body: Any = None, **kwargs) -> httpx.Response:
        return await self.request("PUT", path, body, **kwargs)

    async def patch(self, path: str, body: Any = None, **kwargs) -> httpx.Response:
        return await self.request("PATCH", path, body, **kwargs)

    async def delete(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("DELETE", path, **kwargs)

    async def upload(
        self, path: str, files: Any, data: Optional[Dict[str, Any]] = None, method: str = "POST"
    ) -> httpx.Response:
        """multipart/form-data upload (tugas submissions, study resources)."""
        return await self.request(method, path, files=files, data=data)

    async def get_json(self, path: str, **kwargs) -> Any:
        """GET and decode the JSON body; a non-JSON body is a ServerError."""
        response = await self.get(path, **kwargs)
        return decode_json(response, "GET", path)

    # ==================================================================
    # AUTH OPERATIONS
    # ==================================================================

    async def login(self, email: str, password: str) -> UserRecord:
        credentials = LoginRequest(email=email, password=password)
        response = await self.post(LOGIN_PATH, credentials.model_dump())
        try:
            login = LoginResponse.model_validate(decode_json(response, "POST", LOGIN_PATH))
        except ValidationError as exc:
            raise ServerError(
                "Login returned an unexpected body",
                status=response.status_code,
                method="POST",
                path=LOGIN_PATH,
            ) from exc

        self.session_store.set_auth(login.user, login.access_token, login.refresh_token)
        return login.user

    async def logout(self, redirect: bool = True) -> None:
        """Tell the server (best effort), then end the local session."""
        if self.session_store.get() is not None:
            try:
                await self.post(API_ENDPOINTS["logout"], {})
            except ApiError as exc:
                logger.warning("Logout request failed, clearing session anyway: %s", exc)
        self.session_store.clear()
        if redirect:
            redirect_to_sign_in(self.navigator, self.sign_in_path)

    async def fetch_current_user(self) -> UserRecord:
        """Explicit sync of the session user from /v1/users/info-user."""
        path = API_ENDPOINTS["getUserInfo"]
        body = await self.get_json(path)
        if isinstance(body, dict):
            user_data = body.get("user") or body.get("data") or body
        else:
            user_data = None
        try:
            user = UserRecord.model_validate(user_data)
        except ValidationError as exc:
            raise ServerError(
                "info-user returned an unexpected body", status=200, method="GET", path=path
            ) from exc

        if self.session_store.get() is None:
            raise AuthenticationError("Session ended while fetching the user", status=401)
        self.session_store.set_user(user)
        return user


def decode_json(response: httpx.Response, method: str, path: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise ServerError(
            "Unexpected response body",
            status=response.status_code,
            data=ErrorPayload(message="Unexpected response body"),
            method=method,
            path=path,
        ) from exc
