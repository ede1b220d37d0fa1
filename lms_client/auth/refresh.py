"""Silent refresh-token exchange, shared by every request that hit a 401.

Concurrent 401s await one in-flight refresh instead of each posting their own
refresh call; a request whose token was already replaced by a finished
refresh just reuses the new token.
"""

import asyncio
import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from lms_client.config.settings import REFRESH_PATH
from lms_client.auth.session import SessionStore
from lms_client.exceptions.errors import SessionExpiredError
from lms_client.exceptions.handlers import error_from_response, error_from_transport
from lms_client.models.auth import RefreshRequest, RefreshResponse
from lms_client.utils.debug import mask_token, print__token_debug

logger = logging.getLogger(__name__)


class RefreshCoordinator:
    def __init__(
        self,
        session_store: SessionStore,
        http: httpx.AsyncClient,
        refresh_path: str = REFRESH_PATH,
    ):
        self._store = session_store
        self._http = http
        self._refresh_path = refresh_path
        self._inflight: Optional[asyncio.Future] = None
        # Number of refresh calls actually sent over the network
        self.refresh_count = 0

    @property
    def in_progress(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    async def refresh(self, failed_token: Optional[str] = None) -> str:
        """Return a fresh access token, refreshing at most once per burst of 401s.

        Args:
            failed_token: the access token the 401 was issued for. When the
                session already holds a different token, a refresh finished
                in the meantime and that token is returned as is.

        Raises:
            SessionExpiredError: no refresh token, or the refresh call failed.
        """
        current = self._store.access_token
        if failed_token is not None and current and current != failed_token and not self.in_progress:
            print__token_debug("♻️ Token already refreshed by a concurrent request")
            return current

        if self._inflight is None:
            if not self._store.refresh_token:
                raise SessionExpiredError("No refresh token available", status=401)
            self._inflight = asyncio.ensure_future(self._exchange())
            self._inflight.add_done_callback(self._finished)
        else:
            print__token_debug("⏳ Waiting for the in-flight token refresh")

        # shield: a cancelled waiter must not cancel the refresh the others await
        return await asyncio.shield(self._inflight)

    def _finished(self, future: asyncio.Future) -> None:
        if self._inflight is future:
            self._inflight = None
        if not future.cancelled():
            # Mark the exception as retrieved even when every waiter was cancelled
            future.exception()

    async def _exchange(self) -> str:
        refresh_token = self._store.refresh_token
        body = RefreshRequest(refresh_token=refresh_token).model_dump(by_alias=True)
        self.refresh_count += 1
        print__token_debug(f"🔄 Refreshing with refresh={mask_token(refresh_token)}")

        try:
            response = await self._http.post(self._refresh_path, json=body)
        except httpx.TransportError as exc:
            cause = error_from_transport(exc, "POST", self._refresh_path)
            logger.warning("Token refresh failed: %s", cause)
            raise SessionExpiredError("Token refresh failed", status=None) from cause

        if response.is_error:
            cause = error_from_response(response, "POST", self._refresh_path)
            logger.warning("Token refresh rejected with HTTP %s", response.status_code)
            raise SessionExpiredError(
                "Token refresh failed",
                status=response.status_code,
                data=cause.data,
                method="POST",
                path=self._refresh_path,
            ) from cause

        try:
            tokens = RefreshResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            logger.warning("Token refresh returned an unexpected body: %s", exc)
            raise SessionExpiredError("Token refresh returned an invalid body", status=response.status_code) from exc

        if self._store.get() is None:
            # Logged out while the refresh was in flight
            raise SessionExpiredError("Session ended during token refresh", status=401)

        self._store.set_tokens(tokens.access_token, tokens.refresh_token)
        print__token_debug("✅ Token refresh successful")
        return tokens.access_token
