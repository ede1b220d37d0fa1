"""
MODULE_DESCRIPTION: Session Store - Access/Refresh Tokens and the Authenticated User

===================================================================================
PURPOSE AND OVERVIEW
===================================================================================

The SessionStore is the only holder of the access token, the refresh token
and the authenticated user. It is constructed once at application bootstrap
and injected into the ApiClient and the QueryClient; nothing reads it as
ambient global state.

Writers:
    - set_auth()   login response (tokens + user)
    - set_tokens() refresh response (tokens only, user untouched)
    - set_user()   explicit /v1/users/info-user sync
    - clear()      logout or irrecoverable 401

Invariant:
    access token and user are both present or both absent. Every write
    replaces the whole Session object in a single assignment, so a partial
    state is never observable.

Listeners receive ("login" | "refresh" | "user" | "logout", session).

===================================================================================
"""

import logging
import time
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Union

import jwt

from lms_client.config.settings import TOKEN_EXPIRY_LEEWAY
from lms_client.models.auth import UserRecord
from lms_client.utils.debug import mask_token, print__token_debug

logger = logging.getLogger(__name__)

SessionListener = Callable[[str, Optional["Session"]], None]


@dataclass(frozen=True)
class Session:
    access_token: str
    refresh_token: Optional[str]
    user: UserRecord


def _coerce_user(user: Union[UserRecord, dict]) -> UserRecord:
    if isinstance(user, UserRecord):
        return user
    return UserRecord.model_validate(user)


def token_expired(token: Optional[str], leeway: float = TOKEN_EXPIRY_LEEWAY) -> bool:
    """True when `token` is a JWT whose exp claim has passed.

    The signature is not verified (the client has no key); opaque tokens and
    tokens without exp are treated as not expired and left to the server.
    """
    if not token:
        return False
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return False
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        return False
    return exp <= time.time() + leeway


class SessionStore:
    """Process-wide auth state with an explicit lifecycle."""

    def __init__(self, session: Optional[Session] = None):
        self._session = session
        self._listeners: List[SessionListener] = []

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self) -> Optional[Session]:
        return self._session

    @property
    def access_token(self) -> Optional[str]:
        return self._session.access_token if self._session else None

    @property
    def refresh_token(self) -> Optional[str]:
        return self._session.refresh_token if self._session else None

    @property
    def user(self) -> Optional[UserRecord]:
        return self._session.user if self._session else None

    def is_valid_auth(self) -> bool:
        return bool(self._session and self._session.access_token and self._session.user)

    def access_token_expired(self, leeway: float = TOKEN_EXPIRY_LEEWAY) -> bool:
        return token_expired(self.access_token, leeway)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_auth(
        self,
        user: Union[UserRecord, dict],
        access_token: str,
        refresh_token: Optional[str] = None,
    ) -> Session:
        """Start a session from a login response."""
        if not access_token:
            raise ValueError("access token is required to start a session")
        if user is None:
            raise ValueError("user is required to start a session")

        self._session = Session(access_token, refresh_token, _coerce_user(user))
        print__token_debug(
            f"🔑 Session started for user={self._session.user.id} "
            f"access={mask_token(access_token)}"
        )
        self._emit("login")
        return self._session

    def set_tokens(self, access_token: str, refresh_token: Optional[str] = None) -> Session:
        """Swap in refreshed tokens; the user is kept and never re-checked."""
        if self._session is None:
            raise RuntimeError("cannot store refreshed tokens without an active session")
        if not access_token:
            raise ValueError("access token is required")

        self._session = replace(
            self._session,
            access_token=access_token,
            refresh_token=refresh_token or self._session.refresh_token,
        )
        print__token_debug(f"🔄 Tokens refreshed access={mask_token(access_token)}")
        self._emit("refresh")
        return self._session

    def set_user(self, user: Union[UserRecord, dict]) -> Session:
        if self._session is None:
            raise RuntimeError("cannot set a user without an active session")
        self._session = replace(self._session, user=_coerce_user(user))
        self._emit("user")
        return self._session

    def clear(self) -> None:
        """Drop tokens and user together."""
        had_session = self._session is not None
        self._session = None
        if had_session:
            print__token_debug("🚪 Session cleared")
            self._emit("logout")

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a lifecycle listener; returns the unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, self._session)
            except Exception:
                logger.exception("Session listener failed on %s", event)
