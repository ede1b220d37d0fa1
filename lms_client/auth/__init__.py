"""
Authentication package: session store, refresh coordination and the
sign-in redirect.
"""

from .navigation import Navigator, redirect_to_sign_in
from .refresh import RefreshCoordinator
from .session import Session, SessionStore, token_expired

__all__ = [
    "Navigator",
    "redirect_to_sign_in",
    "RefreshCoordinator",
    "Session",
    "SessionStore",
    "token_expired",
]
