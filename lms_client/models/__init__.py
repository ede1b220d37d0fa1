"""
Data models package for the LMS client.

This package contains Pydantic models for the auth wire format and the
generic error / list response shapes.
"""

# Import auth models
from .auth import (
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    RefreshResponse,
    TokenPair,
    UserRecord,
)

# Import generic response models
from .responses import ErrorPayload, PaginatedList

__all__ = [
    # Auth models
    "LoginRequest",
    "LoginResponse",
    "RefreshRequest",
    "RefreshResponse",
    "TokenPair",
    "UserRecord",
    # Response models
    "ErrorPayload",
    "PaginatedList",
]
