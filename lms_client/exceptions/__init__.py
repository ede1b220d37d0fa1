"""
Error types and normalization helpers for the LMS client.
"""

from .errors import (
    ApiError,
    AuthenticationError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    RateLimitedError,
    RequestTimeoutError,
    ServerError,
    SessionExpiredError,
    TransportError,
    ValidationApiError,
    is_retryable,
)
from .handlers import (
    error_from_response,
    error_from_transport,
    field_errors,
    parse_retry_after,
    user_message,
)

__all__ = [
    "ApiError",
    "AuthenticationError",
    "ForbiddenError",
    "InvalidTransitionError",
    "NotFoundError",
    "RateLimitedError",
    "RequestTimeoutError",
    "ServerError",
    "SessionExpiredError",
    "TransportError",
    "ValidationApiError",
    "is_retryable",
    "error_from_response",
    "error_from_transport",
    "field_errors",
    "parse_retry_after",
    "user_message",
]
