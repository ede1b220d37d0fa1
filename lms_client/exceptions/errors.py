"""Normalized error types raised by the LMS client.

Callers never look at transport internals; every failure surfaces as an
ApiError carrying the {status, data} shape the pages consume.
"""

from typing import Any, Dict, Optional

from lms_client.models.responses import ErrorPayload


class ApiError(Exception):
    """Base class for every failure of a request made through the client."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        data: Optional[ErrorPayload] = None,
        headers: Optional[Dict[str, str]] = None,
        method: Optional[str] = None,
        path: Optional[str] = None,
    ):
        super().__init__(message)
        self.status = status
        self.data = data or ErrorPayload()
        self.headers = dict(headers or {})
        self.method = method
        self.path = path

    @property
    def message(self) -> str:
        return self.data.message or self.data.error or str(self)

    @property
    def response(self) -> Dict[str, Any]:
        """The {status, data} shape consumed by form and page code."""
        return {
            "status": self.status,
            "data": self.data.model_dump(exclude_none=True),
        }

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(status={self.status!r}, "
            f"method={self.method!r}, path={self.path!r}, message={self.message!r})"
        )


class TransportError(ApiError):
    """Connection failure: no HTTP response was received."""


class RequestTimeoutError(TransportError):
    """The request exceeded the fixed client timeout."""


class AuthenticationError(ApiError):
    """401 that could not be recovered by a refresh."""


class SessionExpiredError(AuthenticationError):
    """The session was torn down; the user has to sign in again."""


class ForbiddenError(ApiError):
    """403: authenticated but not allowed."""


class ValidationApiError(ApiError):
    """4xx with (possibly) field-level detail; needs user correction."""


class NotFoundError(ApiError):
    pass


class RateLimitedError(ApiError):
    """429: submission must wait `retry_after` seconds."""

    def __init__(self, message: str, *, retry_after: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class ServerError(ApiError):
    """5xx or a response body of an unexpected shape."""


class InvalidTransitionError(RuntimeError):
    """A request state machine was asked to leave a terminal state."""


def is_retryable(error: BaseException) -> bool:
    """Only transient failures are worth another attempt.

    Transport failures and 5xx retry; auth, permission, validation and
    rate-limit errors never do. Exceptions that are not ApiError (bugs in a
    fetcher, parsing errors) are retried like transient failures.
    """
    if isinstance(error, (TransportError, ServerError)):
        return True
    if isinstance(error, ApiError):
        return False
    return True
