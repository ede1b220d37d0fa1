"""
MODULE_DESCRIPTION: Error Normalization - Transport Failures to ApiError

===================================================================================
PURPOSE AND OVERVIEW
===================================================================================

Low-level failures are normalized exactly once, at the transport boundary,
into the ApiError hierarchy. Page-level code only ever inspects the normalized
{status, data} shape.

Handler 1: error_from_response
    Non-2xx httpx.Response -> ApiError subclass chosen by status:
        401        -> AuthenticationError
        403        -> ForbiddenError
        404        -> NotFoundError
        429        -> RateLimitedError (retry_after from Retry-After header)
        other 4xx  -> ValidationApiError
        5xx        -> ServerError

Handler 2: error_from_transport
    httpx.TimeoutException -> RequestTimeoutError
    other httpx.TransportError -> TransportError

Handler 3: field_errors
    ApiError -> {field: message, ..., "submit": general message}
    Used by form code to show per-field validation messages.

===================================================================================
"""

from typing import Dict, Optional

import httpx

from lms_client.exceptions.errors import (
    ApiError,
    AuthenticationError,
    ForbiddenError,
    NotFoundError,
    RateLimitedError,
    RequestTimeoutError,
    ServerError,
    TransportError,
    ValidationApiError,
)
from lms_client.models.responses import ErrorPayload
from lms_client.utils.debug import print__api_debug

# ==============================================================================
# EXCEPTION HANDLERS
# ==============================================================================

_STATUS_CLASSES = {
    401: AuthenticationError,
    403: ForbiddenError,
    404: NotFoundError,
}


def _decode_body(response: httpx.Response):
    try:
        return response.json()
    except ValueError:
        return response.text


def parse_retry_after(value: Optional[str]) -> Optional[int]:
    """Parse a Retry-After header given in seconds; HTTP dates are not supported."""
    if not value:
        return None
    try:
        seconds = int(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def error_from_response(
    response: httpx.Response,
    method: Optional[str] = None,
    path: Optional[str] = None,
) -> ApiError:
    """Convert a non-2xx response into the matching ApiError subclass."""
    status = response.status_code
    payload = ErrorPayload.from_body(_decode_body(response))
    headers = dict(response.headers)
    message = payload.message or payload.error or f"HTTP {status}"
    common = dict(
        status=status, data=payload, headers=headers, method=method, path=path
    )

    print__api_debug(f"🚨 HTTP {status} {method} {path}: {message}")

    if status == 429:
        return RateLimitedError(
            message,
            retry_after=parse_retry_after(response.headers.get("retry-after")),
            **common,
        )
    if status in _STATUS_CLASSES:
        return _STATUS_CLASSES[status](message, **common)
    if 400 <= status < 500:
        return ValidationApiError(message, **common)
    return ServerError(message, **common)


def error_from_transport(
    exc: httpx.TransportError,
    method: Optional[str] = None,
    path: Optional[str] = None,
) -> TransportError:
    """Wrap an httpx transport exception (no response was received)."""
    if isinstance(exc, httpx.TimeoutException):
        message = f"Request timed out: {method} {path}"
        error_class = RequestTimeoutError
    else:
        message = f"Network error: {type(exc).__name__}: {exc}"
        error_class = TransportError

    print__api_debug(f"🚨 {message}")
    return error_class(
        message,
        status=None,
        data=ErrorPayload(message=message),
        method=method,
        path=path,
    )


def field_errors(error: BaseException, fallback: str = "Request failed") -> Dict[str, str]:
    """Map a failed submission to per-field form messages.

    Field-level detail from `errors` is copied as is; the general message
    always goes under "submit".
    """
    if not isinstance(error, ApiError):
        return {"submit": str(error) or fallback}

    result = dict(error.data.errors or {})
    result["submit"] = error.data.message or error.data.error or fallback
    return result


def user_message(error: BaseException, fallback: str = "An error occurred. Please try again.") -> str:
    """Human-readable message for a toast or an error banner."""
    if isinstance(error, ApiError):
        if error.data.message or error.data.error:
            return error.data.message or error.data.error
        if isinstance(error, ServerError):
            return fallback
        return str(error) or fallback
    return fallback
