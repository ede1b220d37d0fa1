"""
Retry utilities for the query cache.

Exponential backoff with a delay cap, and evaluation of the `retry` option
(an attempt count, a boolean, or a predicate) against a failed fetch.
"""

import random
import logging
from typing import Any, Callable, Union

from lms_client.config.settings import (
    QUERY_RETRY_BASE_DELAY,
    QUERY_RETRY_MAX_DELAY,
)
from lms_client.exceptions.errors import is_retryable

# Configure logging
logger = logging.getLogger(__name__)

RetryPolicy = Union[bool, int, Callable[[int, Exception], bool]]


def calculate_backoff_delay(
    attempt: int,
    base_delay: float = QUERY_RETRY_BASE_DELAY,
    max_delay: float = QUERY_RETRY_MAX_DELAY,
    exponential_base: float = 2.0,
    jitter: bool = False,
) -> float:
    """
    Calculate exponential backoff delay with optional jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds (default: 1.0)
        max_delay: Maximum delay in seconds (default: 30.0)
        exponential_base: Base for exponential calculation (default: 2.0)
        jitter: Add random jitter to prevent thundering herd (default: False)

    Returns:
        Delay in seconds
    """
    delay = min(base_delay * (exponential_base**attempt), max_delay)

    if jitter:
        # Random factor between 0.5 and 1.5, still capped
        delay = min(delay * (0.5 + random.random()), max_delay)

    return delay


def default_retry_delay(attempt: int) -> float:
    """Delay before retry number `attempt` (0-indexed): 1s, 2s, 4s... capped at 30s."""
    return calculate_backoff_delay(attempt)


def should_retry(retry: RetryPolicy, failure_count: int, error: Exception) -> bool:
    """
    Decide whether a failed fetch gets another attempt.

    Args:
        retry: False/0 = never, True = always, int = max retries,
            callable = predicate(failure_count, error)
        failure_count: Failures so far, including the one being judged
        error: The exception raised by the fetch

    Returns:
        True if the fetch should be retried
    """
    if not is_retryable(error):
        return False

    if callable(retry):
        return bool(retry(failure_count, error))

    # bool must be checked before int, True is an int
    if isinstance(retry, bool):
        return retry

    return failure_count <= int(retry)


def describe_error(error: Any) -> str:
    """Short one-line description for retry log messages."""
    return f"{type(error).__name__}: {str(error)[:100]}"
