"""Client-side cooldown after a 429 response.

While the cooldown is active, form submission is disabled and the page shows
a countdown ("14:59", "14:58", ...).
"""

import time
from typing import Callable, Optional

from lms_client.config.settings import RATE_LIMIT_DEFAULT_COOLDOWN
from lms_client.exceptions.errors import RateLimitedError
from lms_client.utils.debug import print__api_debug

DEFAULT_RATE_LIMIT_MESSAGE = "Too many requests, please try again after 15 minutes"


def format_time_remaining(seconds: float) -> str:
    """Render a countdown as m:ss."""
    seconds = max(0, int(seconds))
    minutes, remaining_seconds = divmod(seconds, 60)
    return f"{minutes}:{remaining_seconds:02d}"


class RateLimitCooldown:
    """Tracks one cooldown window, e.g. for the sign-up or reset-password form."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._until: Optional[float] = None
        self.message = ""

    def start(self, seconds: float, message: str = DEFAULT_RATE_LIMIT_MESSAGE) -> None:
        self._until = self._clock() + max(0.0, seconds)
        self.message = message
        print__api_debug(f"⏳ Rate limited for {seconds}s: {message}")

    def start_from_error(self, error: RateLimitedError) -> None:
        """Start the cooldown from a 429; Retry-After wins, 900s otherwise."""
        seconds = error.retry_after
        if seconds is None:
            seconds = RATE_LIMIT_DEFAULT_COOLDOWN
        self.start(seconds, error.data.message or DEFAULT_RATE_LIMIT_MESSAGE)

    def remaining(self) -> float:
        if self._until is None:
            return 0.0
        left = self._until - self._clock()
        if left <= 0:
            self.reset()
            return 0.0
        return left

    @property
    def is_active(self) -> bool:
        return self.remaining() > 0

    def countdown(self) -> str:
        return format_time_remaining(self.remaining())

    def reset(self) -> None:
        self._until = None
        self.message = ""

    def guard(self) -> None:
        """Raise instead of submitting while the cooldown runs."""
        left = self.remaining()
        if left > 0:
            raise RateLimitedError(
                f"{self.message} ({format_time_remaining(left)} remaining)",
                status=429,
                retry_after=int(left) + 1,
            )
