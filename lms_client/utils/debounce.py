"""Trailing-edge debounce for search inputs.

Rapid calls ("a", "ab", "abc") within the wait window collapse into a single
invocation with the last arguments.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

from lms_client.config.settings import SEARCH_DEBOUNCE_SECONDS

logger = logging.getLogger(__name__)


class Debouncer:
    """Delay `func` until `wait` seconds pass without another call.

    Must be called from a running event loop. `func` may be a plain function
    or a coroutine function; its result is not returned to callers.
    """

    def __init__(self, func: Callable[..., Any], wait: float = SEARCH_DEBOUNCE_SECONDS):
        self.func = func
        self.wait = wait
        self._task: Optional[asyncio.Task] = None
        self._args: tuple = ()
        self._kwargs: dict = {}

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def __call__(self, *args, **kwargs) -> None:
        self._args, self._kwargs = args, kwargs
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._fire_later())

    async def _fire_later(self) -> None:
        await asyncio.sleep(self.wait)
        await self._invoke()

    async def _invoke(self) -> None:
        try:
            result = self.func(*self._args, **self._kwargs)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Debounced call to %s failed", getattr(self.func, "__name__", self.func))

    def cancel(self) -> None:
        """Drop the pending call, if any (e.g. when the view goes away)."""
        if self.pending:
            self._task.cancel()
        self._task = None

    async def flush(self) -> None:
        """Run the pending call now instead of waiting for the timer."""
        if not self.pending:
            return
        self.cancel()
        await self._invoke()
