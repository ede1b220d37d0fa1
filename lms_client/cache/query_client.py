"""
MODULE_DESCRIPTION: Query Cache - Query-Key Scoped Data with Stale-While-Revalidate

===================================================================================
PURPOSE AND OVERVIEW
===================================================================================

QueryClient keeps one CacheEntry per query key and avoids redundant network
calls for identical (resource, parameters) views. Observers (the equivalent
of a mounted view) read the last known value synchronously and trigger
background revalidation when needed.

Fetch triggers:
    - the key has no data yet
    - stale_time elapsed since last_updated_at, or the key was invalidated
    - the polling interval elapsed (refetch_interval)
    - window focus regained / network reconnected (per options, stale only)

On success the entry's data and last_updated_at are replaced. On failure the
previous data is kept, the error is recorded, and the fetch is retried up to
the configured bound with exponential backoff capped at QUERY_RETRY_MAX_DELAY.
Concurrent fetches for the same key share one in-flight task.

===================================================================================
ORDERING
===================================================================================

Everything runs on one event loop. Reads never await. Cancelling a fetch
(cancel_queries) keeps the data that was there before it started.

===================================================================================
"""

import asyncio
import copy
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from lms_client.auth.session import SessionStore
from lms_client.cache.query_key import QueryKey, as_key, matches_key
from lms_client.config.settings import QUERY_RETRY
from lms_client.utils.debug import print__cache_debug
from lms_client.utils.retry import (
    RetryPolicy,
    default_retry_delay,
    describe_error,
    should_retry,
)

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[Any]]

IDLE = "idle"
LOADING = "loading"
SUCCESS = "success"
ERROR = "error"


@dataclass
class QueryOptions:
    enabled: bool = True
    stale_time: float = 0.0
    refetch_interval: Union[float, bool] = False
    refetch_interval_in_background: bool = False
    refetch_on_window_focus: bool = True
    refetch_on_reconnect: bool = True
    retry: RetryPolicy = QUERY_RETRY
    retry_delay: Callable[[int], float] = default_retry_delay
    keep_previous_data: bool = False

    def merged(self, **overrides) -> "QueryOptions":
        return replace(self, **overrides)


@dataclass
class CacheEntry:
    key: QueryKey
    data: Any = None
    status: str = IDLE
    last_updated_at: Optional[float] = None
    error: Optional[BaseException] = None
    # Pre-patch data while an optimistic update is pending
    previous_data: Any = None
    is_invalidated: bool = False
    failure_count: int = 0
    fetch_task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def has_data(self) -> bool:
        return self.last_updated_at is not None

    @property
    def is_fetching(self) -> bool:
        return self.fetch_task is not None and not self.fetch_task.done()

    def is_stale(self, stale_time: float, now: float) -> bool:
        if self.is_invalidated or not self.has_data:
            return True
        return now - self.last_updated_at >= stale_time


@dataclass(frozen=True)
class QueryResult:
    data: Any
    error: Optional[BaseException]
    status: str
    is_loading: bool
    is_fetching: bool
    is_previous_data: bool
    last_updated_at: Optional[float]

    @property
    def is_error(self) -> bool:
        return self.status == ERROR

    @property
    def is_success(self) -> bool:
        return self.status == SUCCESS


class QueryClient:
    def __init__(
        self,
        session_store: Optional[SessionStore] = None,
        default_options: Optional[QueryOptions] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.default_options = default_options or QueryOptions()
        self.clock = clock
        self.focused = True
        self.online = True
        self._entries: Dict[QueryKey, CacheEntry] = {}
        self._observers: List["QueryObserver"] = []
        # key -> the optimistic update whose rollback is currently active
        self.active_rollbacks: Dict[QueryKey, Any] = {}
        # keys where a superseded optimistic update failed; the active update
        # must refetch instead of trusting its snapshot
        self.tainted_keys: Set[QueryKey] = set()
        if session_store is not None:
            session_store.subscribe(self._on_session_event)

    # ==================================================================
    # ENTRIES
    # ==================================================================

    def _ensure(self, key: QueryKey) -> CacheEntry:
        key = as_key(key)
        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(key)
            self._entries[key] = entry
        return entry

    def get_entry(self, key: QueryKey) -> Optional[CacheEntry]:
        return self._entries.get(as_key(key))

    def get_query_data(self, key: QueryKey) -> Any:
        entry = self.get_entry(key)
        return entry.data if entry is not None else None

    def set_query_data(self, key: QueryKey, updater: Any) -> Any:
        """Write data for `key`; `updater` is a value or a function of the old data."""
        entry = self._ensure(key)
        value = updater(entry.data) if callable(updater) else updater
        entry.data = value
        entry.status = SUCCESS
        entry.error = None
        entry.last_updated_at = self.clock()
        self._notify(entry.key)
        return value

    def find_keys(self, prefix: Any, exact: bool = False) -> List[QueryKey]:
        return [k for k in self._entries if matches_key(k, prefix, exact)]

    # ==================================================================
    # FETCHING
    # ==================================================================

    async def fetch_query(
        self,
        key: QueryKey,
        fetcher: Fetcher,
        options: Optional[QueryOptions] = None,
    ) -> Any:
        """Fetch `key` now (joining an in-flight fetch) and return the data.

        Raises the last error once retries are exhausted; the cached data
        from before the fetch stays in place.
        """
        task = self._start_fetch(self._ensure(key), fetcher, options or self.default_options)
        # shield: a caller giving up must not cancel the fetch other readers share
        return await asyncio.shield(task)

    def _start_fetch(
        self, entry: CacheEntry, fetcher: Fetcher, options: QueryOptions
    ) -> asyncio.Task:
        if entry.is_fetching:
            return entry.fetch_task

        task = asyncio.ensure_future(self._run_fetch(entry, fetcher, options))
        entry.fetch_task = task
        task.add_done_callback(lambda t, e=entry: self._fetch_done(e, t))
        self._notify(entry.key)
        return task

    def _fetch_done(self, entry: CacheEntry, task: asyncio.Task) -> None:
        if entry.fetch_task is task:
            entry.fetch_task = None
        if not task.cancelled():
            # The error is recorded on the entry; retrieve it so background
            # fetches nobody awaits do not warn
            task.exception()
        self._notify(entry.key)

    async def _run_fetch(self, entry: CacheEntry, fetcher: Fetcher, options: QueryOptions) -> Any:
        if not entry.has_data:
            entry.status = LOADING
        print__cache_debug(f"🔎 Fetching {entry.key}")

        try:
            return await self._fetch_with_retries(entry, fetcher, options)
        except asyncio.CancelledError:
            # Cancelled mid-request or mid-backoff: nothing is in flight any more
            entry.status = SUCCESS if entry.has_data else IDLE
            print__cache_debug(f"✋ Fetch cancelled for {entry.key}")
            raise

    async def _fetch_with_retries(
        self, entry: CacheEntry, fetcher: Fetcher, options: QueryOptions
    ) -> Any:
        failure_count = 0
        while True:
            try:
                data = await fetcher()
            except Exception as exc:
                failure_count += 1
                entry.failure_count = failure_count
                if should_retry(options.retry, failure_count, exc):
                    delay = options.retry_delay(failure_count - 1)
                    logger.warning(
                        "Query %s failed (attempt %d). Retrying in %.2fs... Error: %s",
                        entry.key,
                        failure_count,
                        delay,
                        describe_error(exc),
                    )
                    await asyncio.sleep(delay)
                    continue

                entry.error = exc
                entry.status = ERROR
                logger.error(
                    "Query %s failed after %d attempt(s): %s",
                    entry.key,
                    failure_count,
                    describe_error(exc),
                )
                raise

            entry.data = data
            entry.last_updated_at = self.clock()
            entry.status = SUCCESS
            entry.error = None
            entry.failure_count = 0
            entry.is_invalidated = False
            print__cache_debug(f"✅ Fetched {entry.key}")
            return data

    async def cancel_queries(self, prefix: Any, exact: bool = False) -> None:
        """Cancel in-flight fetches under `prefix`; cached data is kept."""
        tasks = []
        for key in self.find_keys(prefix, exact):
            entry = self._entries[key]
            if entry.is_fetching:
                entry.fetch_task.cancel()
                tasks.append(entry.fetch_task)
        if tasks:
            print__cache_debug(f"✋ Cancelling {len(tasks)} fetch(es) under {prefix}")
            await asyncio.gather(*tasks, return_exceptions=True)

    async def invalidate_queries(
        self, prefix: Any, exact: bool = False, refetch_active: bool = True
    ) -> None:
        """Mark matching keys stale and refetch the ones being observed."""
        keys = self.find_keys(prefix, exact)
        for key in keys:
            self._entries[key].is_invalidated = True
        print__cache_debug(f"♻️ Invalidated {len(keys)} key(s) under {prefix}")

        if not refetch_active:
            return
        tasks = [
            self._start_fetch(self._ensure(obs.key), obs.fetcher, obs.options)
            for obs in self._active_observers()
            if obs.key in keys and obs.options.enabled
        ]
        if tasks:
            # Failures are recorded on the entries
            await asyncio.gather(*tasks, return_exceptions=True)

    def clear(self) -> None:
        """Drop every entry (logout)."""
        for entry in self._entries.values():
            if entry.is_fetching:
                entry.fetch_task.cancel()
        self._entries.clear()
        self.active_rollbacks.clear()
        self.tainted_keys.clear()
        print__cache_debug("🧹 Query cache cleared")

    def _on_session_event(self, event: str, _session) -> None:
        if event == "logout":
            self.clear()

    # ==================================================================
    # OBSERVERS
    # ==================================================================

    def use_query(
        self,
        key: QueryKey,
        fetcher: Fetcher,
        options: Optional[QueryOptions] = None,
        **overrides,
    ) -> "QueryObserver":
        """Observe `key`: cached data now, fetch in the background if needed.

        Must be called from a running event loop. Call close() on the
        observer when the view goes away.
        """
        options = options or self.default_options
        if overrides:
            options = options.merged(**overrides)
        observer = QueryObserver(self, as_key(key), fetcher, options)
        self._observers.append(observer)
        observer.start()
        return observer

    def _active_observers(self) -> List["QueryObserver"]:
        return [obs for obs in self._observers if not obs.closed]

    def _remove_observer(self, observer: "QueryObserver") -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def _notify(self, key: QueryKey) -> None:
        for obs in self._active_observers():
            if obs.key == key:
                obs._emit()

    def on_window_focus(self, focused: bool = True) -> None:
        self.focused = focused
        if not focused:
            return
        for obs in self._active_observers():
            if obs.options.refetch_on_window_focus:
                obs.fetch_if_stale()

    def on_reconnect(self, online: bool = True) -> None:
        self.online = online
        if not online:
            return
        for obs in self._active_observers():
            if obs.options.refetch_on_reconnect:
                obs.fetch_if_stale()


_NO_DATA = object()


class QueryObserver:
    """One view's subscription to a query key."""

    def __init__(self, client: QueryClient, key: QueryKey, fetcher: Fetcher, options: QueryOptions):
        self.client = client
        self.key = key
        self.fetcher = fetcher
        self.options = options
        self.closed = False
        self._placeholder = _NO_DATA
        self._poll_task: Optional[asyncio.Task] = None
        self._listeners: List[Callable[[QueryResult], None]] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self.fetch_if_stale()
        if self.options.refetch_interval:
            self._poll_task = asyncio.get_running_loop().create_task(self._poll())

    def close(self) -> None:
        """Unmount: stop polling and stop receiving refetches."""
        self.closed = True
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None
        self._listeners.clear()
        self.client._remove_observer(self)

    async def _poll(self) -> None:
        interval = float(self.options.refetch_interval)
        while not self.closed:
            await asyncio.sleep(interval)
            if not self.options.enabled:
                continue
            if not self.client.focused and not self.options.refetch_interval_in_background:
                continue
            task = self.client._start_fetch(self.entry, self.fetcher, self.options)
            # wait() does not raise: a failed or cancelled fetch must not stop polling
            await asyncio.wait([task])

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def entry(self) -> CacheEntry:
        return self.client._ensure(self.key)

    @property
    def is_previous_data(self) -> bool:
        return not self.entry.has_data and self._placeholder is not _NO_DATA

    @property
    def data(self) -> Any:
        entry = self.entry
        if entry.has_data:
            return entry.data
        if self._placeholder is not _NO_DATA:
            return self._placeholder
        return None

    @property
    def is_fetching(self) -> bool:
        return self.entry.is_fetching

    @property
    def is_loading(self) -> bool:
        """True only while there is nothing to show yet."""
        if self.entry.has_data or self._placeholder is not _NO_DATA:
            return False
        return self.entry.status == LOADING or self.is_fetching

    @property
    def error(self) -> Optional[BaseException]:
        return self.entry.error

    @property
    def status(self) -> str:
        if self.is_previous_data and self.entry.status != ERROR:
            return SUCCESS
        return self.entry.status

    @property
    def result(self) -> QueryResult:
        return QueryResult(
            data=self.data,
            error=self.error,
            status=self.status,
            is_loading=self.is_loading,
            is_fetching=self.is_fetching,
            is_previous_data=self.is_previous_data,
            last_updated_at=self.entry.last_updated_at,
        )

    def subscribe(self, listener: Callable[[QueryResult], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self) -> None:
        result = self.result
        for listener in list(self._listeners):
            try:
                listener(result)
            except Exception:
                logger.exception("Query listener failed for %s", self.key)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def fetch_if_stale(self) -> Optional[asyncio.Task]:
        if self.closed or not self.options.enabled:
            return None
        entry = self.entry
        if entry.is_fetching:
            return entry.fetch_task
        if entry.is_stale(self.options.stale_time, self.client.clock()):
            return self.client._start_fetch(entry, self.fetcher, self.options)
        return None

    async def refetch(self) -> Any:
        return await self.client.fetch_query(self.key, self.fetcher, self.options)

    def set_key(self, key: QueryKey, fetcher: Optional[Fetcher] = None) -> None:
        """Switch to another key (new page / filter)."""
        if self.options.keep_previous_data:
            current = self.data
            if self.entry.has_data or self._placeholder is not _NO_DATA:
                self._placeholder = copy.deepcopy(current)
        else:
            self._placeholder = _NO_DATA

        self.key = as_key(key)
        if fetcher is not None:
            self.fetcher = fetcher
        self.fetch_if_stale()
        self._emit()

    def set_enabled(self, enabled: bool) -> None:
        self.options = self.options.merged(enabled=enabled)
        if enabled:
            self.fetch_if_stale()
