"""Tests for query keys and the query cache (staleness, retries, polling, previous data)."""

import asyncio

import pytest

from lms_client.cache.query_client import QueryClient, QueryOptions
from lms_client.cache.query_key import make_query_key, matches_key
from lms_client.exceptions.errors import ServerError, ValidationApiError
from tests.helpers import make_session_store

NO_WAIT = dict(retry_delay=lambda attempt: 0)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class CountingFetcher:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0
        self.gate = None

    async def __call__(self):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


async def settle(observer):
    task = observer.entry.fetch_task
    if task is not None:
        await asyncio.wait([task])


# ==============================================================================
# QUERY KEYS
# ==============================================================================


def test_query_key_is_idempotent_and_order_independent():
    a = make_query_key("classes", page=1, search="ipa", filters={"grade": 7, "tags": ["x"]})
    b = make_query_key("classes", filters={"tags": ["x"], "grade": 7}, search="ipa", page=1)
    assert a == b
    assert hash(a) == hash(b)


def test_query_key_changes_with_any_parameter():
    base = make_query_key("classes", page=1, search="")
    assert make_query_key("classes", page=2, search="") != base
    assert make_query_key("classes", page=1, search="a") != base
    assert make_query_key("players", page=1, search="") != base
    assert make_query_key("classes", page="1", search="") != base


@pytest.mark.parametrize(
    "left, right",
    [
        ({"active": True}, {"active": 1}),
        ({"score": 1.0}, {"score": 1}),
        ({"flag": False}, {"flag": 0}),
        ({"owner": None}, {"owner": "None"}),
        ({"f": {"a": 1}}, {"f": [["a", 1]]}),
        ({"f": {"a": 1}}, {"f": [("a", 1)]}),
        ({"tags": {"x", "y"}}, {"tags": ["x", "y"]}),
        ({"f": {1: "x"}}, {"f": {"1": "x"}}),
    ],
)
def test_query_key_keeps_values_of_different_kinds_apart(left, right):
    assert make_query_key("classes", **left) != make_query_key("classes", **right)


def test_query_key_keeps_positional_and_named_parameters_apart():
    assert make_query_key("classes", ("page", 2)) != make_query_key("classes", page=2)
    assert make_query_key("classes", "page", 2) != make_query_key("classes", page=2)


def test_query_key_rejects_non_primitive_parameters():
    with pytest.raises(TypeError):
        make_query_key("classes", page=object())
    with pytest.raises(ValueError):
        make_query_key("")


def test_prefix_matching():
    key = make_query_key("classes", page=1, search="")
    assert matches_key(key, "classes")
    assert matches_key(key, key)
    assert matches_key(make_query_key("classes", 7, page=1), make_query_key("classes", 7))
    assert not matches_key(key, make_query_key("classes", page=2))
    assert not matches_key(key, "class")
    assert not matches_key(key, "classes", exact=True)


# ==============================================================================
# FETCHING
# ==============================================================================


@pytest.mark.asyncio
async def test_concurrent_fetches_share_one_call():
    client = QueryClient()
    fetcher = CountingFetcher({"data": [1]})
    fetcher.gate = asyncio.Event()
    key = make_query_key("classes", page=1)

    first = asyncio.ensure_future(client.fetch_query(key, fetcher))
    second = asyncio.ensure_future(client.fetch_query(key, fetcher))
    await asyncio.sleep(0)
    fetcher.gate.set()

    assert await first == await second == {"data": [1]}
    assert fetcher.calls == 1


@pytest.mark.asyncio
async def test_fresh_data_is_served_without_refetch_until_stale():
    clock = FakeClock()
    client = QueryClient(clock=clock)
    fetcher = CountingFetcher(["v1"], ["v2"])
    options = QueryOptions(stale_time=30, **NO_WAIT)
    key = ("dashboard",)

    observer = client.use_query(key, fetcher, options)
    assert observer.is_loading
    await settle(observer)
    assert observer.data == ["v1"]
    assert observer.status == "success"

    second = client.use_query(key, fetcher, options)
    assert second.data == ["v1"]
    assert not second.is_fetching

    clock.now += 31
    third = client.use_query(key, fetcher, options)
    assert third.data == ["v1"]
    assert third.is_fetching
    assert not third.is_loading
    await settle(third)
    assert observer.data == ["v2"]
    assert fetcher.calls == 2


@pytest.mark.asyncio
async def test_failed_refetch_keeps_previous_data_after_bounded_retries():
    client = QueryClient()
    key = ("classes",)
    client.set_query_data(key, {"data": ["A"]})
    fetcher = CountingFetcher(ServerError("down", status=500))

    with pytest.raises(ServerError):
        await client.fetch_query(key, fetcher, QueryOptions(retry=2, **NO_WAIT))

    entry = client.get_entry(key)
    assert fetcher.calls == 3
    assert entry.data == {"data": ["A"]}
    assert entry.status == "error"
    assert isinstance(entry.error, ServerError)


@pytest.mark.asyncio
async def test_client_errors_are_not_retried():
    client = QueryClient()
    fetcher = CountingFetcher(ValidationApiError("bad filter", status=400))

    with pytest.raises(ValidationApiError):
        await client.fetch_query(("classes",), fetcher, QueryOptions(retry=3, **NO_WAIT))

    assert fetcher.calls == 1


@pytest.mark.asyncio
async def test_recovery_after_transient_failure_clears_error():
    client = QueryClient()
    fetcher = CountingFetcher(ServerError("blip", status=503), {"ok": True})

    data = await client.fetch_query(("health",), fetcher, QueryOptions(**NO_WAIT))

    assert data == {"ok": True}
    assert client.get_entry(("health",)).error is None
    assert fetcher.calls == 2


@pytest.mark.asyncio
async def test_cancel_queries_keeps_existing_data():
    client = QueryClient()
    key = ("classes",)
    client.set_query_data(key, ["A", "B"])
    fetcher = CountingFetcher(["never"])
    fetcher.gate = asyncio.Event()

    pending = asyncio.ensure_future(client.fetch_query(key, fetcher))
    await asyncio.sleep(0)
    await client.cancel_queries("classes")

    with pytest.raises(asyncio.CancelledError):
        await pending
    entry = client.get_entry(key)
    assert entry.data == ["A", "B"]
    assert entry.status == "success"
    assert not entry.is_fetching


@pytest.mark.asyncio
async def test_cancel_during_retry_backoff_leaves_no_loading_state():
    client = QueryClient()
    fetcher = CountingFetcher(ServerError("down", status=500))
    observer = client.use_query(
        ("classes",), fetcher, QueryOptions(retry=3, retry_delay=lambda attempt: 10)
    )
    for _ in range(50):
        if observer.entry.failure_count >= 1:
            break
        await asyncio.sleep(0)
    assert observer.entry.failure_count == 1
    assert observer.is_loading

    await client.cancel_queries("classes")

    assert observer.entry.status == "idle"
    assert not observer.is_fetching
    assert not observer.is_loading
    assert fetcher.calls == 1
    observer.close()


@pytest.mark.asyncio
async def test_invalidate_refetches_observed_keys():
    client = QueryClient()
    fetcher = CountingFetcher(["v1"], ["v2"])
    observer = client.use_query(("badges",), fetcher, QueryOptions(stale_time=3600))
    await settle(observer)

    await client.invalidate_queries("badges")

    assert observer.data == ["v2"]
    assert not observer.entry.is_invalidated
    assert fetcher.calls == 2


@pytest.mark.asyncio
async def test_window_focus_refetches_only_stale_queries():
    clock = FakeClock()
    client = QueryClient(clock=clock)
    fetcher = CountingFetcher(["v1"], ["v2"])
    observer = client.use_query(("profile",), fetcher, QueryOptions(stale_time=60))
    await settle(observer)

    client.on_window_focus(True)
    assert not observer.is_fetching

    clock.now += 61
    client.on_window_focus(True)
    await settle(observer)
    assert observer.data == ["v2"]


@pytest.mark.asyncio
async def test_disabled_query_does_not_fetch_until_enabled():
    client = QueryClient()
    fetcher = CountingFetcher(["v1"])
    observer = client.use_query(("report",), fetcher, enabled=False)
    await asyncio.sleep(0)
    assert fetcher.calls == 0
    assert observer.status == "idle"

    observer.set_enabled(True)
    await settle(observer)
    assert observer.data == ["v1"]


# ==============================================================================
# POLLING AND PREVIOUS DATA
# ==============================================================================


@pytest.mark.asyncio
async def test_polling_refetches_and_pauses_in_background():
    client = QueryClient()
    fetcher = CountingFetcher({"online": 3})
    observer = client.use_query(("leaderboard",), fetcher, refetch_interval=0.02)

    await asyncio.sleep(0.15)
    assert fetcher.calls >= 3

    client.on_window_focus(False)
    await asyncio.sleep(0.03)
    paused_at = fetcher.calls
    await asyncio.sleep(0.1)
    assert fetcher.calls == paused_at

    observer.close()
    client.on_window_focus(True)
    await asyncio.sleep(0.1)
    assert fetcher.calls == paused_at


@pytest.mark.asyncio
async def test_keep_previous_data_while_next_page_loads():
    client = QueryClient()
    page1 = CountingFetcher({"data": ["A", "B"], "page": 1})
    observer = client.use_query(("classes", 1), page1, keep_previous_data=True)
    await settle(observer)

    page2 = CountingFetcher({"data": ["C"], "page": 2})
    page2.gate = asyncio.Event()
    observer.set_key(("classes", 2), page2)

    assert observer.data == {"data": ["A", "B"], "page": 1}
    assert observer.is_previous_data
    assert not observer.is_loading
    assert observer.is_fetching

    page2.gate.set()
    await settle(observer)
    assert observer.data == {"data": ["C"], "page": 2}
    assert not observer.is_previous_data


@pytest.mark.asyncio
async def test_without_previous_data_new_key_starts_loading():
    client = QueryClient()
    observer = client.use_query(("classes", 1), CountingFetcher(["A"]))
    await settle(observer)

    page2 = CountingFetcher(["B"])
    page2.gate = asyncio.Event()
    observer.set_key(("classes", 2), page2)

    assert observer.data is None
    assert observer.is_loading
    page2.gate.set()
    await settle(observer)


@pytest.mark.asyncio
async def test_logout_clears_the_cache():
    store = make_session_store()
    client = QueryClient(session_store=store)
    client.set_query_data(("dashboard",), {"xp": 10})

    store.clear()

    assert client.get_query_data(("dashboard",)) is None
    assert client.find_keys("dashboard") == []


@pytest.mark.asyncio
async def test_observer_listeners_receive_results():
    client = QueryClient()
    results = []
    observer = client.use_query(("quests",), CountingFetcher(["q1"]))
    observer.subscribe(results.append)
    await settle(observer)
    await asyncio.sleep(0)

    assert results[-1].data == ["q1"]
    assert results[-1].is_success
    assert not results[-1].is_fetching
