from __future__ import annotations

import pytest

from putwatch.cache import CacheKey, DataKind, ResponseCache


@pytest.fixture
def cache(clock) -> ResponseCache:
    return ResponseCache(clock=clock)


class CountingFetch:
    def __init__(self) -> None:
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        return f"value-{self.calls}"


def test_fresh_entries_are_served_from_cache(cache, clock):
    fetch = CountingFetch()
    key = CacheKey("AAPL", DataKind.LATEST)

    assert cache.get_or_fetch(key, 120, fetch) == "value-1"
    clock.advance(seconds=119)
    assert cache.get_or_fetch(key, 120, fetch) == "value-1"
    assert fetch.calls == 1


def test_expired_entries_are_refetched(cache, clock):
    fetch = CountingFetch()
    key = CacheKey("AAPL", DataKind.LATEST)

    cache.get_or_fetch(key, 120, fetch)
    clock.advance(seconds=120)

    assert cache.get_or_fetch(key, 120, fetch) == "value-2"


def test_force_refresh_bypasses_fresh_entry(cache):
    fetch = CountingFetch()
    key = CacheKey("AAPL", DataKind.HISTORY)

    cache.get_or_fetch(key, 300, fetch)
    assert cache.get_or_fetch(key, 300, fetch, force_refresh=True) == "value-2"
    assert cache.peek(key) == "value-2"


def test_keys_are_scoped_by_kind_and_variant(cache):
    fetch = CountingFetch()

    cache.get_or_fetch(CacheKey("AAPL", DataKind.LATEST), 60, fetch)
    cache.get_or_fetch(CacheKey("AAPL", DataKind.HISTORY), 60, fetch)
    cache.get_or_fetch(CacheKey("AAPL", DataKind.PERFORMANCE, "30"), 60, fetch)
    cache.get_or_fetch(CacheKey("AAPL", DataKind.PERFORMANCE, "7"), 60, fetch)

    assert fetch.calls == 4
    assert len(cache) == 4


def test_time_remaining_rounds_up_to_minutes(cache, clock):
    key = CacheKey("AAPL", DataKind.LATEST)
    assert cache.time_remaining(key) == 0

    cache.get_or_fetch(key, 300, lambda: "x")
    assert cache.time_remaining(key) == 5
    clock.advance(seconds=61)
    assert cache.time_remaining(key) == 4
    clock.advance(seconds=238)
    assert cache.time_remaining(key) == 1
    clock.advance(seconds=10)
    assert cache.time_remaining(key) == 0


def test_fetch_errors_are_not_cached(cache):
    key = CacheKey("AAPL", DataKind.LATEST)

    def boom():
        raise RuntimeError("upstream down")

    with pytest.raises(RuntimeError):
        cache.get_or_fetch(key, 60, boom)
    assert cache.peek(key) is None
    assert len(cache) == 0


def test_invalidate_drops_every_entry_for_symbol(cache):
    cache.get_or_fetch(CacheKey("AAPL", DataKind.LATEST), 60, lambda: 1)
    cache.get_or_fetch(CacheKey("AAPL", DataKind.HISTORY, "10"), 60, lambda: 2)
    cache.get_or_fetch(CacheKey("MSFT", DataKind.LATEST), 60, lambda: 3)

    assert cache.invalidate("AAPL") == 2
    assert cache.peek(CacheKey("MSFT", DataKind.LATEST)) == 3
    assert len(cache) == 1

    cache.clear()
    assert len(cache) == 0


def test_none_results_are_cached(cache):
    fetch_calls = []

    def fetch():
        fetch_calls.append(1)
        return None

    key = CacheKey("AAPL", DataKind.LATEST)
    cache.get_or_fetch(key, 60, fetch)
    cache.get_or_fetch(key, 60, fetch)

    assert len(fetch_calls) == 1
