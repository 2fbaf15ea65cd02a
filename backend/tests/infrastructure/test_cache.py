"""TTLCache — expiry, namespaces, copy isolation, sweeping and LRU bound.

Invariants:
    - an entry is absent once its TTL has elapsed, resident or not
    - values are copied in and out; mutating either side never leaks
    - namespaces sharing one store never see each other's keys
    - sweep() removes expired entries that nobody asked for
"""

import asyncio

import pytest

from taskhub.core.errors import InvalidCacheKeyError, ValidationError
from taskhub.infrastructure.cache import TTLCache

from tests.fakes import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TTLCache(namespace="app", default_ttl_seconds=60, clock=clock)


# --- get / set ----------------------------------------------------------------

def test_get_within_ttl(cache, clock):
    cache.set("k", {"n": 1}, ttl_seconds=10)
    clock.advance(9.9)
    assert cache.get("k") == {"n": 1}


def test_get_at_expiry_is_absent(cache, clock):
    cache.set("k", "v", ttl_seconds=10)
    clock.advance(10)
    assert cache.get("k") is None


def test_get_missing_returns_default(cache):
    assert cache.get("nope") is None
    assert cache.get("nope", default="fallback") == "fallback"


def test_default_ttl_applies(cache, clock):
    cache.set("k", "v")
    clock.advance(59)
    assert cache.has("k")
    clock.advance(1)
    assert not cache.has("k")


def test_set_overwrites_and_resets_ttl(cache, clock):
    cache.set("k", "old", ttl_seconds=10)
    clock.advance(8)
    cache.set("k", "new", ttl_seconds=10)
    clock.advance(8)
    assert cache.get("k") == "new"


def test_falsy_values_are_cached(cache):
    cache.set("zero", 0)
    cache.set("empty", [])
    assert cache.has("zero")
    assert cache.get("empty") == []


# --- copy isolation -----------------------------------------------------------

def test_mutating_original_does_not_change_cached_value(cache):
    value = {"tags": ["a"]}
    cache.set("k", value)
    value["tags"].append("b")
    assert cache.get("k") == {"tags": ["a"]}


def test_mutating_returned_value_does_not_change_cached_value(cache):
    cache.set("k", {"tags": ["a"]})
    cache.get("k")["tags"].append("b")
    assert cache.get("k") == {"tags": ["a"]}


# --- has / delete / clear -----------------------------------------------------

def test_has_removes_expired_entry(cache, clock):
    cache.set("k", "v", ttl_seconds=1)
    clock.advance(2)
    assert len(cache) == 1

    assert cache.has("k") is False
    assert len(cache) == 0


def test_delete_reports_existence(cache):
    cache.set("k", "v")
    assert cache.delete("k") is True
    assert cache.delete("k") is False
    assert cache.get("k") is None


def test_clear_only_touches_own_namespace(cache):
    other = cache.namespaced("other")
    cache.set("k", 1)
    other.set("k", 2)

    cache.clear()

    assert cache.get("k") is None
    assert other.get("k") == 2


# --- namespaces ---------------------------------------------------------------

def test_namespaces_are_isolated(cache):
    users = cache.namespaced("users")
    cache.set("42", "task")
    users.set("42", "user")

    assert cache.get("42") == "task"
    assert users.get("42") == "user"
    users.delete("42")
    assert cache.get("42") == "task"


def test_namespaced_views_share_clock_and_stats(cache, clock):
    users = cache.namespaced("users")
    users.set("k", "v", ttl_seconds=5)
    clock.advance(5)

    assert users.get("k") is None
    assert cache.stats()["expirations"] == 1


def test_empty_namespace_rejected():
    with pytest.raises(ValidationError):
        TTLCache(namespace="")


# --- validation ---------------------------------------------------------------

@pytest.mark.parametrize("key", ["", None, 42])
def test_invalid_key_rejected(cache, key):
    with pytest.raises(InvalidCacheKeyError) as exc_info:
        cache.set(key, "v")
    assert exc_info.value.code == "INVALID_CACHE_KEY"


@pytest.mark.parametrize("ttl", [0, -1])
def test_non_positive_ttl_rejected(cache, ttl):
    with pytest.raises(ValidationError):
        cache.set("k", "v", ttl_seconds=ttl)
    assert not cache.has("k")


# --- sweeping -----------------------------------------------------------------

def test_sweep_removes_only_expired_entries(cache, clock):
    other = cache.namespaced("other")
    cache.set("short", 1, ttl_seconds=1)
    other.set("short", 2, ttl_seconds=1)
    cache.set("long", 3, ttl_seconds=100)
    clock.advance(10)

    removed = cache.sweep()

    assert removed == 2
    assert len(cache) == 1
    assert len(other) == 0
    assert cache.get("long") == 3


async def test_sweeper_task_runs_and_stops(cache, clock):
    cache.set("k", "v", ttl_seconds=1)
    clock.advance(5)

    task = cache.start_sweeper(interval_seconds=0.01)
    assert cache.start_sweeper(interval_seconds=0.01) is task
    for _ in range(100):
        if len(cache) == 0:
            break
        await asyncio.sleep(0.01)

    assert len(cache) == 0
    await cache.stop_sweeper()
    assert task.done()


async def test_stop_sweeper_without_start_is_noop(cache):
    await cache.stop_sweeper()


# --- LRU bound ----------------------------------------------------------------

def test_lru_evicts_least_recently_used(clock):
    cache = TTLCache(max_entries=2, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.get("a")
    cache.set("c", 3)

    assert cache.has("a")
    assert not cache.has("b")
    assert cache.has("c")
    assert cache.stats()["evictions"] == 1


def test_unbounded_by_default(cache):
    for i in range(500):
        cache.set(str(i), i)
    assert len(cache) == 500


def test_stats_track_hits_and_misses(cache):
    cache.set("k", "v")
    cache.get("k")
    cache.get("missing")

    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["size"] == 1
