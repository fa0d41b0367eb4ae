from __future__ import annotations

import asyncio

import pytest
from conftest import FakeMonotonic

from mcp_sonicwall_server.core.cache import ResultCache, make_cache_key


def test_cache_key_is_order_independent() -> None:
    assert make_cache_key("events", {"b": 2, "a": 1}) == make_cache_key("events", {"a": 1, "b": 2})
    assert make_cache_key("events", {"a": 1}) != make_cache_key("threats", {"a": 1})
    assert make_cache_key("stats") == "stats:{}"


def test_get_within_ttl_is_idempotent(monotonic: FakeMonotonic) -> None:
    cache = ResultCache(clock=monotonic)
    cache.set("k", {"v": 1}, ttl=10)
    monotonic.advance(5)
    assert cache.get("k") == cache.get("k") == {"v": 1}
    assert cache.stats() == {"size": 1, "hits": 2, "misses": 0}


def test_expired_entry_is_a_miss(monotonic: FakeMonotonic) -> None:
    cache = ResultCache(clock=monotonic)
    cache.set("k", "v", ttl=1)
    monotonic.advance(1.5)
    assert cache.get("k", "missing") == "missing"
    assert len(cache) == 0
    assert cache.stats()["misses"] == 1


def test_set_overwrites_and_resets_ttl(monotonic: FakeMonotonic) -> None:
    cache = ResultCache(clock=monotonic)
    cache.set("k", 1, ttl=2)
    monotonic.advance(1.5)
    cache.set("k", 2, ttl=2)
    monotonic.advance(1.5)
    assert cache.get("k") == 2


def test_default_ttl_applies(monotonic: FakeMonotonic) -> None:
    cache = ResultCache(default_ttl=30, clock=monotonic)
    cache.set("k", 1)
    monotonic.advance(29)
    assert cache.get("k") == 1
    monotonic.advance(1)
    assert cache.get("k") is None


def test_invalid_ttls_rejected(monotonic: FakeMonotonic) -> None:
    with pytest.raises(ValueError):
        ResultCache(default_ttl=0)
    with pytest.raises(ValueError):
        ResultCache(sweep_interval=-1)
    with pytest.raises(ValueError):
        ResultCache(clock=monotonic).set("k", 1, ttl=0)


def test_sweep_removes_only_expired(monotonic: FakeMonotonic) -> None:
    cache = ResultCache(clock=monotonic)
    cache.set("short", 1, ttl=1)
    cache.set("long", 2, ttl=100)
    monotonic.advance(2)
    assert cache.sweep() == 1
    assert len(cache) == 1
    assert cache.get("long") == 2


def test_delete_and_clear(monotonic: FakeMonotonic) -> None:
    cache = ResultCache(clock=monotonic)
    cache.set("a", 1)
    cache.set("b", 2)
    assert cache.delete("a")
    assert not cache.delete("a")
    cache.clear()
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_background_sweeper(monotonic: FakeMonotonic) -> None:
    cache = ResultCache(sweep_interval=0.01, clock=monotonic)
    cache.set("k", 1, ttl=1)
    monotonic.advance(5)

    cache.start_sweeper()
    cache.start_sweeper()
    await asyncio.sleep(0.05)
    await cache.stop_sweeper()

    assert len(cache) == 0
