from __future__ import annotations

import asyncio

import pytest

from offgrid.cache import ResponseCache
from offgrid.errors import QuotaExceededError
from offgrid.runtime import CachePolicy
from offgrid.storage import CACHE_NAMESPACE, InMemoryStore


def run_async(coro):
    return asyncio.run(coro)


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def _entry_size(value: str) -> int:
    scratch = InMemoryStore()
    cache = ResponseCache(scratch, clock=FakeClock())
    await cache.set("k0", value)
    return (await scratch.usage()).used


def test_key_is_deterministic_and_param_order_independent():
    a = ResponseCache.key_for("https://api.example.com/", "/items", {"page": 1, "q": "x"})
    b = ResponseCache.key_for("https://api.example.com", "/items", {"q": "x", "page": 1})
    c = ResponseCache.key_for("https://api.example.com", "/items", {"page": 2, "q": "x"})
    assert a == b
    assert a != c
    assert len(a) == 64


def test_entry_expires_strictly_after_ttl():
    async def scenario() -> None:
        clock = FakeClock()
        cache = ResponseCache(InMemoryStore(), clock=clock)
        await cache.set("items", [1, 2, 3], ttl_s=60)

        clock.advance(60)
        assert await cache.get("items") == [1, 2, 3]

        clock.advance(0.001)
        assert await cache.get("items") is None
        assert await cache.entries() == []

    run_async(scenario())


def test_lookup_keeps_expired_rows_for_fallback_reads():
    async def scenario() -> None:
        clock = FakeClock()
        cache = ResponseCache(InMemoryStore(), clock=clock)
        await cache.set("feed", ["a"], ttl_s=10)
        clock.advance(30)

        assert await cache.lookup("feed") is None
        stale = await cache.lookup("feed", include_stale=True)
        assert stale is not None
        assert stale.value == ["a"]
        assert cache.is_stale(stale) is True

        assert await cache.get("feed") is None
        assert await cache.lookup("feed", include_stale=True) is None

    run_async(scenario())


def test_default_ttl_comes_from_policy():
    async def scenario() -> None:
        clock = FakeClock()
        cache = ResponseCache(InMemoryStore(), policy=CachePolicy(ttl_s=10), clock=clock)
        await cache.set("k", {"a": 1})
        entry = await cache.lookup("k")
        assert entry is not None
        assert entry.created_at == 1000.0
        assert entry.expires_at == 1010.0

    run_async(scenario())


def test_high_usage_evicts_oldest_entries_first():
    async def scenario() -> None:
        value = "x" * 64
        size = await _entry_size(value)
        clock = FakeClock()
        store = InMemoryStore(quota_bytes=10 * size + 5)
        cache = ResponseCache(store, clock=clock)

        for i in range(9):
            await cache.set(f"k{i}", value)
            clock.advance(1)
        before = await cache.usage()
        assert before.percent < 90
        assert len(await cache.entries()) == 9

        await cache.set("k9", value)
        after = await cache.usage()
        keys = [entry.key for entry in await cache.entries()]
        assert "k0" not in keys
        assert "k9" in keys
        assert len(keys) == 9
        assert after.percent <= 90

    run_async(scenario())


def test_quota_rejection_evicts_and_retries_once():
    async def scenario() -> None:
        value = "y" * 64
        size = await _entry_size(value)
        clock = FakeClock()
        store = InMemoryStore(quota_bytes=3 * size)
        cache = ResponseCache(
            store,
            policy=CachePolicy(eviction_threshold_percent=100.0),
            clock=clock,
        )
        for i in range(3):
            await cache.set(f"k{i}", value)
            clock.advance(1)

        await cache.set("k3", value)
        keys = [entry.key for entry in await cache.entries()]
        assert keys == ["k1", "k2", "k3"]

    run_async(scenario())


def test_quota_error_propagates_when_entry_never_fits():
    async def scenario() -> None:
        cache = ResponseCache(InMemoryStore(quota_bytes=32), clock=FakeClock())
        with pytest.raises(QuotaExceededError):
            await cache.set("huge", "z" * 1024)

    run_async(scenario())


def test_same_key_last_write_wins():
    async def scenario() -> None:
        clock = FakeClock()
        cache = ResponseCache(InMemoryStore(), clock=clock)
        await cache.set("k", "first")
        clock.advance(1)
        await cache.set("k", "second")
        assert await cache.get("k") == "second"
        assert len(await cache.entries()) == 1

    run_async(scenario())


def test_clear_and_purge_expired():
    async def scenario() -> None:
        clock = FakeClock()
        store = InMemoryStore()
        cache = ResponseCache(store, clock=clock)
        await cache.set("short", 1, ttl_s=5)
        await cache.set("long", 2, ttl_s=500)
        await store.put("queue", "m1", {"method": "POST", "url": "https://x"})

        clock.advance(10)
        assert await cache.purge_expired() == 1
        assert [entry.key for entry in await cache.entries()] == ["long"]

        await cache.clear()
        assert await store.list_all(CACHE_NAMESPACE) == {}
        assert await store.get("queue", "m1") is not None

    run_async(scenario())


def test_malformed_rows_are_treated_as_misses():
    async def scenario() -> None:
        store = InMemoryStore()
        cache = ResponseCache(store, clock=FakeClock())
        await store.put(CACHE_NAMESPACE, "bad", {"value": 1})
        assert await cache.get("bad") is None
        assert await store.get(CACHE_NAMESPACE, "bad") is None

    run_async(scenario())
