from __future__ import annotations

import asyncio
import os
import uuid

import pytest

from offgrid.errors import QuotaExceededError
from offgrid.storage import (
    CACHE_NAMESPACE,
    QUEUE_NAMESPACE,
    InMemoryStore,
    PersistentStore,
    SQLiteStore,
    create_store_from_env,
)


def run_async(coro):
    return asyncio.run(coro)


def _redis_url() -> str | None:
    return os.getenv("OFFGRID_TEST_REDIS_URL")


async def _exercise_contract(store: PersistentStore) -> None:
    await store.init()
    try:
        assert await store.get(CACHE_NAMESPACE, "missing") is None

        await store.put(CACHE_NAMESPACE, "a", {"value": [1, 2], "created_at": 1.0, "expires_at": 2.0})
        await store.put(QUEUE_NAMESPACE, "a", {"method": "POST", "url": "https://x/a"})
        assert await store.get(CACHE_NAMESPACE, "a") == {"value": [1, 2], "created_at": 1.0, "expires_at": 2.0}
        assert await store.get(QUEUE_NAMESPACE, "a") == {"method": "POST", "url": "https://x/a"}

        used_before = (await store.usage()).used
        assert used_before > 0
        await store.put(CACHE_NAMESPACE, "a", {"value": "replaced"})
        assert await store.get(CACHE_NAMESPACE, "a") == {"value": "replaced"}
        assert set((await store.list_all(CACHE_NAMESPACE)).keys()) == {"a"}

        await store.delete(CACHE_NAMESPACE, "a")
        await store.delete(CACHE_NAMESPACE, "a")
        assert await store.get(CACHE_NAMESPACE, "a") is None

        await store.put(CACHE_NAMESPACE, "b", {"value": 1})
        await store.clear(CACHE_NAMESPACE)
        assert await store.list_all(CACHE_NAMESPACE) == {}
        assert list((await store.list_all(QUEUE_NAMESPACE)).keys()) == ["a"]

        await store.delete(QUEUE_NAMESPACE, "a")
        assert (await store.usage()).used == 0
    finally:
        await store.dispose()


async def _exercise_quota(store: PersistentStore) -> None:
    await store.init()
    try:
        await store.put(CACHE_NAMESPACE, "small", {"v": "x"})
        with pytest.raises(QuotaExceededError) as exc_info:
            await store.put(CACHE_NAMESPACE, "big", {"v": "x" * 500})
        assert exc_info.value.namespace == CACHE_NAMESPACE
        assert await store.get(CACHE_NAMESPACE, "big") is None
        usage = await store.usage()
        assert usage.quota == 128
        assert 0 < usage.percent < 100
    finally:
        await store.dispose()


def test_inmemory_store_contract():
    run_async(_exercise_contract(InMemoryStore()))


def test_inmemory_store_quota():
    run_async(_exercise_quota(InMemoryStore(quota_bytes=128)))


def test_sqlite_store_contract(tmp_path):
    run_async(_exercise_contract(SQLiteStore(str(tmp_path / "offgrid.sqlite3"))))


def test_sqlite_store_quota(tmp_path):
    run_async(_exercise_quota(SQLiteStore(str(tmp_path / "quota.sqlite3"), quota_bytes=128)))


def test_sqlite_store_persists_across_connections(tmp_path):
    async def scenario() -> None:
        path = str(tmp_path / "durable.sqlite3")
        first = SQLiteStore(path)
        await first.init()
        await first.put(QUEUE_NAMESPACE, "m1", {"method": "POST", "url": "https://x/chat"})
        await first.dispose()

        second = SQLiteStore(path)
        await second.init()
        try:
            assert await second.get(QUEUE_NAMESPACE, "m1") == {"method": "POST", "url": "https://x/chat"}
        finally:
            await second.dispose()

    run_async(scenario())


def test_stores_satisfy_protocol(tmp_path):
    assert isinstance(InMemoryStore(), PersistentStore)
    assert isinstance(SQLiteStore(str(tmp_path / "p.sqlite3")), PersistentStore)


def test_factory_defaults_to_inmemory(monkeypatch):
    monkeypatch.delenv("OFFGRID_STORE_BACKEND", raising=False)
    monkeypatch.setenv("OFFGRID_STORE_QUOTA_BYTES", "2048")
    store = create_store_from_env()
    assert isinstance(store, InMemoryStore)
    assert store.quota_bytes == 2048


def test_factory_builds_sqlite(monkeypatch, tmp_path):
    path = str(tmp_path / "env.sqlite3")
    monkeypatch.setenv("OFFGRID_STORE_BACKEND", "sqlite")
    monkeypatch.setenv("OFFGRID_SQLITE_PATH", path)
    store = create_store_from_env()
    assert isinstance(store, SQLiteStore)
    assert store.path == path


def test_factory_builds_redis_with_injected_client(monkeypatch):
    pytest.importorskip("redis.asyncio")
    from offgrid.storage import RedisStore

    monkeypatch.setenv("OFFGRID_STORE_BACKEND", "redis")
    monkeypatch.setenv("OFFGRID_STORE_REDIS_PREFIX", "unit")
    store = create_store_from_env(redis_client=object())
    assert isinstance(store, RedisStore)


def test_factory_rejects_unknown_backend(monkeypatch):
    monkeypatch.setenv("OFFGRID_STORE_BACKEND", "floppy")
    with pytest.raises(ValueError, match="Unknown OFFGRID_STORE_BACKEND"):
        create_store_from_env()


@pytest.mark.skipif(_redis_url() is None, reason="OFFGRID_TEST_REDIS_URL is not set")
@pytest.mark.asyncio
async def test_redis_store_contract_with_real_redis():
    redis = pytest.importorskip("redis.asyncio")
    from offgrid.storage import RedisStore

    client = redis.Redis.from_url(_redis_url())
    store = RedisStore(client, prefix=f"itest:offgrid:{uuid.uuid4().hex}")
    await _exercise_contract(store)


@pytest.mark.skipif(_redis_url() is None, reason="OFFGRID_TEST_REDIS_URL is not set")
@pytest.mark.asyncio
async def test_redis_store_quota_with_real_redis():
    redis = pytest.importorskip("redis.asyncio")
    from offgrid.storage import RedisStore

    client = redis.Redis.from_url(_redis_url())
    store = RedisStore(client, prefix=f"itest:offgrid:{uuid.uuid4().hex}", quota_bytes=128)
    await _exercise_quota(store)
