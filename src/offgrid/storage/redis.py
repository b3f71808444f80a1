"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Redis-backed persistent store for shared or long-lived deployments.
"""

from __future__ import annotations

import asyncio
from typing import Any

from redis.exceptions import RedisError

from ..errors import StoreError
from ..types import JSONObject, StorageUsage
from .base import PersistentStore, check_quota, decode_value, encode_value, entry_size


class RedisStore(PersistentStore):
    """
    Persistent store using Redis hashes.

    Uses:
    - Redis hash (``{prefix}:ns:{namespace}``) for the serialized rows
    - Redis hash (``{prefix}:sizes``) for per-entry sizes feeding ``usage()``

    Requires ``redis.asyncio`` (``pip install redis``).

    Args:
        redis: An ``redis.asyncio.Redis`` client instance.
        prefix: Key prefix for namespacing.
        quota_bytes: Maximum summed entry size; ``0`` disables the quota.
    """

    backend_id = "redis"

    def __init__(self, redis: Any, *, prefix: str = "offgrid", quota_bytes: int = 0) -> None:
        self._redis = redis
        self._prefix = prefix
        self.quota_bytes = quota_bytes
        self._write_lock = asyncio.Lock()

    def _rows_key(self, namespace: str) -> str:
        """Redis hash key storing serialized rows of one namespace."""
        return f"{self._prefix}:ns:{namespace}"

    def _sizes_key(self) -> str:
        """Redis hash key storing entry sizes."""
        return f"{self._prefix}:sizes"

    @staticmethod
    def _size_field(namespace: str, key: str) -> str:
        return f"{namespace}\x1f{key}"

    async def init(self) -> None:
        try:
            await self._redis.ping()
        except RedisError as exc:
            raise StoreError(f"Redis store unreachable: {exc}") from exc

    async def dispose(self) -> None:
        await self._redis.aclose()

    async def get(self, namespace: str, key: str) -> JSONObject | None:
        try:
            raw = await self._redis.hget(self._rows_key(namespace), key)
        except RedisError as exc:
            raise StoreError(f"Redis read failed for {namespace}:{key}: {exc}") from exc
        if raw is None:
            return None
        return decode_value(raw)

    async def put(self, namespace: str, key: str, value: JSONObject) -> None:
        encoded = encode_value(value)
        size = entry_size(namespace, key, encoded)
        async with self._write_lock:
            try:
                previous_raw = await self._redis.hget(
                    self._sizes_key(), self._size_field(namespace, key)
                )
                previous = int(previous_raw) if previous_raw is not None else 0
                used = await self._used()
                check_quota(
                    namespace,
                    key,
                    used=used,
                    previous_size=previous,
                    new_size=size,
                    quota=self.quota_bytes,
                )
                pipe = self._redis.pipeline(transaction=True)
                pipe.hset(self._rows_key(namespace), key, encoded)
                pipe.hset(self._sizes_key(), self._size_field(namespace, key), size)
                await pipe.execute()
            except RedisError as exc:
                raise StoreError(f"Redis write failed for {namespace}:{key}: {exc}") from exc

    async def delete(self, namespace: str, key: str) -> None:
        async with self._write_lock:
            try:
                pipe = self._redis.pipeline(transaction=True)
                pipe.hdel(self._rows_key(namespace), key)
                pipe.hdel(self._sizes_key(), self._size_field(namespace, key))
                await pipe.execute()
            except RedisError as exc:
                raise StoreError(f"Redis delete failed for {namespace}:{key}: {exc}") from exc

    async def list_all(self, namespace: str) -> dict[str, JSONObject]:
        try:
            rows = await self._redis.hgetall(self._rows_key(namespace))
        except RedisError as exc:
            raise StoreError(f"Redis scan failed for namespace {namespace}: {exc}") from exc
        out: dict[str, JSONObject] = {}
        for raw_key, raw in rows.items():
            key = raw_key.decode("utf-8") if isinstance(raw_key, bytes) else raw_key
            row = decode_value(raw)
            if row is not None:
                out[key] = row
        return out

    async def clear(self, namespace: str) -> None:
        async with self._write_lock:
            try:
                keys = await self._redis.hkeys(self._rows_key(namespace))
                pipe = self._redis.pipeline(transaction=True)
                pipe.delete(self._rows_key(namespace))
                for raw_key in keys:
                    key = raw_key.decode("utf-8") if isinstance(raw_key, bytes) else raw_key
                    pipe.hdel(self._sizes_key(), self._size_field(namespace, key))
                await pipe.execute()
            except RedisError as exc:
                raise StoreError(f"Redis clear failed for namespace {namespace}: {exc}") from exc

    async def usage(self) -> StorageUsage:
        try:
            used = await self._used()
        except RedisError as exc:
            raise StoreError(f"Redis usage query failed: {exc}") from exc
        return StorageUsage(used=used, quota=self.quota_bytes)

    async def _used(self) -> int:
        sizes = await self._redis.hvals(self._sizes_key())
        return sum(int(v) for v in sizes)
