"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

TTL and space bounded cache of successful read responses.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
import time
from collections.abc import Callable, Mapping
from typing import Any

from ..errors import QuotaExceededError
from ..runtime.contracts import CachePolicy
from ..storage.base import CACHE_NAMESPACE, PersistentStore
from ..types import JSONValue, StorageUsage
from .base import CacheEntry

logger = logging.getLogger("offgrid.cache")


class ResponseCache:
    """
    Serve previously-seen read responses without a network round-trip.

    Entries expire lazily: ``get`` past ``expires_at`` deletes the row and
    reports a miss, while ``lookup`` leaves stale rows in place for the
    offline fallback until ``purge_expired`` or eviction. When store usage crosses the eviction threshold after a
    write, the oldest entries by insertion time are removed (FIFO, never LRU).
    """

    def __init__(
        self,
        store: PersistentStore,
        *,
        policy: CachePolicy | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._policy = policy or CachePolicy()
        self._clock = clock

    @property
    def policy(self) -> CachePolicy:
        return self._policy

    @staticmethod
    def key_for(base_url: str, path: str, params: Mapping[str, Any] | None = None) -> str:
        """Build deterministic cache key for (base URL, path, query parameters)."""
        payload = {
            "base_url": base_url.rstrip("/"),
            "path": path,
            "params": dict(params or {}),
        }
        normalized = json.dumps(payload, ensure_ascii=True, sort_keys=True, default=str)
        return hashlib.sha256(normalized.encode("utf-8")).hexdigest()

    async def lookup(self, key: str, *, include_stale: bool = False) -> CacheEntry | None:
        """
        Return the entry for `key` without deleting it.

        Expired entries are skipped unless `include_stale` is set; the read
        path uses that to fall back to a last known value when the network
        fails.
        """
        row = await self._store.get(CACHE_NAMESPACE, key)
        if row is None:
            return None
        entry = CacheEntry.from_row(key, row)
        if entry is None:
            await self._store.delete(CACHE_NAMESPACE, key)
            return None
        if not include_stale and entry.is_expired(self._clock()):
            return None
        return entry

    async def get(self, key: str) -> JSONValue | None:
        """Return the cached value for `key`, or `None` when absent or expired (stale row deleted)."""
        entry = await self.lookup(key, include_stale=True)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            await self._store.delete(CACHE_NAMESPACE, key)
            return None
        return entry.value

    def is_stale(self, entry: CacheEntry) -> bool:
        return entry.is_expired(self._clock())

    async def set(self, key: str, value: JSONValue, *, ttl_s: float | None = None) -> None:
        """
        Upsert one entry and evict the oldest entries when usage runs high.

        Raises:
            QuotaExceededError: The store still rejects the write after one
                eviction round.
        """
        now = self._clock()
        ttl = self._policy.ttl_s if ttl_s is None else ttl_s
        entry = CacheEntry(key=key, value=value, created_at=now, expires_at=now + ttl)
        try:
            await self._store.put(CACHE_NAMESPACE, key, entry.to_row())
        except QuotaExceededError:
            removed = await self.evict_oldest()
            logger.info("Cache write hit quota; evicted %d entries before retrying", removed)
            await self._store.put(CACHE_NAMESPACE, key, entry.to_row())

        usage = await self._store.usage()
        if usage.percent > self._policy.eviction_threshold_percent:
            await self.evict_oldest()

    async def delete(self, key: str) -> None:
        await self._store.delete(CACHE_NAMESPACE, key)

    async def clear(self) -> None:
        """Drop every cached response ("clear offline data")."""
        await self._store.clear(CACHE_NAMESPACE)
        logger.info("Response cache cleared")

    async def usage(self) -> StorageUsage:
        return await self._store.usage()

    async def entries(self) -> list[CacheEntry]:
        """Return all stored entries ordered oldest first, including stale ones."""
        rows = await self._store.list_all(CACHE_NAMESPACE)
        out = [
            entry
            for entry in (CacheEntry.from_row(key, row) for key, row in rows.items())
            if entry is not None
        ]
        out.sort(key=lambda item: (item.created_at, item.key))
        return out

    async def evict_oldest(self) -> int:
        """Remove the oldest share of entries by creation time; return how many."""
        entries = await self.entries()
        if not entries:
            return 0
        count = max(1, math.ceil(len(entries) * self._policy.eviction_fraction))
        for entry in entries[:count]:
            await self._store.delete(CACHE_NAMESPACE, entry.key)
        logger.info("Evicted %d of %d cache entries (FIFO)", count, len(entries))
        return count

    async def purge_expired(self) -> int:
        """Delete every expired entry; return how many were removed."""
        now = self._clock()
        removed = 0
        for entry in await self.entries():
            if entry.is_expired(now):
                await self._store.delete(CACHE_NAMESPACE, entry.key)
                removed += 1
        return removed
