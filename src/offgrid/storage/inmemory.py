"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: storage/inmemory.py.
"""

from __future__ import annotations

from ..types import JSONObject, StorageUsage
from .base import PersistentStore, check_quota, decode_value, encode_value, entry_size


class InMemoryStore(PersistentStore):
    """
    Process-local store suitable for development/test workloads.

    Rows are kept JSON-encoded so reads never alias caller objects. Data is
    lost on process restart.
    """

    backend_id = "inmemory"

    def __init__(self, *, quota_bytes: int = 0) -> None:
        self.quota_bytes = quota_bytes
        self._rows: dict[str, dict[str, str]] = {}
        self._sizes: dict[tuple[str, str], int] = {}
        self._used = 0

    async def init(self) -> None:
        return None

    async def dispose(self) -> None:
        return None

    async def get(self, namespace: str, key: str) -> JSONObject | None:
        raw = self._rows.get(namespace, {}).get(key)
        if raw is None:
            return None
        return decode_value(raw)

    async def put(self, namespace: str, key: str, value: JSONObject) -> None:
        encoded = encode_value(value)
        size = entry_size(namespace, key, encoded)
        previous = self._sizes.get((namespace, key), 0)
        check_quota(
            namespace,
            key,
            used=self._used,
            previous_size=previous,
            new_size=size,
            quota=self.quota_bytes,
        )
        self._rows.setdefault(namespace, {})[key] = encoded
        self._sizes[(namespace, key)] = size
        self._used += size - previous

    async def delete(self, namespace: str, key: str) -> None:
        rows = self._rows.get(namespace)
        if rows is None or rows.pop(key, None) is None:
            return
        self._used -= self._sizes.pop((namespace, key), 0)

    async def list_all(self, namespace: str) -> dict[str, JSONObject]:
        out: dict[str, JSONObject] = {}
        for key, raw in self._rows.get(namespace, {}).items():
            row = decode_value(raw)
            if row is not None:
                out[key] = row
        return out

    async def clear(self, namespace: str) -> None:
        for key in list(self._rows.get(namespace, {})):
            await self.delete(namespace, key)

    async def usage(self) -> StorageUsage:
        return StorageUsage(used=self._used, quota=self.quota_bytes)
