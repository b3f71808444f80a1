"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Persistent key/value store protocol shared by the response cache and mutation queue.
"""

from __future__ import annotations

import json
from typing import Protocol, runtime_checkable

from ..errors import QuotaExceededError
from ..types import JSONObject, StorageUsage

CACHE_NAMESPACE = "cache"
QUEUE_NAMESPACE = "queue"


@runtime_checkable
class PersistentStore(Protocol):
    """
    Namespaced async key/value store with a storage-usage estimate.

    Values are JSON-safe mappings. Implementations reject a write that would
    push usage above the configured quota with `QuotaExceededError`.
    """

    backend_id: str

    async def init(self) -> None: ...

    async def dispose(self) -> None: ...

    async def get(self, namespace: str, key: str) -> JSONObject | None: ...

    async def put(self, namespace: str, key: str, value: JSONObject) -> None: ...

    async def delete(self, namespace: str, key: str) -> None: ...

    async def list_all(self, namespace: str) -> dict[str, JSONObject]: ...

    async def clear(self, namespace: str) -> None: ...

    async def usage(self) -> StorageUsage: ...


def encode_value(value: JSONObject) -> str:
    """Serialize one stored value as compact JSON."""
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)


def decode_value(raw: str | bytes) -> JSONObject | None:
    """Deserialize one stored value; unreadable rows decode to `None`."""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    try:
        row = json.loads(raw)
    except ValueError:
        return None
    return row if isinstance(row, dict) else None


def entry_size(namespace: str, key: str, encoded: str) -> int:
    """Approximate on-disk footprint of one entry in bytes."""
    return len(namespace) + len(key.encode("utf-8")) + len(encoded.encode("utf-8"))


def check_quota(
    namespace: str,
    key: str,
    *,
    used: int,
    previous_size: int,
    new_size: int,
    quota: int,
) -> None:
    """
    Raise `QuotaExceededError` when replacing `previous_size` by `new_size` overflows.

    A quota of zero or less disables enforcement.
    """
    if quota <= 0:
        return
    projected = used - previous_size + new_size
    if projected > quota:
        raise QuotaExceededError(namespace, key, used=used, quota=quota)
