"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

SQLite-backed persistent store that survives process restarts.
"""

from __future__ import annotations

import asyncio
import logging

import aiosqlite

from ..errors import StoreError
from ..types import JSONObject, StorageUsage
from .base import PersistentStore, check_quota, decode_value, encode_value, entry_size

logger = logging.getLogger("offgrid.storage.sqlite")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS offgrid_kv (
    namespace TEXT NOT NULL,
    key TEXT NOT NULL,
    value TEXT NOT NULL,
    size INTEGER NOT NULL,
    PRIMARY KEY (namespace, key)
)
"""


class SQLiteStore(PersistentStore):
    """
    Persistent store using one SQLite table keyed by ``(namespace, key)``.

    Requires ``aiosqlite``. Writes are serialized through an asyncio lock so
    the quota check and the upsert observe the same usage figure.

    Args:
        path: Database file path (``":memory:"`` for tests).
        quota_bytes: Maximum summed entry size; ``0`` disables the quota.
    """

    backend_id = "sqlite"

    def __init__(self, path: str, *, quota_bytes: int = 0) -> None:
        self.path = path
        self.quota_bytes = quota_bytes
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def init(self) -> None:
        """Open the connection and create the table when missing."""
        if self._conn is not None:
            return
        try:
            conn = await aiosqlite.connect(self.path)
            await conn.execute("PRAGMA journal_mode=WAL")
            await conn.execute("PRAGMA synchronous=NORMAL")
            await conn.execute(_SCHEMA)
            await conn.commit()
        except aiosqlite.Error as exc:
            raise StoreError(f"Failed to open SQLite store at '{self.path}': {exc}") from exc
        self._conn = conn
        logger.info("SQLite store opened (path=%s)", self.path)

    async def dispose(self) -> None:
        """Close the connection."""
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        await conn.close()

    async def _db(self) -> aiosqlite.Connection:
        if self._conn is None:
            await self.init()
        assert self._conn is not None
        return self._conn

    async def get(self, namespace: str, key: str) -> JSONObject | None:
        db = await self._db()
        try:
            async with db.execute(
                "SELECT value FROM offgrid_kv WHERE namespace = ? AND key = ?",
                (namespace, key),
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StoreError(f"SQLite read failed for {namespace}:{key}: {exc}") from exc
        if row is None:
            return None
        return decode_value(row[0])

    async def put(self, namespace: str, key: str, value: JSONObject) -> None:
        db = await self._db()
        encoded = encode_value(value)
        size = entry_size(namespace, key, encoded)
        async with self._write_lock:
            try:
                async with db.execute(
                    "SELECT size FROM offgrid_kv WHERE namespace = ? AND key = ?",
                    (namespace, key),
                ) as cursor:
                    row = await cursor.fetchone()
                previous = int(row[0]) if row is not None else 0
                used = await self._used(db)
                check_quota(
                    namespace,
                    key,
                    used=used,
                    previous_size=previous,
                    new_size=size,
                    quota=self.quota_bytes,
                )
                await db.execute(
                    "INSERT OR REPLACE INTO offgrid_kv (namespace, key, value, size) "
                    "VALUES (?, ?, ?, ?)",
                    (namespace, key, encoded, size),
                )
                await db.commit()
            except aiosqlite.Error as exc:
                raise StoreError(f"SQLite write failed for {namespace}:{key}: {exc}") from exc

    async def delete(self, namespace: str, key: str) -> None:
        db = await self._db()
        async with self._write_lock:
            try:
                await db.execute(
                    "DELETE FROM offgrid_kv WHERE namespace = ? AND key = ?",
                    (namespace, key),
                )
                await db.commit()
            except aiosqlite.Error as exc:
                raise StoreError(f"SQLite delete failed for {namespace}:{key}: {exc}") from exc

    async def list_all(self, namespace: str) -> dict[str, JSONObject]:
        db = await self._db()
        out: dict[str, JSONObject] = {}
        try:
            async with db.execute(
                "SELECT key, value FROM offgrid_kv WHERE namespace = ?",
                (namespace,),
            ) as cursor:
                async for key, raw in cursor:
                    row = decode_value(raw)
                    if row is not None:
                        out[key] = row
        except aiosqlite.Error as exc:
            raise StoreError(f"SQLite scan failed for namespace {namespace}: {exc}") from exc
        return out

    async def clear(self, namespace: str) -> None:
        db = await self._db()
        async with self._write_lock:
            try:
                await db.execute("DELETE FROM offgrid_kv WHERE namespace = ?", (namespace,))
                await db.commit()
            except aiosqlite.Error as exc:
                raise StoreError(f"SQLite clear failed for namespace {namespace}: {exc}") from exc

    async def usage(self) -> StorageUsage:
        db = await self._db()
        try:
            used = await self._used(db)
        except aiosqlite.Error as exc:
            raise StoreError(f"SQLite usage query failed: {exc}") from exc
        return StorageUsage(used=used, quota=self.quota_bytes)

    async def _used(self, db: aiosqlite.Connection) -> int:
        async with db.execute("SELECT COALESCE(SUM(size), 0) FROM offgrid_kv") as cursor:
            row = await cursor.fetchone()
        return int(row[0]) if row is not None else 0
