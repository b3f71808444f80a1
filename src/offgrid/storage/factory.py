"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Factory helpers for selecting persistent store backends from environment variables.
"""

from __future__ import annotations

import os
from typing import Any

from .base import PersistentStore
from .inmemory import InMemoryStore


def _env_first(*names: str, default: str | None = None) -> str | None:
    """
    Return the first non-empty environment variable in `names`.

    Args:
        *names: Environment variable names to check in order.
        default: Value returned if no non-empty variable is found.
    """
    for name in names:
        raw = os.getenv(name)
        if raw is None:
            continue
        value = raw.strip()
        if value:
            return value
    return default


def create_store_from_env(*, redis_client: Any | None = None) -> PersistentStore:
    """
    Create a persistent store backend from `OFFGRID_STORE_*` environment variables.

    Backends:
    - `inmemory` (default)
    - `sqlite` (`OFFGRID_SQLITE_PATH`, default `offgrid.sqlite3`)
    - `redis`

    Redis resolution:
    - Uses the provided `redis_client` when supplied.
    - Otherwise builds a client from `OFFGRID_STORE_REDIS_URL` (or `OFFGRID_REDIS_URL`).
    - If no URL is set, falls back to host/port/db/password variables.
    """
    backend = os.getenv("OFFGRID_STORE_BACKEND", "inmemory").strip().lower()
    quota = int(_env_first("OFFGRID_STORE_QUOTA_BYTES", default="0") or "0")

    if backend in ("mem", "memory", "inmemory", "in_memory"):
        return InMemoryStore(quota_bytes=quota)

    if backend in ("sqlite", "sqlite3"):
        from .sqlite import SQLiteStore

        path = _env_first("OFFGRID_SQLITE_PATH", default="offgrid.sqlite3") or "offgrid.sqlite3"
        return SQLiteStore(path, quota_bytes=quota)

    if backend in ("redis",):
        from .redis import RedisStore

        prefix = _env_first("OFFGRID_STORE_REDIS_PREFIX", default="offgrid") or "offgrid"

        client = redis_client
        if client is None:
            try:
                import redis.asyncio as redis
            except ModuleNotFoundError as exc:  # pragma: no cover
                raise RuntimeError(
                    "Redis store backend requires `redis` to be installed."
                ) from exc

            url = _env_first("OFFGRID_STORE_REDIS_URL", "OFFGRID_REDIS_URL")
            if not url:
                host = (
                    _env_first(
                        "OFFGRID_STORE_REDIS_HOST", "OFFGRID_REDIS_HOST", default="localhost"
                    )
                    or "localhost"
                )
                port = (
                    _env_first("OFFGRID_STORE_REDIS_PORT", "OFFGRID_REDIS_PORT", default="6379")
                    or "6379"
                )
                db = (
                    _env_first("OFFGRID_STORE_REDIS_DB", "OFFGRID_REDIS_DB", default="0") or "0"
                )
                password = (
                    _env_first(
                        "OFFGRID_STORE_REDIS_PASSWORD", "OFFGRID_REDIS_PASSWORD", default=""
                    )
                    or ""
                )
                if password:
                    url = f"redis://:{password}@{host}:{port}/{db}"
                else:
                    url = f"redis://{host}:{port}/{db}"

            client = redis.Redis.from_url(url)

        return RedisStore(client, prefix=prefix, quota_bytes=quota)

    raise ValueError(f"Unknown OFFGRID_STORE_BACKEND: {backend}")
