"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Persistent key/value stores backing the response cache and the mutation queue.
"""

from .base import CACHE_NAMESPACE, QUEUE_NAMESPACE, PersistentStore
from .factory import create_store_from_env
from .inmemory import InMemoryStore

__all__ = [
    "PersistentStore",
    "CACHE_NAMESPACE",
    "QUEUE_NAMESPACE",
    "InMemoryStore",
    "SQLiteStore",
    "RedisStore",
    "create_store_from_env",
]


def __getattr__(name: str):
    """Lazily expose optional store backends that require extra dependencies."""
    if name == "SQLiteStore":
        from .sqlite import SQLiteStore

        return SQLiteStore
    if name == "RedisStore":
        from .redis import RedisStore

        return RedisStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
