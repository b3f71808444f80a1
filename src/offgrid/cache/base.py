"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: cache/base.py.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..types import JSONObject, JSONValue


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """One cached read response with creation and expiration metadata."""

    key: str
    value: JSONValue
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at

    def to_row(self) -> JSONObject:
        return {
            "value": self.value,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_row(cls, key: str, row: JSONObject) -> "CacheEntry | None":
        """Rebuild one entry from its stored row; malformed rows yield `None`."""
        created_at = row.get("created_at")
        expires_at = row.get("expires_at")
        if not isinstance(created_at, (int, float)) or not isinstance(expires_at, (int, float)):
            return None
        return cls(
            key=key,
            value=row.get("value"),
            created_at=float(created_at),
            expires_at=float(expires_at),
        )
