"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Connectivity snapshot types.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

NetworkQuality = Literal["excellent", "good", "fair", "poor", "offline"]
DataMode = Literal["high", "medium", "low"]
ConnectionType = Literal["4g", "3g", "2g", "slow-2g", "wifi", "unknown"]


@dataclass(frozen=True, slots=True)
class LinkHints:
    """
    Optional link characteristics reported by a connectivity source.

    Any field may be absent; quality derivation never fails on missing hints.
    """

    effective_type: ConnectionType = "unknown"
    downlink_mbps: float | None = None
    rtt_ms: float | None = None
    data_saver: bool = False


@dataclass(frozen=True, slots=True)
class NetworkSnapshot:
    """Point-in-time view of connectivity and link quality."""

    online: bool
    quality: NetworkQuality
    effective_type: ConnectionType = "unknown"
    downlink_mbps: float | None = None
    rtt_ms: float | None = None
    data_saver: bool = False

    @classmethod
    def offline(cls) -> "NetworkSnapshot":
        return cls(online=False, quality="offline")
