"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: network/__init__.py.
"""

from .monitor import NetworkMonitor, ReconnectHook, SnapshotListener, derive_quality, derive_snapshot
from .sources import ConnectivitySource, HttpProbeConnectivity, ManualConnectivity
from .types import ConnectionType, DataMode, LinkHints, NetworkQuality, NetworkSnapshot

__all__ = [
    "ConnectionType",
    "ConnectivitySource",
    "DataMode",
    "HttpProbeConnectivity",
    "LinkHints",
    "ManualConnectivity",
    "NetworkMonitor",
    "NetworkQuality",
    "NetworkSnapshot",
    "ReconnectHook",
    "SnapshotListener",
    "derive_quality",
    "derive_snapshot",
]
