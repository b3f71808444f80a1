"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Connectivity sources feeding the network monitor.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Protocol, runtime_checkable

import httpx

from .types import ConnectionType, LinkHints

logger = logging.getLogger("offgrid.network.sources")

ConnectivityListener = Callable[[], None]


@runtime_checkable
class ConnectivitySource(Protocol):
    """
    Platform signal for "online/offline" plus optional link hints.

    Sources call registered listeners (synchronously, without arguments)
    whenever their state changes; the monitor then re-reads them.
    """

    def is_online(self) -> bool:
        """Return current reachability."""
        ...

    def link_hints(self) -> LinkHints:
        """Return current link hints; fields may be absent."""
        ...

    def add_listener(self, listener: ConnectivityListener) -> None:
        """Register a change listener."""
        ...

    def remove_listener(self, listener: ConnectivityListener) -> None:
        """Remove a change listener."""
        ...

    async def refresh(self) -> None:
        """Re-measure the link; called on every periodic monitor tick."""
        ...


class _ListenerMixin:
    def __init__(self) -> None:
        self._listeners: list[ConnectivityListener] = []

    def add_listener(self, listener: ConnectivityListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: ConnectivityListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:  # noqa: BLE001
                logger.exception("Connectivity listener failed")


class ManualConnectivity(_ListenerMixin):
    """Source whose state is pushed by the embedding application."""

    def __init__(self, *, online: bool = True, hints: LinkHints | None = None) -> None:
        super().__init__()
        self._online = online
        self._hints = hints or LinkHints()

    def is_online(self) -> bool:
        return self._online

    def link_hints(self) -> LinkHints:
        return self._hints

    def set_online(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        self._notify()

    def set_link(
        self,
        *,
        effective_type: ConnectionType = "unknown",
        downlink_mbps: float | None = None,
        rtt_ms: float | None = None,
        data_saver: bool = False,
    ) -> None:
        hints = LinkHints(
            effective_type=effective_type,
            downlink_mbps=downlink_mbps,
            rtt_ms=rtt_ms,
            data_saver=data_saver,
        )
        if hints == self._hints:
            return
        self._hints = hints
        self._notify()

    async def refresh(self) -> None:
        return None


class HttpProbeConnectivity(_ListenerMixin):
    """
    Source that probes a health URL with ``httpx`` on every refresh.

    Any HTTP response counts as reachable; a transport failure or timeout
    counts as offline. The measured round-trip time becomes the ``rtt_ms``
    hint, which lets the monitor derive link quality.
    """

    def __init__(
        self,
        probe_url: str,
        *,
        timeout_s: float = 5.0,
        client: httpx.AsyncClient | None = None,
        online: bool = True,
    ) -> None:
        super().__init__()
        self.probe_url = probe_url
        self._timeout_s = timeout_s
        self._client = client
        self._owns_client = client is None
        self._online = online
        self._hints = LinkHints()

    def is_online(self) -> bool:
        return self._online

    def link_hints(self) -> LinkHints:
        return self._hints

    async def refresh(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout_s)
        started = time.perf_counter()
        try:
            await self._client.head(self.probe_url, timeout=self._timeout_s)
        except httpx.HTTPError as exc:
            logger.debug("Connectivity probe to %s failed: %s", self.probe_url, exc)
            online, hints = False, LinkHints()
        else:
            rtt_ms = (time.perf_counter() - started) * 1000.0
            online, hints = True, LinkHints(rtt_ms=rtt_ms)

        changed = online != self._online
        self._online = online
        self._hints = hints
        if changed:
            self._notify()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
