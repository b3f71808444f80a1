"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Network monitor: connectivity snapshots, subscriptions and adaptive hints.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from .sources import ConnectivitySource
from .types import DataMode, LinkHints, NetworkQuality, NetworkSnapshot

logger = logging.getLogger("offgrid.network.monitor")

SnapshotListener = Callable[[NetworkSnapshot], None]
ReconnectHook = Callable[[], Awaitable[object]]

_TIMEOUT_MS_BY_QUALITY: dict[str, int] = {
    "excellent": 10_000,
    "good": 20_000,
    "fair": 30_000,
    "poor": 45_000,
    "offline": 5_000,
}
_DEFAULT_TIMEOUT_MS = 30_000


def derive_quality(hints: LinkHints) -> NetworkQuality:
    """Map link hints to a quality bucket; RTT alone is enough, unknown links default to ``good``."""
    effective = hints.effective_type
    if effective in ("4g", "wifi"):
        return "excellent"
    if effective == "3g":
        return "good"
    if effective == "2g":
        return "fair"
    if effective == "slow-2g":
        return "poor"

    downlink, rtt = hints.downlink_mbps, hints.rtt_ms
    if downlink is not None and rtt is not None:
        if downlink >= 5 and rtt < 100:
            return "excellent"
        if downlink >= 1.5 and rtt < 300:
            return "good"
        if downlink >= 0.5 and rtt < 600:
            return "fair"
        return "poor"
    if rtt is not None:
        if rtt < 100:
            return "excellent"
        if rtt < 300:
            return "good"
        if rtt < 600:
            return "fair"
        return "poor"
    return "good"


def derive_snapshot(online: bool, hints: LinkHints) -> NetworkSnapshot:
    if not online:
        return NetworkSnapshot.offline()
    return NetworkSnapshot(
        online=True,
        quality=derive_quality(hints),
        effective_type=hints.effective_type,
        downlink_mbps=hints.downlink_mbps,
        rtt_ms=hints.rtt_ms,
        data_saver=hints.data_saver,
    )


class NetworkMonitor:
    """
    Report whether the network is reachable and how good the link is.

    Snapshots are recomputed whenever the source signals a change and on a
    periodic timer. Subscribers are told about online/offline and quality
    transitions; reconnect hooks run in the background on every
    offline -> online transition.
    """

    def __init__(self, source: ConnectivitySource, *, check_interval_s: float = 30.0) -> None:
        if check_interval_s <= 0:
            raise ValueError("check_interval_s must be > 0")
        self._source = source
        self._check_interval_s = check_interval_s
        self._listeners: list[SnapshotListener] = []
        self._reconnect_hooks: list[ReconnectHook] = []
        self._hook_tasks: set[asyncio.Task[None]] = set()
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._last = self.current_snapshot()

    @property
    def source(self) -> ConnectivitySource:
        return self._source

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Attach to the source and start periodic quality checks."""
        if self._running:
            return
        self._running = True
        self._source.add_listener(self._handle_source_change)
        self._last = self.current_snapshot()
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "NetworkMonitor started (online=%s, quality=%s, interval=%.1fs)",
            self._last.online,
            self._last.quality,
            self._check_interval_s,
        )

    async def dispose(self) -> None:
        """Detach from the source and cancel background work."""
        self._running = False
        self._source.remove_listener(self._handle_source_change)
        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        pending = [task for task in self._hook_tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._hook_tasks.clear()
        self._listeners.clear()
        aclose = getattr(self._source, "aclose", None)
        if aclose is not None:
            await aclose()
        logger.info("NetworkMonitor disposed")

    def current_snapshot(self) -> NetworkSnapshot:
        return derive_snapshot(self._source.is_online(), self._source.link_hints())

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """
        Register a snapshot listener.

        The listener is called immediately with the current snapshot, then on
        every transition. Returns the unsubscribe callable.
        """
        self._listeners.append(listener)
        self._call_listener(listener, self.current_snapshot())

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def on_reconnect(self, hook: ReconnectHook) -> Callable[[], None]:
        """Register a coroutine function run on each offline -> online transition."""
        self._reconnect_hooks.append(hook)

        def _unsubscribe() -> None:
            if hook in self._reconnect_hooks:
                self._reconnect_hooks.remove(hook)

        return _unsubscribe

    def recommended_timeout_ms(self) -> int:
        quality = self.current_snapshot().quality
        return _TIMEOUT_MS_BY_QUALITY.get(quality, _DEFAULT_TIMEOUT_MS)

    def recommended_timeout_s(self) -> float:
        return self.recommended_timeout_ms() / 1000.0

    def recommended_data_mode(self) -> DataMode:
        snapshot = self.current_snapshot()
        if not snapshot.online or snapshot.quality == "poor":
            return "low"
        if snapshot.quality == "fair" or snapshot.data_saver:
            return "medium"
        return "high"

    def is_suitable_for_heavy_operations(self) -> bool:
        snapshot = self.current_snapshot()
        return snapshot.online and snapshot.quality in ("excellent", "good")

    def should_enable_low_bandwidth_mode(self) -> bool:
        snapshot = self.current_snapshot()
        return (
            not snapshot.online
            or snapshot.quality in ("poor", "fair")
            or snapshot.data_saver
        )

    async def check_now(self) -> NetworkSnapshot:
        """Refresh the source and evaluate transitions immediately."""
        refresh = getattr(self._source, "refresh", None)
        if refresh is not None:
            await refresh()
        self._evaluate()
        return self._last

    def _handle_source_change(self) -> None:
        self._evaluate()

    def _evaluate(self) -> None:
        previous = self._last
        current = self.current_snapshot()
        self._last = current
        if previous.online == current.online and previous.quality == current.quality:
            return

        logger.info(
            "Network transition: online=%s quality=%s -> online=%s quality=%s",
            previous.online,
            previous.quality,
            current.online,
            current.quality,
        )
        for listener in list(self._listeners):
            self._call_listener(listener, current)
        if current.online and not previous.online:
            self._run_reconnect_hooks()

    def _call_listener(self, listener: SnapshotListener, snapshot: NetworkSnapshot) -> None:
        try:
            listener(snapshot)
        except Exception:  # noqa: BLE001
            logger.exception("Network listener failed")

    def _run_reconnect_hooks(self) -> None:
        for hook in list(self._reconnect_hooks):
            try:
                task = asyncio.get_running_loop().create_task(self._run_hook(hook))
            except RuntimeError:
                logger.warning("Reconnect hook skipped: no running event loop")
                return
            self._hook_tasks.add(task)
            task.add_done_callback(self._hook_tasks.discard)

    async def _run_hook(self, hook: ReconnectHook) -> None:
        try:
            await hook()
        except asyncio.CancelledError:
            raise
        except Exception:  # noqa: BLE001
            logger.exception("Reconnect hook failed")

    async def _loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self._check_interval_s)
                await self.check_now()
            except asyncio.CancelledError:
                break
            except Exception:  # noqa: BLE001
                logger.exception("Network quality check failed")
