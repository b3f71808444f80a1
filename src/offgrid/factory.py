"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Factory wiring a full orchestrator stack from settings.
"""

from __future__ import annotations

from typing import Any

from .auth import CredentialProvider
from .cache import ResponseCache
from .network import ConnectivitySource, HttpProbeConnectivity, ManualConnectivity, NetworkMonitor
from .orchestrator import RequestOrchestrator
from .queue import MutationQueue, ReplayMetrics
from .runtime import CircuitBreaker
from .settings import OffgridSettings
from .storage import PersistentStore, create_store_from_env
from .transport import HttpTransport


def create_orchestrator(
    settings: OffgridSettings | None = None,
    *,
    transport: HttpTransport | None = None,
    credentials: CredentialProvider | None = None,
    source: ConnectivitySource | None = None,
    store: PersistentStore | None = None,
    redis_client: Any | None = None,
    metrics: ReplayMetrics | None = None,
) -> RequestOrchestrator:
    """
    Build an orchestrator with monitor, breaker, cache and queue wired together.

    Missing pieces are resolved as follows:
    - settings: `OffgridSettings.from_env()`
    - store: `create_store_from_env()` (`OFFGRID_STORE_BACKEND`)
    - source: `HttpProbeConnectivity` when `probe_url` is set, otherwise
      `ManualConnectivity` reporting online
    """
    cfg = settings or OffgridSettings.from_env()
    resolved_store = store or create_store_from_env(redis_client=redis_client)

    if source is None:
        if cfg.probe_url:
            source = HttpProbeConnectivity(cfg.probe_url)
        else:
            source = ManualConnectivity(online=True)

    cache_policy = cfg.cache_policy()
    replay_policy = cfg.replay_policy()
    return RequestOrchestrator(
        cfg.base_url,
        transport=transport,
        store=resolved_store,
        cache=ResponseCache(resolved_store, policy=cache_policy),
        queue=MutationQueue(resolved_store, policy=replay_policy, metrics=metrics),
        monitor=NetworkMonitor(source, check_interval_s=cfg.monitor_interval_s),
        breaker=CircuitBreaker(cfg.breaker_policy()),
        credentials=credentials,
        retry_policy=cfg.retry_policy(),
        timeout_policy=cfg.timeout_policy(),
        cache_policy=cache_policy,
        replay_policy=replay_policy,
    )
