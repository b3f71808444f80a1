"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Resilience layer settings and explicit config loading.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .runtime.contracts import (
    CachePolicy,
    CircuitBreakerPolicy,
    ReplayPolicy,
    RetryPolicy,
    TimeoutPolicy,
)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True, slots=True)
class OffgridSettings:
    """Explicit settings used to wire a full orchestrator stack."""

    base_url: str = "http://localhost:8000"
    probe_url: str | None = None

    request_timeout_s: float = 30.0
    max_retries: int = 3
    retry_base_delay_s: float = 1.0

    breaker_failure_threshold: int = 5
    breaker_success_threshold: int = 2
    breaker_cooldown_s: float = 60.0

    cache_enabled: bool = True
    cache_ttl_s: float = 86400.0
    cache_eviction_threshold_percent: float = 90.0

    max_failed_replays: int = 5
    auto_replay: bool = True

    monitor_interval_s: float = 30.0

    @staticmethod
    def from_env() -> "OffgridSettings":
        """Load settings from environment variables."""
        return OffgridSettings(
            base_url=os.getenv("OFFGRID_BASE_URL", "http://localhost:8000"),
            probe_url=os.getenv("OFFGRID_PROBE_URL") or None,
            request_timeout_s=float(os.getenv("OFFGRID_REQUEST_TIMEOUT_S", "30")),
            max_retries=int(os.getenv("OFFGRID_MAX_RETRIES", "3")),
            retry_base_delay_s=float(os.getenv("OFFGRID_RETRY_BASE_DELAY_S", "1")),
            breaker_failure_threshold=int(os.getenv("OFFGRID_BREAKER_FAILURE_THRESHOLD", "5")),
            breaker_success_threshold=int(os.getenv("OFFGRID_BREAKER_SUCCESS_THRESHOLD", "2")),
            breaker_cooldown_s=float(os.getenv("OFFGRID_BREAKER_COOLDOWN_S", "60")),
            cache_enabled=_env_bool("OFFGRID_CACHE_ENABLED", True),
            cache_ttl_s=float(os.getenv("OFFGRID_CACHE_TTL_S", "86400")),
            cache_eviction_threshold_percent=float(
                os.getenv("OFFGRID_CACHE_EVICTION_THRESHOLD_PERCENT", "90")
            ),
            max_failed_replays=int(os.getenv("OFFGRID_MAX_FAILED_REPLAYS", "5")),
            auto_replay=_env_bool("OFFGRID_AUTO_REPLAY", True),
            monitor_interval_s=float(os.getenv("OFFGRID_MONITOR_INTERVAL_S", "30")),
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_retries=self.max_retries, base_delay_s=self.retry_base_delay_s)

    def timeout_policy(self) -> TimeoutPolicy:
        return TimeoutPolicy(request_timeout_s=self.request_timeout_s)

    def breaker_policy(self) -> CircuitBreakerPolicy:
        return CircuitBreakerPolicy(
            failure_threshold=self.breaker_failure_threshold,
            success_threshold=self.breaker_success_threshold,
            cooldown_s=self.breaker_cooldown_s,
        )

    def cache_policy(self) -> CachePolicy:
        return CachePolicy(
            enabled=self.cache_enabled,
            ttl_s=self.cache_ttl_s,
            eviction_threshold_percent=self.cache_eviction_threshold_percent,
        )

    def replay_policy(self) -> ReplayPolicy:
        return ReplayPolicy(max_failed_replays=self.max_failed_replays, auto_replay=self.auto_replay)
