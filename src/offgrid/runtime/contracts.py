"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Typed runtime policies for resilient request execution.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Retry semantics for one request path."""

    max_retries: int = 3
    base_delay_s: float = 1.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay_s < 0:
            raise ValueError("base_delay_s must be >= 0")

    def delay_for(self, attempt_index: int) -> float:
        """Backoff before the attempt following `attempt_index`: base * 2^index."""
        return self.base_delay_s * (2 ** max(0, attempt_index))


@dataclass(frozen=True, slots=True)
class TimeoutPolicy:
    """Timeout used when neither the caller nor a network monitor supplies one."""

    request_timeout_s: float | None = 30.0


@dataclass(frozen=True, slots=True)
class CircuitBreakerPolicy:
    """Consecutive failure policy with a single half-open trial call."""

    failure_threshold: int = 5
    success_threshold: int = 2
    cooldown_s: float = 60.0

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.success_threshold < 1:
            raise ValueError("success_threshold must be >= 1")
        if self.cooldown_s < 0:
            raise ValueError("cooldown_s must be >= 0")


@dataclass(frozen=True, slots=True)
class CachePolicy:
    """Response cache controls."""

    enabled: bool = True
    ttl_s: float = 86400.0
    eviction_threshold_percent: float = 90.0
    eviction_fraction: float = 0.1


@dataclass(frozen=True, slots=True)
class ReplayPolicy:
    """Offline mutation replay controls."""

    max_failed_replays: int = 5
    auto_replay: bool = True

    def __post_init__(self) -> None:
        if self.max_failed_replays < 1:
            raise ValueError("max_failed_replays must be >= 1")
