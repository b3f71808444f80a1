"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Metrics adapters for mutation replay observability.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

from prometheus_client import REGISTRY, CollectorRegistry, Counter

# name -> (help text, label names)
REPLAY_COUNTERS: dict[str, tuple[str, tuple[str, ...]]] = {
    "replay_delivered_total": (
        "Queued mutations delivered by a replay pass.",
        ("method",),
    ),
    "replay_retained_total": (
        "Failed replay attempts that kept the mutation queued.",
        ("method",),
    ),
    "replay_discarded_total": (
        "Queued mutations dropped for good.",
        ("reason",),
    ),
    "replay_skipped_offline_total": (
        "Replay passes skipped because the device was offline.",
        (),
    ),
}


class ReplayMetrics(Protocol):
    """Minimal metrics interface for mutation queue instrumentation."""

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        """Increment a counter metric."""


class NoOpReplayMetrics:
    """Default metrics sink when no metrics backend is provided."""

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        _ = (name, value, tags)


class PrometheusReplayMetrics:
    """
    Export replay outcomes as Prometheus counters.

    Every counter in ``REPLAY_COUNTERS`` is registered up front, so dashboards
    see zero-valued series before the first replay. Label values missing from
    the tags of one increment are reported as ``unknown``.
    """

    def __init__(
        self,
        *,
        namespace: str = "offgrid",
        registry: CollectorRegistry | None = None,
    ) -> None:
        target = registry if registry is not None else REGISTRY
        self._counters: dict[str, Counter] = {
            name: Counter(
                name,
                help_text,
                labelnames=labels,
                namespace=namespace,
                registry=target,
            )
            for name, (help_text, labels) in REPLAY_COUNTERS.items()
        }

    def incr(self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None) -> None:
        counter = self._counters.get(name)
        if counter is None:
            raise ValueError(f"Unknown replay metric: {name}")
        _, labels = REPLAY_COUNTERS[name]
        if labels:
            values = tags or {}
            counter.labels(*(str(values.get(label, "unknown")) for label in labels)).inc(value)
        else:
            counter.inc(value)
