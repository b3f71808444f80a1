"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Durable offline mutation queue exports.
"""

from .metrics import NoOpReplayMetrics, PrometheusReplayMetrics, ReplayMetrics
from .mutations import DiscardListener, MutationQueue, MutationSender
from .types import (
    DeliveryOutcome,
    DiscardedMutation,
    DiscardReason,
    QueuedMutation,
    ReplayReport,
)

__all__ = [
    "DeliveryOutcome",
    "DiscardListener",
    "DiscardReason",
    "DiscardedMutation",
    "MutationQueue",
    "MutationSender",
    "NoOpReplayMetrics",
    "PrometheusReplayMetrics",
    "QueuedMutation",
    "ReplayMetrics",
    "ReplayReport",
]
