"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Offline mutation types.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field, fields
from typing import Literal

from ..types import JSONObject, JSONValue

DiscardReason = Literal["client_error", "retry_budget_exhausted"]
DeliveryOutcome = Literal["delivered", "discarded", "retained"]


@dataclass(slots=True)
class QueuedMutation:
    """
    A write request that could not be delivered and waits for replay.

    Attributes:
        id: Stable identifier of the logical user action.
        method: HTTP method (``POST``, ``PUT``, ``PATCH``, ``DELETE``).
        url: Absolute request URL.
        payload: JSON body, if any.
        headers: Caller headers to resend (auth is injected at replay time).
        enqueued_at: Unix timestamp of the first enqueue; defines FIFO order.
        retry_count: Failed replay passes so far.
        last_error: Message of the most recent failed replay.
        revision: Bumped whenever the same id is enqueued again.
    """

    method: str
    url: str
    payload: JSONValue | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    headers: dict[str, str] = field(default_factory=dict)
    enqueued_at: float = field(default_factory=time.time)
    retry_count: int = 0
    last_error: str | None = None
    revision: int = 0

    def to_row(self) -> JSONObject:
        row = asdict(self)
        row.pop("id", None)
        return row

    @classmethod
    def from_row(cls, mutation_id: str, row: JSONObject) -> "QueuedMutation | None":
        """Rebuild one mutation from its stored row; malformed rows yield `None`."""
        known = {f.name for f in fields(cls)}
        data = {k: v for k, v in row.items() if k in known and k != "id"}
        if not isinstance(data.get("method"), str) or not isinstance(data.get("url"), str):
            return None
        try:
            return cls(id=mutation_id, **data)  # type: ignore[arg-type]
        except TypeError:
            return None


@dataclass(frozen=True, slots=True)
class DiscardedMutation:
    """Signal emitted when a queued mutation is dropped for good."""

    mutation: QueuedMutation
    reason: DiscardReason
    error: str
    status: int | None = None


@dataclass(slots=True)
class ReplayReport:
    """Summary of one replay pass."""

    started_at: float
    finished_at: float | None = None
    delivered: list[str] = field(default_factory=list)
    discarded: list[DiscardedMutation] = field(default_factory=list)
    retained: list[str] = field(default_factory=list)
    skipped_offline: bool = False

    @property
    def attempted(self) -> int:
        if self.skipped_offline:
            return 0
        return len(self.delivered) + len(self.discarded) + (1 if self.retained else 0)
