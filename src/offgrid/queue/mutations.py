"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Durable FIFO queue of writes that could not be delivered, with sequential replay.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from ..errors import ClientError, RequestError
from ..runtime.contracts import ReplayPolicy
from ..storage.base import QUEUE_NAMESPACE, PersistentStore
from ..types import JSONValue
from .metrics import NoOpReplayMetrics, ReplayMetrics
from .types import DeliveryOutcome, DiscardedMutation, DiscardReason, QueuedMutation, ReplayReport

logger = logging.getLogger("offgrid.queue.mutations")

# Delivers one mutation; raises offgrid request errors on failure.
MutationSender = Callable[[QueuedMutation], Awaitable[Any]]
DiscardListener = Callable[[DiscardedMutation], Awaitable[None] | None]


class MutationQueue:
    """
    Guarantee that a write attempted while offline is not silently lost.

    Mutations are persisted under the ``queue`` namespace of the store and
    replayed strictly one at a time in ``enqueued_at`` order. A retryable
    failure ends the pass so a later write never overtakes an earlier one.
    Concurrent ``replay()`` calls join the pass already in progress.
    """

    def __init__(
        self,
        store: PersistentStore,
        *,
        policy: ReplayPolicy | None = None,
        sender: MutationSender | None = None,
        is_online: Callable[[], bool] | None = None,
        metrics: ReplayMetrics | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._policy = policy or ReplayPolicy()
        self._sender = sender
        self._is_online = is_online
        self._metrics: ReplayMetrics = metrics or NoOpReplayMetrics()
        self._clock = clock
        self._listeners: list[DiscardListener] = []
        self._replay_task: asyncio.Task[ReplayReport] | None = None
        self._last_sync_at: float | None = None

    @property
    def policy(self) -> ReplayPolicy:
        return self._policy

    @property
    def last_sync_at(self) -> float | None:
        """Finish time of the most recent completed replay pass."""
        return self._last_sync_at

    @property
    def is_replaying(self) -> bool:
        return self._replay_task is not None and not self._replay_task.done()

    def bind_sender(
        self,
        sender: MutationSender,
        *,
        is_online: Callable[[], bool] | None = None,
    ) -> None:
        """
        Attach the delivery callable used by ``replay()``.

        `is_online` gates replay: while it reports offline a pass attempts
        nothing, and a failure seen after connectivity dropped does not count
        against the mutation's replay budget.
        """
        self._sender = sender
        if is_online is not None:
            self._is_online = is_online

    def on_discarded(self, listener: DiscardListener) -> Callable[[], None]:
        """Register a discard listener; returns its unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def enqueue(self, mutation: QueuedMutation) -> QueuedMutation:
        """
        Persist one mutation, replacing any pending mutation with the same id.

        A replacement keeps the original ``enqueued_at`` and ``retry_count`` so
        the logical action keeps its place in replay order.

        Raises:
            QuotaExceededError: The store cannot hold the mutation.
        """
        existing = await self.get(mutation.id)
        if existing is not None:
            mutation.enqueued_at = existing.enqueued_at
            mutation.retry_count = existing.retry_count
            mutation.revision = existing.revision + 1
        await self._store.put(QUEUE_NAMESPACE, mutation.id, mutation.to_row())
        logger.info(
            "Queued %s %s for replay (id=%s, replaced=%s)",
            mutation.method,
            mutation.url,
            mutation.id,
            existing is not None,
        )
        return mutation

    async def enqueue_request(
        self,
        method: str,
        url: str,
        payload: JSONValue | None = None,
        *,
        mutation_id: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> QueuedMutation:
        """Build and enqueue a mutation for one write request."""
        mutation = QueuedMutation(
            method=method.upper(),
            url=url,
            payload=payload,
            headers=dict(headers or {}),
            enqueued_at=self._clock(),
        )
        if mutation_id:
            mutation.id = mutation_id
        return await self.enqueue(mutation)

    async def get(self, mutation_id: str) -> QueuedMutation | None:
        row = await self._store.get(QUEUE_NAMESPACE, mutation_id)
        if row is None:
            return None
        return QueuedMutation.from_row(mutation_id, row)

    async def remove(self, mutation_id: str) -> None:
        """Explicitly delete one pending mutation (the only way to cancel it)."""
        await self._store.delete(QUEUE_NAMESPACE, mutation_id)

    async def list_pending(self) -> list[QueuedMutation]:
        """Return pending mutations in FIFO replay order."""
        rows = await self._store.list_all(QUEUE_NAMESPACE)
        pending: list[QueuedMutation] = []
        for mutation_id, row in rows.items():
            mutation = QueuedMutation.from_row(mutation_id, row)
            if mutation is None:
                logger.warning("Dropping unreadable queued mutation row (id=%s)", mutation_id)
                await self._store.delete(QUEUE_NAMESPACE, mutation_id)
                continue
            pending.append(mutation)
        pending.sort(key=lambda item: (item.enqueued_at, item.id))
        return pending

    async def pending_count(self) -> int:
        return len(await self.list_pending())

    async def replay(self) -> ReplayReport:
        """
        Deliver pending mutations in FIFO order, one at a time.

        Joins the pass already running when called concurrently.

        Raises:
            RuntimeError: No sender is bound.
        """
        if self._sender is None:
            raise RuntimeError("MutationQueue has no sender bound; call bind_sender() first")
        task = self._replay_task
        if task is None or task.done():
            task = asyncio.create_task(self._replay_pass())
            self._replay_task = task
        return await asyncio.shield(task)

    async def dispose(self) -> None:
        """Cancel a replay pass in progress."""
        task, self._replay_task = self._replay_task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def _replay_pass(self) -> ReplayReport:
        report = ReplayReport(started_at=self._clock())
        if not self._online():
            report.retained = [item.id for item in await self.list_pending()]
            report.skipped_offline = True
            self._metrics.incr("replay_skipped_offline_total")
            report.finished_at = self._clock()
            logger.info("Replay skipped while offline (pending=%d)", len(report.retained))
            return report
        while True:
            pending = await self.list_pending()
            if not pending:
                break
            head = pending[0]
            outcome = await self._deliver_one(head, report)
            if outcome == "retained":
                report.retained = [item.id for item in await self.list_pending()]
                break
        report.finished_at = self._clock()
        self._last_sync_at = report.finished_at
        logger.info(
            "Replay pass finished (delivered=%d, discarded=%d, retained=%d)",
            len(report.delivered),
            len(report.discarded),
            len(report.retained),
        )
        return report

    async def _deliver_one(self, mutation: QueuedMutation, report: ReplayReport) -> DeliveryOutcome:
        assert self._sender is not None
        try:
            await self._sender(mutation)
        except asyncio.CancelledError:
            raise
        except ClientError as exc:
            if exc.status is None:
                # Rejected locally (e.g. no credentials); the server never answered.
                return await self._record_failure(mutation, report, exc)
            await self._discard(
                mutation,
                report,
                reason="client_error",
                error=str(exc),
                status=exc.status,
            )
            return "discarded"
        except Exception as exc:  # noqa: BLE001
            if not isinstance(exc, RequestError):
                logger.exception("Unexpected error replaying mutation %s", mutation.id)
            if not self._online():
                logger.info("Replay of %s stopped by loss of connectivity: %s", mutation.id, exc)
                return "retained"
            return await self._record_failure(mutation, report, exc)

        await self._delete_if_unchanged(mutation)
        report.delivered.append(mutation.id)
        self._metrics.incr("replay_delivered_total", tags={"method": mutation.method})
        logger.info("Replayed %s %s (id=%s)", mutation.method, mutation.url, mutation.id)
        return "delivered"

    def _online(self) -> bool:
        return self._is_online is None or self._is_online()

    async def _record_failure(
        self,
        mutation: QueuedMutation,
        report: ReplayReport,
        exc: Exception,
    ) -> DeliveryOutcome:
        current = await self.get(mutation.id)
        if current is None:
            return "discarded"
        if current.revision != mutation.revision:
            # Replaced while in flight; the new revision gets a fresh attempt next pass.
            return "retained"
        current.retry_count += 1
        current.last_error = str(exc)
        status = getattr(exc, "status", None)
        if current.retry_count >= self._policy.max_failed_replays:
            await self._discard(
                current,
                report,
                reason="retry_budget_exhausted",
                error=str(exc),
                status=status,
            )
            return "discarded"
        await self._store.put(QUEUE_NAMESPACE, current.id, current.to_row())
        self._metrics.incr("replay_retained_total", tags={"method": current.method})
        logger.info(
            "Replay of %s failed (retry_count=%d/%d): %s",
            current.id,
            current.retry_count,
            self._policy.max_failed_replays,
            exc,
        )
        return "retained"

    async def _discard(
        self,
        mutation: QueuedMutation,
        report: ReplayReport,
        *,
        reason: DiscardReason,
        error: str,
        status: int | None,
    ) -> None:
        await self._store.delete(QUEUE_NAMESPACE, mutation.id)
        signal = DiscardedMutation(mutation=mutation, reason=reason, error=error, status=status)
        report.discarded.append(signal)
        self._metrics.incr("replay_discarded_total", tags={"reason": reason})
        logger.warning(
            "Discarded queued mutation %s %s (id=%s, reason=%s): %s",
            mutation.method,
            mutation.url,
            mutation.id,
            reason,
            error,
        )
        for listener in list(self._listeners):
            try:
                result = listener(signal)
                if inspect.isawaitable(result):
                    await result
            except Exception:  # noqa: BLE001
                logger.exception("Discard listener failed for mutation %s", mutation.id)

    async def _delete_if_unchanged(self, mutation: QueuedMutation) -> None:
        current = await self.get(mutation.id)
        if current is not None and current.revision == mutation.revision:
            await self._store.delete(QUEUE_NAMESPACE, mutation.id)
