"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: runtime/circuit_breaker.py.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from ..errors import CircuitOpenError, CircuitTestingError
from .contracts import CircuitBreakerPolicy

logger = logging.getLogger("offgrid.runtime.circuit_breaker")

CircuitState = Literal["closed", "open", "half_open"]

CLOSED_TICKET = 0


@dataclass(frozen=True, slots=True)
class CircuitBreakerState:
    """Read-only view of one target's breaker state."""

    state: CircuitState
    consecutive_failures: int
    consecutive_successes: int
    next_attempt_at: float | None


@dataclass(slots=True)
class _State:
    """Mutable breaker row for one upstream target."""

    state: CircuitState = "closed"
    failures: int = 0
    successes: int = 0
    next_attempt_at: float | None = None
    trial: int | None = None


class CircuitBreaker:
    """
    Failure-aware gate keyed by upstream target (base URL).

    Every method runs to completion without awaiting, so admission checks and
    state updates are atomic under asyncio's cooperative scheduling. In
    ``half_open`` only one trial call is admitted at a time; other callers get
    `CircuitTestingError` until the trial settles.
    """

    def __init__(
        self,
        policy: CircuitBreakerPolicy | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._policy = policy or CircuitBreakerPolicy()
        self._clock = clock
        self._rows: dict[str, _State] = {}
        self._last_ticket = CLOSED_TICKET

    @property
    def policy(self) -> CircuitBreakerPolicy:
        return self._policy

    def ensure_available(self, target: str) -> int:
        """
        Admit one call to `target` or fail fast.

        Returns an admission ticket to hand back to ``record_success``,
        ``record_failure`` or ``release``. Ticket ``0`` marks a call admitted
        while ``closed``; a half-open trial gets a fresh positive ticket, and
        only the outcome of the current trial moves a half-open breaker.

        Raises:
            CircuitOpenError: Cooldown has not elapsed.
            CircuitTestingError: Half-open trial already in flight.
        """
        state = self._rows.setdefault(target, _State())
        if state.state == "closed":
            return CLOSED_TICKET

        if state.state == "open":
            now = self._clock()
            if state.next_attempt_at is not None and now < state.next_attempt_at:
                raise CircuitOpenError(target)
            state.state = "half_open"
            state.successes = 0
            state.trial = None
            logger.info("Circuit for %s transitioning to HALF_OPEN", target)

        if state.trial is not None:
            raise CircuitTestingError(target)
        self._last_ticket += 1
        state.trial = self._last_ticket
        return state.trial

    def record_success(self, target: str, ticket: int | None = None) -> None:
        """Record one healthy response from `target`."""
        state = self._rows.setdefault(target, _State())
        if state.state == "half_open":
            if not self._is_current_trial(state, ticket):
                return
            state.trial = None
            state.successes += 1
            if state.successes >= self._policy.success_threshold:
                self._rows[target] = _State()
                logger.info(
                    "Circuit for %s transitioning to CLOSED after %d successful trial(s)",
                    target,
                    state.successes,
                )
            return
        state.failures = 0

    def record_failure(self, target: str, ticket: int | None = None) -> None:
        """Record one network-level or 5xx failure from `target`."""
        state = self._rows.setdefault(target, _State())
        if state.state == "half_open":
            if self._is_current_trial(state, ticket):
                self._open(target, state)
            return
        if state.state == "open":
            return
        state.failures += 1
        if state.failures >= self._policy.failure_threshold:
            self._open(target, state)

    def release(self, target: str, ticket: int | None = None) -> None:
        """Release a half-open trial slot without counting the outcome (e.g. cancellation)."""
        state = self._rows.get(target)
        if state is not None and self._is_current_trial(state, ticket):
            state.trial = None

    def state_of(self, target: str) -> CircuitBreakerState:
        """Return a snapshot of the breaker state for `target`."""
        state = self._rows.get(target) or _State()
        return CircuitBreakerState(
            state=state.state,
            consecutive_failures=state.failures,
            consecutive_successes=state.successes,
            next_attempt_at=state.next_attempt_at,
        )

    def targets(self) -> list[str]:
        """List targets with tracked breaker state."""
        return sorted(self._rows.keys())

    def reset(self, target: str | None = None) -> None:
        """Force one target (or every target) back to ``closed``."""
        if target is None:
            self._rows.clear()
            return
        self._rows.pop(target, None)

    def _open(self, target: str, state: _State) -> None:
        state.state = "open"
        state.successes = 0
        state.trial = None
        state.next_attempt_at = self._clock() + self._policy.cooldown_s
        logger.warning(
            "Circuit for %s transitioning to OPEN after %d failure(s); retry in %.0fs",
            target,
            state.failures,
            self._policy.cooldown_s,
        )

    @staticmethod
    def _is_current_trial(state: _State, ticket: int | None) -> bool:
        # A missing ticket settles whatever trial is in flight.
        return ticket is None or ticket == state.trial
