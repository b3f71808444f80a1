"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: runtime/__init__.py.
"""

from .circuit_breaker import CircuitBreaker, CircuitBreakerState, CircuitState
from .contracts import (
    CachePolicy,
    CircuitBreakerPolicy,
    ReplayPolicy,
    RetryPolicy,
    TimeoutPolicy,
)
from .retry import call_with_retry, classify_error, should_retry
from .timeouts import await_unless_aborted, await_with_timeout

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerState",
    "CircuitState",
    "RetryPolicy",
    "TimeoutPolicy",
    "CircuitBreakerPolicy",
    "CachePolicy",
    "ReplayPolicy",
    "call_with_retry",
    "classify_error",
    "should_retry",
    "await_with_timeout",
    "await_unless_aborted",
]
