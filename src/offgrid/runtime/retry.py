"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: runtime/retry.py.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Awaitable, Callable
from typing import TypeVar

from ..errors import NetworkError, OffgridError, is_retryable
from .contracts import RetryPolicy

T = TypeVar("T")

logger = logging.getLogger("offgrid.runtime.retry")

Sleep = Callable[[float], Awaitable[None]]


def classify_error(error: BaseException, *, url: str | None = None) -> OffgridError:
    """Map arbitrary transport exceptions into the offgrid taxonomy."""
    if isinstance(error, OffgridError):
        return error
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, socket.timeout)):
        return NetworkError(f"Request timed out: {error}" if str(error) else None, url=url)
    if isinstance(error, (ConnectionError, OSError)):
        return NetworkError(url=url)
    return NetworkError(f"Unexpected transport failure: {error!r}", url=url)


def should_retry(attempt_index: int, error: BaseException, policy: RetryPolicy) -> bool:
    """Decide whether attempt `attempt_index` (0-based) may be followed by another."""
    return attempt_index < policy.max_retries and is_retryable(error)


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """
    Execute callable under bounded retry policy.

    Only network failures and 5xx responses are retried; every other error
    propagates after the first attempt.
    """
    attempt = 0
    while True:
        try:
            return await fn()
        except asyncio.CancelledError:
            raise
        except Exception as error:
            classified = classify_error(error)
            if not should_retry(attempt, classified, policy):
                if classified is error:
                    raise
                raise classified from error
            delay = policy.delay_for(attempt)
            logger.debug(
                "Retrying after %s (attempt=%d, delay=%.2fs)",
                type(classified).__name__,
                attempt + 1,
                delay,
            )
            if delay > 0:
                await sleep(delay)
            attempt += 1
