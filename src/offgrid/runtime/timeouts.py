"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: runtime/timeouts.py.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from ..errors import RequestCancelledError

T = TypeVar("T")


async def await_with_timeout(awaitable: Awaitable[T], timeout_s: float | None) -> T:
    """Await value with optional timeout."""
    if timeout_s is None:
        return await awaitable
    return await asyncio.wait_for(awaitable, timeout=timeout_s)


async def await_unless_aborted(
    awaitable: Awaitable[T],
    abort: asyncio.Event | None,
    *,
    url: str | None = None,
) -> T:
    """
    Await value, cancelling it as soon as `abort` is set.

    Raises:
        RequestCancelledError: The abort event fired first.
    """
    if abort is None:
        return await awaitable
    if abort.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise RequestCancelledError(url=url)

    work = asyncio.ensure_future(awaitable)
    watcher = asyncio.ensure_future(abort.wait())
    try:
        done, _ = await asyncio.wait(
            {work, watcher},
            return_when=asyncio.FIRST_COMPLETED,
        )
    except asyncio.CancelledError:
        work.cancel()
        watcher.cancel()
        raise

    if work in done:
        watcher.cancel()
        return work.result()

    work.cancel()
    await asyncio.gather(work, return_exceptions=True)
    raise RequestCancelledError(url=url)
