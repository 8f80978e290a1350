"""
Timeout wrapper for upstream calls.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from ..errors import ErrorCode, TimelineError
from .signals import CancelSignal

T = TypeVar("T")

DEFAULT_TIMEOUT_MS = 8000


async def with_timeout(
    op: Callable[[CancelSignal], Awaitable[T]],
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    label: str = "upstream_request",
    parent: Optional[CancelSignal] = None,
) -> T:
    """Run ``op`` under a timeout budget.

    ``op`` receives a signal linked to ``parent``; it is cancelled when the
    budget expires or when ``parent`` is cancelled.

    Raises:
        TimelineError: ``upstream_timeout`` when the budget expires
        asyncio.CancelledError: when ``parent`` was cancelled
    """
    signal = parent.link() if parent is not None else CancelSignal()
    try:
        return await _run(op, signal, timeout_ms, label)
    finally:
        if parent is not None:
            parent.unlink(signal)


async def _run(
    op: Callable[[CancelSignal], Awaitable[T]],
    signal: CancelSignal,
    timeout_ms: int,
    label: str,
) -> T:
    signal.raise_if_cancelled()

    task = asyncio.ensure_future(op(signal))
    watcher = asyncio.ensure_future(signal.wait())
    try:
        done, _ = await asyncio.wait(
            {task, watcher},
            timeout=timeout_ms / 1000,
            return_when=asyncio.FIRST_COMPLETED,
        )
    except asyncio.CancelledError:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise
    finally:
        watcher.cancel()

    if task in done:
        return task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)

    if signal.cancelled:
        # parent fired before the budget ran out
        raise asyncio.CancelledError(signal.reason)

    signal.cancel("timeout")
    raise TimelineError(
        ErrorCode.UPSTREAM_TIMEOUT,
        f"{label} timed out after {timeout_ms}ms",
        details={"operation": label, "timeoutMs": timeout_ms},
    )
