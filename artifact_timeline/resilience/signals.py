"""
Cancellation signals.

A ``CancelSignal`` is a one-shot flag that an operation can poll or await.
``link()`` derives a child signal that is cancelled whenever the parent is,
which is how a per-attempt timeout composes with an outer request abort.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional


class CancelSignal:
    """One-shot cancellation flag with parent-to-child propagation."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._children: List["CancelSignal"] = []
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        for child in self._children:
            child.cancel(reason)
        self._children.clear()

    def link(self) -> "CancelSignal":
        """Return a child signal cancelled together with this one."""
        child = CancelSignal()
        if self.cancelled:
            child.cancel(self.reason or "cancelled")
        else:
            self._children.append(child)
        return child

    def unlink(self, child: "CancelSignal") -> None:
        """Stop propagating to ``child``; a no-op when it is not linked."""
        if child in self._children:
            self._children.remove(child)

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise asyncio.CancelledError(self.reason)


async def sleep(delay_seconds: float, signal: Optional[CancelSignal] = None) -> None:
    """Sleep that wakes up early, with ``CancelledError``, if ``signal`` fires."""
    if signal is None:
        await asyncio.sleep(delay_seconds)
        return

    signal.raise_if_cancelled()
    try:
        await asyncio.wait_for(signal.wait(), timeout=delay_seconds)
    except asyncio.TimeoutError:
        return
    raise asyncio.CancelledError(signal.reason)
