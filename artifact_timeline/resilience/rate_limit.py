"""
Sliding-window rate limiter.

Timestamps are kept behind a ``RateLimitStore`` so a shared store (Redis,
memcached, ...) can replace the process-local default without touching
callers. The in-memory store is only correct for a single process.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

import structlog
from pydantic import BaseModel, Field

from ..errors import ErrorCode, TimelineError

logger = structlog.get_logger()


class RateLimitResult(BaseModel):
    """Outcome of a rate-limit check."""

    allowed: bool
    remaining: int = Field(..., ge=0)
    reset_ms: int = Field(..., ge=0, description="Milliseconds until a slot frees up")


class RateLimitStore(ABC):
    """Key-value abstraction holding request timestamps (ms) per key."""

    @abstractmethod
    def get(self, key: str) -> List[float]:
        """Return timestamps recorded for ``key``, oldest first."""
        pass

    @abstractmethod
    def increment(self, key: str, now_ms: float) -> int:
        """Record a hit at ``now_ms``; return the number of live hits."""
        pass

    @abstractmethod
    def prune(self, key: str, window_start_ms: float) -> List[float]:
        """Drop timestamps at or before ``window_start_ms``; return the rest."""
        pass


class InMemoryRateLimitStore(RateLimitStore):
    """Process-local store. Not shared across instances."""

    def __init__(self) -> None:
        self._hits: Dict[str, List[float]] = {}

    def get(self, key: str) -> List[float]:
        return list(self._hits.get(key, []))

    def increment(self, key: str, now_ms: float) -> int:
        hits = self._hits.setdefault(key, [])
        hits.append(now_ms)
        return len(hits)

    def prune(self, key: str, window_start_ms: float) -> List[float]:
        live = [ts for ts in self._hits.get(key, []) if ts > window_start_ms]
        if live:
            self._hits[key] = live
        else:
            self._hits.pop(key, None)
        return list(live)


def _now_ms() -> float:
    return time.time() * 1000


class RateLimiter:
    """Sliding-window limiter over a ``RateLimitStore``."""

    def __init__(
        self,
        store: Optional[RateLimitStore] = None,
        clock: Callable[[], float] = _now_ms,
    ):
        self.store = store or InMemoryRateLimitStore()
        self.clock = clock

    def check(self, key: str, limit: int, window_ms: int) -> RateLimitResult:
        """Count one request against ``key`` if the window allows it."""
        now = self.clock()
        live = self.store.prune(key, now - window_ms)

        if len(live) >= limit:
            reset_ms = max(int(live[0] + window_ms - now), 0)
            logger.warning(
                "rate_limit_exceeded",
                key_type=key.split(":", 1)[0] if ":" in key else "unknown",
                limit=limit,
                window_ms=window_ms,
            )
            return RateLimitResult(allowed=False, remaining=0, reset_ms=reset_ms)

        count = self.store.increment(key, now)
        oldest = live[0] if live else now
        return RateLimitResult(
            allowed=True,
            remaining=max(limit - count, 0),
            reset_ms=max(int(oldest + window_ms - now), 0),
        )

    def enforce(self, key: str, limit: int, window_ms: int) -> RateLimitResult:
        """Like ``check`` but raises ``rate_limited`` when rejected."""
        result = self.check(key, limit, window_ms)
        if not result.allowed:
            raise TimelineError(
                ErrorCode.RATE_LIMITED,
                "Too many requests. Try again in a moment.",
                details={"retryAfterMs": result.reset_ms},
            )
        return result
