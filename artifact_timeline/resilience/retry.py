"""
Retry with exponential backoff for transient upstream failures.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from .errors import FailureKind, classify_failure, retry_after_ms_of, status_of
from .signals import CancelSignal, sleep

logger = structlog.get_logger()

T = TypeVar("T")

MAX_ATTEMPTS_CEILING = 5


@dataclass
class RetryPolicy:
    """Backoff configuration for ``with_retry``."""

    max_attempts: int = 3
    base_delay_ms: int = 250
    max_delay_ms: int = 2000
    factor: float = 2.0
    jitter: bool = True

    def delay_ms(self, attempt: int) -> int:
        """Backoff before attempt ``attempt + 1`` (``attempt`` is 1-based)."""
        delay = min(self.base_delay_ms * self.factor ** (attempt - 1), self.max_delay_ms)
        if self.jitter:
            delay *= 0.5 + random.random()
        return int(min(delay, self.max_delay_ms))


def _status_class(status: Optional[int]) -> str:
    if status == 429:
        return "429"
    if status is not None and status >= 500:
        return "5xx"
    return "network"


async def with_retry(
    op: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    operation: str = "upstream_request",
    signal: Optional[CancelSignal] = None,
) -> T:
    """Invoke ``op`` until it succeeds, fails terminally, or attempts run out.

    Transient failures (timeouts, network errors, 429, 5xx) are retried with
    backoff; terminal failures are re-raised on the attempt that produced
    them. After the last attempt the last error is re-raised unchanged.
    """
    policy = policy or RetryPolicy()
    max_attempts = max(1, min(policy.max_attempts, MAX_ATTEMPTS_CEILING))

    attempt = 0
    while True:
        attempt += 1
        if signal is not None:
            signal.raise_if_cancelled()
        try:
            return await op()
        except Exception as error:
            kind = classify_failure(error)
            if kind is FailureKind.TERMINAL or attempt >= max_attempts:
                raise

            status = status_of(error)
            retry_after = retry_after_ms_of(error, policy.max_delay_ms)
            delay_ms = retry_after if retry_after is not None else policy.delay_ms(attempt)

            logger.warning(
                "upstream_retry",
                operation=operation,
                attempt=attempt,
                max_attempts=max_attempts,
                status=status,
                status_class=_status_class(status),
                backoff_ms=delay_ms,
            )
            if delay_ms > 0:
                await sleep(delay_ms / 1000, signal)
