"""
Resilience layer: timeouts, retries, error mapping and rate limiting for
every call that leaves the process.
"""

from .errors import FailureKind, classify_failure, map_error, status_of
from .rate_limit import (
    InMemoryRateLimitStore,
    RateLimiter,
    RateLimitResult,
    RateLimitStore,
)
from .retry import RetryPolicy, with_retry
from .signals import CancelSignal
from .timeout import DEFAULT_TIMEOUT_MS, with_timeout

__all__ = [
    "CancelSignal",
    "DEFAULT_TIMEOUT_MS",
    "FailureKind",
    "InMemoryRateLimitStore",
    "RateLimitResult",
    "RateLimitStore",
    "RateLimiter",
    "RetryPolicy",
    "classify_failure",
    "map_error",
    "status_of",
    "with_retry",
    "with_timeout",
]
