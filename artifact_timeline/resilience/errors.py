"""
Failure classification and error mapping for upstream calls.

Raw failures come from several places (httpx, the in-memory store, the
timeout wrapper). This module reduces all of them to a status code, a
transient/terminal decision, and finally an ``ErrorPayload``.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any, Mapping, Optional

import httpx

from ..errors import ErrorCode, ErrorPayload, TimelineError


class FailureKind(str, Enum):
    TRANSIENT = "transient"
    TERMINAL = "terminal"


_TRANSIENT_CODES = {ErrorCode.UPSTREAM_TIMEOUT}


def status_of(error: BaseException) -> Optional[int]:
    """Extract an HTTP-like status from a raw failure, if it carries one."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    if isinstance(error, TimelineError):
        upstream = error.details.get("upstreamStatus")
        return upstream if isinstance(upstream, int) else None
    for attr in ("status", "status_code"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def _headers_of(error: BaseException) -> Optional[Mapping[str, Any]]:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.headers
    headers = getattr(error, "headers", None)
    return headers if isinstance(headers, Mapping) else None


def retry_after_ms_of(error: BaseException, max_delay_ms: int) -> Optional[int]:
    """Parse a ``Retry-After`` header (seconds or HTTP date), capped."""
    headers = _headers_of(error)
    if not headers:
        return None
    raw = headers.get("retry-after") or headers.get("Retry-After")
    if raw is None:
        return None

    text = str(raw).strip()
    try:
        return min(int(float(text) * 1000), max_delay_ms)
    except ValueError:
        pass

    try:
        when = parsedate_to_datetime(text)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    delay_ms = int((when - datetime.now(timezone.utc)).total_seconds() * 1000)
    return min(delay_ms, max_delay_ms) if delay_ms > 0 else None


def is_timeout(error: BaseException) -> bool:
    if isinstance(error, TimelineError):
        return error.code == ErrorCode.UPSTREAM_TIMEOUT
    return isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError))


def is_network_error(error: BaseException) -> bool:
    return isinstance(error, (httpx.TransportError, ConnectionError))


def classify_failure(error: BaseException) -> FailureKind:
    """Decide whether ``error`` is worth retrying.

    Transient: timeouts, transport/network failures, HTTP 429 and 5xx.
    Everything else, including unknown exceptions, is terminal.
    """
    if is_timeout(error) or is_network_error(error):
        return FailureKind.TRANSIENT

    status = status_of(error)
    if status is not None:
        if status == 429 or status >= 500:
            return FailureKind.TRANSIENT
        return FailureKind.TERMINAL

    if isinstance(error, TimelineError) and error.code in _TRANSIENT_CODES:
        return FailureKind.TRANSIENT
    return FailureKind.TERMINAL


def map_error(raw: BaseException, operation_name: str) -> ErrorPayload:
    """Map a raw upstream failure onto the fixed error taxonomy."""
    if isinstance(raw, TimelineError):
        payload = raw.to_payload()
        if "operation" not in payload.details:
            payload.details["operation"] = operation_name
        return payload

    status = status_of(raw)

    if is_timeout(raw):
        return ErrorPayload(
            status=504,
            code=ErrorCode.UPSTREAM_TIMEOUT,
            message="Upstream request timed out. Please retry.",
            details={"operation": operation_name},
        )

    if status == 429:
        details = {"operation": operation_name, "upstreamStatus": status}
        retry_after = retry_after_ms_of(raw, max_delay_ms=60_000)
        if retry_after is not None:
            details["retryAfterMs"] = retry_after
        return ErrorPayload(
            status=429,
            code=ErrorCode.RATE_LIMITED,
            message="Too many requests. Try again in a moment.",
            details=details,
        )

    details = {"operation": operation_name}
    if status is not None:
        details["upstreamStatus"] = status
    return ErrorPayload(
        status=502,
        code=ErrorCode.UPSTREAM_ERROR,
        message="Upstream returned an error. Please retry.",
        details=details,
    )
