"""
Structured logging setup.

All modules log through ``structlog.get_logger()`` with snake_case event
names. ``configure_logging`` picks the renderer from settings and installs a
redaction step so addresses and tokens never reach log sinks.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional

import structlog

from .config import Settings, get_settings

MAX_LOG_STRING_LENGTH = 500

_EMAIL_RE = re.compile(r"\b[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}\b", re.IGNORECASE)
_BEARER_RE = re.compile(r"Bearer\s+[A-Za-z0-9._-]+", re.IGNORECASE)
_GOOGLE_TOKEN_RE = re.compile(r"ya29\.[\w-]+", re.IGNORECASE)
_JWT_RE = re.compile(r"\beyJ[a-zA-Z0-9_-]+?\.[a-zA-Z0-9_-]+?\.[a-zA-Z0-9_-]+\b")
_QUERY_TOKEN_RE = re.compile(
    r"(access_token|refresh_token|id_token|api_key)=([^&\s]+)", re.IGNORECASE
)


def redact_string(value: str) -> str:
    """Mask e-mail addresses and credentials, then truncate."""
    value = _EMAIL_RE.sub("[redacted-email]", value)
    value = _GOOGLE_TOKEN_RE.sub("[redacted-token]", value)
    value = _JWT_RE.sub("[redacted-token]", value)
    value = _BEARER_RE.sub("Bearer [redacted]", value)
    value = _QUERY_TOKEN_RE.sub(r"\1=[redacted]", value)
    if len(value) > MAX_LOG_STRING_LENGTH:
        return value[:MAX_LOG_STRING_LENGTH] + "…"
    return value


def _redact_value(value: Any, depth: int = 0) -> Any:
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, (list, tuple)):
        if depth > 2:
            return f"[array:{len(value)}]"
        return [_redact_value(item, depth + 1) for item in list(value)[:20]]
    if isinstance(value, dict):
        if depth > 2:
            return "[object]"
        return {key: _redact_value(item, depth + 1) for key, item in value.items()}
    return value


def redact_processor(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """structlog processor applying ``redact_string`` to every value."""
    return {key: _redact_value(value) for key, value in event_dict.items()}


def safe_error(error: BaseException) -> Dict[str, Any]:
    """Loggable summary of an exception without leaking credentials."""
    summary: Dict[str, Any] = {
        "name": type(error).__name__,
        "message": redact_string(str(error)),
    }
    code = getattr(error, "code", None)
    if code is not None:
        summary["code"] = getattr(code, "value", code)
    status = getattr(error, "status", None)
    if isinstance(status, int):
        summary["status"] = status
    return summary


def configure_logging(config: Optional[Settings] = None) -> None:
    """Configure structlog from settings.

    ``log_format`` selects JSON lines (default) or the console renderer.
    """
    config = config or get_settings()
    level = logging.getLevelName(config.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    renderer: Any
    if config.log_format == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_processor,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
