"""
Error taxonomy for Artifact Timeline.

Every failure the core surfaces carries one ``ErrorCode``. Callers at the
boundary render ``TimelineError.to_dict()``; nothing below the boundary needs
to catch more than this one exception type.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorCode(str, Enum):
    """Stable error codes."""

    UPSTREAM_TIMEOUT = "upstream_timeout"
    RATE_LIMITED = "rate_limited"
    INVALID_REQUEST = "invalid_request"
    UPSTREAM_ERROR = "upstream_error"
    BAD_OUTPUT = "bad_output"
    NOT_CONFIGURED = "not_configured"
    FORBIDDEN_OUTSIDE_FOLDER = "forbidden_outside_folder"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    INDEX_CONFLICT = "index_conflict"


HTTP_STATUS_BY_CODE: Dict[ErrorCode, int] = {
    ErrorCode.UPSTREAM_TIMEOUT: 504,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.UPSTREAM_ERROR: 502,
    ErrorCode.BAD_OUTPUT: 502,
    ErrorCode.NOT_CONFIGURED: 500,
    ErrorCode.FORBIDDEN_OUTSIDE_FOLDER: 403,
    ErrorCode.PAYLOAD_TOO_LARGE: 413,
    ErrorCode.INDEX_CONFLICT: 409,
}


class ErrorPayload(BaseModel):
    """Standardized error shape produced by ``map_error``."""

    model_config = ConfigDict(extra="forbid")

    status: int = Field(..., description="HTTP status the boundary should use")
    code: ErrorCode = Field(..., description="Stable error code")
    message: str = Field(..., description="Human-readable, safe to surface")
    details: Dict[str, Any] = Field(default_factory=dict)


class TimelineError(Exception):
    """
    Raised for every failure surfaced by the core.

    Attributes:
        code: Stable error code for programmatic handling
        message: Human-readable error description
        details: Structured context (operation name, offending ids, ...)
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status: Optional[int] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        self.status = status or HTTP_STATUS_BY_CODE[code]
        super().__init__(f"{code.value}: {message}")

    @classmethod
    def from_payload(cls, payload: ErrorPayload) -> "TimelineError":
        return cls(
            code=payload.code,
            message=payload.message,
            details=dict(payload.details),
            status=payload.status,
        )

    def to_payload(self) -> ErrorPayload:
        return ErrorPayload(
            status=self.status,
            code=self.code,
            message=self.message,
            details=self.details,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        error: Dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"error": error, "error_code": self.code.value}


def invalid_request(message: str, **details: Any) -> TimelineError:
    return TimelineError(ErrorCode.INVALID_REQUEST, message, details)


def bad_output(message: str = "Provider response format was invalid.", **details: Any) -> TimelineError:
    return TimelineError(ErrorCode.BAD_OUTPUT, message, details)
