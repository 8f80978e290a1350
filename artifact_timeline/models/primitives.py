"""
Common primitives shared by documents, the index and requests.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .enums import EntityType


def wire_alias(name: str) -> str:
    """snake_case attribute -> camelCase wire key, keeping the ISO suffix upper."""
    camel = to_camel(name)
    if camel.endswith("Iso"):
        return camel[:-3] + "ISO"
    return camel


class WireModel(BaseModel):
    """Base for everything serialized to the backing store or callers.

    Attributes are snake_case; JSON keys are camelCase (``contentDateISO``).
    Unknown keys are ignored so provider prose and future fields survive.
    """

    model_config = ConfigDict(
        alias_generator=wire_alias,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class StrictWireModel(WireModel):
    """Wire model that rejects unknown keys (used for caller requests)."""

    model_config = ConfigDict(
        alias_generator=wire_alias,
        populate_by_name=True,
        extra="forbid",
    )


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def iso_now() -> str:
    return utc_now().isoformat().replace("+00:00", "Z")


def parse_iso(value: Any) -> Optional[datetime]:
    """Parse an ISO date or datetime; None when missing or unparseable.

    Naive values are taken as UTC, date-only values as midnight UTC.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_iso_date(value: Optional[str]) -> bool:
    return value is None or parse_iso(value) is not None


def timestamp(value: Optional[str]) -> float:
    """Sort key for ISO strings: missing/unparseable sort last in desc order."""
    parsed = parse_iso(value)
    return parsed.timestamp() if parsed else float("-inf")


def in_range(value: Optional[str], start: Optional[str], end: Optional[str]) -> bool:
    """Inclusive date-window check.

    Values that are missing or unparseable pass: the window constrains
    only what it can compare.
    """
    parsed = parse_iso(value)
    if parsed is None:
        return True
    lower = parse_iso(start)
    if lower is not None and parsed < lower:
        return False
    upper = parse_iso(end)
    if upper is not None and parsed > upper:
        return False
    return True


class Entity(WireModel):
    """A named entity mentioned by an artifact."""

    name: str
    type: Optional[EntityType] = None
