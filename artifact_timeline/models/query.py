"""
Structured query request and response.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import Field, conlist, constr, field_validator

from .artifacts import Decision, OpenLoop, Risk
from .enums import ArtifactKind, Level, OpenLoopStatus
from .primitives import Entity, StrictWireModel, WireModel, is_iso_date

_DATE_FIELDS = (
    "date_from_iso",
    "date_to_iso",
    "open_loop_due_from_iso",
    "open_loop_due_to_iso",
    "decision_from_iso",
    "decision_to_iso",
)


class StructuredQueryRequest(StrictWireModel):
    """Filter request for the structured query engine.

    Unknown keys are rejected. ``entity`` is free text; it is resolved to a
    canonical name before filtering and echoed back in that form.
    """

    date_from_iso: Optional[str] = None
    date_to_iso: Optional[str] = None
    kind: Optional[List[ArtifactKind]] = None
    entity: Optional[constr(strip_whitespace=True, min_length=1, max_length=200)] = None
    tags: Optional[conlist(str, max_length=10)] = None
    participants: Optional[conlist(str, max_length=10)] = None
    has_open_loops: Optional[bool] = None
    has_risks: Optional[bool] = None
    has_decisions: Optional[bool] = None
    open_loop_status: Optional[OpenLoopStatus] = None
    open_loop_due_from_iso: Optional[str] = None
    open_loop_due_to_iso: Optional[str] = None
    risk_severity: Optional[Level] = None
    decision_from_iso: Optional[str] = None
    decision_to_iso: Optional[str] = None
    limit_artifacts: int = Field(default=10, ge=1, le=50)
    limit_items_per_artifact: int = Field(default=5, ge=1, le=20)

    @field_validator(*_DATE_FIELDS)
    @classmethod
    def _iso_dates(cls, value: Optional[str]) -> Optional[str]:
        if not is_iso_date(value):
            raise ValueError("must be an ISO-8601 date")
        return value


class QueryTotals(WireModel):
    artifacts_matched: int = 0
    open_loops_matched: int = 0
    risks_matched: int = 0
    decisions_matched: int = 0


class QueryMatches(WireModel):
    open_loops: Optional[List[OpenLoop]] = None
    risks: Optional[List[Risk]] = None
    decisions: Optional[List[Decision]] = None


class QueryResult(WireModel):
    artifact_id: str
    kind: ArtifactKind
    title: Optional[str] = None
    content_date_iso: Optional[str] = None
    entities: List[Entity] = Field(default_factory=list)
    matches: QueryMatches = Field(default_factory=QueryMatches)


class ScanStats(WireModel):
    """How much of the bounded scan budget a query used."""

    prefiltered: int = 0
    scan_cap: int = 0
    documents_read: int = 0
    documents_skipped: int = 0


class StructuredQueryResponse(WireModel):
    ok: bool = True
    query: StructuredQueryRequest
    totals: QueryTotals
    results: List[QueryResult] = Field(default_factory=list)
    scan: Optional[ScanStats] = None
