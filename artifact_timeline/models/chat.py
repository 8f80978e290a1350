"""
Chat and synthesis request/response models.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import Field, conlist, constr, field_validator

from .artifacts import Decision, OpenLoop, Risk
from .enums import SynthesisMode
from .primitives import Entity, StrictWireModel, WireModel, is_iso_date


class _DateWindowRequest(StrictWireModel):
    date_from_iso: Optional[str] = None
    date_to_iso: Optional[str] = None
    tags: Optional[conlist(str, max_length=10)] = None
    participants: Optional[conlist(str, max_length=10)] = None

    @field_validator("date_from_iso", "date_to_iso")
    @classmethod
    def _iso_dates(cls, value: Optional[str]) -> Optional[str]:
        if not is_iso_date(value):
            raise ValueError("must be an ISO-8601 date")
        return value


class ChatRequest(_DateWindowRequest):
    """Question over the user's artifacts."""

    query: constr(min_length=2, max_length=2000) = Field(
        ..., description="Natural-language question"
    )
    limit: int = Field(default=8, ge=1, le=15, description="Artifacts sent as context")


class CitedExcerpt(WireModel):
    """A citation decorated with the cited artifact's title and date."""

    artifact_id: str
    excerpt: str
    title: Optional[str] = None
    content_date_iso: Optional[str] = None


class ChatResponse(WireModel):
    answer: str
    citations: List[CitedExcerpt] = Field(default_factory=list)
    used_artifact_ids: List[str] = Field(default_factory=list)


class SynthesisRequest(_DateWindowRequest):
    """Cross-artifact synthesis request.

    With ``artifact_ids`` the selection is explicit and every id must be
    known to the index; otherwise the most recent matching artifacts are used.
    """

    mode: SynthesisMode
    title: Optional[constr(min_length=1, max_length=200)] = None
    artifact_ids: Optional[conlist(str, min_length=1, max_length=25)] = None
    limit: int = Field(default=10, ge=1, le=25)
    include_evidence: bool = False
    save_to_timeline: bool = False


class SynthesisBody(WireModel):
    """Generated synthesis as returned to callers."""

    synthesis_id: str
    mode: SynthesisMode
    title: str
    created_at_iso: str
    content: str
    key_points: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)
    participants: List[str] = Field(default_factory=list)
    entities: List[Entity] = Field(default_factory=list)
    decisions: List[Decision] = Field(default_factory=list)
    open_loops: List[OpenLoop] = Field(default_factory=list)
    risks: List[Risk] = Field(default_factory=list)


class SynthesisResponse(WireModel):
    ok: bool = True
    synthesis: SynthesisBody
    citations: List[CitedExcerpt] = Field(default_factory=list)
    used_artifact_ids: List[str] = Field(default_factory=list)
    saved_artifact_id: Optional[str] = None
