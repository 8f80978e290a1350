"""
Full artifact documents.

An artifact is either a ``SummaryArtifact`` (one source document or
message summarized) or a ``SynthesisArtifact`` (several artifacts combined).
``Artifact`` is the closed union discriminated on ``kind``.
"""

from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union

from pydantic import AliasChoices, Field, constr, field_validator

from .enums import Level, OpenLoopStatus, SourceType, SynthesisMode
from .primitives import Entity, WireModel, iso_now

SCHEMA_VERSION = 1


class Decision(WireModel):
    """A decision recorded in an artifact."""

    text: constr(min_length=1)
    date_iso: Optional[str] = Field(None, description="When the decision was made")
    owner: Optional[str] = None
    confidence: Optional[float] = Field(None, ge=0, le=1)


class OpenLoop(WireModel):
    """An unresolved action item or question."""

    text: constr(min_length=1)
    owner: Optional[str] = None
    due_date_iso: Optional[str] = None
    status: OpenLoopStatus = Field(
        default=OpenLoopStatus.OPEN, description="Missing status is read as open"
    )
    confidence: Optional[float] = Field(None, ge=0, le=1)


class Risk(WireModel):
    """A risk called out in an artifact."""

    text: constr(min_length=1)
    severity: Level = Field(default=Level.LOW)
    likelihood: Optional[Level] = None
    owner: Optional[str] = None
    mitigation: Optional[str] = None
    confidence: Optional[float] = Field(None, ge=0, le=1)


class Evidence(WireModel):
    source_id: Optional[str] = None
    excerpt: str


class Citation(WireModel):
    """A claimed grounding pointer: this excerpt came from that artifact."""

    artifact_id: str
    excerpt: str


class SourceMetadata(WireModel):
    """Metadata about the summarized source (mail headers, file type, ...)."""

    from_: Optional[str] = Field(None, alias="from")
    to: Optional[str] = None
    cc: Optional[str] = None
    subject: Optional[str] = None
    date_iso: Optional[str] = None
    thread_id: Optional[str] = None
    labels: List[str] = Field(default_factory=list)
    mime_type: Optional[str] = None
    modified_time: Optional[str] = None
    web_view_link: Optional[str] = None


class _StructuredContent(WireModel):
    """Fields shared by both artifact kinds."""

    title: constr(min_length=1)
    created_at_iso: str = Field(default_factory=iso_now)
    content_date_iso: Optional[str] = Field(
        None, description="When the underlying content happened (not when summarized)"
    )
    tags: List[str] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)
    participants: List[str] = Field(default_factory=list)
    entities: List[Entity] = Field(default_factory=list)
    decisions: List[Decision] = Field(default_factory=list)
    open_loops: List[OpenLoop] = Field(default_factory=list)
    risks: List[Risk] = Field(default_factory=list)

    @property
    def artifact_key(self) -> str:
        raise NotImplementedError


class SummaryArtifact(_StructuredContent):
    """A summary of one source item."""

    kind: Literal["summary"] = Field(default="summary", description="Artifact kind")
    artifact_id: constr(min_length=1) = Field(..., description="Stable artifact id")
    summary: str
    highlights: List[str] = Field(default_factory=list)
    evidence: List[Evidence] = Field(default_factory=list)
    date_confidence: Optional[float] = Field(None, ge=0, le=1)
    source: SourceType
    source_id: constr(min_length=1)
    source_metadata: Optional[SourceMetadata] = None
    document_id: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("documentId", "driveFileId", "document_id"),
        serialization_alias="documentId",
        description="Id of this document in the backing store, once written",
    )
    model: Optional[str] = None
    version: int = SCHEMA_VERSION

    @property
    def artifact_key(self) -> str:
        return self.artifact_id


class SynthesisArtifact(_StructuredContent):
    """A synthesis across several artifacts."""

    kind: Literal["synthesis"] = Field(default="synthesis", description="Artifact kind")
    id: constr(min_length=1) = Field(..., description="Stable artifact id")
    mode: SynthesisMode
    source_artifact_ids: List[str] = Field(default_factory=list)
    content: str
    summary: Optional[str] = None
    citations: List[Citation] = Field(default_factory=list)
    document_id: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("documentId", "driveFileId", "document_id"),
        serialization_alias="documentId",
    )
    model: Optional[str] = None
    version: int = SCHEMA_VERSION

    @field_validator("source_artifact_ids")
    @classmethod
    def _dedupe_sources(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(v.strip() for v in value if v.strip()))

    @property
    def artifact_key(self) -> str:
        return self.id


Artifact = Annotated[
    Union[SummaryArtifact, SynthesisArtifact],
    Field(discriminator="kind"),
]
