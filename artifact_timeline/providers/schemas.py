"""
Provider input and output shapes.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import Field

from ..models import (
    Citation,
    Decision,
    Entity,
    Evidence,
    OpenLoop,
    Risk,
    SourceMetadata,
    SourceType,
    SynthesisMode,
)
from ..models.primitives import WireModel


class SummarizeInput(WireModel):
    title: str
    text: str
    source: Optional[SourceType] = None
    source_id: Optional[str] = None
    source_metadata: Optional[SourceMetadata] = None


class SummaryOutput(WireModel):
    """Decoded provider summary."""

    summary: str
    highlights: List[str] = Field(default_factory=list)
    evidence: List[Evidence] = Field(default_factory=list)
    date_confidence: Optional[float] = Field(None, ge=0, le=1)
    content_date_iso: Optional[str] = None
    model: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)
    participants: List[str] = Field(default_factory=list)
    entities: List[Entity] = Field(default_factory=list)
    decisions: List[Decision] = Field(default_factory=list)
    open_loops: List[OpenLoop] = Field(default_factory=list)
    risks: List[Risk] = Field(default_factory=list)


class ContextArtifact(WireModel):
    """One artifact as supplied to a provider for chat or synthesis."""

    artifact_id: str
    title: str
    content_date_iso: Optional[str] = None
    summary: str
    highlights: List[str] = Field(default_factory=list)
    evidence: Optional[List[Evidence]] = None


class ChatInput(WireModel):
    query: str
    artifacts: List[ContextArtifact]


class ChatOutput(WireModel):
    answer: str
    citations: List[Citation] = Field(default_factory=list)
    used_artifact_ids: List[str] = Field(default_factory=list)


class SynthesisInput(WireModel):
    mode: SynthesisMode
    title: Optional[str] = None
    include_evidence: bool = False
    artifacts: List[ContextArtifact]


class GeneratedSynthesis(WireModel):
    synthesis_id: Optional[str] = None
    mode: Optional[SynthesisMode] = None
    title: Optional[str] = None
    created_at_iso: Optional[str] = None
    content: str
    key_points: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)
    participants: List[str] = Field(default_factory=list)
    entities: List[Entity] = Field(default_factory=list)
    decisions: List[Decision] = Field(default_factory=list)
    open_loops: List[OpenLoop] = Field(default_factory=list)
    risks: List[Risk] = Field(default_factory=list)


class SynthesisOutput(WireModel):
    synthesis: GeneratedSynthesis
    citations: List[Citation] = Field(default_factory=list)
