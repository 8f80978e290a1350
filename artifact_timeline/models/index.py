"""
Artifact index document.

One index lives in each user space. It is a cache of the artifact
documents, kept current by upserting on every write the core performs.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import AliasChoices, Field, constr, field_validator

from .enums import ArtifactKind
from .primitives import Entity, WireModel, iso_now

INDEX_SCHEMA_VERSION = 1


class ArtifactIndexEntry(WireModel):
    """Denormalized, filterable view of one artifact.

    Counts are approximate accelerants for prefiltering; the full document
    is authoritative.
    """

    id: constr(min_length=1) = Field(..., description="Artifact id")
    document_id: constr(min_length=1) = Field(
        ...,
        validation_alias=AliasChoices("documentId", "driveFileId", "document_id"),
        serialization_alias="documentId",
        description="Id of the full document in the store",
    )
    kind: ArtifactKind = Field(default=ArtifactKind.SUMMARY)
    title: str = ""
    content_date_iso: Optional[str] = None
    updated_at_iso: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)
    participants: List[str] = Field(default_factory=list)
    entities: List[Entity] = Field(default_factory=list)
    decisions_count: int = Field(default=0, ge=0)
    open_loops_count: int = Field(default=0, ge=0)
    risks_count: int = Field(default=0, ge=0)


class IndexStats(WireModel):
    total_summaries: int = 0
    total_syntheses: int = 0
    total_selection_sets: int = 0


class ArtifactIndex(WireModel):
    """The per-space index document."""

    version: int = INDEX_SCHEMA_VERSION
    updated_at_iso: str = Field(default_factory=iso_now)
    owner_id: Optional[str] = None
    index_document_id: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("indexDocumentId", "indexFileId", "index_document_id"),
        serialization_alias="indexDocumentId",
    )
    revision: int = Field(
        default=0, ge=0, description="Write counter checked before overwriting"
    )
    artifacts: List[ArtifactIndexEntry] = Field(default_factory=list)
    stats: Optional[IndexStats] = None

    @field_validator("artifacts")
    @classmethod
    def _unique_ids(cls, value: List[ArtifactIndexEntry]) -> List[ArtifactIndexEntry]:
        # last occurrence of an id wins
        by_id = {}
        for entry in value:
            by_id.pop(entry.id, None)
            by_id[entry.id] = entry
        return list(by_id.values())

    def get(self, artifact_id: str) -> Optional[ArtifactIndexEntry]:
        for entry in self.artifacts:
            if entry.id == artifact_id:
                return entry
        return None


class RebuildResult(WireModel):
    """Outcome of rebuilding an index from a store listing."""

    index: ArtifactIndex
    document_id: str
    documents_scanned: int
    partial: bool = Field(
        default=False, description="True when the scan cap was hit with pages left"
    )
