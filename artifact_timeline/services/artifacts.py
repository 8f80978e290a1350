"""
Artifact write paths.

Every path that creates or patches an artifact document also upserts its
index entry, so the index stays current for writes made here.
"""

from __future__ import annotations

from typing import Optional, Union

import structlog

from ..entities import AliasService, canonicalize_entities
from ..errors import invalid_request
from ..index import SUMMARY_SUFFIX, ArtifactIndexService, entry_from_artifact, synthesis_filename
from ..models import (
    SourceType,
    SummaryArtifact,
    SynthesisArtifact,
    decode_artifact,
)
from ..models.decode import DecodeFailure
from ..models.primitives import is_iso_date
from ..providers import GenerationProvider, SummarizeInput
from ..store import ResilientStore, sanitize_filename

logger = structlog.get_logger()

AnyArtifact = Union[SummaryArtifact, SynthesisArtifact]


def summary_filename(artifact: SummaryArtifact) -> str:
    return sanitize_filename(artifact.title, fallback=artifact.artifact_id) + SUMMARY_SUFFIX


def summary_artifact_id(source: SourceType, source_id: str) -> str:
    return f"{source.value}:{source_id}"


class ArtifactService:
    """Persists summaries and syntheses and keeps the index in step."""

    def __init__(
        self,
        store: ResilientStore,
        index: ArtifactIndexService,
        aliases: AliasService,
    ):
        self.store = store
        self.index = index
        self.aliases = aliases

    async def _existing_document(self, space_id: str, artifact: AnyArtifact) -> Optional[str]:
        """Document id to overwrite, checked against the space."""
        document_id = artifact.document_id
        if document_id is None:
            index, _ = await self.index.load(space_id)
            found, _ = await self.index.resolve(space_id, index.artifacts, [artifact.artifact_key])
            entry = found.get(artifact.artifact_key)
            document_id = entry.document_id if entry else None
        if document_id is not None:
            await self.store.assert_in_space(document_id, space_id)
        return document_id

    async def _persist(self, space_id: str, artifact: AnyArtifact, name: str, label: str) -> AnyArtifact:
        existing_id = await self._existing_document(space_id, artifact)
        if existing_id:
            saved = artifact.model_copy(update={"document_id": existing_id})
            await self.store.write_json(
                space_id, name, saved.to_wire(), existing_id=existing_id, label=label
            )
        else:
            document_id = await self.store.write_json(space_id, name, artifact.to_wire(), label=label)
            saved = artifact.model_copy(update={"document_id": document_id})
            await self.store.write_json(
                space_id, name, saved.to_wire(), existing_id=document_id, label=label
            )

        await self.index.record(space_id, entry_from_artifact(saved, saved.document_id))
        return saved

    async def save_summary(self, space_id: str, artifact: SummaryArtifact) -> SummaryArtifact:
        """Canonicalize entities, write the summary document and index it."""
        aliases = await self.aliases.read_best_effort(space_id)
        artifact = artifact.model_copy(
            update={"entities": canonicalize_entities(artifact.entities, aliases)}
        )
        saved = await self._persist(space_id, artifact, summary_filename(artifact), "summary")
        logger.info(
            "summary_saved",
            artifact_id=saved.artifact_id,
            document_id=saved.document_id,
            entities=len(saved.entities),
        )
        return saved

    async def summarize(
        self,
        space_id: str,
        source: SummarizeInput,
        provider: GenerationProvider,
        artifact_id: Optional[str] = None,
    ) -> SummaryArtifact:
        """Summarize ``source`` with ``provider`` and save the result."""
        if source.source is None or not source.source_id:
            raise invalid_request("Summaries need a source and sourceId.")

        output = await provider.summarize(source)
        content_date = output.content_date_iso
        if content_date is None and source.source_metadata is not None:
            content_date = source.source_metadata.date_iso

        artifact = SummaryArtifact(
            artifact_id=artifact_id or summary_artifact_id(source.source, source.source_id),
            title=source.title,
            summary=output.summary,
            highlights=output.highlights,
            evidence=output.evidence,
            date_confidence=output.date_confidence,
            content_date_iso=content_date,
            source=source.source,
            source_id=source.source_id,
            source_metadata=source.source_metadata,
            tags=output.tags,
            topics=output.topics,
            participants=output.participants,
            entities=output.entities,
            decisions=output.decisions,
            open_loops=output.open_loops,
            risks=output.risks,
            model=output.model,
        )
        return await self.save_summary(space_id, artifact)

    async def backfill_content_date(
        self, space_id: str, artifact_id: str, content_date_iso: str
    ) -> AnyArtifact:
        """Set the content date on an existing artifact and its index entry."""
        if not content_date_iso or not is_iso_date(content_date_iso):
            raise invalid_request("contentDateISO must be an ISO-8601 date.")

        index, _ = await self.index.load(space_id)
        found, unknown = await self.index.resolve(space_id, index.artifacts, [artifact_id])
        if unknown:
            raise invalid_request("One or more artifactIds are unknown.", unknownArtifactIds=unknown)
        entry = found[artifact_id]

        decoded = decode_artifact(await self.store.read_in_space(entry.document_id, space_id))
        if isinstance(decoded, DecodeFailure):
            raise invalid_request(
                "Artifact document could not be decoded.",
                artifactId=artifact_id,
                reason=decoded.reason,
            )

        patched = decoded.model_copy(
            update={"content_date_iso": content_date_iso, "document_id": entry.document_id}
        )
        if isinstance(patched, SummaryArtifact):
            patched = patched.model_copy(update={"date_confidence": 1.0})
        await self.store.write_json(
            space_id, "", patched.to_wire(), existing_id=entry.document_id, label="artifact"
        )
        await self.index.record(space_id, entry_from_artifact(patched, entry.document_id))
        logger.info("content_date_backfilled", artifact_id=artifact_id)
        return patched

    async def save_synthesis(self, space_id: str, artifact: SynthesisArtifact) -> SynthesisArtifact:
        """Write a synthesis document and index it."""
        name = synthesis_filename(artifact.created_at_iso, artifact.mode.value, artifact.id)
        saved = await self._persist(space_id, artifact, name, "synthesis")
        logger.info(
            "synthesis_saved",
            artifact_id=saved.id,
            document_id=saved.document_id,
            sources=len(saved.source_artifact_ids),
        )
        return saved
