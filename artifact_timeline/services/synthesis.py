"""
Cross-artifact synthesis.
"""

from __future__ import annotations

import hashlib
from dataclasses import replace
from typing import List, Optional

import structlog

from ..citations import normalize_citations
from ..entities import AliasService, canonicalize_entities
from ..errors import invalid_request
from ..index import ArtifactIndexService
from ..models import (
    ArtifactIndexEntry,
    ArtifactKind,
    SummaryArtifact,
    SynthesisArtifact,
    SynthesisBody,
    SynthesisMode,
    SynthesisRequest,
    SynthesisResponse,
    iso_now,
)
from ..models.primitives import timestamp
from ..providers import GenerationProvider, SynthesisInput
from ..store import ResilientStore
from .artifacts import ArtifactService
from .context import (
    SYNTHESIS_LIMITS,
    PackLimits,
    decorate_citations,
    pack_context,
    read_summaries,
    select_entries,
)

logger = structlog.get_logger()

SUMMARY_PREVIEW_CHARS = 220

NO_MATCHES = (
    "No matching artifacts were found. Try broadening your date range or "
    "filters, or summarize more sources first."
)

MODE_TITLES = {
    SynthesisMode.STATUS_REPORT: "Status report synthesis",
    SynthesisMode.DECISION_LOG: "Decision log synthesis",
    SynthesisMode.OPEN_LOOPS: "Open loops synthesis",
}


def mode_title(mode: SynthesisMode) -> str:
    return MODE_TITLES.get(mode, "Cross-artifact briefing")


def synthesis_id(created_at_iso: str, artifact_ids: List[str], mode: SynthesisMode) -> str:
    digest = hashlib.sha1(
        f"{created_at_iso}:{'|'.join(artifact_ids)}:{mode.value}".encode("utf-8")
    ).hexdigest()
    return f"syn_{digest[:12]}"


class SynthesisService:
    """Selects artifacts, asks the provider to combine them, optionally saves."""

    def __init__(
        self,
        store: ResilientStore,
        index: ArtifactIndexService,
        aliases: AliasService,
        artifacts: ArtifactService,
        provider: GenerationProvider,
        limits: PackLimits = SYNTHESIS_LIMITS,
        max_citations: int = 15,
        max_excerpt_chars: int = 300,
    ):
        self.store = store
        self.index = index
        self.aliases = aliases
        self.artifacts = artifacts
        self.provider = provider
        self.limits = limits
        self.max_citations = max_citations
        self.max_excerpt_chars = max_excerpt_chars

    async def _select(
        self, space_id: str, entries: List[ArtifactIndexEntry], request: SynthesisRequest
    ) -> List[ArtifactIndexEntry]:
        # syntheses are never inputs to another synthesis
        candidates = [e for e in entries if e.kind != ArtifactKind.SYNTHESIS]

        if request.artifact_ids:
            requested = list(dict.fromkeys(request.artifact_ids))
            found, unknown = await self.index.resolve(space_id, candidates, requested)
            if unknown:
                raise invalid_request(
                    "One or more artifactIds are unknown.", unknownArtifactIds=unknown
                )
            return [found[artifact_id] for artifact_id in requested]

        return select_entries(
            candidates,
            date_from_iso=request.date_from_iso,
            date_to_iso=request.date_to_iso,
            tags=request.tags,
            participants=request.participants,
        )[: request.limit]

    async def synthesize(self, space_id: str, request: SynthesisRequest) -> SynthesisResponse:
        """Generate a synthesis over the selected artifacts.

        Raises:
            TimelineError: ``invalid_request`` for unknown explicit ids, or any
                store/provider failure
        """
        log = logger.bind(space_id=space_id, mode=request.mode.value)
        index, _ = await self.index.load(space_id)
        selected = await self._select(space_id, index.artifacts, request)

        sources: List[SummaryArtifact] = []
        if selected:
            sources = await read_summaries(self.store, space_id, selected, "synthesis")

        created_at = iso_now()
        if not sources:
            log.info("timeline_synthesis_empty", selected=len(selected))
            return SynthesisResponse(
                synthesis=SynthesisBody(
                    synthesis_id=f"empty_{int(timestamp(created_at) * 1000)}",
                    mode=request.mode,
                    title=request.title or mode_title(request.mode),
                    created_at_iso=created_at,
                    content=NO_MATCHES,
                    tags=request.tags or [],
                    participants=request.participants or [],
                ),
            )

        limits = self.limits
        if not request.include_evidence:
            limits = replace(limits, include_evidence=False)
        context, used_chars = pack_context(sources, limits)

        output = await self.provider.synthesize(
            SynthesisInput(
                mode=request.mode,
                title=request.title,
                include_evidence=request.include_evidence,
                artifacts=context,
            )
        )
        generated = output.synthesis

        supplied = [item.artifact_id for item in context]
        citations = normalize_citations(
            output.citations,
            supplied,
            max_citations=self.max_citations,
            max_excerpt_chars=self.max_excerpt_chars,
        )
        aliases = await self.aliases.read_best_effort(space_id)

        body = SynthesisBody(
            synthesis_id=generated.synthesis_id or synthesis_id(created_at, supplied, request.mode),
            mode=request.mode,
            title=request.title or generated.title or mode_title(request.mode),
            created_at_iso=created_at,
            content=generated.content,
            key_points=generated.key_points,
            tags=generated.tags or list(request.tags or []),
            topics=generated.topics,
            participants=generated.participants or list(request.participants or []),
            entities=canonicalize_entities(generated.entities, aliases),
            decisions=generated.decisions,
            open_loops=generated.open_loops,
            risks=generated.risks,
        )

        saved_id: Optional[str] = None
        if request.save_to_timeline:
            saved = await self.artifacts.save_synthesis(
                space_id, self._to_artifact(body, sources, supplied, citations)
            )
            saved_id = saved.id

        by_id = {artifact.artifact_id: artifact for artifact in sources}
        log.info(
            "timeline_synthesis_complete",
            selected=len(selected),
            packed=len(context),
            used_chars=used_chars,
            citations=len(citations),
            saved=saved_id is not None,
        )
        return SynthesisResponse(
            synthesis=body,
            citations=decorate_citations(citations, by_id),
            used_artifact_ids=supplied,
            saved_artifact_id=saved_id,
        )

    def _to_artifact(self, body, sources, supplied, citations) -> SynthesisArtifact:
        dated = [s.content_date_iso for s in sources if s.content_date_iso]
        return SynthesisArtifact(
            id=body.synthesis_id,
            mode=body.mode,
            title=body.title,
            created_at_iso=body.created_at_iso,
            content_date_iso=max(dated, key=timestamp) if dated else None,
            source_artifact_ids=supplied,
            content=body.content,
            summary=body.content[:SUMMARY_PREVIEW_CHARS],
            citations=citations,
            tags=body.tags,
            topics=body.topics,
            participants=body.participants,
            entities=body.entities,
            decisions=body.decisions,
            open_loops=body.open_loops,
            risks=body.risks,
            model=self.provider.model or self.provider.name,
        )
