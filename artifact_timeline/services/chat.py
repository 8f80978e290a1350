"""
Grounded question answering over a space's summaries.
"""

from __future__ import annotations

from typing import List

import structlog

from ..citations import normalize_citations
from ..index import ArtifactIndexService
from ..models import ChatRequest, ChatResponse, SummaryArtifact
from ..models.primitives import timestamp
from ..providers import ChatInput, GenerationProvider
from ..store import ResilientStore
from .context import (
    CHAT_LIMITS,
    PackLimits,
    decorate_citations,
    pack_context,
    read_summaries,
    score_artifact,
    select_entries,
    tokenize,
)

logger = structlog.get_logger()

DEFAULT_MAX_CANDIDATES = 40

NO_CANDIDATES = (
    "No matching timeline artifacts were found. Try broadening filters, "
    "summarizing more sources, or asking a different question."
)
NO_READABLE = "No matching timeline artifacts were readable. Please retry after syncing."
NO_TERMS = (
    "No meaningful query terms found. Add specific keywords (names, topics, or "
    "dates) to search your artifacts."
)
NO_MATCHES = (
    "No timeline artifacts matched that query. Try different keywords, broader "
    "filters, or summarize more sources first."
)


class ChatService:
    """Retrieves, scores and packs artifacts, then asks the provider."""

    def __init__(
        self,
        store: ResilientStore,
        index: ArtifactIndexService,
        provider: GenerationProvider,
        max_candidates: int = DEFAULT_MAX_CANDIDATES,
        limits: PackLimits = CHAT_LIMITS,
        max_citations: int = 10,
        max_excerpt_chars: int = 300,
    ):
        self.store = store
        self.index = index
        self.provider = provider
        self.max_candidates = max_candidates
        self.limits = limits
        self.max_citations = max_citations
        self.max_excerpt_chars = max_excerpt_chars

    @staticmethod
    def _rank(artifacts: List[SummaryArtifact], terms: List[str]) -> List[SummaryArtifact]:
        scored = [(score_artifact(artifact, terms), artifact) for artifact in artifacts]
        scored = [item for item in scored if item[0] > 0]
        scored.sort(
            key=lambda item: (
                item[0],
                timestamp(item[1].content_date_iso),
                timestamp(item[1].created_at_iso),
            ),
            reverse=True,
        )
        return [artifact for _, artifact in scored]

    async def chat(self, space_id: str, request: ChatRequest) -> ChatResponse:
        """Answer ``request.query`` citing only artifacts supplied as context.

        Empty retrieval returns an explanatory answer with no citations and
        never calls the provider.
        """
        log = logger.bind(space_id=space_id)
        terms = tokenize(request.query)
        if not terms:
            return ChatResponse(answer=NO_TERMS)

        index, _ = await self.index.load(space_id)
        candidates = select_entries(
            index.artifacts,
            date_from_iso=request.date_from_iso,
            date_to_iso=request.date_to_iso,
            tags=request.tags,
            participants=request.participants,
        )[: self.max_candidates]
        if not candidates:
            return ChatResponse(answer=NO_CANDIDATES)

        artifacts = await read_summaries(self.store, space_id, candidates, "chat")
        if not artifacts:
            return ChatResponse(answer=NO_READABLE)

        ranked = self._rank(artifacts, terms)[: request.limit]
        log.info(
            "timeline_chat_retrieval",
            candidates=len(candidates),
            readable=len(artifacts),
            matched=len(ranked),
            terms=len(terms),
        )
        if not ranked:
            return ChatResponse(answer=NO_MATCHES)

        context, used_chars = pack_context(ranked, self.limits)
        log.info(
            "timeline_chat_budget",
            packed=len(context),
            used_chars=used_chars,
            max_chars=self.limits.max_total_chars,
        )

        output = await self.provider.chat(ChatInput(query=request.query, artifacts=context))

        supplied = [item.artifact_id for item in context]
        citations = normalize_citations(
            output.citations,
            supplied,
            max_citations=self.max_citations,
            max_excerpt_chars=self.max_excerpt_chars,
        )
        dropped = len(output.citations) - len(citations)
        if dropped > 0:
            log.warning("timeline_chat_citations_filtered_out", dropped=dropped)

        allowed = set(supplied)
        used = [artifact_id for artifact_id in output.used_artifact_ids if artifact_id in allowed]
        if not used:
            used = list(dict.fromkeys(citation.artifact_id for citation in citations))

        by_id = {artifact.artifact_id: artifact for artifact in ranked}
        return ChatResponse(
            answer=output.answer,
            citations=decorate_citations(citations, by_id),
            used_artifact_ids=used,
        )
