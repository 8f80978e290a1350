"""
Candidate selection, keyword scoring and context packing shared by chat
and synthesis.
"""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import structlog

from ..errors import TimelineError
from ..log import safe_error
from ..models import (
    ArtifactIndexEntry,
    ArtifactKind,
    Citation,
    CitedExcerpt,
    Evidence,
    SummaryArtifact,
    decode_artifact,
)
from ..models.decode import DecodeFailure
from ..models.primitives import in_range, timestamp
from ..providers import ContextArtifact
from ..store import ResilientStore

logger = structlog.get_logger()

STOPWORDS = frozenset(
    """
    a an and are as at be but by for from has have how i in is it its me my
    of on or our so that the their them there these they this to was we were
    what when where which who why will with you your about did do does any
    all can could should would been into than then over under
    """.split()
)

TITLE_WEIGHT = 5
SUMMARY_WEIGHT = 3
HIGHLIGHT_WEIGHT = 1

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def tokenize(text: str) -> List[str]:
    """Lowercase, split on non-alphanumerics, drop stopwords and 1-char tokens."""
    tokens = _NON_ALNUM.sub(" ", text.lower()).split()
    return [token for token in tokens if len(token) > 1 and token not in STOPWORDS]


def score_artifact(artifact: SummaryArtifact, terms: Sequence[str]) -> int:
    title = set(tokenize(artifact.title))
    summary = set(tokenize(artifact.summary))
    highlights = set(tokenize(" ".join(artifact.highlights)))
    score = 0
    for term in terms:
        if term in title:
            score += TITLE_WEIGHT
        if term in summary:
            score += SUMMARY_WEIGHT
        if term in highlights:
            score += HIGHLIGHT_WEIGHT
    return score


def _overlaps(wanted: Optional[Sequence[str]], present: Sequence[str]) -> bool:
    if not wanted:
        return True
    lowered = {value.lower() for value in present}
    return any(value.lower() in lowered for value in wanted)


def select_entries(
    entries: Iterable[ArtifactIndexEntry],
    date_from_iso: Optional[str] = None,
    date_to_iso: Optional[str] = None,
    tags: Optional[Sequence[str]] = None,
    participants: Optional[Sequence[str]] = None,
    kinds: Sequence[ArtifactKind] = (ArtifactKind.SUMMARY,),
) -> List[ArtifactIndexEntry]:
    """Filter index entries by window, tags and participants; newest first."""
    selected = [
        entry
        for entry in entries
        if (entry.kind or ArtifactKind.SUMMARY) in kinds
        and in_range(entry.content_date_iso, date_from_iso, date_to_iso)
        and _overlaps(tags, entry.tags)
        and _overlaps(participants, entry.participants)
    ]
    return sort_by_recency(selected)


def sort_by_recency(entries: List[ArtifactIndexEntry]) -> List[ArtifactIndexEntry]:
    entries = sorted(entries, key=lambda e: timestamp(e.updated_at_iso), reverse=True)
    return sorted(entries, key=lambda e: timestamp(e.content_date_iso), reverse=True)


async def read_summaries(
    store: ResilientStore,
    space_id: str,
    entries: Sequence[ArtifactIndexEntry],
    operation: str,
) -> List[SummaryArtifact]:
    """Read and decode summary documents one at a time, skipping failures."""
    artifacts: List[SummaryArtifact] = []
    for entry in entries:
        try:
            raw = await store.read_in_space(entry.document_id, space_id)
        except asyncio.CancelledError:
            raise
        except TimelineError as exc:
            logger.warning(
                "artifact_read_failed",
                operation=operation,
                artifact_id=entry.id,
                error=safe_error(exc),
            )
            continue

        artifact = decode_artifact(raw)
        if isinstance(artifact, DecodeFailure):
            logger.warning(
                "artifact_undecodable",
                operation=operation,
                artifact_id=entry.id,
                reason=artifact.reason,
            )
            continue
        if isinstance(artifact, SummaryArtifact):
            artifacts.append(artifact)
    return artifacts


@dataclass(frozen=True)
class PackLimits:
    """Character caps applied when an artifact is packed as provider context."""

    max_total_chars: int = 24_000
    max_summary_chars: int = 2_000
    max_evidence_chars: int = 1_200
    max_highlight_chars: Optional[int] = None
    max_evidence_items: Optional[int] = None
    max_title_chars: Optional[int] = None
    include_evidence: bool = True


CHAT_LIMITS = PackLimits()

SYNTHESIS_LIMITS = PackLimits(
    max_summary_chars=1_600,
    max_evidence_chars=220,
    max_highlight_chars=200,
    max_evidence_items=5,
    max_title_chars=160,
)


def _clip(value: str, limit: Optional[int]) -> str:
    return value if limit is None else value[:limit]


def to_context(artifact: SummaryArtifact, limits: PackLimits) -> ContextArtifact:
    evidence: Optional[List[Evidence]] = None
    if limits.include_evidence and artifact.evidence:
        items = artifact.evidence[: limits.max_evidence_items]
        if limits.max_evidence_items is None:
            # one shared budget across every excerpt
            budget = limits.max_evidence_chars
            evidence = []
            for item in items:
                if budget <= 0:
                    break
                excerpt = item.excerpt[:budget]
                budget -= len(excerpt)
                evidence.append(item.model_copy(update={"excerpt": excerpt}))
        else:
            evidence = [
                item.model_copy(update={"excerpt": item.excerpt[: limits.max_evidence_chars]})
                for item in items
            ]

    return ContextArtifact(
        artifact_id=artifact.artifact_id,
        title=_clip(artifact.title, limits.max_title_chars),
        content_date_iso=artifact.content_date_iso,
        summary=artifact.summary[: limits.max_summary_chars],
        highlights=[_clip(item, limits.max_highlight_chars) for item in artifact.highlights],
        evidence=evidence or None,
    )


def context_size(item: ContextArtifact) -> int:
    return len(json.dumps(item.to_wire(), ensure_ascii=False))


def pack_context(
    artifacts: Sequence[SummaryArtifact], limits: PackLimits
) -> Tuple[List[ContextArtifact], int]:
    """Pack artifacts in order until the total character budget is spent.

    When not even the first artifact fits, a trimmed version of it is
    returned so the provider always gets some context. Returns the packed
    items and the characters they use.
    """
    packed: List[ContextArtifact] = []
    used = 0
    for artifact in artifacts:
        item = to_context(artifact, limits)
        size = context_size(item)
        if used + size > limits.max_total_chars:
            break
        packed.append(item)
        used += size

    if not packed and artifacts:
        first = artifacts[0]
        item = ContextArtifact(
            artifact_id=first.artifact_id,
            title=_clip(first.title, limits.max_title_chars),
            content_date_iso=first.content_date_iso,
            summary=first.summary[:500],
            highlights=first.highlights[:2],
        )
        packed.append(item)
        used = context_size(item)
    return packed, used


def decorate_citations(
    citations: Sequence[Citation], artifacts: Dict[str, SummaryArtifact]
) -> List[CitedExcerpt]:
    """Attach the cited artifact's title and content date."""
    decorated = []
    for citation in citations:
        artifact = artifacts.get(citation.artifact_id)
        decorated.append(
            CitedExcerpt(
                artifact_id=citation.artifact_id,
                excerpt=citation.excerpt,
                title=artifact.title if artifact else None,
                content_date_iso=artifact.content_date_iso if artifact else None,
            )
        )
    return decorated
