"""
Structured query engine.

Two phases:

1. Prefilter the index entries in memory on their denormalized fields.
2. Read at most ``limit_artifacts + scan_buffer`` full documents, one at a
   time in prefilter order, and apply the exact predicates to their
   authoritative sub-lists.

The scan cap trades recall for a hard bound on store reads per request:
prefilter hits that fail the exact checks are not replaced by candidates
beyond the cap.
"""

from __future__ import annotations

import asyncio
from typing import Callable, List, Optional, Sequence, TypeVar

import structlog

from ..entities import resolve_entity
from ..errors import TimelineError
from ..log import safe_error
from ..models import (
    ArtifactIndex,
    ArtifactIndexEntry,
    ArtifactKind,
    EntityAliases,
    OpenLoopStatus,
    QueryMatches,
    QueryResult,
    QueryTotals,
    ScanStats,
    StructuredQueryRequest,
    StructuredQueryResponse,
    decode_artifact,
)
from ..models.decode import DecodeFailure
from ..models.primitives import in_range, timestamp
from ..store import ResilientStore

logger = structlog.get_logger()

T = TypeVar("T")

DEFAULT_SCAN_BUFFER = 10


def _tri_state(flag: Optional[bool], count: int) -> bool:
    if flag is None:
        return True
    return count > 0 if flag else count == 0


def _overlaps(wanted: Optional[Sequence[str]], present: Sequence[str]) -> bool:
    if not wanted:
        return True
    lowered = {value.lower() for value in present}
    return any(value.lower() in lowered for value in wanted)


def _entry_kind(entry: ArtifactIndexEntry) -> ArtifactKind:
    return entry.kind or ArtifactKind.SUMMARY


def prefilter(
    entries: Sequence[ArtifactIndexEntry],
    request: StructuredQueryRequest,
    canonical_entity: Optional[str] = None,
    aliases: Optional[EntityAliases] = None,
) -> List[ArtifactIndexEntry]:
    """Filter index entries on denormalized fields, newest content first."""
    matched = []
    for entry in entries:
        if not in_range(entry.content_date_iso, request.date_from_iso, request.date_to_iso):
            continue
        if request.kind and _entry_kind(entry) not in request.kind:
            continue
        if canonical_entity:
            names = {resolve_entity(item.name, aliases) for item in entry.entities}
            if canonical_entity not in names:
                continue
        if not _tri_state(request.has_open_loops, entry.open_loops_count):
            continue
        if not _tri_state(request.has_risks, entry.risks_count):
            continue
        if not _tri_state(request.has_decisions, entry.decisions_count):
            continue
        if not _overlaps(request.tags, entry.tags):
            continue
        if not _overlaps(request.participants, entry.participants):
            continue
        matched.append(entry)

    # two stable sorts: secondary key first
    matched.sort(key=lambda e: timestamp(e.updated_at_iso), reverse=True)
    matched.sort(key=lambda e: timestamp(e.content_date_iso), reverse=True)
    return matched


def _keep(items: Sequence[T], predicate: Callable[[T], bool]) -> List[T]:
    return [item for item in items if predicate(item)]


class StructuredQueryEngine:
    """Runs structured queries against one space's index and documents."""

    def __init__(self, store: ResilientStore, scan_buffer: int = DEFAULT_SCAN_BUFFER):
        self.store = store
        self.scan_buffer = scan_buffer

    async def _read(self, entry: ArtifactIndexEntry, space_id: Optional[str]):
        if space_id is not None:
            return await self.store.read_in_space(entry.document_id, space_id)
        return await self.store.get_content(entry.document_id)

    async def run(
        self,
        index: ArtifactIndex,
        request: StructuredQueryRequest,
        aliases: Optional[EntityAliases] = None,
        space_id: Optional[str] = None,
    ) -> StructuredQueryResponse:
        """Execute ``request``.

        Per-document read and decode failures are logged and skipped; they
        never fail the query. ``space_id`` enables the parent-containment
        check on every read.
        """
        log = logger.bind(space_id=space_id)
        canonical_entity = resolve_entity(request.entity, aliases)
        echoed = request.model_copy(update={"entity": canonical_entity}) if canonical_entity else request

        candidates = prefilter(index.artifacts, request, canonical_entity, aliases)
        scan_cap = min(len(candidates), request.limit_artifacts + self.scan_buffer)

        results: List[QueryResult] = []
        totals = QueryTotals()
        documents_read = 0
        documents_skipped = 0
        item_limit = request.limit_items_per_artifact

        for entry in candidates[:scan_cap]:
            documents_read += 1
            try:
                raw = await self._read(entry, space_id)
            except asyncio.CancelledError:
                raise
            except TimelineError as exc:
                documents_skipped += 1
                log.warning(
                    "query_document_read_failed",
                    artifact_id=entry.id,
                    error=safe_error(exc),
                )
                continue

            artifact = decode_artifact(raw)
            if isinstance(artifact, DecodeFailure):
                documents_skipped += 1
                log.warning(
                    "query_document_undecodable",
                    artifact_id=entry.id,
                    reason=artifact.reason,
                )
                continue

            open_loops = _keep(
                artifact.open_loops,
                lambda loop: (
                    request.open_loop_status is None
                    or (loop.status or OpenLoopStatus.OPEN) == request.open_loop_status
                )
                and in_range(
                    loop.due_date_iso,
                    request.open_loop_due_from_iso,
                    request.open_loop_due_to_iso,
                ),
            )
            risks = _keep(
                artifact.risks,
                lambda risk: request.risk_severity is None
                or risk.severity == request.risk_severity,
            )
            decisions = _keep(
                artifact.decisions,
                lambda decision: in_range(
                    decision.date_iso, request.decision_from_iso, request.decision_to_iso
                ),
            )

            if not (
                _tri_state(request.has_open_loops, len(open_loops))
                and _tri_state(request.has_risks, len(risks))
                and _tri_state(request.has_decisions, len(decisions))
            ):
                continue

            totals.open_loops_matched += len(open_loops)
            totals.risks_matched += len(risks)
            totals.decisions_matched += len(decisions)

            results.append(
                QueryResult(
                    artifact_id=artifact.artifact_key,
                    kind=ArtifactKind(artifact.kind),
                    title=artifact.title,
                    content_date_iso=artifact.content_date_iso,
                    entities=artifact.entities,
                    matches=QueryMatches(
                        open_loops=open_loops[:item_limit] or None,
                        risks=risks[:item_limit] or None,
                        decisions=decisions[:item_limit] or None,
                    ),
                )
            )
            if len(results) >= request.limit_artifacts:
                break

        totals.artifacts_matched = len(results)
        log.info(
            "structured_query_complete",
            prefiltered=len(candidates),
            scan_cap=scan_cap,
            documents_read=documents_read,
            documents_skipped=documents_skipped,
            results=len(results),
        )
        return StructuredQueryResponse(
            ok=True,
            query=echoed,
            totals=totals,
            results=results,
            scan=ScanStats(
                prefiltered=len(candidates),
                scan_cap=scan_cap,
                documents_read=documents_read,
                documents_skipped=documents_skipped,
            ),
        )
