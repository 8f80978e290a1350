"""
Artifact index service.

The index is one JSON document per user space. It is a cache of the
artifact documents: every write path that creates or patches an artifact
upserts its entry here in the same logical operation, so the index is
never stale for writes the core performed itself.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import structlog

from ..errors import ErrorCode, TimelineError
from ..log import safe_error
from ..models import (
    ArtifactIndex,
    ArtifactIndexEntry,
    ArtifactKind,
    OpenLoopStatus,
    RebuildResult,
    SummaryArtifact,
    SynthesisArtifact,
    decode_artifact,
    decode_index,
    iso_now,
)
from ..models.decode import DecodeFailure
from ..store import FileQuery, ResilientStore, StoredFile
from .rebuild import build_index_from_listing, is_artifact_file

logger = structlog.get_logger()

INDEX_FILENAME = "artifacts_index.json"
MAX_LIST_VALUES = 20
MAX_INDEX_ENTITIES = 10
DEFAULT_MAX_SCAN = 500
DEFAULT_PAGE_SIZE = 100
DEFAULT_RESOLVE_READS = 100


def sanitize_values(values: Iterable[Optional[str]], limit: int = MAX_LIST_VALUES) -> List[str]:
    """Trim, drop blanks, dedupe (first wins) and cap."""
    cleaned = (value.strip() for value in values if value and value.strip())
    return list(dict.fromkeys(cleaned))[:limit]


def entry_from_artifact(
    artifact: Union[SummaryArtifact, SynthesisArtifact], document_id: str
) -> ArtifactIndexEntry:
    """Build the denormalized index entry for a full artifact."""
    tags: List[Optional[str]] = list(artifact.tags)
    participants: List[Optional[str]] = list(artifact.participants)

    if isinstance(artifact, SummaryArtifact):
        kind = ArtifactKind.SUMMARY
        metadata = artifact.source_metadata
        if metadata is not None:
            tags.extend(metadata.labels)
            tags.append(metadata.mime_type)
            participants.extend([metadata.from_, metadata.to])
    else:
        kind = ArtifactKind.SYNTHESIS

    open_loops = [loop for loop in artifact.open_loops if loop.status == OpenLoopStatus.OPEN]
    return ArtifactIndexEntry(
        id=artifact.artifact_key,
        document_id=document_id,
        kind=kind,
        title=artifact.title,
        content_date_iso=artifact.content_date_iso,
        updated_at_iso=artifact.created_at_iso,
        tags=sanitize_values(tags),
        topics=sanitize_values(artifact.topics),
        participants=sanitize_values(participants),
        entities=list(artifact.entities[:MAX_INDEX_ENTITIES]),
        decisions_count=len(artifact.decisions),
        open_loops_count=len(open_loops),
        risks_count=len(artifact.risks),
    )


def upsert_entry(index: ArtifactIndex, entry: ArtifactIndexEntry) -> ArtifactIndex:
    """Replace the entry with the same id (or document), else append.

    Always bumps ``updated_at_iso``. Returns a new index; the input is not
    modified.
    """
    kept = [
        item
        for item in index.artifacts
        if item.id != entry.id and item.document_id != entry.document_id
    ]
    return index.model_copy(
        update={"artifacts": [*kept, entry], "updated_at_iso": iso_now()}
    )


class ArtifactIndexService:
    """Find, read, write, rebuild and upsert the per-space index."""

    def __init__(
        self,
        store: ResilientStore,
        filename: str = INDEX_FILENAME,
        max_write_attempts: int = 3,
    ):
        self.store = store
        self.filename = filename
        self.max_write_attempts = max_write_attempts

    async def find(self, space_id: str) -> Optional[str]:
        """Id of the space's index document, or None."""
        return await self.store.find_by_name(space_id, self.filename)

    async def read(
        self, document_id: str, space_id: Optional[str] = None
    ) -> Optional[ArtifactIndex]:
        """Fetch and decode an index; an undecodable payload reads as absent."""
        decoded = decode_index(await self.store.get_content(document_id))
        if isinstance(decoded, DecodeFailure):
            logger.warning(
                "artifact_index_unreadable",
                document_id=document_id,
                reason=decoded.reason,
                detail=decoded.detail,
            )
            return None
        if space_id is not None:
            decoded = decoded.model_copy(
                update={"owner_id": space_id, "index_document_id": document_id}
            )
        return decoded

    async def load(self, space_id: str) -> Tuple[ArtifactIndex, Optional[str]]:
        """Return the space's index and its id; empty when absent or unreadable."""
        document_id = await self.find(space_id)
        if document_id is None:
            return ArtifactIndex(owner_id=space_id), None
        index = await self.read(document_id, space_id=space_id)
        if index is None:
            return ArtifactIndex(owner_id=space_id, index_document_id=document_id), document_id
        return index, document_id

    async def write(
        self,
        space_id: str,
        existing_id: Optional[str],
        index: ArtifactIndex,
        check_revision: bool = True,
    ) -> str:
        """Create or overwrite the index document; return the effective id.

        When overwriting, the stored revision must still equal
        ``index.revision`` or ``index_conflict`` is raised. The written
        document carries the next revision.
        """
        if existing_id and check_revision:
            current = await self.read(existing_id)
            if current is not None and current.revision != index.revision:
                raise TimelineError(
                    ErrorCode.INDEX_CONFLICT,
                    "Artifact index changed since it was read.",
                    details={
                        "indexDocumentId": existing_id,
                        "expectedRevision": index.revision,
                        "actualRevision": current.revision,
                    },
                )

        payload = index.model_copy(
            update={
                "version": 1,
                "updated_at_iso": iso_now(),
                "owner_id": space_id,
                "index_document_id": existing_id,
                "revision": index.revision + 1,
            }
        )

        if existing_id:
            document_id = await self.store.write_json(
                space_id, self.filename, payload.to_wire(), existing_id=existing_id, label="artifact index"
            )
        else:
            document_id = await self.store.write_json(
                space_id, self.filename, payload.to_wire(), label="artifact index"
            )
            # finalize with its own id
            finalized = payload.model_copy(update={"index_document_id": document_id})
            await self.store.write_json(
                space_id, self.filename, finalized.to_wire(), existing_id=document_id, label="artifact index"
            )

        logger.info(
            "artifact_index_saved",
            index_document_id=document_id,
            entries=len(payload.artifacts),
            revision=payload.revision,
        )
        return document_id

    async def record(self, space_id: str, entry: ArtifactIndexEntry) -> ArtifactIndex:
        """Load, upsert ``entry`` and write back, retrying on revision conflicts."""
        last_error: Optional[TimelineError] = None
        for attempt in range(1, self.max_write_attempts + 1):
            index, document_id = await self.load(space_id)
            updated = upsert_entry(index, entry)
            try:
                await self.write(space_id, document_id, updated)
                return updated
            except TimelineError as exc:
                if exc.code != ErrorCode.INDEX_CONFLICT:
                    raise
                last_error = exc
                logger.warning(
                    "artifact_index_conflict",
                    artifact_id=entry.id,
                    attempt=attempt,
                    max_attempts=self.max_write_attempts,
                )
        raise last_error

    async def list_space(
        self,
        space_id: str,
        max_scan: int = DEFAULT_MAX_SCAN,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Tuple[List[StoredFile], bool]:
        """Page through the space newest first, up to ``max_scan`` artifact files.

        Only summary and synthesis documents count against the cap; other
        files on the pages read are kept. The second element is True when
        the cap cut the listing short.
        """
        files: List[StoredFile] = []
        page_token: Optional[str] = None
        scanned = 0
        while True:
            listing = await self.store.list(
                FileQuery(parent_id=space_id),
                page_token=page_token,
                page_size=page_size,
                order_by="modifiedTime desc",
            )
            for item in listing.items:
                counted = is_artifact_file(item.name)
                if counted and scanned >= max_scan:
                    return files, True
                files.append(item)
                if counted:
                    scanned += 1
            page_token = listing.next_page_token
            if not page_token:
                return files, False
            if scanned >= max_scan:
                return files, True

    async def resolve(
        self,
        space_id: str,
        entries: Sequence[ArtifactIndexEntry],
        artifact_ids: Sequence[str],
        max_reads: int = DEFAULT_RESOLVE_READS,
    ) -> Tuple[Dict[str, ArtifactIndexEntry], List[str]]:
        """Map artifact ids to entries; return the matches and the unknown ids.

        An id matches an entry's ``id`` or ``document_id``. Summaries rebuilt
        from a listing are keyed by document id until rewritten, so ids still
        unmatched are looked up by reading those documents (at most
        ``max_reads``). Matched entries carry the requested id.
        """
        by_key: Dict[str, ArtifactIndexEntry] = {}
        for entry in entries:
            by_key.setdefault(entry.id, entry)
            by_key.setdefault(entry.document_id, entry)

        found: Dict[str, ArtifactIndexEntry] = {}
        pending: List[str] = []
        for artifact_id in dict.fromkeys(artifact_ids):
            entry = by_key.get(artifact_id)
            if entry is None:
                pending.append(artifact_id)
            else:
                found[artifact_id] = entry

        listed_only = [entry for entry in entries if entry.id == entry.document_id]
        wanted = set(pending)
        for entry in listed_only[:max_reads]:
            if not wanted:
                break
            try:
                raw = await self.store.read_in_space(entry.document_id, space_id)
            except TimelineError as exc:
                logger.warning(
                    "artifact_read_failed",
                    operation="resolve",
                    document_id=entry.document_id,
                    error=safe_error(exc),
                )
                continue
            decoded = decode_artifact(raw)
            if isinstance(decoded, DecodeFailure) or decoded.artifact_key not in wanted:
                continue
            found[decoded.artifact_key] = entry.model_copy(update={"id": decoded.artifact_key})
            wanted.discard(decoded.artifact_key)

        unknown = [artifact_id for artifact_id in pending if artifact_id not in found]
        return found, unknown

    async def rebuild(
        self,
        space_id: str,
        max_scan: int = DEFAULT_MAX_SCAN,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> RebuildResult:
        """Rebuild the index from a listing of the space and write it back."""
        files, partial = await self.list_space(space_id, max_scan, page_size)
        existing, existing_id = await self.load(space_id)
        built = build_index_from_listing(files, existing, complete=not partial)
        document_id = await self.write(space_id, existing_id, built)
        scanned = sum(1 for item in files if is_artifact_file(item.name))

        final = built.model_copy(
            update={
                "owner_id": space_id,
                "index_document_id": document_id,
                "revision": built.revision + 1,
            }
        )
        logger.info(
            "artifact_index_rebuilt",
            scanned=scanned,
            entries=len(final.artifacts),
            partial=partial,
        )
        return RebuildResult(
            index=final,
            document_id=document_id,
            documents_scanned=scanned,
            partial=partial,
        )

