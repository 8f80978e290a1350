"""
Index rebuild from a raw store listing.

Used when the index document is lost, never created, or suspected stale.
Files are classified by name only; no artifact documents are read.
"""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Sequence

from ..models import ArtifactIndex, ArtifactIndexEntry, ArtifactKind, IndexStats, iso_now
from ..models.primitives import timestamp
from ..store import StoredFile

SUMMARY_SUFFIX = " - Summary.json"
SELECTION_SUFFIX = " - Selection.json"
SYNTHESIS_FILENAME = re.compile(
    r"^synthesis_(?P<date>\d{8})_(?P<mode>briefing|status_report|decision_log|open_loops)_(?P<id>.+)\.json$",
    re.IGNORECASE,
)


def strip_suffix(name: str, suffix: str) -> str:
    if name.lower().endswith(suffix.lower()):
        return name[: len(name) - len(suffix)].strip() or "Untitled"
    return name.strip() or "Untitled"


def synthesis_filename(created_at_iso: str, mode: str, synthesis_id: str) -> str:
    return f"synthesis_{created_at_iso[:10].replace('-', '')}_{mode}_{synthesis_id}.json"


def _parse_synthesis_name(name: str) -> Optional[Dict[str, str]]:
    match = SYNTHESIS_FILENAME.match(name)
    if not match:
        return None
    return {"mode": match.group("mode").lower(), "id": match.group("id")}


def classify_filename(name: str) -> Optional[str]:
    """Return ``summary``, ``synthesis``, ``selection`` or None."""
    lowered = name.lower()
    if lowered.endswith(SUMMARY_SUFFIX.lower()):
        return "summary"
    if lowered.endswith(SELECTION_SUFFIX.lower()):
        return "selection"
    if _parse_synthesis_name(name) is not None:
        return "synthesis"
    return None


def is_artifact_file(name: Optional[str]) -> bool:
    """True for summary and synthesis documents, the files a scan cap counts."""
    return bool(name) and classify_filename(name) in ("summary", "synthesis")


def _minimal_entry(item: StoredFile, kind: str) -> ArtifactIndexEntry:
    if kind == "synthesis":
        parsed = _parse_synthesis_name(item.name) or {"id": item.id, "mode": "briefing"}
        return ArtifactIndexEntry(
            id=parsed["id"],
            document_id=item.id,
            kind=ArtifactKind.SYNTHESIS,
            title=parsed["mode"].replace("_", " ").capitalize() + " synthesis",
            updated_at_iso=item.modified_time,
        )
    return ArtifactIndexEntry(
        id=item.id,
        document_id=item.id,
        kind=ArtifactKind.SUMMARY,
        title=strip_suffix(item.name, SUMMARY_SUFFIX),
        updated_at_iso=item.modified_time,
    )


def build_index_from_listing(
    listing: Sequence[StoredFile],
    existing: Optional[ArtifactIndex] = None,
    complete: bool = True,
) -> ArtifactIndex:
    """Build an index from listed files.

    Entries already present in ``existing`` for a still-listed document keep
    their rich fields; everything else gets a minimal entry. Entries whose
    documents are not listed are dropped only when ``complete`` is True; a
    listing cut short by the scan cap keeps them.
    """
    known_by_document = {
        entry.document_id: entry for entry in (existing.artifacts if existing else [])
    }

    entries: List[ArtifactIndexEntry] = []
    listed = set()
    summaries = syntheses = selections = 0
    for item in listing:
        if not item.id or not item.name:
            continue
        kind = classify_filename(item.name)
        if kind is None:
            continue
        if kind == "selection":
            selections += 1
            continue
        if kind == "summary":
            summaries += 1
        else:
            syntheses += 1

        listed.add(item.id)
        known = known_by_document.get(item.id)
        if known is not None:
            entries.append(
                known.model_copy(
                    update={"updated_at_iso": item.modified_time or known.updated_at_iso}
                )
            )
        else:
            entries.append(_minimal_entry(item, kind))

    if not complete:
        for document_id, known in known_by_document.items():
            if document_id in listed:
                continue
            entries.append(known)
            if known.kind == ArtifactKind.SYNTHESIS:
                syntheses += 1
            else:
                summaries += 1

    entries.sort(key=lambda entry: timestamp(entry.updated_at_iso), reverse=True)
    return ArtifactIndex(
        updated_at_iso=iso_now(),
        owner_id=existing.owner_id if existing else None,
        index_document_id=existing.index_document_id if existing else None,
        revision=existing.revision if existing else 0,
        artifacts=entries,
        stats=IndexStats(
            total_summaries=summaries,
            total_syntheses=syntheses,
            total_selection_sets=selections,
        ),
    )
