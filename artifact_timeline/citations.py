"""
Citation integrity.

Providers assert citations; nothing guarantees they cite only what they
were given. ``normalize_citations`` is the single place provider citations
are checked against the artifacts actually supplied as context. Callers
must not surface provider citations that have not passed through it.
"""

from __future__ import annotations

import re
from typing import Any, Collection, Iterable, List, Mapping, Union

from .models import Citation

DEFAULT_MAX_CITATIONS = 10
DEFAULT_MAX_EXCERPT_CHARS = 300

_WHITESPACE = re.compile(r"\s+")

CitationLike = Union[Citation, Mapping[str, Any]]


def _fields(citation: CitationLike):
    if isinstance(citation, Citation):
        return citation.artifact_id, citation.excerpt
    artifact_id = citation.get("artifactId", citation.get("artifact_id"))
    return artifact_id, citation.get("excerpt")


def excerpt_key(excerpt: str) -> str:
    return _WHITESPACE.sub(" ", excerpt.lower()).strip()


def normalize_citations(
    citations: Iterable[CitationLike],
    allowed_artifact_ids: Collection[str],
    max_citations: int = DEFAULT_MAX_CITATIONS,
    max_excerpt_chars: int = DEFAULT_MAX_EXCERPT_CHARS,
) -> List[Citation]:
    """Keep only grounded, distinct citations.

    - ids and excerpts are trimmed; empty excerpts are dropped
    - citations to artifacts not in ``allowed_artifact_ids`` are dropped
    - excerpts are clamped to ``max_excerpt_chars``
    - duplicates by lowercased, whitespace-collapsed excerpt are dropped
      (first occurrence wins)
    - at most ``max_citations`` are returned
    """
    allowed = set(allowed_artifact_ids)
    seen = set()
    normalized: List[Citation] = []

    for citation in citations or ():
        artifact_id, excerpt = _fields(citation)
        if not isinstance(artifact_id, str) or not isinstance(excerpt, str):
            continue
        artifact_id = artifact_id.strip()
        excerpt = excerpt.strip()
        if not excerpt or artifact_id not in allowed:
            continue

        excerpt = excerpt[:max_excerpt_chars].strip()
        key = excerpt_key(excerpt)
        if key in seen:
            continue
        seen.add(key)
        normalized.append(Citation(artifact_id=artifact_id, excerpt=excerpt))
        if len(normalized) >= max_citations:
            break

    return normalized
