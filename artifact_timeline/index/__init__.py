"""
Artifact index: the per-space catalog used for cheap prefiltering.
"""

from .artifact_index import (
    INDEX_FILENAME,
    ArtifactIndexService,
    entry_from_artifact,
    sanitize_values,
    upsert_entry,
)
from .rebuild import (
    SELECTION_SUFFIX,
    SUMMARY_SUFFIX,
    build_index_from_listing,
    classify_filename,
    is_artifact_file,
    synthesis_filename,
)

__all__ = [
    "INDEX_FILENAME",
    "SELECTION_SUFFIX",
    "SUMMARY_SUFFIX",
    "ArtifactIndexService",
    "build_index_from_listing",
    "classify_filename",
    "entry_from_artifact",
    "is_artifact_file",
    "sanitize_values",
    "synthesis_filename",
    "upsert_entry",
]
