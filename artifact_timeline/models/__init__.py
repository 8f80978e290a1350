"""
Artifact Timeline document and request models.

Attributes are snake_case; serialized documents use camelCase keys via
``WireModel.to_wire()``.
"""

from .aliases import AliasRow, EntityAliases
from .artifacts import (
    Artifact,
    Citation,
    Decision,
    Evidence,
    OpenLoop,
    Risk,
    SourceMetadata,
    SummaryArtifact,
    SynthesisArtifact,
)
from .chat import (
    ChatRequest,
    ChatResponse,
    CitedExcerpt,
    SynthesisBody,
    SynthesisRequest,
    SynthesisResponse,
)
from .decode import (
    DecodeFailure,
    decode_aliases,
    decode_artifact,
    decode_index,
    is_failure,
    load_json_payload,
)
from .enums import (
    ArtifactKind,
    EntityType,
    Level,
    OpenLoopStatus,
    SourceType,
    SynthesisMode,
)
from .index import ArtifactIndex, ArtifactIndexEntry, IndexStats, RebuildResult
from .primitives import Entity, WireModel, iso_now, parse_iso, utc_now
from .query import (
    QueryMatches,
    QueryResult,
    QueryTotals,
    ScanStats,
    StructuredQueryRequest,
    StructuredQueryResponse,
)

__all__ = [
    # Enums
    "ArtifactKind",
    "EntityType",
    "Level",
    "OpenLoopStatus",
    "SourceType",
    "SynthesisMode",
    # Primitives
    "Entity",
    "WireModel",
    "iso_now",
    "parse_iso",
    "utc_now",
    # Documents
    "Artifact",
    "Citation",
    "Decision",
    "Evidence",
    "OpenLoop",
    "Risk",
    "SourceMetadata",
    "SummaryArtifact",
    "SynthesisArtifact",
    "ArtifactIndex",
    "ArtifactIndexEntry",
    "IndexStats",
    "RebuildResult",
    "AliasRow",
    "EntityAliases",
    # Requests / responses
    "ChatRequest",
    "ChatResponse",
    "CitedExcerpt",
    "SynthesisBody",
    "SynthesisRequest",
    "SynthesisResponse",
    "QueryMatches",
    "QueryResult",
    "QueryTotals",
    "ScanStats",
    "StructuredQueryRequest",
    "StructuredQueryResponse",
    # Decoding
    "DecodeFailure",
    "decode_aliases",
    "decode_artifact",
    "decode_index",
    "is_failure",
    "load_json_payload",
]
