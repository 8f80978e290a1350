"""
Artifact Timeline

Storage, indexing, retrieval and grounding core for a personal timeline of
AI-generated artifacts kept in the user's own object store.
"""

import importlib.metadata

__version__ = importlib.metadata.version("artifact-timeline")

from .config import Settings, get_settings
from .core import TimelineCore
from .errors import ErrorCode, TimelineError
from .log import configure_logging
from .models import (
    ArtifactIndex,
    ArtifactIndexEntry,
    ChatRequest,
    EntityAliases,
    StructuredQueryRequest,
    SummaryArtifact,
    SynthesisArtifact,
    SynthesisRequest,
)

__all__ = [
    "ArtifactIndex",
    "ArtifactIndexEntry",
    "ChatRequest",
    "EntityAliases",
    "ErrorCode",
    "Settings",
    "StructuredQueryRequest",
    "SummaryArtifact",
    "SynthesisArtifact",
    "SynthesisRequest",
    "TimelineCore",
    "TimelineError",
    "configure_logging",
    "get_settings",
]
