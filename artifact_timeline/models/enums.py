"""
Canonical enums.

Documents and requests MUST use these values; anything else fails
validation at the decode boundary.
"""

from enum import Enum


class ArtifactKind(str, Enum):
    """Kinds of generated artifacts."""

    SUMMARY = "summary"
    SYNTHESIS = "synthesis"


class EntityType(str, Enum):
    """Types of named entities."""

    PERSON = "person"
    ORG = "org"
    PROJECT = "project"
    PRODUCT = "product"
    PLACE = "place"
    OTHER = "other"


class OpenLoopStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class Level(str, Enum):
    """Three-step scale used for risk severity and likelihood."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SourceType(str, Enum):
    """Where the summarized material came from."""

    GMAIL = "gmail"
    DRIVE = "drive"


class SynthesisMode(str, Enum):
    BRIEFING = "briefing"
    STATUS_REPORT = "status_report"
    DECISION_LOG = "decision_log"
    OPEN_LOOPS = "open_loops"
