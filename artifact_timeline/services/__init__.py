"""
Services composing the store, index, aliases and provider into the
artifact, chat and synthesis operations.
"""

from .artifacts import ArtifactService, summary_artifact_id, summary_filename
from .chat import ChatService
from .context import CHAT_LIMITS, SYNTHESIS_LIMITS, PackLimits, pack_context, tokenize
from .synthesis import SynthesisService, mode_title, synthesis_id

__all__ = [
    "ArtifactService",
    "CHAT_LIMITS",
    "ChatService",
    "PackLimits",
    "SYNTHESIS_LIMITS",
    "SynthesisService",
    "mode_title",
    "pack_context",
    "summary_artifact_id",
    "summary_filename",
    "synthesis_id",
    "tokenize",
]
