"""
Generation providers and their output decode boundary.
"""

from .base import GenerationProvider
from .factory import get_provider
from .openai import OpenAIProvider, map_provider_error
from .output import parse_chat_output, parse_summary_output, parse_synthesis_output
from .schemas import (
    ChatInput,
    ChatOutput,
    ContextArtifact,
    GeneratedSynthesis,
    SummarizeInput,
    SummaryOutput,
    SynthesisInput,
    SynthesisOutput,
)
from .stub import StubProvider

__all__ = [
    "ChatInput",
    "ChatOutput",
    "ContextArtifact",
    "GeneratedSynthesis",
    "GenerationProvider",
    "OpenAIProvider",
    "StubProvider",
    "SummarizeInput",
    "SummaryOutput",
    "SynthesisInput",
    "SynthesisOutput",
    "get_provider",
    "map_provider_error",
    "parse_chat_output",
    "parse_summary_output",
    "parse_synthesis_output",
]
