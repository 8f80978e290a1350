"""
Base class for content-generation providers.

A provider turns source text or a set of artifacts into generated prose.
Subclasses only implement ``_complete``: given a task name, a system prompt
and a JSON payload, return the raw model text. The public methods build the
request and push the raw text through the output decode boundary, so every
provider fails with ``bad_output`` the same way.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import structlog

from .output import parse_chat_output, parse_summary_output, parse_synthesis_output
from .schemas import (
    ChatInput,
    ChatOutput,
    SummarizeInput,
    SummaryOutput,
    SynthesisInput,
    SynthesisOutput,
)

logger = structlog.get_logger()


JSON_ONLY = "Return ONLY valid JSON matching the described shape. No prose outside JSON."

SUMMARIZE_PROMPT = (
    "Summarize the source. Respond with JSON keys: summary (string), highlights "
    "(string[]), evidence ({sourceId?, excerpt}[]), contentDateISO (string|null), "
    "dateConfidence (0-1), tags, topics, participants (string[]), entities "
    "({name, type?}[]), decisions ({text, dateISO?, owner?}[]), openLoops "
    "({text, owner?, dueDateISO?, status}[]), risks ({text, severity, owner?, "
    "mitigation?}[]). " + JSON_ONLY
)

CHAT_PROMPT = (
    "Answer the question using ONLY the supplied artifacts. Respond with JSON keys: "
    "answer (string), citations ({artifactId, excerpt}[]) quoting the artifacts, "
    "usedArtifactIds (string[]). " + JSON_ONLY
)

SYNTHESIZE_PROMPT = (
    "Synthesize across the supplied artifacts in the requested mode. Respond with "
    "JSON keys: synthesis ({title, content, keyPoints, tags, topics, participants, "
    "entities, decisions, openLoops, risks}) and citations ({artifactId, excerpt}[]). "
    + JSON_ONLY
)


class GenerationProvider(ABC):
    """
    Abstract base class for generation providers.
    """

    name = "base"

    def __init__(self, model: Optional[str] = None):
        self.model = model

    @abstractmethod
    async def _complete(self, task: str, system_prompt: str, payload: Dict[str, Any]) -> str:
        """Return the raw model text for ``task``. Override in subclasses."""
        pass

    async def close(self) -> None:
        """Release provider resources."""
        return None

    async def _generate(self, task: str, system_prompt: str, payload: Dict[str, Any]) -> str:
        logger.debug("provider_call", provider=self.name, task=task)
        return await self._complete(task, system_prompt, payload)

    async def summarize(self, data: SummarizeInput) -> SummaryOutput:
        raw = await self._generate("summarize", SUMMARIZE_PROMPT, data.to_wire())
        output = parse_summary_output(raw)
        if not output.model:
            output.model = self.model or self.name
        return output

    async def chat(self, data: ChatInput) -> ChatOutput:
        raw = await self._generate("chat", CHAT_PROMPT, data.to_wire())
        return parse_chat_output(raw)

    async def synthesize(self, data: SynthesisInput) -> SynthesisOutput:
        raw = await self._generate("synthesize", SYNTHESIZE_PROMPT, data.to_wire())
        return parse_synthesis_output(raw)

    @staticmethod
    def render_payload(payload: Dict[str, Any]) -> str:
        return json.dumps(payload, ensure_ascii=False, indent=2)
