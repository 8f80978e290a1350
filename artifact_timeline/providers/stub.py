"""
Deterministic offline provider.

Produces well-formed JSON derived only from the request payload, so every
higher layer can be exercised without network access or credentials.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List

from .base import GenerationProvider

EVIDENCE_CHARS = 180
EXCERPT_CHARS = 220


def _first_sentence(text: str) -> str:
    text = " ".join(text.split())
    for stop in (". ", "! ", "? "):
        head, sep, _ = text.partition(stop)
        if sep:
            return head + stop.strip()
    return text


class StubProvider(GenerationProvider):
    """Generation provider that never leaves the process."""

    name = "stub"

    def __init__(self, model: str = "stub"):
        super().__init__(model=model)

    async def _complete(self, task: str, system_prompt: str, payload: Dict[str, Any]) -> str:
        handler = getattr(self, f"_{task}", None)
        if handler is None:
            raise ValueError(f"Unsupported task: {task}")
        return json.dumps(handler(payload))

    def _summarize(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        text = payload.get("text") or ""
        title = payload.get("title") or "Untitled"
        metadata = payload.get("sourceMetadata") or {}
        date_iso = metadata.get("dateISO")

        summary = _first_sentence(text) or f"Summary of {title}."
        evidence = []
        if text.strip():
            evidence.append(
                {"sourceId": payload.get("sourceId"), "excerpt": text.strip()[:EVIDENCE_CHARS]}
            )
        return {
            "summary": summary,
            "highlights": [f"Source: {title}"],
            "evidence": evidence,
            "contentDateISO": date_iso,
            "dateConfidence": 0.95 if date_iso else 0.2,
            "model": self.model,
        }

    def _chat(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        artifacts: List[Dict[str, Any]] = payload.get("artifacts") or []
        if not artifacts:
            return {
                "answer": "No matching timeline artifacts were provided.",
                "citations": [],
                "usedArtifactIds": [],
            }

        top = artifacts[0]
        highlights = top.get("highlights") or []
        excerpt = highlights[0] if highlights else (top.get("summary") or "")[:EXCERPT_CHARS]
        return {
            "answer": f"Based on the provided timeline artifacts, {top.get('summary', '')}".strip(),
            "citations": [{"artifactId": top["artifactId"], "excerpt": excerpt}],
            "usedArtifactIds": [artifact["artifactId"] for artifact in artifacts],
        }

    def _synthesize(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        artifacts: List[Dict[str, Any]] = payload.get("artifacts") or []
        mode = payload.get("mode") or "briefing"
        lines = [
            f"- {artifact.get('title') or artifact['artifactId']}: {artifact.get('summary', '')}"
            for artifact in artifacts
        ]
        content = "\n".join(lines) or "No artifacts were supplied."
        return {
            "synthesis": {
                "mode": mode,
                "title": payload.get("title"),
                "content": content,
                "keyPoints": [artifact.get("summary", "") for artifact in artifacts[:5]],
            },
            "citations": [
                {"artifactId": artifact["artifactId"], "excerpt": artifact.get("summary", "")[:EXCERPT_CHARS]}
                for artifact in artifacts
            ],
        }
