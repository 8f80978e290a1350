"""
Provider output decoding.

Raw provider text becomes JSON, then a validated model. Anything else is a
terminal ``bad_output`` failure: retrying a generation call does not
reliably fix a format error, so these are never retried.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..errors import bad_output
from ..models import Evidence
from ..models.primitives import is_iso_date
from .schemas import ChatOutput, GeneratedSynthesis, SummaryOutput, SynthesisOutput

M = TypeVar("M", bound=BaseModel)

MAX_EVIDENCE = 5
MAX_CHAT_CITATIONS = 10
MAX_USED_ARTIFACT_IDS = 15
MAX_EXCERPT_CHARS = 300


def _load(raw_text: Any) -> Dict[str, Any]:
    if isinstance(raw_text, dict):
        return raw_text
    if not isinstance(raw_text, str):
        raise bad_output("Provider response was not text.")
    text = raw_text.strip()
    # tolerate a fenced ```json block around the payload
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise bad_output("Provider response was not valid JSON.", position=exc.pos) from exc
    if not isinstance(parsed, dict):
        raise bad_output("Provider response was not a JSON object.")
    return parsed


def _validate(model: Type[M], data: Dict[str, Any]) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise bad_output(
            fields=[".".join(str(p) for p in err.get("loc", ())) for err in exc.errors()][:5]
        ) from exc


def _clean_strings(values: List[str]) -> List[str]:
    return [value.strip() for value in values if value and value.strip()]


def parse_summary_output(raw_text: Any) -> SummaryOutput:
    data = _load(raw_text)
    if data.get("contentDateISO") is not None and not is_iso_date(data.get("contentDateISO")):
        raise bad_output(fields=["contentDateISO"])
    confidence = data.get("dateConfidence")
    if isinstance(confidence, (int, float)) and not isinstance(confidence, bool):
        data = {**data, "dateConfidence": min(max(float(confidence), 0.0), 1.0)}
    output = _validate(SummaryOutput, data)

    summary = output.summary.strip()
    if not summary:
        raise bad_output(fields=["summary"])

    evidence = [
        Evidence(
            source_id=(item.source_id or "").strip() or None,
            excerpt=item.excerpt.strip(),
        )
        for item in output.evidence
        if item.excerpt.strip()
    ][:MAX_EVIDENCE]

    content_date = (output.content_date_iso or "").strip() or None
    return output.model_copy(
        update={
            "summary": summary,
            "highlights": _clean_strings(output.highlights),
            "evidence": evidence,
            "content_date_iso": content_date,
        }
    )


def parse_chat_output(raw_text: Any) -> ChatOutput:
    output = _validate(ChatOutput, _load(raw_text))
    answer = output.answer.strip()
    if not answer:
        raise bad_output(fields=["answer"])

    citations = []
    seen = set()
    for citation in output.citations:
        artifact_id = citation.artifact_id.strip()
        excerpt = citation.excerpt.strip()[:MAX_EXCERPT_CHARS]
        if not artifact_id or not excerpt or (artifact_id, excerpt) in seen:
            continue
        seen.add((artifact_id, excerpt))
        citations.append(citation.model_copy(update={"artifact_id": artifact_id, "excerpt": excerpt}))

    used = list(dict.fromkeys(_clean_strings(output.used_artifact_ids)))[:MAX_USED_ARTIFACT_IDS]
    return ChatOutput(
        answer=answer,
        citations=citations[:MAX_CHAT_CITATIONS],
        used_artifact_ids=used,
    )


def parse_synthesis_output(raw_text: Any) -> SynthesisOutput:
    data = _load(raw_text)
    if not isinstance(data.get("synthesis"), dict):
        raise bad_output(fields=["synthesis"])
    output = _validate(SynthesisOutput, data)

    synthesis: GeneratedSynthesis = output.synthesis
    content = synthesis.content.strip()
    if not content:
        raise bad_output(fields=["synthesis.content"])

    return output.model_copy(
        update={
            "synthesis": synthesis.model_copy(
                update={
                    "content": content,
                    "title": (synthesis.title or "").strip() or None,
                    "key_points": _clean_strings(synthesis.key_points),
                }
            )
        }
    )

