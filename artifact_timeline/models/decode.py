"""
Decode-and-validate boundary for stored documents.

Payloads from the object store arrive as bytes, text, or already-decoded
JSON of unknown shape. Each document type has exactly one decoder here; it
returns either the typed document or a ``DecodeFailure``. Decoders never
raise for bad input, so callers decide whether a failure is fatal.
"""

from __future__ import annotations

import json
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from .aliases import EntityAliases
from .artifacts import Artifact, SummaryArtifact, SynthesisArtifact
from .index import ArtifactIndex

DocumentType = Literal["artifact", "index", "aliases"]


class DecodeFailure(BaseModel):
    """Structured reason a stored payload could not be decoded."""

    model_config = ConfigDict(frozen=True)

    document: DocumentType
    reason: Literal["empty", "not_json", "not_object", "unknown_kind", "invalid_shape"]
    detail: Optional[str] = None


_artifact_adapter: TypeAdapter = TypeAdapter(Artifact)


def is_failure(value: Any) -> bool:
    return isinstance(value, DecodeFailure)


def load_json_payload(raw: Any, document: DocumentType) -> Union[dict, DecodeFailure]:
    """Turn bytes/str/dict into a JSON object."""
    if raw is None:
        return DecodeFailure(document=document, reason="empty")
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            return DecodeFailure(document=document, reason="not_json", detail=str(exc))
    if isinstance(raw, str):
        if not raw.strip():
            return DecodeFailure(document=document, reason="empty")
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            return DecodeFailure(document=document, reason="not_json", detail=exc.msg)
    if not isinstance(raw, dict):
        return DecodeFailure(
            document=document, reason="not_object", detail=type(raw).__name__
        )
    return raw


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))


def decode_artifact(raw: Any) -> Union[SummaryArtifact, SynthesisArtifact, DecodeFailure]:
    """Decode a full artifact document.

    Documents written before ``kind`` existed carry ``artifactId`` and are
    read as summaries.
    """
    payload = load_json_payload(raw, "artifact")
    if isinstance(payload, DecodeFailure):
        return payload

    kind = payload.get("kind")
    if kind is None and "artifactId" in payload:
        payload = {**payload, "kind": "summary"}
    elif kind not in ("summary", "synthesis"):
        return DecodeFailure(document="artifact", reason="unknown_kind", detail=str(kind))

    try:
        return _artifact_adapter.validate_python(payload)
    except ValidationError as exc:
        return DecodeFailure(document="artifact", reason="invalid_shape", detail=_first_error(exc))


def decode_index(raw: Any) -> Union[ArtifactIndex, DecodeFailure]:
    payload = load_json_payload(raw, "index")
    if isinstance(payload, DecodeFailure):
        return payload
    try:
        return ArtifactIndex.model_validate(payload)
    except ValidationError as exc:
        return DecodeFailure(document="index", reason="invalid_shape", detail=_first_error(exc))


def decode_aliases(raw: Any) -> Union[EntityAliases, DecodeFailure]:
    payload = load_json_payload(raw, "aliases")
    if isinstance(payload, DecodeFailure):
        return payload
    try:
        return EntityAliases.model_validate(payload)
    except ValidationError as exc:
        return DecodeFailure(document="aliases", reason="invalid_shape", detail=_first_error(exc))
