"""
Resilient wrapper around an ``ObjectStore``.

Every call goes through ``with_retry(with_timeout(...))`` and is timed.
Failures that survive the retry budget are mapped onto the error taxonomy
and re-raised as ``TimelineError``. Also home to the write-side safety
checks (payload ceiling, file-name sanitization) and the read-side parent
containment check.
"""

from __future__ import annotations

import asyncio
import copy
import json
import re
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog

from ..errors import ErrorCode, TimelineError
from ..log import safe_error
from ..resilience import CancelSignal, RetryPolicy, map_error, with_retry, with_timeout
from .base import JSON_MIME_TYPE, Body, FileListing, FileQuery, ObjectStore, StoredFile

logger = structlog.get_logger()

T = TypeVar("T")

MAX_FILENAME_LENGTH = 80
MAX_PAYLOAD_BYTES = 512_000

_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|]')


def sanitize_filename(value: str, fallback: str) -> str:
    """Strip characters the store rejects and cap the length."""
    sanitized = _UNSAFE_FILENAME_CHARS.sub("", value).strip()
    return sanitized[:MAX_FILENAME_LENGTH] or fallback


class ResilientStore:
    """Object store facade used by every component of the core."""

    def __init__(
        self,
        store: ObjectStore,
        timeout_ms: int = 8000,
        policy: Optional[RetryPolicy] = None,
        max_payload_bytes: int = MAX_PAYLOAD_BYTES,
        signal: Optional[CancelSignal] = None,
    ):
        self.store = store
        self.timeout_ms = timeout_ms
        self.policy = policy or RetryPolicy()
        self.max_payload_bytes = max_payload_bytes
        self.signal = signal

    def with_signal(self, signal: Optional[CancelSignal]) -> "ResilientStore":
        """Return a copy whose calls are aborted when ``signal`` fires."""
        bound = copy.copy(self)
        bound.signal = signal
        return bound

    async def _call(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        started = time.monotonic()
        try:
            return await with_retry(
                lambda: with_timeout(
                    lambda _signal: fn(),
                    timeout_ms=self.timeout_ms,
                    label=operation,
                    parent=self.signal,
                ),
                policy=self.policy,
                operation=operation,
                signal=self.signal,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            payload = map_error(exc, operation)
            logger.warning(
                "store_call_failed",
                operation=operation,
                code=payload.code.value,
                status=payload.status,
                error=safe_error(exc),
            )
            raise TimelineError.from_payload(payload) from exc
        finally:
            logger.debug(
                "timing",
                label=operation,
                duration_ms=int((time.monotonic() - started) * 1000),
            )

    # Raw operations

    async def create(self, name: str, parent_id: str, body: Body, mime_type: str = JSON_MIME_TYPE) -> str:
        return await self._call(
            "store.create", lambda: self.store.create(name, parent_id, mime_type, body)
        )

    async def get_metadata(self, file_id: str) -> StoredFile:
        return await self._call("store.get_metadata", lambda: self.store.get_metadata(file_id))

    async def get_content(self, file_id: str) -> Any:
        return await self._call("store.get_content", lambda: self.store.get_content(file_id))

    async def update(self, file_id: str, body: Body, mime_type: str = JSON_MIME_TYPE) -> str:
        return await self._call(
            "store.update", lambda: self.store.update(file_id, body, mime_type)
        )

    async def list(
        self,
        query: FileQuery,
        page_token: Optional[str] = None,
        page_size: int = 100,
        order_by: Optional[str] = None,
    ) -> FileListing:
        return await self._call(
            "store.list",
            lambda: self.store.list(
                query, page_token=page_token, page_size=page_size, order_by=order_by
            ),
        )

    # Safety helpers

    async def find_by_name(self, space_id: str, name: str) -> Optional[str]:
        """Id of the first non-trashed document named ``name`` in the space."""
        listing = await self.list(
            FileQuery(parent_id=space_id, name_equals=name),
            page_size=1,
            order_by="modifiedTime desc",
        )
        return listing.items[0].id if listing.items else None

    async def assert_in_space(self, file_id: str, space_id: str) -> StoredFile:
        """Reject ids that do not live directly in ``space_id``."""
        metadata = await self.get_metadata(file_id)
        if space_id not in metadata.parents:
            logger.warning("outside_folder_read_blocked", file_id=file_id)
            raise TimelineError(
                ErrorCode.FORBIDDEN_OUTSIDE_FOLDER,
                "File is outside the provisioned folder.",
                details={"fileId": file_id},
            )
        return metadata

    async def read_in_space(self, file_id: str, space_id: str) -> Any:
        """Read a document by id after checking it belongs to ``space_id``."""
        await self.assert_in_space(file_id, space_id)
        return await self.get_content(file_id)

    def serialize(self, document: Any, label: str) -> str:
        """Serialize to JSON, enforcing the payload ceiling."""
        payload = json.dumps(document, indent=2, ensure_ascii=False)
        size = len(payload.encode("utf-8"))
        if size > self.max_payload_bytes:
            raise TimelineError(
                ErrorCode.PAYLOAD_TOO_LARGE,
                f"{label} exceeds {self.max_payload_bytes} bytes.",
                details={
                    "label": label,
                    "actualBytes": size,
                    "limitBytes": self.max_payload_bytes,
                },
            )
        return payload

    async def write_json(
        self,
        space_id: str,
        name: str,
        document: Any,
        existing_id: Optional[str] = None,
        label: str = "document",
    ) -> str:
        """Create or overwrite a JSON document; return its id."""
        payload = self.serialize(document, label)
        if existing_id:
            return await self.update(existing_id, payload)
        return await self.create(name, space_id, payload)

    async def close(self) -> None:
        await self.store.close()
