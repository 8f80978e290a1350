"""
In-process object store.

Used for local runs and tests. Behaves like the remote store where it
matters: unknown ids raise ``StoreHTTPError(404)``, listings are paginated,
and bodies come back as stored text.
"""

from __future__ import annotations

import json
import uuid
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from .base import (
    JSON_MIME_TYPE,
    Body,
    FileListing,
    FileQuery,
    ObjectStore,
    StoredFile,
    StoreHTTPError,
)


def _encode(body: Body) -> str:
    if isinstance(body, (bytes, bytearray)):
        return body.decode("utf-8")
    if isinstance(body, str):
        return body
    return json.dumps(body)


class InMemoryObjectStore(ObjectStore):
    """Dictionary-backed store.

    ``calls`` counts invocations per operation so tests can assert read
    budgets.
    """

    def __init__(self) -> None:
        self._files: Dict[str, StoredFile] = {}
        self._bodies: Dict[str, str] = {}
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.calls: Counter = Counter()

    def _tick(self) -> str:
        # strictly increasing mtimes keep ordering deterministic
        self._clock += timedelta(seconds=1)
        return self._clock.isoformat().replace("+00:00", "Z")

    def _require(self, file_id: str) -> StoredFile:
        stored = self._files.get(file_id)
        if stored is None:
            raise StoreHTTPError(404, f"file {file_id} not found")
        return stored

    async def create(self, name: str, parent_id: str, mime_type: str, body: Body) -> str:
        self.calls["create"] += 1
        file_id = uuid.uuid4().hex
        self._files[file_id] = StoredFile(
            id=file_id,
            name=name,
            parents=[parent_id],
            mime_type=mime_type,
            modified_time=self._tick(),
        )
        self._bodies[file_id] = _encode(body)
        return file_id

    async def get_metadata(self, file_id: str) -> StoredFile:
        self.calls["get_metadata"] += 1
        return self._require(file_id).model_copy()

    async def get_content(self, file_id: str) -> Any:
        self.calls["get_content"] += 1
        self._require(file_id)
        return self._bodies[file_id]

    async def update(self, file_id: str, body: Body, mime_type: str = JSON_MIME_TYPE) -> str:
        self.calls["update"] += 1
        stored = self._require(file_id)
        self._bodies[file_id] = _encode(body)
        self._files[file_id] = stored.model_copy(
            update={"modified_time": self._tick(), "mime_type": mime_type}
        )
        return file_id

    async def list(
        self,
        query: FileQuery,
        page_token: Optional[str] = None,
        page_size: int = 100,
        order_by: Optional[str] = None,
    ) -> FileListing:
        self.calls["list"] += 1
        matched: List[StoredFile] = [f for f in self._files.values() if query.matches(f)]
        if order_by and order_by.startswith("modifiedTime"):
            matched.sort(
                key=lambda f: f.modified_time or "",
                reverse=order_by.endswith("desc"),
            )

        offset = int(page_token) if page_token else 0
        page = matched[offset : offset + page_size]
        next_offset = offset + page_size
        return FileListing(
            items=[f.model_copy() for f in page],
            next_page_token=str(next_offset) if next_offset < len(matched) else None,
        )

    # Test helpers

    def put_raw(self, name: str, parent_id: str, body: str, mime_type: str = JSON_MIME_TYPE) -> str:
        """Insert a document without counting a call."""
        file_id = uuid.uuid4().hex
        self._files[file_id] = StoredFile(
            id=file_id,
            name=name,
            parents=[parent_id],
            mime_type=mime_type,
            modified_time=self._tick(),
        )
        self._bodies[file_id] = body
        return file_id

    def trash(self, file_id: str) -> None:
        stored = self._require(file_id)
        self._files[file_id] = stored.model_copy(update={"trashed": True})

    def body_of(self, file_id: str) -> str:
        self._require(file_id)
        return self._bodies[file_id]
