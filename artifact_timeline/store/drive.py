"""
Google Drive v3 backed object store.

Talks to the Drive REST API directly with ``httpx``. Errors are not caught
here: ``raise_for_status`` surfaces ``httpx.HTTPStatusError`` and transport
failures propagate, so ``ResilientStore`` can classify and retry them.
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Dict, Optional

import httpx
import structlog

from .base import (
    JSON_MIME_TYPE,
    Body,
    FileListing,
    FileQuery,
    ObjectStore,
    StoredFile,
)

logger = structlog.get_logger()

FILE_FIELDS = "id,name,parents,mimeType,modifiedTime,trashed"


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def render_query(query: FileQuery) -> str:
    """Render a ``FileQuery`` in the Drive search syntax."""
    clauses = [f"'{_quote(query.parent_id)}' in parents"]
    if not query.include_trashed:
        clauses.append("trashed=false")
    if query.name_equals is not None:
        clauses.append(f"name='{_quote(query.name_equals)}'")
    if query.name_contains is not None:
        clauses.append(f"name contains '{_quote(query.name_contains)}'")
    return " and ".join(clauses)


def _serialize(body: Body) -> bytes:
    if isinstance(body, (bytes, bytearray)):
        return bytes(body)
    if isinstance(body, str):
        return body.encode("utf-8")
    return json.dumps(body).encode("utf-8")


def multipart_body(boundary: str, metadata: Dict[str, Any], mime_type: str, content: bytes) -> bytes:
    """Encode a ``multipart/related`` upload: metadata part, then media part."""
    return b"".join(
        [
            f"--{boundary}\r\n".encode("utf-8"),
            b"Content-Type: application/json; charset=UTF-8\r\n\r\n",
            json.dumps(metadata).encode("utf-8"),
            f"\r\n--{boundary}\r\n".encode("utf-8"),
            f"Content-Type: {mime_type}\r\n\r\n".encode("utf-8"),
            content,
            f"\r\n--{boundary}--\r\n".encode("utf-8"),
        ]
    )


class DriveObjectStore(ObjectStore):
    """
    Object store client for the Drive v3 REST API.
    """

    def __init__(
        self,
        access_token: str,
        base_url: str = "https://www.googleapis.com",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=30.0)
        self._headers = {"Authorization": f"Bearer {access_token}"}

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    def _files_url(self, file_id: Optional[str] = None, upload: bool = False) -> str:
        prefix = "/upload/drive/v3/files" if upload else "/drive/v3/files"
        return f"{self.base_url}{prefix}/{file_id}" if file_id else f"{self.base_url}{prefix}"

    async def create(self, name: str, parent_id: str, mime_type: str, body: Body) -> str:
        """Create the file and its content in one multipart request."""
        boundary = f"timeline-{uuid.uuid4().hex}"
        response = await self.client.post(
            self._files_url(upload=True),
            params={"uploadType": "multipart", "fields": "id"},
            content=multipart_body(
                boundary,
                {"name": name, "parents": [parent_id], "mimeType": mime_type},
                mime_type,
                _serialize(body),
            ),
            headers={
                **self._headers,
                "Content-Type": f"multipart/related; boundary={boundary}",
            },
        )
        response.raise_for_status()
        file_id = response.json()["id"]
        logger.debug("drive_file_created", file_id=file_id)
        return file_id

    async def get_metadata(self, file_id: str) -> StoredFile:
        response = await self.client.get(
            self._files_url(file_id),
            params={"fields": FILE_FIELDS},
            headers=self._headers,
        )
        response.raise_for_status()
        return StoredFile.model_validate(response.json())

    async def get_content(self, file_id: str) -> Any:
        response = await self.client.get(
            self._files_url(file_id),
            params={"alt": "media"},
            headers=self._headers,
        )
        response.raise_for_status()
        return response.text

    async def update(self, file_id: str, body: Body, mime_type: str = JSON_MIME_TYPE) -> str:
        response = await self.client.patch(
            self._files_url(file_id, upload=True),
            params={"uploadType": "media", "fields": "id"},
            content=_serialize(body),
            headers={**self._headers, "Content-Type": mime_type},
        )
        response.raise_for_status()
        return response.json().get("id") or file_id

    async def list(
        self,
        query: FileQuery,
        page_token: Optional[str] = None,
        page_size: int = 100,
        order_by: Optional[str] = None,
    ) -> FileListing:
        params: Dict[str, Any] = {
            "q": render_query(query),
            "pageSize": page_size,
            "fields": f"nextPageToken,files({FILE_FIELDS})",
            "spaces": "drive",
        }
        if page_token:
            params["pageToken"] = page_token
        if order_by:
            params["orderBy"] = order_by

        response = await self.client.get(
            self._files_url(), params=params, headers=self._headers
        )
        response.raise_for_status()
        data = response.json()
        return FileListing(
            items=[StoredFile.model_validate(item) for item in data.get("files", [])],
            next_page_token=data.get("nextPageToken"),
        )
