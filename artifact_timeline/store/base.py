"""
Object store abstraction.

The backing store holds full artifacts, the index and the alias table, one
flat folder ("space") per user. It is eventually consistent: listings may
lag behind writes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

JSON_MIME_TYPE = "application/json"

Body = Union[bytes, str, dict, list]


class StoreHTTPError(Exception):
    """HTTP-shaped failure raised by store implementations.

    Carries ``status`` so the retry classifier and ``map_error`` can treat
    in-process and remote stores the same way.
    """

    def __init__(self, status: int, message: str = "", headers: Optional[dict] = None):
        self.status = status
        self.headers = headers or {}
        super().__init__(message or f"store request failed with status {status}")


class StoredFile(BaseModel):
    """Metadata of one stored document."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    parents: List[str] = Field(default_factory=list)
    mime_type: str = Field(default=JSON_MIME_TYPE, alias="mimeType")
    modified_time: Optional[str] = Field(None, alias="modifiedTime")
    trashed: bool = False


class FileQuery(BaseModel):
    """Listing filter: within a parent, optionally by name, not trashed."""

    model_config = ConfigDict(extra="forbid")

    parent_id: str = Field(..., description="Only files directly inside this folder")
    name_equals: Optional[str] = None
    name_contains: Optional[str] = None
    include_trashed: bool = False

    def matches(self, item: StoredFile) -> bool:
        if self.parent_id not in item.parents:
            return False
        if item.trashed and not self.include_trashed:
            return False
        if self.name_equals is not None and item.name != self.name_equals:
            return False
        if self.name_contains is not None and self.name_contains not in item.name:
            return False
        return True


class FileListing(BaseModel):
    items: List[StoredFile] = Field(default_factory=list)
    next_page_token: Optional[str] = None


class ObjectStore(ABC):
    """Capability contract of the backing store.

    Implementations raise their native errors (``StoreHTTPError``,
    ``httpx.HTTPStatusError``, transport errors); wrapping, retrying and
    mapping happen in ``ResilientStore``.
    """

    @abstractmethod
    async def create(
        self, name: str, parent_id: str, mime_type: str, body: Body
    ) -> str:
        """Create a document and return its id."""
        pass

    @abstractmethod
    async def get_metadata(self, file_id: str) -> StoredFile:
        """Return metadata (name, parents, modified time, trashed)."""
        pass

    @abstractmethod
    async def get_content(self, file_id: str) -> Any:
        """Return the document body as bytes, text, or decoded JSON."""
        pass

    @abstractmethod
    async def update(self, file_id: str, body: Body, mime_type: str = JSON_MIME_TYPE) -> str:
        """Overwrite a document body; return the effective id."""
        pass

    @abstractmethod
    async def list(
        self,
        query: FileQuery,
        page_token: Optional[str] = None,
        page_size: int = 100,
        order_by: Optional[str] = None,
    ) -> FileListing:
        """List one page of documents matching ``query``."""
        pass

    async def close(self) -> None:
        """Release network resources, if any."""
        return None
