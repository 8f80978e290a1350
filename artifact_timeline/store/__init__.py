"""
Backing object store: contract, implementations and the resilient wrapper.
"""

from .base import (
    JSON_MIME_TYPE,
    FileListing,
    FileQuery,
    ObjectStore,
    StoredFile,
    StoreHTTPError,
)
from .drive import DriveObjectStore, render_query
from .memory import InMemoryObjectStore
from .resilient import ResilientStore, sanitize_filename

__all__ = [
    "JSON_MIME_TYPE",
    "DriveObjectStore",
    "FileListing",
    "FileQuery",
    "InMemoryObjectStore",
    "ObjectStore",
    "ResilientStore",
    "StoreHTTPError",
    "StoredFile",
    "render_query",
    "sanitize_filename",
]
