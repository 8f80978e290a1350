"""Test configuration and fixtures."""

import json
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from artifact_timeline.config import Settings
from artifact_timeline.core import TimelineCore
from artifact_timeline.index import ArtifactIndexService, entry_from_artifact
from artifact_timeline.models import (
    ArtifactIndex,
    ArtifactIndexEntry,
    SourceType,
    SummaryArtifact,
)
from artifact_timeline.providers import StubProvider
from artifact_timeline.resilience import RetryPolicy
from artifact_timeline.store import InMemoryObjectStore, ResilientStore

SPACE_ID = "space-1"
OTHER_SPACE_ID = "space-2"


def make_summary(artifact_id: str = "gmail:msg-1", **overrides: Any) -> SummaryArtifact:
    """Create a valid summary artifact with optional overrides."""
    defaults: Dict[str, Any] = {
        "artifact_id": artifact_id,
        "title": "Quarterly planning",
        "summary": "The team agreed on the quarterly roadmap.",
        "highlights": ["Roadmap approved"],
        "source": SourceType.GMAIL,
        "source_id": artifact_id.split(":", 1)[-1],
        "created_at_iso": "2024-03-01T10:00:00Z",
        "content_date_iso": "2024-02-28T09:00:00Z",
    }
    defaults.update(overrides)
    return SummaryArtifact(**defaults)


def seed_summary(
    store: InMemoryObjectStore, artifact: SummaryArtifact, space_id: str = SPACE_ID
) -> ArtifactIndexEntry:
    """Write a summary document straight into the store; return its index entry."""
    document_id = store.put_raw(
        f"{artifact.title} - Summary.json", space_id, json.dumps(artifact.to_wire())
    )
    return entry_from_artifact(artifact, document_id)


def seed_index(
    store: InMemoryObjectStore,
    entries: List[ArtifactIndexEntry],
    space_id: str = SPACE_ID,
    revision: int = 0,
) -> str:
    index = ArtifactIndex(owner_id=space_id, revision=revision, artifacts=entries)
    return store.put_raw("artifacts_index.json", space_id, json.dumps(index.to_wire()))


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Retry policy without backoff delays."""
    return RetryPolicy(max_attempts=3, base_delay_ms=0, jitter=False)


@pytest.fixture
def memory_store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def store(memory_store: InMemoryObjectStore, fast_policy: RetryPolicy) -> ResilientStore:
    return ResilientStore(memory_store, timeout_ms=1000, policy=fast_policy)


@pytest.fixture
def index_service(store: ResilientStore) -> ArtifactIndexService:
    return ArtifactIndexService(store)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        store_backend="memory",
        provider="stub",
        rate_limit_requests=3,
        rate_limit_window_ms=60_000,
    )


@pytest_asyncio.fixture
async def core(
    settings: Settings, memory_store: InMemoryObjectStore, fast_policy: RetryPolicy
) -> TimelineCore:
    """Create a test core over the in-memory store and the stub provider."""
    timeline = TimelineCore(
        config=settings,
        object_store=memory_store,
        provider=StubProvider(),
        retry_policy=fast_policy,
    )
    yield timeline
    await timeline.close()


class ScriptedProvider(StubProvider):
    """Provider returning canned raw text per task."""

    name = "scripted"

    def __init__(self, responses: Optional[Dict[str, str]] = None):
        super().__init__(model="scripted")
        self.responses = responses or {}
        self.calls: List[Dict[str, Any]] = []

    async def _complete(self, task, system_prompt, payload):
        self.calls.append({"task": task, "payload": payload})
        if task in self.responses:
            return self.responses[task]
        return await super()._complete(task, system_prompt, payload)
