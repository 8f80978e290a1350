"""
TimelineCore: the single entry point the surrounding web layer calls.

The facade wires the resilient store, index, aliases, query engine,
services, provider and rate limiter from ``Settings``. Every operation is
scoped to one user space, optionally rate-limited by a caller-derived key,
and optionally bound to a ``CancelSignal`` that aborts its store calls.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional, Sequence, Type, TypeVar, Union

import structlog
from pydantic import BaseModel, ValidationError

from .config import Settings, get_settings
from .entities import AliasService
from .errors import ErrorCode, TimelineError, invalid_request
from .index import ArtifactIndexService
from .models import (
    AliasRow,
    ChatRequest,
    ChatResponse,
    EntityAliases,
    RebuildResult,
    StructuredQueryRequest,
    StructuredQueryResponse,
    SummaryArtifact,
    SynthesisArtifact,
    SynthesisRequest,
    SynthesisResponse,
)
from .providers import GenerationProvider, SummarizeInput, get_provider
from .query import StructuredQueryEngine
from .resilience import CancelSignal, RateLimiter, RateLimitResult, RetryPolicy
from .services import (
    CHAT_LIMITS,
    SYNTHESIS_LIMITS,
    ArtifactService,
    ChatService,
    SynthesisService,
)
from .store import DriveObjectStore, InMemoryObjectStore, ObjectStore, ResilientStore

logger = structlog.get_logger()

R = TypeVar("R", bound=BaseModel)


def build_object_store(config: Settings) -> ObjectStore:
    """Backing store named by ``config.store_backend``."""
    backend = config.store_backend.strip().lower()
    if backend == "memory":
        return InMemoryObjectStore()
    if backend == "drive":
        if not config.drive_access_token:
            raise TimelineError(
                ErrorCode.NOT_CONFIGURED,
                "Drive store is not configured.",
                details={"storeBackend": backend},
            )
        return DriveObjectStore(config.drive_access_token, base_url=config.drive_api_base_url)
    raise TimelineError(
        ErrorCode.NOT_CONFIGURED,
        f"Unknown store backend: {config.store_backend}",
        details={"storeBackend": config.store_backend},
    )


def parse_request(model: Type[R], value: Union[R, Mapping[str, Any]]) -> R:
    """Validate a caller request, mapping validation errors to ``invalid_request``."""
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(value)
    except ValidationError as exc:
        fields = [".".join(str(part) for part in err["loc"]) for err in exc.errors()]
        raise invalid_request("Request failed validation.", fields=fields[:10]) from exc


@dataclass
class _Scope:
    """Services bound to one request's store handle."""

    store: ResilientStore
    index: ArtifactIndexService
    aliases: AliasService
    artifacts: ArtifactService
    engine: StructuredQueryEngine
    chat: ChatService
    synthesis: SynthesisService


class TimelineCore:
    """
    Facade over the timeline operations.

    Attributes:
        config: Effective settings
        store: Resilient store shared by every request
        provider: Generation provider
        rate_limiter: Sliding-window limiter keyed by caller
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        object_store: Optional[ObjectStore] = None,
        provider: Optional[GenerationProvider] = None,
        rate_limiter: Optional[RateLimiter] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.config = config or get_settings()
        policy = retry_policy or RetryPolicy(
            max_attempts=self.config.store_max_attempts,
            base_delay_ms=self.config.store_base_delay_ms,
            max_delay_ms=self.config.store_max_delay_ms,
        )
        self.store = ResilientStore(
            object_store or build_object_store(self.config),
            timeout_ms=self.config.store_timeout_ms,
            policy=policy,
            max_payload_bytes=self.config.max_payload_bytes,
        )
        self.provider = provider or get_provider(self.config)
        self.rate_limiter = rate_limiter or RateLimiter()

    def _scope(self, signal: Optional[CancelSignal] = None) -> _Scope:
        config = self.config
        store = self.store.with_signal(signal) if signal is not None else self.store
        index = ArtifactIndexService(store, filename=config.index_filename)
        aliases = AliasService(store, filename=config.aliases_filename)
        artifacts = ArtifactService(store, index, aliases)
        return _Scope(
            store=store,
            index=index,
            aliases=aliases,
            artifacts=artifacts,
            engine=StructuredQueryEngine(store, scan_buffer=config.query_scan_buffer),
            chat=ChatService(
                store,
                index,
                self.provider,
                max_candidates=config.chat_max_candidates,
                limits=replace(CHAT_LIMITS, max_total_chars=config.context_max_total_chars),
                max_citations=config.max_citations,
                max_excerpt_chars=config.max_excerpt_chars,
            ),
            synthesis=SynthesisService(
                store,
                index,
                aliases,
                artifacts,
                self.provider,
                limits=replace(SYNTHESIS_LIMITS, max_total_chars=config.context_max_total_chars),
                max_citations=config.max_synthesis_citations,
                max_excerpt_chars=config.max_excerpt_chars,
            ),
        )

    def check_rate_limit(self, rate_key: Optional[str]) -> Optional[RateLimitResult]:
        """Count one request against ``rate_key``; raise ``rate_limited`` when over."""
        if not rate_key:
            return None
        return self.rate_limiter.enforce(
            rate_key,
            limit=self.config.rate_limit_requests,
            window_ms=self.config.rate_limit_window_ms,
        )

    async def query(
        self,
        space_id: str,
        request: Union[StructuredQueryRequest, Mapping[str, Any]],
        rate_key: Optional[str] = None,
        signal: Optional[CancelSignal] = None,
    ) -> StructuredQueryResponse:
        """Run a structured query over the space's index and documents."""
        self.check_rate_limit(rate_key)
        parsed = parse_request(StructuredQueryRequest, request)
        scope = self._scope(signal)
        index, _ = await scope.index.load(space_id)
        aliases = await scope.aliases.read_best_effort(space_id) if parsed.entity else None
        return await scope.engine.run(index, parsed, aliases=aliases, space_id=space_id)

    async def chat(
        self,
        space_id: str,
        request: Union[ChatRequest, Mapping[str, Any]],
        rate_key: Optional[str] = None,
        signal: Optional[CancelSignal] = None,
    ) -> ChatResponse:
        self.check_rate_limit(rate_key)
        parsed = parse_request(ChatRequest, request)
        return await self._scope(signal).chat.chat(space_id, parsed)

    async def synthesize(
        self,
        space_id: str,
        request: Union[SynthesisRequest, Mapping[str, Any]],
        rate_key: Optional[str] = None,
        signal: Optional[CancelSignal] = None,
    ) -> SynthesisResponse:
        self.check_rate_limit(rate_key)
        parsed = parse_request(SynthesisRequest, request)
        return await self._scope(signal).synthesis.synthesize(space_id, parsed)

    async def rebuild_index(
        self,
        space_id: str,
        rate_key: Optional[str] = None,
        signal: Optional[CancelSignal] = None,
    ) -> RebuildResult:
        self.check_rate_limit(rate_key)
        return await self._scope(signal).index.rebuild(
            space_id,
            max_scan=self.config.rebuild_max_scan,
            page_size=self.config.rebuild_page_size,
        )

    async def save_summary(
        self,
        space_id: str,
        artifact: Union[SummaryArtifact, Mapping[str, Any]],
        rate_key: Optional[str] = None,
        signal: Optional[CancelSignal] = None,
    ) -> SummaryArtifact:
        self.check_rate_limit(rate_key)
        parsed = parse_request(SummaryArtifact, artifact)
        return await self._scope(signal).artifacts.save_summary(space_id, parsed)

    async def summarize(
        self,
        space_id: str,
        source: Union[SummarizeInput, Mapping[str, Any]],
        rate_key: Optional[str] = None,
        signal: Optional[CancelSignal] = None,
    ) -> SummaryArtifact:
        """Summarize one source item with the configured provider and save it."""
        self.check_rate_limit(rate_key)
        parsed = parse_request(SummarizeInput, source)
        return await self._scope(signal).artifacts.summarize(space_id, parsed, self.provider)

    async def backfill_content_date(
        self,
        space_id: str,
        artifact_id: str,
        content_date_iso: str,
        rate_key: Optional[str] = None,
    ) -> Union[SummaryArtifact, SynthesisArtifact]:
        self.check_rate_limit(rate_key)
        return await self._scope().artifacts.backfill_content_date(
            space_id, artifact_id, content_date_iso
        )

    async def get_aliases(self, space_id: str, rate_key: Optional[str] = None) -> EntityAliases:
        self.check_rate_limit(rate_key)
        table, _ = await self._scope().aliases.read(space_id)
        return table

    async def add_aliases(
        self,
        space_id: str,
        rows: Sequence[Union[AliasRow, Mapping[str, Any]]],
        rate_key: Optional[str] = None,
    ) -> EntityAliases:
        self.check_rate_limit(rate_key)
        parsed = [parse_request(AliasRow, row) for row in rows]
        return await self._scope().aliases.add(space_id, parsed)

    async def remove_alias(
        self, space_id: str, alias: str, rate_key: Optional[str] = None
    ) -> EntityAliases:
        self.check_rate_limit(rate_key)
        return await self._scope().aliases.remove(space_id, alias)

    async def close(self) -> None:
        """Release the store and provider clients."""
        await self.store.close()
        await self.provider.close()
        logger.debug("timeline_core_closed")
