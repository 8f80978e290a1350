"""
Provider selection from settings.
"""

from __future__ import annotations

from typing import Optional

import httpx

from ..config import Settings, get_settings
from ..errors import ErrorCode, TimelineError
from .base import GenerationProvider
from .openai import OpenAIProvider
from .stub import StubProvider


def get_provider(
    config: Optional[Settings] = None, client: Optional[httpx.AsyncClient] = None
) -> GenerationProvider:
    """Build the provider named by ``config.provider``."""
    config = config or get_settings()
    name = config.provider.strip().lower()

    if name == "stub":
        return StubProvider()
    if name == "openai":
        return OpenAIProvider(
            api_key=config.openai_api_key,
            model=config.openai_model,
            base_url=config.openai_base_url,
            temperature=config.openai_temperature,
            timeout_ms=config.provider_timeout_ms,
            client=client,
        )
    raise TimelineError(
        ErrorCode.NOT_CONFIGURED,
        f"Unknown generation provider: {config.provider}",
        details={"provider": config.provider},
    )
