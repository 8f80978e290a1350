"""
Configuration management for Artifact Timeline.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="TIMELINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Artifact Timeline")
    environment: str = Field(default="development")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json", description="'json' or 'console'")

    # Backing store
    store_backend: str = Field(
        default="memory", description="'memory' or 'drive'"
    )
    drive_api_base_url: str = Field(default="https://www.googleapis.com")
    drive_access_token: Optional[str] = Field(default=None)
    store_timeout_ms: int = Field(default=8000, ge=1)
    store_max_attempts: int = Field(default=3, ge=1, le=5)
    store_base_delay_ms: int = Field(default=250, ge=0)
    store_max_delay_ms: int = Field(default=2000, ge=0)
    max_payload_bytes: int = Field(default=512_000, ge=1)

    # Documents
    index_filename: str = Field(default="artifacts_index.json")
    aliases_filename: str = Field(default="entity_aliases.json")

    # Index rebuild
    rebuild_max_scan: int = Field(default=500, ge=1)
    rebuild_page_size: int = Field(default=100, ge=1, le=1000)

    # Query / retrieval
    query_scan_buffer: int = Field(default=10, ge=0)
    chat_max_candidates: int = Field(default=40, ge=1)
    context_max_total_chars: int = Field(default=24_000, ge=1000)

    # Citations
    max_citations: int = Field(default=10, ge=1)
    max_synthesis_citations: int = Field(default=15, ge=1)
    max_excerpt_chars: int = Field(default=300, ge=1)

    # Rate limiting (per caller-derived key)
    rate_limit_requests: int = Field(default=30, ge=1)
    rate_limit_window_ms: int = Field(default=60_000, ge=1)

    # Generation provider
    provider: str = Field(default="stub", description="'stub' or 'openai'")
    provider_timeout_ms: int = Field(default=30_000, ge=1)
    openai_api_key: Optional[str] = Field(default=None)
    openai_base_url: str = Field(default="https://api.openai.com/v1")
    openai_model: str = Field(default="gpt-4o-mini")
    openai_temperature: float = Field(default=0.2, ge=0.0, le=2.0)


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings
