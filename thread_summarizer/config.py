"""Application configuration using Pydantic BaseSettings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from thread_summarizer.constants import (
    DEFAULT_GEMINI_MODEL,
    DEFAULT_GROQ_MODEL,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_SUMMARY_LANGUAGE,
    FETCH_CONCURRENCY,
    FETCH_WINDOW_DELAY_SECONDS,
    FORUM_ORIGIN,
    SUMMARY_CACHE_TTL_SECONDS,
)

Provider = Literal["gemini", "groq"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        # Load .env first, then .env.local (for local/test overrides)
        # Later files override earlier ones, so .env.local takes precedence
        env_file=[".env", ".env.local"],
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Text generation
    default_provider: Provider = Field(
        default="gemini", description="Provider used when a request names none"
    )
    gemini_model: str = Field(
        default=DEFAULT_GEMINI_MODEL,
        description="pydantic_ai model string used for the gemini provider",
    )
    groq_model: str = Field(
        default=DEFAULT_GROQ_MODEL,
        description="pydantic_ai model string used for the groq provider",
    )
    summary_language: str = Field(
        default=DEFAULT_SUMMARY_LANGUAGE,
        description="Language the summaries are written in",
    )

    # Forum
    forum_origin: str = Field(
        default=FORUM_ORIGIN,
        description="Origin used to resolve relative page and avatar URLs",
    )

    # Environment
    env: Literal["local", "railway", "prod"] = Field(
        default="local", description="Current environment"
    )
    log_level: str = Field(default="INFO", description="Python logging level")

    # Sentry Configuration
    sentry_dsn: str | None = Field(
        default=None, description="Sentry DSN for error tracking (optional)"
    )
    sentry_traces_sample_rate: float = Field(
        default=1.0, description="Sentry traces sample rate (0.0 to 1.0)"
    )

    # Logfire Configuration
    logfire_token: str | None = Field(
        default=None, description="Pydantic Logfire token for observability"
    )

    # ==========================================================================
    # Fetching
    # ==========================================================================
    # Defaults are sourced from thread_summarizer/constants.py.

    page_timeout_seconds: float = Field(
        default=DEFAULT_HTTP_TIMEOUT_SECONDS,
        description="HTTP timeout for thread page requests (seconds)",
    )
    fetch_concurrency: int = Field(
        default=FETCH_CONCURRENCY,
        ge=1,
        description="Number of page fetches in flight at once",
    )
    fetch_window_delay_seconds: float = Field(
        default=FETCH_WINDOW_DELAY_SECONDS,
        ge=0.0,
        description="Pause between fetch windows (seconds)",
    )

    # ==========================================================================
    # Batching overrides
    # ==========================================================================
    # When unset, per-provider limits from constants.py apply.

    max_chars_per_batch: int | None = Field(
        default=None,
        gt=0,
        description="Character budget for one batch-summary request",
    )
    pages_per_batch: int | None = Field(
        default=None,
        gt=0,
        description="Max pages in one batch-summary request",
    )

    # ==========================================================================
    # Cache
    # ==========================================================================

    summary_cache_ttl_seconds: int = Field(
        default=SUMMARY_CACHE_TTL_SECONDS,
        ge=0,
        description="How long finished summaries are served from memory",
    )

    def model_for(self, provider: Provider) -> str:
        """Return the configured model string for a provider."""
        return self.groq_model if provider == "groq" else self.gemini_model


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
