"""Configuration management for the polling scheduler.

Uses pydantic-settings for environment variable validation and type safety.
Credentials for the trigger store and event bus are required; a missing value
fails at process start rather than on the first tick.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """Trigger store (Supabase REST) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SUPABASE_",
        extra="ignore",
    )

    url: str = Field(
        ...,
        description="Base URL of the Supabase project (https://<ref>.supabase.co)",
    )
    service_role_key: SecretStr = Field(
        ...,
        description="Service role key, sent as both apikey and bearer credential",
    )

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the base URL so paths can be appended directly."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Store URL must start with 'http://' or 'https://'")
        return v.rstrip("/")


class EventBusSettings(BaseSettings):
    """Event bus (Inngest) ingestion configuration."""

    model_config = SettingsConfigDict(
        env_prefix="INNGEST_",
        extra="ignore",
    )

    event_key: SecretStr = Field(
        ...,
        description="Ingestion key used in the /e/<key> event endpoint",
    )
    base_url: str = Field(
        default="https://api.inngest.com",
        description="Event API base URL (override for dev servers)",
    )

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class CheckSettings(BaseSettings):
    """Check endpoint configuration."""

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        extra="ignore",
    )

    url: str = Field(
        default="https://runwiseai.app",
        description="Application base URL hosting /api/polling/execute-trigger",
    )
    check_path: str = Field(
        default="/api/polling/execute-trigger",
        description="Path of the per-trigger check endpoint",
    )

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class SchedulerSettings(BaseSettings):
    """Tick scheduling configuration."""

    model_config = SettingsConfigDict(
        extra="ignore",
    )

    tick_minutes: int = Field(
        default=1,
        ge=1,
        le=59,
        alias="SCHEDULER_TICK_MINUTES",
        description="Cron interval between ticks, in minutes",
    )
    batch_limit: int = Field(
        default=50,
        ge=1,
        alias="SCHEDULER_BATCH_LIMIT",
        description="Maximum number of due triggers fetched per tick",
    )
    backoff_seconds: int = Field(
        default=300,
        ge=1,
        alias="SCHEDULER_BACKOFF_SECONDS",
        description="Delay before re-polling a trigger whose check or dispatch failed",
    )
    max_concurrency: int = Field(
        default=1,
        ge=1,
        le=16,
        alias="SCHEDULER_MAX_CONCURRENCY",
        description="Triggers processed in parallel within one tick (1 = sequential)",
    )
    misfire_grace_seconds: int = Field(
        default=30,
        ge=1,
        alias="SCHEDULER_MISFIRE_GRACE_SECONDS",
        description="How late a tick may start before APScheduler skips it",
    )
    http_timeout_seconds: float | None = Field(
        default=None,
        alias="HTTP_TIMEOUT_SECONDS",
        description="Per-request timeout for outbound calls; unset means no timeout",
    )


class AppSettings(BaseSettings):
    """Application-level configuration."""

    model_config = SettingsConfigDict(
        extra="ignore",
    )

    debug: bool = Field(
        default=False,
        alias="DEBUG",
        description="Enable debug mode",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    log_format: Literal["json", "console"] = Field(
        default="console",
        alias="LOG_FORMAT",
        description="Log output format: 'json' for production, 'console' for development",
    )
    app_name: str = Field(
        default="polling-scheduler",
        description="Application name for logging and identification",
    )
    app_version: str = Field(
        default="0.1.0",
        description="Application version",
    )
    api_host: str = Field(
        default="0.0.0.0",
        alias="API_HOST",
        description="Host to bind the API server",
    )
    api_port: int = Field(
        default=8000,
        alias="API_PORT",
        description="Port to bind the API server",
    )


class Settings(BaseSettings):
    """Main settings class that aggregates all configuration sections.

    Usage:
        from polling_scheduler.config import get_settings

        settings = get_settings()
        store_url = settings.store.url
        batch_limit = settings.scheduler.batch_limit
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    store: StoreSettings = Field(default_factory=StoreSettings)
    event_bus: EventBusSettings = Field(default_factory=EventBusSettings)
    check: CheckSettings = Field(default_factory=CheckSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    app: AppSettings = Field(default_factory=AppSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Call get_settings.cache_clear() to reload settings if needed.

    Returns:
        Settings: The application settings instance.
    """
    return Settings()
