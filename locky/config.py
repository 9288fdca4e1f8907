"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with sensible defaults.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from locky.constants import DEFAULT_POLL_RATIO, DEFAULT_PREFIX


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Locks
    lock_ttl_ms: int | None = Field(default=None, gt=0)
    lock_prefix: str = DEFAULT_PREFIX

    # Expiration Worker Configuration
    expiration_poll_ratio: float = Field(default=DEFAULT_POLL_RATIO, gt=0, le=1)
    expiration_token_ttl_ms: int | None = Field(default=None, gt=0)
    worker_id: str | None = None

    # Observability
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"
    otel_service_name: str = "locky"
    prometheus_port: int = 9090
    log_level: str = "INFO"
    log_format: str = "json"  # json or console


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
