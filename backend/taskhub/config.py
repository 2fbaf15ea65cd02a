"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache) — single instance per process
    - Every interval/TTL is expressed in seconds

Design Decisions:
    - Defaults provided for all non-secret settings: works with docker-compose as-is
    - cache_max_entries bounds the process cache with LRU eviction
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://tasks:tasks@db:5432/tasks"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosting providers hand out postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Cache
    cache_namespace: str = "app"
    cache_default_ttl_seconds: int = 300
    cache_sweep_interval_seconds: int = 300
    cache_max_entries: int | None = 10_000
    stats_cache_ttl_seconds: int = 30

    # Queue
    queue_name: str = "task-processing"
    queue_max_retries: int = 3

    # Outbox
    outbox_drain_interval_seconds: int = 60
    outbox_grace_seconds: int = 30
    outbox_max_attempts: int = 10

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
