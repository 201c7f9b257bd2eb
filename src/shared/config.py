"""Application configuration loaded from environment variables."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"

    # Persistence (PostgreSQL via asyncpg in production, SQLite for local runs)
    database_url: str = "sqlite+aiosqlite:///./practice.db"

    # Redis (distributed entry-point locks)
    redis_url: str = "redis://localhost:6379"

    # Database Pool Settings (ignored by SQLite)
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 3600  # Recycle connections after 1 hour

    # Question selection
    max_session_questions: int = 10
    recent_attempts_window: int = 10

    # Learning gaps
    gap_min_incorrect: int = 3
    gap_resolution_min_results: int = 2
    gap_resolution_threshold: float = 75.0

    # Mastery state machine
    mastery_threshold: float = 75.0
    demotion_threshold: float = 40.0

    # Feature Flags (can also be set via FF_* env vars)
    ff_use_database_persistence: bool = False
    ff_use_distributed_locks: bool = False

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
