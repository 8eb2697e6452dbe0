"""
Service configuration — loads from environment variables or .env.
No secrets are ever hardcoded.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ── Environment ──
    environment: str = "development"

    # ── Postgres ──
    postgres_user: str = "bookrental_user"
    postgres_password: str = "changeme"
    postgres_db: str = "bookrental"
    postgres_host: str = "postgres"
    postgres_port: int = 5432
    database_url: Optional[str] = None

    # ── Redis ──
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_password: str = "changeme"
    redis_url: Optional[str] = None
    cache_enabled: bool = True
    recommendation_cache_ttl_seconds: int = 300

    # ── Recommendations ──
    default_recommendation_limit: int = 10
    max_recommendation_limit: int = 50
    recommendation_timeout_seconds: float = 5.0

    # ── Monitoring ──
    log_level: str = "INFO"
    log_format: str = "json"  # json | console

    @property
    def database_dsn(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def redis_dsn(self) -> str:
        if self.redis_url:
            return self.redis_url
        return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/0"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
