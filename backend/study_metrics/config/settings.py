"""
Application Configuration

This module provides type-safe configuration loading using Pydantic settings.
Environment variables are loaded from .env file and validated.

Usage:
    from study_metrics.config import settings

    # Access settings
    db_url = settings.POSTGRES_URL
    zone = settings.DEFAULT_TIMEZONE
"""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Study Metrics"
    DEBUG: bool = False

    # PostgreSQL
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "studymetrics"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "studymetrics"

    @property
    def POSTGRES_URL(self) -> str:
        """Async PostgreSQL connection URL."""
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Timezone handling
    # Used when a caller does not supply the user's IANA zone.
    DEFAULT_TIMEZONE: str = "Asia/Tokyo"
    # Offset applied when a zone name cannot be resolved (UTC+9).
    FALLBACK_UTC_OFFSET_MINUTES: int = 540

    # Daily series limits
    METRICS_MAX_RANGE_DAYS: int = 366
    METRICS_QUERY_TIMEOUT_SECONDS: float = 30.0

    # Nightly snapshot archiving (server-local time)
    SNAPSHOT_ARCHIVE_ENABLED: bool = True
    SNAPSHOT_ARCHIVE_HOUR: int = 0
    SNAPSHOT_ARCHIVE_MINUTE: int = 30

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()


@lru_cache()
def load_yaml_config() -> dict[str, Any]:
    """Load application configuration from config/default.yaml."""
    config_path = Path(__file__).parent.parent.parent.parent / "config" / "default.yaml"

    if not config_path.exists():
        return {}

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


yaml_config: dict[str, Any] = load_yaml_config()
