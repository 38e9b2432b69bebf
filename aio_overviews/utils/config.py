"""
Configuration Management

Uses Pydantic Settings for environment-based configuration.
Loads from .env file automatically.
"""

from datetime import timedelta
from typing import Optional
from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # DataForSEO (required for live scans, checked at fetch time)
    DATAFORSEO_LOGIN: str = ""
    DATAFORSEO_PASSWORD: str = ""

    # Database
    DATABASE_URL: Optional[str] = None
    POSTGRES_URL: Optional[str] = None
    SQLITE_PATH: str = "aio_overviews_dev.db"
    SQL_DEBUG: bool = False

    # Application Settings
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Ranked keywords request (United States, English)
    LOCATION_CODE: int = 2840
    LANGUAGE_CODE: str = "en"
    RANKED_KEYWORDS_LIMIT: int = 50

    # Results
    DISPLAY_KEYWORD_LIMIT: int = 15
    CACHE_TTL_HOURS: int = 24

    # Rate limiting (scans per client address per window)
    RATE_LIMIT_MAX_SCANS: int = 10
    RATE_LIMIT_WINDOW_HOURS: int = 24

    # Timeouts
    API_TIMEOUT: int = 30

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra fields in .env file
        case_sensitive = False  # Allow both UPPERCASE and lowercase

    @property
    def cache_ttl(self) -> timedelta:
        return timedelta(hours=self.CACHE_TTL_HOURS)

    @property
    def rate_limit_window(self) -> timedelta:
        return timedelta(hours=self.RATE_LIMIT_WINDOW_HOURS)


@lru_cache
def get_settings() -> Settings:
    """Get or create cached settings instance."""
    return Settings()
