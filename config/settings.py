"""
Centralized configuration for CarBot lead scoring.

All settings are loaded from environment variables via .env file.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings."""

    # Lead scoring
    default_job_value: float = Field(default=300.0)
    batch_limit: int = Field(default=100)
    batch_pause_every: int = Field(default=10)
    batch_pause_seconds: float = Field(default=0.1)
    rescore_window_days: int = Field(default=90)

    # HTTP batch action (concurrent groups)
    api_batch_size: int = Field(default=10)
    api_batch_pause_seconds: float = Field(default=0.2)

    # Database
    database_url: Optional[str] = Field(default=None)

    # Cache / rate limiting
    cache_ttl_seconds: int = Field(default=300)
    cache_max_keys: int = Field(default=1000)
    redis_url: Optional[str] = Field(default=None)  # shared cache across instances
    rate_limit_per_minute: int = Field(default=100)

    # API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    api_title: str = Field(default="CarBot Lead Scoring API")
    api_version: str = Field(default="1.0.0")
    cors_origins: str = Field(default="*")

    # Logging
    log_level: str = Field(default="INFO")
    debug: bool = Field(default=False)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def has_database(self) -> bool:
        return bool(self.database_url)


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
