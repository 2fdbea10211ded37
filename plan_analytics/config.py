"""
Configuration — Environment-aware settings using Pydantic.

Every value can be overridden by an environment variable of the same
name (case-insensitive) or by a local .env file during development.
"""

import logging
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings — auto-loaded from environment variables."""

    # Service config
    app_name: str = "Plan Analytics Engine"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # HTTP surface
    cors_allow_origins: list[str] = ["*"]
    max_activities: int = 5000  # Project plans are human-authored

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings loader — the Settings object is built once."""
    return Settings()


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure root logging once from settings."""
    settings = settings or get_settings()
    level = "DEBUG" if settings.debug else settings.log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
