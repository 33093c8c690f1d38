"""Configuration for Rabbithole.

Settings are read from RABBITHOLE_* environment variables, e.g.
RABBITHOLE_DB_PATH=/var/lib/rabbithole.db.
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Storage
    db_path: str = "rabbithole.db"
    share_ttl_days: int = Field(default=7, ge=1)

    # Data source
    wikipedia_base_url: str = "https://en.wikipedia.org"
    user_agent: str = "Rabbithole/0.1 (graph explorer)"
    request_timeout: float = Field(default=30.0, gt=0)
    max_links: int = Field(default=50, ge=1)

    # Exploration
    expand_limit: int = Field(default=10, ge=1)
    replay_interval: float = Field(default=0.2, ge=0)

    model_config = {"env_prefix": "RABBITHOLE_"}

    @property
    def share_ttl(self) -> timedelta:
        return timedelta(days=self.share_ttl_days)


@lru_cache
def get_settings() -> Settings:
    """Get application settings, read once per process."""
    return Settings()
