from __future__ import annotations

from datetime import datetime
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AnalyticsSettings(BaseSettings):
    """Runtime knobs for the hierarchy and worker-analytics services."""

    model_config = SettingsConfigDict(
        env_prefix="ANALYTICS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    hierarchy_cache_ttl_seconds: float = Field(default=300.0, gt=0)
    analytics_cache_ttl_seconds: float = Field(default=600.0, gt=0)
    cache_max_entries: int = Field(default=100, ge=1)
    db_schema: str = Field(default="public", min_length=1)
    log_level: str = Field(default="INFO")
    goal_total_target: int = Field(default=60000, ge=1)
    goal_deadline: datetime | None = Field(default=None)


@lru_cache(maxsize=1)
def get_settings() -> AnalyticsSettings:
    return AnalyticsSettings()


__all__ = ["AnalyticsSettings", "get_settings"]
