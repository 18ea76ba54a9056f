from __future__ import annotations

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ACCEPTED_SCHEMES: tuple[str, ...] = ("postgresql://", "postgres://")


class PoolConfig(BaseSettings):
    """asyncpg pool settings read from ``DATABASE_URL`` and ``DB_*`` variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    database_url: str = Field(..., alias="DATABASE_URL", min_length=1)
    db_pool_min_size: int = Field(default=1, alias="DB_POOL_MIN_SIZE", ge=1)
    db_pool_max_size: int = Field(default=10, alias="DB_POOL_MAX_SIZE", ge=1)
    db_pool_timeout_seconds: float | None = Field(
        default=None, alias="DB_POOL_TIMEOUT_SECONDS", gt=0
    )
    # hierarchy reads scan four tables; 0 disables the server-side limit
    db_statement_timeout_ms: int = Field(default=30000, alias="DB_STATEMENT_TIMEOUT_MS", ge=0)
    db_application_name: str = Field(
        default="hierarchy-analytics", alias="DB_APPLICATION_NAME", min_length=1
    )

    @field_validator("database_url")
    @classmethod
    def _require_postgres_url(cls, value: str) -> str:
        url = value.strip()
        if not url.startswith(_ACCEPTED_SCHEMES):
            raise ValueError("DATABASE_URL must be a postgresql:// URL")
        return url

    @model_validator(mode="after")
    def _check_pool_bounds(self) -> "PoolConfig":
        if self.db_pool_max_size < self.db_pool_min_size:
            raise ValueError("DB_POOL_MAX_SIZE must not be smaller than DB_POOL_MIN_SIZE")
        return self

    @property
    def dsn(self) -> str:
        return self.database_url

    @property
    def min_size(self) -> int:
        return self.db_pool_min_size

    @property
    def max_size(self) -> int:
        return self.db_pool_max_size

    @property
    def timeout(self) -> float | None:
        """Seconds to wait for a connection; ``None`` waits forever."""
        return self.db_pool_timeout_seconds

    def server_settings(self) -> dict[str, str]:
        """Session parameters applied to every pooled connection."""
        return {
            "application_name": self.db_application_name,
            "statement_timeout": str(self.db_statement_timeout_ms),
        }
