"""Application configuration objects."""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pydantic settings used to configure the application."""

    model_config = SettingsConfigDict(
        env_prefix="RETAIL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    app_name: str = Field(
        default="Retail Management Service",
        description="Human friendly name for the API.",
    )
    environment: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Deployment environment flag used for logging.",
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./retail.db",
        description="SQLAlchemy compatible async database URL.",
    )
    echo_sql: bool = Field(
        default=False,
        description="Enable SQL echo logging for debugging.",
    )
    secret_key: str = Field(
        default="retail-secret-key",
        description="Key used to sign API tokens.",
    )
    token_salt: str = Field(default="retail-api-token")
    token_default_age: int = Field(default=3600, gt=0)
    token_max_age: int = Field(default=60 * 60 * 24 * 30, gt=0)
    trial_days: int = Field(
        default=14,
        ge=0,
        description="Length of the trial granted to newly created tenants.",
    )
    log_level: str = Field(default="INFO")
    access_control_allow_origin: str = Field(
        default="*",
        description="Allowed CORS origins for the API.",
    )

    @field_validator("database_url")
    @classmethod
    def _validate_sqlite_path(cls, value: str) -> str:
        if value.startswith("sqlite") and ":memory:" not in value and "///" not in value:
            raise ValueError(
                "SQLite database URLs should be in the form sqlite+aiosqlite:///path/to/db"
            )
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of :class:`Settings`."""

    return Settings()


__all__ = ["Settings", "get_settings"]
