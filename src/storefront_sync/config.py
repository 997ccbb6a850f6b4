"""Configuration surface for storefront-sync."""
from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorefrontSettings(BaseSettings):
    """Client settings, read from ``STOREFRONT_*`` environment variables."""

    # Transport
    api_base_url: str = "http://localhost:8080/api/v1"
    request_timeout: float = Field(default=10.0, gt=0)
    max_retries: int = Field(default=2, ge=0)
    retry_base_delay: float = Field(default=0.5, ge=0)

    # Session
    refresh_horizon_seconds: int = Field(default=300, ge=0)
    profile_timeout: float = Field(default=5.0, gt=0)

    # Durable credentials; in-memory when unset
    token_store_path: Optional[str] = None

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    json_logs: bool = False

    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("api_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value

    @property
    def refresh_horizon(self) -> timedelta:
        return timedelta(seconds=self.refresh_horizon_seconds)


@lru_cache
def get_settings() -> StorefrontSettings:
    """Return the process-wide settings instance."""
    return StorefrontSettings()
