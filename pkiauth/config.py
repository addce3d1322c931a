"""Service settings via Pydantic BaseSettings."""

from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .store import DEFAULT_CHALLENGE_TTL


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PKIAUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
    )

    host: str = "0.0.0.0"
    # Hosting platforms hand out the port through a bare PORT variable.
    port: int = Field(default=8080, validation_alias=AliasChoices("PKIAUTH_PORT", "PORT"))

    challenge_ttl_seconds: int = Field(default=DEFAULT_CHALLENGE_TTL, ge=0)
    max_body_bytes: int = 2 * 1024 * 1024

    log_level: str = "INFO"
    json_logs: bool = False


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()


__all__ = ["Settings", "get_settings"]
