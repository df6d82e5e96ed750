"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")

STORAGE_BACKENDS = frozenset({"postgres", "sqlite"})


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    storage_backend: str = "sqlite"
    database_url: str | None = None
    sqlite_path: str = "data/fitpair.db"
    jwt_secret: str
    token_ttl_days: int = 7
    log_level: str = "INFO"
    cookie_secure: bool = True
    persist_timeout_seconds: float = 10.0
    max_persist_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_storage_backend(raw: str | None) -> str:
    """Normalize the configured storage backend name."""
    cleaned = (raw or "").strip().lower()
    if cleaned in {"postgresql", "pg"}:
        cleaned = "postgres"
    if cleaned not in STORAGE_BACKENDS:
        raise ValueError(f"Unknown storage backend: {raw!r}")
    return cleaned
