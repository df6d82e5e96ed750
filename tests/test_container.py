"""Tests for container wiring and configuration."""

import asyncio

import pytest

from fitpair.adapters.backends import PostgresBackend, SqliteBackend
from fitpair.adapters.storage import create_backend
from fitpair.config import Settings, parse_storage_backend
from fitpair.containers import build_container
from fitpair.services.reconciliation import RetryPolicy


def test_build_container_creates_services(settings) -> None:
    container = build_container(settings)

    assert container.account_service is not None
    assert container.tracker_service.publisher is container.broadcaster
    assert container.storage.backend_name == "sqlite"

    asyncio.run(container.open_resources())
    asyncio.run(container.close_resources())


def test_postgres_backend_requires_url(settings) -> None:
    postgres = settings.model_copy(update={"storage_backend": "postgresql"})

    with pytest.raises(ValueError):
        create_backend(postgres)

    backend = create_backend(
        postgres.model_copy(update={"database_url": "postgresql://db/fitpair"})
    )
    assert isinstance(backend, PostgresBackend)


def test_sqlite_backend_uses_configured_path(settings) -> None:
    backend = create_backend(settings)

    assert isinstance(backend, SqliteBackend)
    assert backend.path == settings.sqlite_path


def test_parse_storage_backend() -> None:
    assert parse_storage_backend(" PG ") == "postgres"
    assert parse_storage_backend("sqlite") == "sqlite"
    with pytest.raises(ValueError):
        parse_storage_backend("mysql")


def test_settings_defaults() -> None:
    settings = Settings(jwt_secret="secret")

    assert settings.token_ttl_days == 7
    assert settings.max_persist_attempts == 3


def test_retry_policy_from_settings(settings) -> None:
    tuned = settings.model_copy(
        update={"persist_timeout_seconds": 2.5, "max_persist_attempts": 5}
    )

    policy = RetryPolicy.from_settings(tuned)

    assert policy == RetryPolicy(timeout_seconds=2.5, max_attempts=5, base_delay_seconds=1.0)
