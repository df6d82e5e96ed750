"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from fitpair.adapters.credentials import BcryptCredentialStore
from fitpair.adapters.sql_repositories import (
    SqlAccountRepository,
    SqlTrackerRepository,
)
from fitpair.adapters.storage import StorageAdapter, create_backend
from fitpair.adapters.tokens import JwtTokenIssuer
from fitpair.config import Settings
from fitpair.services.accounts import AccountService, CredentialStore
from fitpair.services.broadcast import Broadcaster
from fitpair.services.tracker import TrackerService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    storage: StorageAdapter
    account_service: AccountService
    tracker_service: TrackerService
    broadcaster: Broadcaster
    token_issuer: JwtTokenIssuer
    open_resources: Callable[[], Awaitable[None]]
    close_resources: Callable[[], Awaitable[None]]


def build_container(
    settings: Settings | None = None,
    credentials: CredentialStore | None = None,
) -> AppContainer:
    """Create the default dependency container.

    The storage backend is chosen here once and stays fixed for the
    lifetime of the container.
    """
    resolved_settings = settings or Settings()
    storage = StorageAdapter(create_backend(resolved_settings))
    broadcaster = Broadcaster()
    account_service = AccountService(
        repository=SqlAccountRepository(storage),
        credentials=credentials or BcryptCredentialStore(),
    )
    tracker_service = TrackerService(
        repository=SqlTrackerRepository(storage),
        publisher=broadcaster,
    )
    token_issuer = JwtTokenIssuer(
        secret=resolved_settings.jwt_secret,
        ttl_days=resolved_settings.token_ttl_days,
    )

    async def open_resources() -> None:
        await storage.open()
        await storage.initialize_schema()

    async def close_resources() -> None:
        await storage.close()

    return AppContainer(
        settings=resolved_settings,
        storage=storage,
        account_service=account_service,
        tracker_service=tracker_service,
        broadcaster=broadcaster,
        token_issuer=token_issuer,
        open_resources=open_resources,
        close_resources=close_resources,
    )
