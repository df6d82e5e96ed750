"""Shared test fixtures."""

import asyncio
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from fitpair.adapters.credentials import BcryptCredentialStore
from fitpair.config import Settings
from fitpair.containers import AppContainer, build_container
from fitpair.domain.errors import DuplicateKey, StorageFault
from fitpair.domain.models import Account, LogEntry, Macros, StatsRecord
from fitpair.services.accounts import AccountRepository, CredentialStore
from fitpair.services.reconciliation import EntrySink
from fitpair.services.tracker import EntryPublisher, TrackerRepository


@dataclass
class FakeEntrySink(EntrySink):
    """Entry sink that records writes and can fail or stall on demand."""

    entries: list[LogEntry] = field(default_factory=list)
    weights: list[float] = field(default_factory=list)
    failures: int = 0
    delay: float = 0.0
    delays: list[float] = field(default_factory=list)
    calls: int = 0

    async def append_entry(self, entry: LogEntry) -> None:
        await self._attempt()
        self.entries.append(entry)

    async def update_weight(self, weight: float) -> None:
        await self._attempt()
        self.weights.append(weight)

    async def _attempt(self) -> None:
        self.calls += 1
        delay = self.delays.pop(0) if self.delays else self.delay
        if delay:
            await asyncio.sleep(delay)
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("network unreachable")


@dataclass
class PlainCredentialStore(CredentialStore):
    """Reversible credential store for fast service tests."""

    def hash_credential(self, secret: str) -> str:
        return f"hashed:{secret}"

    def verify_credential(self, secret: str, credential_hash: str) -> bool:
        return credential_hash == f"hashed:{secret}"


@dataclass
class InMemoryAccountRepository(AccountRepository):
    """In-memory account repository for tests."""

    accounts: dict[int, Account] = field(default_factory=dict)
    stats: dict[int, StatsRecord] = field(default_factory=dict)
    fail_stats: bool = False
    fail_delete: bool = False
    deleted: list[int] = field(default_factory=list)

    async def get_by_email(self, email: str) -> Account | None:
        return next((a for a in self.accounts.values() if a.email == email), None)

    async def get_by_id(self, account_id: int) -> Account | None:
        return self.accounts.get(account_id)

    async def create_account(
        self, email: str, credential_hash: str, display_name: str
    ) -> Account:
        if await self.get_by_email(email) is not None:
            raise DuplicateKey(table="accounts", column="email")
        account = Account(
            id=len(self.accounts) + 1,
            email=email,
            credential_hash=credential_hash,
            display_name=display_name,
        )
        self.accounts[account.id] = account
        return account

    async def create_stats(self, stats: StatsRecord) -> None:
        if self.fail_stats:
            raise StorageFault("sqlite backend error", detail="disk I/O error")
        self.stats[stats.account_id] = stats

    async def delete_account(self, account_id: int) -> None:
        if self.fail_delete:
            raise StorageFault("sqlite backend error", detail="database is locked")
        self.deleted.append(account_id)
        self.accounts.pop(account_id, None)
        self.stats.pop(account_id, None)


@dataclass
class InMemoryTrackerRepository(TrackerRepository):
    """In-memory stats and log entry repository for tests."""

    stats: dict[int, StatsRecord] = field(default_factory=dict)
    entries: dict[str, tuple[int, LogEntry]] = field(default_factory=dict)

    async def get_stats(self, account_id: int) -> StatsRecord | None:
        return self.stats.get(account_id)

    async def list_entries(self, account_id: int) -> list[LogEntry]:
        owned = [entry for owner, entry in self.entries.values() if owner == account_id]
        return list(reversed(owned))

    async def insert_entry(self, account_id: int, entry: LogEntry) -> bool:
        if entry.id in self.entries:
            return False
        self.entries[entry.id] = (account_id, entry)
        return True

    async def update_weight(self, account_id: int, weight: float) -> bool:
        current = self.stats.get(account_id)
        if current is None:
            return False
        self.stats[account_id] = StatsRecord(
            account_id=account_id,
            current_weight=weight,
            goal_weight=current.goal_weight,
            daily_calorie_goal=current.daily_calorie_goal,
            streak_days=current.streak_days,
            junk_food_free_days=current.junk_food_free_days,
        )
        return True


@dataclass
class FailingTrackerRepository(TrackerRepository):
    """Tracker repository whose backend is always down."""

    async def get_stats(self, account_id: int) -> StatsRecord | None:
        raise StorageFault("postgres backend error", detail="relation missing")

    async def list_entries(self, account_id: int) -> list[LogEntry]:
        raise StorageFault("postgres backend error", detail="relation missing")

    async def insert_entry(self, account_id: int, entry: LogEntry) -> bool:
        raise StorageFault("postgres backend error", detail="relation missing")

    async def update_weight(self, account_id: int, weight: float) -> bool:
        raise StorageFault("postgres backend error", detail="relation missing")


@dataclass
class RecordingPublisher(EntryPublisher):
    """Publisher that records every delivered entry."""

    published: list[tuple[int, LogEntry]] = field(default_factory=list)

    async def publish(self, account_id: int, entry: LogEntry) -> int:
        self.published.append((account_id, entry))
        return 1


class FakePostgresConnection:
    """Stands in for an asyncpg connection."""

    def __init__(
        self,
        rows: Sequence[dict[str, object]] = (),
        status: str = "INSERT 0 1",
        error: BaseException | None = None,
        script: Sequence[list[dict[str, object]] | str] = (),
    ) -> None:
        self.rows = list(rows)
        self.status = status
        self.error = error
        self.script = list(script)
        self.calls: list[tuple[str, tuple[object, ...]]] = []

    async def fetch(self, sql: str, *args: object) -> list[dict[str, object]]:
        self.calls.append((sql, args))
        if self.error is not None:
            raise self.error
        if self.script:
            return self.script.pop(0)
        return self.rows

    async def execute(self, sql: str, *args: object) -> str:
        self.calls.append((sql, args))
        if self.error is not None:
            raise self.error
        if self.script:
            return self.script.pop(0)
        return self.status


class FakePostgresPool:
    """Stands in for an asyncpg pool holding one connection."""

    def __init__(self, connection: FakePostgresConnection) -> None:
        self.connection = connection
        self.closed = False

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[FakePostgresConnection]:
        yield self.connection

    async def close(self) -> None:
        self.closed = True


def make_entry(  # noqa: PLR0913
    entry_id: str,
    kind: str = "meal",
    calories: int = 420,
    label: str = "Chicken Salad",
    macros: Macros | None = None,
    timestamp: str = "2026-03-01T12:30:00+00:00",
    account_id: int | None = None,
) -> LogEntry:
    return LogEntry(
        id=entry_id,
        kind=kind,
        label=label,
        calories=calories,
        timestamp=timestamp,
        macros=macros or Macros(),
        account_id=account_id,
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        jwt_secret="test-secret",
        storage_backend="sqlite",
        sqlite_path=str(tmp_path / "fitpair.db"),
        cookie_secure=False,
    )


@pytest.fixture
def container(settings: Settings) -> AppContainer:
    return build_container(settings, credentials=BcryptCredentialStore(rounds=4))
