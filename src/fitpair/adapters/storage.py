"""Storage-agnostic statement execution over either backend."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from fitpair.adapters.backends import Backend, PostgresBackend, SqliteBackend
from fitpair.adapters.statements import prepare
from fitpair.config import Settings, parse_storage_backend
from fitpair.domain.errors import (
    ConnectionUnavailable,
    DuplicateKey,
    MalformedStatement,
    StorageError,
    StorageFault,
)

_logger = logging.getLogger(__name__)

# Unique columns whose violations callers handle as conflicts.
DUPLICATE_KEY_COLUMNS = frozenset({("accounts", "email")})

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS accounts (
        id {serial_pk},
        email TEXT NOT NULL UNIQUE,
        credential_hash TEXT NOT NULL,
        display_name TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS stats (
        account_id INTEGER PRIMARY KEY REFERENCES accounts(id) ON DELETE CASCADE,
        current_weight {real} NOT NULL,
        goal_weight {real} NOT NULL,
        daily_calorie_goal INTEGER NOT NULL,
        streak_days INTEGER NOT NULL DEFAULT 0,
        junk_food_free_days INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS log_entries (
        id TEXT PRIMARY KEY,
        account_id INTEGER NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
        kind TEXT NOT NULL CHECK (kind IN ('meal', 'exercise')),
        label TEXT NOT NULL,
        calories INTEGER NOT NULL CHECK (calories >= 0),
        protein INTEGER NOT NULL DEFAULT 0,
        carbs INTEGER NOT NULL DEFAULT 0,
        fats INTEGER NOT NULL DEFAULT 0,
        logged_time TEXT NOT NULL,
        preparation_note TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_log_entries_account_created
        ON log_entries(account_id, created_at)
    """,
)


@dataclass(frozen=True)
class QueryResult:
    """Normalized statement result."""

    rows: list[dict[str, object]] = field(default_factory=list)
    affected_count: int = 0


@dataclass
class StorageAdapter:
    """Executes abstract statements against the configured backend."""

    backend: Backend

    @property
    def backend_name(self) -> str:
        return self.backend.name

    async def open(self) -> None:
        """Acquire the backend connection resources."""
        try:
            await self.backend.open()
        except Exception as exc:
            _logger.error(
                "Storage backend unavailable: backend=%s error=%s",
                self.backend.name,
                exc,
            )
            raise ConnectionUnavailable(
                f"Cannot connect to {self.backend.name} backend"
            ) from exc

    async def close(self) -> None:
        """Release the backend connection resources."""
        await self.backend.close()

    async def initialize_schema(self) -> None:
        """Create the accounts, stats and log_entries tables if missing."""
        for statement in SCHEMA_STATEMENTS:
            await self.execute(statement.format(**self.backend.type_spellings), ())

    async def execute(
        self, statement_template: str, parameters: Sequence[object] = ()
    ) -> QueryResult:
        """Run a statement written with '?' placeholders.

        Row-returning statements (SELECT or RETURNING) report the number of
        rows as affected_count; mutating statements return no rows and the
        backend's changed row count.
        """
        try:
            prepared = prepare(
                statement_template, parameters, self.backend.placeholder_style
            )
        except MalformedStatement as exc:
            _logger.error("Malformed statement rejected: %s", exc)
            raise
        if not self.backend.is_open:
            raise ConnectionUnavailable(
                f"The {self.backend.name} backend is not connected"
            )
        try:
            if prepared.returns_rows:
                rows = await self.backend.fetch(prepared.sql, prepared.parameters)
                return QueryResult(rows=rows, affected_count=len(rows))
            count = await self.backend.run(prepared.sql, prepared.parameters)
            return QueryResult(rows=[], affected_count=count)
        except StorageError:
            raise
        except Exception as exc:
            raise self._normalize_error(exc) from exc

    def _normalize_error(self, exc: Exception) -> StorageError:
        violation = self.backend.unique_violation(exc)
        if violation is not None and violation in DUPLICATE_KEY_COLUMNS:
            table, column = violation
            return DuplicateKey(table=table, column=column)
        if self.backend.is_connection_error(exc):
            _logger.error(
                "Storage backend unavailable: backend=%s error=%s",
                self.backend.name,
                exc,
            )
            return ConnectionUnavailable(
                f"Lost connection to {self.backend.name} backend"
            )
        if not isinstance(exc, self.backend.native_errors):
            _logger.exception("Unexpected storage error: backend=%s", self.backend.name)
        else:
            _logger.error(
                "Storage fault: backend=%s error=%s", self.backend.name, exc
            )
        return StorageFault(f"{self.backend.name} backend error", detail=str(exc))


def create_backend(settings: Settings) -> Backend:
    """Return the backend selected by configuration."""
    backend_name = parse_storage_backend(settings.storage_backend)
    if backend_name == "postgres":
        if not settings.database_url:
            raise ValueError("DATABASE_URL is required for the postgres backend")
        return PostgresBackend(dsn=settings.database_url)
    return SqliteBackend(path=settings.sqlite_path)
