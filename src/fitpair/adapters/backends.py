"""Native storage engines behind the storage adapter."""

import asyncio
import re
import sqlite3
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar, Protocol

import aiosqlite
import asyncpg

from fitpair.adapters.statements import PlaceholderStyle

_PG_KEY_DETAIL = re.compile(r"Key \((?P<columns>[^)]+)\)=")
_SQLITE_UNIQUE = "UNIQUE constraint failed: "


class Backend(Protocol):
    """Interface implemented by each storage engine."""

    name: str
    placeholder_style: PlaceholderStyle
    type_spellings: dict[str, str]
    native_errors: tuple[type[BaseException], ...]

    @property
    def is_open(self) -> bool:
        """Return True once the engine holds a live handle."""

    async def open(self) -> None:
        """Acquire the underlying connection resources."""

    async def close(self) -> None:
        """Release the underlying connection resources."""

    async def fetch(
        self, sql: str, parameters: Sequence[object]
    ) -> list[dict[str, object]]:
        """Run a row-returning statement and return rows keyed by column."""

    async def run(self, sql: str, parameters: Sequence[object]) -> int:
        """Run a mutating statement and return the changed row count."""

    def unique_violation(self, exc: BaseException) -> tuple[str, str] | None:
        """Return (table, column) when exc is a uniqueness violation."""

    def is_connection_error(self, exc: BaseException) -> bool:
        """Return True when exc means the backend is unreachable."""


@dataclass
class PostgresBackend:
    """PostgreSQL engine backed by an asyncpg pool."""

    dsn: str
    min_size: int = 1
    max_size: int = 10
    command_timeout: float = 10
    pool: asyncpg.Pool | None = None

    name: ClassVar[str] = "postgres"
    placeholder_style: ClassVar[PlaceholderStyle] = "numeric"
    type_spellings: ClassVar[dict[str, str]] = {
        "serial_pk": "SERIAL PRIMARY KEY",
        "real": "DOUBLE PRECISION",
    }
    native_errors: ClassVar[tuple[type[BaseException], ...]] = (
        asyncpg.PostgresError,
        asyncpg.InterfaceError,
    )

    @property
    def is_open(self) -> bool:
        return self.pool is not None

    async def open(self) -> None:
        """Create the connection pool."""
        if self.pool is None:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout,
            )

    async def close(self) -> None:
        """Close the connection pool."""
        if self.pool is not None:
            pool, self.pool = self.pool, None
            await pool.close()

    async def fetch(
        self, sql: str, parameters: Sequence[object]
    ) -> list[dict[str, object]]:
        """Return rows as plain dicts."""
        async with self._connection() as conn:
            records = await conn.fetch(sql, *parameters)
        return [dict(record) for record in records]

    async def run(self, sql: str, parameters: Sequence[object]) -> int:
        """Return the row count reported in the command status."""
        async with self._connection() as conn:
            status = await conn.execute(sql, *parameters)
        return _status_row_count(status)

    def unique_violation(self, exc: BaseException) -> tuple[str, str] | None:
        """Extract the violated table and column from a UniqueViolationError."""
        if not isinstance(exc, asyncpg.UniqueViolationError):
            return None
        table = getattr(exc, "table_name", None) or ""
        match = _PG_KEY_DETAIL.search(getattr(exc, "detail", None) or "")
        if match:
            column = match.group("columns").split(",")[0].strip()
        else:
            column = getattr(exc, "constraint_name", None) or ""
        return table, column

    def is_connection_error(self, exc: BaseException) -> bool:
        """Return True for refused, dropped or timed out connections."""
        return isinstance(
            exc,
            OSError
            | TimeoutError
            | asyncpg.PostgresConnectionError
            | asyncpg.ConnectionDoesNotExistError,
        )

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
        if self.pool is None:
            raise asyncpg.ConnectionDoesNotExistError("Connection pool is not open")
        async with self.pool.acquire() as conn:
            yield conn


@dataclass
class SqliteBackend:
    """Embedded SQLite engine backed by one aiosqlite connection."""

    path: str
    connection: aiosqlite.Connection | None = None
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    name: ClassVar[str] = "sqlite"
    placeholder_style: ClassVar[PlaceholderStyle] = "qmark"
    type_spellings: ClassVar[dict[str, str]] = {
        "serial_pk": "INTEGER PRIMARY KEY AUTOINCREMENT",
        "real": "REAL",
    }
    native_errors: ClassVar[tuple[type[BaseException], ...]] = (sqlite3.Error,)

    @property
    def is_open(self) -> bool:
        return self.connection is not None

    async def open(self) -> None:
        """Open the database file, creating its directory if needed."""
        if self.connection is not None:
            return
        if self.path != ":memory:":
            Path(self.path).expanduser().parent.mkdir(parents=True, exist_ok=True)
        connection = await aiosqlite.connect(self.path)
        connection.row_factory = aiosqlite.Row
        await connection.execute("PRAGMA foreign_keys = ON")
        self.connection = connection

    async def close(self) -> None:
        """Close the database connection."""
        if self.connection is not None:
            connection, self.connection = self.connection, None
            await connection.close()

    async def fetch(
        self, sql: str, parameters: Sequence[object]
    ) -> list[dict[str, object]]:
        """Return rows as plain dicts, committing RETURNING writes."""
        async with self._lock:
            conn = self._require_connection()
            try:
                async with conn.execute(sql, tuple(parameters)) as cursor:
                    rows = await cursor.fetchall()
                await conn.commit()
            except sqlite3.Error:
                await conn.rollback()
                raise
        return [dict(row) for row in rows]

    async def run(self, sql: str, parameters: Sequence[object]) -> int:
        """Return the cursor row count for a mutating statement."""
        async with self._lock:
            conn = self._require_connection()
            try:
                async with conn.execute(sql, tuple(parameters)) as cursor:
                    count = cursor.rowcount
                await conn.commit()
            except sqlite3.Error:
                await conn.rollback()
                raise
        return max(count, 0)

    def unique_violation(self, exc: BaseException) -> tuple[str, str] | None:
        """Parse 'UNIQUE constraint failed: table.column' messages."""
        if not isinstance(exc, sqlite3.IntegrityError):
            return None
        message = str(exc)
        if not message.startswith(_SQLITE_UNIQUE):
            return None
        first = message[len(_SQLITE_UNIQUE) :].split(",")[0].strip()
        table, _, column = first.partition(".")
        return table, column

    def is_connection_error(self, exc: BaseException) -> bool:
        """Return True when the database file cannot be opened."""
        return isinstance(exc, sqlite3.OperationalError) and (
            "unable to open" in str(exc)
        )

    def _require_connection(self) -> aiosqlite.Connection:
        if self.connection is None:
            raise sqlite3.OperationalError("unable to open database: not connected")
        return self.connection


def _status_row_count(status: str) -> int:
    """Parse asyncpg command tags such as 'INSERT 0 1' or 'UPDATE 3'."""
    last = status.rsplit(" ", 1)[-1] if status else ""
    return int(last) if last.isdigit() else 0
