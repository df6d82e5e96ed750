"""Repositories built on the storage adapter."""

from dataclasses import dataclass
from datetime import UTC, datetime

from fitpair.adapters.storage import StorageAdapter
from fitpair.domain.errors import StorageFault
from fitpair.domain.models import Account, LogEntry, Macros, StatsRecord
from fitpair.services.accounts import AccountRepository
from fitpair.services.tracker import TrackerRepository

_ACCOUNT_COLUMNS = "id, email, credential_hash, display_name"
_STATS_COLUMNS = (
    "account_id, current_weight, goal_weight, daily_calorie_goal, "
    "streak_days, junk_food_free_days"
)
_ENTRY_COLUMNS = (
    "id, account_id, kind, label, calories, protein, carbs, fats, "
    "logged_time, preparation_note, created_at"
)


@dataclass
class SqlAccountRepository(AccountRepository):
    """Account persistence over either storage backend."""

    storage: StorageAdapter

    async def get_by_email(self, email: str) -> Account | None:
        """Return the account for an email, if present."""
        result = await self.storage.execute(
            f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE email = ?", (email,)
        )
        return _parse_account(result.rows[0]) if result.rows else None

    async def get_by_id(self, account_id: int) -> Account | None:
        """Return the account for an id, if present."""
        result = await self.storage.execute(
            f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE id = ?", (account_id,)
        )
        return _parse_account(result.rows[0]) if result.rows else None

    async def create_account(
        self, email: str, credential_hash: str, display_name: str
    ) -> Account:
        """Insert an account row and return it."""
        result = await self.storage.execute(
            "INSERT INTO accounts (email, credential_hash, display_name, created_at) "
            f"VALUES (?, ?, ?, ?) RETURNING {_ACCOUNT_COLUMNS}",
            (email, credential_hash, display_name, _now_iso()),
        )
        if not result.rows:
            raise StorageFault("Failed to create account")
        return _parse_account(result.rows[0])

    async def create_stats(self, stats: StatsRecord) -> None:
        """Insert the stats row for an account."""
        await self.storage.execute(
            f"INSERT INTO stats ({_STATS_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
            (
                stats.account_id,
                float(stats.current_weight),
                float(stats.goal_weight),
                stats.daily_calorie_goal,
                stats.streak_days,
                stats.junk_food_free_days,
            ),
        )

    async def delete_account(self, account_id: int) -> None:
        """Delete an account row."""
        await self.storage.execute("DELETE FROM accounts WHERE id = ?", (account_id,))


@dataclass
class SqlTrackerRepository(TrackerRepository):
    """Stats and log entry persistence over either storage backend."""

    storage: StorageAdapter

    async def get_stats(self, account_id: int) -> StatsRecord | None:
        """Return the stats row for an account."""
        result = await self.storage.execute(
            f"SELECT {_STATS_COLUMNS} FROM stats WHERE account_id = ?", (account_id,)
        )
        return _parse_stats(result.rows[0]) if result.rows else None

    async def list_entries(self, account_id: int) -> list[LogEntry]:
        """Return all entries, most recent first."""
        result = await self.storage.execute(
            f"SELECT {_ENTRY_COLUMNS} FROM log_entries WHERE account_id = ? "
            "ORDER BY created_at DESC, id DESC",
            (account_id,),
        )
        return [parse_entry_row(row) for row in result.rows]

    async def insert_entry(self, account_id: int, entry: LogEntry) -> bool:
        """Insert an entry, ignoring a repeated id."""
        macros = entry.macros if entry.kind == "meal" else Macros()
        result = await self.storage.execute(
            f"INSERT INTO log_entries ({_ENTRY_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT (id) DO NOTHING",
            (
                entry.id,
                account_id,
                entry.kind,
                entry.label,
                entry.calories,
                macros.protein,
                macros.carbs,
                macros.fats,
                entry.timestamp,
                entry.preparation_note,
                _now_iso(),
            ),
        )
        return result.affected_count > 0

    async def update_weight(self, account_id: int, weight: float) -> bool:
        """Replace the current weight."""
        result = await self.storage.execute(
            "UPDATE stats SET current_weight = ? WHERE account_id = ?",
            (float(weight), account_id),
        )
        return result.affected_count > 0


def parse_entry_row(row: dict[str, object]) -> LogEntry:
    """Map a log_entries row from either backend to a LogEntry."""
    created_raw = row.get("created_at")
    return LogEntry(
        id=str(row["id"]),
        account_id=int(row["account_id"]),
        kind=str(row["kind"]),
        label=str(row["label"]),
        calories=int(row["calories"]),
        macros=Macros(
            protein=int(row.get("protein") or 0),
            carbs=int(row.get("carbs") or 0),
            fats=int(row.get("fats") or 0),
        ),
        timestamp=str(row["logged_time"]),
        preparation_note=row.get("preparation_note"),
        created_at=(
            datetime.fromisoformat(created_raw)
            if isinstance(created_raw, str) and created_raw
            else None
        ),
    )


def _parse_account(row: dict[str, object]) -> Account:
    return Account(
        id=int(row["id"]),
        email=str(row["email"]),
        credential_hash=str(row["credential_hash"]),
        display_name=str(row["display_name"]),
    )


def _parse_stats(row: dict[str, object]) -> StatsRecord:
    return StatsRecord(
        account_id=int(row["account_id"]),
        current_weight=float(row["current_weight"]),
        goal_weight=float(row["goal_weight"]),
        daily_calorie_goal=int(row["daily_calorie_goal"]),
        streak_days=int(row["streak_days"]),
        junk_food_free_days=int(row["junk_food_free_days"]),
    )


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()
