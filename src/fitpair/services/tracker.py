"""Server-side log entry and weight operations."""

import logging
from dataclasses import dataclass
from typing import Protocol

from fitpair.domain.models import LogEntry, StatsRecord

_logger = logging.getLogger(__name__)


class TrackerRepository(Protocol):
    """Persistence interface for stats and log entries."""

    async def get_stats(self, account_id: int) -> StatsRecord | None:
        """Return the stats row for an account."""

    async def list_entries(self, account_id: int) -> list[LogEntry]:
        """Return all entries for an account, most recent first."""

    async def insert_entry(self, account_id: int, entry: LogEntry) -> bool:
        """Insert an entry; return False when the id already exists."""

    async def update_weight(self, account_id: int, weight: float) -> bool:
        """Replace the current weight; return False when no stats row exists."""


class EntryPublisher(Protocol):
    """Push channel used after an entry is persisted."""

    async def publish(self, account_id: int, entry: LogEntry) -> int:
        """Deliver an entry to the account's subscribers."""


@dataclass
class TrackerService:
    """Loads and appends account data, publishing new entries."""

    repository: TrackerRepository
    publisher: EntryPublisher

    async def load(self, account_id: int) -> tuple[StatsRecord, list[LogEntry]]:
        """Return the stats snapshot and every entry for the initial load."""
        stats = await self.repository.get_stats(account_id)
        entries = await self.repository.list_entries(account_id)
        return stats or StatsRecord(account_id=account_id), entries

    async def append_entry(self, account_id: int, entry: LogEntry) -> bool:
        """Persist an entry and publish it when it was newly stored."""
        inserted = await self.repository.insert_entry(account_id, entry)
        if not inserted:
            _logger.info(
                "Entry already stored: account_id=%s entry_id=%s", account_id, entry.id
            )
            return False
        await self.publisher.publish(account_id, entry)
        return True

    async def update_weight(self, account_id: int, weight: float) -> bool:
        """Replace the account's current weight."""
        if weight <= 0:
            raise ValueError("Weight must be positive")
        return await self.repository.update_weight(account_id, weight)
