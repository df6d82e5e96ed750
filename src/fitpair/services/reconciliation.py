"""Client-side reconciliation of optimistic totals with pushed entries."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Protocol
from uuid import uuid4

from fitpair.config import Settings
from fitpair.domain.aggregates import (
    AggregateView,
    ApplyOutcome,
    DailySummary,
    EntryStatus,
    apply_entry,
    fold_entries,
    summarize,
)
from fitpair.domain.models import LogEntry, LogEntryDraft, StatsRecord

_logger = logging.getLogger(__name__)


class EntrySink(Protocol):
    """Destination for locally created entries and weight updates."""

    async def append_entry(self, entry: LogEntry) -> None:
        """Persist one entry; raise on failure."""

    async def update_weight(self, weight: float) -> None:
        """Persist the current weight; raise on failure."""


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded persistence retries with exponential backoff."""

    timeout_seconds: float = 10.0
    max_attempts: int = 3
    base_delay_seconds: float = 1.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            timeout_seconds=settings.persist_timeout_seconds,
            max_attempts=settings.max_persist_attempts,
            base_delay_seconds=settings.retry_base_delay_seconds,
        )

    def delay_for(self, attempt: int) -> float:
        """Return the wait before the attempt after `attempt`."""
        return self.base_delay_seconds * (2 ** (attempt - 1))


@dataclass
class _PersistJob:
    key: str
    send: Callable[[], Awaitable[None]]
    settled: Callable[[], bool]
    mark: Callable[[EntryStatus], None]
    attempts: int = 0
    after: asyncio.Task[None] | None = None
    task: asyncio.Task[None] | None = None


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _new_entry_id() -> str:
    return uuid4().hex


def _display_time(entry: LogEntry) -> datetime:
    if entry.created_at is not None:
        moment = entry.created_at
    else:
        try:
            moment = datetime.fromisoformat(entry.timestamp)
        except ValueError:
            return datetime.min.replace(tzinfo=UTC)
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=UTC)


@dataclass
class ReconciliationEngine:
    """Keeps one account's running totals equal to the fold over its entries.

    Entries arrive either from local actions (`apply_local`, applied
    optimistically and persisted in the background) or from the push
    channel (`apply_remote`). The entry id is the deduplication key, so an
    entry affects the totals at most once whichever way it arrives.

    All state transitions are synchronous; the engine must be driven from a
    single event loop, which serializes them.
    """

    account_id: int
    sink: EntrySink
    policy: RetryPolicy = field(default_factory=RetryPolicy)
    clock: Callable[[], datetime] = _utc_now
    id_factory: Callable[[], str] = _new_entry_id
    stats: StatsRecord | None = None
    view: AggregateView = field(default_factory=AggregateView)
    weight_status: EntryStatus | None = None
    _entries: dict[str, LogEntry] = field(default_factory=dict, repr=False)
    _status: dict[str, EntryStatus] = field(default_factory=dict, repr=False)
    _jobs: dict[str, _PersistJob] = field(default_factory=dict, repr=False)
    _weight_version: int = field(default=0, repr=False)
    _weight_job: _PersistJob | None = field(default=None, repr=False)

    def load_initial(
        self, rows: Iterable[LogEntry], stats: StatsRecord
    ) -> AggregateView:
        """Replace local state with the persisted entries and stats.

        Outstanding persistence attempts belong to the replaced state and are
        cancelled.
        """
        self._forget_jobs()
        self._entries = {}
        for entry in rows:
            self._entries.setdefault(entry.id, entry)
        self._status = dict.fromkeys(self._entries, EntryStatus.CONFIRMED)
        self.stats = stats
        self.view = fold_entries(self._entries.values())
        return self.view

    def refresh(self, rows: Iterable[LogEntry], stats: StatsRecord) -> AggregateView:
        """Reconcile against a server refetch, keeping unsaved local entries."""
        server: dict[str, LogEntry] = {}
        for entry in rows:
            server.setdefault(entry.id, entry)
        local_only = {
            entry_id: entry
            for entry_id, entry in self._entries.items()
            if entry_id not in server
        }
        self._entries = {**server, **local_only}
        self._status = {
            **dict.fromkeys(server, EntryStatus.CONFIRMED),
            **{entry_id: self._status[entry_id] for entry_id in local_only},
        }
        if self.weight_status in {EntryStatus.PENDING, EntryStatus.STALE} and (
            self.stats is not None
        ):
            stats = replace(stats, current_weight=self.stats.current_weight)
        self.stats = stats
        self.view = fold_entries(self._entries.values())
        return self.view

    def apply_local(self, draft: LogEntryDraft) -> LogEntry:
        """Apply a new entry immediately and persist it in the background.

        Must be called from inside a running event loop.
        """
        now = self.clock()
        entry = LogEntry(
            id=self.id_factory(),
            kind=draft.kind,
            label=draft.label,
            calories=draft.calories,
            timestamp=now.isoformat(),
            macros=draft.macros,
            preparation_note=draft.preparation_note,
            account_id=self.account_id,
            created_at=now,
        )
        self._insert(entry, EntryStatus.PENDING)
        self._schedule_entry(entry)
        return entry

    def apply_remote(self, entry: LogEntry) -> ApplyOutcome:
        """Apply a pushed entry unless its id is already known."""
        if entry.account_id is not None and entry.account_id != self.account_id:
            _logger.warning(
                "Ignoring entry for another account: account_id=%s entry_id=%s",
                entry.account_id,
                entry.id,
            )
            return ApplyOutcome.IGNORED
        if entry.id in self._entries:
            # Only persisted entries are pushed, so an echo confirms the write.
            if self._status.get(entry.id) != EntryStatus.CONFIRMED:
                self._status[entry.id] = EntryStatus.CONFIRMED
            return ApplyOutcome.IGNORED
        self._insert(entry, EntryStatus.CONFIRMED)
        return ApplyOutcome.APPLIED

    def update_weight(self, weight: float) -> StatsRecord:
        """Replace the current weight locally and persist it, last write wins.

        Weight writes are sent one at a time in issue order, so an older
        write can never land after a newer one.
        """
        if weight <= 0:
            raise ValueError("Weight must be positive")
        base = self.stats or StatsRecord(account_id=self.account_id)
        self.stats = replace(base, current_weight=weight)
        self._weight_version += 1
        version = self._weight_version

        def mark(status: EntryStatus) -> None:
            if version == self._weight_version:
                self.weight_status = status

        job = _PersistJob(
            key=f"weight:{version}",
            send=lambda: self.sink.update_weight(weight),
            settled=lambda: version != self._weight_version,
            mark=mark,
            after=self._weight_job.task if self._weight_job is not None else None,
        )
        self.weight_status = EntryStatus.PENDING
        self._weight_job = job
        self._start(job)
        return self.stats

    def status_of(self, entry_id: str) -> EntryStatus | None:
        """Return the local status of an entry."""
        return self._status.get(entry_id)

    def entries(self) -> list[LogEntry]:
        """Return entries for display, most recent first.

        Stored entries are ordered by their server creation time; entries
        without one fall back to their client timestamp.
        """
        return sorted(self._entries.values(), key=_display_time, reverse=True)

    def stale_entries(self) -> list[LogEntry]:
        """Return entries whose persistence failed."""
        return [
            entry
            for entry_id, entry in self._entries.items()
            if self._status.get(entry_id) == EntryStatus.STALE
        ]

    def retry_stale(self) -> list[str]:
        """Restart persistence for stale entries that have no running attempt."""
        retried = []
        for entry in self.stale_entries():
            job = self._jobs.get(entry.id)
            if job is not None and job.task is not None and not job.task.done():
                continue
            self._schedule_entry(entry)
            retried.append(entry.id)
        return retried

    def summary(self) -> DailySummary:
        """Return the calorie budget for the current totals."""
        return summarize(self.stats or StatsRecord(account_id=self.account_id), self.view)

    async def drain(self) -> None:
        """Wait until every background persistence attempt has finished."""
        while True:
            pending = [
                job.task
                for job in self._all_jobs()
                if job.task is not None and not job.task.done()
            ]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def close(self) -> None:
        """Cancel outstanding persistence attempts."""
        tasks = [job.task for job in self._all_jobs() if job.task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _insert(self, entry: LogEntry, status: EntryStatus) -> None:
        self._entries[entry.id] = entry
        self._status[entry.id] = status
        self.view = apply_entry(self.view, entry)

    def _schedule_entry(self, entry: LogEntry) -> None:
        entry_id = entry.id

        def mark(status: EntryStatus) -> None:
            if entry_id not in self._entries:
                return
            if self._status.get(entry_id) != EntryStatus.CONFIRMED:
                self._status[entry_id] = status

        job = _PersistJob(
            key=entry_id,
            send=lambda: self.sink.append_entry(entry),
            settled=lambda: self._status.get(entry_id) == EntryStatus.CONFIRMED,
            mark=mark,
        )
        self._status[entry_id] = EntryStatus.PENDING
        self._start(job)

    def _start(self, job: _PersistJob) -> None:
        self._jobs = {
            key: running
            for key, running in self._jobs.items()
            if running.task is None or not running.task.done()
        }
        self._jobs[job.key] = job
        job.task = asyncio.get_running_loop().create_task(self._persist(job))

    def _all_jobs(self) -> list[_PersistJob]:
        return list(self._jobs.values())

    def _forget_jobs(self) -> None:
        for job in self._jobs.values():
            if job.task is not None:
                job.task.cancel()
        self._jobs = {}
        self._weight_job = None
        self._weight_version += 1
        self.weight_status = None

    async def _persist(self, job: _PersistJob) -> None:
        if job.after is not None:
            await asyncio.wait({job.after})
        while not job.settled():
            job.attempts += 1
            job.mark(EntryStatus.PENDING)
            try:
                await asyncio.wait_for(job.send(), timeout=self.policy.timeout_seconds)
            except Exception as exc:
                if job.settled():
                    return
                job.mark(EntryStatus.STALE)
                _logger.warning(
                    "Persistence attempt failed: account_id=%s key=%s attempt=%s "
                    "error=%r",
                    self.account_id,
                    job.key,
                    job.attempts,
                    exc,
                )
                if job.attempts >= self.policy.max_attempts:
                    _logger.error(
                        "Giving up on persistence: account_id=%s key=%s attempts=%s",
                        self.account_id,
                        job.key,
                        job.attempts,
                    )
                    return
                await asyncio.sleep(self.policy.delay_for(job.attempts))
                continue
            job.mark(EntryStatus.CONFIRMED)
            return
