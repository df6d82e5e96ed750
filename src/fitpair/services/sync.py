"""Client session tying the reconciliation engine to its transports."""

import logging
from collections.abc import AsyncIterable, Mapping
from dataclasses import dataclass
from typing import Protocol

from pydantic import ValidationError

from fitpair.api.schemas import LogEntryPayload, UserDataResponse
from fitpair.domain.aggregates import AggregateView, ApplyOutcome
from fitpair.domain.models import LogEntry, LogEntryDraft, StatsRecord
from fitpair.services.reconciliation import EntrySink, ReconciliationEngine

_logger = logging.getLogger(__name__)


class TrackerApi(EntrySink, Protocol):
    """Client operations the session needs from the tracker API."""

    async def fetch_user_data(self) -> UserDataResponse:
        """Return stats and every log entry."""


@dataclass
class TrackerSession:
    """One signed-in client: local actions out, pushed entries in.

    The push transport only delivers messages to `handle_message`; all
    state changes go through the engine.
    """

    engine: ReconciliationEngine
    api: TrackerApi

    async def start(self) -> AggregateView:
        """Fetch persisted data and seed the engine."""
        data = await self.api.fetch_user_data()
        return self.engine.load_initial(*self._decode(data))

    async def resync(self) -> AggregateView:
        """Refetch persisted data and reconcile with local state."""
        data = await self.api.fetch_user_data()
        return self.engine.refresh(*self._decode(data))

    def add_entry(self, draft: LogEntryDraft) -> LogEntry:
        """Log a meal or exercise optimistically."""
        return self.engine.apply_local(draft)

    def update_weight(self, weight: float) -> StatsRecord:
        """Record a new weight optimistically."""
        return self.engine.update_weight(weight)

    def handle_message(self, payload: Mapping[str, object]) -> ApplyOutcome:
        """Apply one pushed entry payload."""
        try:
            entry = LogEntryPayload.model_validate(payload).to_domain()
        except ValidationError as exc:
            _logger.warning(
                "Discarding malformed push payload: account_id=%s errors=%s",
                self.engine.account_id,
                exc.error_count(),
            )
            return ApplyOutcome.IGNORED
        outcome = self.engine.apply_remote(entry)
        _logger.debug("Pushed entry %s: entry_id=%s", outcome, entry.id)
        return outcome

    async def pump(self, messages: AsyncIterable[Mapping[str, object]]) -> int:
        """Apply pushed payloads until the stream ends; return how many applied."""
        applied = 0
        async for payload in messages:
            if self.handle_message(payload) == ApplyOutcome.APPLIED:
                applied += 1
        return applied

    async def close(self) -> None:
        """Finish outstanding writes."""
        await self.engine.drain()

    def _decode(self, data: UserDataResponse) -> tuple[list[LogEntry], StatsRecord]:
        account_id = self.engine.account_id
        entries = [payload.to_domain(account_id) for payload in data.logs]
        return entries, data.stats.to_domain(account_id)
