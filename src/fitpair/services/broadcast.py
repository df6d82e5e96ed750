"""Per-account push channel for log entries."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from fitpair.domain.models import LogEntry

_logger = logging.getLogger(__name__)


@dataclass
class Broadcaster:
    """In-process fan-out of entries to the owning account's subscribers.

    Every subscriber gets its own queue. Delivery is at-least-once from the
    receiver's point of view; there is no ordering across publishers.
    """

    max_queue_size: int = 1000
    _topics: dict[int, set[asyncio.Queue[LogEntry]]] = field(
        default_factory=dict, repr=False
    )

    async def publish(self, account_id: int, entry: LogEntry) -> int:
        """Deliver an entry to every subscriber of the account topic."""
        subscribers = self._topics.get(account_id, set())
        delivered = 0
        for queue in list(subscribers):
            try:
                queue.put_nowait(entry)
                delivered += 1
            except asyncio.QueueFull:
                _logger.warning(
                    "Dropping entry for slow subscriber: account_id=%s entry_id=%s",
                    account_id,
                    entry.id,
                )
        _logger.info(
            "Published entry: account_id=%s entry_id=%s subscribers=%s",
            account_id,
            entry.id,
            delivered,
        )
        return delivered

    @asynccontextmanager
    async def subscribe(self, account_id: int) -> AsyncIterator[asyncio.Queue[LogEntry]]:
        """Register a subscriber queue for the duration of the context."""
        queue: asyncio.Queue[LogEntry] = asyncio.Queue(maxsize=self.max_queue_size)
        self._topics.setdefault(account_id, set()).add(queue)
        try:
            yield queue
        finally:
            subscribers = self._topics.get(account_id)
            if subscribers is not None:
                subscribers.discard(queue)
                if not subscribers:
                    self._topics.pop(account_id, None)

    def subscriber_count(self, account_id: int) -> int:
        """Return the number of live subscribers for an account."""
        return len(self._topics.get(account_id, ()))
