"""Tests for the client-side reconciliation engine."""

import asyncio
import itertools
from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest

from fitpair.domain.activities import exercise_draft
from fitpair.domain.aggregates import ApplyOutcome, EntryStatus, fold_entries
from fitpair.domain.models import LogEntryDraft, Macros, StatsRecord
from fitpair.services.reconciliation import ReconciliationEngine, RetryPolicy
from tests.conftest import FakeEntrySink, make_entry

FAST_RETRIES = RetryPolicy(timeout_seconds=0.05, max_attempts=3, base_delay_seconds=0.001)


def _engine(sink: FakeEntrySink, policy: RetryPolicy = FAST_RETRIES) -> ReconciliationEngine:
    ids = (f"local-{n}" for n in itertools.count(1))
    ticks = itertools.count()
    start = datetime(2026, 3, 1, 8, 0, tzinfo=UTC)
    engine = ReconciliationEngine(
        account_id=7,
        sink=sink,
        policy=policy,
        clock=lambda: start + timedelta(minutes=next(ticks)),
        id_factory=lambda: next(ids),
    )
    engine.load_initial([], StatsRecord(account_id=7))
    return engine


def _salad() -> LogEntryDraft:
    return LogEntryDraft(
        kind="meal",
        label="Chicken Salad",
        calories=420,
        macros=Macros(protein=35, carbs=12, fats=18),
    )


def test_own_echo_is_counted_once() -> None:
    sink = FakeEntrySink()

    async def scenario() -> None:
        engine = _engine(sink)
        entry = engine.apply_local(_salad())
        assert engine.view.calories_consumed == 420
        assert engine.status_of(entry.id) == EntryStatus.PENDING

        await engine.drain()
        outcome = engine.apply_remote(sink.entries[0])

        assert outcome == ApplyOutcome.IGNORED
        assert engine.view.calories_consumed == 420
        assert engine.view.macro_totals == Macros(protein=35, carbs=12, fats=18)
        assert engine.status_of(entry.id) == EntryStatus.CONFIRMED

    asyncio.run(scenario())


def test_echo_before_write_finishes_confirms_entry() -> None:
    sink = FakeEntrySink(delay=0.01)

    async def scenario() -> None:
        engine = _engine(sink)
        entry = engine.apply_local(_salad())
        await asyncio.sleep(0)

        outcome = engine.apply_remote(entry)
        await engine.drain()

        assert outcome == ApplyOutcome.IGNORED
        assert engine.view.calories_consumed == 420
        assert engine.status_of(entry.id) == EntryStatus.CONFIRMED

    asyncio.run(scenario())


def test_remote_entry_from_other_device_is_applied_once() -> None:
    sink = FakeEntrySink()

    async def scenario() -> None:
        engine = _engine(sink)
        remote = make_entry("phone-1", calories=350)

        assert engine.apply_remote(remote) == ApplyOutcome.APPLIED
        assert engine.apply_remote(remote) == ApplyOutcome.IGNORED
        assert engine.view.calories_consumed == 350
        assert engine.status_of("phone-1") == EntryStatus.CONFIRMED
        assert sink.calls == 0

    asyncio.run(scenario())


def test_entry_for_another_account_is_ignored() -> None:
    engine = _engine(FakeEntrySink())

    outcome = engine.apply_remote(make_entry("x-1", account_id=99))

    assert outcome == ApplyOutcome.IGNORED
    assert engine.view.calories_consumed == 0
    assert engine.status_of("x-1") is None


def test_exercise_adds_to_burned_calories() -> None:
    sink = FakeEntrySink()

    async def scenario() -> None:
        engine = _engine(sink)
        engine.apply_local(_salad())
        workout = engine.apply_local(exercise_draft("cardio", 30))
        await engine.drain()

        assert workout.label == "Cardio Session"
        assert engine.view.calories_burned == 300
        assert engine.view.calories_consumed == 420
        summary = engine.summary()
        assert summary.net_calories == 120
        assert summary.remaining_calories == 2080

    asyncio.run(scenario())


def test_local_and_remote_delivery_converge() -> None:
    async def scenario() -> None:
        writer = _engine(FakeEntrySink())
        first = writer.apply_local(_salad())
        second = writer.apply_local(exercise_draft("walking", 20))
        await writer.drain()

        reader = _engine(FakeEntrySink())
        for entry in (second, first, second):
            reader.apply_remote(entry)

        assert reader.view == writer.view
        assert writer.view == fold_entries(writer.entries())

    asyncio.run(scenario())


def test_load_initial_counts_repeated_rows_once() -> None:
    engine = _engine(FakeEntrySink())
    entry = make_entry("m-1", calories=500)

    view = engine.load_initial([entry, entry], StatsRecord(account_id=7))

    assert view.calories_consumed == 500
    assert engine.status_of("m-1") == EntryStatus.CONFIRMED


def test_failed_write_becomes_stale_but_stays_counted() -> None:
    sink = FakeEntrySink(failures=10)

    async def scenario() -> None:
        engine = _engine(sink)
        entry = engine.apply_local(_salad())
        await engine.drain()

        assert sink.calls == FAST_RETRIES.max_attempts
        assert engine.status_of(entry.id) == EntryStatus.STALE
        assert engine.stale_entries() == [entry]
        assert engine.view.calories_consumed == 420

    asyncio.run(scenario())


def test_load_initial_drops_writes_for_replaced_entries() -> None:
    sink = FakeEntrySink(failures=10)

    async def scenario() -> None:
        engine = _engine(sink)
        entry = engine.apply_local(_salad())
        await asyncio.sleep(0)

        view = engine.load_initial([], StatsRecord(account_id=7))
        await engine.drain()
        await asyncio.sleep(0.01)

        assert view.calories_consumed == 0
        assert engine.status_of(entry.id) is None
        assert engine.stale_entries() == []
        assert engine.retry_stale() == []
        assert sink.calls <= 1

    asyncio.run(scenario())


def test_transient_failure_is_retried() -> None:
    sink = FakeEntrySink(failures=1)

    async def scenario() -> None:
        engine = _engine(sink)
        entry = engine.apply_local(_salad())
        await engine.drain()

        assert sink.calls == 2
        assert engine.status_of(entry.id) == EntryStatus.CONFIRMED
        assert sink.entries == [entry]

    asyncio.run(scenario())


def test_slow_write_times_out_as_stale() -> None:
    sink = FakeEntrySink(delay=1.0)
    policy = RetryPolicy(timeout_seconds=0.01, max_attempts=1)

    async def scenario() -> None:
        engine = _engine(sink, policy)
        entry = engine.apply_local(_salad())
        await engine.drain()

        assert engine.status_of(entry.id) == EntryStatus.STALE
        assert sink.entries == []

    asyncio.run(scenario())


def test_retry_stale_resends_entries() -> None:
    sink = FakeEntrySink(failures=3)

    async def scenario() -> None:
        engine = _engine(sink)
        entry = engine.apply_local(_salad())
        await engine.drain()
        assert engine.status_of(entry.id) == EntryStatus.STALE

        retried = engine.retry_stale()
        await engine.drain()

        assert retried == [entry.id]
        assert engine.status_of(entry.id) == EntryStatus.CONFIRMED
        assert engine.stale_entries() == []
        assert engine.view.calories_consumed == 420

    asyncio.run(scenario())


def test_refresh_keeps_unsaved_local_entries() -> None:
    sink = FakeEntrySink(failures=10)

    async def scenario() -> None:
        engine = _engine(sink)
        engine.load_initial([make_entry("m-1", calories=500)], StatsRecord(account_id=7))
        local = engine.apply_local(_salad())
        await engine.drain()

        view = engine.refresh(
            [make_entry("m-1", calories=500), make_entry("m-2", calories=200)],
            StatsRecord(account_id=7, current_weight=77.0),
        )

        assert view.calories_consumed == 1120
        assert engine.status_of(local.id) == EntryStatus.STALE
        assert engine.status_of("m-2") == EntryStatus.CONFIRMED
        assert engine.stats.current_weight == 77.0

    asyncio.run(scenario())


def test_refresh_keeps_unsaved_weight() -> None:
    sink = FakeEntrySink(failures=10)

    async def scenario() -> None:
        engine = _engine(sink)
        engine.update_weight(76.2)
        await engine.drain()

        engine.refresh([], StatsRecord(account_id=7, current_weight=78.5))

        assert engine.weight_status == EntryStatus.STALE
        assert engine.stats.current_weight == 76.2

    asyncio.run(scenario())


def test_weight_update_last_write_wins() -> None:
    sink = FakeEntrySink(delay=0.01)

    async def scenario() -> None:
        engine = _engine(sink)
        engine.update_weight(78.0)
        stats = engine.update_weight(77.4)
        await engine.drain()

        assert stats.current_weight == 77.4
        assert engine.stats.current_weight == 77.4
        assert sink.weights[-1] == 77.4
        assert engine.weight_status == EntryStatus.CONFIRMED

    asyncio.run(scenario())


def test_slow_weight_write_cannot_overwrite_newer_one() -> None:
    sink = FakeEntrySink(delays=[0.05])
    policy = RetryPolicy(timeout_seconds=1.0, base_delay_seconds=0.001)

    async def scenario() -> None:
        engine = _engine(sink, policy)
        engine.update_weight(80.0)
        await asyncio.sleep(0.01)
        engine.update_weight(81.0)
        await engine.drain()

        assert sink.weights == [80.0, 81.0]
        assert engine.stats.current_weight == 81.0
        assert engine.weight_status == EntryStatus.CONFIRMED

    asyncio.run(scenario())


def test_weight_must_be_positive() -> None:
    engine = _engine(FakeEntrySink())

    with pytest.raises(ValueError):
        engine.update_weight(0)


def test_entries_are_listed_newest_first() -> None:
    async def scenario() -> None:
        engine = _engine(FakeEntrySink())
        first = engine.apply_local(_salad())
        second = engine.apply_local(exercise_draft("weights", 10))
        await engine.drain()

        assert [entry.id for entry in engine.entries()] == [second.id, first.id]

    asyncio.run(scenario())


def test_entries_are_ordered_by_creation_time() -> None:
    engine = _engine(FakeEntrySink())
    older = replace(
        make_entry("m-1", timestamp="2026-03-01T23:00:00+00:00"),
        created_at=datetime(2026, 3, 1, 9, 0, tzinfo=UTC),
    )
    newer = replace(
        make_entry("m-2", timestamp="12:30 PM"),
        created_at=datetime(2026, 3, 1, 10, 0, tzinfo=UTC),
    )
    undated = make_entry("m-3", timestamp="2026-03-01T09:30:00")

    engine.load_initial([older, newer, undated], StatsRecord(account_id=7))

    assert [entry.id for entry in engine.entries()] == ["m-2", "m-3", "m-1"]


def test_close_cancels_outstanding_writes() -> None:
    sink = FakeEntrySink(delay=5.0)
    policy = RetryPolicy(timeout_seconds=10.0)

    async def scenario() -> None:
        engine = _engine(sink, policy)
        entry = engine.apply_local(_salad())
        await asyncio.sleep(0)
        await engine.close()

        assert sink.entries == []
        assert engine.status_of(entry.id) == EntryStatus.PENDING

    asyncio.run(scenario())


def test_retry_delay_doubles() -> None:
    policy = RetryPolicy(base_delay_seconds=0.5)

    assert [policy.delay_for(n) for n in (1, 2, 3)] == [0.5, 1.0, 2.0]
