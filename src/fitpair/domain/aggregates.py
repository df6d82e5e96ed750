"""Derived running totals over log entries."""

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from enum import StrEnum

from fitpair.domain.models import LogEntry, Macros, StatsRecord

MACRO_GOALS = Macros(protein=180, carbs=220, fats=70)


class EntryStatus(StrEnum):
    """Local persistence status of a log entry."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    STALE = "stale"


class ApplyOutcome(StrEnum):
    """Result of applying a remotely delivered entry."""

    APPLIED = "applied"
    IGNORED = "ignored"


@dataclass(frozen=True)
class AggregateView:
    """Calorie and macro totals for one account."""

    calories_consumed: int = 0
    calories_burned: int = 0
    macro_totals: Macros = field(default_factory=Macros)


def apply_entry(view: AggregateView, entry: LogEntry) -> AggregateView:
    """Return the view with one entry folded in."""
    if entry.kind == "meal":
        return replace(
            view,
            calories_consumed=view.calories_consumed + entry.calories,
            macro_totals=view.macro_totals + entry.macros,
        )
    return replace(view, calories_burned=view.calories_burned + entry.calories)


def fold_entries(entries: Iterable[LogEntry]) -> AggregateView:
    """Fold a set of entries into an aggregate view."""
    view = AggregateView()
    for entry in entries:
        view = apply_entry(view, entry)
    return view


@dataclass(frozen=True)
class DailySummary:
    """Calorie budget derived from stats and totals."""

    calorie_goal: int
    net_calories: int
    remaining_calories: int
    progress_percent: float
    macro_totals: Macros
    macro_goals: Macros


def summarize(stats: StatsRecord, view: AggregateView) -> DailySummary:
    """Compute the calorie budget for the dashboard."""
    goal = stats.daily_calorie_goal
    net = view.calories_consumed - view.calories_burned
    progress = (net / goal) * 100 if goal > 0 else 0.0
    return DailySummary(
        calorie_goal=goal,
        net_calories=net,
        remaining_calories=goal - net,
        progress_percent=min(100.0, max(0.0, progress)),
        macro_totals=view.macro_totals,
        macro_goals=MACRO_GOALS,
    )
