"""Domain models for the tracker."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

EntryKind = Literal["meal", "exercise"]
ENTRY_KINDS: frozenset[str] = frozenset({"meal", "exercise"})

DEFAULT_CURRENT_WEIGHT = 78.5
DEFAULT_GOAL_WEIGHT = 72.0
DEFAULT_DAILY_CALORIE_GOAL = 2200


@dataclass(frozen=True)
class Account:
    """Represents an account stored in the database."""

    id: int
    email: str
    credential_hash: str
    display_name: str


@dataclass(frozen=True)
class StatsRecord:
    """Per-account stats snapshot."""

    account_id: int
    current_weight: float = DEFAULT_CURRENT_WEIGHT
    goal_weight: float = DEFAULT_GOAL_WEIGHT
    daily_calorie_goal: int = DEFAULT_DAILY_CALORIE_GOAL
    streak_days: int = 0
    junk_food_free_days: int = 0


@dataclass(frozen=True)
class Macros:
    """Macro nutrients in grams."""

    protein: int = 0
    carbs: int = 0
    fats: int = 0

    def __add__(self, other: "Macros") -> "Macros":
        return Macros(
            protein=self.protein + other.protein,
            carbs=self.carbs + other.carbs,
            fats=self.fats + other.fats,
        )


@dataclass(frozen=True)
class LogEntryDraft:
    """A log entry before it is assigned an id and capture time."""

    kind: EntryKind
    label: str
    calories: int
    macros: Macros = field(default_factory=Macros)
    preparation_note: str | None = None

    def __post_init__(self) -> None:
        _validate_entry(self.kind, self.calories)


@dataclass(frozen=True)
class LogEntry:
    """Immutable meal or exercise fact."""

    id: str
    kind: EntryKind
    label: str
    calories: int
    timestamp: str
    macros: Macros = field(default_factory=Macros)
    preparation_note: str | None = None
    account_id: int | None = None
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Log entry id must not be empty")
        _validate_entry(self.kind, self.calories)


def _validate_entry(kind: str, calories: int) -> None:
    if kind not in ENTRY_KINDS:
        raise ValueError(f"Unknown entry kind: {kind!r}")
    if calories < 0:
        raise ValueError("Calories must be non-negative")
