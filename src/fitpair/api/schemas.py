"""Pydantic models for the HTTP API and push channel payloads."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from fitpair.domain.aggregates import DailySummary
from fitpair.domain.models import Account, LogEntry, Macros, StatsRecord

# bcrypt only accepts secrets up to this many bytes.
MAX_PASSWORD_BYTES = 72


class MacrosPayload(BaseModel):
    """Macro grams of a meal."""

    protein: int = Field(default=0, ge=0)
    carbs: int = Field(default=0, ge=0)
    fats: int = Field(default=0, ge=0)


class LogEntryPayload(BaseModel):
    """Log entry as sent over HTTP and the push channel."""

    id: str = Field(min_length=1)
    kind: Literal["meal", "exercise"]
    label: str
    calories: int = Field(ge=0)
    macros: MacrosPayload = Field(default_factory=MacrosPayload)
    timestamp: str
    preparation_note: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_domain(cls, entry: LogEntry) -> "LogEntryPayload":
        return cls(
            id=entry.id,
            kind=entry.kind,
            label=entry.label,
            calories=entry.calories,
            macros=MacrosPayload(
                protein=entry.macros.protein,
                carbs=entry.macros.carbs,
                fats=entry.macros.fats,
            ),
            timestamp=entry.timestamp,
            preparation_note=entry.preparation_note,
            created_at=entry.created_at,
        )

    def to_domain(self, account_id: int | None = None) -> LogEntry:
        return LogEntry(
            id=self.id,
            kind=self.kind,
            label=self.label,
            calories=self.calories,
            timestamp=self.timestamp,
            macros=Macros(
                protein=self.macros.protein,
                carbs=self.macros.carbs,
                fats=self.macros.fats,
            ),
            preparation_note=self.preparation_note,
            account_id=account_id,
            created_at=self.created_at,
        )


class StatsPayload(BaseModel):
    """Stats snapshot for an account."""

    current_weight: float
    goal_weight: float
    daily_calorie_goal: int
    streak_days: int
    junk_food_free_days: int

    @classmethod
    def from_domain(cls, stats: StatsRecord) -> "StatsPayload":
        return cls(
            current_weight=stats.current_weight,
            goal_weight=stats.goal_weight,
            daily_calorie_goal=stats.daily_calorie_goal,
            streak_days=stats.streak_days,
            junk_food_free_days=stats.junk_food_free_days,
        )

    def to_domain(self, account_id: int) -> StatsRecord:
        return StatsRecord(
            account_id=account_id,
            current_weight=self.current_weight,
            goal_weight=self.goal_weight,
            daily_calorie_goal=self.daily_calorie_goal,
            streak_days=self.streak_days,
            junk_food_free_days=self.junk_food_free_days,
        )


class SummaryPayload(BaseModel):
    """Calorie budget derived from the stored entries."""

    calorie_goal: int
    net_calories: int
    remaining_calories: int
    progress_percent: float
    macro_totals: MacrosPayload
    macro_goals: MacrosPayload

    @classmethod
    def from_domain(cls, summary: DailySummary) -> "SummaryPayload":
        return cls(
            calorie_goal=summary.calorie_goal,
            net_calories=summary.net_calories,
            remaining_calories=summary.remaining_calories,
            progress_percent=summary.progress_percent,
            macro_totals=MacrosPayload(**vars(summary.macro_totals)),
            macro_goals=MacrosPayload(**vars(summary.macro_goals)),
        )


class AccountPublic(BaseModel):
    """Account fields safe to return to clients."""

    id: int
    email: str
    name: str

    @classmethod
    def from_domain(cls, account: Account) -> "AccountPublic":
        return cls(id=account.id, email=account.email, name=account.display_name)


class RegisterRequest(BaseModel):
    """Registration payload."""

    email: str = Field(min_length=3)
    password: str = Field(min_length=1)
    name: str = Field(min_length=1)

    @field_validator("password")
    @classmethod
    def password_fits_hash(cls, value: str) -> str:
        if len(value.encode()) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        return value


class LoginRequest(BaseModel):
    """Login payload."""

    email: str
    password: str


class WeightUpdate(BaseModel):
    """New current weight in kilograms."""

    weight: float = Field(gt=0)


class AuthResponse(BaseModel):
    """Account returned after sign-in."""

    user: AccountPublic
    token: str | None = None


class UserDataResponse(BaseModel):
    """Initial load: stats, every log entry and the derived budget."""

    stats: StatsPayload
    logs: list[LogEntryPayload]
    summary: SummaryPayload
