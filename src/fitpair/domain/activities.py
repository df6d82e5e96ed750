"""Exercise activities and their burn rates."""

from dataclasses import dataclass

from fitpair.domain.models import LogEntryDraft


@dataclass(frozen=True)
class Activity:
    """An activity with a flat burn rate."""

    id: str
    label: str
    kcal_per_minute: int


ACTIVITIES: dict[str, Activity] = {
    "cardio": Activity(id="cardio", label="Cardio", kcal_per_minute=10),
    "weights": Activity(id="weights", label="Weights", kcal_per_minute=6),
    "walking": Activity(id="walking", label="Walking", kcal_per_minute=4),
    "cycling": Activity(id="cycling", label="Cycling", kcal_per_minute=8),
}


def estimate_burn(activity_id: str, minutes: int) -> int:
    """Return calories burned for an activity session."""
    activity = ACTIVITIES.get(activity_id)
    if activity is None:
        raise ValueError(f"Unknown activity: {activity_id!r}")
    return activity.kcal_per_minute * max(minutes, 0)


def exercise_draft(activity_id: str, minutes: int) -> LogEntryDraft:
    """Build an exercise log draft for an activity session."""
    calories = estimate_burn(activity_id, minutes)
    label = ACTIVITIES[activity_id].label
    return LogEntryDraft(kind="exercise", label=f"{label} Session", calories=calories)
