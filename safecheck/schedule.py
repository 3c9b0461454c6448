"""
Check-in schedule value type.

A schedule says how often a user must check in (``frequency`` plus the
``times``/``days``/``custom_interval_hours`` that apply to it) and how much
slack they get past each scheduled moment (``grace_period_minutes``).
"""
from datetime import time
from typing import Literal
from pydantic import BaseModel, Field

Frequency = Literal["daily", "twice-daily", "weekly", "custom"]

DEFAULT_TIMES = ["09:00"]
ALL_DAYS = [0, 1, 2, 3, 4, 5, 6]  # 0=Sunday


def parse_time_of_day(value: str) -> time:
    """Parse ``HH:MM`` into a ``datetime.time``; raises ValueError otherwise."""
    hours, sep, minutes = value.strip().partition(":")
    if not sep or not hours.isdigit() or not minutes.isdigit() or len(minutes) != 2:
        raise ValueError(f"invalid time of day: {value!r}")
    return time(int(hours), int(minutes))


class Schedule(BaseModel):
    frequency: Frequency = "daily"
    times: list[str] = Field(default_factory=lambda: list(DEFAULT_TIMES))
    days: list[int] = Field(default_factory=lambda: list(ALL_DAYS))
    custom_interval_hours: int = 24
    grace_period_minutes: int = 60

    @classmethod
    def build(cls, **fields) -> "Schedule":
        """Construct a schedule, filling every absent or ``None`` field with its default."""
        return cls(**{k: v for k, v in fields.items() if v is not None})

    @property
    def interval_hours(self) -> int:
        # Length of one cadence, used as the alert suppression window
        if self.frequency == "custom":
            return self.custom_interval_hours
        if self.frequency == "twice-daily":
            return 12
        if self.frequency == "weekly":
            return 24 * 7
        return 24

    def sorted_times(self) -> list[time]:
        return sorted(parse_time_of_day(t) for t in (self.times or DEFAULT_TIMES))

    def sorted_days(self) -> list[int]:
        return sorted(set(self.days or ALL_DAYS))
