"""
Request schemas for the API.

These are the write boundary: anything that reaches the store has passed
through one of these models, so persisted schedules are always well formed.
"""
from typing import List, Literal, Optional
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from .schedule import Frequency, Schedule, parse_time_of_day

HealthTag = Literal["okay", "unwell", "need-talk"]


class UserIn(BaseModel):
    name: str = Field(..., min_length=1, description="Display name")
    email: Optional[EmailStr] = Field(None, description="Contact email for the user")


class ContactIn(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: Optional[str] = Field(None, description="Used for SMS alerts when it normalises to 10 digits")
    relationship: Optional[str] = Field(None, description="Free-form label, e.g. daughter")


class CheckInIn(BaseModel):
    health_tag: HealthTag = "okay"
    note: Optional[str] = Field(None, max_length=1000)


class ScheduleIn(BaseModel):
    frequency: Optional[Frequency] = None
    times: Optional[List[str]] = None
    days: Optional[List[int]] = None
    custom_interval_hours: Optional[int] = Field(None, ge=1)
    grace_period_minutes: Optional[int] = Field(None, gt=0)
    alert_enabled: Optional[bool] = None

    @field_validator("times")
    @classmethod
    def _check_times(cls, v):
        if v is None:
            return v
        parsed = sorted({parse_time_of_day(t) for t in v})
        return [t.strftime("%H:%M") for t in parsed]

    @field_validator("days")
    @classmethod
    def _check_days(cls, v):
        if v is None:
            return v
        if any(d < 0 or d > 6 for d in v):
            raise ValueError("days must be weekday indices 0 (Sunday) to 6 (Saturday)")
        return sorted(set(v))

    @model_validator(mode="after")
    def _check_required_for_frequency(self):
        freq = self.frequency or "daily"
        if freq != "custom" and self.times is not None and not self.times:
            raise ValueError("times must not be empty unless frequency is custom")
        if freq == "weekly" and self.days is not None and not self.days:
            raise ValueError("days must not be empty for a weekly schedule")
        return self

    def apply_to(self, current: Schedule) -> Schedule:
        """Overlay the fields present in the request on ``current``; omitted fields keep their stored value."""
        changes = self.model_dump(exclude={"alert_enabled"}, exclude_none=True)
        return current.model_copy(update=changes)
