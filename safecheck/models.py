from typing import Optional
from datetime import datetime, timezone
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    # Rows hold naive UTC; readers treat naive values as UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_column(**kwargs):
    # Plain DateTime pins naive storage across sqlmodel releases
    return Field(default_factory=utcnow, sa_type=DateTime(timezone=False), **kwargs)


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: Optional[str] = Field(default=None, index=True)
    role: str = Field(default="user", index=True)  # user, admin
    created_at: datetime = utc_column()


class UserSchedule(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", unique=True, index=True)
    frequency: str = "daily"  # daily, twice-daily, weekly, custom
    times: Optional[str] = None  # JSON string, ["HH:MM", ...]
    days: Optional[str] = None  # JSON string, weekday indices 0=Sunday
    custom_interval_hours: int = 24
    grace_period_minutes: int = 60
    alert_enabled: bool = True
    updated_at: datetime = utc_column()


class CheckIn(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    timestamp: datetime = utc_column(index=True)
    health_tag: str = "okay"  # okay, unwell, need-talk
    note: Optional[str] = None


class EmergencyContact(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    name: str
    email: str
    phone: Optional[str] = None
    relationship: Optional[str] = None
    created_at: datetime = utc_column()


class AlertLog(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    contact_id: Optional[int] = Field(default=None, foreign_key="emergencycontact.id", ondelete="SET NULL")
    alert_type: str = "email"  # email, sms
    status: str = "sent"  # sent, failed, pending
    message: Optional[str] = None
    sent_at: datetime = utc_column(index=True)


class AlertLock(SQLModel, table=True):
    """Held while one run alerts a user; used where pg advisory locks are unavailable."""
    user_id: int = Field(foreign_key="user.id", primary_key=True)
    acquired_at: datetime = utc_column()
