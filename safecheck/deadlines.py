"""
Deadline calculation and status classification.

All functions are pure: the caller passes the schedule, the last check-in and
the evaluation instant. Schedule times are wall-clock values interpreted in the
reference timezone; every instant returned is timezone-aware UTC.
"""
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Optional, Union
from zoneinfo import ZoneInfo

from .config import settings
from .schedule import Schedule

DUE_SOON_WINDOW = timedelta(minutes=30)


class CheckInStatus(str, Enum):
    COMPLIANT = "compliant"
    DUE_SOON = "due-soon"
    OVERDUE = "overdue"


def reference_tz() -> ZoneInfo:
    return ZoneInfo(settings.reference_timezone)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _at(day: date, at: time, zone) -> datetime:
    return datetime.combine(day, at, tzinfo=zone).astimezone(timezone.utc)


def _sunday_index(local: datetime) -> int:
    # datetime.weekday() is Monday=0
    return (local.weekday() + 1) % 7


def next_required_check_in(schedule: Schedule, from_instant: datetime, tz=None) -> datetime:
    """
    Next scheduled check-in strictly after ``from_instant``.

    A candidate equal to ``from_instant`` is never returned, so the result is
    always in the future of the reference instant.
    """
    start = as_utc(from_instant)
    if schedule.frequency == "custom":
        return start + timedelta(hours=schedule.custom_interval_hours)

    zone = tz or reference_tz()
    local = start.astimezone(zone)
    today = local.date()
    times = schedule.sorted_times()

    if schedule.frequency == "weekly":
        days = schedule.sorted_days()
        weekday = _sunday_index(local)
        for day in days:
            if day < weekday:
                continue
            candidate_day = today + timedelta(days=day - weekday)
            for at in times:
                candidate = _at(candidate_day, at, zone)
                if candidate > start:
                    return candidate
        ahead = (days[0] - weekday) % 7 or 7
        return _at(today + timedelta(days=ahead), times[0], zone)

    for at in times:
        candidate = _at(today, at, zone)
        if candidate > start:
            return candidate
    return _at(today + timedelta(days=1), times[0], zone)


def _last_timestamp(last_check_in) -> Optional[datetime]:
    if last_check_in is None or isinstance(last_check_in, datetime):
        return last_check_in
    return last_check_in.timestamp


def alert_deadline(schedule: Schedule, last_check_in, now: Optional[datetime] = None, tz=None) -> datetime:
    """
    Instant after which a missed check-in becomes alert-worthy.

    ``last_check_in`` may be a CheckIn row or its timestamp. With no history
    the deadline is ``now``: a brand-new user is due immediately. Otherwise
    the grace period is added to the next scheduled moment, not to ``now``.
    """
    last = _last_timestamp(last_check_in)
    if last is None:
        return as_utc(now) if now is not None else datetime.now(timezone.utc)
    due = next_required_check_in(schedule, last, tz=tz)
    return due + timedelta(minutes=schedule.grace_period_minutes)


def time_until_deadline(schedule: Schedule, last_check_in, now: Optional[datetime] = None, tz=None) -> timedelta:
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)
    return alert_deadline(schedule, last_check_in, now=now, tz=tz) - now


def classify(schedule: Schedule, last_check_in, now: Optional[datetime] = None, tz=None) -> CheckInStatus:
    remaining = time_until_deadline(schedule, last_check_in, now=now, tz=tz)
    if remaining < timedelta(0):
        return CheckInStatus.OVERDUE
    if remaining < DUE_SOON_WINDOW:
        return CheckInStatus.DUE_SOON
    return CheckInStatus.COMPLIANT


def format_time_remaining(remaining: Union[timedelta, float]) -> str:
    """Short human label for a countdown: ``45m``, ``3h 5m``, ``2 days`` or ``Overdue``."""
    seconds = remaining.total_seconds() if isinstance(remaining, timedelta) else float(remaining)
    if seconds < 0:
        return "Overdue"
    total_minutes = int(seconds // 60)
    hours, minutes = divmod(total_minutes, 60)
    if hours > 24:
        days = hours // 24
        return f"{days} day{'s' if days > 1 else ''}"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
