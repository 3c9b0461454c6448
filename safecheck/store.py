"""
Persistence operations used by the check-in core and the API.

``SafeCheckStore`` wraps a SQLModel ``Session``. Rows go in with naive UTC
timestamps; callers may pass aware datetimes and they are normalised here.
Check-ins and alert logs are append-only: nothing in this module updates or
deletes them.
"""
import json
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator, Optional

from sqlalchemy import delete, insert, text
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .models import AlertLock, AlertLog, CheckIn, EmergencyContact, User, UserSchedule, utcnow
from .schedule import Schedule

# First key of the two-key pg advisory lock; the second is the user id
LOCK_NAMESPACE = 7301
LOCK_ROW_TTL = timedelta(minutes=15)


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def schedule_from_row(row: Optional[UserSchedule]) -> Schedule:
    if row is None:
        return Schedule.build()
    return Schedule.build(
        frequency=row.frequency,
        times=json.loads(row.times) if row.times else None,
        days=json.loads(row.days) if row.days else None,
        custom_interval_hours=row.custom_interval_hours,
        grace_period_minutes=row.grace_period_minutes,
    )


class SafeCheckStore:
    def __init__(self, session: Session):
        self.session = session

    # --- Users ---
    def create_user(self, name: str, email: Optional[str] = None, role: str = "user") -> User:
        u = User(name=name, email=email, role=role)
        self.session.add(u)
        self.session.commit()
        self.session.refresh(u)
        return u

    def get_user(self, user_id: int) -> Optional[User]:
        return self.session.get(User, user_id)

    def list_users(self) -> list[User]:
        return list(self.session.exec(select(User).order_by(User.created_at.desc(), User.id.desc())).all())

    def users_by_role(self, role: str) -> list[User]:
        return list(self.session.exec(select(User).where(User.role == role).order_by(User.id)).all())

    # --- Schedules ---
    def get_schedule_row(self, user_id: int) -> Optional[UserSchedule]:
        return self.session.exec(select(UserSchedule).where(UserSchedule.user_id == user_id)).first()

    def get_schedule(self, user_id: int) -> Schedule:
        return schedule_from_row(self.get_schedule_row(user_id))

    def alerts_enabled(self, user_id: int) -> bool:
        row = self.get_schedule_row(user_id)
        return True if row is None else bool(row.alert_enabled)

    def save_schedule(self, user_id: int, schedule: Schedule, alert_enabled: bool = True) -> UserSchedule:
        row = self.get_schedule_row(user_id) or UserSchedule(user_id=user_id)
        row.frequency = schedule.frequency
        row.times = json.dumps(schedule.times)
        row.days = json.dumps(schedule.days)
        row.custom_interval_hours = schedule.custom_interval_hours
        row.grace_period_minutes = schedule.grace_period_minutes
        row.alert_enabled = alert_enabled
        row.updated_at = utcnow()
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return row

    # --- Check-ins ---
    def add_check_in(
        self,
        user_id: int,
        health_tag: str = "okay",
        note: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> CheckIn:
        c = CheckIn(user_id=user_id, health_tag=health_tag, note=note)
        if timestamp is not None:
            c.timestamp = _naive_utc(timestamp)
        self.session.add(c)
        self.session.commit()
        self.session.refresh(c)
        return c

    def latest_check_in(self, user_id: int) -> Optional[CheckIn]:
        stmt = (
            select(CheckIn)
            .where(CheckIn.user_id == user_id)
            .order_by(CheckIn.timestamp.desc(), CheckIn.id.desc())
        )
        return self.session.exec(stmt).first()

    def list_check_ins(self, user_id: int, limit: int = 50, offset: int = 0) -> list[CheckIn]:
        stmt = (
            select(CheckIn)
            .where(CheckIn.user_id == user_id)
            .order_by(CheckIn.timestamp.desc(), CheckIn.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(self.session.exec(stmt).all())

    # --- Contacts ---
    def list_contacts(self, user_id: int) -> list[EmergencyContact]:
        stmt = (
            select(EmergencyContact)
            .where(EmergencyContact.user_id == user_id)
            .order_by(EmergencyContact.created_at, EmergencyContact.id)
        )
        return list(self.session.exec(stmt).all())

    def get_contact(self, contact_id: int) -> Optional[EmergencyContact]:
        return self.session.get(EmergencyContact, contact_id)

    def add_contact(
        self,
        user_id: int,
        name: str,
        email: str,
        phone: Optional[str] = None,
        relationship: Optional[str] = None,
    ) -> EmergencyContact:
        c = EmergencyContact(user_id=user_id, name=name, email=email, phone=phone, relationship=relationship)
        self.session.add(c)
        self.session.commit()
        self.session.refresh(c)
        return c

    def update_contact(self, contact: EmergencyContact, **fields: Any) -> EmergencyContact:
        for key, value in fields.items():
            setattr(contact, key, value)
        self.session.add(contact)
        self.session.commit()
        self.session.refresh(contact)
        return contact

    def delete_contact(self, contact: EmergencyContact) -> None:
        self.session.delete(contact)
        self.session.commit()

    # --- Alert log ---
    def add_alert_log(
        self,
        user_id: int,
        contact_id: Optional[int],
        alert_type: str,
        status: str,
        message: str,
        sent_at: Optional[datetime] = None,
    ) -> AlertLog:
        row = AlertLog(user_id=user_id, contact_id=contact_id, alert_type=alert_type, status=status, message=message)
        if sent_at is not None:
            row.sent_at = _naive_utc(sent_at)
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return row

    def alerts_since(self, user_id: int, since: datetime) -> list[AlertLog]:
        stmt = (
            select(AlertLog)
            .where(AlertLog.user_id == user_id, AlertLog.sent_at > _naive_utc(since))
            .order_by(AlertLog.sent_at.desc())
        )
        return list(self.session.exec(stmt).all())

    def has_recent_alert(self, user_id: int, since: datetime) -> bool:
        stmt = select(AlertLog.id).where(AlertLog.user_id == user_id, AlertLog.sent_at > _naive_utc(since))
        return self.session.exec(stmt.limit(1)).first() is not None

    def recent_alerts(self, limit: int = 50) -> list[dict]:
        stmt = (
            select(AlertLog, User.name, EmergencyContact.name, EmergencyContact.email)
            .select_from(AlertLog)
            .outerjoin(User, User.id == AlertLog.user_id)
            .outerjoin(EmergencyContact, EmergencyContact.id == AlertLog.contact_id)
            .order_by(AlertLog.sent_at.desc(), AlertLog.id.desc())
            .limit(limit)
        )
        out = []
        for log, user_name, contact_name, contact_email in self.session.exec(stmt).all():
            out.append({
                "id": log.id,
                "user_id": log.user_id,
                "alert_type": log.alert_type,
                "status": log.status,
                "message": log.message,
                "sent_at": log.sent_at,
                "user_name": user_name,
                "contact_name": contact_name,
                "contact_email": contact_email,
            })
        return out

    # --- Admin overview ---
    def schedule_overview(self) -> list[dict]:
        rows = []
        for u in sorted(self.users_by_role("user"), key=lambda u: u.name):
            row = self.get_schedule_row(u.id)
            schedule = schedule_from_row(row)
            last = self.latest_check_in(u.id)
            rows.append({
                "user_id": u.id,
                "user_name": u.name,
                "user_email": u.email,
                "schedule": schedule,
                "alert_enabled": True if row is None else row.alert_enabled,
                "updated_at": row.updated_at if row else None,
                "last_check_in": last,
            })
        return rows

    # --- Locking ---
    @contextmanager
    def user_lock(self, user_id: int) -> Iterator[bool]:
        """
        Per-user lock held for the duration of the block.

        Yields False when another invocation already holds it. PostgreSQL uses
        a session-level advisory lock; other databases claim an ``AlertLock``
        row, whose primary key admits a single holder.
        """
        engine = self.session.get_bind()
        lock = self._advisory_lock if engine.dialect.name == "postgresql" else self._row_lock
        with lock(user_id) as acquired:
            yield acquired

    @contextmanager
    def _advisory_lock(self, user_id: int) -> Iterator[bool]:
        # Dedicated connection: the store's per-row commits must not release it
        with self.session.get_bind().connect() as conn:
            acquired = conn.execute(
                text("SELECT pg_try_advisory_lock(:ns, :uid)"), {"ns": LOCK_NAMESPACE, "uid": user_id}
            ).scalar()
            conn.commit()
            try:
                yield bool(acquired)
            finally:
                if acquired:
                    conn.execute(text("SELECT pg_advisory_unlock(:ns, :uid)"), {"ns": LOCK_NAMESPACE, "uid": user_id})
                    conn.commit()

    @contextmanager
    def _row_lock(self, user_id: int) -> Iterator[bool]:
        conn = self.session.connection()
        # A crashed holder leaves its row behind; expire it after LOCK_ROW_TTL
        conn.execute(
            delete(AlertLock).where(AlertLock.user_id == user_id, AlertLock.acquired_at < utcnow() - LOCK_ROW_TTL)
        )
        try:
            conn.execute(insert(AlertLock).values(user_id=user_id, acquired_at=utcnow()))
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            acquired = False
        else:
            acquired = True
        try:
            yield acquired
        finally:
            if acquired:
                self.session.connection().execute(delete(AlertLock).where(AlertLock.user_id == user_id))
                self.session.commit()
