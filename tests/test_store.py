from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy import DateTime

from safecheck.models import AlertLock, AlertLog, CheckIn, EmergencyContact, User, UserSchedule, utcnow

from .conftest import utc


def test_datetime_columns_store_naive_utc():
    columns = [
        User.__table__.c.created_at,
        UserSchedule.__table__.c.updated_at,
        CheckIn.__table__.c.timestamp,
        EmergencyContact.__table__.c.created_at,
        AlertLog.__table__.c.sent_at,
        AlertLock.__table__.c.acquired_at,
    ]
    for col in columns:
        assert type(col.type) is DateTime, col
        assert col.type.timezone is False


def test_aware_timestamps_are_normalised(store):
    user = store.create_user(name="Alice")
    paris = datetime(2024, 1, 1, 10, 0, tzinfo=ZoneInfo("Europe/Paris"))
    store.add_check_in(user.id, timestamp=paris)
    store.add_alert_log(user.id, None, "email", "sent", "m", sent_at=paris)

    assert store.latest_check_in(user.id).timestamp == datetime(2024, 1, 1, 9, 0)
    assert store.alerts_since(user.id, utc(2024, 1, 1, 8, 59))[0].sent_at == datetime(2024, 1, 1, 9, 0)
    assert store.alerts_since(user.id, utc(2024, 1, 1, 9, 0)) == []


def test_deleting_contact_clears_alert_reference(store):
    user = store.create_user(name="Alice")
    old = store.add_contact(user.id, name="Old", email="old@example.com")
    log = store.add_alert_log(user.id, old.id, "email", "sent", "m", sent_at=utc(2024, 1, 1, 9, 0))

    store.delete_contact(old)
    store.add_contact(user.id, name="New", email="new@example.com")

    assert store.session.get(AlertLog, log.id).contact_id is None
    row = store.recent_alerts()[0]
    assert row["contact_name"] is None
    assert row["contact_email"] is None


def test_user_lock_admits_one_holder(store):
    user = store.create_user(name="Alice")
    with store.user_lock(user.id) as first:
        with store.user_lock(user.id) as second:
            assert first is True
            assert second is False
    assert store.session.get(AlertLock, user.id) is None
    with store.user_lock(user.id) as again:
        assert again is True


def test_user_lock_is_per_user(store):
    alice = store.create_user(name="Alice")
    bob = store.create_user(name="Bob")
    with store.user_lock(alice.id) as a, store.user_lock(bob.id) as b:
        assert (a, b) == (True, True)


def test_stale_lock_row_is_taken_over(store):
    user = store.create_user(name="Alice")
    store.session.add(AlertLock(user_id=user.id, acquired_at=utcnow() - timedelta(hours=1)))
    store.session.commit()

    with store.user_lock(user.id) as acquired:
        assert acquired is True
