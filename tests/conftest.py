"""
Pytest configuration and fixtures

Every test gets its own in-memory SQLite database, so nothing leaks between
tests and no external services are needed.
"""
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from safecheck.database import get_session, init_db
from safecheck.main import app, get_transport
from safecheck.schedule import Schedule
from safecheck.store import SafeCheckStore


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class RecordingTransport:
    """Fake transport: records every send, fails or raises for chosen destinations."""

    def __init__(self, fail_for=(), raise_for=()):
        self.sent = []
        self.fail_for = set(fail_for)
        self.raise_for = set(raise_for)

    def send(self, destination, subject, body):
        self.sent.append((destination, subject, body))
        if destination in self.raise_for:
            raise RuntimeError("transport down")
        return destination not in self.fail_for


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db_session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture
def store(db_session):
    return SafeCheckStore(db_session)


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def make_user(store):
    """Create a role=user account with optional schedule, contacts and a last check-in."""

    def _make(name="Alice", schedule=None, contacts=1, last_check_in=None, alert_enabled=True):
        user = store.create_user(name=name, email=f"{name.lower()}@example.com")
        if schedule is not None or not alert_enabled:
            store.save_schedule(user.id, schedule or Schedule.build(), alert_enabled=alert_enabled)
        for i in range(contacts):
            store.add_contact(user.id, name=f"Contact {i}", email=f"{name.lower()}.c{i}@example.com")
        if last_check_in is not None:
            store.add_check_in(user.id, timestamp=last_check_in)
        return user

    return _make


@pytest.fixture
def client(engine, transport):
    def _session():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_transport] = lambda: transport
    yield TestClient(app)
    app.dependency_overrides.clear()
