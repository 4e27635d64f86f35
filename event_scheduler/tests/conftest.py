import os

# Must be set before the application modules read their configuration
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from datetime import date, timedelta  # noqa: E402

import fakeredis  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import Engine, StaticPool, create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.orm.session import Session  # noqa: E402

from event_scheduler.core import config  # noqa: E402
from event_scheduler.core.permissions import AllowAllPermissions  # noqa: E402
from event_scheduler.database.db import Base, get_db  # noqa: E402
from event_scheduler.main import app  # noqa: E402
from event_scheduler.models.attendees import AttendeeStatus, EventAttendee  # noqa: E402
from event_scheduler.models.events import Event, EventStatus  # noqa: E402

# Use an in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine: Engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Fixed "today" for service calls so fixed calendar dates are never in the past
TODAY = date(2025, 11, 1)


@pytest.fixture(autouse=True)
def setup_database():
    """Give every test an empty schema."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


# Override the database dependency
def override_get_db():
    db: Session = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture
def db_session():
    db: Session = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def permissions():
    return AllowAllPermissions()


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def redis_client(fake_redis, monkeypatch: pytest.MonkeyPatch):
    """Enable registration locking against an in-process Redis."""
    monkeypatch.setattr("event_scheduler.services.registrations.get_redis_client", lambda: fake_redis)
    monkeypatch.setattr(config, "REGISTRATION_LOCK_ENABLED", True)
    monkeypatch.setattr(config, "REGISTRATION_LOCK_BLOCKING_TIMEOUT", 0)
    return fake_redis


def future_date(days: int = 30) -> date:
    return date.today() + timedelta(days=days)


def event_data(**overrides) -> dict:
    """A valid SINGLE event payload as a create request would carry it."""
    data = {
        "name": "Board game night",
        "description": None,
        "event_type": "SINGLE",
        "start_date": date(2025, 12, 1),
        "end_date": date(2025, 12, 1),
        "start_time": "18:00",
        "end_time": "20:00",
        "organizer_type": "USER",
        "organizer_user_id": 1,
        "is_recurring": False,
    }
    data.update(overrides)
    return data


def make_event(db: Session, **overrides) -> Event:
    """Insert an event row directly, bypassing the lifecycle checks."""
    fields = {
        "name": "Stored event",
        "event_type": "SINGLE",
        "status": EventStatus.PUBLISHED.value,
        "start_date": date(2025, 12, 1),
        "end_date": date(2025, 12, 1),
        "start_time": "09:00",
        "end_time": "10:00",
        "organizer_type": "USER",
        "organizer_user_id": 1,
        "user_id": 1,
    }
    fields.update(overrides)
    event = Event(**fields)
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


def make_attendee(db: Session, event: Event, user_id: int, status: AttendeeStatus = AttendeeStatus.REGISTERED):
    attendee = EventAttendee(event_id=event.id, user_id=user_id, status=status.value)
    db.add(attendee)
    db.commit()
    db.refresh(attendee)
    return attendee
