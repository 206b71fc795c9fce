import os

# Must be set before sessionbook.config is imported
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("OUTBOX_DISPATCH_ENABLED", "false")
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")

from datetime import datetime, timezone  # noqa: E402
from zoneinfo import ZoneInfo  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from sessionbook.database import Base, build_engine, get_db  # noqa: E402
from sessionbook.domain.scheduling.repository import hash_api_token  # noqa: E402
from sessionbook.errors import DependencyError  # noqa: E402
from sessionbook.main import app  # noqa: E402
from sessionbook.models import Booking, BookingStatus, Client, Provider  # noqa: E402
from sessionbook.services.outbox import EventDispatcher, get_event_dispatcher  # noqa: E402

JERUSALEM = ZoneInfo("Asia/Jerusalem")

# Monday 7 January 2030
MONDAY = datetime(2030, 1, 7).date()

MONDAY_MORNING = {"days": {"monday": [{"enabled": True, "start": "09:00", "end": "12:00"}]}}


def local(day, hh, mm=0, tz=JERUSALEM):
    """Aware UTC instant for a wall-clock time in the given zone"""
    return datetime(day.year, day.month, day.day, hh, mm, tzinfo=tz).astimezone(timezone.utc)


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_provider(db):
    def _make(slug="dana", token=None, working_hours=MONDAY_MORNING, **fields):
        fields.setdefault("display_name", "Dana Levi")
        fields.setdefault("email", f"{slug}@example.com")
        fields.setdefault("timezone", "Asia/Jerusalem")
        provider = Provider(
            slug=slug,
            working_hours=working_hours,
            api_token_hash=hash_api_token(token or f"{slug}-token"),
            **fields,
        )
        db.add(provider)
        db.commit()
        db.refresh(provider)
        return provider

    return _make


@pytest.fixture
def make_client(db):
    def _make(provider, email="client@example.com", name="Noa Cohen", **fields):
        fields.setdefault("completed_sessions", 0)
        client = Client(provider_id=provider.id, email=email, name=name, **fields)
        db.add(client)
        db.commit()
        db.refresh(client)
        return client

    return _make


@pytest.fixture
def make_booking(db):
    def _make(provider, start, duration=60, status=BookingStatus.BOOKED, client=None, **fields):
        booking = Booking(
            provider_id=provider.id,
            client_id=client.id if client else None,
            client_name=client.name if client else "Walk In",
            client_email=client.email if client else "walkin@example.com",
            start_at=start,
            duration=duration,
            status=status,
            **fields,
        )
        db.add(booking)
        db.commit()
        db.refresh(booking)
        return booking

    return _make


class RecordingDispatcher(EventDispatcher):
    def __init__(self):
        self.dispatched = []

    async def dispatch(self, event_ids):
        self.dispatched.extend(event_ids)


class FakeCalendar:
    def __init__(self, fail=False):
        self.fail = fail
        self.created = []
        self.deleted = []

    async def sync_booking_created(self, db, provider_id, payload):
        if self.fail:
            raise DependencyError("calendar down")
        self.created.append(payload["bookingId"])
        return f"gcal-{payload['bookingId']}"

    async def sync_booking_cancelled(self, db, provider_id, payload):
        if self.fail:
            raise DependencyError("calendar down")
        self.deleted.append(payload.get("externalEventId"))


class FakeNotifier:
    sms_enabled = True

    def __init__(self, fail=False, crash=False):
        self.fail = fail
        self.crash = crash
        self.sent = []

    async def send(self, template, recipient, data):
        if self.fail:
            raise DependencyError("mail down")
        if self.crash:
            raise RuntimeError("template bug")
        self.sent.append((template, recipient))
        return f"delivery-{len(self.sent)}"


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def api(db, dispatcher):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_event_dispatcher] = lambda: dispatcher
    # No context manager: the lifespan would create tables on the default engine
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


def auth(token):
    return {"Authorization": f"Bearer {token}"}
