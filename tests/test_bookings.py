import threading
from datetime import datetime, timedelta, timezone

import pytest
from conftest import MONDAY, MONDAY_MORNING, local
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from sessionbook.database import Base, build_engine
from sessionbook.domain.bookings.schemas import BookingCreate
from sessionbook.domain.bookings.service import BookingService
from sessionbook.domain.scheduling.repository import hash_api_token
from sessionbook.domain.scheduling.service import SchedulingService
from sessionbook.errors import ConflictError, DependencyError, NotFoundError, ValidationError
from sessionbook.models import Booking, BookingStatus, Client, OutboxEvent, OutboxStatus, Provider

NOW = datetime(2029, 12, 1, tzinfo=timezone.utc)


def request(start, email="a@x.com", phone=None, **fields):
    return BookingCreate(
        clientName=fields.pop("name", "Avi"),
        clientEmail=email,
        clientPhone=phone,
        startInstant=start,
        **fields,
    )


def test_booking_creates_client_booking_and_outbox_event(db, make_provider):
    provider = make_provider(slug="dana", session_price=250)

    booking, client, event_ids = BookingService(db).create_booking(
        "dana", request(local(MONDAY, 9), phone="+972 50-123-4567", notes="first visit"), now=NOW
    )

    assert booking.status == BookingStatus.BOOKED
    assert booking.client_id == client.id
    assert booking.start_at == local(MONDAY, 9)
    assert booking.duration == 60
    assert booking.price == 250
    assert (booking.client_name, booking.client_email, booking.client_phone) == ("Avi", "a@x.com", "+972501234567")
    assert client.session_price == 250
    assert client.completed_sessions == 0

    event = db.get(OutboxEvent, event_ids[0])
    assert event.event_type == "booking.created"
    assert event.status == OutboxStatus.PENDING
    assert event.booking_id == booking.id
    assert event.payload["localTime"] == "09:00"
    assert event.payload["localDate"] == "2030-01-07"
    assert event.provider_id == provider.id


def test_naive_start_is_provider_local_time(db, make_provider):
    make_provider(slug="dana")
    booking, _, _ = BookingService(db).create_booking("dana", request(datetime(2030, 1, 7, 10, 15)), now=NOW)
    # Jerusalem is UTC+2 in January
    assert booking.start_at == datetime(2030, 1, 7, 8, 15, tzinfo=timezone.utc)


def test_same_email_twice_reuses_first_profile(db, make_provider):
    make_provider(slug="dana")
    service = BookingService(db)

    _, first, _ = service.create_booking("dana", request(local(MONDAY, 9), phone="+972500000001"), now=NOW)
    _, second, _ = service.create_booking(
        "dana",
        request(local(MONDAY, 10, 15), email="A@X.com", phone="+972500000002", name="Someone Else"),
        now=NOW,
    )

    assert first.id == second.id
    assert db.query(Client).count() == 1
    stored = db.query(Client).one()
    assert stored.phone == "+972500000001"
    assert stored.name == "Avi"
    # The booking snapshot is taken from the stored profile
    assert db.query(Booking).order_by(Booking.id.desc()).first().client_phone == "+972500000001"


def test_clients_are_scoped_per_provider(db, make_provider):
    make_provider(slug="dana")
    make_provider(slug="yael")
    service = BookingService(db)

    _, a, _ = service.create_booking("dana", request(local(MONDAY, 9)), now=NOW)
    _, b, _ = service.create_booking("yael", request(local(MONDAY, 9)), now=NOW)

    assert a.id != b.id


def test_overlapping_request_is_rejected(db, make_provider, make_booking):
    provider = make_provider(slug="dana")
    make_booking(provider, local(MONDAY, 9, 30), duration=60)

    with pytest.raises(ConflictError) as exc:
        BookingService(db).create_booking("dana", request(local(MONDAY, 9)), now=NOW)

    assert exc.value.code == "slot_unavailable"
    assert db.query(Booking).count() == 1
    assert db.query(Client).count() == 0
    assert db.query(OutboxEvent).count() == 0


def test_back_to_back_booking_is_allowed(db, make_provider, make_booking):
    provider = make_provider(slug="dana")
    make_booking(provider, local(MONDAY, 9), duration=60)

    booking, _, _ = BookingService(db).create_booking("dana", request(local(MONDAY, 10)), now=NOW)
    assert booking.id is not None


def test_cancelled_booking_frees_the_slot(db, make_provider, make_booking):
    provider = make_provider(slug="dana")
    make_booking(provider, local(MONDAY, 9), status=BookingStatus.CANCELLED)

    booking, _, _ = BookingService(db).create_booking("dana", request(local(MONDAY, 9)), now=NOW)
    assert booking.status == BookingStatus.BOOKED


def test_price_and_duration_precedence(db, make_provider, make_client):
    provider = make_provider(slug="dana", session_price=200, session_duration=50)
    make_client(provider, email="vip@x.com", session_price=150)
    service = BookingService(db)

    override, _, _ = service.create_booking(
        "dana", request(local(MONDAY, 9), email="vip@x.com", price=120, duration=30), now=NOW
    )
    client_default, _, _ = service.create_booking("dana", request(local(MONDAY, 10), email="vip@x.com"), now=NOW)
    provider_default, _, _ = service.create_booking("dana", request(local(MONDAY, 11), email="new@x.com"), now=NOW)

    assert (override.price, override.duration) == (120, 30)
    assert (client_default.price, client_default.duration) == (150, 50)
    assert (provider_default.price, provider_default.duration) == (200, 50)


def test_system_defaults_apply_without_provider_settings(db, make_provider):
    make_provider(slug="dana")
    booking, client, _ = BookingService(db).create_booking("dana", request(local(MONDAY, 9)), now=NOW)
    assert (booking.price, booking.duration, client.session_price) == (180, 60, 180)


def test_unknown_provider(db):
    with pytest.raises(NotFoundError):
        BookingService(db).create_booking("nobody", request(local(MONDAY, 9)), now=NOW)


def test_past_start_is_rejected(db, make_provider):
    make_provider(slug="dana")
    with pytest.raises(ValidationError):
        BookingService(db).create_booking("dana", request(local(MONDAY, 9)), now=local(MONDAY, 12))


def test_store_failure_rolls_back_everything(db, make_provider, monkeypatch):
    make_provider(slug="dana")

    def broken_insert(*args, **kwargs):
        raise OperationalError("INSERT INTO bookings", {}, Exception("disk I/O error"))

    monkeypatch.setattr("sessionbook.domain.bookings.repository.BookingRepository.create_booking", broken_insert)

    with pytest.raises(DependencyError):
        BookingService(db).create_booking("dana", request(local(MONDAY, 9)), now=NOW)

    assert db.query(Client).count() == 0
    assert db.query(OutboxEvent).count() == 0
    assert db.query(Provider).one().booking_sequence == 0


def test_concurrent_overlapping_requests_yield_one_booking(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    setup = Session()
    setup.add(
        Provider(
            slug="dana",
            email="dana@example.com",
            timezone="Asia/Jerusalem",
            working_hours=MONDAY_MORNING,
            api_token_hash=hash_api_token("dana-token"),
        )
    )
    setup.commit()
    setup.close()

    barrier = threading.Barrier(2)
    outcomes = []
    lock = threading.Lock()

    def attempt(email, minutes):
        session = Session()
        try:
            barrier.wait()
            BookingService(session).create_booking(
                "dana", request(local(MONDAY, 9) + timedelta(minutes=minutes), email=email), now=NOW
            )
            result = "booked"
        except ConflictError as e:
            result = e.code
        finally:
            session.close()
        with lock:
            outcomes.append(result)

    threads = [
        threading.Thread(target=attempt, args=("first@x.com", 0)),
        threading.Thread(target=attempt, args=("second@x.com", 30)),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert sorted(outcomes) == ["booked", "slot_unavailable"]

    check = Session()
    assert check.query(Booking).count() == 1
    assert check.query(Provider).one().booking_sequence == 1
    check.close()
    engine.dispose()


def test_request_validation():
    with pytest.raises(ValueError):
        request(local(MONDAY, 9), email="not-an-email")
    with pytest.raises(ValueError):
        request(local(MONDAY, 9), phone="123")
    with pytest.raises(ValueError):
        request(local(MONDAY, 9), duration=0)
    with pytest.raises(ValueError):
        BookingCreate(clientName="  ", clientEmail="a@x.com", startInstant=local(MONDAY, 9))


LEGACY_HALF_HOURS = {
    "availability": {"monday": [{"start": "09:00", "end": "11:00", "isAvailable": True}]},
    "sessionDuration": 30,
    "breakBetweenSessions": 0,
}


def test_booking_uses_the_settings_slots_are_listed_with(db, make_provider):
    make_provider(slug="dana", session_duration=60, break_between_sessions=15, working_hours=LEGACY_HALF_HOURS)
    scheduling = SchedulingService(db)

    listed = scheduling.list_available_slots("dana", MONDAY, now=NOW)
    assert listed["sessionDuration"] == 30
    assert listed["slots"] == ["09:00", "09:30", "10:00", "10:30"]

    booking, _, _ = BookingService(db).create_booking("dana", request(local(MONDAY, 9)), now=NOW)
    assert booking.duration == 30

    after = scheduling.list_available_slots("dana", MONDAY, now=NOW)
    assert after["slots"] == ["09:30", "10:00", "10:30"]


def test_duration_above_limit_is_rejected(db, make_provider, monkeypatch):
    make_provider(slug="dana", session_duration=180)
    monkeypatch.setattr("sessionbook.domain.bookings.service.MAX_SESSION_MINUTES", 120)

    with pytest.raises(ValidationError):
        BookingService(db).create_booking("dana", request(local(MONDAY, 9)), now=NOW)

    assert db.query(Booking).count() == 0
    assert db.query(Client).count() == 0


def test_naive_start_in_dst_gap_is_rejected(db, make_provider):
    make_provider(slug="dana", timezone="Europe/Berlin")
    # Berlin clocks jump from 02:00 to 03:00 on 2030-03-31
    with pytest.raises(ValidationError):
        BookingService(db).create_booking("dana", request(datetime(2030, 3, 31, 2, 30)), now=NOW)

    booking, _, _ = BookingService(db).create_booking("dana", request(datetime(2030, 3, 31, 3, 30)), now=NOW)
    assert booking.start_at == datetime(2030, 3, 31, 1, 30, tzinfo=timezone.utc)


def test_store_failure_loading_provider_is_a_dependency_error(db, make_provider, monkeypatch):
    make_provider(slug="dana")

    def broken_lookup(*args, **kwargs):
        raise OperationalError("SELECT providers", {}, Exception("database is locked"))

    monkeypatch.setattr("sessionbook.domain.scheduling.repository.ProviderRepository.get_by_slug", broken_lookup)

    with pytest.raises(DependencyError):
        BookingService(db).create_booking("dana", request(local(MONDAY, 9)), now=NOW)
