import asyncio
from datetime import datetime, timezone

from conftest import MONDAY, FakeCalendar, FakeNotifier, local

from sessionbook.config import OUTBOX_MAX_ATTEMPTS
from sessionbook.domain.bookings.schemas import BookingCreate
from sessionbook.domain.bookings.service import BookingService
from sessionbook.domain.lifecycle.service import LifecycleService
from sessionbook.models import Booking, OutboxEvent, OutboxStatus
from sessionbook.services.outbox import (
    NullEventDispatcher,
    drain_events,
    get_retryable_events,
    process_event,
)
from sessionbook.worker import auto_complete_bookings_task, drain_outbox_task, process_outbox_event_task

NOW = datetime(2029, 12, 1, tzinfo=timezone.utc)


def book(db, email="a@x.com", phone="+972501234567", start=None):
    booking, _, event_ids = BookingService(db).create_booking(
        "dana",
        BookingCreate(
            clientName="Avi", clientEmail=email, clientPhone=phone, startInstant=start or local(MONDAY, 9)
        ),
        now=NOW,
    )
    return booking, db.get(OutboxEvent, event_ids[0])


def test_created_event_syncs_calendar_and_notifies(db, make_provider):
    make_provider(slug="dana")
    booking, event = book(db)
    calendar, notifier = FakeCalendar(), FakeNotifier()

    assert asyncio.run(process_event(db, event, calendar, notifier)) is True

    db.refresh(booking)
    db.refresh(event)
    assert booking.external_event_id == f"gcal-{booking.id}"
    assert event.status == OutboxStatus.DISPATCHED
    assert event.attempts == 1
    assert notifier.sent == [
        ("booking_confirmation", "a@x.com"),
        ("booking_confirmation", "+972501234567"),
        ("provider_new_booking", "dana@example.com"),
    ]


def test_calendar_failure_leaves_event_retryable(db, make_provider):
    make_provider(slug="dana")
    booking, event = book(db)

    assert asyncio.run(process_event(db, event, FakeCalendar(fail=True), FakeNotifier())) is False

    db.refresh(event)
    db.refresh(booking)
    assert event.status == OutboxStatus.FAILED
    assert event.last_error == "calendar down"
    assert booking.status == "booked"
    assert get_retryable_events(db) == [event]


def test_notification_failure_does_not_fail_event(db, make_provider):
    make_provider(slug="dana")
    _, event = book(db)

    assert asyncio.run(process_event(db, event, FakeCalendar(), FakeNotifier(fail=True))) is True


def test_dispatched_event_is_not_processed_again(db, make_provider):
    make_provider(slug="dana")
    _, event = book(db)
    calendar = FakeCalendar()
    asyncio.run(process_event(db, event, calendar, FakeNotifier()))
    asyncio.run(process_event(db, event, calendar, FakeNotifier()))

    assert len(calendar.created) == 1


def test_created_event_for_cancelled_booking_skips_calendar(db, make_provider):
    provider = make_provider(slug="dana")
    booking, event = book(db)
    LifecycleService(db).cancel_booking(booking.id, provider)
    calendar, notifier = FakeCalendar(), FakeNotifier()

    assert asyncio.run(process_event(db, event, calendar, notifier)) is True
    assert calendar.created == []
    assert notifier.sent == []


def test_cancelled_event_deletes_calendar_event(db, make_provider):
    provider = make_provider(slug="dana")
    booking, created = book(db, phone=None)
    calendar, notifier = FakeCalendar(), FakeNotifier()
    asyncio.run(process_event(db, created, calendar, notifier))

    _, event_ids = LifecycleService(db).cancel_booking(booking.id, provider)
    cancelled = db.get(OutboxEvent, event_ids[0])
    asyncio.run(process_event(db, cancelled, calendar, notifier))

    assert calendar.deleted == [f"gcal-{booking.id}"]
    assert notifier.sent[-1] == ("booking_cancelled", "a@x.com")


def test_drain_stops_after_max_attempts(db, make_provider):
    make_provider(slug="dana")
    _, event = book(db)
    failing = FakeCalendar(fail=True)

    for _ in range(OUTBOX_MAX_ATTEMPTS + 2):
        asyncio.run(drain_events(db, failing, FakeNotifier()))

    db.refresh(event)
    assert event.attempts == OUTBOX_MAX_ATTEMPTS
    assert get_retryable_events(db) == []


def test_unexpected_error_marks_event_failed(db, make_provider):
    make_provider(slug="dana")
    booking, event = book(db)

    assert asyncio.run(process_event(db, event, FakeCalendar(), FakeNotifier(crash=True))) is False

    db.refresh(event)
    db.refresh(booking)
    assert event.status == OutboxStatus.FAILED
    assert event.attempts == 1
    assert event.last_error.startswith("RuntimeError")
    # The calendar id survives so the retry does not create a second event
    assert booking.external_event_id == f"gcal-{booking.id}"


def test_unexpected_errors_do_not_stop_the_drain(db, make_provider):
    make_provider(slug="dana")
    _, first = book(db)
    _, second = book(db, email="b@x.com", start=local(MONDAY, 10))
    calendar, crashing = FakeCalendar(), FakeNotifier(crash=True)

    assert asyncio.run(drain_events(db, calendar, crashing)) == {"processed": 0, "failed": 2}
    for _ in range(OUTBOX_MAX_ATTEMPTS + 2):
        asyncio.run(drain_events(db, calendar, crashing))

    for event in (first, second):
        db.refresh(event)
        assert event.status == OutboxStatus.FAILED
        assert event.attempts == OUTBOX_MAX_ATTEMPTS
        assert event.last_error.startswith("RuntimeError")
    assert len(calendar.created) == 2
    assert get_retryable_events(db) == []


def test_null_dispatcher_leaves_events_pending(db, make_provider):
    make_provider(slug="dana")
    _, event = book(db)
    asyncio.run(NullEventDispatcher().dispatch([event.id]))
    db.refresh(event)
    assert event.status == OutboxStatus.PENDING


def test_worker_tasks(session_factory, db, make_provider, make_client, make_booking):
    provider = make_provider(slug="dana")
    _, event = book(db)
    client = make_client(provider, email="old@x.com")
    make_booking(provider, datetime(2020, 1, 1, 9, tzinfo=timezone.utc), client=client)
    event_id = event.id
    # Worker sessions share the in-memory connection; end ours first
    db.commit()
    ctx = {"session_factory": session_factory, "calendar": FakeCalendar(), "notifier": FakeNotifier()}

    assert asyncio.run(process_outbox_event_task(ctx, event_id)) == {"processed": True}
    assert asyncio.run(process_outbox_event_task(ctx, 9999)) == {"processed": False}
    assert asyncio.run(drain_outbox_task(ctx)) == {"processed": 0, "failed": 0}

    summary = asyncio.run(auto_complete_bookings_task(ctx))
    assert summary == {"completed": 1, "skipped": False}

    db.expire_all()
    assert db.get(OutboxEvent, event_id).status == OutboxStatus.DISPATCHED
    assert db.query(Booking).filter(Booking.status == "completed").count() == 1
