"""
Booking Outbox

Core transactions record the side effects they imply (calendar sync,
notifications) as OutboxEvent rows in the same transaction. After commit the
event ids are handed to the ARQ worker; the worker performs the external calls
and marks the events. A failed or lost dispatch is picked up again by the
drain cron job, so nothing here can fail or delay a booking.
"""

import asyncio
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..config import OUTBOX_DISPATCH_ENABLED, OUTBOX_ENQUEUE_TIMEOUT, OUTBOX_MAX_ATTEMPTS
from ..errors import DependencyError
from ..models import Booking, BookingStatus, OutboxEvent, OutboxStatus, Provider
from ..timeutils import format_hhmm, instant_to_local, utcnow
from .notification_service import notify_booking_cancelled, notify_booking_created

logger = logging.getLogger(__name__)

BOOKING_CREATED = "booking.created"
BOOKING_CANCELLED = "booking.cancelled"


def booking_payload(booking: Booking, provider: Provider) -> dict:
    """Everything the side effects need, frozen at commit time"""
    local_start = instant_to_local(booking.start_at, provider.timezone)
    return {
        "bookingId": booking.id,
        "providerId": provider.id,
        "providerName": provider.display_name or provider.email,
        "providerEmail": provider.email,
        "timezone": local_start.tzinfo.key,
        "startInstant": booking.start_at.isoformat(),
        "localDate": local_start.date().isoformat(),
        "localTime": format_hhmm(local_start.time()),
        "duration": booking.duration,
        "clientName": booking.client_name,
        "clientEmail": booking.client_email,
        "clientPhone": booking.client_phone,
        "externalEventId": booking.external_event_id,
        "notes": booking.notes,
    }


def record_event(
    db: Session, event_type: str, booking: Booking, provider: Provider
) -> OutboxEvent:
    """Add an outbox row to the current transaction. Does not commit."""
    event = OutboxEvent(
        event_type=event_type,
        provider_id=provider.id,
        booking_id=booking.id,
        payload=booking_payload(booking, provider),
        status=OutboxStatus.PENDING,
        attempts=0,
    )
    db.add(event)
    db.flush()
    return event


class EventDispatcher:
    """Hands committed outbox events to whatever processes them"""

    async def dispatch(self, event_ids: list[int]) -> None:
        raise NotImplementedError


class NullEventDispatcher(EventDispatcher):
    """Leaves events pending for the drain job"""

    async def dispatch(self, event_ids: list[int]) -> None:
        logger.debug(f"Outbox dispatch disabled, {len(event_ids)} event(s) left pending")


class ArqEventDispatcher(EventDispatcher):
    """Enqueues one process_outbox_event_task job per event"""

    async def dispatch(self, event_ids: list[int]) -> None:
        if not event_ids:
            return

        from arq import create_pool

        from ..worker import get_redis_settings

        try:
            pool = await asyncio.wait_for(
                create_pool(get_redis_settings()), timeout=OUTBOX_ENQUEUE_TIMEOUT
            )
            try:
                for event_id in event_ids:
                    await pool.enqueue_job("process_outbox_event_task", event_id)
                logger.info(f"📤 Queued {len(event_ids)} outbox event(s): {event_ids}")
            finally:
                await pool.close()
        except Exception as e:
            # Events stay pending and the drain cron retries them
            logger.warning(f"⚠️ Could not enqueue outbox events {event_ids}: {e}")


def get_event_dispatcher() -> EventDispatcher:
    """Dependency injection for the outbox dispatcher"""
    if OUTBOX_DISPATCH_ENABLED:
        return ArqEventDispatcher()
    return NullEventDispatcher()


async def process_event(db: Session, event: OutboxEvent, calendar, notifier) -> bool:
    """
    Run the side effects of one event and record the outcome.

    `calendar` is a calendar adapter (see google_calendar_service), `notifier`
    a NotificationDispatcher. Any failure is logged and marks the event
    failed, so the drain job retries it until OUTBOX_MAX_ATTEMPTS; nothing
    propagates to the caller.

    Returns True when the event is fully processed.
    """
    if event.status == OutboxStatus.DISPATCHED:
        return True

    # Counted before any side effect so a crash still uses up an attempt
    event.attempts = (event.attempts or 0) + 1
    db.commit()
    event_id = event.id
    payload = dict(event.payload or {})

    try:
        if event.event_type == BOOKING_CREATED:
            booking = db.query(Booking).filter(Booking.id == event.booking_id).first()
            if booking is None or booking.status == BookingStatus.CANCELLED:
                logger.info(f"ℹ️ Booking {event.booking_id} cancelled before sync, skipping event {event.id}")
            else:
                # Already synced by an earlier delivery of this event
                if not booking.external_event_id:
                    external_id = await calendar.sync_booking_created(db, event.provider_id, payload)
                    if external_id:
                        booking.external_event_id = external_id
                        # Kept even if a later step fails, so a retry does not duplicate the event
                        db.commit()
                await notify_booking_created(notifier, payload)
        elif event.event_type == BOOKING_CANCELLED:
            await calendar.sync_booking_cancelled(db, event.provider_id, payload)
            await notify_booking_cancelled(notifier, payload)
        else:
            logger.warning(f"⚠️ Unknown outbox event type {event.event_type} (event {event.id})")

        event.status = OutboxStatus.DISPATCHED
        event.processed_at = utcnow()
        event.last_error = None
        db.commit()
        logger.info(f"✅ Outbox event {event.id} ({event.event_type}) processed")
        return True

    except DependencyError as e:
        _mark_failed(db, event_id, str(e))
        logger.error(
            f"❌ Outbox event {event_id} failed (attempt {event.attempts}/{OUTBOX_MAX_ATTEMPTS}): {e}"
        )
        return False
    except Exception as e:
        _mark_failed(db, event_id, f"{type(e).__name__}: {e}")
        logger.error(f"❌ Outbox event {event_id} crashed: {type(e).__name__}: {e}", exc_info=True)
        return False


def _mark_failed(db: Session, event_id: int, error: str) -> None:
    db.rollback()
    event = get_event(db, event_id)
    if event is None:
        return
    event.status = OutboxStatus.FAILED
    event.last_error = error[:2000]
    db.commit()


def get_retryable_events(db: Session, limit: int = 50) -> list[OutboxEvent]:
    return (
        db.query(OutboxEvent)
        .filter(
            OutboxEvent.status.in_([OutboxStatus.PENDING, OutboxStatus.FAILED]),
            OutboxEvent.attempts < OUTBOX_MAX_ATTEMPTS,
        )
        .order_by(OutboxEvent.created_at.asc())
        .limit(limit)
        .all()
    )


async def drain_events(db: Session, calendar, notifier, limit: int = 50) -> dict:
    """Process pending/failed events still under the retry limit"""
    events = get_retryable_events(db, limit)
    processed = 0
    failed = 0
    for event in events:
        if await process_event(db, event, calendar, notifier):
            processed += 1
        else:
            failed += 1
    if events:
        logger.info(f"📬 Outbox drain: processed={processed}, failed={failed}")
    return {"processed": processed, "failed": failed}


def get_event(db: Session, event_id: int) -> Optional[OutboxEvent]:
    return db.query(OutboxEvent).filter(OutboxEvent.id == event_id).first()
