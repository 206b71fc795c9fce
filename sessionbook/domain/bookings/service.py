"""Booking service - The booking transaction and provider booking queries"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import MAX_SESSION_MINUTES, resolve_session_price
from ...errors import ConflictError, DependencyError, NotFoundError, SessionBookError, ValidationError
from ...models import Booking, BookingStatus, Client, Provider
from ...services.outbox import BOOKING_CREATED, record_event
from ...timeutils import local_exists, naive_local_to_instant, utcnow
from ..clients.service import ClientService
from ..scheduling.conflicts import Interval, first_conflict
from ..scheduling.repository import ProviderRepository
from ..scheduling.service import resolve_effective_settings
from .repository import BookingRepository
from .schemas import BookingCreate

logger = logging.getLogger(__name__)


class BookingService:
    """Service layer for booking business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BookingRepository()
        self.providers = ProviderRepository()
        self.clients = ClientService(db)

    @staticmethod
    def _resolve_start(value: datetime, tz_name: str) -> datetime:
        """Absolute start instant; a naive value is wall-clock time in the provider's zone"""
        if value.tzinfo is None and not local_exists(value.date(), value.time(), tz_name):
            raise ValidationError(
                f"{value:%Y-%m-%d %H:%M} does not exist in {tz_name} (daylight saving change)"
            )
        return naive_local_to_instant(value, tz_name)

    def create_booking(
        self,
        slug: str,
        data: BookingCreate,
        now: Optional[datetime] = None,
        allow_past: bool = False,
    ) -> tuple[Booking, Client, list[int]]:
        """
        Book a session for a provider in a single transaction.

        Serializes on the provider row, re-checks the interval against every
        non-cancelled booking, resolves the client and inserts the booking plus
        its outbox event. Nothing is written unless all of it succeeds.

        Returns (booking, client, outbox_event_ids)
        """
        try:
            provider = self.providers.get_by_slug(self.db, slug)
            if not provider:
                raise NotFoundError(f"Provider '{slug}' not found")

            settings = resolve_effective_settings(provider)
            start = self._resolve_start(data.startInstant, settings.timezone)
            duration = data.duration if data.duration is not None else settings.session_duration
            if not 1 <= duration <= MAX_SESSION_MINUTES:
                raise ValidationError(
                    f"Session duration must be between 1 and {MAX_SESSION_MINUTES} minutes"
                )
            if not allow_past and start <= (now or utcnow()):
                raise ValidationError("Booking start must be in the future")

            candidate = Interval.from_start(start, duration)

            # Held until commit/rollback: one booking transaction per provider at a time
            self.providers.claim_booking_lock(self.db, provider.id)

            existing = self.repo.get_active_bookings_between(
                self.db, provider.id, candidate.start, candidate.end
            )
            clash = first_conflict(candidate, existing)
            if clash is not None:
                logger.info(
                    f"⚠️ Slot {start.isoformat()} for provider {provider.id} "
                    f"overlaps booking {clash.id}"
                )
                raise ConflictError("Requested time is no longer available", code="slot_unavailable")

            client, created = self.clients.resolve_client(
                provider, data.clientName, data.clientEmail, data.clientPhone
            )

            booking = self.repo.create_booking(
                self.db,
                provider_id=provider.id,
                client_id=client.id,
                client_name=client.name,
                client_email=client.email,
                client_phone=client.phone,
                start_at=start,
                duration=duration,
                status=BookingStatus.BOOKED,
                price=resolve_session_price(data.price, client.session_price, provider.session_price),
                notes=data.notes,
            )
            event = record_event(self.db, BOOKING_CREATED, booking, provider)
            self.db.commit()

        except SessionBookError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Booking transaction failed for provider {slug}: {e}")
            raise DependencyError("Could not save booking, please try again") from e

        self.db.refresh(booking)
        self.db.refresh(client)
        logger.info(
            f"✅ Booking {booking.id} created for provider {provider.id} "
            f"(client {client.id}{', new' if created else ''}) at {start.isoformat()}"
        )
        return booking, client, [event.id]

    def list_bookings(
        self,
        provider: Provider,
        status: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Booking]:
        if status and status not in BookingStatus.ALL:
            raise ValidationError(f"Unknown booking status '{status}'")
        return self.repo.list_bookings(self.db, provider.id, status, start, end)
