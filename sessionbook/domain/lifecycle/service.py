"""Lifecycle service - Booking state transitions and the client session counter"""

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import AUTO_COMPLETE_MIN_INTERVAL_MINUTES, CANCELLATION_POLICY
from ...errors import (
    AuthorizationError,
    ConflictError,
    DependencyError,
    NotFoundError,
    SessionBookError,
)
from ...models import AutoCompletionRun, Booking, BookingStatus, Provider
from ...services.outbox import BOOKING_CANCELLED, record_event
from ...timeutils import ensure_utc, utcnow
from ..bookings.repository import BookingRepository
from ..clients.repository import ClientRepository

logger = logging.getLogger(__name__)


class LifecycleService:
    """
    booked -> completed (automatic or manual), booked/completed -> cancelled.

    Every transition that changes a booking's completed state adjusts the
    owning client's completed_sessions in the same transaction, so the
    counter always equals the number of the client's completed bookings.
    """

    def __init__(self, db: Session):
        self.db = db
        self.bookings = BookingRepository()
        self.clients = ClientRepository()

    # ==========================================
    # Auto-completion
    # ==========================================

    def _get_run(self, provider_id: Optional[int]) -> Optional[AutoCompletionRun]:
        query = self.db.query(AutoCompletionRun)
        if provider_id is None:
            query = query.filter(AutoCompletionRun.provider_id.is_(None))
        else:
            query = query.filter(AutoCompletionRun.provider_id == provider_id)
        return query.first()

    def _is_throttled(self, provider_id: Optional[int], now: datetime) -> bool:
        run = self._get_run(provider_id)
        if run is None:
            return False
        return now - ensure_utc(run.last_run_at) < timedelta(minutes=AUTO_COMPLETE_MIN_INTERVAL_MINUTES)

    def _record_run(self, provider_id: Optional[int], now: datetime, completed: int) -> None:
        run = self._get_run(provider_id)
        if run is None:
            run = AutoCompletionRun(provider_id=provider_id)
            self.db.add(run)
        run.last_run_at = now
        run.completed_count = completed

    def preview(self, now: Optional[datetime] = None, provider_id: Optional[int] = None) -> dict:
        """Bookings an auto-completion run at `now` would complete. Read-only."""
        now = now or utcnow()
        due = self.bookings.get_due_bookings(self.db, now, provider_id)
        return {"pendingCompletion": len(due), "bookings": due, "skipped": False}

    def auto_complete(
        self,
        now: Optional[datetime] = None,
        provider_id: Optional[int] = None,
        force: bool = False,
    ) -> dict:
        """
        Complete every booked session that has ended by `now`.

        All transitions and counter increments commit together. Running
        again with the same `now` finds nothing left to do.
        """
        now = now or utcnow()

        try:
            if not force and self._is_throttled(provider_id, now):
                logger.info(
                    f"ℹ️ Auto-completion skipped for scope {provider_id or 'all'}: "
                    f"last run less than {AUTO_COMPLETE_MIN_INTERVAL_MINUTES} min ago"
                )
                return {"completed": 0, "bookings": [], "skipped": True}

            due = self.bookings.get_due_bookings(self.db, now, provider_id, for_update=True)
            due_ids = [b.id for b in due]

            updated = self.bookings.mark_status(
                self.db, due_ids, BookingStatus.BOOKED, BookingStatus.COMPLETED
            )
            if updated != len(due_ids):
                # A row changed between the select and the update
                raise ConflictError(
                    "Bookings changed during auto-completion", code="invalid_transition"
                )

            per_client = Counter(b.client_id for b in due if b.client_id is not None)
            for client_id, count in per_client.items():
                self.clients.increment_completed_sessions(self.db, client_id, count, now)

            self._record_run(provider_id, now, len(due_ids))
            self.db.commit()

        except SessionBookError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Auto-completion failed for scope {provider_id or 'all'}: {e}")
            raise DependencyError("Auto-completion failed, it will be retried") from e

        # Bulk update bypassed the identity map
        for booking in due:
            self.db.refresh(booking)

        if due:
            logger.info(
                f"✅ Auto-completed {len(due)} booking(s) for {len(per_client)} client(s) "
                f"(scope {provider_id or 'all'})"
            )
        return {"completed": len(due), "bookings": due, "skipped": False}

    # ==========================================
    # Manual transitions
    # ==========================================

    def _get_owned_booking(self, booking_id: int, provider: Provider) -> Booking:
        booking = self.bookings.get_booking(self.db, booking_id, for_update=True)
        if not booking:
            raise NotFoundError("Booking not found")
        if booking.provider_id != provider.id:
            logger.warning(
                f"❌ Provider {provider.id} tried to modify booking {booking_id} "
                f"owned by provider {booking.provider_id}"
            )
            raise AuthorizationError("Booking belongs to another provider")
        return booking

    def complete_booking(
        self, booking_id: int, provider: Provider, now: Optional[datetime] = None
    ) -> Booking:
        """Provider marks a booked session as held"""
        now = now or utcnow()
        try:
            booking = self._get_owned_booking(booking_id, provider)
            if booking.status != BookingStatus.BOOKED:
                raise ConflictError(
                    f"Cannot complete a booking that is {booking.status}", code="invalid_transition"
                )

            updated = self.bookings.mark_status(
                self.db, [booking.id], BookingStatus.BOOKED, BookingStatus.COMPLETED
            )
            if updated != 1:
                raise ConflictError("Booking changed concurrently", code="invalid_transition")
            if booking.client_id is not None:
                self.clients.increment_completed_sessions(self.db, booking.client_id, 1, now)
            self.db.commit()

        except SessionBookError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to complete booking {booking_id}: {e}")
            raise DependencyError("Could not complete booking") from e

        self.db.refresh(booking)
        logger.info(f"✅ Booking {booking.id} marked completed by provider {provider.id}")
        return booking

    def cancel_booking(self, booking_id: int, provider: Provider) -> tuple[dict, list[int]]:
        """
        Cancel a booking owned by `provider`.

        A completed booking gives its session back: the client's counter is
        decremented in the same transaction. With CANCELLATION_POLICY=delete
        the row is removed instead of marked.

        Returns (summary, outbox_event_ids)
        """
        try:
            booking = self._get_owned_booking(booking_id, provider)
            if booking.status == BookingStatus.CANCELLED:
                raise ConflictError("Booking is already cancelled", code="already_cancelled")

            previous_status = booking.status
            if previous_status == BookingStatus.COMPLETED and booking.client_id is not None:
                self.clients.decrement_completed_sessions(self.db, booking.client_id)

            event = record_event(self.db, BOOKING_CANCELLED, booking, provider)
            summary = {
                "id": booking.id,
                "previousStatus": previous_status,
                "status": BookingStatus.CANCELLED,
                "deleted": CANCELLATION_POLICY == "delete",
            }

            if CANCELLATION_POLICY == "delete":
                self.bookings.delete_booking(self.db, booking)
            else:
                updated = self.bookings.mark_status(
                    self.db, [booking.id], previous_status, BookingStatus.CANCELLED
                )
                if updated != 1:
                    raise ConflictError("Booking changed concurrently", code="invalid_transition")

            self.db.commit()

        except SessionBookError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to cancel booking {booking_id}: {e}")
            raise DependencyError("Could not cancel booking") from e

        logger.info(
            f"✅ Booking {booking_id} cancelled by provider {provider.id} "
            f"(was {previous_status}, policy={CANCELLATION_POLICY})"
        )
        return summary, [event.id]
