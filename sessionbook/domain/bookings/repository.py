"""Booking repository - Database operations for bookings"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...config import MAX_SESSION_MINUTES
from ...models import Booking, BookingStatus
from ...timeutils import ensure_utc


class BookingRepository:
    """Repository for booking database operations. Methods flush, callers commit."""

    @staticmethod
    def get_booking(db: Session, booking_id: int, for_update: bool = False) -> Optional[Booking]:
        query = db.query(Booking).filter(Booking.id == booking_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def get_active_bookings_between(
        db: Session, provider_id: int, range_start: datetime, range_end: datetime
    ) -> list[Booking]:
        """
        Non-cancelled bookings that could overlap [range_start, range_end).

        Bookings starting up to MAX_SESSION_MINUTES before the range are
        included since they may still be running; callers do the exact
        overlap test.
        """
        earliest = range_start - timedelta(minutes=MAX_SESSION_MINUTES)
        return (
            db.query(Booking)
            .filter(
                Booking.provider_id == provider_id,
                Booking.status != BookingStatus.CANCELLED,
                Booking.start_at < range_end,
                Booking.start_at > earliest,
            )
            .order_by(Booking.start_at.asc())
            .all()
        )

    @staticmethod
    def create_booking(db: Session, **booking_data) -> Booking:
        booking = Booking(**booking_data)
        db.add(booking)
        db.flush()
        return booking

    @staticmethod
    def list_bookings(
        db: Session,
        provider_id: int,
        status: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Booking]:
        query = db.query(Booking).filter(Booking.provider_id == provider_id)
        if status:
            query = query.filter(Booking.status == status)
        if start:
            query = query.filter(Booking.start_at >= start)
        if end:
            query = query.filter(Booking.start_at < end)
        return query.order_by(Booking.start_at.asc()).all()

    @staticmethod
    def get_due_bookings(
        db: Session, now: datetime, provider_id: Optional[int] = None, for_update: bool = False
    ) -> list[Booking]:
        """
        `booked` bookings whose session has ended at `now` (start + duration <= now),
        newest first.
        """
        query = db.query(Booking).filter(
            Booking.status == BookingStatus.BOOKED,
            Booking.start_at <= now,
        )
        if provider_id is not None:
            query = query.filter(Booking.provider_id == provider_id)
        if for_update:
            query = query.with_for_update()

        candidates = query.order_by(Booking.start_at.desc()).all()
        return [
            b
            for b in candidates
            if ensure_utc(b.start_at) + timedelta(minutes=b.duration) <= now
        ]

    @staticmethod
    def mark_status(db: Session, booking_ids: list[int], from_status: str, to_status: str) -> int:
        """Guarded bulk transition; only rows still in `from_status` move"""
        if not booking_ids:
            return 0
        return (
            db.query(Booking)
            .filter(Booking.id.in_(booking_ids), Booking.status == from_status)
            .update({Booking.status: to_status}, synchronize_session=False)
        )

    @staticmethod
    def delete_booking(db: Session, booking: Booking) -> None:
        db.delete(booking)
        db.flush()
