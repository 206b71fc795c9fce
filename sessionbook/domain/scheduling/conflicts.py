"""
Conflict Detection

Half-open interval overlap between candidate sessions and existing bookings.
Only absolute, timezone-aware instants are compared.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ...models import Booking, BookingStatus
from ...timeutils import ensure_utc


@dataclass(frozen=True)
class Interval:
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("Interval bounds must be timezone-aware instants")
        if self.end <= self.start:
            raise ValueError("Interval end must be after start")

    @classmethod
    def from_start(cls, start: datetime, duration_minutes: int) -> "Interval":
        return cls(start, start + timedelta(minutes=duration_minutes))

    @classmethod
    def of_booking(cls, booking: Booking) -> "Interval":
        return cls.from_start(ensure_utc(booking.start_at), booking.duration)

    def overlaps(self, other: "Interval") -> bool:
        # [a, b) and [c, d) - touching boundaries do not conflict
        return self.start < other.end and self.end > other.start


def active_bookings(bookings: Iterable[Booking]) -> list[Booking]:
    """Cancelled bookings never take part in conflict checks"""
    return [b for b in bookings if b.status != BookingStatus.CANCELLED]


def first_conflict(candidate: Interval, bookings: Iterable[Booking]) -> Optional[Booking]:
    """Authoritative check: the first existing booking overlapping `candidate`"""
    for booking in active_bookings(bookings):
        if candidate.overlaps(Interval.of_booking(booking)):
            return booking
    return None


def find_conflicts(candidates: Iterable[Interval], bookings: Iterable[Booking]) -> list[Interval]:
    """Candidates that overlap at least one non-cancelled booking"""
    taken = [Interval.of_booking(b) for b in active_bookings(bookings)]
    return [c for c in candidates if any(c.overlaps(t) for t in taken)]


def filter_available(candidates: Iterable[Interval], bookings: Iterable[Booking]) -> list[Interval]:
    """Listing mode: candidates that overlap no non-cancelled booking"""
    candidates = list(candidates)
    conflicting = set(find_conflicts(candidates, bookings))
    return [c for c in candidates if c not in conflicting]
