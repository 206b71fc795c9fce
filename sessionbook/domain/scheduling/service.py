"""Scheduling service - Slot listing and schedule management"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import DEFAULT_TIMEZONE, resolve_break_minutes, resolve_session_duration, resolve_session_price
from ...errors import DependencyError, NotFoundError
from ...models import Provider
from ...timeutils import format_hhmm, local_day_bounds, local_exists, local_to_instant, utcnow
from ..bookings.repository import BookingRepository
from .conflicts import Interval, filter_available
from .repository import ProviderRepository
from .schedule import WeeklySchedule, load_schedule
from .schemas import ScheduleUpdate
from .slots import generate_day_slots

logger = logging.getLogger(__name__)


class SessionSettings:
    """Effective session settings for a provider after defaults resolution"""

    def __init__(self, provider: Provider, schedule: WeeklySchedule):
        self.timezone = provider.timezone or DEFAULT_TIMEZONE
        # Settings stored inside the schedule JSON win over the provider columns
        self.session_duration = resolve_session_duration(
            schedule.session_duration, provider.session_duration
        )
        self.break_minutes = resolve_break_minutes(
            schedule.break_between_sessions, provider.break_between_sessions
        )
        self.session_price = resolve_session_price(provider_price=provider.session_price)


def resolve_effective_settings(
    provider: Provider, schedule: Optional[WeeklySchedule] = None
) -> SessionSettings:
    """The one place listing and booking get duration, break and timezone from"""
    if schedule is None:
        schedule = load_schedule(provider.working_hours)
    return SessionSettings(provider, schedule)


class SchedulingService:
    """Service layer for availability and schedule logic"""

    def __init__(self, db: Session):
        self.db = db
        self.providers = ProviderRepository()
        self.bookings = BookingRepository()

    def get_provider_by_slug(self, slug: str) -> Provider:
        provider = self.providers.get_by_slug(self.db, slug)
        if not provider:
            raise NotFoundError(f"Provider '{slug}' not found")
        return provider

    def get_schedule(self, provider: Provider) -> tuple[WeeklySchedule, SessionSettings]:
        schedule = load_schedule(provider.working_hours)
        return schedule, resolve_effective_settings(provider, schedule)

    def list_available_slots(
        self, slug: str, day: date, now: Optional[datetime] = None
    ) -> dict:
        """
        Public slot listing for a provider-local calendar date.

        The result is advisory: a slot listed here can be taken before the
        client submits, and only the booking transaction's own check counts.
        """
        provider = self.get_provider_by_slug(slug)
        schedule, settings = self.get_schedule(provider)
        provider_name = provider.display_name or provider.email
        result = {
            "providerName": provider_name,
            "date": day,
            "timezone": settings.timezone,
            "sessionDuration": settings.session_duration,
            "slots": [],
        }

        try:
            starts = generate_day_slots(
                schedule, day, settings.session_duration, settings.break_minutes
            )
        except ValueError as e:
            logger.warning(f"⚠️ Slot generation failed for provider {provider.id}: {e}")
            return result

        if not starts:
            return result

        # Wall-clock times skipped by a DST jump have no instant and cannot be booked
        starts = [t for t in starts if local_exists(day, t, settings.timezone)]
        candidates = {
            Interval.from_start(local_to_instant(day, t, settings.timezone), settings.session_duration): t
            for t in starts
        }

        day_start, day_end = local_day_bounds(day, settings.timezone)
        existing = self.bookings.get_active_bookings_between(
            self.db,
            provider.id,
            day_start,
            day_end + timedelta(minutes=settings.session_duration),
        )
        available = filter_available(candidates.keys(), existing)

        cutoff = now or utcnow()
        result["slots"] = [
            format_hhmm(candidates[interval]) for interval in available if interval.start > cutoff
        ]

        logger.info(
            f"📊 Slots for {slug} on {day}: generated={len(candidates)}, "
            f"existing={len(existing)}, available={len(result['slots'])}"
        )
        return result

    def update_schedule(self, provider: Provider, data: ScheduleUpdate) -> Provider:
        """Replace the provider's schedule; stored in canonical shape from now on"""
        schedule = WeeklySchedule(days=data.days)
        # Settings embedded in a legacy schedule move to the provider columns
        previous = load_schedule(provider.working_hours)

        updates = {"working_hours": schedule.to_storage()}
        if data.timezone is not None:
            updates["timezone"] = data.timezone
        if data.sessionDuration is not None:
            updates["session_duration"] = data.sessionDuration
        elif previous.session_duration is not None:
            updates["session_duration"] = previous.session_duration
        if data.breakBetweenSessions is not None:
            updates["break_between_sessions"] = data.breakBetweenSessions
        elif previous.break_between_sessions is not None:
            updates["break_between_sessions"] = previous.break_between_sessions
        if data.sessionPrice is not None:
            updates["session_price"] = data.sessionPrice

        try:
            self.providers.update_provider(self.db, provider, **updates)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to update schedule for provider {provider.id}: {e}")
            raise DependencyError("Could not save schedule") from e

        self.db.refresh(provider)
        logger.info(f"✅ Schedule updated for provider {provider.id}")
        return provider
