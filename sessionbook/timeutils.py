"""
Timezone utilities

Every conversion between a provider's local wall-clock time and an absolute
instant goes through this module. Instants are always timezone-aware UTC.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .config import DEFAULT_TIMEZONE

logger = logging.getLogger(__name__)

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def get_zone(tz_name: Optional[str]) -> ZoneInfo:
    """Resolve an IANA zone name, falling back to DEFAULT_TIMEZONE"""
    try:
        return ZoneInfo(tz_name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"⚠️ Unknown timezone {tz_name!r}, using {DEFAULT_TIMEZONE}")
        return ZoneInfo(DEFAULT_TIMEZONE)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes coming out of the store are UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def weekday_name(day: date) -> str:
    """
    Weekday of a calendar date that is already expressed in the provider's zone.

    Callers holding an instant must go through local_date() first - the weekday
    of an instant depends on the zone it is viewed from.
    """
    return WEEKDAYS[day.weekday()]


def local_date(instant: datetime, tz_name: Optional[str]) -> date:
    return ensure_utc(instant).astimezone(get_zone(tz_name)).date()


def local_exists(day: date, local_time: time, tz_name: Optional[str]) -> bool:
    """False when the wall-clock time falls in a daylight-saving gap"""
    zone = get_zone(tz_name)
    candidate = datetime.combine(day, local_time, tzinfo=zone)
    round_trip = candidate.astimezone(timezone.utc).astimezone(zone)
    return round_trip.replace(tzinfo=None) == candidate.replace(tzinfo=None)


def local_to_instant(day: date, local_time: time, tz_name: Optional[str]) -> datetime:
    """Provider wall-clock time on a given date -> UTC instant (earliest on DST overlap)"""
    zone = get_zone(tz_name)
    return datetime.combine(day, local_time, tzinfo=zone).astimezone(timezone.utc)


def naive_local_to_instant(value: datetime, tz_name: Optional[str]) -> datetime:
    """
    Interpret a datetime as provider-local when it carries no offset.
    Aware datetimes are simply normalized to UTC.
    """
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc)
    return local_to_instant(value.date(), value.time(), tz_name)


def instant_to_local(instant: datetime, tz_name: Optional[str]) -> datetime:
    return ensure_utc(instant).astimezone(get_zone(tz_name))


def local_day_bounds(day: date, tz_name: Optional[str]) -> tuple[datetime, datetime]:
    """[start, end) of a local calendar day as UTC instants (23h/25h on DST days)"""
    start = local_to_instant(day, time(0, 0), tz_name)
    end = local_to_instant(day + timedelta(days=1), time(0, 0), tz_name)
    return start, end


def hhmm_to_minutes(value: str) -> int:
    """Minutes since local midnight for "HH:MM"; "24:00" is 1440. Raises ValueError."""
    if not isinstance(value, str):
        raise ValueError(f"Expected HH:MM string, got {value!r}")
    hours, minutes = value.strip().split(":")
    total = int(hours) * 60 + int(minutes)
    if not 0 <= total <= 24 * 60:
        raise ValueError(f"Time of day out of range: {value}")
    return total


def format_hhmm(value: time) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"


def time_from_minutes(total: int) -> time:
    return time(total // 60, total % 60)
