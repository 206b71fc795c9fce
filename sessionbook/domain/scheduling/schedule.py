"""
Weekly Schedule Model

Providers' working hours have been stored in three JSON shapes over time:

- canonical:     {"days": {"monday": [{"enabled": true, "start": "09:00", "end": "17:00"}]}}
- availability:  {"availability": {"monday": [{"start": "09:00", "end": "17:00", "isAvailable": true}]},
                  "sessionDuration": 60, "breakBetweenSessions": 15}
- working hours: {"monday": {"enabled": true, "start": "09:00", "end": "17:00"}}

load_schedule() resolves whichever shape is stored into a WeeklySchedule once,
so slot generation never branches on shape. Anything it cannot parse yields
the default schedule instead of an error.
"""

import json
import logging
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ...config import MAX_SESSION_MINUTES
from ...shared.validators import validate_hhmm
from ...timeutils import hhmm_to_minutes

logger = logging.getLogger(__name__)

DAYS = ("sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday")


class ScheduleFormatError(ValueError):
    """Stored schedule matches none of the known shapes"""


class Window(BaseModel):
    """A working window on one weekday, in the provider's local time"""

    enabled: bool = True
    start: str
    end: str

    @field_validator("start")
    @classmethod
    def validate_start(cls, v):
        return validate_hhmm(v)

    @field_validator("end")
    @classmethod
    def validate_end(cls, v):
        # A window may run to midnight
        return validate_hhmm(v, allow_end_of_day=True)

    @model_validator(mode="after")
    def check_order(self):
        if self.start_minutes >= self.end_minutes:
            raise ValueError(f"Window start {self.start} must be before end {self.end}")
        return self

    @property
    def start_minutes(self) -> int:
        return hhmm_to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return hhmm_to_minutes(self.end)


class WeeklySchedule(BaseModel):
    days: dict[str, list[Window]] = Field(default_factory=dict)
    # Only set when the stored shape carried its own session settings
    session_duration: Optional[int] = None
    break_between_sessions: Optional[int] = None

    @field_validator("days")
    @classmethod
    def validate_days(cls, v):
        normalized = {}
        for day, windows in v.items():
            key = day.strip().lower()
            if key not in DAYS:
                raise ValueError(f"Unknown weekday: {day}")
            normalized[key] = windows
        return {day: normalized.get(day, []) for day in DAYS}

    def windows_for(self, day_name: str) -> list[Window]:
        return self.days.get(day_name, [])

    def enabled_windows(self, day_name: str) -> list[Window]:
        return [w for w in self.windows_for(day_name) if w.enabled]

    def to_storage(self) -> dict:
        """Canonical JSON written back to providers.working_hours"""
        data: dict[str, Any] = {
            "days": {day: [w.model_dump() for w in self.windows_for(day)] for day in DAYS}
        }
        if self.session_duration is not None:
            data["sessionDuration"] = self.session_duration
        if self.break_between_sessions is not None:
            data["breakBetweenSessions"] = self.break_between_sessions
        return data


# Legacy shapes ----------------------------------------------------------------


class _AvailabilityPeriod(BaseModel):
    start: str
    end: str
    isAvailable: bool = True


class _AvailabilityShape(BaseModel):
    availability: dict[str, list[_AvailabilityPeriod]]
    sessionDuration: Optional[int] = None
    breakBetweenSessions: Optional[int] = None


class _WorkingHoursDay(BaseModel):
    enabled: bool
    start: str
    end: str


class _CanonicalShape(BaseModel):
    days: dict[str, list[Window]]
    sessionDuration: Optional[int] = None
    breakBetweenSessions: Optional[int] = None


def default_schedule() -> WeeklySchedule:
    """
    Schedule used when a provider has none (or an unreadable one).
    Friday is disabled; providers who work Fridays enable it explicitly.
    """
    workday = [Window(enabled=True, start="09:00", end="17:00")]
    return WeeklySchedule(
        days={
            "sunday": workday,
            "monday": workday,
            "tuesday": workday,
            "wednesday": workday,
            "thursday": workday,
            "friday": [Window(enabled=False, start="09:00", end="13:00")],
            "saturday": [Window(enabled=False, start="10:00", end="14:00")],
        }
    )


def detect_shape(raw: dict) -> str:
    if "days" in raw:
        return "canonical"
    if "availability" in raw:
        return "availability"
    day_keys = [k for k in raw if isinstance(k, str) and k.lower() in DAYS]
    if day_keys and all(isinstance(raw[k], dict) for k in day_keys):
        return "working_hours"
    raise ScheduleFormatError(f"Unrecognized schedule keys: {sorted(map(str, raw))[:7]}")


def _positive_or_none(
    value: Optional[int], allow_zero: bool = False, maximum: int = MAX_SESSION_MINUTES
) -> Optional[int]:
    if value is None:
        return None
    if value < 0 or (value == 0 and not allow_zero) or value > maximum:
        raise ScheduleFormatError(f"Invalid session setting: {value}")
    return value


def normalize_schedule(raw: Any) -> WeeklySchedule:
    """
    Parse any known stored shape into a WeeklySchedule.

    Raises:
        ScheduleFormatError / pydantic.ValidationError on malformed input
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ScheduleFormatError(f"Schedule is not valid JSON: {e}") from e

    if not isinstance(raw, dict):
        raise ScheduleFormatError(f"Schedule must be an object, got {type(raw).__name__}")

    shape = detect_shape(raw)

    if shape == "canonical":
        parsed = _CanonicalShape.model_validate(raw)
        return WeeklySchedule(
            days=parsed.days,
            session_duration=_positive_or_none(parsed.sessionDuration),
            break_between_sessions=_positive_or_none(parsed.breakBetweenSessions, allow_zero=True),
        )

    if shape == "availability":
        parsed = _AvailabilityShape.model_validate(raw)
        days = {
            day: [Window(enabled=p.isAvailable, start=p.start, end=p.end) for p in periods]
            for day, periods in parsed.availability.items()
        }
        return WeeklySchedule(
            days=days,
            session_duration=_positive_or_none(parsed.sessionDuration),
            break_between_sessions=_positive_or_none(parsed.breakBetweenSessions, allow_zero=True),
        )

    days = {}
    for key, value in raw.items():
        if not isinstance(key, str) or key.lower() not in DAYS:
            continue
        day = _WorkingHoursDay.model_validate(value)
        days[key] = [Window(enabled=day.enabled, start=day.start, end=day.end)]
    return WeeklySchedule(days=days)


def load_schedule(raw: Any) -> WeeklySchedule:
    """Never raises: malformed or missing schedules fall back to default_schedule()"""
    if raw is None or raw == "" or raw == {}:
        return default_schedule()
    try:
        return normalize_schedule(raw)
    except (ScheduleFormatError, ValidationError, ValueError, TypeError) as e:
        logger.warning(f"⚠️ Could not parse stored schedule, using default: {e}")
        return default_schedule()
