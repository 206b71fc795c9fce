"""
Slot Generation

Turns a weekly schedule into the local start times at which a session could
begin on one calendar date.
"""

from datetime import date, time

from ...timeutils import time_from_minutes, weekday_name
from .schedule import WeeklySchedule, Window


def window_slots(window: Window, session_duration: int, break_minutes: int) -> list[time]:
    """
    Slot starts inside a single window.

    Steps by session_duration + break_minutes from the window start and stops
    as soon as a full session no longer fits before the window end. Trailing
    time shorter than a session is dropped.
    """
    if session_duration <= 0:
        raise ValueError("session_duration must be positive")
    if break_minutes < 0:
        raise ValueError("break_minutes cannot be negative")

    start = window.start_minutes
    end = window.end_minutes
    step = session_duration + break_minutes

    slots = []
    current = start
    while current + session_duration <= end:
        slots.append(time_from_minutes(current))
        current += step
    return slots


def generate_day_slots(
    schedule: WeeklySchedule,
    day: date,
    session_duration: int,
    break_minutes: int,
) -> list[time]:
    """
    Ordered, deduplicated slot starts for a date.

    `day` is a calendar date in the provider's timezone (as requested on the
    public booking page), so its weekday is the provider's weekday. A day with
    no enabled window yields an empty list.
    """
    starts = set()
    for window in schedule.enabled_windows(weekday_name(day)):
        starts.update(window_slots(window, session_duration, break_minutes))
    return sorted(starts)
