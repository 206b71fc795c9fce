from datetime import datetime, time, timedelta, timezone

import pytest
from conftest import MONDAY, local

from sessionbook.domain.scheduling.schedule import Window, normalize_schedule
from sessionbook.domain.scheduling.service import SchedulingService
from sessionbook.domain.scheduling.slots import generate_day_slots, window_slots
from sessionbook.errors import NotFoundError
from sessionbook.models import BookingStatus

EARLY = datetime(2029, 1, 1, tzinfo=timezone.utc)


def test_stepping_rule_drops_sessions_that_do_not_fit():
    slots = window_slots(Window(start="09:00", end="12:00"), 60, 15)

    assert slots == [time(9, 0), time(10, 15)]
    # 11:30 + 60 min would end at 12:30, past the window
    assert all(s.hour * 60 + s.minute + 60 <= 12 * 60 for s in slots)


def test_zero_break_packs_sessions_back_to_back():
    assert window_slots(Window(start="09:00", end="11:00"), 30, 0) == [
        time(9, 0),
        time(9, 30),
        time(10, 0),
        time(10, 30),
    ]


def test_session_longer_than_window_yields_nothing():
    assert window_slots(Window(start="09:00", end="09:30"), 60, 15) == []


def test_window_ending_at_midnight_keeps_its_last_session():
    assert window_slots(Window(start="22:00", end="24:00"), 60, 0) == [time(22, 0), time(23, 0)]


@pytest.mark.parametrize("duration,break_minutes", [(0, 15), (-10, 0), (60, -5)])
def test_invalid_settings_are_rejected(duration, break_minutes):
    with pytest.raises(ValueError):
        window_slots(Window(start="09:00", end="12:00"), duration, break_minutes)


def test_overlapping_windows_are_deduplicated_and_sorted():
    schedule = normalize_schedule(
        {
            "days": {
                "monday": [
                    {"start": "13:00", "end": "15:00"},
                    {"start": "09:00", "end": "11:00"},
                    {"start": "09:00", "end": "10:00"},
                ]
            }
        }
    )
    assert generate_day_slots(schedule, MONDAY, 60, 0) == [
        time(9, 0),
        time(10, 0),
        time(13, 0),
        time(14, 0),
    ]


def test_disabled_day_has_no_slots():
    schedule = normalize_schedule({"days": {"monday": [{"enabled": False, "start": "09:00", "end": "12:00"}]}})
    assert generate_day_slots(schedule, MONDAY, 60, 15) == []


def test_listing_uses_provider_settings(db, make_provider):
    make_provider(slug="dana")
    result = SchedulingService(db).list_available_slots("dana", MONDAY, now=EARLY)

    assert result["providerName"] == "Dana Levi"
    assert result["timezone"] == "Asia/Jerusalem"
    assert result["sessionDuration"] == 60
    assert result["slots"] == ["09:00", "10:15"]


def test_existing_booking_removes_only_overlapping_slots(db, make_provider, make_booking):
    provider = make_provider(
        slug="dana",
        working_hours={"days": {"monday": [{"start": "09:00", "end": "12:30"}]}},
    )
    service = SchedulingService(db)
    assert service.list_available_slots("dana", MONDAY, now=EARLY)["slots"] == ["09:00", "10:15", "11:30"]

    make_booking(provider, local(MONDAY, 10), duration=60)

    # 10:15-11:15 overlaps 10:00-11:00; 09:00-10:00 only touches it
    assert service.list_available_slots("dana", MONDAY, now=EARLY)["slots"] == ["09:00", "11:30"]


def test_cancelled_bookings_do_not_block_slots(db, make_provider, make_booking):
    provider = make_provider(slug="dana")
    make_booking(provider, local(MONDAY, 9), status=BookingStatus.CANCELLED)

    result = SchedulingService(db).list_available_slots("dana", MONDAY, now=EARLY)
    assert result["slots"] == ["09:00", "10:15"]


def test_booking_from_previous_evening_blocks_morning_slot(db, make_provider, make_booking):
    provider = make_provider(
        slug="night",
        working_hours={"days": {"monday": [{"start": "00:00", "end": "03:00"}]}},
        session_duration=60,
        break_between_sessions=0,
    )
    # Sunday 23:30 local, running until 01:30 Monday
    make_booking(provider, local(MONDAY, 0) - timedelta(minutes=30), duration=120)

    slots = SchedulingService(db).list_available_slots("night", MONDAY, now=EARLY)["slots"]
    assert slots == ["02:00"]


def test_listed_slots_never_overlap_active_bookings(db, make_provider, make_booking):
    provider = make_provider(
        slug="busy",
        working_hours={"days": {"monday": [{"start": "08:00", "end": "18:00"}]}},
        session_duration=45,
        break_between_sessions=10,
    )
    for hh, mm, duration in [(8, 30, 60), (11, 0, 30), (13, 20, 90), (17, 0, 45)]:
        make_booking(provider, local(MONDAY, hh, mm), duration=duration)

    slots = SchedulingService(db).list_available_slots("busy", MONDAY, now=EARLY)["slots"]
    assert slots
    taken = [(local(MONDAY, h, m), d) for h, m, d in [(8, 30, 60), (11, 0, 30), (13, 20, 90), (17, 0, 45)]]
    for slot in slots:
        hh, mm = map(int, slot.split(":"))
        start = local(MONDAY, hh, mm)
        end_minutes = hh * 60 + mm + 45
        assert end_minutes <= 18 * 60
        for booked_start, booked_duration in taken:
            booked_end = booked_start.timestamp() + booked_duration * 60
            assert not (start.timestamp() < booked_end and start.timestamp() + 45 * 60 > booked_start.timestamp())


def test_past_slots_are_not_listed(db, make_provider):
    make_provider(slug="dana")
    now = local(MONDAY, 9, 30)
    assert SchedulingService(db).list_available_slots("dana", MONDAY, now=now)["slots"] == ["10:15"]


def test_malformed_schedule_lists_default_hours(db, make_provider):
    make_provider(slug="legacy", working_hours={"garbage": True})
    slots = SchedulingService(db).list_available_slots("legacy", MONDAY, now=EARLY)["slots"]
    assert slots[0] == "09:00"
    assert slots[-1] == "15:15"


def test_unknown_provider_is_not_found(db):
    with pytest.raises(NotFoundError):
        SchedulingService(db).list_available_slots("nobody", MONDAY)


def test_dst_gap_times_are_skipped(db, make_provider):
    # Clocks in Jerusalem jump 02:00 -> 03:00 on Friday 29 March 2030
    make_provider(
        slug="owl",
        working_hours={"days": {"friday": [{"start": "01:00", "end": "05:00"}]}},
        session_duration=30,
        break_between_sessions=30,
    )
    gap_day = datetime(2030, 3, 29).date()
    slots = SchedulingService(db).list_available_slots("owl", gap_day, now=EARLY)["slots"]
    assert "02:00" not in slots
    assert slots == ["01:00", "03:00", "04:00"]
