"""Tests for slot discretization and availability rules."""

from datetime import UTC, date, datetime, time
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from app.core.exceptions import InvalidDateRangeException
from app.services.availability import (
    AvailabilityService,
    BookingChannel,
    add_minutes,
    build_slots,
    fits_window,
    violates_advance_window,
)
from app.services.schedule_config import DayWindow, ScheduleConfig

DAY = date(2024, 6, 3)  # Monday
NOW = datetime(2024, 6, 2, 12, 0, tzinfo=UTC)
NINE_TO_SIX = DayWindow(open=time(9, 0), close=time(18, 0))


def make_config(**overrides) -> ScheduleConfig:
    values = {
        "business_id": uuid4(),
        "timezone": "UTC",
        "weekly_hours": {day: NINE_TO_SIX for day in range(1, 7)},
        "slot_duration": 30,
        "buffer_time": 15,
    }
    values.update(overrides)
    return ScheduleConfig(**values)


def booked(start: time, end: time, status: str = "confirmed") -> dict:
    return {"id": uuid4(), "start_time": start, "end_time": end, "status": status}


def starts(slots, available=None) -> list[str]:
    return [
        s.start_time.strftime("%H:%M")
        for s in slots
        if available is None or s.available is available
    ]


def test_empty_day_steps_by_slot_plus_buffer():
    """Test candidates advance by slot duration plus buffer."""
    config = make_config()
    slots = build_slots(config, DAY, NINE_TO_SIX, [], now=NOW)

    assert starts(slots)[:4] == ["09:00", "09:45", "10:30", "11:15"]
    assert all(s.available for s in slots)
    # Last candidate must end by closing time
    assert slots[-1].end_time <= time(18, 0)


def test_booked_slot_skips_to_end_of_buffer():
    """Test a 10:00-10:30 booking pushes the next offered slot to 10:45."""
    config = make_config()
    slots = build_slots(config, DAY, NINE_TO_SIX, [booked(time(10, 0), time(10, 30))], now=NOW)

    assert starts(slots)[:3] == ["09:00", "09:45", "10:45"]
    assert starts(slots, available=False) == ["09:45"]
    assert "10:30" not in starts(slots)
    next_free = [s for s in slots if s.available and s.start_time > time(10, 0)][0]
    assert next_free.start_time == time(10, 45)


def test_service_length_sets_candidate_end():
    """Test slot_length controls how long each candidate is."""
    config = make_config()
    slots = build_slots(config, DAY, NINE_TO_SIX, [], now=NOW, slot_length=60)

    assert slots[0].start_time == time(9, 0)
    assert slots[0].end_time == time(10, 0)
    assert all(s.end_time <= time(18, 0) for s in slots)


def test_closed_day_returns_no_slots():
    """Test a closed day yields an empty list, not an error."""
    config = make_config()
    assert build_slots(config, DAY, None, [], now=NOW) == []


def test_past_date_raises():
    """Test querying a date before today is rejected."""
    config = make_config()
    with pytest.raises(InvalidDateRangeException):
        build_slots(config, date(2024, 6, 1), NINE_TO_SIX, [], now=NOW)


def test_public_channel_respects_advance_window():
    """Test dates beyond advance_booking_days are empty for the public channel only."""
    config = make_config(advance_booking_days=3)
    far_day = date(2024, 6, 10)

    public = build_slots(config, far_day, NINE_TO_SIX, [], now=NOW)
    internal = build_slots(
        config, far_day, NINE_TO_SIX, [], now=NOW, channel=BookingChannel.INTERNAL
    )

    assert public == []
    assert len(internal) > 0


def test_minimum_lead_time_drops_early_slots():
    """Test slots starting within min_advance_booking_hours are not offered publicly."""
    config = make_config(min_advance_booking_hours=2)
    now = datetime(2024, 6, 3, 9, 30, tzinfo=UTC)

    slots = build_slots(config, DAY, NINE_TO_SIX, [], now=now)

    assert slots[0].start_time >= time(11, 30)


def test_internal_channel_only_drops_past_starts():
    """Test staff still see slots inside the minimum lead time."""
    config = make_config(min_advance_booking_hours=2)
    now = datetime(2024, 6, 3, 9, 30, tzinfo=UTC)

    slots = build_slots(config, DAY, NINE_TO_SIX, [], now=now, channel=BookingChannel.INTERNAL)

    assert slots[0].start_time == time(9, 45)


def test_violates_advance_window_for_passed_start():
    config = make_config()
    now = datetime(2024, 6, 3, 10, 0, tzinfo=UTC)
    assert violates_advance_window(config, DAY, time(9, 0), now, BookingChannel.INTERNAL)
    assert not violates_advance_window(config, DAY, time(11, 0), now, BookingChannel.INTERNAL)


def test_staff_hours_narrow_business_window():
    """Test staff overrides are intersected with business hours."""
    config = make_config()
    window = config.window_for(DAY, {1: DayWindow(open=time(8, 0), close=time(13, 0))})

    assert window == DayWindow(open=time(9, 0), close=time(13, 0))
    assert config.window_for(DAY, {1: None}) is None


def test_closure_and_missing_weekday_are_closed():
    config = make_config(closures=frozenset({DAY}))
    assert config.window_for(DAY) is None
    # Sunday has no hours
    assert make_config().window_for(date(2024, 6, 9)) is None


def test_add_minutes_and_fits_window():
    assert add_minutes(time(17, 30), 30) == time(18, 0)
    assert add_minutes(time(23, 45), 30) is None
    assert fits_window(NINE_TO_SIX, time(17, 15), time(18, 0))
    assert not fits_window(NINE_TO_SIX, time(17, 45), time(18, 15))
    assert not fits_window(None, time(10, 0), time(10, 30))


@pytest.mark.asyncio
async def test_public_availability_empty_when_online_booking_disabled():
    """Test the public surface returns no slots when online booking is off."""
    config = make_config(allow_online_booking=False)
    service = AvailabilityService(AsyncMock(), clock=lambda: NOW)
    service.resolver = MagicMock()
    service.resolver.get_business_by_slug = AsyncMock(return_value={"id": config.business_id})
    service.resolver.resolve_for = AsyncMock(return_value=config)
    service.conflicts = MagicMock()
    service.conflicts.occupied = AsyncMock()

    response = await service.get_public_availability("closed-salon", DAY)

    assert response.slots == []
    service.conflicts.occupied.assert_not_called()


@pytest.mark.asyncio
async def test_availability_reads_occupancy_for_staff():
    """Test staff availability uses the staff member's bookings and hours."""
    config = make_config()
    staff_id = uuid4()
    service = AvailabilityService(AsyncMock(), clock=lambda: NOW)
    service.resolver = MagicMock()
    service.resolver.get_business = AsyncMock(return_value={"id": config.business_id})
    service.resolver.resolve_for = AsyncMock(return_value=config)
    service.resolver.staff_hours = AsyncMock(return_value={})
    service.directory = MagicMock()
    service.directory.get_staff = AsyncMock(return_value={"id": staff_id})
    service.conflicts = MagicMock()
    service.conflicts.occupied = AsyncMock(return_value=[booked(time(10, 0), time(10, 30))])

    response = await service.get_availability(config.business_id, DAY, staff_id=staff_id)

    service.conflicts.occupied.assert_awaited_once_with(
        config.business_id, DAY, now=NOW, staff_id=staff_id
    )
    assert response.staff_id == staff_id
    assert response.slot_length == 30
    assert [s.start_time for s in response.slots][:3] == [time(9, 0), time(9, 45), time(10, 45)]
