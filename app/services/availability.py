"""Availability calculation over a business's working day."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from enum import Enum
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidDateRangeException
from app.schemas.availability import AvailabilityResponse, SlotResponse
from app.services.conflicts import ConflictChecker
from app.services.directory import DirectoryService
from app.services.schedule_config import DayWindow, ScheduleConfig, ScheduleConfigResolver

logger = structlog.get_logger(__name__)

MINUTES_PER_DAY = 24 * 60


class BookingChannel(str, Enum):
    """Where an availability or booking request comes from."""

    PUBLIC = "public"
    INTERNAL = "internal"


@dataclass(frozen=True)
class Slot:
    """A candidate interval on the business grid."""

    start_time: time
    end_time: time
    available: bool


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


def add_minutes(value: time, minutes: int) -> time | None:
    """Shift a wall-clock time; None when the result crosses midnight."""
    shifted = to_minutes(value) + minutes
    if shifted >= MINUTES_PER_DAY:
        return None
    return from_minutes(shifted)


def ensure_not_past(config: ScheduleConfig, day: date, now: datetime) -> None:
    """
    Reject dates before today in the business timezone.

    Raises:
        InvalidDateRangeException: If the date is in the past
    """
    if day < config.today(now):
        raise InvalidDateRangeException("Cannot query availability for past dates")


def violates_advance_window(
    config: ScheduleConfig,
    day: date,
    start: time,
    now: datetime,
    channel: BookingChannel = BookingChannel.PUBLIC,
) -> bool:
    """
    Check a start time against the advance-booking window.

    The public channel enforces the min/max lead time and
    ``advance_booking_days``; the internal channel only refuses starts that
    have already passed.
    """
    starts_at = config.localize(day, start)
    if starts_at <= now:
        return True
    if channel is BookingChannel.INTERNAL:
        return False

    lead_hours = (starts_at - now).total_seconds() / 3600
    if lead_hours < config.min_advance_booking_hours:
        return True
    if lead_hours > config.max_advance_booking_hours:
        return True
    return day > config.today(now) + timedelta(days=config.advance_booking_days)


def build_slots(
    config: ScheduleConfig,
    day: date,
    window: DayWindow | None,
    occupied: Iterable[Mapping[str, Any]],
    *,
    now: datetime,
    slot_length: int | None = None,
    channel: BookingChannel = BookingChannel.PUBLIC,
) -> list[Slot]:
    """
    Discretize a working window into bookable slots.

    Candidates start at the window's opening time and advance by
    ``slot_duration + buffer_time``. Occupied intervals are padded by the
    buffer on both sides; a colliding candidate is reported unavailable and
    the cursor jumps past the padded end of whatever blocked it.

    Args:
        config: Business schedule configuration
        day: Business-local date
        window: Working window for the date (None when closed)
        occupied: Appointments holding slots on that date
        now: Current time
        slot_length: Minutes per candidate (service duration); defaults to
            the business slot duration
        channel: Public or internal caller

    Returns:
        Ordered slots; empty when the day is closed

    Raises:
        InvalidDateRangeException: If the date is in the past
    """
    ensure_not_past(config, day, now)
    if window is None:
        return []

    length = slot_length or config.slot_duration
    step = config.slot_duration + config.buffer_time
    buffer = config.buffer_time

    padded = sorted(
        (to_minutes(appt["start_time"]) - buffer, to_minutes(appt["end_time"]) + buffer)
        for appt in occupied
    )

    opens, closes = to_minutes(window.open), to_minutes(window.close)
    slots: list[Slot] = []
    cursor = opens
    while cursor + length <= closes:
        candidate_end = cursor + length
        blocking_ends = [end for start, end in padded if cursor < end and start < candidate_end]

        start_time = from_minutes(cursor)
        if not violates_advance_window(config, day, start_time, now, channel):
            slots.append(
                Slot(
                    start_time=start_time,
                    end_time=from_minutes(candidate_end),
                    available=not blocking_ends,
                )
            )

        next_cursor = cursor + step
        if blocking_ends:
            next_cursor = max(next_cursor, max(blocking_ends))
        cursor = next_cursor

    return slots


def fits_window(window: DayWindow | None, start: time, end: time) -> bool:
    """Whether [start, end) lies inside the working window."""
    if window is None:
        return False
    return window.open <= start and end <= window.close and start < end


class AvailabilityService:
    """Service computing live availability from the appointments table."""

    def __init__(self, db: AsyncSession, clock=None):
        """Initialize service with database session and optional clock."""
        self.db = db
        self.clock = clock or (lambda: datetime.now(UTC))
        self.resolver = ScheduleConfigResolver(db)
        self.conflicts = ConflictChecker(db)
        self.directory = DirectoryService(db)

    async def get_availability(
        self,
        business_id: UUID,
        day: date,
        staff_id: UUID | None = None,
        service_id: UUID | None = None,
        channel: BookingChannel = BookingChannel.INTERNAL,
    ) -> AvailabilityResponse:
        """
        Compute availability for a business day.

        Args:
            business_id: Business ID
            day: Business-local date
            staff_id: Optional staff member to restrict to
            service_id: Optional service whose duration sets the slot length
            channel: Public or internal caller

        Returns:
            Ordered slots for the day

        Raises:
            NotFoundException: If business, staff or service not found
            InvalidDateRangeException: If the date is in the past
        """
        business = await self.resolver.get_business(business_id)
        return await self._availability_for(business, day, staff_id, service_id, channel)

    async def get_public_availability(
        self,
        slug: str,
        day: date,
        staff_id: UUID | None = None,
        service_id: UUID | None = None,
    ) -> AvailabilityResponse:
        """Compute availability for the public booking page of a business."""
        business = await self.resolver.get_business_by_slug(slug)
        return await self._availability_for(
            business, day, staff_id, service_id, BookingChannel.PUBLIC
        )

    async def _availability_for(
        self,
        business: dict[str, Any],
        day: date,
        staff_id: UUID | None,
        service_id: UUID | None,
        channel: BookingChannel,
    ) -> AvailabilityResponse:
        now = self.clock()
        config = await self.resolver.resolve_for(business)

        slot_length = None
        if service_id is not None:
            service = await self.directory.get_service(
                config.business_id, service_id, online_only=channel is BookingChannel.PUBLIC
            )
            slot_length = service["duration_minutes"]

        response = AvailabilityResponse(
            business_id=config.business_id,
            date=day,
            staff_id=staff_id,
            service_id=service_id,
            slot_length=slot_length or config.slot_duration,
            timezone=config.timezone,
            slots=[],
        )

        ensure_not_past(config, day, now)
        if channel is BookingChannel.PUBLIC and not config.allow_online_booking:
            return response

        staff_overrides = None
        if staff_id is not None:
            await self.directory.get_staff(config.business_id, staff_id)
            staff_overrides = await self.resolver.staff_hours(staff_id)

        window = config.window_for(day, staff_overrides)
        occupied = []
        if window is not None:
            occupied = await self.conflicts.occupied(
                config.business_id, day, now=now, staff_id=staff_id
            )

        slots = build_slots(
            config,
            day,
            window,
            occupied,
            now=now,
            slot_length=slot_length,
            channel=channel,
        )
        response.slots = [
            SlotResponse(start_time=s.start_time, end_time=s.end_time, available=s.available)
            for s in slots
        ]
        logger.debug(
            "availability_computed",
            business_id=str(config.business_id),
            date=day.isoformat(),
            staff_id=str(staff_id) if staff_id else None,
            slots=len(slots),
        )
        return response
