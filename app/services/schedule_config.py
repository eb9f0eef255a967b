"""Business schedule configuration, resolved read-only from collaborator tables."""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundException
from app.models.businesses import business_closures, business_hours, businesses
from app.models.staff import staff_hours


@dataclass(frozen=True)
class DayWindow:
    """Open interval of a working day, wall clock."""

    open: time
    close: time


@dataclass(frozen=True)
class CancellationPolicy:
    """Cancellation and no-show terms of a business."""

    allow_cancellation: bool = True
    min_cancellation_hours: int = 10
    refund_percentage: Decimal = Decimal("100")
    late_refund_percentage: Decimal = Decimal("0")
    no_show_fee_percentage: Decimal = Decimal("0")


@dataclass(frozen=True)
class ScheduleConfig:
    """
    Everything the scheduler needs to know about a business.

    ``weekly_hours`` maps ISO weekday (1=Monday) to the opening window; a
    weekday that is missing is closed. ``closures`` holds days off and
    holidays.
    """

    business_id: UUID
    timezone: str = "Asia/Kolkata"
    weekly_hours: dict[int, DayWindow] = field(default_factory=dict)
    closures: frozenset[date] = frozenset()
    slot_duration: int = 30
    buffer_time: int = 15
    advance_booking_days: int = 10
    min_advance_booking_hours: int = 1
    max_advance_booking_hours: int = 960
    allow_online_booking: bool = True
    tax_percentage: Decimal = Decimal("0")
    reminder_hours: int = 24
    cancellation: CancellationPolicy = field(default_factory=CancellationPolicy)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def today(self, now: datetime) -> date:
        """Current date in the business timezone."""
        return now.astimezone(self.tz).date()

    def localize(self, day: date, at: time) -> datetime:
        """Aware datetime for a wall-clock time on a business day."""
        return datetime.combine(day, at, tzinfo=self.tz)

    def window_for(
        self,
        day: date,
        staff_hours: dict[int, DayWindow | None] | None = None,
    ) -> DayWindow | None:
        """
        Resolve the working window for a date.

        Args:
            day: Business-local date
            staff_hours: Optional per-weekday staff override; a ``None`` value
                marks the staff member's day off

        Returns:
            The open window, or None when the business or staff member is off
        """
        if day in self.closures:
            return None

        weekday = day.isoweekday()
        window = self.weekly_hours.get(weekday)
        if window is None:
            return None

        if staff_hours is not None and weekday in staff_hours:
            override = staff_hours[weekday]
            if override is None:
                return None
            # Staff never work outside the business's opening hours
            opens = max(window.open, override.open)
            closes = min(window.close, override.close)
            if opens >= closes:
                return None
            return DayWindow(open=opens, close=closes)

        return window


def config_from_rows(
    business: dict[str, Any],
    hours: list[dict[str, Any]],
    closed_dates: list[date],
) -> ScheduleConfig:
    """Build a ScheduleConfig from business, hours and closure rows."""
    weekly = {
        row["day_of_week"]: DayWindow(open=row["open_time"], close=row["close_time"])
        for row in hours
        if not row["is_closed"]
    }
    return ScheduleConfig(
        business_id=business["id"],
        timezone=business["timezone"],
        weekly_hours=weekly,
        closures=frozenset(closed_dates),
        slot_duration=business["slot_duration"],
        buffer_time=business["buffer_time"],
        advance_booking_days=business["advance_booking_days"],
        min_advance_booking_hours=business["min_advance_booking_hours"],
        max_advance_booking_hours=business["max_advance_booking_hours"],
        allow_online_booking=business["allow_online_booking"],
        tax_percentage=Decimal(business["tax_percentage"]),
        reminder_hours=business["reminder_hours"],
        cancellation=CancellationPolicy(
            allow_cancellation=business["allow_cancellation"],
            min_cancellation_hours=business["min_cancellation_hours"],
            refund_percentage=Decimal(business["refund_percentage"]),
            late_refund_percentage=Decimal(business["late_refund_percentage"]),
            no_show_fee_percentage=Decimal(business["no_show_fee_percentage"]),
        ),
    )


class ScheduleConfigResolver:
    """Loads schedule configuration for a business."""

    def __init__(self, db: AsyncSession):
        """Initialize resolver with database session."""
        self.db = db

    async def get_business(self, business_id: UUID) -> dict[str, Any]:
        """
        Get an active business row by ID.

        Raises:
            NotFoundException: If business not found or inactive
        """
        stmt = select(businesses).where(
            and_(businesses.c.id == business_id, businesses.c.is_active.is_(True))
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Business not found")
        return dict(row)

    async def get_business_by_slug(self, slug: str) -> dict[str, Any]:
        """
        Get an active business row by its public slug.

        Raises:
            NotFoundException: If business not found or inactive
        """
        stmt = select(businesses).where(
            and_(businesses.c.slug == slug, businesses.c.is_active.is_(True))
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Business not found")
        return dict(row)

    async def resolve(self, business_id: UUID) -> ScheduleConfig:
        """Resolve the schedule configuration of a business."""
        business = await self.get_business(business_id)
        return await self.resolve_for(business)

    async def resolve_for(self, business: dict[str, Any]) -> ScheduleConfig:
        """Resolve the schedule configuration for an already loaded business row."""
        hours_result = await self.db.execute(
            select(business_hours).where(business_hours.c.business_id == business["id"])
        )
        closures_result = await self.db.execute(
            select(business_closures.c.closed_on).where(
                business_closures.c.business_id == business["id"]
            )
        )
        return config_from_rows(
            business,
            [dict(row) for row in hours_result.mappings().all()],
            list(closures_result.scalars().all()),
        )

    async def staff_hours(self, staff_id: UUID) -> dict[int, DayWindow | None]:
        """Per-weekday hours override of a staff member (None marks a day off)."""
        result = await self.db.execute(
            select(staff_hours).where(staff_hours.c.staff_id == staff_id)
        )
        return {
            row["day_of_week"]: (
                None if row["is_off"] else DayWindow(open=row["start_time"], close=row["end_time"])
            )
            for row in result.mappings().all()
        }
