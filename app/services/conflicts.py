"""Conflict detection between appointment intervals."""

from collections.abc import Iterable, Mapping
from datetime import date, datetime, time
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.appointments import ACTIVE_STATUSES, appointments
from app.schemas.appointments import AppointmentStatus

logger = structlog.get_logger(__name__)


def intervals_overlap(s1: time, e1: time, s2: time, e2: time) -> bool:
    """Half-open intervals [s1, e1) and [s2, e2) overlap."""
    return s1 < e2 and s2 < e1


def is_expired_hold(appointment: Mapping[str, Any], now: datetime) -> bool:
    """A pending, unverified public hold whose verification window has passed."""
    expires_at = appointment.get("verification_expires_at")
    return (
        appointment["status"] == AppointmentStatus.PENDING.value
        and appointment.get("verified_at") is None
        and expires_at is not None
        and expires_at <= now
    )


def occupies_slot(appointment: Mapping[str, Any], now: datetime) -> bool:
    """Whether an appointment currently holds its slot."""
    return appointment["status"] in ACTIVE_STATUSES and not is_expired_hold(appointment, now)


def find_overlaps(
    start: time,
    end: time,
    existing: Iterable[Mapping[str, Any]],
    *,
    now: datetime,
    exclude_id: UUID | None = None,
) -> list[Mapping[str, Any]]:
    """
    Filter existing appointments down to those that block [start, end).

    Args:
        start: Candidate start (wall clock)
        end: Candidate end (wall clock)
        existing: Appointments for the same resource and date
        now: Current time, for hold expiry
        exclude_id: Appointment to ignore (its own reservation on reschedule)

    Returns:
        Blocking appointments
    """
    return [
        appt
        for appt in existing
        if appt["id"] != exclude_id
        and occupies_slot(appt, now)
        and intervals_overlap(start, end, appt["start_time"], appt["end_time"])
    ]


def _active_conditions(now: datetime) -> list:
    return [
        appointments.c.status.in_(ACTIVE_STATUSES),
        or_(
            appointments.c.status != AppointmentStatus.PENDING.value,
            appointments.c.verified_at.is_not(None),
            appointments.c.verification_expires_at.is_(None),
            appointments.c.verification_expires_at > now,
        ),
    ]


class ConflictChecker:
    """Reads occupancy for a (business, staff, date) key from the store."""

    def __init__(self, db: AsyncSession):
        """Initialize checker with database session."""
        self.db = db

    async def occupied(
        self,
        business_id: UUID,
        day: date,
        *,
        now: datetime,
        staff_id: UUID | None = None,
        exclude_id: UUID | None = None,
    ) -> list[dict[str, Any]]:
        """
        List appointments currently holding slots on a date.

        When ``staff_id`` is None every appointment of the business counts.
        """
        conditions = [
            appointments.c.business_id == business_id,
            appointments.c.appointment_date == day,
            *_active_conditions(now),
        ]
        if staff_id is not None:
            conditions.append(appointments.c.staff_id == staff_id)
        if exclude_id is not None:
            conditions.append(appointments.c.id != exclude_id)

        stmt = (
            select(
                appointments.c.id,
                appointments.c.staff_id,
                appointments.c.start_time,
                appointments.c.end_time,
                appointments.c.status,
            )
            .where(and_(*conditions))
            .order_by(appointments.c.start_time)
        )
        result = await self.db.execute(stmt)
        return [dict(row) for row in result.mappings().all()]

    async def find_conflicts(
        self,
        business_id: UUID,
        staff_id: UUID | None,
        day: date,
        start: time,
        end: time,
        *,
        now: datetime,
        exclude_id: UUID | None = None,
    ) -> list[dict[str, Any]]:
        """
        Find appointments overlapping a candidate slot.

        With a staff member only that member's bookings count. An unassigned
        candidate is checked against every booking of the business, the
        same rule availability uses when no staff member is chosen.
        """
        stmt = select(appointments.c.id, appointments.c.booking_number).where(
            and_(
                appointments.c.business_id == business_id,
                *([appointments.c.staff_id == staff_id] if staff_id is not None else []),
                appointments.c.appointment_date == day,
                appointments.c.start_time < end,
                appointments.c.end_time > start,
                *_active_conditions(now),
                *([appointments.c.id != exclude_id] if exclude_id is not None else []),
            )
        )
        result = await self.db.execute(stmt)
        conflicts = [dict(row) for row in result.mappings().all()]
        if conflicts:
            logger.info(
                "slot_conflict_detected",
                business_id=str(business_id),
                staff_id=str(staff_id) if staff_id else None,
                date=day.isoformat(),
                start_time=start.isoformat(),
                conflicting=[c["booking_number"] for c in conflicts],
            )
        return conflicts
