"""Status history persistence and release of expired public holds."""

from collections.abc import Iterable
from datetime import date, datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.actors import Actor
from app.models.appointments import appointment_status_history, appointments
from app.schemas.appointments import AppointmentStatus
from app.services.state_machine import AppointmentEvent, StatusChange

logger = structlog.get_logger(__name__)

HOLD_EXPIRED_REASON = "verification_expired"


async def record_history(
    db: AsyncSession,
    appointment_id: UUID,
    changes: Iterable[StatusChange],
    at: datetime,
) -> None:
    """Append status changes to the history of an appointment."""
    rows = [change.as_values(appointment_id, at) for change in changes]
    if rows:
        await db.execute(insert(appointment_status_history), rows)


async def fetch_history(db: AsyncSession, appointment_id: UUID) -> list[dict[str, Any]]:
    """Status history of an appointment, oldest first."""
    stmt = (
        select(appointment_status_history)
        .where(appointment_status_history.c.appointment_id == appointment_id)
        .order_by(appointment_status_history.c.sequence)
    )
    result = await db.execute(stmt)
    return [dict(row) for row in result.mappings().all()]


async def release_expired_holds(
    db: AsyncSession,
    business_id: UUID,
    staff_id: UUID | None,
    day: date,
    now: datetime,
) -> list[UUID]:
    """
    Cancel unverified public holds on a slot key whose window has passed.

    Must run while the slot lock for the key is held. The caller commits.

    Returns:
        IDs of the released appointments
    """
    staff_match = (
        appointments.c.staff_id.is_(None)
        if staff_id is None
        else appointments.c.staff_id == staff_id
    )
    system = Actor.system()
    stmt = (
        update(appointments)
        .where(
            and_(
                appointments.c.business_id == business_id,
                appointments.c.appointment_date == day,
                staff_match,
                appointments.c.status == AppointmentStatus.PENDING.value,
                appointments.c.verified_at.is_(None),
                appointments.c.verification_expires_at <= now,
            )
        )
        .values(
            status=AppointmentStatus.CANCELLED.value,
            cancellation_reason=HOLD_EXPIRED_REASON,
            cancelled_at=now,
            verification_code_hash=None,
            updated_at=now,
            **system.audit("cancelled_by"),
            **system.audit("updated_by"),
        )
        .returning(appointments.c.id)
    )
    result = await db.execute(stmt)
    released = list(result.scalars().all())

    for appointment_id in released:
        await record_history(
            db,
            appointment_id,
            [
                StatusChange(
                    AppointmentStatus.PENDING,
                    AppointmentStatus.CANCELLED,
                    AppointmentEvent.CANCEL,
                    system,
                    HOLD_EXPIRED_REASON,
                )
            ],
            now,
        )

    if released:
        logger.info(
            "expired_holds_released",
            business_id=str(business_id),
            date=day.isoformat(),
            count=len(released),
        )
    return released
