"""Rescheduling and staff re-assignment of existing appointments."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.actors import Actor
from app.core.exceptions import NotFoundException
from app.models.appointments import appointments
from app.schemas.appointments import AppointmentResponse, AssignStaffRequest, RescheduleRequest
from app.services.availability import BookingChannel
from app.services.booking_service import SlotReservation
from app.services.events import AppointmentEventPublisher, AppointmentEventType
from app.services.holds import record_history
from app.services.state_machine import AppointmentEvent, AppointmentStateMachine, next_status

logger = structlog.get_logger(__name__)


class RescheduleService:
    """Moves appointments between slots under the slot lock of the target."""

    def __init__(
        self,
        db: AsyncSession,
        events: AppointmentEventPublisher | None = None,
        clock=None,
    ):
        """Initialize service with database session, event publisher and clock."""
        self.db = db
        self.events = events or AppointmentEventPublisher()
        self.clock = clock or (lambda: datetime.now(UTC))
        self.reservation = SlotReservation(db, clock=self.clock)

    async def _load(self, business_id: UUID, appointment_id: UUID) -> dict[str, Any]:
        stmt = (
            select(appointments)
            .where(
                and_(
                    appointments.c.id == appointment_id,
                    appointments.c.business_id == business_id,
                )
            )
            .with_for_update()
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Appointment not found")
        return dict(row)

    async def reschedule(
        self,
        business_id: UUID,
        appointment_id: UUID,
        data: RescheduleRequest,
        actor: Actor,
    ) -> AppointmentResponse:
        """
        Move an appointment to a new date and start time.

        The duration is kept. The new slot is validated and checked for
        conflicts (ignoring the appointment's own reservation) under the lock
        of the new (business, staff, date) key. On any failure the
        appointment is left untouched.

        Args:
            business_id: Business ID
            appointment_id: Appointment ID
            data: New slot, optional new staff member and reason
            actor: Who reschedules

        Returns:
            Updated appointment

        Raises:
            NotFoundException: If appointment or staff member not found
            InvalidTransitionException: If the appointment is not pending or confirmed
            ValidationException: If the new slot is outside working hours
            SlotUnavailableException: If the new slot is taken
        """
        now = self.clock()
        appointment = await self._load(business_id, appointment_id)
        next_status(appointment["status"], AppointmentEvent.RESCHEDULE)

        config = await self.reservation.resolver.resolve(business_id)
        staff_id = data.staff_id or appointment["staff_id"]
        if data.staff_id is not None:
            await self.reservation.directory.get_staff(business_id, data.staff_id)

        channel = BookingChannel.INTERNAL if actor.is_trusted else BookingChannel.PUBLIC
        new_end = await self.reservation.validate_slot(
            config,
            staff_id,
            data.new_date,
            data.new_start_time,
            appointment["duration"],
            now,
            channel,
        )

        await self.reservation.lock_and_check(
            business_id,
            staff_id,
            data.new_date,
            data.new_start_time,
            new_end,
            now,
            exclude_id=appointment_id,
        )

        transition = AppointmentStateMachine(now).reschedule(
            appointment,
            actor,
            new_date=data.new_date,
            new_start=data.new_start_time,
            new_end=new_end,
            staff_id=data.staff_id,
            reason=data.reason,
        )
        row = await self.reservation.update_slot(appointment_id, transition.values)
        await record_history(self.db, appointment_id, transition.history, now)
        await self.db.commit()

        logger.info(
            "appointment_rescheduled",
            appointment_id=str(appointment_id),
            booking_number=row["booking_number"],
            from_date=appointment["appointment_date"].isoformat(),
            from_start=appointment["start_time"].strftime("%H:%M"),
            to_date=row["appointment_date"].isoformat(),
            to_start=row["start_time"].strftime("%H:%M"),
            reschedule_count=row["reschedule_count"],
        )
        await self._publish(
            AppointmentEventType.RESCHEDULED,
            row,
            previous_date=appointment["appointment_date"].isoformat(),
            previous_start_time=appointment["start_time"].strftime("%H:%M"),
        )
        return AppointmentResponse.model_validate(row)

    async def assign_staff(
        self,
        business_id: UUID,
        appointment_id: UUID,
        data: AssignStaffRequest,
        actor: Actor,
    ) -> AppointmentResponse:
        """
        Attach or change the staff member of a pending or confirmed appointment.

        Raises:
            NotFoundException: If appointment or staff member not found
            InvalidTransitionException: If the appointment has started or is terminal
            SlotUnavailableException: If the staff member is busy at that time
        """
        now = self.clock()
        appointment = await self._load(business_id, appointment_id)
        transition = AppointmentStateMachine(now).assign_staff(appointment, actor, data.staff_id)
        await self.reservation.directory.get_staff(business_id, data.staff_id)

        if data.staff_id != appointment["staff_id"]:
            await self.reservation.lock_and_check(
                business_id,
                data.staff_id,
                appointment["appointment_date"],
                appointment["start_time"],
                appointment["end_time"],
                now,
                exclude_id=appointment_id,
            )

        row = await self.reservation.update_slot(appointment_id, transition.values)
        await self.db.commit()

        logger.info(
            "appointment_staff_assigned",
            appointment_id=str(appointment_id),
            staff_id=str(data.staff_id),
            previous_staff_id=str(appointment["staff_id"]) if appointment["staff_id"] else None,
        )
        return AppointmentResponse.model_validate(row)

    async def _publish(self, event_type: AppointmentEventType, row: dict[str, Any], **extra) -> None:
        try:
            customer = await self.reservation.directory.get_customer(
                row["business_id"], row["customer_id"]
            )
        except NotFoundException:
            customer = None
        self.events.publish(event_type, row, customer, **extra)
