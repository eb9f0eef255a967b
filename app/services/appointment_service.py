"""Appointment service for lifecycle transitions and reads."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.actors import Actor
from app.core.exceptions import (
    NotFoundException,
    PolicyViolationException,
    ValidationException,
)
from app.models.appointments import appointments
from app.models.businesses import businesses
from app.schemas.appointments import (
    AppointmentDetailsUpdate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    CancelRequest,
    CompleteRequest,
    PaymentCreate,
    PaymentStatus,
    ReviewCreate,
    StatusHistoryEntry,
)
from app.schemas.public_booking import PublicAppointmentResponse, PublicCancelRequest
from app.services.directory import DirectoryService, phone_digits
from app.services.events import AppointmentEventPublisher, AppointmentEventType
from app.services.holds import fetch_history, record_history
from app.services.pricing import (
    cancellation_outcome,
    compute_price,
    no_show_fee,
    payment_status_for,
    quantize,
    remaining_amount,
)
from app.services.schedule_config import ScheduleConfigResolver
from app.services.state_machine import (
    TERMINAL_STATUSES,
    AppointmentEvent,
    AppointmentStateMachine,
    Transition,
    next_status,
)

logger = structlog.get_logger(__name__)

MAX_REMINDER_DAYS = 41

TRANSITION_EVENTS = {
    AppointmentEvent.CONFIRM: AppointmentEventType.CONFIRMED,
    AppointmentEvent.COMPLETE: AppointmentEventType.COMPLETED,
    AppointmentEvent.CANCEL: AppointmentEventType.CANCELLED,
    AppointmentEvent.NO_SHOW: AppointmentEventType.NO_SHOW,
    AppointmentEvent.RESCHEDULE: AppointmentEventType.RESCHEDULED,
}


class AppointmentService:
    """Service for managing appointments after they are booked."""

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
        self.resolver = ScheduleConfigResolver(db)
        self.directory = DirectoryService(db)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _load(
        self,
        business_id: UUID,
        appointment_id: UUID,
        for_update: bool = False,
    ) -> dict[str, Any]:
        stmt = select(appointments).where(
            and_(
                appointments.c.id == appointment_id,
                appointments.c.business_id == business_id,
            )
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Appointment not found")
        return dict(row)

    async def _load_by_booking_number(
        self,
        booking_number: str,
        for_update: bool = False,
    ) -> dict[str, Any]:
        stmt = select(appointments).where(appointments.c.booking_number == booking_number)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Booking not found")
        return dict(row)

    async def get_appointment(
        self,
        business_id: UUID,
        appointment_id: UUID,
    ) -> AppointmentResponse:
        """
        Get appointment by ID.

        Raises:
            NotFoundException: If appointment not found for the business
        """
        return AppointmentResponse.model_validate(await self._load(business_id, appointment_id))

    async def get_by_booking_number(self, booking_number: str) -> PublicAppointmentResponse:
        """
        Look up a booking by its public number.

        Raises:
            NotFoundException: If booking not found
        """
        row = await self._load_by_booking_number(booking_number)
        return PublicAppointmentResponse.model_validate(row)

    async def list_appointments(
        self,
        business_id: UUID,
        filters: AppointmentFilters,
    ) -> AppointmentListResponse:
        """
        List appointments of a business with filtering and pagination.

        Args:
            business_id: Business ID
            filters: Filter and pagination parameters

        Returns:
            Paginated list of appointments
        """
        conditions = [appointments.c.business_id == business_id]

        if filters.status:
            conditions.append(appointments.c.status == filters.status.value)

        if filters.staff_id:
            conditions.append(appointments.c.staff_id == filters.staff_id)

        if filters.customer_id:
            conditions.append(appointments.c.customer_id == filters.customer_id)

        if filters.from_date:
            conditions.append(appointments.c.appointment_date >= filters.from_date)

        if filters.to_date:
            conditions.append(appointments.c.appointment_date <= filters.to_date)

        count_stmt = select(func.count()).select_from(appointments).where(and_(*conditions))
        total_result = await self.db.execute(count_stmt)
        total = total_result.scalar() or 0

        offset = (filters.page - 1) * filters.page_size

        stmt = (
            select(appointments)
            .where(and_(*conditions))
            .order_by(appointments.c.appointment_date.desc(), appointments.c.start_time.desc())
            .limit(filters.page_size)
            .offset(offset)
        )
        result = await self.db.execute(stmt)
        items = [AppointmentResponse.model_validate(dict(row)) for row in result.mappings().all()]

        return AppointmentListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            items=items,
        )

    async def get_history(
        self,
        business_id: UUID,
        appointment_id: UUID,
    ) -> list[StatusHistoryEntry]:
        """Status history of an appointment, oldest first."""
        await self._load(business_id, appointment_id)
        rows = await fetch_history(self.db, appointment_id)
        return [StatusHistoryEntry.model_validate(row) for row in rows]

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _apply(
        self,
        appointment: dict[str, Any],
        transition: Transition,
        now: datetime,
    ) -> dict[str, Any]:
        stmt = (
            update(appointments)
            .where(appointments.c.id == appointment["id"])
            .values(**transition.values)
            .returning(appointments)
        )
        result = await self.db.execute(stmt)
        row = dict(result.mappings().one())
        await record_history(self.db, row["id"], transition.history, now)
        await self.db.commit()

        logger.info(
            "appointment_transitioned",
            appointment_id=str(row["id"]),
            booking_number=row["booking_number"],
            transition=transition.event.value,
            from_status=appointment["status"],
            to_status=row["status"],
        )
        event_type = TRANSITION_EVENTS.get(transition.event)
        if event_type is not None:
            await self._publish(event_type, row)
        return row

    async def _publish(self, event_type: AppointmentEventType, row: dict[str, Any], **extra) -> None:
        try:
            customer = await self.directory.get_customer(row["business_id"], row["customer_id"])
        except NotFoundException:
            customer = None
        self.events.publish(event_type, row, customer, **extra)

    async def confirm(
        self,
        business_id: UUID,
        appointment_id: UUID,
        actor: Actor,
    ) -> AppointmentResponse:
        """
        Confirm a pending appointment.

        Raises:
            NotFoundException: If appointment not found
            InvalidTransitionException: If the appointment is not pending
        """
        now = self.clock()
        appointment = await self._load(business_id, appointment_id, for_update=True)
        transition = AppointmentStateMachine(now).confirm(appointment, actor)
        row = await self._apply(appointment, transition, now)
        return AppointmentResponse.model_validate(row)

    async def start(
        self,
        business_id: UUID,
        appointment_id: UUID,
        actor: Actor,
    ) -> AppointmentResponse:
        """
        Check a confirmed appointment in.

        Raises:
            NotFoundException: If appointment not found
            InvalidTransitionException: If the appointment is not confirmed
        """
        now = self.clock()
        appointment = await self._load(business_id, appointment_id, for_update=True)
        transition = AppointmentStateMachine(now).start(appointment, actor)
        row = await self._apply(appointment, transition, now)
        return AppointmentResponse.model_validate(row)

    async def complete(
        self,
        business_id: UUID,
        appointment_id: UUID,
        data: CompleteRequest,
        actor: Actor,
    ) -> AppointmentResponse:
        """
        Complete an in-progress appointment.

        When ``mark_paid`` is set the outstanding amount is recorded as paid
        and a ``payment.paid`` event is emitted for loyalty accrual.

        Raises:
            NotFoundException: If appointment not found
            InvalidTransitionException: If the appointment is not in progress
        """
        now = self.clock()
        appointment = await self._load(business_id, appointment_id, for_update=True)
        transition = AppointmentStateMachine(now).complete(
            appointment,
            actor,
            loyalty_points=data.loyalty_points,
            mark_paid=data.mark_paid,
        )
        if data.mark_paid and data.payment_method is not None:
            transition.values["payment_method"] = data.payment_method.value

        was_paid = appointment["payment_status"] == PaymentStatus.PAID.value
        row = await self._apply(appointment, transition, now)

        if data.mark_paid and not was_paid:
            await self._publish(
                AppointmentEventType.PAYMENT_PAID,
                row,
                total_amount=str(row["total_amount"]),
                loyalty_points=row["loyalty_points_earned"],
            )
        return AppointmentResponse.model_validate(row)

    async def cancel(
        self,
        business_id: UUID,
        appointment_id: UUID,
        data: CancelRequest,
        actor: Actor,
    ) -> AppointmentResponse:
        """
        Cancel an appointment from the staff side.

        Cancellations inside the policy window are allowed and charged.

        Raises:
            NotFoundException: If appointment not found
            InvalidTransitionException: If the appointment is terminal
        """
        appointment = await self._load(business_id, appointment_id, for_update=True)
        row = await self._cancel(appointment, actor, data.reason)
        return AppointmentResponse.model_validate(row)

    async def cancel_by_booking_number(
        self,
        booking_number: str,
        data: PublicCancelRequest,
    ) -> PublicAppointmentResponse:
        """
        Cancel a booking from the public surface.

        The caller proves ownership with the phone number used to book.

        Raises:
            NotFoundException: If the booking is not found or the phone does not match
            PolicyViolationException: If the business does not allow
                cancellation or the cancellation is late
            InvalidTransitionException: If the appointment is terminal
        """
        appointment = await self._load_by_booking_number(booking_number, for_update=True)
        customer = await self.directory.get_customer(
            appointment["business_id"], appointment["customer_id"]
        )
        if phone_digits(customer["phone"]) != phone_digits(data.phone):
            raise NotFoundException("Booking not found")

        actor = Actor.customer(customer["id"])
        row = await self._cancel(appointment, actor, data.reason)
        return PublicAppointmentResponse.model_validate(row)

    async def _cancel(
        self,
        appointment: dict[str, Any],
        actor: Actor,
        reason: str | None,
    ) -> dict[str, Any]:
        now = self.clock()
        config = await self.resolver.resolve(appointment["business_id"])
        policy = config.cancellation
        machine = AppointmentStateMachine(now)

        # Status is checked before policy
        next_status(appointment["status"], AppointmentEvent.CANCEL)

        starts_at = config.localize(appointment["appointment_date"], appointment["start_time"])
        outcome = cancellation_outcome(
            appointment["total_amount"],
            appointment["paid_amount"],
            starts_at,
            now,
            policy,
        )

        if not actor.is_trusted:
            if not policy.allow_cancellation:
                raise PolicyViolationException("This business does not allow cancellations")
            if outcome.late:
                raise PolicyViolationException(
                    f"Appointments can only be cancelled at least "
                    f"{policy.min_cancellation_hours} hours in advance"
                )

        transition = machine.cancel(appointment, actor, outcome, reason)
        return await self._apply(appointment, transition, now)

    async def mark_no_show(
        self,
        business_id: UUID,
        appointment_id: UUID,
        actor: Actor,
        reason: str | None = None,
    ) -> AppointmentResponse:
        """
        Mark a pending or confirmed appointment as no-show.

        Raises:
            NotFoundException: If appointment not found
            InvalidTransitionException: If the appointment is not pending or confirmed
        """
        now = self.clock()
        appointment = await self._load(business_id, appointment_id, for_update=True)
        config = await self.resolver.resolve(business_id)
        fee = no_show_fee(appointment["total_amount"], config.cancellation)
        transition = AppointmentStateMachine(now).mark_no_show(appointment, actor, fee, reason)
        row = await self._apply(appointment, transition, now)
        return AppointmentResponse.model_validate(row)

    async def add_review(
        self,
        business_id: UUID,
        appointment_id: UUID,
        data: ReviewCreate,
        actor: Actor,
    ) -> AppointmentResponse:
        """
        Attach a rating and review to a completed appointment.

        Raises:
            NotFoundException: If appointment not found
            InvalidTransitionException: If the appointment is not completed
        """
        now = self.clock()
        appointment = await self._load(business_id, appointment_id, for_update=True)
        transition = AppointmentStateMachine(now).add_review(
            appointment, actor, data.rating, data.review
        )
        row = await self._apply(appointment, transition, now)
        return AppointmentResponse.model_validate(row)

    # ------------------------------------------------------------------
    # Payments and details
    # ------------------------------------------------------------------

    async def record_payment(
        self,
        business_id: UUID,
        appointment_id: UUID,
        data: PaymentCreate,
        actor: Actor,
    ) -> AppointmentResponse:
        """
        Record a payment against an appointment.

        Raises:
            NotFoundException: If appointment not found
            ValidationException: If the amount exceeds what is owed or the
                appointment was cancelled or marked no-show
        """
        now = self.clock()
        appointment = await self._load(business_id, appointment_id, for_update=True)
        if appointment["status"] in (
            AppointmentStatus.CANCELLED.value,
            AppointmentStatus.NO_SHOW.value,
        ):
            raise ValidationException("Cannot record a payment on a closed appointment")

        owed = remaining_amount(appointment["total_amount"], appointment["paid_amount"])
        if data.amount > owed:
            raise ValidationException(f"Payment exceeds the remaining amount of {owed}")

        paid = quantize(appointment["paid_amount"] + data.amount)
        payment_status = payment_status_for(paid, appointment["total_amount"])
        stmt = (
            update(appointments)
            .where(appointments.c.id == appointment_id)
            .values(
                paid_amount=paid,
                payment_status=payment_status.value,
                payment_method=data.method.value,
                updated_at=now,
                **actor.audit("updated_by"),
            )
            .returning(appointments)
        )
        result = await self.db.execute(stmt)
        row = dict(result.mappings().one())
        await self.db.commit()

        logger.info(
            "payment_recorded",
            appointment_id=str(appointment_id),
            amount=str(data.amount),
            payment_status=payment_status.value,
        )
        if payment_status is PaymentStatus.PAID:
            await self._publish(
                AppointmentEventType.PAYMENT_PAID,
                row,
                total_amount=str(row["total_amount"]),
            )
        return AppointmentResponse.model_validate(row)

    async def update_details(
        self,
        business_id: UUID,
        appointment_id: UUID,
        data: AppointmentDetailsUpdate,
        actor: Actor,
    ) -> AppointmentResponse:
        """
        Update notes and price components of a non-terminal appointment.

        Raises:
            NotFoundException: If appointment not found
            ValidationException: If the appointment is terminal or the new
                total is below the amount already paid
        """
        now = self.clock()
        appointment = await self._load(business_id, appointment_id, for_update=True)
        if AppointmentStatus(appointment["status"]) in TERMINAL_STATUSES:
            raise ValidationException(
                f"Cannot edit an appointment that is {appointment['status']}"
            )

        changes = data.model_dump(exclude_unset=True)
        update_values: dict[str, Any] = {}
        for field in ("customer_notes", "special_requests", "staff_notes"):
            if field in changes:
                update_values[field] = changes[field]
        if changes.get("payment_method") is not None:
            update_values["payment_method"] = changes["payment_method"].value

        price_fields = {"service_price", "additional_charges", "discount", "tax", "total_amount"}
        if price_fields & changes.keys():
            config = await self.resolver.resolve(business_id)

            def pick(name: str) -> Decimal:
                value = changes.get(name)
                return appointment[name] if value is None else value

            price = compute_price(
                service_price=pick("service_price"),
                additional_charges=pick("additional_charges"),
                discount=pick("discount"),
                tax=changes.get("tax"),
                total_amount=changes.get("total_amount"),
                tax_percentage=config.tax_percentage,
            )
            if appointment["paid_amount"] > price.total_amount:
                raise ValidationException("Total amount cannot be less than the amount paid")
            update_values.update(price.as_values())
            update_values["payment_status"] = payment_status_for(
                appointment["paid_amount"], price.total_amount
            ).value

        if not update_values:
            return AppointmentResponse.model_validate(appointment)

        update_values.update(updated_at=now, **actor.audit("updated_by"))
        stmt = (
            update(appointments)
            .where(appointments.c.id == appointment_id)
            .values(**update_values)
            .returning(appointments)
        )
        result = await self.db.execute(stmt)
        row = dict(result.mappings().one())
        await self.db.commit()
        return AppointmentResponse.model_validate(row)

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    async def emit_due_reminders(self, now: datetime | None = None) -> int:
        """
        Emit ``appointment.reminder_due`` for upcoming appointments.

        An appointment is due once its start is within its business's
        ``reminder_hours``. Each appointment is reminded at most once per
        slot; rescheduling re-arms the reminder.

        Returns:
            Number of reminders emitted
        """
        now = now or self.clock()
        today = now.date()
        stmt = (
            select(
                appointments,
                businesses.c.timezone.label("business_timezone"),
                businesses.c.reminder_hours.label("business_reminder_hours"),
            )
            .select_from(appointments.join(businesses, appointments.c.business_id == businesses.c.id))
            .where(
                and_(
                    appointments.c.status.in_(
                        [AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value]
                    ),
                    appointments.c.reminder_sent.is_(False),
                    or_(
                        appointments.c.verified_at.is_not(None),
                        appointments.c.verification_expires_at.is_(None),
                    ),
                    appointments.c.appointment_date >= today - timedelta(days=1),
                    appointments.c.appointment_date <= today + timedelta(days=MAX_REMINDER_DAYS),
                )
            )
        )
        result = await self.db.execute(stmt)

        due = []
        for row in result.mappings().all():
            tz = ZoneInfo(row["business_timezone"])
            starts_at = datetime.combine(row["appointment_date"], row["start_time"], tzinfo=tz)
            if now < starts_at <= now + timedelta(hours=row["business_reminder_hours"]):
                due.append(row["id"])

        sent = 0
        for appointment_id in due:
            claim = (
                update(appointments)
                .where(
                    and_(
                        appointments.c.id == appointment_id,
                        appointments.c.reminder_sent.is_(False),
                    )
                )
                .values(reminder_sent=True, reminder_sent_at=now)
                .returning(appointments)
            )
            claimed = (await self.db.execute(claim)).mappings().first()
            await self.db.commit()
            if claimed is None:
                continue
            await self._publish(AppointmentEventType.REMINDER_DUE, dict(claimed))
            sent += 1

        logger.info("reminders_emitted", count=sent, candidates=len(due))
        return sent
