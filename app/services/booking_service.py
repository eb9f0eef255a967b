"""Booking reservation service: turns a candidate slot into an appointment."""

from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.actors import Actor
from app.core.exceptions import (
    AppException,
    InvalidDateRangeException,
    NotFoundException,
    PolicyViolationException,
    SlotUnavailableException,
    ValidationException,
)
from app.models.appointments import (
    UNIQUE_BOOKING_NUMBER_INDEX,
    UNIQUE_SLOT_INDEX,
    appointments,
)
from app.schemas.appointments import (
    AppointmentCreate,
    AppointmentResponse,
    AppointmentStatus,
    BookingSource,
    PaymentMethod,
)
from app.schemas.public_booking import (
    BookingHoldResponse,
    PublicAppointmentResponse,
    PublicBookingRequest,
    VerifyBookingRequest,
)
from app.services.availability import (
    BookingChannel,
    add_minutes,
    ensure_not_past,
    fits_window,
    violates_advance_window,
)
from app.services.booking_numbers import generate_booking_number
from app.services.conflicts import ConflictChecker, is_expired_hold
from app.services.directory import DirectoryService
from app.services.events import AppointmentEventPublisher, AppointmentEventType
from app.services.holds import HOLD_EXPIRED_REASON, record_history, release_expired_holds
from app.services.pricing import (
    ZERO,
    CancellationOutcome,
    compute_price,
    payment_status_for,
)
from app.services.schedule_config import ScheduleConfig, ScheduleConfigResolver
from app.services.slot_locks import acquire_slot_lock
from app.services.state_machine import AppointmentStateMachine, Transition
from app.services.verification import generate_code, hash_code, verify_code

logger = structlog.get_logger(__name__)

CONFIRMED_STATUSES = frozenset(
    {
        AppointmentStatus.CONFIRMED.value,
        AppointmentStatus.IN_PROGRESS.value,
        AppointmentStatus.COMPLETED.value,
    }
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SlotReservation:
    """
    Lock, conflict check and insert for one slot key.

    Shared by the booking and rescheduling flows so that both serialize on
    the same (business, staff, date) advisory lock.
    """

    def __init__(self, db: AsyncSession, clock=None):
        """Initialize reservation helper with database session and optional clock."""
        self.db = db
        self.clock = clock or _utcnow
        self.resolver = ScheduleConfigResolver(db)
        self.conflicts = ConflictChecker(db)
        self.directory = DirectoryService(db)

    async def validate_slot(
        self,
        config: ScheduleConfig,
        staff_id: UUID | None,
        day: date,
        start: time,
        duration: int,
        now: datetime,
        channel: BookingChannel,
    ) -> time:
        """
        Validate a candidate slot against hours and booking windows.

        Returns:
            End time of the slot

        Raises:
            InvalidDateRangeException: If the slot lies in the past
            ValidationException: If the slot is outside working hours
            PolicyViolationException: If the slot is outside the advance-booking window
        """
        ensure_not_past(config, day, now)

        if start.second or start.microsecond:
            raise ValidationException("Start time must be given in hours and minutes")
        end = add_minutes(start, duration)
        if end is None:
            raise ValidationException("Appointment must end on the same day it starts")

        staff_overrides = await self.resolver.staff_hours(staff_id) if staff_id else None
        window = config.window_for(day, staff_overrides)
        if window is None:
            raise ValidationException("Business is closed on the selected date")
        if not fits_window(window, start, end):
            raise ValidationException(
                f"Selected time is outside working hours "
                f"({window.open:%H:%M}-{window.close:%H:%M})"
            )

        if config.localize(day, start) <= now:
            raise InvalidDateRangeException("Cannot book a time that has already passed")
        if violates_advance_window(config, day, start, now, channel):
            raise PolicyViolationException(
                f"Appointments must be booked at least {config.min_advance_booking_hours} "
                f"hour(s) and at most {config.advance_booking_days} day(s) in advance"
            )
        return end

    async def lock_and_check(
        self,
        business_id: UUID,
        staff_id: UUID | None,
        day: date,
        start: time,
        end: time,
        now: datetime,
        exclude_id: UUID | None = None,
    ) -> None:
        """
        Take the slot lock and verify nothing occupies [start, end).

        Raises:
            SlotUnavailableException: If the lock is busy or the slot is taken
        """
        await acquire_slot_lock(self.db, business_id, staff_id, day)
        await release_expired_holds(self.db, business_id, staff_id, day, now)
        conflicts = await self.conflicts.find_conflicts(
            business_id, staff_id, day, start, end, now=now, exclude_id=exclude_id
        )
        if conflicts:
            raise SlotUnavailableException()

    async def insert_appointment(
        self,
        values: dict[str, Any],
        booking_day: date,
    ) -> dict[str, Any]:
        """
        Insert an appointment, retrying booking-number collisions.

        Raises:
            SlotUnavailableException: If a concurrent writer took the slot
        """
        for attempt in range(1, settings.booking_number_retries + 1):
            booking_number = generate_booking_number(booking_day)
            try:
                async with self.db.begin_nested():
                    stmt = (
                        insert(appointments)
                        .values(booking_number=booking_number, **values)
                        .returning(appointments)
                    )
                    result = await self.db.execute(stmt)
                    return dict(result.mappings().one())
            except IntegrityError as e:
                message = str(e)
                if UNIQUE_SLOT_INDEX in message:
                    logger.info("slot_taken_at_insert", start_time=str(values.get("start_time")))
                    raise SlotUnavailableException() from e
                if UNIQUE_BOOKING_NUMBER_INDEX not in message:
                    raise
                logger.warning("booking_number_collision", attempt=attempt)

        raise AppException("Could not allocate a booking number", status_code=503)

    async def update_slot(
        self,
        appointment_id: UUID,
        values: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Apply slot-changing values to an appointment.

        Raises:
            SlotUnavailableException: If a concurrent writer took the slot
        """
        try:
            async with self.db.begin_nested():
                stmt = (
                    update(appointments)
                    .where(appointments.c.id == appointment_id)
                    .values(**values)
                    .returning(appointments)
                )
                result = await self.db.execute(stmt)
                return dict(result.mappings().one())
        except IntegrityError as e:
            if UNIQUE_SLOT_INDEX in str(e):
                raise SlotUnavailableException() from e
            raise


class BookingService:
    """Service creating appointments from validated slots."""

    def __init__(
        self,
        db: AsyncSession,
        events: AppointmentEventPublisher | None = None,
        clock=None,
    ):
        """Initialize service with database session, event publisher and clock."""
        self.db = db
        self.events = events or AppointmentEventPublisher()
        self.clock = clock or _utcnow
        self.reservation = SlotReservation(db, clock=self.clock)
        self.resolver = self.reservation.resolver
        self.directory = self.reservation.directory

    async def create_appointment(
        self,
        business_id: UUID,
        data: AppointmentCreate,
        actor: Actor,
    ) -> AppointmentResponse:
        """
        Book an appointment from the staff side.

        Args:
            business_id: Business ID
            data: Appointment creation data
            actor: Staff member, manager or admin creating the booking

        Returns:
            Created appointment

        Raises:
            NotFoundException: If business, service, staff or customer not found
            ValidationException: If the slot or price is invalid
            SlotUnavailableException: If the slot is taken
        """
        now = self.clock()
        config = await self.resolver.resolve(business_id)
        service = await self.directory.get_service(business_id, data.service_id)
        customer = await self.directory.get_customer(business_id, data.customer_id)
        if data.staff_id is not None:
            await self.directory.get_staff(business_id, data.staff_id)

        duration = service["duration_minutes"]
        end = await self.reservation.validate_slot(
            config,
            data.staff_id,
            data.appointment_date,
            data.start_time,
            duration,
            now,
            BookingChannel.INTERNAL,
        )

        price = compute_price(
            service_price=(
                data.service_price if data.service_price is not None else service["price"]
            ),
            additional_charges=data.additional_charges,
            discount=data.discount,
            tax=data.tax,
            total_amount=data.total_amount,
            tax_percentage=config.tax_percentage,
        )
        if data.advance_amount > price.total_amount:
            raise ValidationException("Advance amount cannot exceed the total amount")

        transition = AppointmentStateMachine(now).create(actor, data.booking_source)
        values = {
            "business_id": business_id,
            "customer_id": customer["id"],
            "service_id": service["id"],
            "staff_id": data.staff_id,
            "appointment_date": data.appointment_date,
            "start_time": data.start_time,
            "end_time": end,
            "duration": duration,
            "booking_source": data.booking_source.value,
            "payment_method": data.payment_method.value,
            "advance_amount": data.advance_amount,
            "paid_amount": data.advance_amount,
            "payment_status": payment_status_for(data.advance_amount, price.total_amount).value,
            "customer_notes": data.customer_notes,
            "special_requests": data.special_requests,
            "staff_notes": data.staff_notes,
            **price.as_values(),
            **transition.values,
        }

        row = await self._reserve(config, data.staff_id, values, transition, now)
        await self.db.commit()

        logger.info(
            "appointment_booked",
            appointment_id=str(row["id"]),
            booking_number=row["booking_number"],
            business_id=str(business_id),
            status=row["status"],
            actor_kind=actor.kind.value,
        )
        self.events.publish(AppointmentEventType.CREATED, row, customer)
        return AppointmentResponse.model_validate(row)

    async def request_public_booking(
        self,
        slug: str,
        data: PublicBookingRequest,
    ) -> BookingHoldResponse:
        """
        Hold a slot for a public booker until they verify a one-time code.

        Args:
            slug: Public business slug
            data: Booking request with customer contact details

        Returns:
            The pending hold

        Raises:
            NotFoundException: If business, service or staff not found
            PolicyViolationException: If online booking is disabled or the
                slot is outside the advance-booking window
            SlotUnavailableException: If the slot is taken
        """
        now = self.clock()
        business = await self.resolver.get_business_by_slug(slug)
        config = await self.resolver.resolve_for(business)
        if not config.allow_online_booking:
            raise PolicyViolationException("Online booking is not available for this business")

        service = await self.directory.get_service(
            config.business_id, data.service_id, online_only=True
        )
        if data.staff_id is not None:
            await self.directory.get_staff(config.business_id, data.staff_id)

        duration = service["duration_minutes"]
        end = await self.reservation.validate_slot(
            config,
            data.staff_id,
            data.appointment_date,
            data.start_time,
            duration,
            now,
            BookingChannel.PUBLIC,
        )

        customer = await self.directory.find_or_create_customer(
            config.business_id,
            name=data.customer_info.name,
            phone=data.customer_info.phone,
            email=data.customer_info.email,
        )
        actor = Actor.customer(customer["id"])
        price = compute_price(
            service_price=service["price"], tax_percentage=config.tax_percentage
        )

        code = generate_code()
        expires_at = now + timedelta(minutes=settings.booking_verification_minutes)
        transition = AppointmentStateMachine(now).create(actor, BookingSource.ONLINE)
        values = {
            "business_id": config.business_id,
            "customer_id": customer["id"],
            "service_id": service["id"],
            "staff_id": data.staff_id,
            "appointment_date": data.appointment_date,
            "start_time": data.start_time,
            "end_time": end,
            "duration": duration,
            "booking_source": BookingSource.ONLINE.value,
            "payment_method": PaymentMethod.CASH.value,
            "customer_notes": data.customer_notes,
            "special_requests": data.special_requests,
            "verification_code_hash": hash_code(code),
            "verification_expires_at": expires_at,
            **price.as_values(),
            **transition.values,
        }

        row = await self._reserve(config, data.staff_id, values, transition, now)
        await self.db.commit()

        logger.info(
            "booking_hold_created",
            appointment_id=str(row["id"]),
            booking_number=row["booking_number"],
            business_id=str(config.business_id),
            expires_at=expires_at.isoformat(),
        )
        self.events.publish(
            AppointmentEventType.VERIFICATION_REQUESTED,
            row,
            customer,
            verification_code=code,
            verification_expires_at=expires_at.isoformat(),
        )
        return BookingHoldResponse(
            booking_number=row["booking_number"],
            status=AppointmentStatus(row["status"]),
            verification_expires_at=expires_at,
        )

    async def verify_public_booking(
        self,
        slug: str,
        data: VerifyBookingRequest,
    ) -> PublicAppointmentResponse:
        """
        Confirm a public hold with its one-time code.

        A wrong code counts against the attempt budget; an expired or
        exhausted hold is released and its slot freed.

        Raises:
            NotFoundException: If the booking does not exist for the business
            ValidationException: If the code is wrong
            PolicyViolationException: If the hold has expired
        """
        now = self.clock()
        business = await self.resolver.get_business_by_slug(slug)

        stmt = (
            select(appointments)
            .where(
                and_(
                    appointments.c.booking_number == data.booking_number,
                    appointments.c.business_id == business["id"],
                )
            )
            .with_for_update()
        )
        result = await self.db.execute(stmt)
        found = result.mappings().first()
        if not found:
            raise NotFoundException("Booking not found")
        appointment = dict(found)

        # Verified by the customer, or already confirmed by staff
        if appointment["verified_at"] is not None or appointment["status"] in CONFIRMED_STATUSES:
            return PublicAppointmentResponse.model_validate(appointment)

        if appointment["status"] != AppointmentStatus.PENDING.value:
            raise PolicyViolationException("Booking hold is no longer active, please book again")

        max_attempts = settings.booking_verification_max_attempts
        if is_expired_hold(appointment, now) or appointment["verification_attempts"] >= max_attempts:
            await self._release_hold(appointment, now)
            await self.db.commit()
            raise PolicyViolationException("Verification code has expired, please book again")

        if not verify_code(data.code, appointment["verification_code_hash"]):
            attempts = appointment["verification_attempts"] + 1
            await self.db.execute(
                update(appointments)
                .where(appointments.c.id == appointment["id"])
                .values(verification_attempts=attempts, updated_at=now)
            )
            if attempts >= max_attempts:
                await self._release_hold(appointment, now)
            await self.db.commit()
            logger.info(
                "booking_verification_failed",
                booking_number=appointment["booking_number"],
                attempts=attempts,
            )
            raise ValidationException("Invalid verification code")

        stmt = (
            update(appointments)
            .where(appointments.c.id == appointment["id"])
            .values(
                verified_at=now,
                verification_code_hash=None,
                updated_at=now,
                **Actor.customer(appointment["customer_id"]).audit("updated_by"),
            )
            .returning(appointments)
        )
        result = await self.db.execute(stmt)
        row = dict(result.mappings().one())
        await self.db.commit()

        logger.info(
            "booking_verified",
            appointment_id=str(row["id"]),
            booking_number=row["booking_number"],
        )
        try:
            customer = await self.directory.get_customer(row["business_id"], row["customer_id"])
        except NotFoundException:
            customer = None
        self.events.publish(AppointmentEventType.CREATED, row, customer)
        return PublicAppointmentResponse.model_validate(row)

    async def _reserve(
        self,
        config: ScheduleConfig,
        staff_id: UUID | None,
        values: dict[str, Any],
        transition: Transition,
        now: datetime,
    ) -> dict[str, Any]:
        day = values["appointment_date"]
        await self.reservation.lock_and_check(
            config.business_id, staff_id, day, values["start_time"], values["end_time"], now
        )
        row = await self.reservation.insert_appointment(values, config.today(now))
        await record_history(self.db, row["id"], transition.history, now)
        return row

    async def _release_hold(self, appointment: dict[str, Any], now: datetime) -> None:
        transition = AppointmentStateMachine(now).cancel(
            appointment,
            Actor.system(),
            CancellationOutcome(late=False, cancellation_fee=ZERO, refund_amount=Decimal("0")),
            reason=HOLD_EXPIRED_REASON,
        )
        await self.db.execute(
            update(appointments)
            .where(appointments.c.id == appointment["id"])
            .values(verification_code_hash=None, **transition.values)
        )
        await record_history(self.db, appointment["id"], transition.history, now)
        logger.info(
            "booking_hold_released",
            booking_number=appointment["booking_number"],
        )
