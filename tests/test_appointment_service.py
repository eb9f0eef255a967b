"""Tests for appointment services against a mocked session."""

from datetime import UTC, date, datetime, time
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.dialects import postgresql

from app.core.actors import Actor
from app.core.exceptions import SlotUnavailableException, ValidationException
from app.middleware.logging import configure_logging
from app.schemas.appointments import (
    ActorKind,
    AppointmentCreate,
    AppointmentDetailsUpdate,
    AssignStaffRequest,
)
from app.schemas.public_booking import CustomerInfo, PublicBookingRequest
from app.services.appointment_service import AppointmentService
from app.services.availability import BookingChannel
from app.services.booking_service import SlotReservation
from app.services.events import AppointmentEventType
from app.services.reschedule_service import RescheduleService
from app.services.schedule_config import DayWindow, ScheduleConfig

NOW = datetime(2024, 6, 1, 8, 0, tzinfo=UTC)
STAFF = Actor(kind=ActorKind.STAFF, id=uuid4())


def appointment_row(**overrides) -> dict:
    values = {
        "id": uuid4(),
        "booking_number": "20240601K7Q2MZ",
        "business_id": uuid4(),
        "customer_id": uuid4(),
        "service_id": uuid4(),
        "staff_id": uuid4(),
        "appointment_date": date(2024, 6, 2),
        "start_time": time(11, 0),
        "end_time": time(11, 30),
        "duration": 30,
        "status": "confirmed",
        "service_price": Decimal("1000.00"),
        "additional_charges": Decimal("0.00"),
        "discount": Decimal("0.00"),
        "tax": Decimal("0.00"),
        "total_amount": Decimal("1000.00"),
        "payment_status": "partial",
        "payment_method": "cash",
        "paid_amount": Decimal("400.00"),
        "advance_amount": Decimal("400.00"),
        "cancellation_fee": Decimal("0"),
        "refund_amount": Decimal("0"),
        "no_show_fee": Decimal("0"),
        "booking_source": "walk-in",
        "created_by_kind": "staff",
        "verified_at": None,
        "verification_expires_at": None,
        "created_at": NOW,
        "updated_at": NOW,
    }
    values.update(overrides)
    return values


def session_returning(row: dict) -> AsyncMock:
    """Session whose statements all return ``row``."""
    result = MagicMock()
    result.mappings.return_value.one.return_value = row
    db = AsyncMock()
    db.execute.return_value = result
    return db


def appointment_service(appointment: dict, returned: dict | None = None) -> AppointmentService:
    db = session_returning(returned or appointment)
    service = AppointmentService(db, events=MagicMock(), clock=lambda: NOW)
    service._load = AsyncMock(return_value=appointment)
    service.directory = MagicMock()
    service.directory.get_customer = AsyncMock(return_value={"first_name": "Meera"})
    service.resolver = MagicMock()
    service.resolver.resolve = AsyncMock(return_value=MagicMock(tax_percentage=Decimal("0")))
    return service


def update_params(db: AsyncMock) -> dict:
    stmt = db.execute.await_args_list[0].args[0]
    return stmt.compile(dialect=postgresql.dialect()).params


@pytest.mark.asyncio
async def test_confirm_logs_commits_and_publishes():
    """Test a transition completes under the application's logging setup."""
    configure_logging()
    pending = appointment_row(status="pending")
    service = appointment_service(pending, returned=dict(pending, status="confirmed"))

    response = await service.confirm(pending["business_id"], pending["id"], STAFF)

    assert response.status == "confirmed"
    service.db.commit.assert_awaited_once()
    assert service.events.publish.call_args.args[0] is AppointmentEventType.CONFIRMED


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["completed", "cancelled", "no_show"])
async def test_update_details_refuses_terminal_appointments(status):
    appointment = appointment_row(status=status)
    service = appointment_service(appointment)

    with pytest.raises(ValidationException):
        await service.update_details(
            appointment["business_id"],
            appointment["id"],
            AppointmentDetailsUpdate(staff_notes="late"),
            STAFF,
        )

    service.db.execute.assert_not_called()
    service.db.commit.assert_not_called()


@pytest.mark.asyncio
async def test_update_details_refuses_total_below_paid():
    appointment = appointment_row()
    service = appointment_service(appointment)

    with pytest.raises(ValidationException, match="amount paid"):
        await service.update_details(
            appointment["business_id"],
            appointment["id"],
            AppointmentDetailsUpdate(discount=Decimal("700.00")),
            STAFF,
        )

    service.db.commit.assert_not_called()


@pytest.mark.asyncio
async def test_update_details_rederives_total_and_payment_status():
    """Test a lower total that equals the paid amount settles the appointment."""
    appointment = appointment_row()
    updated = dict(
        appointment,
        discount=Decimal("600.00"),
        total_amount=Decimal("400.00"),
        payment_status="paid",
    )
    service = appointment_service(appointment, returned=updated)

    response = await service.update_details(
        appointment["business_id"],
        appointment["id"],
        AppointmentDetailsUpdate(discount=Decimal("600.00"), staff_notes="loyalty discount"),
        STAFF,
    )

    params = update_params(service.db)
    assert params["total_amount"] == Decimal("400.00")
    assert params["payment_status"] == "paid"
    assert params["staff_notes"] == "loyalty discount"
    assert params["updated_by_kind"] == "staff"
    service.resolver.resolve.assert_awaited_once_with(appointment["business_id"])
    service.db.commit.assert_awaited_once()
    assert response.payment_status == "paid"


@pytest.mark.asyncio
async def test_update_details_notes_only_skips_pricing():
    appointment = appointment_row()
    service = appointment_service(appointment)

    await service.update_details(
        appointment["business_id"],
        appointment["id"],
        AppointmentDetailsUpdate(customer_notes="prefers window seat"),
        STAFF,
    )

    params = update_params(service.db)
    assert params["customer_notes"] == "prefers window seat"
    assert "total_amount" not in params
    service.resolver.resolve.assert_not_called()


@pytest.mark.asyncio
async def test_update_details_without_changes_writes_nothing():
    appointment = appointment_row()
    service = appointment_service(appointment)

    response = await service.update_details(
        appointment["business_id"], appointment["id"], AppointmentDetailsUpdate(), STAFF
    )

    assert response.id == appointment["id"]
    service.db.execute.assert_not_called()


def reschedule_service(appointment: dict) -> RescheduleService:
    service = RescheduleService(AsyncMock(), events=MagicMock(), clock=lambda: NOW)
    service._load = AsyncMock(return_value=appointment)
    service.reservation = MagicMock()
    service.reservation.directory.get_staff = AsyncMock(return_value={"id": uuid4()})
    service.reservation.lock_and_check = AsyncMock()
    service.reservation.update_slot = AsyncMock(
        side_effect=lambda _id, values: dict(appointment, **values)
    )
    return service


@pytest.mark.asyncio
async def test_assign_staff_checks_the_new_members_calendar():
    appointment = appointment_row()
    staff_id = uuid4()
    service = reschedule_service(appointment)

    response = await service.assign_staff(
        appointment["business_id"], appointment["id"], AssignStaffRequest(staff_id=staff_id), STAFF
    )

    service.reservation.lock_and_check.assert_awaited_once_with(
        appointment["business_id"],
        staff_id,
        appointment["appointment_date"],
        appointment["start_time"],
        appointment["end_time"],
        NOW,
        exclude_id=appointment["id"],
    )
    assert response.staff_id == staff_id
    service.db.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_assign_staff_refuses_busy_member():
    appointment = appointment_row()
    service = reschedule_service(appointment)
    service.reservation.lock_and_check.side_effect = SlotUnavailableException()

    with pytest.raises(SlotUnavailableException):
        await service.assign_staff(
            appointment["business_id"],
            appointment["id"],
            AssignStaffRequest(staff_id=uuid4()),
            STAFF,
        )

    service.reservation.update_slot.assert_not_called()
    service.db.commit.assert_not_called()


@pytest.mark.asyncio
async def test_assign_same_staff_skips_the_slot_check():
    appointment = appointment_row()
    service = reschedule_service(appointment)

    await service.assign_staff(
        appointment["business_id"],
        appointment["id"],
        AssignStaffRequest(staff_id=appointment["staff_id"]),
        STAFF,
    )

    service.reservation.lock_and_check.assert_not_called()
    service.reservation.update_slot.assert_awaited_once()


def test_start_times_must_fall_on_whole_minutes():
    base = {"customer_id": uuid4(), "service_id": uuid4(), "appointment_date": date(2024, 6, 3)}

    assert AppointmentCreate(**base, start_time="10:00").start_time == time(10, 0)
    with pytest.raises(PydanticValidationError):
        AppointmentCreate(**base, start_time="10:00:30")
    with pytest.raises(PydanticValidationError):
        PublicBookingRequest(
            customer_info=CustomerInfo(name="Meera Shah", phone="+919876543210"),
            service_id=uuid4(),
            appointment_date=date(2024, 6, 3),
            start_time=time(10, 0, 0, 500),
        )


@pytest.mark.asyncio
async def test_validate_slot_refuses_seconds():
    reservation = SlotReservation(AsyncMock(), clock=lambda: NOW)
    config = ScheduleConfig(
        business_id=uuid4(),
        timezone="UTC",
        weekly_hours={day: DayWindow(open=time(9, 0), close=time(18, 0)) for day in range(1, 8)},
    )

    with pytest.raises(ValidationException, match="hours and minutes"):
        await reservation.validate_slot(
            config, None, date(2024, 6, 3), time(10, 0, 30), 30, NOW, BookingChannel.INTERNAL
        )
