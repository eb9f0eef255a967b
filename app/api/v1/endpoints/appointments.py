"""Appointment endpoints for business staff."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from app.dependencies import BusinessActor, DatabaseSession, EventPublisher
from app.schemas.appointments import (
    AppointmentCreate,
    AppointmentDetailsUpdate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    AssignStaffRequest,
    CancelRequest,
    CompleteRequest,
    NoShowRequest,
    PaymentCreate,
    RescheduleRequest,
    ReviewCreate,
    StatusHistoryEntry,
)
from app.services.appointment_service import AppointmentService
from app.services.booking_service import BookingService
from app.services.reschedule_service import RescheduleService

router = APIRouter()


@router.post(
    "/{business_id}/appointments",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Book an appointment",
)
async def create_appointment(
    business_id: UUID,
    data: AppointmentCreate,
    actor: BusinessActor,
    db: DatabaseSession,
    events: EventPublisher,
) -> AppointmentResponse:
    """
    Book an appointment for an existing customer.

    Walk-ins booked by staff start confirmed; other sources start pending.

    Args:
        business_id: Business ID
        data: Appointment creation data
        actor: Authenticated staff member of the business
        db: Database session
        events: Appointment event publisher

    Returns:
        Created appointment
    """
    service = BookingService(db, events)
    return await service.create_appointment(business_id, data, actor)


@router.get(
    "/{business_id}/appointments",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments",
)
async def list_appointments(
    business_id: UUID,
    actor: BusinessActor,
    db: DatabaseSession,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    staff_id: UUID | None = Query(None),
    customer_id: UUID | None = Query(None),
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """
    List appointments of a business with filtering.

    Args:
        business_id: Business ID
        actor: Authenticated staff member of the business
        db: Database session
        status_filter: Filter by status
        staff_id: Filter by staff member
        customer_id: Filter by customer
        from_date: Earliest appointment date
        to_date: Latest appointment date
        page: Page number
        page_size: Items per page

    Returns:
        Paginated list of appointments
    """
    try:
        filters = AppointmentFilters(
            status=status_filter,
            staff_id=staff_id,
            customer_id=customer_id,
            from_date=from_date,
            to_date=to_date,
            page=page,
            page_size=page_size,
        )
    except ValidationError as e:
        raise RequestValidationError(e.errors()) from e

    service = AppointmentService(db)
    return await service.list_appointments(business_id, filters)


@router.get(
    "/{business_id}/appointments/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    business_id: UUID,
    appointment_id: UUID,
    actor: BusinessActor,
    db: DatabaseSession,
) -> AppointmentResponse:
    """Get a specific appointment by ID."""
    service = AppointmentService(db)
    return await service.get_appointment(business_id, appointment_id)


@router.patch(
    "/{business_id}/appointments/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Update notes and pricing",
)
async def update_appointment_details(
    business_id: UUID,
    appointment_id: UUID,
    data: AppointmentDetailsUpdate,
    actor: BusinessActor,
    db: DatabaseSession,
) -> AppointmentResponse:
    """
    Update notes and price components of a non-terminal appointment.

    Status is never changed here; use the transition endpoints.
    """
    service = AppointmentService(db)
    return await service.update_details(business_id, appointment_id, data, actor)


@router.get(
    "/{business_id}/appointments/{appointment_id}/history",
    response_model=list[StatusHistoryEntry],
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get status history",
)
async def get_appointment_history(
    business_id: UUID,
    appointment_id: UUID,
    actor: BusinessActor,
    db: DatabaseSession,
) -> list[StatusHistoryEntry]:
    """Get the status transitions of an appointment, oldest first."""
    service = AppointmentService(db)
    return await service.get_history(business_id, appointment_id)


# ============================================================================
# Transitions
# ============================================================================


@router.post(
    "/{business_id}/appointments/{appointment_id}/confirm",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Confirm appointment",
)
async def confirm_appointment(
    business_id: UUID,
    appointment_id: UUID,
    actor: BusinessActor,
    db: DatabaseSession,
    events: EventPublisher,
) -> AppointmentResponse:
    """Confirm a pending appointment."""
    service = AppointmentService(db, events)
    return await service.confirm(business_id, appointment_id, actor)


@router.post(
    "/{business_id}/appointments/{appointment_id}/start",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Check customer in",
)
async def start_appointment(
    business_id: UUID,
    appointment_id: UUID,
    actor: BusinessActor,
    db: DatabaseSession,
    events: EventPublisher,
) -> AppointmentResponse:
    """Move a confirmed appointment to in progress."""
    service = AppointmentService(db, events)
    return await service.start(business_id, appointment_id, actor)


@router.post(
    "/{business_id}/appointments/{appointment_id}/complete",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Complete appointment",
)
async def complete_appointment(
    business_id: UUID,
    appointment_id: UUID,
    actor: BusinessActor,
    db: DatabaseSession,
    events: EventPublisher,
    data: CompleteRequest | None = None,
) -> AppointmentResponse:
    """
    Complete an in-progress appointment.

    Args:
        business_id: Business ID
        appointment_id: Appointment ID
        actor: Authenticated staff member of the business
        db: Database session
        events: Appointment event publisher
        data: Optional loyalty points and payment settlement

    Returns:
        Completed appointment
    """
    service = AppointmentService(db, events)
    return await service.complete(business_id, appointment_id, data or CompleteRequest(), actor)


@router.post(
    "/{business_id}/appointments/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Cancel appointment",
)
async def cancel_appointment(
    business_id: UUID,
    appointment_id: UUID,
    actor: BusinessActor,
    db: DatabaseSession,
    events: EventPublisher,
    data: CancelRequest | None = None,
) -> AppointmentResponse:
    """
    Cancel an appointment.

    Cancellations inside the business's notice period are charged the
    cancellation fee.
    """
    service = AppointmentService(db, events)
    return await service.cancel(business_id, appointment_id, data or CancelRequest(), actor)


@router.post(
    "/{business_id}/appointments/{appointment_id}/reschedule",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Reschedule appointment",
)
async def reschedule_appointment(
    business_id: UUID,
    appointment_id: UUID,
    data: RescheduleRequest,
    actor: BusinessActor,
    db: DatabaseSession,
    events: EventPublisher,
) -> AppointmentResponse:
    """
    Move an appointment to a new slot, keeping its booking number.

    Args:
        business_id: Business ID
        appointment_id: Appointment ID
        data: New date, start time, optional staff member and reason
        actor: Authenticated staff member of the business
        db: Database session
        events: Appointment event publisher

    Returns:
        Rescheduled appointment
    """
    service = RescheduleService(db, events)
    return await service.reschedule(business_id, appointment_id, data, actor)


@router.post(
    "/{business_id}/appointments/{appointment_id}/no-show",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Mark appointment as no-show",
)
async def mark_no_show(
    business_id: UUID,
    appointment_id: UUID,
    actor: BusinessActor,
    db: DatabaseSession,
    events: EventPublisher,
    data: NoShowRequest | None = None,
) -> AppointmentResponse:
    """Mark a pending or confirmed appointment as no-show."""
    service = AppointmentService(db, events)
    reason = data.reason if data else None
    return await service.mark_no_show(business_id, appointment_id, actor, reason)


@router.post(
    "/{business_id}/appointments/{appointment_id}/review",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Add customer review",
)
async def add_review(
    business_id: UUID,
    appointment_id: UUID,
    data: ReviewCreate,
    actor: BusinessActor,
    db: DatabaseSession,
) -> AppointmentResponse:
    """Record the customer's rating and review on a completed appointment."""
    service = AppointmentService(db)
    return await service.add_review(business_id, appointment_id, data, actor)


@router.post(
    "/{business_id}/appointments/{appointment_id}/payments",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Record payment",
)
async def record_payment(
    business_id: UUID,
    appointment_id: UUID,
    data: PaymentCreate,
    actor: BusinessActor,
    db: DatabaseSession,
    events: EventPublisher,
) -> AppointmentResponse:
    """Record a payment against the remaining amount."""
    service = AppointmentService(db, events)
    return await service.record_payment(business_id, appointment_id, data, actor)


@router.post(
    "/{business_id}/appointments/{appointment_id}/assign-staff",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Assign staff member",
)
async def assign_staff(
    business_id: UUID,
    appointment_id: UUID,
    data: AssignStaffRequest,
    actor: BusinessActor,
    db: DatabaseSession,
    events: EventPublisher,
) -> AppointmentResponse:
    """Attach or change the staff member before the appointment starts."""
    service = RescheduleService(db, events)
    return await service.assign_staff(business_id, appointment_id, data, actor)
