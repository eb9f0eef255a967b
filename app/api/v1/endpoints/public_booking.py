"""Public booking endpoints (no authentication)."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import Cache, DatabaseSession, EventPublisher
from app.schemas.availability import AvailabilityResponse
from app.schemas.public_booking import (
    BookingHoldResponse,
    PublicAppointmentResponse,
    PublicBookingRequest,
    PublicBusinessResponse,
    PublicCancelRequest,
    VerifyBookingRequest,
)
from app.services.appointment_service import AppointmentService
from app.services.availability import AvailabilityService
from app.services.booking_service import BookingService
from app.services.public_profile_service import PublicProfileService

router = APIRouter()


@router.get(
    "/businesses/{slug}",
    response_model=PublicBusinessResponse,
    status_code=status.HTTP_200_OK,
    tags=["Public Booking"],
    summary="Get business booking profile",
)
async def get_business_profile(
    slug: str,
    db: DatabaseSession,
    cache: Cache,
) -> PublicBusinessResponse:
    """
    Get the profile shown on a business's booking page.

    Args:
        slug: Public business slug
        db: Database session
        cache: Profile cache

    Returns:
        Business details, opening hours, services and staff
    """
    service = PublicProfileService(db, cache)
    return await service.get_profile(slug)


@router.get(
    "/businesses/{slug}/availability",
    response_model=AvailabilityResponse,
    status_code=status.HTTP_200_OK,
    tags=["Public Booking"],
    summary="Get bookable slots",
)
async def get_public_availability(
    slug: str,
    db: DatabaseSession,
    day: date = Query(..., alias="date"),
    staff_id: UUID | None = Query(None),
    service_id: UUID | None = Query(None),
) -> AvailabilityResponse:
    """
    Get bookable slots for a day within the advance-booking window.

    Returns an empty slot list when the business does not take online bookings.
    """
    service = AvailabilityService(db)
    return await service.get_public_availability(slug, day, staff_id, service_id)


@router.post(
    "/businesses/{slug}/bookings",
    response_model=BookingHoldResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Public Booking"],
    summary="Request a booking",
)
async def request_booking(
    slug: str,
    data: PublicBookingRequest,
    db: DatabaseSession,
    events: EventPublisher,
) -> BookingHoldResponse:
    """
    Hold a slot and send a one-time code to the customer.

    The hold expires unless verified in time.

    Args:
        slug: Public business slug
        data: Customer details and desired slot
        db: Database session
        events: Appointment event publisher

    Returns:
        Pending hold with its booking number
    """
    service = BookingService(db, events)
    return await service.request_public_booking(slug, data)


@router.post(
    "/businesses/{slug}/bookings/verify",
    response_model=PublicAppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Public Booking"],
    summary="Verify a booking",
)
async def verify_booking(
    slug: str,
    data: VerifyBookingRequest,
    db: DatabaseSession,
    events: EventPublisher,
) -> PublicAppointmentResponse:
    """Confirm a held booking with the one-time code."""
    service = BookingService(db, events)
    return await service.verify_public_booking(slug, data)


@router.get(
    "/bookings/{booking_number}",
    response_model=PublicAppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Public Booking"],
    summary="Look up a booking",
)
async def get_booking(
    booking_number: str,
    db: DatabaseSession,
) -> PublicAppointmentResponse:
    """Look up a booking by its booking number."""
    service = AppointmentService(db)
    return await service.get_by_booking_number(booking_number)


@router.post(
    "/bookings/{booking_number}/cancel",
    response_model=PublicAppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Public Booking"],
    summary="Cancel a booking",
)
async def cancel_booking(
    booking_number: str,
    data: PublicCancelRequest,
    db: DatabaseSession,
    events: EventPublisher,
) -> PublicAppointmentResponse:
    """
    Cancel a booking as the customer.

    Refused when the business does not allow cancellations or the
    appointment starts within its notice period.
    """
    service = AppointmentService(db, events)
    return await service.cancel_by_booking_number(booking_number, data)
