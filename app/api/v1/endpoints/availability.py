"""Availability endpoints for business staff."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import BusinessActor, DatabaseSession
from app.schemas.availability import AvailabilityResponse
from app.services.availability import AvailabilityService

router = APIRouter()


@router.get(
    "/{business_id}/availability",
    response_model=AvailabilityResponse,
    status_code=status.HTTP_200_OK,
    tags=["Availability"],
    summary="Get available slots for a day",
)
async def get_availability(
    business_id: UUID,
    actor: BusinessActor,
    db: DatabaseSession,
    day: date = Query(..., alias="date"),
    staff_id: UUID | None = Query(None),
    service_id: UUID | None = Query(None),
) -> AvailabilityResponse:
    """
    Get the slot grid of a business day.

    Staff see every future slot regardless of the online-booking flag and
    advance-booking limits.

    Args:
        business_id: Business ID
        actor: Authenticated staff member of the business
        db: Database session
        day: Date to query (business timezone)
        staff_id: Restrict to one staff member
        service_id: Use this service's duration as slot length

    Returns:
        Ordered slots with availability flags
    """
    service = AvailabilityService(db)
    return await service.get_availability(business_id, day, staff_id, service_id)
