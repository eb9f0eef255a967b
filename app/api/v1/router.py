"""API v1 router configuration."""

from fastapi import APIRouter

from app.api.v1.endpoints import appointments, availability, health, public_booking

api_router = APIRouter()

# Include routers
api_router.include_router(health.router)
api_router.include_router(availability.router, prefix="/businesses", tags=["Availability"])
api_router.include_router(appointments.router, prefix="/businesses", tags=["Appointments"])
api_router.include_router(public_booking.router, prefix="/public", tags=["Public Booking"])
