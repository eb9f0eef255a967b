"""Database models."""

from app.models.appointments import appointment_status_history, appointments
from app.models.base import metadata
from app.models.businesses import business_closures, business_hours, businesses
from app.models.customers import customers
from app.models.services import services
from app.models.staff import staff, staff_hours

__all__ = [
    "appointment_status_history",
    "appointments",
    "business_closures",
    "business_hours",
    "businesses",
    "customers",
    "metadata",
    "services",
    "staff",
    "staff_hours",
]
