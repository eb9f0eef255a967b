"""Schemas for the unauthenticated booking surface."""

from datetime import date, datetime, time
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_serializer, field_validator

from app.schemas.appointments import AppointmentStatus, PaymentStatus, SlotStart


class CustomerInfo(BaseModel):
    """Contact details supplied by a public booker."""

    name: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., min_length=7, max_length=20)
    email: EmailStr | None = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        """Validate phone number format."""
        # Remove common separators
        cleaned = (
            v.replace("-", "").replace(" ", "").replace("(", "").replace(")", "").replace("+", "")
        )
        if not cleaned.isdigit():
            raise ValueError("Phone number must contain only digits and separators")
        if len(cleaned) < 7:
            raise ValueError("Phone number must have at least 7 digits")
        return v


class PublicBookingRequest(BaseModel):
    """Schema for requesting a booking hold."""

    customer_info: CustomerInfo
    service_id: UUID
    staff_id: UUID | None = None
    appointment_date: date
    start_time: SlotStart
    customer_notes: str | None = Field(None, max_length=1000)
    special_requests: str | None = Field(None, max_length=1000)


class BookingHoldResponse(BaseModel):
    """A pending hold awaiting its one-time code."""

    booking_number: str
    status: AppointmentStatus
    requires_verification: bool = True
    verification_expires_at: datetime


class VerifyBookingRequest(BaseModel):
    """Schema for confirming a hold with its one-time code."""

    booking_number: str = Field(..., min_length=8, max_length=32)
    code: str = Field(..., pattern=r"^\d{6}$")


class PublicCancelRequest(BaseModel):
    """Schema for a customer cancelling by booking number."""

    phone: str = Field(..., min_length=7, max_length=20)
    reason: str | None = Field(None, max_length=500)


class PublicAppointmentResponse(BaseModel):
    """What a customer may see about their booking."""

    booking_number: str
    business_id: UUID
    service_id: UUID
    staff_id: UUID | None = None
    appointment_date: date
    start_time: time
    end_time: time
    duration: int
    status: AppointmentStatus
    total_amount: Decimal
    paid_amount: Decimal
    payment_status: PaymentStatus
    cancellation_fee: Decimal
    refund_amount: Decimal
    verified_at: datetime | None = None
    cancelled_at: datetime | None = None
    reschedule_count: int = 0

    model_config = {"from_attributes": True}

    @field_serializer("start_time", "end_time")
    def serialize_time(self, value: time) -> str:
        """Serialize wall-clock times as HH:MM."""
        return value.strftime("%H:%M")


class PublicServiceResponse(BaseModel):
    """Service listed on a public business profile."""

    id: UUID
    name: str
    category: str | None = None
    duration_minutes: int
    price: Decimal

    model_config = {"from_attributes": True}


class PublicStaffResponse(BaseModel):
    """Staff member listed on a public business profile."""

    id: UUID
    name: str
    role: str | None = None

    model_config = {"from_attributes": True}


class PublicHoursResponse(BaseModel):
    """Opening hours for one weekday (1=Monday, 7=Sunday)."""

    day_of_week: int
    open_time: time | None = None
    close_time: time | None = None
    is_closed: bool

    model_config = {"from_attributes": True}


class PublicBusinessResponse(BaseModel):
    """Display-only business profile for the booking page."""

    id: UUID
    name: str
    slug: str
    description: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    timezone: str
    currency: str
    allow_online_booking: bool
    advance_booking_days: int
    allow_cancellation: bool
    min_cancellation_hours: int
    hours: list[PublicHoursResponse] = []
    services: list[PublicServiceResponse] = []
    staff: list[PublicStaffResponse] = []
