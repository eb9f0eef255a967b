"""Appointment schemas for request/response validation."""

from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Annotated
from uuid import UUID

from pydantic import (
    AfterValidator,
    BaseModel,
    Field,
    computed_field,
    field_serializer,
    model_validator,
)


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    RESCHEDULED = "rescheduled"


class PaymentStatus(str, Enum):
    """Payment status enumeration."""

    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    """Payment method enumeration."""

    CASH = "cash"
    CARD = "card"
    UPI = "upi"
    WALLET = "wallet"
    ONLINE = "online"


class BookingSource(str, Enum):
    """Booking source enumeration."""

    WALK_IN = "walk-in"
    ONLINE = "online"
    PHONE = "phone"
    WHATSAPP = "whatsapp"
    SOCIAL_MEDIA = "social_media"
    MOBILE_APP = "mobile_app"


class ActorKind(str, Enum):
    """Who performed an action on an appointment."""

    CUSTOMER = "customer"
    STAFF = "staff"
    MANAGER = "manager"
    ADMIN = "admin"
    SYSTEM = "system"


def _hhmm(value: time | None) -> str | None:
    return value.strftime("%H:%M") if value is not None else None


def whole_minute(value: time) -> time:
    """Slots start on a minute boundary."""
    if value.second or value.microsecond:
        raise ValueError("Start time must be given in hours and minutes")
    return value


SlotStart = Annotated[time, AfterValidator(whole_minute)]


# ============================================================================
# Request Schemas
# ============================================================================


class AppointmentCreate(BaseModel):
    """Schema for creating an appointment from the staff side."""

    customer_id: UUID
    service_id: UUID
    staff_id: UUID | None = None
    appointment_date: date
    start_time: SlotStart
    booking_source: BookingSource = BookingSource.WALK_IN
    payment_method: PaymentMethod = PaymentMethod.CASH
    service_price: Decimal | None = Field(None, ge=0, decimal_places=2)
    additional_charges: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    discount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    tax: Decimal | None = Field(None, ge=0, decimal_places=2)
    total_amount: Decimal | None = Field(None, ge=0, decimal_places=2)
    advance_amount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    customer_notes: str | None = Field(None, max_length=1000)
    special_requests: str | None = Field(None, max_length=1000)
    staff_notes: str | None = Field(None, max_length=1000)

class AppointmentDetailsUpdate(BaseModel):
    """Notes and price components editable on a non-terminal appointment."""

    customer_notes: str | None = Field(None, max_length=1000)
    special_requests: str | None = Field(None, max_length=1000)
    staff_notes: str | None = Field(None, max_length=1000)
    payment_method: PaymentMethod | None = None
    service_price: Decimal | None = Field(None, ge=0, decimal_places=2)
    additional_charges: Decimal | None = Field(None, ge=0, decimal_places=2)
    discount: Decimal | None = Field(None, ge=0, decimal_places=2)
    tax: Decimal | None = Field(None, ge=0, decimal_places=2)
    total_amount: Decimal | None = Field(None, ge=0, decimal_places=2)


class CancelRequest(BaseModel):
    """Schema for cancelling an appointment."""

    reason: str | None = Field(None, max_length=500)


class RescheduleRequest(BaseModel):
    """Schema for moving an appointment to a new slot."""

    new_date: date
    new_start_time: SlotStart
    staff_id: UUID | None = None
    reason: str | None = Field(None, max_length=500)


class CompleteRequest(BaseModel):
    """Schema for completing an appointment."""

    loyalty_points: int = Field(default=0, ge=0)
    mark_paid: bool = False
    payment_method: PaymentMethod | None = None


class NoShowRequest(BaseModel):
    """Schema for marking an appointment as no-show."""

    reason: str | None = Field(None, max_length=500)


class ReviewCreate(BaseModel):
    """Schema for a customer review on a completed appointment."""

    rating: int = Field(..., ge=1, le=5)
    review: str | None = Field(None, max_length=2000)


class PaymentCreate(BaseModel):
    """Schema for recording a payment against an appointment."""

    amount: Decimal = Field(..., gt=0, decimal_places=2)
    method: PaymentMethod = PaymentMethod.CASH


class AssignStaffRequest(BaseModel):
    """Schema for attaching or changing the staff member."""

    staff_id: UUID


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    status: AppointmentStatus | None = None
    staff_id: UUID | None = None
    customer_id: UUID | None = None
    from_date: date | None = None
    to_date: date | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)

    @model_validator(mode="after")
    def validate_range(self) -> "AppointmentFilters":
        """Validate the date range is not inverted."""
        if self.from_date and self.to_date and self.to_date < self.from_date:
            raise ValueError("to_date must not be before from_date")
        return self


# ============================================================================
# Response Schemas
# ============================================================================


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    booking_number: str
    business_id: UUID
    customer_id: UUID
    service_id: UUID
    staff_id: UUID | None = None
    appointment_date: date
    start_time: time
    end_time: time
    duration: int
    status: AppointmentStatus

    service_price: Decimal
    additional_charges: Decimal
    discount: Decimal
    tax: Decimal
    total_amount: Decimal
    payment_status: PaymentStatus
    payment_method: str
    paid_amount: Decimal
    advance_amount: Decimal
    cancellation_fee: Decimal
    refund_amount: Decimal
    no_show_fee: Decimal

    booking_source: str
    customer_notes: str | None = None
    special_requests: str | None = None
    staff_notes: str | None = None

    confirmation_sent: bool = False
    confirmation_sent_at: datetime | None = None
    reminder_sent: bool = False
    reminder_sent_at: datetime | None = None
    verified_at: datetime | None = None
    verification_expires_at: datetime | None = None

    cancellation_reason: str | None = None
    cancelled_by_kind: ActorKind | None = None
    cancelled_by_id: UUID | None = None
    cancelled_at: datetime | None = None

    original_appointment_date: date | None = None
    original_start_time: time | None = None
    reschedule_count: int = 0
    reschedule_reason: str | None = None
    rescheduled_by_kind: ActorKind | None = None
    rescheduled_by_id: UUID | None = None
    rescheduled_at: datetime | None = None

    check_in_time: datetime | None = None
    check_out_time: datetime | None = None
    completed_at: datetime | None = None
    actual_duration: int | None = None

    rating: int | None = None
    review: str | None = None
    review_date: datetime | None = None
    loyalty_points_earned: int = 0

    created_by_kind: ActorKind
    created_by_id: UUID | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @computed_field  # type: ignore[prop-decorator]
    @property
    def remaining_amount(self) -> Decimal:
        """Amount still owed on the appointment."""
        return max(self.total_amount - self.paid_amount, Decimal("0"))

    @field_serializer("start_time", "end_time", "original_start_time")
    def serialize_time(self, value: time | None) -> str | None:
        """Serialize wall-clock times as HH:MM."""
        return _hhmm(value)


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    total: int
    page: int
    page_size: int
    items: list[AppointmentResponse]


class StatusHistoryEntry(BaseModel):
    """One realized status transition."""

    id: UUID
    appointment_id: UUID
    from_status: AppointmentStatus | None = None
    to_status: AppointmentStatus
    event: str
    actor_kind: ActorKind
    actor_id: UUID | None = None
    reason: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
