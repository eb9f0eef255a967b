"""Availability schemas."""

from datetime import date, time
from uuid import UUID

from pydantic import BaseModel, field_serializer


class SlotResponse(BaseModel):
    """A bookable interval on the business grid."""

    start_time: time
    end_time: time
    available: bool

    model_config = {"from_attributes": True}

    @field_serializer("start_time", "end_time")
    def serialize_time(self, value: time) -> str:
        """Serialize wall-clock times as HH:MM."""
        return value.strftime("%H:%M")


class AvailabilityResponse(BaseModel):
    """Availability for one business day."""

    business_id: UUID
    date: date
    staff_id: UUID | None = None
    service_id: UUID | None = None
    slot_length: int
    timezone: str
    slots: list[SlotResponse]
