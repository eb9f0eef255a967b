"""Appointment events published to the notification and loyalty collaborators."""

import json
from collections.abc import Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import redis
import structlog

from app.config import settings
from app.core.redis_client import get_redis_client

logger = structlog.get_logger(__name__)


class AppointmentEventType(str, Enum):
    """Event names on the appointments channel."""

    CREATED = "appointment.created"
    CONFIRMED = "appointment.confirmed"
    CANCELLED = "appointment.cancelled"
    RESCHEDULED = "appointment.rescheduled"
    REMINDER_DUE = "appointment.reminder_due"
    COMPLETED = "appointment.completed"
    NO_SHOW = "appointment.no_show"
    VERIFICATION_REQUESTED = "appointment.verification_requested"
    PAYMENT_PAID = "payment.paid"


def build_event(
    event_type: AppointmentEventType,
    appointment: Mapping[str, Any],
    customer: Mapping[str, Any] | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Assemble the payload of an appointment event."""
    payload: dict[str, Any] = {
        "event": event_type.value,
        "occurred_at": datetime.now(UTC).isoformat(),
        "appointment_id": str(appointment["id"]),
        "booking_number": appointment["booking_number"],
        "business_id": str(appointment["business_id"]),
        "customer_id": str(appointment["customer_id"]),
        "status": appointment["status"],
        "appointment_date": appointment["appointment_date"].isoformat(),
        "start_time": appointment["start_time"].strftime("%H:%M"),
    }
    if customer is not None:
        payload["customer_contact"] = {
            "name": " ".join(
                part for part in (customer.get("first_name"), customer.get("last_name")) if part
            ),
            "phone": customer.get("phone"),
            "email": customer.get("email"),
        }
    payload.update(extra)
    return payload


class AppointmentEventPublisher:
    """
    Best-effort publisher for appointment events.

    Delivery failures are logged and never propagate to the caller.
    """

    def __init__(self, redis_client: redis.Redis | None = None, channel: str | None = None):
        """Initialize publisher with an optional Redis client and channel."""
        self._redis = redis_client
        self.channel = channel or settings.appointment_events_channel

    @property
    def redis(self) -> redis.Redis:
        if self._redis is None:
            self._redis = get_redis_client()
        return self._redis

    def publish(
        self,
        event_type: AppointmentEventType,
        appointment: Mapping[str, Any],
        customer: Mapping[str, Any] | None = None,
        **extra: Any,
    ) -> bool:
        """
        Publish an event about an appointment.

        Returns:
            True if the event was handed to Redis, False otherwise
        """
        try:
            payload = build_event(event_type, appointment, customer, **extra)
            self.redis.publish(self.channel, json.dumps(payload, default=str))
        except Exception as e:
            logger.warning(
                "appointment_event_publish_failed",
                event_type=event_type.value,
                appointment_id=str(appointment.get("id")),
                error=str(e),
            )
            return False

        logger.info(
            "appointment_event_published",
            event_type=event_type.value,
            appointment_id=str(appointment["id"]),
        )
        return True
