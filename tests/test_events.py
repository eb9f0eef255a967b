"""Tests for appointment event publishing."""

import json
from datetime import date, time
from unittest.mock import MagicMock
from uuid import uuid4

import redis

from app.middleware.logging import configure_logging
from app.services.events import AppointmentEventPublisher, AppointmentEventType, build_event


def sample_appointment() -> dict:
    return {
        "id": uuid4(),
        "booking_number": "20240601K7Q2MZ",
        "business_id": uuid4(),
        "customer_id": uuid4(),
        "status": "confirmed",
        "appointment_date": date(2024, 6, 1),
        "start_time": time(11, 0),
    }


def test_build_event_payload():
    appt = sample_appointment()
    customer = {"first_name": "Meera", "last_name": "Shah", "phone": "+91987", "email": None}

    payload = build_event(AppointmentEventType.CONFIRMED, appt, customer, reason="walk-in")

    assert payload["event"] == "appointment.confirmed"
    assert payload["booking_number"] == appt["booking_number"]
    assert payload["appointment_date"] == "2024-06-01"
    assert payload["start_time"] == "11:00"
    assert payload["customer_contact"]["name"] == "Meera Shah"
    assert payload["reason"] == "walk-in"


def test_publish_sends_json_to_channel():
    mock_redis = MagicMock()
    publisher = AppointmentEventPublisher(redis_client=mock_redis, channel="test.events")
    appt = sample_appointment()

    assert publisher.publish(AppointmentEventType.CREATED, appt) is True

    channel, message = mock_redis.publish.call_args.args
    assert channel == "test.events"
    assert json.loads(message)["appointment_id"] == str(appt["id"])


def test_publish_failure_is_swallowed():
    """Test a Redis outage never fails the caller."""
    mock_redis = MagicMock()
    mock_redis.publish.side_effect = redis.ConnectionError("down")
    publisher = AppointmentEventPublisher(redis_client=mock_redis)

    assert publisher.publish(AppointmentEventType.CANCELLED, sample_appointment()) is False


def test_publish_logs_with_configured_structlog():
    """Test both log lines render under the application's logging setup."""
    configure_logging()
    mock_redis = MagicMock()
    publisher = AppointmentEventPublisher(redis_client=mock_redis)

    assert publisher.publish(AppointmentEventType.CONFIRMED, sample_appointment()) is True

    mock_redis.publish.side_effect = redis.ConnectionError("down")
    assert publisher.publish(AppointmentEventType.CONFIRMED, sample_appointment()) is False
