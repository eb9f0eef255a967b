"""Tests for log redaction and processor selection."""

import structlog

from app.middleware.logging import build_processors, redact_sensitive


def test_codes_are_masked():
    event = redact_sensitive(None, "info", {"event": "hold_created", "code": "042917"})
    assert event["code"] == "***"


def test_phone_keeps_last_digits():
    event = redact_sensitive(None, "info", {"event": "x", "phone": "+919876543210"})
    assert event["phone"] == "*********3210"


def test_other_keys_untouched():
    event = redact_sensitive(None, "info", {"event": "x", "booking_number": "20240601K7Q2MZ"})
    assert event["booking_number"] == "20240601K7Q2MZ"


def test_renderer_follows_format():
    assert isinstance(build_processors("json")[-1], structlog.processors.JSONRenderer)
    assert isinstance(build_processors("console")[-1], structlog.dev.ConsoleRenderer)
