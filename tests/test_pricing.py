"""Tests for price, fee and payment status rules."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from app.core.exceptions import ValidationException
from app.schemas.appointments import PaymentStatus
from app.services.pricing import (
    cancellation_outcome,
    compute_price,
    is_late_cancellation,
    no_show_fee,
    payment_status_for,
    remaining_amount,
)
from app.services.schedule_config import CancellationPolicy

NOW = datetime(2024, 6, 1, 8, 0, tzinfo=UTC)
POLICY = CancellationPolicy(
    min_cancellation_hours=10,
    refund_percentage=Decimal("100"),
    late_refund_percentage=Decimal("0"),
)


def test_total_includes_charges_discount_and_tax():
    price = compute_price(
        service_price=Decimal("1000"),
        additional_charges=Decimal("200"),
        discount=Decimal("100"),
        tax_percentage=Decimal("18"),
    )

    assert price.tax == Decimal("198.00")
    assert price.total_amount == Decimal("1298.00")


def test_explicit_tax_and_total_are_kept():
    price = compute_price(
        service_price=Decimal("500"),
        tax=Decimal("10"),
        total_amount=Decimal("505"),
        tax_percentage=Decimal("18"),
    )

    assert price.tax == Decimal("10.00")
    assert price.total_amount == Decimal("505.00")


def test_discount_above_subtotal_is_rejected():
    with pytest.raises(ValidationException):
        compute_price(service_price=Decimal("100"), discount=Decimal("150"))


def test_negative_component_is_rejected():
    with pytest.raises(ValidationException):
        compute_price(service_price=Decimal("100"), additional_charges=Decimal("-1"))


def test_late_cancellation_charges_full_total():
    """Test cancelling 2 hours before start under a 10-hour policy keeps the full total."""
    outcome = cancellation_outcome(
        Decimal("1000"), Decimal("0"), NOW + timedelta(hours=2), NOW, POLICY
    )

    assert outcome.late
    assert outcome.cancellation_fee == Decimal("1000.00")
    assert outcome.refund_amount == Decimal("0.00")


def test_on_time_cancellation_refunds_paid_amount():
    outcome = cancellation_outcome(
        Decimal("1000"), Decimal("400"), NOW + timedelta(hours=24), NOW, POLICY
    )

    assert not outcome.late
    assert outcome.cancellation_fee == Decimal("0")
    assert outcome.refund_amount == Decimal("400.00")


def test_cancellation_exactly_at_threshold_is_on_time():
    """Test the notice period boundary is not late."""
    starts_at = NOW + timedelta(hours=10)
    assert not is_late_cancellation(starts_at, NOW, POLICY)
    assert is_late_cancellation(starts_at - timedelta(seconds=1), NOW, POLICY)


def test_late_refund_percentage_reduces_fee():
    policy = CancellationPolicy(
        min_cancellation_hours=10,
        late_refund_percentage=Decimal("50"),
    )
    outcome = cancellation_outcome(
        Decimal("1000"), Decimal("800"), NOW + timedelta(hours=1), NOW, policy
    )

    assert outcome.cancellation_fee == Decimal("500.00")
    assert outcome.refund_amount == Decimal("300.00")


def test_no_show_fee_percentage():
    policy = CancellationPolicy(no_show_fee_percentage=Decimal("25"))
    assert no_show_fee(Decimal("1000"), policy) == Decimal("250.00")
    assert no_show_fee(Decimal("1000"), CancellationPolicy()) == Decimal("0.00")


def test_payment_status_and_remaining_amount():
    assert payment_status_for(Decimal("0"), Decimal("1000")) is PaymentStatus.PENDING
    assert payment_status_for(Decimal("200"), Decimal("1000")) is PaymentStatus.PARTIAL
    assert payment_status_for(Decimal("1000"), Decimal("1000")) is PaymentStatus.PAID
    assert remaining_amount(Decimal("1000"), Decimal("200")) == Decimal("800")
    assert remaining_amount(Decimal("1000"), Decimal("1200")) == Decimal("0")
