"""Pricing, cancellation fee and payment status rules."""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from app.core.exceptions import ValidationException
from app.schemas.appointments import PaymentStatus
from app.services.schedule_config import CancellationPolicy

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENTS = Decimal("0.01")


def quantize(amount: Decimal) -> Decimal:
    """Round to two decimal places."""
    return Decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)


def clamp(amount: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(amount, high))


@dataclass(frozen=True)
class PriceBreakdown:
    """Money components of an appointment."""

    service_price: Decimal
    additional_charges: Decimal
    discount: Decimal
    tax: Decimal
    total_amount: Decimal

    def as_values(self) -> dict[str, Decimal]:
        return {
            "service_price": self.service_price,
            "additional_charges": self.additional_charges,
            "discount": self.discount,
            "tax": self.tax,
            "total_amount": self.total_amount,
        }


def compute_price(
    service_price: Decimal,
    additional_charges: Decimal = ZERO,
    discount: Decimal = ZERO,
    tax: Decimal | None = None,
    total_amount: Decimal | None = None,
    tax_percentage: Decimal = ZERO,
) -> PriceBreakdown:
    """
    Derive the total of an appointment.

    ``total = service_price + additional_charges - discount + tax``. When tax
    is not given it is ``tax_percentage`` of the discounted subtotal. A
    supplied ``total_amount`` is trusted as-is.

    Raises:
        ValidationException: If a component is negative or the discount
            exceeds the subtotal
    """
    components = (service_price, additional_charges, discount, tax or ZERO, total_amount or ZERO)
    if any(Decimal(c) < 0 for c in components):
        raise ValidationException("Price components cannot be negative")

    subtotal = Decimal(service_price) + Decimal(additional_charges) - Decimal(discount)
    if subtotal < 0:
        raise ValidationException("Discount cannot exceed the service price and charges")

    if tax is None:
        tax = subtotal * Decimal(tax_percentage) / HUNDRED
    tax = quantize(tax)

    total = quantize(subtotal + tax) if total_amount is None else quantize(total_amount)

    return PriceBreakdown(
        service_price=quantize(service_price),
        additional_charges=quantize(additional_charges),
        discount=quantize(discount),
        tax=tax,
        total_amount=total,
    )


def remaining_amount(total_amount: Decimal, paid_amount: Decimal) -> Decimal:
    return max(Decimal(total_amount) - Decimal(paid_amount), ZERO)


def payment_status_for(paid_amount: Decimal, total_amount: Decimal) -> PaymentStatus:
    """Payment status implied by the paid and total amounts."""
    if total_amount > 0 and paid_amount >= total_amount:
        return PaymentStatus.PAID
    if paid_amount > 0:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PENDING


def hours_until(starts_at: datetime, now: datetime) -> float:
    return (starts_at - now).total_seconds() / 3600


def is_late_cancellation(starts_at: datetime, now: datetime, policy: CancellationPolicy) -> bool:
    """Cancelling strictly within ``min_cancellation_hours`` of the start is late."""
    return hours_until(starts_at, now) < policy.min_cancellation_hours


@dataclass(frozen=True)
class CancellationOutcome:
    """Fee and refund owed when an appointment is cancelled."""

    late: bool
    cancellation_fee: Decimal
    refund_amount: Decimal


def cancellation_outcome(
    total_amount: Decimal,
    paid_amount: Decimal,
    starts_at: datetime,
    now: datetime,
    policy: CancellationPolicy,
) -> CancellationOutcome:
    """
    Compute the cancellation fee and refund.

    On time the fee is zero and ``refund_percentage`` of the paid amount is
    returned. Late, the business keeps ``100 - late_refund_percentage`` percent
    of the total as a fee (bounded to ``[0, total]``) and refunds whatever was
    paid beyond it.
    """
    total = Decimal(total_amount)
    paid = Decimal(paid_amount)

    if not is_late_cancellation(starts_at, now, policy):
        refund = quantize(paid * Decimal(policy.refund_percentage) / HUNDRED)
        return CancellationOutcome(late=False, cancellation_fee=ZERO, refund_amount=refund)

    fee = quantize(total * (HUNDRED - Decimal(policy.late_refund_percentage)) / HUNDRED)
    fee = clamp(fee, ZERO, total)
    refund = quantize(max(paid - fee, ZERO))
    return CancellationOutcome(late=True, cancellation_fee=fee, refund_amount=refund)


def no_show_fee(total_amount: Decimal, policy: CancellationPolicy) -> Decimal:
    """No-show fee; zero unless the business defines one."""
    fee = quantize(Decimal(total_amount) * Decimal(policy.no_show_fee_percentage) / HUNDRED)
    return clamp(fee, ZERO, Decimal(total_amount))
