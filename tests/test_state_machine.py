"""Tests for appointment lifecycle transitions."""

from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from app.core.actors import Actor
from app.core.exceptions import InvalidTransitionException, ValidationException
from app.schemas.appointments import ActorKind, AppointmentStatus, BookingSource
from app.services.pricing import CancellationOutcome
from app.services.state_machine import (
    TERMINAL_STATUSES,
    AppointmentEvent,
    AppointmentStateMachine,
    can_apply,
    initial_status,
    next_status,
)

NOW = datetime(2024, 6, 1, 8, 0, tzinfo=UTC)
STAFF = Actor(kind=ActorKind.STAFF, id=uuid4())
CUSTOMER = Actor.customer(uuid4())
NO_FEE = CancellationOutcome(late=False, cancellation_fee=Decimal("0"), refund_amount=Decimal("0"))


def appointment(status: str = "confirmed", **extra) -> dict:
    values = {
        "id": uuid4(),
        "status": status,
        "appointment_date": date(2024, 6, 2),
        "start_time": time(11, 0),
        "end_time": time(11, 30),
        "duration": 30,
        "total_amount": Decimal("1000"),
        "reschedule_count": 0,
        "original_appointment_date": None,
        "original_start_time": None,
    }
    values.update(extra)
    return values


def test_walk_in_by_staff_starts_confirmed():
    assert initial_status(STAFF, BookingSource.WALK_IN) is AppointmentStatus.CONFIRMED
    assert initial_status(STAFF, BookingSource.PHONE) is AppointmentStatus.PENDING
    assert initial_status(CUSTOMER, BookingSource.ONLINE) is AppointmentStatus.PENDING


def test_create_records_initial_history():
    transition = AppointmentStateMachine(NOW).create(STAFF, BookingSource.WALK_IN)

    assert transition.values["status"] == "confirmed"
    assert transition.values["confirmation_sent"] is True
    assert transition.values["created_by_kind"] == "staff"
    assert len(transition.history) == 1
    assert transition.history[0].from_status is None


@pytest.mark.parametrize(
    "current,event,expected",
    [
        ("pending", AppointmentEvent.CONFIRM, "confirmed"),
        ("confirmed", AppointmentEvent.START, "in_progress"),
        ("in_progress", AppointmentEvent.COMPLETE, "completed"),
        ("in_progress", AppointmentEvent.CANCEL, "cancelled"),
        ("pending", AppointmentEvent.NO_SHOW, "no_show"),
        ("confirmed", AppointmentEvent.RESCHEDULE, "confirmed"),
    ],
)
def test_allowed_transitions(current, event, expected):
    assert next_status(current, event) is AppointmentStatus(expected)


@pytest.mark.parametrize("status", sorted(s.value for s in TERMINAL_STATUSES))
def test_terminal_statuses_reject_lifecycle_events(status):
    for event in (
        AppointmentEvent.CONFIRM,
        AppointmentEvent.START,
        AppointmentEvent.CANCEL,
        AppointmentEvent.RESCHEDULE,
        AppointmentEvent.NO_SHOW,
    ):
        assert not can_apply(status, event)
        with pytest.raises(InvalidTransitionException):
            next_status(status, event)


def test_invalid_transition_message_names_event():
    with pytest.raises(InvalidTransitionException) as exc_info:
        next_status("completed", AppointmentEvent.NO_SHOW)

    assert exc_info.value.message == "Cannot no-show an appointment that is completed"
    assert exc_info.value.status_code == 409


def test_start_then_complete_measures_duration():
    machine = AppointmentStateMachine(NOW)
    started = machine.start(appointment("confirmed"), STAFF)
    assert started.values["check_in_time"] == NOW

    later = AppointmentStateMachine(NOW + timedelta(minutes=40))
    completed = later.complete(
        appointment("in_progress", check_in_time=NOW, loyalty_points_earned=5),
        STAFF,
        loyalty_points=10,
        mark_paid=True,
    )

    assert completed.status is AppointmentStatus.COMPLETED
    assert completed.values["actual_duration"] == 40
    assert completed.values["loyalty_points_earned"] == 15
    assert completed.values["payment_status"] == "paid"
    assert completed.values["paid_amount"] == Decimal("1000")


def test_cancel_records_fee_refund_and_actor():
    outcome = CancellationOutcome(
        late=True, cancellation_fee=Decimal("1000"), refund_amount=Decimal("200")
    )
    transition = AppointmentStateMachine(NOW).cancel(
        appointment("confirmed"), STAFF, outcome, reason="stylist unwell"
    )

    assert transition.values["status"] == "cancelled"
    assert transition.values["cancellation_fee"] == Decimal("1000")
    assert transition.values["payment_status"] == "refunded"
    assert transition.values["cancelled_by_kind"] == "staff"
    assert transition.values["cancelled_by_id"] == STAFF.id
    assert transition.history[0].reason == "stylist unwell"


def test_review_requires_completed_and_valid_rating():
    machine = AppointmentStateMachine(NOW)
    with pytest.raises(InvalidTransitionException):
        machine.add_review(appointment("confirmed"), STAFF, rating=5)
    with pytest.raises(ValidationException):
        machine.add_review(appointment("completed"), STAFF, rating=6)

    reviewed = machine.add_review(appointment("completed"), STAFF, rating=4, review="Great")
    assert reviewed.values["rating"] == 4
    assert reviewed.history == []


def test_reschedule_keeps_lineage_on_same_record():
    """Test rescheduling passes through rescheduled and keeps the first original slot."""
    machine = AppointmentStateMachine(NOW)
    first = machine.reschedule(
        appointment("confirmed"), STAFF, date(2024, 6, 3), time(14, 0), time(14, 30)
    )

    assert first.status is AppointmentStatus.CONFIRMED
    assert first.values["reschedule_count"] == 1
    assert first.values["original_appointment_date"] == date(2024, 6, 2)
    assert first.values["original_start_time"] == time(11, 0)
    assert first.values["reminder_sent"] is False
    assert [(h.from_status, h.to_status) for h in first.history] == [
        (AppointmentStatus.CONFIRMED, AppointmentStatus.RESCHEDULED),
        (AppointmentStatus.RESCHEDULED, AppointmentStatus.CONFIRMED),
    ]

    moved_again = appointment(
        "confirmed",
        appointment_date=date(2024, 6, 3),
        start_time=time(14, 0),
        reschedule_count=1,
        original_appointment_date=date(2024, 6, 2),
        original_start_time=time(11, 0),
    )
    second = machine.reschedule(moved_again, CUSTOMER, date(2024, 6, 4), time(9, 0), time(9, 30))

    assert second.values["reschedule_count"] == 2
    assert "original_appointment_date" not in second.values
    assert second.values["rescheduled_by_kind"] == "customer"


def test_reschedule_rejected_once_started():
    with pytest.raises(InvalidTransitionException):
        AppointmentStateMachine(NOW).reschedule(
            appointment("in_progress"), STAFF, date(2024, 6, 3), time(14, 0), time(14, 30)
        )


def test_no_show_and_assign_staff():
    machine = AppointmentStateMachine(NOW)
    no_show = machine.mark_no_show(appointment("pending"), STAFF, fee=Decimal("250"))
    assert no_show.values["status"] == "no_show"
    assert no_show.values["no_show_fee"] == Decimal("250")

    staff_id = uuid4()
    assigned = machine.assign_staff(appointment("pending"), STAFF, staff_id)
    assert assigned.values["staff_id"] == staff_id
    assert assigned.history == []

    cancelled = machine.cancel(appointment("pending"), Actor.system(), NO_FEE)
    assert cancelled.values["cancelled_by_kind"] == "system"
    assert "payment_status" not in cancelled.values


def test_confirm_ends_public_hold_window():
    """Test confirming an unverified hold clears its verification window."""
    machine = AppointmentStateMachine(NOW)
    hold = appointment(
        "pending",
        verified_at=None,
        verification_expires_at=NOW + timedelta(minutes=10),
        verification_code_hash="hash",
    )

    confirmed = machine.confirm(hold, STAFF)

    assert confirmed.values["status"] == "confirmed"
    assert confirmed.values["verification_expires_at"] is None
    assert confirmed.values["verification_code_hash"] is None

    plain = machine.confirm(appointment("pending"), STAFF)
    assert "verification_expires_at" not in plain.values
