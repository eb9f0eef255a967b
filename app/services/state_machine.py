"""
Appointment lifecycle transitions.

Every status change goes through ``AppointmentStateMachine``. A method either
returns the complete set of column updates plus the history rows for the
change, or raises ``InvalidTransitionException`` without side effects.
Nothing here touches the database.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from app.core.actors import Actor
from app.core.exceptions import InvalidTransitionException, ValidationException
from app.schemas.appointments import AppointmentStatus, BookingSource, PaymentStatus
from app.services.pricing import CancellationOutcome


class AppointmentEvent(str, Enum):
    """Events that move an appointment between statuses."""

    CREATE = "create"
    CONFIRM = "confirm"
    START = "start"
    COMPLETE = "complete"
    CANCEL = "cancel"
    RESCHEDULE = "reschedule"
    NO_SHOW = "no_show"
    REVIEW = "review"
    ASSIGN_STAFF = "assign_staff"


S = AppointmentStatus

# Allowed source statuses per event; reschedule and review return to the
# source status, assign_staff does not change it.
TRANSITIONS: dict[AppointmentEvent, dict[AppointmentStatus, AppointmentStatus]] = {
    AppointmentEvent.CONFIRM: {S.PENDING: S.CONFIRMED},
    AppointmentEvent.START: {S.CONFIRMED: S.IN_PROGRESS},
    AppointmentEvent.COMPLETE: {S.IN_PROGRESS: S.COMPLETED},
    AppointmentEvent.CANCEL: {
        S.PENDING: S.CANCELLED,
        S.CONFIRMED: S.CANCELLED,
        S.IN_PROGRESS: S.CANCELLED,
    },
    AppointmentEvent.RESCHEDULE: {S.PENDING: S.PENDING, S.CONFIRMED: S.CONFIRMED},
    AppointmentEvent.NO_SHOW: {S.PENDING: S.NO_SHOW, S.CONFIRMED: S.NO_SHOW},
    AppointmentEvent.REVIEW: {S.COMPLETED: S.COMPLETED},
    AppointmentEvent.ASSIGN_STAFF: {S.PENDING: S.PENDING, S.CONFIRMED: S.CONFIRMED},
}

TERMINAL_STATUSES = frozenset({S.COMPLETED, S.CANCELLED, S.NO_SHOW})


def next_status(current: AppointmentStatus | str, event: AppointmentEvent) -> AppointmentStatus:
    """
    Status reached by applying an event.

    Raises:
        InvalidTransitionException: If the event is not allowed from ``current``
    """
    current = AppointmentStatus(current)
    target = TRANSITIONS[event].get(current)
    if target is None:
        raise InvalidTransitionException(current.value, event.value.replace("_", "-"))
    return target


def can_apply(current: AppointmentStatus | str, event: AppointmentEvent) -> bool:
    return AppointmentStatus(current) in TRANSITIONS[event]


def initial_status(actor: Actor, booking_source: BookingSource | str) -> AppointmentStatus:
    """Walk-ins booked by the business start confirmed; everything else is pending."""
    if actor.is_trusted and BookingSource(booking_source) is BookingSource.WALK_IN:
        return S.CONFIRMED
    return S.PENDING


@dataclass(frozen=True)
class StatusChange:
    """One row of the status history."""

    from_status: AppointmentStatus | None
    to_status: AppointmentStatus
    event: AppointmentEvent
    actor: Actor
    reason: str | None = None

    def as_values(self, appointment_id: UUID, at: datetime) -> dict[str, Any]:
        return {
            "appointment_id": appointment_id,
            "from_status": self.from_status.value if self.from_status else None,
            "to_status": self.to_status.value,
            "event": self.event.value,
            "actor_kind": self.actor.kind.value,
            "actor_id": self.actor.id,
            "reason": self.reason,
            "created_at": at,
        }


@dataclass
class Transition:
    """Column updates and history produced by one event."""

    event: AppointmentEvent
    status: AppointmentStatus
    values: dict[str, Any] = field(default_factory=dict)
    history: list[StatusChange] = field(default_factory=list)


class AppointmentStateMachine:
    """Computes appointment transitions at a fixed point in time."""

    def __init__(self, now: datetime):
        """Initialize state machine with the current time."""
        self.now = now

    def _audit(self, actor: Actor) -> dict[str, Any]:
        return {"updated_at": self.now, **actor.audit("updated_by")}

    def _step(
        self,
        appointment: Mapping[str, Any],
        event: AppointmentEvent,
        actor: Actor,
        reason: str | None = None,
    ) -> Transition:
        current = AppointmentStatus(appointment["status"])
        target = next_status(current, event)
        history = []
        if target is not current:
            history.append(StatusChange(current, target, event, actor, reason))
        return Transition(
            event=event,
            status=target,
            values={"status": target.value, **self._audit(actor)},
            history=history,
        )

    def create(self, actor: Actor, booking_source: BookingSource | str) -> Transition:
        """Initial values for a new appointment."""
        status = initial_status(actor, booking_source)
        values: dict[str, Any] = {
            "status": status.value,
            "created_at": self.now,
            "updated_at": self.now,
            **actor.audit("created_by"),
        }
        if status is S.CONFIRMED:
            values.update(confirmation_sent=True, confirmation_sent_at=self.now)
        return Transition(
            event=AppointmentEvent.CREATE,
            status=status,
            values=values,
            history=[StatusChange(None, status, AppointmentEvent.CREATE, actor)],
        )

    def confirm(self, appointment: Mapping[str, Any], actor: Actor) -> Transition:
        """
        Confirm a pending appointment.

        Confirming an unverified public hold ends its verification window;
        the hold then occupies its slot like any other confirmed booking.
        """
        transition = self._step(appointment, AppointmentEvent.CONFIRM, actor)
        transition.values.update(confirmation_sent=True, confirmation_sent_at=self.now)
        if appointment.get("verification_expires_at") is not None:
            transition.values.update(verification_expires_at=None, verification_code_hash=None)
        return transition

    def start(self, appointment: Mapping[str, Any], actor: Actor) -> Transition:
        transition = self._step(appointment, AppointmentEvent.START, actor)
        transition.values["check_in_time"] = self.now
        return transition

    def complete(
        self,
        appointment: Mapping[str, Any],
        actor: Actor,
        loyalty_points: int = 0,
        mark_paid: bool = False,
    ) -> Transition:
        """
        Complete an in-progress appointment.

        ``actual_duration`` is measured from check-in when there is one, and
        falls back to the booked duration.
        """
        transition = self._step(appointment, AppointmentEvent.COMPLETE, actor)
        check_in = appointment.get("check_in_time")
        if check_in is not None:
            actual = max(int((self.now - check_in).total_seconds() // 60), 0)
        else:
            actual = appointment["duration"]

        transition.values.update(
            check_out_time=self.now,
            completed_at=self.now,
            actual_duration=actual,
            loyalty_points_earned=(appointment.get("loyalty_points_earned") or 0)
            + loyalty_points,
        )
        if mark_paid:
            transition.values.update(
                paid_amount=appointment["total_amount"],
                payment_status=PaymentStatus.PAID.value,
            )
        return transition

    def cancel(
        self,
        appointment: Mapping[str, Any],
        actor: Actor,
        outcome: CancellationOutcome,
        reason: str | None = None,
    ) -> Transition:
        transition = self._step(appointment, AppointmentEvent.CANCEL, actor, reason)
        transition.values.update(
            cancellation_reason=reason,
            cancelled_at=self.now,
            cancellation_fee=outcome.cancellation_fee,
            refund_amount=outcome.refund_amount,
            **actor.audit("cancelled_by"),
        )
        if outcome.refund_amount > 0:
            transition.values["payment_status"] = PaymentStatus.REFUNDED.value
        return transition

    def mark_no_show(
        self,
        appointment: Mapping[str, Any],
        actor: Actor,
        fee: Decimal = Decimal("0"),
        reason: str | None = None,
    ) -> Transition:
        transition = self._step(appointment, AppointmentEvent.NO_SHOW, actor, reason)
        transition.values["no_show_fee"] = fee
        return transition

    def add_review(
        self,
        appointment: Mapping[str, Any],
        actor: Actor,
        rating: int,
        review: str | None = None,
    ) -> Transition:
        if not 1 <= rating <= 5:
            raise ValidationException("Rating must be between 1 and 5")
        transition = self._step(appointment, AppointmentEvent.REVIEW, actor)
        transition.values.update(rating=rating, review=review, review_date=self.now)
        return transition

    def assign_staff(
        self,
        appointment: Mapping[str, Any],
        actor: Actor,
        staff_id: UUID,
    ) -> Transition:
        transition = self._step(appointment, AppointmentEvent.ASSIGN_STAFF, actor)
        transition.values["staff_id"] = staff_id
        return transition

    def reschedule(
        self,
        appointment: Mapping[str, Any],
        actor: Actor,
        new_date: date,
        new_start: time,
        new_end: time,
        staff_id: UUID | None = None,
        reason: str | None = None,
    ) -> Transition:
        """
        Move an appointment to a new slot on the same record.

        The appointment passes through ``rescheduled`` and lands back in its
        prior status; both steps are recorded. The original date and start
        are captured on the first reschedule only.
        """
        current = AppointmentStatus(appointment["status"])
        prior = next_status(current, AppointmentEvent.RESCHEDULE)

        values: dict[str, Any] = {
            "status": prior.value,
            "appointment_date": new_date,
            "start_time": new_start,
            "end_time": new_end,
            "reschedule_count": (appointment.get("reschedule_count") or 0) + 1,
            "reschedule_reason": reason,
            "rescheduled_at": self.now,
            "reminder_sent": False,
            "reminder_sent_at": None,
            **actor.audit("rescheduled_by"),
            **self._audit(actor),
        }
        if appointment.get("original_appointment_date") is None:
            values["original_appointment_date"] = appointment["appointment_date"]
            values["original_start_time"] = appointment["start_time"]
        if staff_id is not None:
            values["staff_id"] = staff_id

        return Transition(
            event=AppointmentEvent.RESCHEDULE,
            status=prior,
            values=values,
            history=[
                StatusChange(current, S.RESCHEDULED, AppointmentEvent.RESCHEDULE, actor, reason),
                StatusChange(S.RESCHEDULED, prior, AppointmentEvent.RESCHEDULE, actor, reason),
            ],
        )
