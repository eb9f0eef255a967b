"""Appointments table model using SQLAlchemy Core."""

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    ForeignKey,
    Identity,
    Index,
    Integer,
    Numeric,
    SmallInteger,
    Table,
    Text,
    Time,
    text,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID

from app.models.base import metadata

# Statuses that occupy a slot
ACTIVE_STATUSES = ("pending", "confirmed", "in_progress")

_ACTIVE_STATUS_SQL = ", ".join(f"'{s}'" for s in ACTIVE_STATUSES)
_ACTOR_KINDS_SQL = "'customer', 'staff', 'manager', 'admin', 'system'"


def _money(name: str, nullable: bool = False) -> Column:
    return Column(
        name,
        Numeric(precision=10, scale=2),
        nullable=nullable,
        server_default=None if nullable else text("0"),
    )


# Appointments table
appointments = Table(
    "appointments",
    metadata,
    Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
    Column("booking_number", Text, nullable=False),
    # Ownership / references
    Column(
        "business_id",
        UUID(as_uuid=True),
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "customer_id",
        UUID(as_uuid=True),
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    Column(
        "service_id",
        UUID(as_uuid=True),
        ForeignKey("services.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    Column(
        "staff_id",
        UUID(as_uuid=True),
        ForeignKey("staff.id", ondelete="SET NULL"),
        nullable=True,
    ),
    # Date & time (wall clock in the business timezone)
    Column("appointment_date", Date, nullable=False),
    Column("start_time", Time, nullable=False),
    Column("end_time", Time, nullable=False),
    Column("duration", Integer, nullable=False),
    # Status management
    Column("status", Text, nullable=False, server_default=text("'pending'")),
    # Pricing
    _money("service_price"),
    _money("additional_charges"),
    _money("discount"),
    _money("tax"),
    _money("total_amount"),
    # Payment
    Column("payment_status", Text, nullable=False, server_default=text("'pending'")),
    Column("payment_method", Text, nullable=False, server_default=text("'cash'")),
    _money("paid_amount"),
    _money("advance_amount"),
    _money("cancellation_fee"),
    _money("refund_amount"),
    _money("no_show_fee"),
    # Booking details
    Column("booking_source", Text, nullable=False, server_default=text("'walk-in'")),
    Column("customer_notes", Text, nullable=True),
    Column("special_requests", Text, nullable=True),
    Column("staff_notes", Text, nullable=True),
    # Confirmation and reminders
    Column("confirmation_sent", Boolean, nullable=False, server_default=text("false")),
    Column("confirmation_sent_at", TIMESTAMP(timezone=True), nullable=True),
    Column("reminder_sent", Boolean, nullable=False, server_default=text("false")),
    Column("reminder_sent_at", TIMESTAMP(timezone=True), nullable=True),
    # Public booking verification hold
    Column("verification_code_hash", Text, nullable=True),
    Column("verification_expires_at", TIMESTAMP(timezone=True), nullable=True),
    Column("verification_attempts", SmallInteger, nullable=False, server_default=text("0")),
    Column("verified_at", TIMESTAMP(timezone=True), nullable=True),
    # Cancellation
    Column("cancellation_reason", Text, nullable=True),
    Column("cancelled_by_kind", Text, nullable=True),
    Column("cancelled_by_id", UUID(as_uuid=True), nullable=True),
    Column("cancelled_at", TIMESTAMP(timezone=True), nullable=True),
    # Rescheduling lineage
    Column("original_appointment_date", Date, nullable=True),
    Column("original_start_time", Time, nullable=True),
    Column("reschedule_count", Integer, nullable=False, server_default=text("0")),
    Column("reschedule_reason", Text, nullable=True),
    Column("rescheduled_by_kind", Text, nullable=True),
    Column("rescheduled_by_id", UUID(as_uuid=True), nullable=True),
    Column("rescheduled_at", TIMESTAMP(timezone=True), nullable=True),
    # Service delivery
    Column("check_in_time", TIMESTAMP(timezone=True), nullable=True),
    Column("check_out_time", TIMESTAMP(timezone=True), nullable=True),
    Column("completed_at", TIMESTAMP(timezone=True), nullable=True),
    Column("actual_duration", Integer, nullable=True),
    # Feedback
    Column("rating", SmallInteger, nullable=True),
    Column("review", Text, nullable=True),
    Column("review_date", TIMESTAMP(timezone=True), nullable=True),
    # Loyalty
    Column("loyalty_points_earned", Integer, nullable=False, server_default=text("0")),
    # Audit fields
    Column("created_by_kind", Text, nullable=False),
    Column("created_by_id", UUID(as_uuid=True), nullable=True),
    Column("updated_by_kind", Text, nullable=True),
    Column("updated_by_id", UUID(as_uuid=True), nullable=True),
    Column("created_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("updated_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    # Constraints
    CheckConstraint(
        "status IN ('pending', 'confirmed', 'in_progress', 'completed', "
        "'cancelled', 'no_show', 'rescheduled')",
        name="status_check",
    ),
    CheckConstraint(
        "payment_status IN ('pending', 'partial', 'paid', 'refunded')",
        name="payment_status_check",
    ),
    CheckConstraint("end_time > start_time", name="end_after_start"),
    CheckConstraint("paid_amount <= total_amount", name="paid_within_total"),
    CheckConstraint("rating IS NULL OR rating BETWEEN 1 AND 5", name="rating_range"),
    CheckConstraint(f"created_by_kind IN ({_ACTOR_KINDS_SQL})", name="created_by_kind_check"),
    Index("uq_appointments_booking_number", "booking_number", unique=True),
    Index("ix_appointments_business_date", "business_id", "appointment_date"),
    Index("ix_appointments_business_status", "business_id", "status"),
    Index("ix_appointments_business_customer", "business_id", "customer_id"),
    Index("ix_appointments_staff_date", "business_id", "staff_id", "appointment_date"),
    # Storage-level guard against double booking: one active reservation per
    # (business, staff, date, start). NULL staff never collides.
    Index(
        "uq_appointments_active_slot",
        "business_id",
        "staff_id",
        "appointment_date",
        "start_time",
        unique=True,
        postgresql_where=text(f"status IN ({_ACTIVE_STATUS_SQL})"),
    ),
)

# Realized status transitions, one row per step
appointment_status_history = Table(
    "appointment_status_history",
    metadata,
    Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
    Column(
        "appointment_id",
        UUID(as_uuid=True),
        ForeignKey("appointments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("from_status", Text, nullable=True),
    Column("to_status", Text, nullable=False),
    Column("event", Text, nullable=False),
    Column("actor_kind", Text, nullable=False),
    Column("actor_id", UUID(as_uuid=True), nullable=True),
    Column("reason", Text, nullable=True),
    Column("created_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    # Insertion order; steps recorded in one transaction share created_at
    Column("sequence", BigInteger, Identity(), nullable=False),
)

UNIQUE_SLOT_INDEX = "uq_appointments_active_slot"
UNIQUE_BOOKING_NUMBER_INDEX = "uq_appointments_booking_number"
