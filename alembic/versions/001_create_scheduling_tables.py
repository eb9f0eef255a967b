"""Create scheduling tables.

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column(
        "id", postgresql.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False
    )


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        postgresql.TIMESTAMP(timezone=True),
        server_default=sa.text("NOW()"),
        nullable=False,
    )


def _money(name: str) -> sa.Column:
    return sa.Column(
        name, sa.Numeric(precision=10, scale=2), server_default=sa.text("0"), nullable=False
    )


def _percentage(name: str, default: str) -> sa.Column:
    return sa.Column(
        name, sa.Numeric(precision=5, scale=2), server_default=sa.text(default), nullable=False
    )


def upgrade() -> None:
    """Upgrade database schema."""
    # Enable pgcrypto extension
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    # Businesses
    op.create_table(
        "businesses",
        _id(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("timezone", sa.Text(), server_default="Asia/Kolkata", nullable=False),
        sa.Column("currency", sa.Text(), server_default="INR", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column(
            "allow_online_booking", sa.Boolean(), server_default=sa.text("true"), nullable=False
        ),
        sa.Column("slot_duration", sa.Integer(), server_default=sa.text("30"), nullable=False),
        sa.Column("buffer_time", sa.Integer(), server_default=sa.text("15"), nullable=False),
        sa.Column(
            "advance_booking_days", sa.Integer(), server_default=sa.text("10"), nullable=False
        ),
        sa.Column(
            "min_advance_booking_hours", sa.Integer(), server_default=sa.text("1"), nullable=False
        ),
        sa.Column(
            "max_advance_booking_hours",
            sa.Integer(),
            server_default=sa.text("960"),
            nullable=False,
        ),
        sa.Column("reminder_hours", sa.Integer(), server_default=sa.text("24"), nullable=False),
        _percentage("tax_percentage", "0"),
        sa.Column(
            "allow_cancellation", sa.Boolean(), server_default=sa.text("true"), nullable=False
        ),
        sa.Column(
            "min_cancellation_hours", sa.Integer(), server_default=sa.text("10"), nullable=False
        ),
        _percentage("refund_percentage", "100"),
        _percentage("late_refund_percentage", "0"),
        _percentage("no_show_fee_percentage", "0"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("slot_duration >= 5", name="ck_businesses_slot_duration_min"),
        sa.CheckConstraint("buffer_time >= 0", name="ck_businesses_buffer_time_non_negative"),
        sa.CheckConstraint(
            "refund_percentage BETWEEN 0 AND 100 AND late_refund_percentage BETWEEN 0 AND 100",
            name="ck_businesses_refund_percentage_range",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_businesses"),
        sa.UniqueConstraint("slug", name="uq_businesses_slug"),
    )

    op.create_table(
        "business_hours",
        _id(),
        sa.Column("business_id", postgresql.UUID(), nullable=False),
        sa.Column("day_of_week", sa.SmallInteger(), nullable=False),
        sa.Column("open_time", sa.Time(), nullable=False),
        sa.Column("close_time", sa.Time(), nullable=False),
        sa.Column("is_closed", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.ForeignKeyConstraint(
            ["business_id"],
            ["businesses.id"],
            name="fk_business_hours_business_id",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_business_hours"),
        sa.UniqueConstraint("business_id", "day_of_week", name="unique_day_per_business"),
    )

    op.create_table(
        "business_closures",
        _id(),
        sa.Column("business_id", postgresql.UUID(), nullable=False),
        sa.Column("closed_on", sa.Date(), nullable=False),
        sa.Column("kind", sa.Text(), server_default="day_off", nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.CheckConstraint(
            "kind IN ('day_off', 'holiday')", name="ck_business_closures_closure_kind_check"
        ),
        sa.ForeignKeyConstraint(
            ["business_id"],
            ["businesses.id"],
            name="fk_business_closures_business_id",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_business_closures"),
        sa.UniqueConstraint("business_id", "closed_on", name="unique_closure_per_business"),
    )

    # Services, staff and customers
    op.create_table(
        "services",
        _id(),
        sa.Column("business_id", postgresql.UUID(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("category", sa.Text(), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column(
            "is_available_online", sa.Boolean(), server_default=sa.text("true"), nullable=False
        ),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("duration_minutes > 0", name="ck_services_duration_positive"),
        sa.CheckConstraint("price >= 0", name="ck_services_price_non_negative"),
        sa.ForeignKeyConstraint(
            ["business_id"], ["businesses.id"], name="fk_services_business_id", ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_services"),
    )
    op.create_index("ix_services_business_id", "services", ["business_id"])

    op.create_table(
        "staff",
        _id(),
        sa.Column("business_id", postgresql.UUID(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("role", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(
            ["business_id"], ["businesses.id"], name="fk_staff_business_id", ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_staff"),
    )
    op.create_index("ix_staff_business_id", "staff", ["business_id"])

    op.create_table(
        "staff_hours",
        _id(),
        sa.Column("staff_id", postgresql.UUID(), nullable=False),
        sa.Column("day_of_week", sa.SmallInteger(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("is_off", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.ForeignKeyConstraint(
            ["staff_id"], ["staff.id"], name="fk_staff_hours_staff_id", ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_staff_hours"),
        sa.UniqueConstraint("staff_id", "day_of_week", name="unique_day_per_staff"),
    )

    op.create_table(
        "customers",
        _id(),
        sa.Column("business_id", postgresql.UUID(), nullable=False),
        sa.Column("first_name", sa.Text(), nullable=False),
        sa.Column("last_name", sa.Text(), server_default="", nullable=False),
        sa.Column("phone", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("source", sa.Text(), server_default="walk-in", nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(
            ["business_id"], ["businesses.id"], name="fk_customers_business_id", ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_customers"),
    )
    op.create_index("ix_customers_business_phone", "customers", ["business_id", "phone"])

    # Appointments
    op.create_table(
        "appointments",
        _id(),
        sa.Column("booking_number", sa.Text(), nullable=False),
        sa.Column("business_id", postgresql.UUID(), nullable=False),
        sa.Column("customer_id", postgresql.UUID(), nullable=False),
        sa.Column("service_id", postgresql.UUID(), nullable=False),
        sa.Column("staff_id", postgresql.UUID(), nullable=True),
        sa.Column("appointment_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column("status", sa.Text(), server_default="pending", nullable=False),
        _money("service_price"),
        _money("additional_charges"),
        _money("discount"),
        _money("tax"),
        _money("total_amount"),
        sa.Column("payment_status", sa.Text(), server_default="pending", nullable=False),
        sa.Column("payment_method", sa.Text(), server_default="cash", nullable=False),
        _money("paid_amount"),
        _money("advance_amount"),
        _money("cancellation_fee"),
        _money("refund_amount"),
        _money("no_show_fee"),
        sa.Column("booking_source", sa.Text(), server_default="walk-in", nullable=False),
        sa.Column("customer_notes", sa.Text(), nullable=True),
        sa.Column("special_requests", sa.Text(), nullable=True),
        sa.Column("staff_notes", sa.Text(), nullable=True),
        sa.Column(
            "confirmation_sent", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        sa.Column("confirmation_sent_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("reminder_sent", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("reminder_sent_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("verification_code_hash", sa.Text(), nullable=True),
        sa.Column("verification_expires_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "verification_attempts", sa.SmallInteger(), server_default=sa.text("0"), nullable=False
        ),
        sa.Column("verified_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_by_kind", sa.Text(), nullable=True),
        sa.Column("cancelled_by_id", postgresql.UUID(), nullable=True),
        sa.Column("cancelled_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("original_appointment_date", sa.Date(), nullable=True),
        sa.Column("original_start_time", sa.Time(), nullable=True),
        sa.Column("reschedule_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("reschedule_reason", sa.Text(), nullable=True),
        sa.Column("rescheduled_by_kind", sa.Text(), nullable=True),
        sa.Column("rescheduled_by_id", postgresql.UUID(), nullable=True),
        sa.Column("rescheduled_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("check_in_time", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("check_out_time", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("completed_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("actual_duration", sa.Integer(), nullable=True),
        sa.Column("rating", sa.SmallInteger(), nullable=True),
        sa.Column("review", sa.Text(), nullable=True),
        sa.Column("review_date", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "loyalty_points_earned", sa.Integer(), server_default=sa.text("0"), nullable=False
        ),
        sa.Column("created_by_kind", sa.Text(), nullable=False),
        sa.Column("created_by_id", postgresql.UUID(), nullable=True),
        sa.Column("updated_by_kind", sa.Text(), nullable=True),
        sa.Column("updated_by_id", postgresql.UUID(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'in_progress', 'completed', "
            "'cancelled', 'no_show', 'rescheduled')",
            name="ck_appointments_status_check",
        ),
        sa.CheckConstraint(
            "payment_status IN ('pending', 'partial', 'paid', 'refunded')",
            name="ck_appointments_payment_status_check",
        ),
        sa.CheckConstraint("end_time > start_time", name="ck_appointments_end_after_start"),
        sa.CheckConstraint(
            "paid_amount <= total_amount", name="ck_appointments_paid_within_total"
        ),
        sa.CheckConstraint(
            "rating IS NULL OR rating BETWEEN 1 AND 5", name="ck_appointments_rating_range"
        ),
        sa.CheckConstraint(
            "created_by_kind IN ('customer', 'staff', 'manager', 'admin', 'system')",
            name="ck_appointments_created_by_kind_check",
        ),
        sa.ForeignKeyConstraint(
            ["business_id"],
            ["businesses.id"],
            name="fk_appointments_business_id",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["customer_id"],
            ["customers.id"],
            name="fk_appointments_customer_id",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["service_id"],
            ["services.id"],
            name="fk_appointments_service_id",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["staff_id"], ["staff.id"], name="fk_appointments_staff_id", ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_appointments"),
    )

    # Create indexes
    op.create_index(
        "uq_appointments_booking_number", "appointments", ["booking_number"], unique=True
    )
    op.create_index(
        "ix_appointments_business_date", "appointments", ["business_id", "appointment_date"]
    )
    op.create_index("ix_appointments_business_status", "appointments", ["business_id", "status"])
    op.create_index(
        "ix_appointments_business_customer", "appointments", ["business_id", "customer_id"]
    )
    op.create_index(
        "ix_appointments_staff_date",
        "appointments",
        ["business_id", "staff_id", "appointment_date"],
    )
    op.create_index(
        "uq_appointments_active_slot",
        "appointments",
        ["business_id", "staff_id", "appointment_date", "start_time"],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'confirmed', 'in_progress')"),
    )

    op.create_table(
        "appointment_status_history",
        _id(),
        sa.Column("appointment_id", postgresql.UUID(), nullable=False),
        sa.Column("from_status", sa.Text(), nullable=True),
        sa.Column("to_status", sa.Text(), nullable=False),
        sa.Column("event", sa.Text(), nullable=False),
        sa.Column("actor_kind", sa.Text(), nullable=False),
        sa.Column("actor_id", postgresql.UUID(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.Column("sequence", sa.BigInteger(), sa.Identity(always=False), nullable=False),
        sa.ForeignKeyConstraint(
            ["appointment_id"],
            ["appointments.id"],
            name="fk_appointment_status_history_appointment_id",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_appointment_status_history"),
    )
    op.create_index(
        "ix_appointment_status_history_appointment_id",
        "appointment_status_history",
        ["appointment_id"],
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index(
        "ix_appointment_status_history_appointment_id", table_name="appointment_status_history"
    )
    op.drop_table("appointment_status_history")

    op.drop_index("uq_appointments_active_slot", table_name="appointments")
    op.drop_index("ix_appointments_staff_date", table_name="appointments")
    op.drop_index("ix_appointments_business_customer", table_name="appointments")
    op.drop_index("ix_appointments_business_status", table_name="appointments")
    op.drop_index("ix_appointments_business_date", table_name="appointments")
    op.drop_index("uq_appointments_booking_number", table_name="appointments")
    op.drop_table("appointments")

    op.drop_index("ix_customers_business_phone", table_name="customers")
    op.drop_table("customers")
    op.drop_table("staff_hours")
    op.drop_index("ix_staff_business_id", table_name="staff")
    op.drop_table("staff")
    op.drop_index("ix_services_business_id", table_name="services")
    op.drop_table("services")
    op.drop_table("business_closures")
    op.drop_table("business_hours")
    op.drop_table("businesses")
