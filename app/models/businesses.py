"""Business schedule configuration tables using SQLAlchemy Core.

These rows belong to the Business collaborator; the scheduling core only reads
them.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    SmallInteger,
    Table,
    Text,
    Time,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID

from app.models.base import metadata

# Businesses table
businesses = Table(
    "businesses",
    metadata,
    Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
    Column("name", Text, nullable=False),
    Column("slug", Text, nullable=False, unique=True),
    Column("description", Text, nullable=True),
    Column("phone", Text, nullable=True),
    Column("email", Text, nullable=True),
    Column("address", Text, nullable=True),
    Column("timezone", Text, nullable=False, server_default=text("'Asia/Kolkata'")),
    Column("currency", Text, nullable=False, server_default=text("'INR'")),
    Column("is_active", Boolean, nullable=False, server_default=text("true")),
    # Appointment settings
    Column("allow_online_booking", Boolean, nullable=False, server_default=text("true")),
    Column("slot_duration", Integer, nullable=False, server_default=text("30")),
    Column("buffer_time", Integer, nullable=False, server_default=text("15")),
    Column("advance_booking_days", Integer, nullable=False, server_default=text("10")),
    Column("min_advance_booking_hours", Integer, nullable=False, server_default=text("1")),
    Column("max_advance_booking_hours", Integer, nullable=False, server_default=text("960")),
    Column("reminder_hours", Integer, nullable=False, server_default=text("24")),
    Column(
        "tax_percentage",
        Numeric(precision=5, scale=2),
        nullable=False,
        server_default=text("0"),
    ),
    # Cancellation policy
    Column("allow_cancellation", Boolean, nullable=False, server_default=text("true")),
    Column("min_cancellation_hours", Integer, nullable=False, server_default=text("10")),
    Column(
        "refund_percentage",
        Numeric(precision=5, scale=2),
        nullable=False,
        server_default=text("100"),
    ),
    Column(
        "late_refund_percentage",
        Numeric(precision=5, scale=2),
        nullable=False,
        server_default=text("0"),
    ),
    Column(
        "no_show_fee_percentage",
        Numeric(precision=5, scale=2),
        nullable=False,
        server_default=text("0"),
    ),
    Column(
        "created_at",
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("NOW()"),
    ),
    Column(
        "updated_at",
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("NOW()"),
    ),
    CheckConstraint("slot_duration >= 5", name="slot_duration_min"),
    CheckConstraint("buffer_time >= 0", name="buffer_time_non_negative"),
    CheckConstraint(
        "refund_percentage BETWEEN 0 AND 100 AND late_refund_percentage BETWEEN 0 AND 100",
        name="refund_percentage_range",
    ),
)

# Weekly opening hours
business_hours = Table(
    "business_hours",
    metadata,
    Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
    Column(
        "business_id",
        UUID(as_uuid=True),
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("day_of_week", SmallInteger, nullable=False),  # 1=Monday, 7=Sunday
    Column("open_time", Time, nullable=False),
    Column("close_time", Time, nullable=False),
    Column("is_closed", Boolean, nullable=False, server_default=text("false")),
    UniqueConstraint("business_id", "day_of_week", name="unique_day_per_business"),
)

# Days off and holidays
business_closures = Table(
    "business_closures",
    metadata,
    Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
    Column(
        "business_id",
        UUID(as_uuid=True),
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("closed_on", Date, nullable=False),
    Column("kind", Text, nullable=False, server_default=text("'day_off'")),
    Column("name", Text, nullable=True),
    Column("reason", Text, nullable=True),
    UniqueConstraint("business_id", "closed_on", name="unique_closure_per_business"),
    CheckConstraint("kind IN ('day_off', 'holiday')", name="closure_kind_check"),
)
