"""Staff tables using SQLAlchemy Core."""

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    SmallInteger,
    Table,
    Text,
    Time,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID

from app.models.base import metadata

staff = Table(
    "staff",
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
        index=True,
    ),
    Column("name", Text, nullable=False),
    Column("role", Text, nullable=True),
    Column("is_active", Boolean, nullable=False, server_default=text("true")),
    Column(
        "created_at",
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("NOW()"),
    ),
)

# Optional per-weekday override of the business hours
staff_hours = Table(
    "staff_hours",
    metadata,
    Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
    Column(
        "staff_id",
        UUID(as_uuid=True),
        ForeignKey("staff.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("day_of_week", SmallInteger, nullable=False),  # 1=Monday, 7=Sunday
    Column("start_time", Time, nullable=False),
    Column("end_time", Time, nullable=False),
    Column("is_off", Boolean, nullable=False, server_default=text("false")),
    UniqueConstraint("staff_id", "day_of_week", name="unique_day_per_staff"),
)
