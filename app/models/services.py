"""Bookable services table using SQLAlchemy Core."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Integer,
    Numeric,
    Table,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID

from app.models.base import metadata

services = Table(
    "services",
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
    Column("category", Text, nullable=True),
    Column("duration_minutes", Integer, nullable=False),
    Column("price", Numeric(precision=10, scale=2), nullable=False),
    Column("is_active", Boolean, nullable=False, server_default=text("true")),
    Column("is_available_online", Boolean, nullable=False, server_default=text("true")),
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
    CheckConstraint("duration_minutes > 0", name="duration_positive"),
    CheckConstraint("price >= 0", name="price_non_negative"),
)
