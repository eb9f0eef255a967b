"""Customers table using SQLAlchemy Core."""

from sqlalchemy import Column, ForeignKey, Index, Table, Text, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID

from app.models.base import metadata

customers = Table(
    "customers",
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
    Column("first_name", Text, nullable=False),
    Column("last_name", Text, nullable=False, server_default=text("''")),
    Column("phone", Text, nullable=False),
    Column("email", Text, nullable=True),
    Column("source", Text, nullable=False, server_default=text("'walk-in'")),
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
    Index("ix_customers_business_phone", "business_id", "phone"),
)
