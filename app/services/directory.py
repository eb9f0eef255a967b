"""Read access to the service, staff and customer collaborator tables."""

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, func, insert, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundException, PolicyViolationException
from app.models.customers import customers
from app.models.services import services
from app.models.staff import staff

logger = structlog.get_logger(__name__)


def phone_digits(phone: str) -> str:
    return "".join(ch for ch in phone if ch.isdigit())


def normalize_phone(phone: str) -> str:
    """Strip separators, keeping a leading ``+``."""
    digits = phone_digits(phone)
    return f"+{digits}" if phone.strip().startswith("+") else digits


class DirectoryService:
    """Lookups of the records a booking references."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def get_service(
        self,
        business_id: UUID,
        service_id: UUID,
        online_only: bool = False,
    ) -> dict[str, Any]:
        """
        Get an active service of a business.

        Args:
            business_id: Owning business
            service_id: Service ID
            online_only: Require the service to be bookable online

        Returns:
            Service row

        Raises:
            NotFoundException: If service not found or inactive
            PolicyViolationException: If the service cannot be booked online
        """
        stmt = select(services).where(
            and_(
                services.c.id == service_id,
                services.c.business_id == business_id,
                services.c.is_active.is_(True),
            )
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Service not found")
        if online_only and not row["is_available_online"]:
            raise PolicyViolationException("Service is not available for online booking")
        return dict(row)

    async def get_staff(self, business_id: UUID, staff_id: UUID) -> dict[str, Any]:
        """
        Get an active staff member of a business.

        Raises:
            NotFoundException: If staff member not found or inactive
        """
        stmt = select(staff).where(
            and_(
                staff.c.id == staff_id,
                staff.c.business_id == business_id,
                staff.c.is_active.is_(True),
            )
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Staff member not found")
        return dict(row)

    async def get_customer(self, business_id: UUID, customer_id: UUID) -> dict[str, Any]:
        """
        Get a customer of a business.

        Raises:
            NotFoundException: If customer not found
        """
        stmt = select(customers).where(
            and_(customers.c.id == customer_id, customers.c.business_id == business_id)
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Customer not found")
        return dict(row)

    async def find_or_create_customer(
        self,
        business_id: UUID,
        name: str,
        phone: str,
        email: str | None = None,
    ) -> dict[str, Any]:
        """
        Find a customer by phone or email, creating one when none matches.

        Phones match on their digits, so separators and spacing typed by the
        customer do not create duplicates. New customers are stored with a
        normalized phone.

        The caller owns the transaction; nothing is committed here.
        """
        match = func.regexp_replace(customers.c.phone, r"\D", "", "g") == phone_digits(phone)
        if email:
            match = or_(match, customers.c.email == email)

        stmt = (
            select(customers)
            .where(and_(customers.c.business_id == business_id, match))
            .order_by(customers.c.created_at)
            .limit(1)
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        if row:
            return dict(row)

        first_name, _, last_name = name.strip().partition(" ")
        stmt = (
            insert(customers)
            .values(
                business_id=business_id,
                first_name=first_name,
                last_name=last_name.strip(),
                phone=normalize_phone(phone),
                email=email,
                source="online",
            )
            .returning(customers)
        )
        result = await self.db.execute(stmt)
        created = dict(result.mappings().one())
        logger.info(
            "customer_created",
            business_id=str(business_id),
            customer_id=str(created["id"]),
        )
        return created

    async def list_public_services(self, business_id: UUID) -> list[dict[str, Any]]:
        """List services a customer can book online."""
        stmt = (
            select(services)
            .where(
                and_(
                    services.c.business_id == business_id,
                    services.c.is_active.is_(True),
                    services.c.is_available_online.is_(True),
                )
            )
            .order_by(services.c.name)
        )
        result = await self.db.execute(stmt)
        return [dict(row) for row in result.mappings().all()]

    async def list_active_staff(self, business_id: UUID) -> list[dict[str, Any]]:
        """List active staff members of a business."""
        stmt = (
            select(staff)
            .where(and_(staff.c.business_id == business_id, staff.c.is_active.is_(True)))
            .order_by(staff.c.name)
        )
        result = await self.db.execute(stmt)
        return [dict(row) for row in result.mappings().all()]
