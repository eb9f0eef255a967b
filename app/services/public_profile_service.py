"""Display-only business profile for the public booking page."""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import PolicyViolationException
from app.core.redis_client import CacheManager
from app.models.businesses import business_hours
from app.schemas.public_booking import (
    PublicBusinessResponse,
    PublicHoursResponse,
    PublicServiceResponse,
    PublicStaffResponse,
)
from app.services.directory import DirectoryService
from app.services.schedule_config import ScheduleConfigResolver

logger = structlog.get_logger(__name__)


def profile_cache_key(slug: str) -> str:
    return f"public:business:{slug}"


class PublicProfileService:
    """
    Read-through cache over the public business profile.

    Only display data goes through the cache; availability and conflict
    checks always read the database.
    """

    def __init__(self, db: AsyncSession, cache: CacheManager | None = None):
        """Initialize service with database session and optional cache."""
        self.db = db
        self.cache = cache
        self.resolver = ScheduleConfigResolver(db)
        self.directory = DirectoryService(db)

    async def get_profile(self, slug: str) -> PublicBusinessResponse:
        """
        Get the public profile of a business.

        Raises:
            NotFoundException: If business not found or inactive
            PolicyViolationException: If the business does not take online bookings
        """
        key = profile_cache_key(slug)
        if self.cache is not None:
            cached = self.cache.get_json(key)
            if cached is not None:
                profile = PublicBusinessResponse.model_validate(cached)
                if not profile.allow_online_booking:
                    raise PolicyViolationException(
                        "Online booking is not available for this business"
                    )
                return profile

        business = await self.resolver.get_business_by_slug(slug)
        hours_result = await self.db.execute(
            select(business_hours)
            .where(business_hours.c.business_id == business["id"])
            .order_by(business_hours.c.day_of_week)
        )
        services = await self.directory.list_public_services(business["id"])
        staff = await self.directory.list_active_staff(business["id"])

        profile = PublicBusinessResponse(
            **{field: business[field] for field in _PROFILE_FIELDS},
            hours=[
                PublicHoursResponse.model_validate(dict(row))
                for row in hours_result.mappings().all()
            ],
            services=[PublicServiceResponse.model_validate(row) for row in services],
            staff=[PublicStaffResponse.model_validate(row) for row in staff],
        )

        if self.cache is not None:
            self.cache.set_json(
                key,
                profile.model_dump(mode="json"),
                ttl=settings.public_business_cache_ttl,
            )
            logger.debug("public_profile_cached", slug=slug)

        if not profile.allow_online_booking:
            raise PolicyViolationException("Online booking is not available for this business")
        return profile

    def invalidate(self, slug: str) -> bool:
        """Drop the cached profile of a business."""
        if self.cache is None:
            return False
        return self.cache.delete(profile_cache_key(slug))


_PROFILE_FIELDS = (
    "id",
    "name",
    "slug",
    "description",
    "phone",
    "email",
    "address",
    "timezone",
    "currency",
    "allow_online_booking",
    "advance_booking_days",
    "allow_cancellation",
    "min_cancellation_hours",
)
