"""FastAPI dependencies."""

from typing import Annotated
from uuid import UUID

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.actors import Actor
from app.core.redis_client import CacheManager, get_cache_manager
from app.core.security import InvalidTokenError, actor_from_token
from app.database import get_db
from app.services.events import AppointmentEventPublisher

logger = structlog.get_logger(__name__)

security = HTTPBearer()


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> Actor:
    """
    Resolve the caller from the bearer token.

    Raises:
        HTTPException: 401 if the token is invalid, expired or malformed
    """
    try:
        actor = actor_from_token(credentials.credentials)
    except InvalidTokenError as e:
        logger.info("token_rejected", reason=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    structlog.contextvars.bind_contextvars(actor_id=str(actor.id), actor_kind=actor.kind.value)
    return actor


async def get_business_actor(
    business_id: UUID,
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> Actor:
    """
    Require an actor that operates on the business in the path.

    Raises:
        HTTPException: If the actor is a customer or belongs to another business
    """
    if not actor.can_access(business_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied to this business",
        )
    return actor


def get_event_publisher() -> AppointmentEventPublisher:
    """Event publisher over the shared Redis client."""
    return AppointmentEventPublisher()


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
BusinessActor = Annotated[Actor, Depends(get_business_actor)]
EventPublisher = Annotated[AppointmentEventPublisher, Depends(get_event_publisher)]
Cache = Annotated[CacheManager, Depends(get_cache_manager)]
