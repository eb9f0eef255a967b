"""Per-slot-key advisory locking on PostgreSQL."""

import asyncio
import hashlib
from datetime import date
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import SlotUnavailableException

logger = structlog.get_logger(__name__)


def slot_lock_key(business_id: UUID, staff_id: UUID | None, day: date) -> int:
    """
    Advisory lock key for a (business, staff, date) triple.

    Returns a signed 64-bit integer, the argument type of
    ``pg_try_advisory_xact_lock``.
    """
    raw = f"{business_id}:{staff_id or '-'}:{day.isoformat()}".encode()
    digest = hashlib.blake2b(raw, digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


async def acquire_slot_lock(
    db: AsyncSession,
    business_id: UUID,
    staff_id: UUID | None,
    day: date,
    retries: int | None = None,
    delay_ms: int | None = None,
) -> int:
    """
    Take the transaction-scoped lock for a slot key.

    The lock is released when the surrounding transaction commits or rolls
    back. Acquisition is attempted a bounded number of times and never
    blocks on the server.

    Args:
        db: Session whose transaction will hold the lock
        business_id: Business ID
        staff_id: Staff member, or None for unassigned bookings
        day: Appointment date
        retries: Attempts before giving up (defaults to settings)
        delay_ms: Pause between attempts (defaults to settings)

    Returns:
        The lock key

    Raises:
        SlotUnavailableException: If the lock stays held by another writer
    """
    key = slot_lock_key(business_id, staff_id, day)
    attempts = max(retries if retries is not None else settings.slot_lock_retries, 1)
    delay = (delay_ms if delay_ms is not None else settings.slot_lock_retry_delay_ms) / 1000

    for attempt in range(1, attempts + 1):
        result = await db.execute(select(func.pg_try_advisory_xact_lock(key)))
        if result.scalar():
            return key
        if attempt < attempts:
            await asyncio.sleep(delay * attempt)

    logger.warning(
        "slot_lock_busy",
        business_id=str(business_id),
        staff_id=str(staff_id) if staff_id else None,
        date=day.isoformat(),
        attempts=attempts,
    )
    raise SlotUnavailableException("Slot is being booked by another request, please retry")
