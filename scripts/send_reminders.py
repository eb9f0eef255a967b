#!/usr/bin/env python3
"""
Emit reminder events for upcoming appointments.

Meant to be run every few minutes by an external scheduler (cron, a
Kubernetes CronJob, ...). Each appointment is reminded once per slot.

Usage:
    python scripts/send_reminders.py
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import structlog  # noqa: E402

from app.core.redis_client import close_redis_connection  # noqa: E402
from app.database import AsyncSessionLocal, engine  # noqa: E402
from app.middleware.logging import configure_logging  # noqa: E402
from app.services.appointment_service import AppointmentService  # noqa: E402

logger = structlog.get_logger(__name__)


async def send_reminders() -> int:
    """Emit due reminders and return how many were sent."""
    async with AsyncSessionLocal() as session:
        service = AppointmentService(session)
        return await service.emit_due_reminders()


async def main() -> int:
    """Run one reminder sweep."""
    configure_logging()
    try:
        sent = await send_reminders()
    except Exception as e:
        logger.error("reminder_sweep_failed", error=str(e))
        return 1
    finally:
        await engine.dispose()
        close_redis_connection()

    logger.info("reminder_sweep_completed", sent=sent)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
