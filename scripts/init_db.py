"""Script to initialize the database, optionally seeding a demo business."""

import argparse
import asyncio
from datetime import time
from decimal import Decimal

from sqlalchemy import insert, text

from app.database import engine
from app.models import business_hours, businesses, metadata, services, staff

DEMO_SLUG = "demo-salon"


async def init_db(seed: bool = False) -> None:
    """Create all tables, and a demo business when ``seed`` is set."""
    async with engine.begin() as conn:
        # Enable pgcrypto extension
        await conn.execute(text('CREATE EXTENSION IF NOT EXISTS "pgcrypto"'))

        # Create all tables
        await conn.run_sync(metadata.create_all)
        print("✓ Database initialized successfully!")

        if not seed:
            return

        existing = await conn.execute(
            text("SELECT id FROM businesses WHERE slug = :slug"), {"slug": DEMO_SLUG}
        )
        if existing.first():
            print(f"• Demo business '{DEMO_SLUG}' already exists, skipping seed")
            return

        result = await conn.execute(
            insert(businesses)
            .values(name="Demo Salon", slug=DEMO_SLUG, tax_percentage=Decimal("18"))
            .returning(businesses.c.id)
        )
        business_id = result.scalar_one()

        # Monday-Saturday 09:00-18:00, closed on Sunday
        await conn.execute(
            insert(business_hours),
            [
                {
                    "business_id": business_id,
                    "day_of_week": day,
                    "open_time": time(9, 0),
                    "close_time": time(18, 0),
                    "is_closed": day == 7,
                }
                for day in range(1, 8)
            ],
        )
        await conn.execute(
            insert(services),
            [
                {
                    "business_id": business_id,
                    "name": "Haircut",
                    "category": "hair",
                    "duration_minutes": 30,
                    "price": Decimal("500.00"),
                },
                {
                    "business_id": business_id,
                    "name": "Facial",
                    "category": "skin",
                    "duration_minutes": 60,
                    "price": Decimal("1200.00"),
                },
            ],
        )
        await conn.execute(
            insert(staff),
            [
                {"business_id": business_id, "name": "Asha", "role": "stylist"},
                {"business_id": business_id, "name": "Ravi", "role": "therapist"},
            ],
        )
        print(f"✓ Seeded demo business '{DEMO_SLUG}' ({business_id})")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--seed", action="store_true", help="create a demo business")
    args = parser.parse_args()
    asyncio.run(init_db(seed=args.seed))
