"""
Initialize the booking database schema and optionally seed the catalogue.

Usage:
    export DATABASE_URL="postgresql+asyncpg://localhost:5432/luxe_booking"
    python scripts/init_db.py            # tables only
    python scripts/init_db.py --seed     # tables plus services and staff
"""
import argparse
import asyncio
import logging
import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from luxe_booking.core.db import AsyncSessionLocal, Base, engine
from luxe_booking.seed import seed_initial_data

logger = logging.getLogger("init_db")


async def init_db(seed: bool) -> None:
    """Create all tables, then seed an empty catalogue when asked."""
    logger.info("Initializing database: %s", engine.url.render_as_string(hide_password=True))
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        if seed:
            async with AsyncSessionLocal() as session:
                await seed_initial_data(session)
        logger.info("Database initialized")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--seed", action="store_true", help="insert the default services and staff")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    asyncio.run(init_db(args.seed))
