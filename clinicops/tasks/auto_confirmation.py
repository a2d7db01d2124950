"""Scheduled task confirming matured pending appointments.

Runs a single auto-confirmation pass and exits.

Usage:
    # Run directly
    python -m clinicops.tasks.auto_confirmation

    # Or via cron (recommended every 10 minutes)
    */10 * * * * cd /path/to/project && python -m clinicops.tasks.auto_confirmation

    # Environment variables:
    DATABASE_URL - database connection string
    AUTO_CONFIRM_MATURATION_MINUTES - age before a pending appointment is confirmed (120)
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from clinicops.core.config import settings
from clinicops.core.logging import setup_logging
from clinicops.services.auto_confirmation import AutoConfirmationScheduler

logger = logging.getLogger(__name__)


async def run_auto_confirmation_task(
    database_url: str | None = None,
    maturation_minutes: int | None = None,
) -> dict:
    """Run one auto-confirmation pass.

    Args:
        database_url: Database connection string. Defaults to settings.
        maturation_minutes: Override for the maturation window

    Returns:
        Tick summary
    """
    db_url = database_url or settings.database_url

    # Convert sync URL to async if needed
    if db_url.startswith("postgresql://"):
        db_url = db_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    logger.info(f"Starting auto-confirmation task at {datetime.now().isoformat()}")

    engine = create_async_engine(db_url, echo=False)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        scheduler = AutoConfirmationScheduler(
            session_factory,
            maturation=timedelta(minutes=maturation_minutes) if maturation_minutes else None,
        )
        result = await scheduler.tick()
        return result.as_dict()
    finally:
        await engine.dispose()


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Auto-confirm matured pending appointments")
    parser.add_argument(
        "--database-url",
        default=None,
        help="Database URL (overrides DATABASE_URL env var)",
    )
    parser.add_argument(
        "--maturation-minutes",
        type=int,
        default=None,
        help="Minutes an appointment must stay pending before auto-confirmation",
    )
    args = parser.parse_args()

    setup_logging()

    try:
        results = asyncio.run(
            run_auto_confirmation_task(
                database_url=args.database_url,
                maturation_minutes=args.maturation_minutes,
            )
        )
        print(f"Job completed successfully: {results}")
        sys.exit(0)
    except Exception as e:
        logger.exception(f"Job failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
