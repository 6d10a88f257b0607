#!/usr/bin/env python3
"""
Database initialization script.

Creates the gamification tables and seeds the badge catalog. Uses the
configured DATABASE_URL unless one is given on the command line.
"""

import sys
import asyncio
import argparse

from academia.common.logger import app_logger
from academia.config import settings
from academia.database.init_db import close_database, create_tables, get_session_factory, initialize_database
from academia.gamification.repository import GamificationRepository
from academia.gamification.service import GamificationService

logger = app_logger.getChild("scripts.init_db")


async def async_main(database_url: str, echo: bool = False) -> None:
    """Initialize the database."""
    try:
        engine = await initialize_database(
            database_url=database_url,
            echo=echo,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT
        )
        await create_tables(engine)

        service = GamificationService(GamificationRepository(get_session_factory()))
        await service.initialize()

        logger.info(f"Database initialized with {len(service.catalog)} badges")
    finally:
        await close_database()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the gamification schema and seed badges")
    parser.add_argument("--database-url", default=settings.DATABASE_URL, help="Database URL")
    parser.add_argument("--echo", action="store_true", help="Echo SQL statements")
    args = parser.parse_args()

    try:
        asyncio.run(async_main(args.database_url, args.echo))
    except Exception as e:
        logger.error(f"Error initializing database: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
