#!/usr/bin/env python3
"""
Period rollup maintenance.

Weekly and monthly leaderboards need no reset: each period keys its own
rows. This job deletes rows of periods older than the retention window
(PERIOD_RETENTION periods, counting the current one).
"""

import sys
import asyncio
import argparse
import datetime
from typing import Dict, Optional

from academia.common.logger import app_logger
from academia.config import settings
from academia.database.init_db import close_database, get_session_factory, initialize_database
from academia.gamification.repository import GamificationRepository
from academia.gamification.service import GamificationService

logger = app_logger.getChild("scripts.rollup_periods")


async def prune(retain: int, today: Optional[datetime.date] = None) -> Dict[str, int]:
    """Prune old period rows and report how many were removed."""
    await initialize_database(
        database_url=settings.DATABASE_URL,
        echo=settings.SQL_ECHO,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT
    )
    try:
        service = GamificationService(GamificationRepository(get_session_factory()))
        removed = await service.prune_periods(retain, today)
        logger.info(f"Period rollup pruning complete: {removed}")
        return removed
    finally:
        await close_database()


def main() -> None:
    parser = argparse.ArgumentParser(description="Delete weekly/monthly rollup rows outside the retention window")
    parser.add_argument("--retain", type=int, default=settings.PERIOD_RETENTION,
                        help="Number of periods to keep, including the current one")
    args = parser.parse_args()

    try:
        asyncio.run(prune(args.retain))
    except Exception as e:
        logger.error(f"Error pruning period rollups: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
