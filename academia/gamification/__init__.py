"""
Gamification Package

This package provides the scoring engine of the Academia learning platform:
- An append-only point ledger and per-user aggregates
- Levels computed from total XP
- Daily streaks with milestone bonuses
- Badges unlocked by statistic thresholds
- Weekly, monthly and all-time leaderboards
"""

from academia.common.logger import app_logger
from academia.gamification.service import initialize_gamification_service

# Set up module logger
logger = app_logger.getChild("gamification")


async def initialize_gamification_system() -> None:
    """
    Initialize the gamification system.

    Seeds the badge catalog and builds the shared service. The database must
    already be initialized.
    """
    logger.info("Initializing gamification system...")

    try:
        service = await initialize_gamification_service()
        logger.info(f"Gamification system initialized with {len(service.catalog)} badges")
    except Exception as e:
        logger.error(f"Error initializing gamification system: {e}")
        raise
