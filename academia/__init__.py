"""
Academia Gamification Service

Scoring engine of the Academia learning platform: XP ledger, levels, daily
streaks, badges and leaderboards behind a FastAPI router.
"""

__version__ = "1.0.0"
