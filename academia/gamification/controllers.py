"""
Gamification Controllers Module

This module provides API endpoints for the scoring engine, including:
- Reporting learning events
- Registering daily activity for streaks
- Checking achievements
- Reading leaderboards, statistics, profiles and the badge catalog

The caller is identified by ``get_current_user_id``; engine errors are
translated to HTTP responses by the handlers in ``academia.api``.
"""

import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from academia.common.auth import get_current_user_id
from academia.common.logger import app_logger
from academia.gamification.service import GamificationService, get_gamification_service

# Set up module logger
logger = app_logger.getChild("gamification.controllers")

# Create router
router = APIRouter(prefix="/gamification", tags=["Gamification"])


# Request models
class EventRequest(BaseModel):
    event_type: str = Field(..., min_length=1, description="Kind of action, e.g. lesson_complete")
    source: str = Field(..., min_length=1, description="Surface reporting the action")
    source_id: Optional[str] = Field(None, description="ID of the related lesson, quiz or course")
    description: Optional[str] = Field(None, description="Human readable description")
    points: Optional[int] = Field(None, gt=0, description="Points to award; defaults by event type")
    transaction_id: Optional[str] = Field(None, max_length=64, description="Idempotency key")
    activity_date: Optional[datetime.date] = Field(None, description="Day of the activity for the streak")


class StreakRequest(BaseModel):
    activity_date: Optional[datetime.date] = Field(None, description="Day of the activity")


# Response models
class TransactionResponse(BaseModel):
    id: str = Field(..., description="Transaction ID")
    points: int = Field(..., description="Points earned")
    type: str = Field(..., description="earned or bonus")
    event_type: str = Field(..., description="Kind of action")
    source: str = Field(..., description="Source of the points")
    source_id: Optional[str] = Field(None, description="ID of the related object")
    description: Optional[str] = Field(None, description="Transaction description")
    earned_at: str = Field(..., description="When the points were earned")


class StreakResponse(BaseModel):
    streak: int = Field(..., description="Current streak in days")
    longest_streak: int = Field(..., description="Longest streak ever")
    bonus_awarded: bool = Field(..., description="Whether a milestone bonus was paid")
    bonus_kind: Optional[str] = Field(None, description="weekly or monthly")
    bonus_points: int = Field(..., description="Bonus points paid")
    changed: bool = Field(..., description="False if the day was already counted")


class AwardResponse(BaseModel):
    transaction: TransactionResponse
    total_xp: int = Field(..., description="Total XP after the award")
    level: int = Field(..., description="Level after the award")
    level_up: bool = Field(..., description="Whether the award raised the level")
    streak: Optional[StreakResponse] = Field(None, description="Streak update, if it succeeded")
    new_badges: List[str] = Field(default_factory=list, description="Badges unlocked by the award")
    errors: Dict[str, str] = Field(default_factory=dict, description="Non-critical steps that failed")


class LeaderboardRowResponse(BaseModel):
    rank: int = Field(..., description="Rank on leaderboard")
    user_id: str = Field(..., description="User ID")
    total_xp: int = Field(..., description="XP counted by this leaderboard")
    level: int = Field(..., description="Current level")
    last_activity: Optional[str] = Field(None, description="Day of the last counted activity")


class UserStatsResponse(BaseModel):
    user_id: str
    points: int
    level: int
    streak: int
    longest_streak: int
    lessons: int
    quizzes: int
    badges: int
    last_activity_date: Optional[str] = None


class AchievementsResponse(BaseModel):
    new_badges: List[str] = Field(default_factory=list, description="Badges unlocked by this check")


class EarnedBadgeResponse(BaseModel):
    key: str = Field(..., description="Badge key")
    name: str = Field(..., description="Badge name")
    description: str = Field(..., description="Badge description")
    earned_at: str = Field(..., description="When the badge was earned")


class ProfileResponse(BaseModel):
    stats: UserStatsResponse
    level_progress: Dict[str, Any] = Field(..., description="Progress towards the next level")
    badges: List[EarnedBadgeResponse] = Field(default_factory=list, description="Earned badges")
    recent_transactions: List[TransactionResponse] = Field(default_factory=list, description="Latest ledger entries")
    rank: Optional[int] = Field(None, description="All-time rank, None without XP")


class BadgeResponse(BaseModel):
    key: str = Field(..., description="Badge key")
    name: str = Field(..., description="Badge name")
    description: str = Field(..., description="Badge description")
    points_awarded: int = Field(..., description="Bonus XP paid on unlock")
    criteria_kind: str = Field(..., description="Statistic the badge measures")
    criteria_value: int = Field(..., description="Threshold to reach")


def get_service() -> GamificationService:
    """Dependency returning the shared gamification service."""
    return get_gamification_service()


@router.post("/events", response_model=AwardResponse)
async def record_event(
    request: EventRequest,
    user_id: str = Depends(get_current_user_id),
    service: GamificationService = Depends(get_service)
) -> Dict[str, Any]:
    """
    Award XP for an event, then update the streak and check badges.
    """
    result = await service.award_event(
        user_id=user_id,
        event_type=request.event_type,
        source=request.source,
        source_id=request.source_id,
        description=request.description,
        points=request.points,
        today=request.activity_date,
        transaction_id=request.transaction_id
    )
    return result.to_dict()


@router.post("/streak", response_model=StreakResponse)
async def update_streak(
    request: Optional[StreakRequest] = None,
    user_id: str = Depends(get_current_user_id),
    service: GamificationService = Depends(get_service)
) -> Dict[str, Any]:
    """
    Register today's activity for the current user's streak.
    """
    today = request.activity_date if request else None
    result = await service.update_streak(user_id, today)
    return result.to_dict()


@router.post("/achievements/check", response_model=AchievementsResponse)
async def check_achievements(
    user_id: str = Depends(get_current_user_id),
    service: GamificationService = Depends(get_service)
) -> Dict[str, Any]:
    """
    Unlock any badges the current user newly qualifies for.
    """
    awarded = await service.check_achievements(user_id)
    return {"new_badges": awarded}


@router.get("/leaderboard/{period_type}", response_model=List[LeaderboardRowResponse])
async def get_leaderboard(
    period_type: str,
    limit: int = Query(10, description="Number of rows"),
    service: GamificationService = Depends(get_service)
) -> List[Dict[str, Any]]:
    """
    Get the top of the weekly, monthly or all-time leaderboard.
    """
    rows = await service.get_leaderboard(period_type, limit)
    return [row.to_dict() for row in rows]


@router.get("/stats", response_model=UserStatsResponse)
async def get_user_stats(
    user_id: str = Depends(get_current_user_id),
    service: GamificationService = Depends(get_service)
) -> Dict[str, Any]:
    """
    Get the current user's statistics.
    """
    stats = await service.get_user_stats(user_id)
    return stats.to_dict()


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(
    user_id: str = Depends(get_current_user_id),
    service: GamificationService = Depends(get_service)
) -> Dict[str, Any]:
    """
    Get the current user's profile: stats, level progress, badges, recent activity and rank.
    """
    return await service.get_profile(user_id)


@router.get("/badges", response_model=List[BadgeResponse])
async def list_badges(service: GamificationService = Depends(get_service)) -> List[Dict[str, Any]]:
    """
    Get the badge catalog.
    """
    return [badge.to_dict() for badge in service.catalog]
