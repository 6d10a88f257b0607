"""
Streak calculator.

A streak counts consecutive calendar days with at least one qualifying
activity. Milestones pay a bonus: every 30th day pays the monthly bonus,
otherwise every 7th day pays the weekly bonus. The two never stack.
"""

import uuid
import datetime
import dataclasses
from typing import Optional, Tuple

from academia.gamification.models import (
    EventType, PointTransaction, StreakBonusKind, StreakResult,
    TransactionType, UserAggregate
)

WEEKLY_MILESTONE = 7
MONTHLY_MILESTONE = 30

# Namespace for deterministic bonus transaction ids
STREAK_NAMESPACE = uuid.UUID("6f2b8f5e-3c1d-4e0a-9b7a-2d5c8e1f4a60")


def milestone_for(streak: int) -> Optional[StreakBonusKind]:
    """Return the milestone a streak length hits, if any."""
    if streak <= 0:
        return None
    if streak % MONTHLY_MILESTONE == 0:
        return StreakBonusKind.MONTHLY
    if streak % WEEKLY_MILESTONE == 0:
        return StreakBonusKind.WEEKLY
    return None


def compute_streak(
    aggregate: UserAggregate,
    today: datetime.date,
    weekly_bonus: int = 50,
    monthly_bonus: int = 200
) -> StreakResult:
    """
    Register activity on ``today`` against the aggregate's streak state.

    Args:
        aggregate: Current aggregate
        today: Calendar day of the activity
        weekly_bonus: Points for a weekly milestone
        monthly_bonus: Points for a monthly milestone

    Returns:
        StreakResult; ``changed`` is False when today was already counted
        or lies before the last counted day
    """
    last = aggregate.last_activity_date

    # A day already counted, or one earlier than the last counted day
    if last is not None and today <= last:
        return StreakResult(
            streak=aggregate.streak_days,
            longest_streak=aggregate.longest_streak,
            changed=False
        )

    if last is not None and last == today - datetime.timedelta(days=1):
        streak = aggregate.streak_days + 1
    else:
        # First activity or a gap of more than one day
        streak = 1

    longest = max(aggregate.longest_streak, streak)
    kind = milestone_for(streak)

    bonus_points = 0
    if kind is StreakBonusKind.MONTHLY:
        bonus_points = monthly_bonus
    elif kind is StreakBonusKind.WEEKLY:
        bonus_points = weekly_bonus

    return StreakResult(
        streak=streak,
        longest_streak=longest,
        bonus_awarded=bonus_points > 0,
        bonus_kind=kind if bonus_points > 0 else None,
        bonus_points=bonus_points
    )


def apply_streak(
    aggregate: UserAggregate,
    result: StreakResult,
    today: datetime.date
) -> UserAggregate:
    """Copy streak counters from a result onto a new aggregate."""
    if not result.changed:
        return aggregate
    return dataclasses.replace(
        aggregate,
        streak_days=result.streak,
        longest_streak=result.longest_streak,
        last_activity_date=today
    )


def streak_bonus_transaction(
    user_id: str,
    result: StreakResult,
    today: datetime.date
) -> Optional[PointTransaction]:
    """
    Build the bonus ledger entry for a milestone, if the result earned one.

    The id is derived from the user, the day and the milestone, so replaying
    the same day can never write a second bonus.
    """
    if not result.bonus_awarded:
        return None

    kind = result.bonus_kind.value
    return PointTransaction.create(
        user_id=user_id,
        points=result.bonus_points,
        event_type=EventType.STREAK_BONUS.value,
        source="streak",
        source_id=f"{kind}:{result.streak}",
        description=f"{result.streak}-day streak ({kind} bonus)",
        transaction_type=TransactionType.BONUS,
        transaction_id=str(uuid.uuid5(STREAK_NAMESPACE, f"{user_id}:{today.isoformat()}:{kind}"))
    )


def streak_update(
    aggregate: UserAggregate,
    today: datetime.date,
    weekly_bonus: int = 50,
    monthly_bonus: int = 200
) -> Tuple[StreakResult, UserAggregate, Optional[PointTransaction]]:
    """Compute the streak result, the updated aggregate and the bonus entry in one go."""
    result = compute_streak(aggregate, today, weekly_bonus, monthly_bonus)
    updated = apply_streak(aggregate, result, today)
    bonus = streak_bonus_transaction(aggregate.user_id, result, today)
    return result, updated, bonus
