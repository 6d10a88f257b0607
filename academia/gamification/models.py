"""
Gamification Domain Models

This module defines the core data models of the scoring engine:
1. The point ledger (immutable transactions)
2. The per-user aggregate projected from the ledger
3. The badge catalog and earned badges
4. Leaderboard rows and user statistics

These are plain dataclasses; persistence lives in ``tables.py``.
"""

import enum
import uuid
import datetime
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from academia.common.serialization import SerializableMixin


def utcnow() -> datetime.datetime:
    """Naive UTC timestamp, the convention used by every table."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class TransactionType(enum.Enum):
    """Kinds of ledger entries."""
    EARNED = "earned"
    BONUS = "bonus"


class EventType(enum.Enum):
    """Qualifying actions reported by the learning surfaces."""
    LESSON_COMPLETE = "lesson_complete"
    QUIZ_PASS = "quiz_pass"
    QUIZ_PERFECT = "quiz_perfect"
    COURSE_COMPLETE = "course_complete"
    DAILY_LOGIN = "daily_login"
    CHALLENGE_COMPLETE = "challenge_complete"
    STREAK_BONUS = "streak_bonus"
    BADGE_BONUS = "badge_bonus"

    @property
    def default_points(self) -> Optional[int]:
        """Points awarded when the caller does not give an explicit amount."""
        return {
            EventType.LESSON_COMPLETE: 10,
            EventType.QUIZ_PASS: 25,
            EventType.QUIZ_PERFECT: 20,
            EventType.COURSE_COMPLETE: 100,
            EventType.DAILY_LOGIN: 5,
            EventType.CHALLENGE_COMPLETE: 50,
        }.get(self)


class LeaderboardPeriod(enum.Enum):
    """Scopes a leaderboard can be ranked over."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ALL_TIME = "all_time"


class CriterionKind(enum.Enum):
    """Statistic a badge criterion is measured against."""
    POINTS = "points"
    STREAK = "streak"
    LESSONS = "lessons"
    QUIZZES = "quizzes"
    LEVEL = "level"


class StreakBonusKind(enum.Enum):
    """Streak milestones that pay a bonus."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class PointTransaction(SerializableMixin):
    """
    One immutable entry in the point ledger.

    The ``id`` doubles as the deduplication key: writing a transaction whose
    id already exists is a no-op.
    """

    __serializable_fields__ = [
        "id", "user_id", "points", "type", "event_type", "source",
        "source_id", "description", "earned_at"
    ]

    id: str
    user_id: str
    points: int
    type: TransactionType
    event_type: str
    source: str
    source_id: Optional[str] = None
    description: Optional[str] = None
    earned_at: datetime.datetime = field(default_factory=utcnow)

    @classmethod
    def create(
        cls,
        user_id: str,
        points: int,
        event_type: str,
        source: str,
        source_id: Optional[str] = None,
        description: Optional[str] = None,
        transaction_type: TransactionType = TransactionType.EARNED,
        transaction_id: Optional[str] = None,
        earned_at: Optional[datetime.datetime] = None
    ) -> 'PointTransaction':
        """Build a new transaction, generating an id when none is given."""
        return cls(
            id=transaction_id or str(uuid.uuid4()),
            user_id=user_id,
            points=points,
            type=transaction_type,
            event_type=event_type,
            source=source,
            source_id=source_id,
            description=description,
            earned_at=earned_at or utcnow()
        )


@dataclass
class UserAggregate(SerializableMixin):
    """
    Per-user projection of the ledger.

    ``version`` increments on every successful write and guards the row
    against lost updates.
    """

    __serializable_fields__ = [
        "user_id", "total_xp", "level", "streak_days", "longest_streak",
        "last_activity_date", "badges_count"
    ]

    user_id: str
    total_xp: int = 0
    level: int = 1
    streak_days: int = 0
    longest_streak: int = 0
    last_activity_date: Optional[datetime.date] = None
    badges_count: int = 0
    version: int = 0
    updated_at: datetime.datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class BadgeCriteria:
    """Threshold a statistic must reach for a badge to unlock."""
    kind: CriterionKind
    value: int


@dataclass(frozen=True)
class Badge(SerializableMixin):
    """A catalog entry describing an unlockable achievement."""

    __serializable_fields__ = [
        "key", "name", "description", "points_awarded", "criteria_kind", "criteria_value"
    ]

    key: str
    name: str
    description: str
    points_awarded: int
    criteria: BadgeCriteria

    @property
    def criteria_kind(self) -> CriterionKind:
        return self.criteria.kind

    @property
    def criteria_value(self) -> int:
        return self.criteria.value


@dataclass(frozen=True)
class EarnedBadge(SerializableMixin):
    """A badge a user has unlocked; at most one per (user, badge)."""

    __serializable_fields__ = ["user_id", "badge_key", "earned_at"]

    user_id: str
    badge_key: str
    earned_at: datetime.datetime = field(default_factory=utcnow)


@dataclass
class LeaderboardRow(SerializableMixin):
    """One ranked line of a leaderboard."""

    __serializable_fields__ = ["rank", "user_id", "total_xp", "level", "last_activity"]

    rank: int
    user_id: str
    total_xp: int
    level: int
    last_activity: Optional[datetime.date] = None


@dataclass
class UserStats(SerializableMixin):
    """Statistics badge criteria are evaluated against."""

    __serializable_fields__ = [
        "user_id", "points", "level", "streak", "longest_streak",
        "lessons", "quizzes", "badges", "last_activity_date"
    ]

    user_id: str
    points: int = 0
    level: int = 1
    streak: int = 0
    longest_streak: int = 0
    lessons: int = 0
    quizzes: int = 0
    badges: int = 0
    last_activity_date: Optional[datetime.date] = None


@dataclass
class StreakResult(SerializableMixin):
    """Outcome of registering activity on a given day."""

    __serializable_fields__ = [
        "streak", "longest_streak", "bonus_awarded", "bonus_kind", "bonus_points", "changed"
    ]

    streak: int
    longest_streak: int
    bonus_awarded: bool = False
    bonus_kind: Optional[StreakBonusKind] = None
    bonus_points: int = 0
    changed: bool = True


@dataclass
class AwardResult(SerializableMixin):
    """Everything that happened while awarding one event."""

    __serializable_fields__ = [
        "transaction", "total_xp", "level", "level_up", "streak", "new_badges", "errors"
    ]

    transaction: PointTransaction
    total_xp: int
    level: int
    level_up: bool = False
    streak: Optional[StreakResult] = None
    new_badges: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)
