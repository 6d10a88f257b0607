"""
SQLAlchemy ORM tables for the scoring engine.

- point_transactions: append-only ledger, never updated or deleted
- user_aggregates: one row per user, guarded by a version column
- period_aggregates: weekly and monthly rollups, one row per user and period
- badges / earned_badges: catalog and unlocks, unique per (user, badge)
"""

from typing import Any, Dict

from sqlalchemy import (
    CheckConstraint, Column, Date, DateTime, ForeignKey, Index, Integer,
    String, Text, UniqueConstraint
)

from academia.database.base import ModelBase
from academia.gamification.models import (
    Badge, BadgeCriteria, CriterionKind, EarnedBadge, PointTransaction,
    TransactionType, UserAggregate, utcnow
)


class PointTransactionRecord(ModelBase):
    """Ledger row."""
    __tablename__ = "point_transactions"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(255), nullable=False)
    points = Column(Integer, nullable=False)
    type = Column(String(16), nullable=False)
    event_type = Column(String(64), nullable=False)
    source = Column(String(64), nullable=False)
    source_id = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    earned_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("points > 0", name="points_positive"),
        Index("ix_point_transactions_user_earned", "user_id", "earned_at"),
        Index("ix_point_transactions_user_event", "user_id", "event_type"),
    )

    @classmethod
    def from_domain(cls, transaction: PointTransaction) -> 'PointTransactionRecord':
        return cls(
            id=transaction.id,
            user_id=transaction.user_id,
            points=transaction.points,
            type=transaction.type.value,
            event_type=transaction.event_type,
            source=transaction.source,
            source_id=transaction.source_id,
            description=transaction.description,
            earned_at=transaction.earned_at
        )

    def to_domain(self) -> PointTransaction:
        return PointTransaction(
            id=self.id,
            user_id=self.user_id,
            points=self.points,
            type=TransactionType(self.type),
            event_type=self.event_type,
            source=self.source,
            source_id=self.source_id,
            description=self.description,
            earned_at=self.earned_at
        )


class UserAggregateRecord(ModelBase):
    """Aggregate row; written only through a compare-and-set on ``version``."""
    __tablename__ = "user_aggregates"

    user_id = Column(String(255), primary_key=True)
    total_xp = Column(Integer, nullable=False, default=0)
    level = Column(Integer, nullable=False, default=1)
    streak_days = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    last_activity_date = Column(Date, nullable=True)
    badges_count = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_user_aggregates_total_xp", "total_xp"),
    )

    def __repr__(self):
        return (f"<UserAggregateRecord(user_id='{self.user_id}', "
                f"total_xp={self.total_xp}, level={self.level}, version={self.version})>")

    def to_domain(self) -> UserAggregate:
        return UserAggregate(
            user_id=self.user_id,
            total_xp=self.total_xp,
            level=self.level,
            streak_days=self.streak_days,
            longest_streak=self.longest_streak,
            last_activity_date=self.last_activity_date,
            badges_count=self.badges_count,
            version=self.version,
            updated_at=self.updated_at
        )

    @staticmethod
    def values_from_domain(aggregate: UserAggregate) -> Dict[str, Any]:
        """Column values written by a compare-and-set update (version excluded)."""
        return {
            "total_xp": aggregate.total_xp,
            "level": aggregate.level,
            "streak_days": aggregate.streak_days,
            "longest_streak": aggregate.longest_streak,
            "last_activity_date": aggregate.last_activity_date,
            "badges_count": aggregate.badges_count,
            "updated_at": aggregate.updated_at,
        }


class PeriodAggregateRecord(ModelBase):
    """XP earned by a user inside one week or month."""
    __tablename__ = "period_aggregates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False)
    period_type = Column(String(16), nullable=False)
    period_start = Column(Date, nullable=False)
    total_xp = Column(Integer, nullable=False, default=0)
    last_earned_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "period_type", "period_start", name="uq_period_aggregates_user_period"),
        Index("ix_period_aggregates_period_xp", "period_type", "period_start", "total_xp"),
    )


class BadgeRecord(ModelBase):
    """Catalog row."""
    __tablename__ = "badges"

    key = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    points_awarded = Column(Integer, nullable=False, default=0)
    criteria_type = Column(String(16), nullable=False)
    criteria_value = Column(Integer, nullable=False)

    @classmethod
    def from_domain(cls, badge: Badge) -> 'BadgeRecord':
        return cls(
            key=badge.key,
            name=badge.name,
            description=badge.description,
            points_awarded=badge.points_awarded,
            criteria_type=badge.criteria.kind.value,
            criteria_value=badge.criteria.value
        )

    def to_domain(self) -> Badge:
        return Badge(
            key=self.key,
            name=self.name,
            description=self.description,
            points_awarded=self.points_awarded,
            criteria=BadgeCriteria(kind=CriterionKind(self.criteria_type), value=self.criteria_value)
        )


class EarnedBadgeRecord(ModelBase):
    """Unlock row; the unique constraint is what prevents a double award."""
    __tablename__ = "earned_badges"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False)
    badge_key = Column(String(64), ForeignKey("badges.key"), nullable=False)
    earned_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "badge_key", name="uq_earned_badges_user_badge"),
    )

    def to_domain(self) -> EarnedBadge:
        return EarnedBadge(user_id=self.user_id, badge_key=self.badge_key, earned_at=self.earned_at)
