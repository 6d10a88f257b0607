"""
Gamification Repository

This module provides data persistence for the scoring engine:
1. The append-only point ledger
2. Per-user aggregates, written with a compare-and-set on ``version``
3. Weekly and monthly period rollups
4. The badge catalog and earned badges
5. Leaderboard and rank queries

Every write that touches an aggregate goes through ``commit``, which stores
ledger rows, period rows, an optional earned badge and the new aggregate in a
single database transaction.
"""

import datetime
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Sequence, Set

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from academia.common.error_handling import trace_errors
from academia.common.exceptions import ConflictError
from academia.common.logger import app_logger
from academia.gamification.leaderboard import PeriodKey, assign_ranks, rollup_keys
from academia.gamification.models import (
    Badge, EarnedBadge, LeaderboardPeriod, LeaderboardRow, PointTransaction,
    UserAggregate, utcnow
)
from academia.gamification.tables import (
    BadgeRecord, EarnedBadgeRecord, PeriodAggregateRecord,
    PointTransactionRecord, UserAggregateRecord
)

# Set up module logger
logger = app_logger.getChild("gamification.repository")


@dataclass
class CommitResult:
    """State written by a successful ``commit``."""
    aggregate: UserAggregate
    period_totals: Dict[PeriodKey, int] = field(default_factory=dict)


class GamificationRepository:
    """
    SQL storage for ledger, aggregates, rollups and badges.

    Each public method opens its own session from the factory, so one
    repository can be shared by concurrent requests.
    """

    def __init__(self, session_factory: async_sessionmaker):
        """
        Initialize the gamification repository.

        Args:
            session_factory: Factory producing AsyncSession instances
        """
        self.session_factory = session_factory

    # Aggregates

    @trace_errors("get_aggregate", capture=(SQLAlchemyError,))
    async def get_aggregate(self, user_id: str) -> Optional[UserAggregate]:
        """Get a user's aggregate, or None if the user has never been written."""
        async with self.session_factory() as session:
            record = await session.get(UserAggregateRecord, user_id)
            return record.to_domain() if record else None

    @trace_errors("get_or_create_aggregate", capture=(SQLAlchemyError,))
    async def get_or_create_aggregate(self, user_id: str) -> UserAggregate:
        """
        Get a user's aggregate, creating a zeroed one on first use.

        Two callers creating the same user at once both end up with the row
        the winner inserted.
        """
        aggregate = await self.get_aggregate(user_id)
        if aggregate is not None:
            return aggregate

        now = utcnow()
        async with self.session_factory() as session:
            session.add(UserAggregateRecord(
                user_id=user_id,
                total_xp=0,
                level=1,
                streak_days=0,
                longest_streak=0,
                last_activity_date=None,
                badges_count=0,
                version=0,
                created_at=now,
                updated_at=now
            ))
            try:
                await session.commit()
                logger.debug(f"Created aggregate for user {user_id}")
            except IntegrityError:
                await session.rollback()
                logger.debug(f"Aggregate for user {user_id} created concurrently")

        return await self.get_aggregate(user_id)

    @trace_errors("commit", capture=(SQLAlchemyError,))
    async def commit(
        self,
        current: UserAggregate,
        updated: UserAggregate,
        transactions: Sequence[PointTransaction] = (),
        earned_badge: Optional[EarnedBadge] = None
    ) -> CommitResult:
        """
        Atomically persist new ledger rows and the aggregate they produce.

        Args:
            current: Aggregate as read before computing ``updated``
            updated: Aggregate to store
            transactions: Ledger rows to append
            earned_badge: Badge unlock to record alongside

        Returns:
            CommitResult with the stored aggregate and touched period totals

        Raises:
            ConflictError: If the aggregate changed since ``current`` was read,
                a transaction id already exists, or the badge is already
                earned. Nothing is written in that case.
        """
        user_id = current.user_id
        period_totals: Dict[PeriodKey, int] = {}

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    # Compare-and-set first so concurrent writers of one user queue on the row lock
                    result = await session.execute(
                        update(UserAggregateRecord)
                        .where(
                            UserAggregateRecord.user_id == user_id,
                            UserAggregateRecord.version == current.version
                        )
                        .values(
                            version=current.version + 1,
                            **UserAggregateRecord.values_from_domain(updated)
                        )
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        raise ConflictError("UserAggregate", user_id, current.version)

                    if earned_badge is not None:
                        session.add(EarnedBadgeRecord(
                            user_id=earned_badge.user_id,
                            badge_key=earned_badge.badge_key,
                            earned_at=earned_badge.earned_at
                        ))

                    for transaction in transactions:
                        session.add(PointTransactionRecord.from_domain(transaction))
                    await session.flush()

                    for transaction in transactions:
                        for key in rollup_keys(transaction.earned_at.date()):
                            period_totals[key] = await self._add_to_period(session, transaction, key)

        except IntegrityError as e:
            logger.info(f"Commit for user {user_id} hit a uniqueness violation, retrying with fresh state")
            raise ConflictError("UserAggregate", user_id, current.version) from e

        stored = replace(updated, version=current.version + 1)
        return CommitResult(aggregate=stored, period_totals=period_totals)

    async def _add_to_period(
        self,
        session: AsyncSession,
        transaction: PointTransaction,
        key: PeriodKey
    ) -> int:
        """Add a transaction's points to one period row and return the new total."""
        period, start = key
        record = (await session.execute(
            select(PeriodAggregateRecord).where(
                PeriodAggregateRecord.user_id == transaction.user_id,
                PeriodAggregateRecord.period_type == period.value,
                PeriodAggregateRecord.period_start == start
            )
        )).scalar_one_or_none()

        if record is None:
            record = PeriodAggregateRecord(
                user_id=transaction.user_id,
                period_type=period.value,
                period_start=start,
                total_xp=transaction.points,
                last_earned_at=transaction.earned_at
            )
            session.add(record)
            await session.flush()
        else:
            record.total_xp = record.total_xp + transaction.points
            if record.last_earned_at is None or transaction.earned_at > record.last_earned_at:
                record.last_earned_at = transaction.earned_at

        return record.total_xp

    # Ledger

    @trace_errors("get_transaction", capture=(SQLAlchemyError,))
    async def get_transaction(self, transaction_id: str) -> Optional[PointTransaction]:
        """Get a ledger row by id."""
        async with self.session_factory() as session:
            record = await session.get(PointTransactionRecord, transaction_id)
            return record.to_domain() if record else None

    @trace_errors("list_transactions", capture=(SQLAlchemyError,))
    async def list_transactions(self, user_id: str, limit: int = 10) -> List[PointTransaction]:
        """Get a user's most recent ledger rows, newest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(PointTransactionRecord)
                .where(PointTransactionRecord.user_id == user_id)
                .order_by(PointTransactionRecord.earned_at.desc(), PointTransactionRecord.id.asc())
                .limit(limit)
            )
            return [record.to_domain() for record in result.scalars()]

    @trace_errors("sum_points", capture=(SQLAlchemyError,))
    async def sum_points(self, user_id: str) -> int:
        """Sum of all ledger points of a user."""
        async with self.session_factory() as session:
            total = await session.scalar(
                select(func.coalesce(func.sum(PointTransactionRecord.points), 0))
                .where(PointTransactionRecord.user_id == user_id)
            )
            return int(total or 0)

    @trace_errors("count_events", capture=(SQLAlchemyError,))
    async def count_events(self, user_id: str) -> Dict[str, int]:
        """Number of ledger rows per event type for a user."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(PointTransactionRecord.event_type, func.count())
                .where(PointTransactionRecord.user_id == user_id)
                .group_by(PointTransactionRecord.event_type)
            )
            return {event_type: count for event_type, count in result.all()}

    # Badges

    @trace_errors("save_badges", capture=(SQLAlchemyError,))
    async def save_badges(self, badges: Iterable[Badge]) -> int:
        """Insert or update catalog entries. Returns the number written."""
        count = 0
        async with self.session_factory() as session:
            async with session.begin():
                for badge in badges:
                    await session.merge(BadgeRecord.from_domain(badge))
                    count += 1
        logger.info(f"Saved {count} badge definitions")
        return count

    @trace_errors("list_badges", capture=(SQLAlchemyError,))
    async def list_badges(self) -> List[Badge]:
        """Get the whole catalog ordered by key."""
        async with self.session_factory() as session:
            result = await session.execute(select(BadgeRecord).order_by(BadgeRecord.key))
            return [record.to_domain() for record in result.scalars()]

    @trace_errors("get_earned_badge_keys", capture=(SQLAlchemyError,))
    async def get_earned_badge_keys(self, user_id: str) -> Set[str]:
        """Keys of every badge the user holds."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(EarnedBadgeRecord.badge_key).where(EarnedBadgeRecord.user_id == user_id)
            )
            return set(result.scalars())

    @trace_errors("list_earned_badges", capture=(SQLAlchemyError,))
    async def list_earned_badges(self, user_id: str) -> List[EarnedBadge]:
        """Badges the user holds, oldest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(EarnedBadgeRecord)
                .where(EarnedBadgeRecord.user_id == user_id)
                .order_by(EarnedBadgeRecord.earned_at, EarnedBadgeRecord.badge_key)
            )
            return [record.to_domain() for record in result.scalars()]

    # Leaderboards

    @trace_errors("get_all_time_leaderboard", capture=(SQLAlchemyError,))
    async def get_all_time_leaderboard(self, limit: int) -> List[LeaderboardRow]:
        """
        Rank users by lifetime XP.

        Ties go to the user whose last activity came first, then to the
        lower user id. Users without any XP are not ranked.
        """
        agg = UserAggregateRecord
        async with self.session_factory() as session:
            result = await session.execute(
                select(agg.user_id, agg.total_xp, agg.level, agg.last_activity_date)
                .where(agg.total_xp > 0)
                .order_by(
                    agg.total_xp.desc(),
                    agg.last_activity_date.asc().nulls_last(),
                    agg.user_id.asc()
                )
                .limit(limit)
            )
            return assign_ranks(tuple(row) for row in result.all())

    @trace_errors("get_period_leaderboard", capture=(SQLAlchemyError,))
    async def get_period_leaderboard(
        self,
        period: LeaderboardPeriod,
        start: datetime.date,
        limit: int
    ) -> List[LeaderboardRow]:
        """Rank users by XP earned inside the period beginning at ``start``."""
        per = PeriodAggregateRecord
        agg = UserAggregateRecord
        async with self.session_factory() as session:
            result = await session.execute(
                select(per.user_id, per.total_xp, func.coalesce(agg.level, 1), per.last_earned_at)
                .select_from(per)
                .outerjoin(agg, agg.user_id == per.user_id)
                .where(per.period_type == period.value, per.period_start == start)
                .order_by(per.total_xp.desc(), per.last_earned_at.asc(), per.user_id.asc())
                .limit(limit)
            )
            return assign_ranks(
                (user_id, total_xp, level, last_earned_at.date() if last_earned_at else None)
                for user_id, total_xp, level, last_earned_at in result.all()
            )

    @trace_errors("get_rank", capture=(SQLAlchemyError,))
    async def get_rank(
        self,
        period: LeaderboardPeriod,
        user_id: str,
        start: Optional[datetime.date] = None
    ) -> Optional[int]:
        """
        Compute a user's 1-indexed rank with the same ordering as the boards.

        Returns:
            Rank, or None when the user has no XP on that board
        """
        if period is LeaderboardPeriod.ALL_TIME:
            model = UserAggregateRecord
            tie_column = model.last_activity_date
            board_filter = model.total_xp > 0
        else:
            model = PeriodAggregateRecord
            tie_column = model.last_earned_at
            board_filter = and_(model.period_type == period.value, model.period_start == start)

        async with self.session_factory() as session:
            mine = (await session.execute(
                select(model.total_xp, tie_column).where(board_filter, model.user_id == user_id)
            )).first()
            if mine is None or mine[0] <= 0:
                return None

            total_xp, tie_value = mine
            if tie_value is None:
                tie_ahead = or_(
                    tie_column.isnot(None),
                    and_(tie_column.is_(None), model.user_id < user_id)
                )
            else:
                tie_ahead = or_(
                    tie_column < tie_value,
                    and_(tie_column == tie_value, model.user_id < user_id)
                )

            ahead = await session.scalar(
                select(func.count()).select_from(model).where(
                    board_filter,
                    or_(
                        model.total_xp > total_xp,
                        and_(model.total_xp == total_xp, tie_ahead)
                    )
                )
            )
            return int(ahead) + 1

    @trace_errors("prune_period_aggregates", capture=(SQLAlchemyError,))
    async def prune_period_aggregates(self, period: LeaderboardPeriod, before: datetime.date) -> int:
        """Delete rollup rows of periods that started before ``before``. Returns rows removed."""
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(PeriodAggregateRecord).where(
                        PeriodAggregateRecord.period_type == period.value,
                        PeriodAggregateRecord.period_start < before
                    )
                )
        removed = result.rowcount or 0
        logger.info(f"Pruned {removed} {period.value} rollup rows older than {before.isoformat()}")
        return removed
