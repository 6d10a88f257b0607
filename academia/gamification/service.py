"""
Gamification Service Module

This module provides the core service layer of the scoring engine:
1. Recording events into the point ledger
2. Daily streaks and milestone bonuses
3. Badge evaluation and awards
4. Leaderboards, ranks and user statistics

Every write reads the user's aggregate, computes the new state with the pure
functions of this package and hands both to ``GamificationRepository.commit``.
A concurrent writer makes the commit fail with ConflictError; the attempt is
then repeated from a fresh read.
"""

import datetime
import dataclasses
from typing import Any, Dict, List, Optional, Sequence, Tuple

from academia.common.error_handling import retry_call
from academia.common.exceptions import ConflictError, NotFoundError, ValidationError
from academia.common.logger import app_logger, log_execution_time, with_context
from academia.gamification.aggregation import apply_transaction, apply_transactions
from academia.gamification.badges import badge_bonus_transaction, evaluate_badges, get_default_badges
from academia.gamification.leaderboard import LeaderboardMirror, parse_period, period_start, previous_period_start
from academia.gamification.levels import LEVEL_THRESHOLDS, level_progress
from academia.gamification.models import (
    AwardResult, Badge, EarnedBadge, EventType, LeaderboardPeriod,
    LeaderboardRow, PointTransaction, StreakResult, UserAggregate, UserStats,
    utcnow
)
from academia.gamification.repository import CommitResult, GamificationRepository
from academia.gamification.streaks import streak_update

# Set up module logger
logger = app_logger.getChild("gamification.service")


# Column widths of the ledger table
KEY_MAX_LENGTH = 64
ID_MAX_LENGTH = 255


def _require_text(errors: Dict[str, str], name: str, value: Any, max_length: int) -> None:
    if not isinstance(value, str) or not value.strip():
        errors[name] = "required"
    elif len(value) > max_length:
        errors[name] = f"must be at most {max_length} characters"


def _check_optional_text(errors: Dict[str, str], name: str, value: Any, max_length: int) -> None:
    if value is not None:
        _require_text(errors, name, value, max_length)


class GamificationService:
    """
    Service for the scoring engine.

    This class provides methods for recording XP, maintaining streaks,
    unlocking badges and reading leaderboards and statistics.
    """

    def __init__(
        self,
        repository: GamificationRepository,
        mirror: Optional[LeaderboardMirror] = None,
        thresholds: Sequence[int] = LEVEL_THRESHOLDS,
        weekly_bonus: int = 50,
        monthly_bonus: int = 200,
        max_retries: int = 5,
        max_leaderboard_limit: int = 100
    ):
        """
        Initialize the gamification service.

        Args:
            repository: Storage for ledger, aggregates and badges
            mirror: Optional Redis leaderboard mirror
            thresholds: Level thresholds
            weekly_bonus: Points for every 7th streak day
            monthly_bonus: Points for every 30th streak day
            max_retries: Retries after a ConflictError before giving up
            max_leaderboard_limit: Largest leaderboard page
        """
        self.repository = repository
        self.mirror = mirror
        self.thresholds = tuple(thresholds)
        self.weekly_bonus = weekly_bonus
        self.monthly_bonus = monthly_bonus
        self.max_retries = max_retries
        self.max_leaderboard_limit = max_leaderboard_limit
        self._catalog: Dict[str, Badge] = {}

    async def initialize(self, catalog: Optional[Sequence[Badge]] = None) -> None:
        """
        Store the badge catalog and load it into memory.

        Args:
            catalog: Badges to seed, defaults to the built-in catalog
        """
        badges = list(catalog) if catalog is not None else get_default_badges()
        await self.repository.save_badges(badges)
        self._catalog = {badge.key: badge for badge in await self.repository.list_badges()}
        logger.info(f"Loaded {len(self._catalog)} badge definitions")

    @property
    def catalog(self) -> List[Badge]:
        """Badges of the loaded catalog."""
        return list(self._catalog.values())

    async def _with_retries(self, func, *args, **kwargs):
        return await retry_call(
            func,
            *args,
            max_retries=self.max_retries,
            retry_exceptions=(ConflictError,),
            **kwargs
        )

    async def _publish(self, result: CommitResult) -> None:
        """Copy committed scores to the leaderboard mirror."""
        if self.mirror is None:
            return
        aggregate = result.aggregate
        await self.mirror.publish(aggregate.user_id, aggregate.total_xp, result.period_totals)

    # Ledger

    async def record_event(
        self,
        user_id: str,
        event_type: str,
        points: int,
        source: str,
        source_id: Optional[str] = None,
        description: Optional[str] = None,
        transaction_id: Optional[str] = None
    ) -> PointTransaction:
        """
        Append a transaction to the ledger and apply it to the user's aggregate.

        Args:
            user_id: User identifier
            event_type: Kind of action that earned the points
            points: Points earned, a positive integer
            source: Surface that reported the action
            source_id: Optional id of the related object (lesson, quiz, ...)
            description: Optional human readable description
            transaction_id: Optional caller-chosen id; replays with the same
                id return the stored transaction without applying it again

        Returns:
            The stored transaction

        Raises:
            ValidationError: If an argument is missing or points is not positive
            StorageError: If the ledger could not be written
        """
        transaction, _, _ = await self._record(
            user_id, event_type, points, source, source_id, description, transaction_id
        )
        return transaction

    async def _record(
        self,
        user_id: str,
        event_type: str,
        points: Any,
        source: str,
        source_id: Optional[str],
        description: Optional[str],
        transaction_id: Optional[str]
    ) -> Tuple[PointTransaction, UserAggregate, UserAggregate]:
        """Record an event and return it with the aggregate before and after."""
        errors: Dict[str, str] = {}
        _require_text(errors, "user_id", user_id, ID_MAX_LENGTH)
        _require_text(errors, "event_type", event_type, KEY_MAX_LENGTH)
        _require_text(errors, "source", source, KEY_MAX_LENGTH)
        _check_optional_text(errors, "source_id", source_id, ID_MAX_LENGTH)
        _check_optional_text(errors, "transaction_id", transaction_id, KEY_MAX_LENGTH)
        if isinstance(points, bool) or not isinstance(points, int):
            errors["points"] = "must be an integer"
        elif points <= 0:
            errors["points"] = "must be greater than zero"
        if errors:
            raise ValidationError("invalid event", errors)

        transaction = PointTransaction.create(
            user_id=user_id,
            points=points,
            event_type=event_type,
            source=source,
            source_id=source_id,
            description=description,
            transaction_id=transaction_id
        )
        return await self._with_retries(self._record_once, transaction, transaction_id is not None)

    async def _record_once(
        self,
        transaction: PointTransaction,
        check_duplicate: bool
    ) -> Tuple[PointTransaction, UserAggregate, UserAggregate]:
        if check_duplicate:
            existing = await self.repository.get_transaction(transaction.id)
            if existing is not None:
                if existing.user_id != transaction.user_id:
                    raise ValidationError(
                        "invalid event",
                        {"transaction_id": "already used by another user"}
                    )
                logger.info(f"Transaction {transaction.id} already recorded, skipping")
                aggregate = await self.repository.get_or_create_aggregate(existing.user_id)
                return existing, aggregate, aggregate

        current = await self.repository.get_or_create_aggregate(transaction.user_id)
        updated = apply_transaction(current, transaction, self.thresholds)
        result = await self.repository.commit(current, updated, [transaction])
        await self._publish(result)

        logger.info(
            f"Recorded {transaction.points} XP for user {transaction.user_id} "
            f"({transaction.event_type}), total {result.aggregate.total_xp}"
        )
        return transaction, current, result.aggregate

    # Streaks

    async def update_streak(self, user_id: str, today: Optional[datetime.date] = None) -> StreakResult:
        """
        Register activity for ``today`` and pay a milestone bonus if one is reached.

        Args:
            user_id: User identifier
            today: Calendar day of the activity, defaults to the current UTC date

        Returns:
            StreakResult; ``changed`` is False when the day was already counted
        """
        errors: Dict[str, str] = {}
        _require_text(errors, "user_id", user_id, ID_MAX_LENGTH)
        if errors:
            raise ValidationError("invalid streak update", errors)
        day = today or utcnow().date()
        return await self._with_retries(self._update_streak_once, user_id, day)

    async def _update_streak_once(self, user_id: str, today: datetime.date) -> StreakResult:
        current = await self.repository.get_or_create_aggregate(user_id)
        result, updated, bonus = streak_update(
            current, today, self.weekly_bonus, self.monthly_bonus
        )
        if not result.changed:
            return result

        transactions = []
        if bonus is not None:
            if await self.repository.get_transaction(bonus.id) is None:
                transactions.append(bonus)
                updated = apply_transaction(updated, bonus, self.thresholds)
            else:
                logger.warning(f"Streak bonus {bonus.id} already paid to user {user_id}")
                result = dataclasses.replace(result, bonus_awarded=False, bonus_kind=None, bonus_points=0)

        commit = await self.repository.commit(current, updated, transactions)
        await self._publish(commit)

        if result.bonus_awarded:
            logger.info(
                f"User {user_id} reached a {result.streak}-day streak, "
                f"{result.bonus_kind.value} bonus of {result.bonus_points} XP"
            )
        return result

    # Badges

    async def check_achievements(self, user_id: str, stats: Optional[UserStats] = None) -> List[str]:
        """
        Award every badge the user newly qualifies for.

        Badges are evaluated once against ``stats``; XP paid by a badge in
        this pass only counts towards other badges on the next check.

        Args:
            user_id: User identifier
            stats: Statistics to evaluate, read from storage when omitted

        Returns:
            Keys of the badges awarded by this call
        """
        if stats is None:
            stats = await self.get_user_stats(user_id)

        earned = await self.repository.get_earned_badge_keys(user_id)
        awarded = []
        for badge in evaluate_badges(self.catalog, stats, earned):
            if await self._with_retries(self._grant_badge_once, user_id, badge):
                awarded.append(badge.key)

        if awarded:
            logger.info(f"User {user_id} unlocked badges: {', '.join(awarded)}")
        return awarded

    async def award_badge(self, user_id: str, badge_key: str) -> bool:
        """
        Award a catalog badge directly, regardless of its criterion.

        Returns:
            True if the badge was awarded, False if the user already had it

        Raises:
            NotFoundError: If the badge is not in the catalog
        """
        badge = self._catalog.get(badge_key)
        if badge is None:
            raise NotFoundError("Badge", badge_key)
        return await self._with_retries(self._grant_badge_once, user_id, badge)

    async def _grant_badge_once(self, user_id: str, badge: Badge) -> bool:
        if badge.key in await self.repository.get_earned_badge_keys(user_id):
            return False

        current = await self.repository.get_or_create_aggregate(user_id)
        updated = dataclasses.replace(current, badges_count=current.badges_count + 1, updated_at=utcnow())
        transactions = []
        if badge.points_awarded > 0:
            bonus = badge_bonus_transaction(user_id, badge)
            transactions.append(bonus)
            updated = apply_transactions(updated, transactions, self.thresholds)

        commit = await self.repository.commit(
            current,
            updated,
            transactions,
            earned_badge=EarnedBadge(user_id=user_id, badge_key=badge.key)
        )
        await self._publish(commit)
        return True

    # Leaderboards

    def _validate_limit(self, limit: Any) -> int:
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= self.max_leaderboard_limit:
            raise ValidationError(
                "invalid leaderboard limit",
                {"limit": f"must be an integer between 1 and {self.max_leaderboard_limit}"}
            )
        return limit

    @log_execution_time(logger)
    async def get_leaderboard(
        self,
        period_type: Any,
        limit: int = 10,
        today: Optional[datetime.date] = None
    ) -> List[LeaderboardRow]:
        """
        Get the top of a leaderboard.

        Args:
            period_type: weekly, monthly or all_time
            limit: Number of rows, 1 to the configured maximum
            today: Day selecting the current period, defaults to today (UTC)

        Returns:
            Ranked rows, best first
        """
        period = parse_period(period_type)
        limit = self._validate_limit(limit)

        if period is LeaderboardPeriod.ALL_TIME:
            return await self.repository.get_all_time_leaderboard(limit)

        start = period_start(period, today or utcnow().date())
        return await self.repository.get_period_leaderboard(period, start, limit)

    async def get_user_rank(
        self,
        period_type: Any,
        user_id: str,
        today: Optional[datetime.date] = None
    ) -> Optional[int]:
        """
        Get a user's rank on a leaderboard.

        The Redis mirror answers when available; otherwise the rank is
        computed from SQL.

        Returns:
            User's rank (1-indexed) or None if not ranked
        """
        period = parse_period(period_type)
        start = period_start(period, today or utcnow().date())

        if self.mirror is not None:
            rank = await self.mirror.get_rank(period, user_id, start)
            if rank is not None:
                return rank

        return await self.repository.get_rank(period, user_id, start)

    async def prune_periods(self, retain: int, today: Optional[datetime.date] = None) -> Dict[str, int]:
        """
        Delete rollup rows older than the last ``retain`` periods.

        Returns:
            Rows removed per period type
        """
        if retain < 1:
            raise ValidationError("invalid retention", {"retain": "must be at least 1"})

        day = today or utcnow().date()
        removed = {}
        for period in (LeaderboardPeriod.WEEKLY, LeaderboardPeriod.MONTHLY):
            cutoff = previous_period_start(period, period_start(period, day), retain - 1)
            removed[period.value] = await self.repository.prune_period_aggregates(period, cutoff)
        return removed

    # Statistics

    async def get_user_stats(self, user_id: str) -> UserStats:
        """
        Get the statistics badges are evaluated against.

        Creates a zeroed aggregate for users seen for the first time.
        """
        aggregate = await self.repository.get_or_create_aggregate(user_id)
        counts = await self.repository.count_events(user_id)
        return UserStats(
            user_id=user_id,
            points=aggregate.total_xp,
            level=aggregate.level,
            streak=aggregate.streak_days,
            longest_streak=aggregate.longest_streak,
            lessons=counts.get(EventType.LESSON_COMPLETE.value, 0),
            quizzes=counts.get(EventType.QUIZ_PASS.value, 0),
            badges=aggregate.badges_count,
            last_activity_date=aggregate.last_activity_date
        )

    async def get_recent_transactions(self, user_id: str, limit: int = 10) -> List[PointTransaction]:
        """Get a user's latest ledger entries, newest first."""
        return await self.repository.list_transactions(user_id, self._validate_limit(limit))

    async def get_profile(self, user_id: str) -> Dict[str, Any]:
        """
        Get everything the profile view shows for a user.

        Returns:
            Dict with stats, level progress, badges, recent activity and rank
        """
        stats = await self.get_user_stats(user_id)
        earned = await self.repository.list_earned_badges(user_id)
        recent = await self.repository.list_transactions(user_id, 10)
        rank = await self.get_user_rank(LeaderboardPeriod.ALL_TIME, user_id)

        badges = []
        for earned_badge in earned:
            badge = self._catalog.get(earned_badge.badge_key)
            badges.append({
                "key": earned_badge.badge_key,
                "name": badge.name if badge else earned_badge.badge_key,
                "description": badge.description if badge else "",
                "earned_at": earned_badge.earned_at.isoformat(),
            })

        return {
            "stats": stats.to_dict(),
            "level_progress": level_progress(stats.points, self.thresholds),
            "badges": badges,
            "recent_transactions": [transaction.to_dict() for transaction in recent],
            "rank": rank,
        }

    # Composite flow

    async def award_event(
        self,
        user_id: str,
        event_type: str,
        source: str,
        source_id: Optional[str] = None,
        description: Optional[str] = None,
        points: Optional[int] = None,
        today: Optional[datetime.date] = None,
        transaction_id: Optional[str] = None
    ) -> AwardResult:
        """
        Record an event, then update the streak and check badges.

        Only the ledger write is critical. Streak and badge failures are
        logged and reported in ``AwardResult.errors`` without undoing the XP.

        Args:
            user_id: User identifier
            event_type: Event type; catalog types supply default points
            source: Surface that reported the action
            source_id: Optional id of the related object
            description: Optional description
            points: Points to award, defaults to the event type's points
            today: Day used for the streak, defaults to today (UTC)
            transaction_id: Optional idempotency key

        Returns:
            AwardResult describing everything that changed
        """
        if points is None:
            try:
                points = EventType(event_type).default_points
            except ValueError:
                points = None
            if points is None:
                raise ValidationError(
                    "invalid event",
                    {"points": f"required for event type {event_type!r}"}
                )

        log = with_context(logger, user_id=user_id, event_type=event_type)
        transaction, before, after = await self._record(
            user_id, event_type, points, source, source_id, description, transaction_id
        )
        result = AwardResult(transaction=transaction, total_xp=after.total_xp, level=after.level)

        if after is before:
            # Replay of an already recorded transaction
            return result

        try:
            result.streak = await self.update_streak(user_id, today)
        except Exception as e:
            log.error(f"Streak update failed for user {user_id}: {e}")
            result.errors["streak"] = "streak update failed"

        try:
            result.new_badges = await self.check_achievements(user_id)
        except Exception as e:
            log.error(f"Badge check failed for user {user_id}: {e}")
            result.errors["badges"] = "badge check failed"

        try:
            final = await self.repository.get_aggregate(user_id)
        except Exception as e:
            log.error(f"Could not reload aggregate for user {user_id}: {e}")
            final = None
        if final is not None:
            result.total_xp = final.total_xp
            result.level = final.level

        result.level_up = result.level > before.level
        if result.level_up:
            log.info(f"User {user_id} reached level {result.level}")
        return result


# Singleton instance
_gamification_service: Optional[GamificationService] = None


def get_gamification_service() -> GamificationService:
    """
    Get the singleton gamification service instance.

    The database must be initialized first (see ``academia.database``).

    Returns:
        Gamification service instance
    """
    global _gamification_service

    if _gamification_service is None:
        from academia.config import settings
        from academia.common.redis import get_redis_client
        from academia.database.init_db import get_session_factory

        mirror = None
        if settings.LEADERBOARD_MIRROR_ENABLED:
            mirror = LeaderboardMirror(get_redis_client())

        _gamification_service = GamificationService(
            repository=GamificationRepository(get_session_factory()),
            mirror=mirror,
            thresholds=settings.LEVEL_THRESHOLDS,
            weekly_bonus=settings.STREAK_WEEKLY_BONUS,
            monthly_bonus=settings.STREAK_MONTHLY_BONUS,
            max_retries=settings.CONFLICT_MAX_RETRIES,
            max_leaderboard_limit=settings.LEADERBOARD_MAX_LIMIT
        )

    return _gamification_service


async def initialize_gamification_service() -> GamificationService:
    """Initialize the gamification service."""
    service = get_gamification_service()
    await service.initialize()
    return service


def reset_gamification_service() -> None:
    """Forget the singleton so the next call builds a fresh service."""
    global _gamification_service
    _gamification_service = None
