"""
Leaderboard periods and the Redis rank mirror.

Weekly and monthly boards are keyed by the first day of their period (ISO
Monday, first of month). Every ledger write adds to the rows of the periods
containing it, so a new period simply starts with no rows; old rows are only
removed by the pruning job.

The mirror keeps one Redis sorted set per board so a user's rank can be
answered without scanning the aggregate tables. SQL stays the source of
truth: mirror failures are logged and ignored.
"""

import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from redis.asyncio import Redis as AsyncRedis
from redis.exceptions import RedisError

from academia.common.exceptions import ValidationError
from academia.common.logger import app_logger
from academia.gamification.models import LeaderboardPeriod, LeaderboardRow

logger = app_logger.getChild("gamification.leaderboard")

# Periods that keep their own rollup rows
ROLLUP_PERIODS = (LeaderboardPeriod.WEEKLY, LeaderboardPeriod.MONTHLY)

# Key of a period board: (period, first day of the period)
PeriodKey = Tuple[LeaderboardPeriod, datetime.date]


def parse_period(value) -> LeaderboardPeriod:
    """
    Accept a LeaderboardPeriod or its string value.

    Raises:
        ValidationError: If the value names no known period
    """
    if isinstance(value, LeaderboardPeriod):
        return value
    try:
        return LeaderboardPeriod(value)
    except ValueError:
        valid = [p.value for p in LeaderboardPeriod]
        raise ValidationError(
            f"unknown leaderboard period {value!r}",
            {"period_type": f"must be one of {valid}"}
        )


def period_start(period: LeaderboardPeriod, day: datetime.date) -> Optional[datetime.date]:
    """First day of the period containing ``day`` (None for all-time)."""
    if period is LeaderboardPeriod.WEEKLY:
        return day - datetime.timedelta(days=day.weekday())
    if period is LeaderboardPeriod.MONTHLY:
        return day.replace(day=1)
    return None


def previous_period_start(period: LeaderboardPeriod, start: datetime.date, count: int = 1) -> datetime.date:
    """Start of the period ``count`` periods before the one beginning at ``start``."""
    if period is LeaderboardPeriod.WEEKLY:
        return start - datetime.timedelta(weeks=count)
    if period is LeaderboardPeriod.MONTHLY:
        month_index = start.year * 12 + (start.month - 1) - count
        return datetime.date(month_index // 12, month_index % 12 + 1, 1)
    raise ValueError(f"{period.value} has no periods")


def rollup_keys(day: datetime.date) -> List[PeriodKey]:
    """Period boards a transaction earned on ``day`` contributes to."""
    return [(period, period_start(period, day)) for period in ROLLUP_PERIODS]


def assign_ranks(rows: Iterable[Tuple[str, int, int, Optional[datetime.date]]]) -> List[LeaderboardRow]:
    """
    Number already-sorted rows from 1.

    Args:
        rows: (user_id, total_xp, level, last_activity) tuples in board order

    Returns:
        Leaderboard rows with rank = position + 1
    """
    return [
        LeaderboardRow(
            rank=position + 1,
            user_id=user_id,
            total_xp=total_xp,
            level=level,
            last_activity=last_activity
        )
        for position, (user_id, total_xp, level, last_activity) in enumerate(rows)
    ]


class LeaderboardMirror:
    """
    Redis sorted-set copy of the leaderboards.

    Scores are total XP and only ever grow. Users without XP are not
    published. Redis orders equal scores by member name, which disagrees
    with the SQL tie-break, so tied users get no rank from the mirror.
    """

    def __init__(self, redis_client: AsyncRedis, key_prefix: str = "academia:leaderboard"):
        self.redis = redis_client
        self.key_prefix = key_prefix

    def _key(self, period: LeaderboardPeriod, start: Optional[datetime.date] = None) -> str:
        base_key = f"{self.key_prefix}:{period.value}"
        if start is not None:
            return f"{base_key}:{start.isoformat()}"
        return base_key

    def _ttl(self, period: LeaderboardPeriod) -> Optional[int]:
        """Seconds a period board outlives its period."""
        if period is LeaderboardPeriod.WEEKLY:
            return 60 * 60 * 24 * 9  # 9 days
        if period is LeaderboardPeriod.MONTHLY:
            return 60 * 60 * 24 * 35  # 35 days
        return None

    async def publish(
        self,
        user_id: str,
        total_xp: int,
        period_totals: Dict[PeriodKey, int]
    ) -> bool:
        """
        Write a user's current scores to every board they appear on.

        Returns:
            True when Redis accepted the update
        """
        if total_xp <= 0:
            return True

        try:
            # gt keeps a late publish from overwriting a newer total
            await self.redis.zadd(self._key(LeaderboardPeriod.ALL_TIME), {user_id: total_xp}, gt=True)
            for (period, start), score in period_totals.items():
                if score <= 0:
                    continue
                key = self._key(period, start)
                await self.redis.zadd(key, {user_id: score}, gt=True)
                await self.redis.expire(key, self._ttl(period))
            return True
        except RedisError as e:
            logger.warning(f"Leaderboard mirror update failed for {user_id}: {e}")
            return False

    async def get_rank(
        self,
        period: LeaderboardPeriod,
        user_id: str,
        start: Optional[datetime.date] = None
    ) -> Optional[int]:
        """
        Get a user's 1-indexed rank from the mirror.

        Returns:
            Rank, or None when the user is absent, shares its score with
            another user, or Redis is unavailable
        """
        key = self._key(period, start)
        try:
            score = await self.redis.zscore(key, user_id)
            if score is None or score <= 0:
                return None
            if await self.redis.zcount(key, score, score) > 1:
                return None
            rank = await self.redis.zrevrank(key, user_id)
        except RedisError as e:
            logger.warning(f"Leaderboard mirror rank lookup failed for {user_id}: {e}")
            return None
        return rank + 1 if rank is not None else None
