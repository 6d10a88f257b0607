"""
Tests for the gamification service.

This module exercises the service against a real SQLite database:
1. Recording events, levels and deduplication
2. Streaks and milestone bonuses
3. Badge awards
4. Leaderboards, statistics and profiles
5. Conflict retries and tolerance of non-critical failures
"""

import datetime
import dataclasses
from unittest.mock import AsyncMock

import pytest

from academia.common.exceptions import ConflictError, NotFoundError, ValidationError
from academia.gamification.leaderboard import LeaderboardMirror
from academia.gamification.models import (
    EventType, LeaderboardPeriod, StreakBonusKind, TransactionType, utcnow
)
from academia.gamification.service import GamificationService

START = datetime.date(2026, 10, 1)


def _day(offset: int) -> datetime.date:
    return START + datetime.timedelta(days=offset)


async def _assert_ledger_matches(service: GamificationService, user_id: str) -> None:
    aggregate = await service.repository.get_aggregate(user_id)
    assert aggregate.total_xp == await service.repository.sum_points(user_id)


# Recording events

@pytest.mark.asyncio
async def test_first_event_keeps_level_one(service):
    transaction = await service.record_event("alice", "lesson_complete", 10, "lesson", source_id="l-1")

    stats = await service.get_user_stats("alice")
    assert transaction.points == 10
    assert transaction.type is TransactionType.EARNED
    assert stats.points == 10
    assert stats.level == 1


@pytest.mark.asyncio
async def test_crossing_threshold_levels_up(service):
    await service.record_event("alice", "challenge_complete", 95, "challenge")
    await service.record_event("alice", "lesson_complete", 10, "lesson")

    stats = await service.get_user_stats("alice")
    assert stats.points == 105
    assert stats.level == 2
    await _assert_ledger_matches(service, "alice")


@pytest.mark.asyncio
@pytest.mark.parametrize("kwargs, field", [
    ({"points": 0}, "points"),
    ({"points": -5}, "points"),
    ({"points": 2.5}, "points"),
    ({"points": None}, "points"),
    ({"points": True}, "points"),
    ({"user_id": ""}, "user_id"),
    ({"event_type": " "}, "event_type"),
    ({"source": ""}, "source"),
    ({"source": "s" * 65}, "source"),
    ({"event_type": "e" * 65}, "event_type"),
    ({"transaction_id": "t" * 65}, "transaction_id"),
    ({"transaction_id": ""}, "transaction_id"),
    ({"source_id": "x" * 256}, "source_id"),
    ({"user_id": "u" * 256}, "user_id"),
])
async def test_record_event_rejects_invalid_input(service, kwargs, field):
    arguments = {"user_id": "alice", "event_type": "lesson_complete", "points": 10, "source": "lesson"}
    arguments.update(kwargs)

    with pytest.raises(ValidationError) as exc_info:
        await service.record_event(**arguments)

    assert field in exc_info.value.errors
    assert await service.repository.get_aggregate("alice") is None


@pytest.mark.asyncio
async def test_replayed_transaction_id_is_applied_once(service):
    first = await service.record_event("alice", "lesson_complete", 10, "lesson", transaction_id="evt-42")
    second = await service.record_event("alice", "lesson_complete", 10, "lesson", transaction_id="evt-42")

    assert second == first
    assert (await service.get_user_stats("alice")).points == 10
    assert len(await service.get_recent_transactions("alice")) == 1


@pytest.mark.asyncio
async def test_transaction_id_of_another_user_is_rejected(service):
    await service.record_event("alice", "lesson_complete", 10, "lesson", transaction_id="k1")

    with pytest.raises(ValidationError) as exc_info:
        await service.record_event("bob", "lesson_complete", 10, "lesson", transaction_id="k1")

    assert "transaction_id" in exc_info.value.errors
    assert (await service.get_user_stats("alice")).points == 10
    assert (await service.get_user_stats("bob")).points == 0



@pytest.mark.asyncio
async def test_conflict_is_retried_with_fresh_state(service, monkeypatch):
    repository = service.repository
    original_commit = repository.commit
    calls = []

    async def flaky_commit(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            # Another writer slips in before our first attempt lands
            await original_commit(*args, **kwargs)
            raise ConflictError("UserAggregate", "alice", 0)
        return await original_commit(*args, **kwargs)

    await repository.get_or_create_aggregate("alice")
    monkeypatch.setattr(repository, "commit", flaky_commit)

    await service.record_event("alice", "lesson_complete", 10, "lesson", transaction_id="evt-1")

    assert len(calls) == 1
    assert (await service.get_user_stats("alice")).points == 10
    await _assert_ledger_matches(service, "alice")


@pytest.mark.asyncio
async def test_concurrent_writer_forces_recompute(service, monkeypatch):
    repository = service.repository
    original_commit = repository.commit
    interfered = []

    async def commit_after_interference(current, updated, transactions=(), earned_badge=None):
        if not interfered:
            interfered.append(True)
            other = await repository.get_aggregate(current.user_id)
            await original_commit(other, dataclasses.replace(other))
        return await original_commit(current, updated, transactions, earned_badge)

    await repository.get_or_create_aggregate("alice")
    monkeypatch.setattr(repository, "commit", commit_after_interference)

    await service.record_event("alice", "quiz_pass", 25, "quiz")

    aggregate = await repository.get_aggregate("alice")
    assert aggregate.total_xp == 25
    assert aggregate.version == 2


@pytest.mark.asyncio
async def test_exhausted_retries_surface_conflict(service, monkeypatch):
    async def always_conflicts(current, *args, **kwargs):
        raise ConflictError("UserAggregate", current.user_id, current.version)

    monkeypatch.setattr(service.repository, "commit", always_conflicts)

    with pytest.raises(ConflictError):
        await service.record_event("alice", "lesson_complete", 10, "lesson")

    assert await service.repository.sum_points("alice") == 0


# Streaks

async def _streak_through(service, user_id: str, days: int):
    result = None
    for offset in range(days):
        result = await service.update_streak(user_id, _day(offset))
    return result


@pytest.mark.asyncio
async def test_seventh_day_pays_weekly_bonus(service):
    sixth = await _streak_through(service, "alice", 6)
    assert sixth.streak == 6
    assert sixth.bonus_awarded is False

    seventh = await service.update_streak("alice", _day(6))

    assert seventh.streak == 7
    assert seventh.bonus_awarded is True
    assert seventh.bonus_kind is StreakBonusKind.WEEKLY
    stats = await service.get_user_stats("alice")
    assert stats.points == 50
    assert stats.streak == 7
    bonus = (await service.get_recent_transactions("alice"))[0]
    assert bonus.type is TransactionType.BONUS
    assert bonus.source == "streak"


@pytest.mark.asyncio
async def test_gap_resets_streak_without_bonus(service):
    await _streak_through(service, "alice", 12)

    result = await service.update_streak("alice", _day(14))

    assert result.streak == 1
    assert result.bonus_awarded is False
    stats = await service.get_user_stats("alice")
    assert stats.streak == 1
    assert stats.longest_streak == 12
    assert stats.points == 50


@pytest.mark.asyncio
async def test_same_day_replay_pays_nothing(service):
    await _streak_through(service, "alice", 7)

    replay = await service.update_streak("alice", _day(6))

    assert replay.changed is False
    assert replay.bonus_awarded is False
    assert (await service.get_user_stats("alice")).points == 50


@pytest.mark.asyncio
async def test_backdated_activity_keeps_the_streak(service):
    await _streak_through(service, "alice", 20)

    late = await service.update_streak("alice", _day(5))
    next_day = await service.update_streak("alice", _day(20))

    assert late.changed is False
    assert next_day.streak == 21
    stats = await service.get_user_stats("alice")
    assert stats.streak == 21
    assert stats.last_activity_date == _day(20)



@pytest.mark.asyncio
async def test_thirty_day_streak_bonuses(service):
    thirtieth = await _streak_through(service, "alice", 30)

    assert thirtieth.streak == 30
    assert thirtieth.bonus_kind is StreakBonusKind.MONTHLY
    assert thirtieth.bonus_points == 200
    # Weekly on days 7, 14, 21 and 28, monthly on day 30
    assert (await service.get_user_stats("alice")).points == 4 * 50 + 200
    await _assert_ledger_matches(service, "alice")


# Badges

@pytest.mark.asyncio
async def test_badges_are_awarded_once(service):
    await service.record_event("alice", EventType.LESSON_COMPLETE.value, 10, "lesson")

    first = await service.check_achievements("alice")
    second = await service.check_achievements("alice")

    assert first == ["first_steps"]
    assert second == []
    stats = await service.get_user_stats("alice")
    assert stats.badges == 1
    assert stats.points == 20
    await _assert_ledger_matches(service, "alice")


@pytest.mark.asyncio
async def test_badge_bonus_counts_on_the_next_check(service):
    await service.record_event("alice", "challenge_complete", 485, "challenge")
    await service.record_event("alice", "lesson_complete", 10, "lesson")

    # first_steps pays 10 XP, lifting alice from 495 to 505
    assert await service.check_achievements("alice") == ["first_steps"]
    assert await service.check_achievements("alice") == ["xp_500"]
    assert (await service.get_user_stats("alice")).points == 530
    await _assert_ledger_matches(service, "alice")


@pytest.mark.asyncio
async def test_award_badge_directly(service):
    assert await service.award_badge("alice", "quiz_master") is True
    assert await service.award_badge("alice", "quiz_master") is False

    stats = await service.get_user_stats("alice")
    assert stats.badges == 1
    assert stats.points == 75


@pytest.mark.asyncio
async def test_award_unknown_badge(service):
    with pytest.raises(NotFoundError):
        await service.award_badge("alice", "no_such_badge")


@pytest.mark.asyncio
async def test_zero_point_badge_writes_no_transaction(repository):
    from academia.gamification.models import Badge, BadgeCriteria, CriterionKind

    service = GamificationService(repository)
    await service.initialize([
        Badge("welcome", "Welcome", "", 0, BadgeCriteria(CriterionKind.POINTS, 0))
    ])

    assert await service.check_achievements("alice") == ["welcome"]
    stats = await service.get_user_stats("alice")
    assert stats.badges == 1
    assert stats.points == 0
    assert await service.get_recent_transactions("alice") == []


# Composite flow

@pytest.mark.asyncio
async def test_award_event_runs_streak_and_badges(service):
    result = await service.award_event("alice", "lesson_complete", "lesson", source_id="l-1", today=_day(0))

    assert result.transaction.points == 10
    assert result.streak.streak == 1
    assert result.new_badges == ["first_steps"]
    assert result.total_xp == 20
    assert result.level == 1
    assert result.level_up is False
    assert result.errors == {}
    await _assert_ledger_matches(service, "alice")


@pytest.mark.asyncio
async def test_award_event_reports_level_up(service):
    result = await service.award_event("alice", "course_complete", "course", today=_day(0))

    assert result.transaction.points == 100
    assert result.level == 2
    assert result.level_up is True


@pytest.mark.asyncio
async def test_award_event_requires_points_for_custom_types(service):
    with pytest.raises(ValidationError):
        await service.award_event("alice", "forum_post", "forum")

    result = await service.award_event("alice", "forum_post", "forum", points=3, today=_day(0))
    assert result.transaction.points == 3


@pytest.mark.asyncio
async def test_award_event_replay_changes_nothing(service):
    first = await service.award_event("alice", "quiz_pass", "quiz", transaction_id="q-1", today=_day(0))
    replay = await service.award_event("alice", "quiz_pass", "quiz", transaction_id="q-1", today=_day(0))

    assert replay.transaction == first.transaction
    assert replay.new_badges == []
    assert replay.total_xp == first.total_xp
    assert (await service.get_user_stats("alice")).quizzes == 1


@pytest.mark.asyncio
async def test_badge_failure_does_not_block_xp(service, monkeypatch):
    monkeypatch.setattr(service, "check_achievements", AsyncMock(side_effect=RuntimeError("catalog offline")))

    result = await service.award_event("alice", "lesson_complete", "lesson", today=_day(0))

    assert result.errors == {"badges": "badge check failed"}
    assert result.new_badges == []
    assert result.streak.streak == 1
    assert result.total_xp == 10


@pytest.mark.asyncio
async def test_streak_failure_does_not_block_xp(service, monkeypatch):
    monkeypatch.setattr(service, "update_streak", AsyncMock(side_effect=RuntimeError("boom")))

    result = await service.award_event("alice", "lesson_complete", "lesson", today=_day(0))

    assert result.errors == {"streak": "streak update failed"}
    assert result.streak is None
    assert result.new_badges == ["first_steps"]
    assert (await service.get_user_stats("alice")).points == 20


# Leaderboards and statistics

@pytest.mark.asyncio
async def test_leaderboard_ranks_by_total_xp(service):
    for user_id, points in (("u1", 50), ("u2", 200), ("u3", 75)):
        await service.record_event(user_id, "challenge_complete", points, "challenge")

    for period in ("all_time", "weekly", "monthly"):
        rows = await service.get_leaderboard(period, limit=10)
        assert [row.total_xp for row in rows] == [200, 75, 50]
        assert [row.rank for row in rows] == [1, 2, 3]

    assert await service.get_user_rank("all_time", "u3") == 2
    assert await service.get_user_rank(LeaderboardPeriod.WEEKLY, "u1") == 3
    assert await service.get_user_rank("monthly", "nobody") is None


@pytest.mark.asyncio
async def test_leaderboard_truncates_to_limit(service):
    for index in range(5):
        await service.record_event(f"user-{index}", "lesson_complete", 10 * (index + 1), "lesson")

    rows = await service.get_leaderboard("all_time", limit=2)

    assert [row.user_id for row in rows] == ["user-4", "user-3"]


@pytest.mark.asyncio
@pytest.mark.parametrize("period, limit", [
    ("yearly", 10),
    ("all_time", 0),
    ("all_time", 101),
    ("weekly", "10"),
])
async def test_leaderboard_rejects_invalid_arguments(service, period, limit):
    with pytest.raises(ValidationError):
        await service.get_leaderboard(period, limit)


@pytest.mark.asyncio
async def test_rank_prefers_the_mirror(repository):
    mirror = AsyncMock()
    mirror.get_rank.return_value = 4
    service = GamificationService(repository, mirror=mirror)

    assert await service.get_user_rank("all_time", "alice") == 4

    mirror.get_rank.return_value = None
    await service.record_event("alice", "lesson_complete", 10, "lesson")
    assert await service.get_user_rank("all_time", "alice") == 1


@pytest.mark.asyncio
async def test_mirror_rank_agrees_with_the_board_on_ties(repository, sorted_sets):
    service = GamificationService(repository, mirror=LeaderboardMirror(sorted_sets))
    await service.record_event("zed", "lesson_complete", 10, "lesson")
    await service.record_event("amy", "lesson_complete", 10, "lesson")
    await service.update_streak("newcomer", _day(0))

    board = await service.get_leaderboard("all_time")

    assert [(row.rank, row.user_id) for row in board] == [(1, "amy"), (2, "zed")]
    assert await service.get_user_rank("all_time", "amy") == 1
    assert await service.get_user_rank("all_time", "zed") == 2
    assert await service.get_user_rank("all_time", "newcomer") is None



@pytest.mark.asyncio
async def test_commits_are_published_to_the_mirror(repository):
    mirror = AsyncMock()
    service = GamificationService(repository, mirror=mirror)

    await service.record_event("alice", "lesson_complete", 10, "lesson")

    mirror.publish.assert_awaited_once()
    user_id, total_xp, period_totals = mirror.publish.await_args.args
    assert (user_id, total_xp) == ("alice", 10)
    assert set(period for period, _ in period_totals) == {LeaderboardPeriod.WEEKLY, LeaderboardPeriod.MONTHLY}
    assert set(period_totals.values()) == {10}


@pytest.mark.asyncio
async def test_user_stats_count_lessons_and_quizzes(service):
    assert (await service.get_user_stats("newcomer")).points == 0
    assert await service.repository.get_aggregate("newcomer") is not None

    await service.record_event("alice", "lesson_complete", 10, "lesson")
    await service.record_event("alice", "lesson_complete", 10, "lesson")
    await service.record_event("alice", "quiz_pass", 25, "quiz")
    await service.record_event("alice", "quiz_perfect", 20, "quiz")

    stats = await service.get_user_stats("alice")
    assert stats.lessons == 2
    assert stats.quizzes == 1
    assert stats.points == 65


@pytest.mark.asyncio
async def test_profile(service):
    await service.award_event("alice", "lesson_complete", "lesson", today=_day(0))

    profile = await service.get_profile("alice")

    assert profile["stats"]["points"] == 20
    assert profile["level_progress"]["current_level"] == 1
    assert [badge["key"] for badge in profile["badges"]] == ["first_steps"]
    assert len(profile["recent_transactions"]) == 2
    assert profile["rank"] == 1


@pytest.mark.asyncio
async def test_prune_periods_keeps_current_window(service):
    await service.record_event("alice", "lesson_complete", 10, "lesson")
    today = utcnow().date()

    assert await service.prune_periods(1, today) == {"weekly": 0, "monthly": 0}
    assert await service.prune_periods(1, today + datetime.timedelta(days=70)) == {"weekly": 1, "monthly": 1}
    assert await service.get_leaderboard("weekly", today=today) == []

    with pytest.raises(ValidationError):
        await service.prune_periods(0)
