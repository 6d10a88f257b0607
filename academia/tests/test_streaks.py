"""
Tests for the streak calculator.

This module covers:
1. Streak continuation, reset and same-day replays
2. Weekly and monthly milestone bonuses
3. Bonus ledger entries
"""

import datetime

import pytest

from academia.gamification.models import StreakBonusKind, TransactionType, UserAggregate
from academia.gamification.streaks import (
    compute_streak, milestone_for, streak_bonus_transaction, streak_update
)

TODAY = datetime.date(2026, 10, 19)
YESTERDAY = TODAY - datetime.timedelta(days=1)


def _aggregate(streak_days=0, longest_streak=0, last_activity_date=None) -> UserAggregate:
    return UserAggregate(
        user_id="alice",
        streak_days=streak_days,
        longest_streak=longest_streak,
        last_activity_date=last_activity_date
    )


def test_seventh_consecutive_day_pays_weekly_bonus():
    result = compute_streak(_aggregate(6, 6, YESTERDAY), TODAY)

    assert result.streak == 7
    assert result.longest_streak == 7
    assert result.bonus_awarded is True
    assert result.bonus_kind is StreakBonusKind.WEEKLY
    assert result.bonus_points == 50


def test_gap_resets_streak_without_bonus():
    three_days_ago = TODAY - datetime.timedelta(days=3)

    result = compute_streak(_aggregate(12, 12, three_days_ago), TODAY)

    assert result.streak == 1
    assert result.longest_streak == 12
    assert result.bonus_awarded is False
    assert result.bonus_points == 0


def test_first_activity_starts_at_one():
    result = compute_streak(_aggregate(), TODAY)

    assert result.streak == 1
    assert result.longest_streak == 1
    assert result.changed is True


def test_same_day_is_a_no_op():
    result = compute_streak(_aggregate(7, 9, TODAY), TODAY)

    assert result.changed is False
    assert result.streak == 7
    assert result.longest_streak == 9
    assert result.bonus_awarded is False


def test_activity_dated_before_last_activity_is_ignored():
    aggregate = _aggregate(4, 4, TODAY)

    result, updated, bonus = streak_update(aggregate, TODAY - datetime.timedelta(days=5))

    assert result.changed is False
    assert result.streak == 4
    assert updated is aggregate
    assert bonus is None


def test_thirtieth_day_pays_only_the_monthly_bonus():
    result = compute_streak(_aggregate(29, 29, YESTERDAY), TODAY, weekly_bonus=50, monthly_bonus=200)

    assert result.streak == 30
    assert result.bonus_kind is StreakBonusKind.MONTHLY
    assert result.bonus_points == 200


def test_bonus_amounts_are_configurable():
    result = compute_streak(_aggregate(13, 13, YESTERDAY), TODAY, weekly_bonus=15)
    assert result.streak == 14
    assert result.bonus_points == 15


def test_zero_bonus_is_not_awarded():
    result = compute_streak(_aggregate(6, 6, YESTERDAY), TODAY, weekly_bonus=0)
    assert result.streak == 7
    assert result.bonus_awarded is False
    assert result.bonus_kind is None


@pytest.mark.parametrize("streak, expected", [
    (0, None),
    (1, None),
    (7, StreakBonusKind.WEEKLY),
    (14, StreakBonusKind.WEEKLY),
    (29, None),
    (30, StreakBonusKind.MONTHLY),
    (60, StreakBonusKind.MONTHLY),
    (210, StreakBonusKind.MONTHLY),
])
def test_milestone_for(streak, expected):
    assert milestone_for(streak) is expected


def test_longest_streak_never_decreases():
    aggregate = _aggregate()
    day = TODAY
    longest = []
    # Two runs of activity separated by a gap
    for offset in list(range(10)) + list(range(12, 15)):
        day = TODAY + datetime.timedelta(days=offset)
        _, aggregate, _ = streak_update(aggregate, day)
        longest.append(aggregate.longest_streak)

    assert longest == sorted(longest)
    assert aggregate.streak_days == 3
    assert aggregate.longest_streak == 10
    assert aggregate.last_activity_date == day


def test_bonus_transaction_is_deterministic():
    result = compute_streak(_aggregate(6, 6, YESTERDAY), TODAY)

    first = streak_bonus_transaction("alice", result, TODAY)
    second = streak_bonus_transaction("alice", result, TODAY)
    other_day = streak_bonus_transaction("alice", result, TODAY + datetime.timedelta(days=7))

    assert first.id == second.id
    assert first.id != other_day.id
    assert first.type is TransactionType.BONUS
    assert first.source == "streak"
    assert first.points == 50
    assert first.event_type == "streak_bonus"


def test_no_bonus_transaction_without_milestone():
    result = compute_streak(_aggregate(2, 2, YESTERDAY), TODAY)
    assert streak_bonus_transaction("alice", result, TODAY) is None


def test_streak_update_leaves_aggregate_alone_on_same_day():
    aggregate = _aggregate(3, 3, TODAY)

    result, updated, bonus = streak_update(aggregate, TODAY)

    assert result.changed is False
    assert updated is aggregate
    assert bonus is None
