"""
Badge catalog and evaluation.

The catalog is static for a deployment. Each badge names one statistic and a
threshold; a badge unlocks the first time the statistic reaches it.
"""

import uuid
from typing import Any, Dict, Iterable, List, Mapping, Set

from academia.common.exceptions import ValidationError
from academia.gamification.models import (
    Badge, BadgeCriteria, CriterionKind, EventType, PointTransaction,
    TransactionType, UserStats
)

# Namespace for deterministic badge bonus transaction ids
BADGE_NAMESPACE = uuid.UUID("a3c7d1e2-5b4f-4c8a-8e9d-1f2a3b4c5d6e")

# Statistic each criterion kind reads; must cover every CriterionKind
CRITERION_STAT_FIELDS: Dict[CriterionKind, str] = {
    CriterionKind.POINTS: "points",
    CriterionKind.STREAK: "streak",
    CriterionKind.LESSONS: "lessons",
    CriterionKind.QUIZZES: "quizzes",
    CriterionKind.LEVEL: "level",
}

_missing_kinds = set(CriterionKind) - set(CRITERION_STAT_FIELDS)
if _missing_kinds:
    raise RuntimeError(f"No statistic mapped for criterion kinds: {sorted(k.value for k in _missing_kinds)}")


def stat_value(stats: UserStats, kind: CriterionKind) -> int:
    """Read the statistic a criterion kind is measured against."""
    return getattr(stats, CRITERION_STAT_FIELDS[kind])


def is_satisfied(badge: Badge, stats: UserStats) -> bool:
    """Check whether the stats meet a badge's criterion."""
    return stat_value(stats, badge.criteria.kind) >= badge.criteria.value


def evaluate_badges(
    catalog: Iterable[Badge],
    stats: UserStats,
    earned_keys: Set[str]
) -> List[Badge]:
    """
    Find badges the user qualifies for and does not hold yet.

    Args:
        catalog: Badge catalog
        stats: Current statistics of the user
        earned_keys: Keys of badges the user already holds

    Returns:
        Newly qualifying badges, in catalog order
    """
    return [
        badge for badge in catalog
        if badge.key not in earned_keys and is_satisfied(badge, stats)
    ]


def badge_bonus_transaction(user_id: str, badge: Badge) -> PointTransaction:
    """
    Build the bonus ledger entry paid when a badge unlocks.

    The id is fixed per (user, badge), matching the one-award-per-badge rule.
    """
    return PointTransaction.create(
        user_id=user_id,
        points=badge.points_awarded,
        event_type=EventType.BADGE_BONUS.value,
        source="badge",
        source_id=badge.key,
        description=f"Badge unlocked: {badge.name}",
        transaction_type=TransactionType.BONUS,
        transaction_id=str(uuid.uuid5(BADGE_NAMESPACE, f"{user_id}:{badge.key}"))
    )


def badge_from_dict(data: Mapping[str, Any]) -> Badge:
    """
    Build a badge from a plain mapping.

    Raises:
        ValidationError: If the criterion kind is unknown or a field is invalid
    """
    errors: Dict[str, str] = {}
    criteria = data.get("criteria") or {}

    try:
        kind = CriterionKind(criteria.get("type") or criteria.get("kind"))
    except ValueError:
        errors["criteria.type"] = f"unknown criterion kind {criteria.get('type') or criteria.get('kind')!r}"
        kind = None

    value = criteria.get("value")
    if not isinstance(value, int) or value < 0:
        errors["criteria.value"] = "must be a non-negative integer"

    points = data.get("points_awarded", 0)
    if not isinstance(points, int) or points < 0:
        errors["points_awarded"] = "must be a non-negative integer"

    if not data.get("key"):
        errors["key"] = "required"

    if errors:
        raise ValidationError(f"invalid badge definition {data.get('key')!r}", errors)

    return Badge(
        key=data["key"],
        name=data.get("name", data["key"]),
        description=data.get("description", ""),
        points_awarded=points,
        criteria=BadgeCriteria(kind=kind, value=value)
    )


DEFAULT_BADGES: List[Dict[str, Any]] = [
    {
        "key": "first_steps",
        "name": "First Steps",
        "description": "Complete your first lesson",
        "points_awarded": 10,
        "criteria": {"type": "lessons", "value": 1},
    },
    {
        "key": "dedicated_student",
        "name": "Dedicated Student",
        "description": "Complete 10 lessons",
        "points_awarded": 50,
        "criteria": {"type": "lessons", "value": 10},
    },
    {
        "key": "knowledge_explorer",
        "name": "Knowledge Explorer",
        "description": "Complete 50 lessons",
        "points_awarded": 150,
        "criteria": {"type": "lessons", "value": 50},
    },
    {
        "key": "quiz_master",
        "name": "Quiz Master",
        "description": "Pass 10 quizzes",
        "points_awarded": 75,
        "criteria": {"type": "quizzes", "value": 10},
    },
    {
        "key": "fire_week",
        "name": "Fire Week",
        "description": "Keep a 7-day streak",
        "points_awarded": 50,
        "criteria": {"type": "streak", "value": 7},
    },
    {
        "key": "unstoppable",
        "name": "Unstoppable",
        "description": "Keep a 30-day streak",
        "points_awarded": 200,
        "criteria": {"type": "streak", "value": 30},
    },
    {
        "key": "xp_500",
        "name": "Rising Star",
        "description": "Earn 500 XP",
        "points_awarded": 25,
        "criteria": {"type": "points", "value": 500},
    },
    {
        "key": "xp_2500",
        "name": "Scholar",
        "description": "Earn 2500 XP",
        "points_awarded": 100,
        "criteria": {"type": "points", "value": 2500},
    },
    {
        "key": "level_5",
        "name": "Level 5",
        "description": "Reach level 5",
        "points_awarded": 50,
        "criteria": {"type": "level", "value": 5},
    },
    {
        "key": "legendary_master",
        "name": "Legendary Master",
        "description": "Reach level 10",
        "points_awarded": 500,
        "criteria": {"type": "level", "value": 10},
    },
]


def get_default_badges() -> List[Badge]:
    """Get the built-in badge catalog."""
    return [badge_from_dict(data) for data in DEFAULT_BADGES]
