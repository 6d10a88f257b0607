"""
Level calculation.

Levels are a step function over cumulative XP: the level is the number of
thresholds the user's total has reached.
"""

from bisect import bisect_right
from typing import Any, Dict, Sequence

LEVEL_THRESHOLDS = (0, 100, 300, 600, 1000, 1500, 2500, 4000, 6000, 9000)


def level_for_xp(total_xp: int, thresholds: Sequence[int] = LEVEL_THRESHOLDS) -> int:
    """
    Calculate the level for a cumulative XP total.

    Args:
        total_xp: Cumulative XP
        thresholds: Ascending minimum XP of each level, starting at 0

    Returns:
        Level, never below 1
    """
    return max(1, bisect_right(thresholds, total_xp))


def min_xp_for_level(level: int, thresholds: Sequence[int] = LEVEL_THRESHOLDS) -> int:
    """Minimum cumulative XP of a level (levels above the table are unreachable)."""
    if level <= 1:
        return 0
    if level > len(thresholds):
        raise ValueError(f"Level {level} is above the maximum level {len(thresholds)}")
    return thresholds[level - 1]


def level_progress(total_xp: int, thresholds: Sequence[int] = LEVEL_THRESHOLDS) -> Dict[str, Any]:
    """
    Get information about progress through the current level.

    Args:
        total_xp: Cumulative XP
        thresholds: Level thresholds

    Returns:
        Dict with level progress information
    """
    level = level_for_xp(total_xp, thresholds)
    current_min = min_xp_for_level(level, thresholds)
    max_level = len(thresholds)

    if level >= max_level:
        return {
            "current_level": level,
            "total_xp": total_xp,
            "current_level_min_xp": current_min,
            "next_level_min_xp": None,
            "xp_in_level": total_xp - current_min,
            "xp_needed_for_next": 0,
            "progress_percent": 100.0,
            "is_max_level": True
        }

    next_min = thresholds[level]
    xp_in_level = total_xp - current_min
    span = next_min - current_min

    return {
        "current_level": level,
        "total_xp": total_xp,
        "current_level_min_xp": current_min,
        "next_level_min_xp": next_min,
        "xp_in_level": xp_in_level,
        "xp_needed_for_next": next_min - total_xp,
        "progress_percent": round(min(100.0, xp_in_level / span * 100), 2),
        "is_max_level": False
    }
