"""
Level Curve and Ranks

Level L requires cumulative XP:
    cumulative_xp(1) = 0
    cumulative_xp(L) = cumulative_xp(L-1) + floor(100 * 1.5^(L-2))

Increments are computed with integer arithmetic (100 * 3^k // 2^k), so the
table never drifts from floating point error. Thresholds are cached and the
table grows on demand for very large totals.
"""

from typing import List
from bisect import bisect_right
import logging

from prayer_engine.config import LEVEL_TABLE_SIZE
from prayer_engine.constants import LEVEL_BASE_XP, LEVEL_GROWTH_DENOMINATOR, LEVEL_GROWTH_NUMERATOR
from prayer_engine.exceptions import ComputationError, ValidationError
from prayer_engine.models import GamificationProfile, Rank

logger = logging.getLogger(__name__)


RANK_TABLE: List[Rank] = [
    Rank(min_level=1, max_level=4, name="New Believer", color="from-gray-400 to-gray-600",
         benefits=["Basic tracking", "Getting started guide", "Foundation building"]),
    Rank(min_level=5, max_level=9, name="Growing Muslim", color="from-pink-500 to-red-500",
         benefits=["Progress tracking", "Simple stats", "Encouragement"]),
    Rank(min_level=10, max_level=14, name="Devoted Believer", color="from-red-500 to-orange-500",
         benefits=["Prayer analytics", "Streak tracking", "Basic challenges"]),
    Rank(min_level=15, max_level=19, name="Dedicated Worshipper", color="from-orange-500 to-yellow-500",
         benefits=["Weekly insights", "Milestone tracking", "Reflection features"]),
    Rank(min_level=20, max_level=24, name="Consistent Believer", color="from-yellow-500 to-green-500",
         benefits=["Streak protection", "Advanced stats", "Challenge unlocks"]),
    Rank(min_level=25, max_level=29, name="Faithful Servant", color="from-green-500 to-blue-500",
         benefits=["Progress analytics", "Custom reminders", "Badge collection"]),
    Rank(min_level=30, max_level=39, name="Devoted Scholar", color="from-blue-500 to-indigo-500",
         benefits=["Detailed insights", "Achievement tracking", "Community features"]),
    Rank(min_level=40, max_level=49, name="Prayer Guardian", color="from-indigo-500 to-purple-500",
         benefits=["Advanced analytics", "Custom challenges", "Mentor status"]),
    Rank(min_level=50, max_level=None, name="Spiritual Master", color="from-purple-500 to-pink-500",
         benefits=["All features unlocked", "Master badge", "Special recognition"]),
]


def validate_rank_table(ranks: List[Rank]) -> None:
    """
    Ranks must cover [1, inf) with no gaps or overlaps

    Raises:
        ComputationError: If the table is empty, doesn't start at level 1,
            has a gap/overlap, or the last rank is bounded
    """
    if not ranks:
        raise ComputationError(message="Rank table is empty", config_key="RANK_TABLE")

    ordered = sorted(ranks, key=lambda r: r.min_level)
    if ordered[0].min_level != 1:
        raise ComputationError(
            message=f"Rank table must start at level 1, starts at {ordered[0].min_level}",
            config_key="RANK_TABLE"
        )

    for current, following in zip(ordered, ordered[1:]):
        if current.max_level is None:
            raise ComputationError(
                message=f"Rank '{current.name}' is unbounded but is not the last rank",
                config_key="RANK_TABLE"
            )
        if current.max_level < current.min_level:
            raise ComputationError(
                message=f"Rank '{current.name}' has max_level below min_level",
                config_key="RANK_TABLE"
            )
        if following.min_level != current.max_level + 1:
            raise ComputationError(
                message=f"Ranks '{current.name}' and '{following.name}' are not contiguous",
                config_key="RANK_TABLE"
            )

    if ordered[-1].max_level is not None:
        raise ComputationError(
            message=f"Last rank '{ordered[-1].name}' must be unbounded",
            config_key="RANK_TABLE"
        )


validate_rank_table(RANK_TABLE)


def _check_int(name: str, value, minimum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(message=f"{name} must be an integer", field=name, value=value)
    if value < minimum:
        raise ValidationError(message=f"{name} must be >= {minimum}", field=name, value=value)


def level_increment(level: int) -> int:
    """XP needed to go from level-1 to level (level >= 2)"""
    k = level - 2
    return (LEVEL_BASE_XP * LEVEL_GROWTH_NUMERATOR ** k) // (LEVEL_GROWTH_DENOMINATOR ** k)


# _thresholds[i] = cumulative XP for level i + 1
_thresholds: List[int] = [0]


def _extend_thresholds(size: int) -> None:
    while len(_thresholds) < size:
        level = len(_thresholds) + 1
        _thresholds.append(_thresholds[-1] + level_increment(level))


_extend_thresholds(LEVEL_TABLE_SIZE)


def cumulative_xp(level: int) -> int:
    """
    Total XP required to reach a level

    Raises:
        ValidationError: If level is not an integer >= 1
    """
    _check_int("level", level, 1)
    _extend_thresholds(level)
    return _thresholds[level - 1]


def level_from_total_xp(total_xp: int) -> int:
    """
    Largest level whose cumulative requirement is <= total_xp

    Raises:
        ValidationError: If total_xp is not an integer >= 0
    """
    _check_int("total_xp", total_xp, 0)
    while _thresholds[-1] <= total_xp:
        _extend_thresholds(len(_thresholds) * 2)
    return bisect_right(_thresholds, total_xp)


def rank_for_level(level: int) -> Rank:
    _check_int("level", level, 1)
    for rank in RANK_TABLE:
        if rank.contains(level):
            return rank
    raise ComputationError(message=f"No rank covers level {level}", config_key="RANK_TABLE")


def unlocked_benefits(previous_level: int, new_level: int) -> List[str]:
    """Benefits of every rank entered on the way from previous_level to new_level"""
    benefits: List[str] = []
    for rank in RANK_TABLE:
        if previous_level < rank.min_level <= new_level:
            benefits.extend(rank.benefits)
    return benefits


def build_profile(total_xp: int) -> GamificationProfile:
    """
    Level/rank projection for a total

    xp_within_level is progress past the current level's threshold;
    xp_to_next_level is what is still missing to reach the next one.
    """
    level = level_from_total_xp(total_xp)
    rank = rank_for_level(level)
    current_floor = cumulative_xp(level)
    next_floor = cumulative_xp(level + 1)

    return GamificationProfile(
        level=level,
        xp_within_level=total_xp - current_floor,
        xp_to_next_level=next_floor - total_xp,
        total_xp=total_xp,
        rank=rank.name,
        rank_color=rank.color,
        benefits=list(rank.benefits),
    )
