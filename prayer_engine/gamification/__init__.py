"""
Gamification system for the prayer engine

- Streaks over the completion log
- XP ledger, levels and ranks
- Badge catalog and evaluation
- Daily and weekly challenges
"""

from prayer_engine.gamification.streak_system import calculate_streaks, compute_consistency_stats, next_streak_milestone
from prayer_engine.gamification.levels import build_profile, cumulative_xp, level_from_total_xp, rank_for_level
from prayer_engine.gamification.xp_system import XPLedger, calculate_prayer_xp
from prayer_engine.gamification.achievement_system import BadgeEvaluator, BADGE_CATALOG, get_badge_by_id
from prayer_engine.gamification.challenges import (
    ChallengeEngine,
    SeededSelectionStrategy,
    SelectionStrategy,
    CHALLENGE_TEMPLATES,
    get_template_by_id,
)

__all__ = [
    "calculate_streaks",
    "compute_consistency_stats",
    "next_streak_milestone",
    "build_profile",
    "cumulative_xp",
    "level_from_total_xp",
    "rank_for_level",
    "XPLedger",
    "calculate_prayer_xp",
    "BadgeEvaluator",
    "BADGE_CATALOG",
    "get_badge_by_id",
    "ChallengeEngine",
    "SeededSelectionStrategy",
    "SelectionStrategy",
    "CHALLENGE_TEMPLATES",
    "get_template_by_id",
]
