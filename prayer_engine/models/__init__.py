"""Data models for the prayer engine"""
from prayer_engine.models.prayer import (
    PrayerType,
    CompletionEvent,
    ExemptionWindow,
    DayStatus,
    DaySummary,
    ConsistencyStats,
)
from prayer_engine.models.gamification import (
    XPSource,
    XPTransaction,
    Rank,
    LevelUpResult,
    GamificationProfile,
)
from prayer_engine.models.achievement import (
    BadgeRarity,
    BadgeRequirement,
    TotalCompletedCount,
    StreakLength,
    SpecificPrayerCount,
    ConsecutivePerfectDays,
    EarlyCompletionCount,
    ReflectionCount,
    BadgeDefinition,
    UserBadge,
    BadgeInsertResult,
    BadgeProgress,
)
from prayer_engine.models.challenge import (
    ChallengePeriod,
    ChallengeState,
    ChallengeRequirement,
    CompletedPrayers,
    EarlyPrayers,
    SpecificPrayer,
    Reflections,
    MaintainStreak,
    CompletionRate,
    PerfectDays,
    ChallengeTemplate,
    UserChallenge,
    ChallengeStats,
)

__all__ = [
    "PrayerType",
    "CompletionEvent",
    "ExemptionWindow",
    "DayStatus",
    "DaySummary",
    "ConsistencyStats",
    "XPSource",
    "XPTransaction",
    "Rank",
    "LevelUpResult",
    "GamificationProfile",
    "BadgeRarity",
    "BadgeRequirement",
    "TotalCompletedCount",
    "StreakLength",
    "SpecificPrayerCount",
    "ConsecutivePerfectDays",
    "EarlyCompletionCount",
    "ReflectionCount",
    "BadgeDefinition",
    "UserBadge",
    "BadgeInsertResult",
    "BadgeProgress",
    "ChallengePeriod",
    "ChallengeState",
    "ChallengeRequirement",
    "CompletedPrayers",
    "EarlyPrayers",
    "SpecificPrayer",
    "Reflections",
    "MaintainStreak",
    "CompletionRate",
    "PerfectDays",
    "ChallengeTemplate",
    "UserChallenge",
    "ChallengeStats",
]
