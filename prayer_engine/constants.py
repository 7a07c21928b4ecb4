"""
Named thresholds and XP values

The streak threshold and the perfect-day threshold are separate rules used by
different features: streaks count a day once 80% of its prayers are done,
badges and challenges only count a "perfect day" when all five are done.
"""

# Streaks: a day counts toward the streak at this completion ratio
STREAK_COMPLETION_THRESHOLD = 0.8

# Badges/challenges: a day is perfect when this many prayers are completed
PERFECT_DAY_PRAYER_COUNT = 5

# XP values
XP_PRAYER_BASE = 25
XP_FAJR_BASE = 40
XP_EARLY_BONUS = 10
XP_REFLECTION_BONUS = 10
XP_STREAK_DAY = 15
XP_PERFECT_DAY = 100
XP_MILESTONE = 200

# Leveling curve: cumulative_xp(L) = cumulative_xp(L-1) + floor(BASE * GROWTH^(L-2))
LEVEL_BASE_XP = 100
LEVEL_GROWTH_NUMERATOR = 3
LEVEL_GROWTH_DENOMINATOR = 2

# Streak milestones (days)
STREAK_MILESTONES = (7, 14, 30, 60, 100)

# Challenge generation
DAILY_CHALLENGE_COUNT = 3
WEEKLY_CHALLENGE_COUNT = 2
