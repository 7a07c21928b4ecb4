"""Badge models for gamification"""
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Annotated, Literal, Optional, Union
from datetime import datetime

from prayer_engine.models.prayer import PrayerType


class BadgeRarity(str, Enum):
    """Badge rarity tiers"""
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class _Requirement(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: int = Field(gt=0)


class TotalCompletedCount(_Requirement):
    """Completed prayers of any type"""
    kind: Literal["total_completed"] = "total_completed"


class StreakLength(_Requirement):
    """Consecutive COMPLETE days"""
    kind: Literal["streak_length"] = "streak_length"


class SpecificPrayerCount(_Requirement):
    """Completions of one prayer"""
    kind: Literal["specific_prayer"] = "specific_prayer"
    prayer: PrayerType


class ConsecutivePerfectDays(_Requirement):
    """Consecutive days with all five prayers completed"""
    kind: Literal["consecutive_perfect_days"] = "consecutive_perfect_days"


class EarlyCompletionCount(_Requirement):
    """Completions before the scheduled time, optionally for one prayer"""
    kind: Literal["early_completion"] = "early_completion"
    prayer: Optional[PrayerType] = None


class ReflectionCount(_Requirement):
    """Events carrying a reflection"""
    kind: Literal["reflection"] = "reflection"


BadgeRequirement = Annotated[
    Union[
        TotalCompletedCount,
        StreakLength,
        SpecificPrayerCount,
        ConsecutivePerfectDays,
        EarlyCompletionCount,
        ReflectionCount,
    ],
    Field(discriminator="kind"),
]


class BadgeDefinition(BaseModel):
    """Static catalog entry"""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    icon: str
    rarity: BadgeRarity
    xp_reward: int = Field(ge=0)
    requirement: BadgeRequirement


class UserBadge(BaseModel):
    """A badge earned by a user; at most one per (user_id, badge_id)"""
    user_id: str
    badge_id: str
    earned_at: datetime
    xp_awarded: int


class BadgeInsertResult(BaseModel):
    """Outcome of an insert-if-absent on the badge table"""
    inserted: bool
    user_badge: Optional[UserBadge] = None


class BadgeProgress(BaseModel):
    """Progress toward a catalog badge"""
    badge_id: str
    name: str
    icon: str
    rarity: BadgeRarity
    progress: int
    target: int
    earned: bool
    xp_reward: int

    @property
    def percentage(self) -> int:
        return min(100, int(self.progress / self.target * 100)) if self.target > 0 else 0
