"""Challenge models: static templates and per-user instances"""
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Annotated, Literal, Optional, Union
from datetime import datetime, timezone
from uuid import uuid4

from prayer_engine.models.prayer import PrayerType


class ChallengePeriod(str, Enum):
    """How long a challenge instance lives"""
    DAILY = "daily"
    WEEKLY = "weekly"


class ChallengeState(str, Enum):
    """ACTIVE -> COMPLETED | EXPIRED; both are terminal"""
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"


class _ChallengeRequirement(BaseModel):
    model_config = ConfigDict(frozen=True)


class CompletedPrayers(_ChallengeRequirement):
    """Count of completed prayers in the period"""
    kind: Literal["completed_prayers"] = "completed_prayers"


class EarlyPrayers(_ChallengeRequirement):
    """Count of prayers completed before their scheduled time"""
    kind: Literal["early_prayers"] = "early_prayers"
    prayer: Optional[PrayerType] = None


class SpecificPrayer(_ChallengeRequirement):
    """Count of completions of one prayer"""
    kind: Literal["specific_prayer"] = "specific_prayer"
    prayer: PrayerType


class Reflections(_ChallengeRequirement):
    """Count of events with a reflection"""
    kind: Literal["reflections"] = "reflections"


class MaintainStreak(_ChallengeRequirement):
    """1 once the current streak is alive at the end of the period's last day"""
    kind: Literal["maintain_streak"] = "maintain_streak"


class CompletionRate(_ChallengeRequirement):
    """Completion percentage (0-100) of the period's scheduled prayers"""
    kind: Literal["completion_rate"] = "completion_rate"


class PerfectDays(_ChallengeRequirement):
    """Number of perfect days in the period"""
    kind: Literal["perfect_days"] = "perfect_days"


ChallengeRequirement = Annotated[
    Union[
        CompletedPrayers,
        EarlyPrayers,
        SpecificPrayer,
        Reflections,
        MaintainStreak,
        CompletionRate,
        PerfectDays,
    ],
    Field(discriminator="kind"),
]


class ChallengeTemplate(BaseModel):
    """Static catalog entry"""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    icon: str
    period: ChallengePeriod
    target: int = Field(gt=0)
    xp_reward: int = Field(ge=0)
    requirement: ChallengeRequirement


class UserChallenge(BaseModel):
    """
    A challenge instance for one user and one period

    Unique per (user_id, template_id, period, period_key).
    """
    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    template_id: str
    period: ChallengePeriod
    period_key: str
    progress: int = Field(default=0, ge=0)
    target: int = Field(gt=0)
    xp_reward: int = Field(ge=0)
    state: ChallengeState = ChallengeState.ACTIVE
    expires_at: datetime
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    def is_expired_at(self, now: datetime) -> bool:
        return now > self.expires_at


class ChallengeStats(BaseModel):
    """Aggregate view over a user's challenge history"""
    total: int = 0
    completed: int = 0
    expired: int = 0
    active: int = 0
    completion_rate: float = 0.0
    total_xp_earned: int = 0
    by_period: dict[str, dict[str, float]] = Field(default_factory=dict)
