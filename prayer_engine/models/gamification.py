"""XP ledger and level/rank models"""
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime, timezone
from uuid import uuid4


class XPSource(str, Enum):
    """Where an XP transaction came from"""
    PRAYER = "prayer"
    STREAK_DAY = "streak_day"
    BADGE = "badge"
    CHALLENGE = "challenge"
    MILESTONE = "milestone"
    CORRECTION = "correction"


class XPTransaction(BaseModel):
    """Append-only ledger row; a user's total XP is the sum of amounts"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    amount: int
    source: XPSource
    source_id: Optional[str] = None
    description: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Rank(BaseModel):
    """Named tier covering an inclusive level range (max_level None = unbounded)"""
    model_config = ConfigDict(frozen=True)

    min_level: int = Field(ge=1)
    max_level: Optional[int] = None
    name: str
    color: str
    benefits: List[str]

    def contains(self, level: int) -> bool:
        return level >= self.min_level and (self.max_level is None or level <= self.max_level)


class LevelUpResult(BaseModel):
    """Returned by an XP award only when the level strictly increased"""
    previous_level: int
    new_level: int
    new_rank: str
    unlocked_benefits: List[str]


class GamificationProfile(BaseModel):
    """Level/rank projection; a pure function of total XP"""
    level: int
    xp_within_level: int
    xp_to_next_level: int
    total_xp: int
    rank: str
    rank_color: str
    benefits: List[str]
