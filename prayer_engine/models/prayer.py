"""Prayer activity models: the completion log and exemption windows"""
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional
from datetime import date, datetime, timezone


class PrayerType(str, Enum):
    """The five daily prayers"""
    FAJR = "fajr"
    DHUHR = "dhuhr"
    ASR = "asr"
    MAGHRIB = "maghrib"
    ISHA = "isha"


class CompletionEvent(BaseModel):
    """
    One scheduled prayer and whether it was completed

    Immutable once written. scheduled_at may be missing on malformed rows;
    calculators skip such events instead of failing.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    prayer_type: PrayerType
    scheduled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completed: bool = False
    has_reflection: bool = False

    @field_validator("scheduled_at", "completed_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        """Naive timestamps are UTC"""
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def is_early(self) -> bool:
        """Completed before its scheduled time"""
        return (
            self.completed
            and self.completed_at is not None
            and self.scheduled_at is not None
            and self.completed_at < self.scheduled_at
        )


class ExemptionWindow(BaseModel):
    """Date range during which missed prayers don't break a streak"""
    model_config = ConfigDict(frozen=True)

    user_id: str
    start_date: date
    end_date: Optional[date] = None  # None = through today and later
    reason: Optional[str] = None

    @model_validator(mode="after")
    def _check_range(self) -> "ExemptionWindow":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

    def covers(self, day: date) -> bool:
        """Inclusive bounds; an open end covers every later day"""
        if day < self.start_date:
            return False
        return self.end_date is None or day <= self.end_date


class DayStatus(str, Enum):
    """Streak classification of a calendar day"""
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"


class DaySummary(BaseModel):
    """Per-day bucket used by the streak calculator"""
    day: date
    total: int = 0
    completed: int = 0
    exempt: bool = False
    status: DayStatus = DayStatus.INCOMPLETE

    @property
    def ratio(self) -> float:
        return self.completed / self.total if self.total else 0.0


class ConsistencyStats(BaseModel):
    """Derived streak/completion statistics; always recomputable from the log"""
    user_id: str
    current_streak: int = Field(default=0, ge=0)
    best_streak: int = Field(default=0, ge=0)
    total_completed: int = Field(default=0, ge=0)
    total_missed: int = Field(default=0, ge=0)
    completion_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    computed_at: datetime

    @model_validator(mode="after")
    def _streak_invariant(self) -> "ConsistencyStats":
        if self.current_streak > self.best_streak:
            raise ValueError("current_streak cannot exceed best_streak")
        return self
