"""
Day Boundary and Period Utilities

All day bucketing goes through an explicit DayBoundary so that every module
agrees on what "a calendar day" is for a user:
1. Timestamps are stored in UTC; naive datetimes are read as UTC
2. A day is the local date in the boundary's timezone, shifted by start_hour
3. Weekly periods are ISO weeks (Monday start) in that same timezone
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, Optional, Tuple
from zoneinfo import ZoneInfo

from prayer_engine.config import DEFAULT_TIMEZONE, DAY_START_HOUR
from prayer_engine.exceptions import ValidationError
from prayer_engine.models.challenge import ChallengePeriod

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DayBoundary:
    """
    Where one calendar day ends and the next begins

    Args:
        timezone: IANA zone the user's days are counted in
        start_hour: Local hour (0-23) at which a new day starts
    """
    timezone: ZoneInfo = field(default_factory=lambda: ZoneInfo(DEFAULT_TIMEZONE))
    start_hour: int = DAY_START_HOUR

    def __post_init__(self):
        if not 0 <= self.start_hour <= 23:
            raise ValidationError(
                message="start_hour must be between 0 and 23",
                field="start_hour",
                value=self.start_hour
            )

    @classmethod
    def from_name(cls, tz_name: str, start_hour: int = 0) -> "DayBoundary":
        return cls(timezone=ZoneInfo(tz_name), start_hour=start_hour)

    def local_day(self, moment: datetime) -> date:
        """Calendar day a timestamp falls on"""
        local = to_utc(moment).astimezone(self.timezone)
        return (local - timedelta(hours=self.start_hour)).date()

    def day_start(self, day: date) -> datetime:
        """First instant of a calendar day, in UTC"""
        local = datetime.combine(day, time(hour=self.start_hour), tzinfo=self.timezone)
        return local.astimezone(timezone.utc)

    def today(self, now: Optional[datetime] = None) -> date:
        return self.local_day(now or now_utc())


def now_utc() -> datetime:
    """
    Get current datetime in UTC (timezone-aware)

    Returns:
        Current datetime in UTC with timezone info
    """
    return datetime.now(timezone.utc)


def to_utc(moment: datetime) -> datetime:
    """Normalize to an aware UTC datetime; naive input is taken as UTC"""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def iter_days(start: date, end: date) -> Iterator[date]:
    """Inclusive range of days"""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def period_start_day(period: ChallengePeriod, day: date) -> date:
    """First day of the period containing day"""
    if period == ChallengePeriod.DAILY:
        return day
    return day - timedelta(days=day.weekday())


def period_key(period: ChallengePeriod, day: date) -> str:
    """
    Stable identifier for a period instance

    Examples:
        daily  -> '2026-10-18'
        weekly -> '2026-W42'
    """
    if period == ChallengePeriod.DAILY:
        return day.isoformat()
    iso_year, iso_week, _ = day.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def period_days(period: ChallengePeriod, day: date) -> Tuple[date, date]:
    """(first_day, last_day) of the period containing day, inclusive"""
    first = period_start_day(period, day)
    if period == ChallengePeriod.DAILY:
        return first, first
    return first, first + timedelta(days=6)


def period_end(period: ChallengePeriod, day: date, boundary: DayBoundary) -> datetime:
    """Last instant (UTC) of the period containing day"""
    _, last = period_days(period, day)
    return boundary.day_start(last + timedelta(days=1)) - timedelta(microseconds=1)
