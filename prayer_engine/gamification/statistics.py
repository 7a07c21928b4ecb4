"""
Prayer log aggregates

Counts the badge evaluator and the challenge engine measure progress
against. Everything is derived from a snapshot of the completion log.
"""

from typing import Dict, Iterable, List, Optional
from datetime import date, timedelta
from collections import Counter, defaultdict
import logging

from pydantic import BaseModel, Field

from prayer_engine.constants import PERFECT_DAY_PRAYER_COUNT
from prayer_engine.exceptions import ComputationError
from prayer_engine.models import (
    CompletedPrayers,
    CompletionEvent,
    CompletionRate,
    EarlyPrayers,
    ExemptionWindow,
    MaintainStreak,
    PerfectDays,
    PrayerType,
    Reflections,
    SpecificPrayer,
)
from prayer_engine.gamification.streak_system import calculate_streaks, valid_events
from prayer_engine.utils.datetime_helpers import DayBoundary

logger = logging.getLogger(__name__)


class UserStatistics(BaseModel):
    """Lifetime aggregates over a user's completion log"""
    total_completed: int = 0
    prayer_counts: Dict[PrayerType, int] = Field(default_factory=dict)
    early_counts: Dict[PrayerType, int] = Field(default_factory=dict)
    total_early: int = 0
    reflection_count: int = 0
    perfect_days: int = 0
    best_consecutive_perfect_days: int = 0
    current_streak: int = 0
    best_streak: int = 0


def perfect_days(events: Iterable[CompletionEvent], boundary: DayBoundary) -> List[date]:
    """
    Days on which every prayer was completed, ascending

    Counted by distinct prayer type so a duplicated record can't stand in
    for a missing prayer.
    """
    completed_types: Dict[date, set] = defaultdict(set)
    for event in valid_events(events):
        if event.completed:
            completed_types[boundary.local_day(event.scheduled_at)].add(event.prayer_type)
    return sorted(day for day, types in completed_types.items() if len(types) >= PERFECT_DAY_PRAYER_COUNT)


def longest_consecutive_run(days: List[date]) -> int:
    """Longest run of calendar-consecutive days in an ascending list"""
    best = 0
    running = 0
    previous: Optional[date] = None
    for day in days:
        if previous is not None and day - previous == timedelta(days=1):
            running += 1
        else:
            running = 1
        best = max(best, running)
        previous = day
    return best


def aggregate_statistics(
    events: Iterable[CompletionEvent],
    exemptions: Iterable[ExemptionWindow],
    boundary: DayBoundary,
    as_of: Optional[date] = None
) -> UserStatistics:
    events = valid_events(events)
    completed = [e for e in events if e.completed]
    early = [e for e in completed if e.is_early]
    perfect = perfect_days(completed, boundary)
    streaks = calculate_streaks(events, exemptions, boundary, as_of=as_of)

    return UserStatistics(
        total_completed=len(completed),
        prayer_counts=dict(Counter(e.prayer_type for e in completed)),
        early_counts=dict(Counter(e.prayer_type for e in early)),
        total_early=len(early),
        reflection_count=sum(1 for e in events if e.has_reflection),
        perfect_days=len(perfect),
        best_consecutive_perfect_days=longest_consecutive_run(perfect),
        current_streak=streaks.current_streak,
        best_streak=streaks.best_streak,
    )


def measure_period(
    requirement,
    events: Iterable[CompletionEvent],
    exemptions: Iterable[ExemptionWindow],
    boundary: DayBoundary,
    first_day: date,
    last_day: date,
    as_of: date
) -> int:
    """
    Raw progress value of a challenge requirement over [first_day, last_day]

    Args:
        requirement: Challenge requirement variant
        events: The user's full completion log (streaks need history)
        exemptions: The user's exemption windows
        boundary: Day boundary for bucketing
        first_day: First day of the challenge period
        last_day: Last day of the challenge period
        as_of: Today; days after it are not measured yet
    """
    events = valid_events(events)
    in_period = [e for e in events if first_day <= boundary.local_day(e.scheduled_at) <= last_day]
    completed = [e for e in in_period if e.completed]

    if isinstance(requirement, CompletedPrayers):
        return len(completed)

    if isinstance(requirement, EarlyPrayers):
        return sum(
            1 for e in completed
            if e.is_early and (requirement.prayer is None or e.prayer_type == requirement.prayer)
        )

    if isinstance(requirement, SpecificPrayer):
        return sum(1 for e in completed if e.prayer_type == requirement.prayer)

    if isinstance(requirement, Reflections):
        return sum(1 for e in in_period if e.has_reflection)

    if isinstance(requirement, CompletionRate):
        if not in_period:
            return 0
        return int(len(completed) * 100 / len(in_period))

    if isinstance(requirement, PerfectDays):
        return len(perfect_days(completed, boundary))

    if isinstance(requirement, MaintainStreak):
        streaks = calculate_streaks(events, exemptions, boundary, as_of=min(as_of, last_day))
        return 1 if streaks.current_streak > 0 else 0

    raise ComputationError(
        message=f"Unsupported challenge requirement: {type(requirement).__name__}",
        config_key="CHALLENGE_TEMPLATES"
    )
