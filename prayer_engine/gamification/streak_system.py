"""
Prayer Consistency Streaks

Derives current/best streaks from the completion log:
- events are bucketed into calendar days using an explicit DayBoundary
- a day is COMPLETE at >= 80% completion or when an exemption covers it
- a day without scheduled prayers is INCOMPLETE unless exempt
- today is left out while it has no records yet (still in progress)

Everything here is a pure function of the event/exemption snapshot it is
given, so concurrent recomputation is always safe.
"""

from typing import Dict, Iterable, List, NamedTuple, Optional
from datetime import date, datetime
import logging

from prayer_engine.constants import STREAK_COMPLETION_THRESHOLD, STREAK_MILESTONES, XP_MILESTONE
from prayer_engine.models import (
    CompletionEvent,
    ConsistencyStats,
    DayStatus,
    DaySummary,
    ExemptionWindow,
)
from prayer_engine.utils.datetime_helpers import DayBoundary, iter_days, now_utc, to_utc

logger = logging.getLogger(__name__)


class StreakResult(NamedTuple):
    current_streak: int
    best_streak: int


class Milestone(NamedTuple):
    days: int
    reward: str
    xp: int


# Rewards shown for upcoming streak milestones
MILESTONE_REWARDS: List[Milestone] = [
    Milestone(7, "Week Warrior Badge", 150),
    Milestone(14, "Two Week Champion", 200),
    Milestone(30, "Monthly Master Badge", 500),
    Milestone(60, "Consistency Expert", 750),
    Milestone(100, "Century Achiever", 1000),
    Milestone(365, "Year-Long Devotee", 5000),
]


def valid_events(events: Iterable[CompletionEvent]) -> List[CompletionEvent]:
    """Drop events without a scheduled timestamp, logging each one"""
    kept = []
    for event in events:
        if event.scheduled_at is None:
            logger.warning(f"Skipping malformed prayer record {event.id} for user {event.user_id}: no scheduled_at")
            continue
        kept.append(event)
    return kept


def is_exempt(day: date, exemptions: Iterable[ExemptionWindow]) -> bool:
    return any(window.covers(day) for window in exemptions)


def bucket_by_day(
    events: Iterable[CompletionEvent],
    boundary: DayBoundary
) -> Dict[date, DaySummary]:
    """Group events into per-day totals (malformed events are skipped)"""
    buckets: Dict[date, DaySummary] = {}
    for event in valid_events(events):
        day = boundary.local_day(event.scheduled_at)
        summary = buckets.get(day)
        if summary is None:
            summary = buckets[day] = DaySummary(day=day)
        summary.total += 1
        if event.completed:
            summary.completed += 1
    return buckets


def classify_day(summary: DaySummary, exemptions: Iterable[ExemptionWindow]) -> DayStatus:
    """
    COMPLETE iff completion ratio >= 0.8 or the day is exempt

    A day with zero scheduled events has ratio 0 and is INCOMPLETE unless exempt.
    """
    if is_exempt(summary.day, exemptions):
        return DayStatus.COMPLETE
    if summary.total > 0 and summary.ratio >= STREAK_COMPLETION_THRESHOLD:
        return DayStatus.COMPLETE
    return DayStatus.INCOMPLETE


def build_day_timeline(
    events: Iterable[CompletionEvent],
    exemptions: List[ExemptionWindow],
    boundary: DayBoundary,
    as_of: date
) -> List[DaySummary]:
    """
    Every calendar day from the first recorded day through as_of, classified

    Days after as_of are ignored. as_of itself is dropped while it has no
    records and no exemption, so an unfinished today doesn't break a streak.
    """
    buckets = {day: s for day, s in bucket_by_day(events, boundary).items() if day <= as_of}
    if not buckets:
        return []

    timeline = []
    for day in iter_days(min(buckets), as_of):
        summary = buckets.get(day) or DaySummary(day=day)
        summary.exempt = is_exempt(day, exemptions)
        summary.status = classify_day(summary, exemptions)
        timeline.append(summary)

    last = timeline[-1]
    if last.day == as_of and last.total == 0 and not last.exempt:
        timeline.pop()

    return timeline


def streaks_from_timeline(timeline: List[DaySummary]) -> StreakResult:
    """Current = trailing COMPLETE run; best = longest COMPLETE run"""
    current = 0
    for summary in reversed(timeline):
        if summary.status != DayStatus.COMPLETE:
            break
        current += 1

    best = 0
    running = 0
    for summary in timeline:
        if summary.status == DayStatus.COMPLETE:
            running += 1
            best = max(best, running)
        else:
            running = 0

    return StreakResult(current_streak=current, best_streak=best)


def calculate_streaks(
    events: Iterable[CompletionEvent],
    exemptions: Iterable[ExemptionWindow],
    boundary: DayBoundary,
    as_of: Optional[date] = None
) -> StreakResult:
    """
    Compute current and best streak

    Args:
        events: Completion events for one user (any order)
        exemptions: Exemption windows for that user
        boundary: Day boundary used to bucket events
        as_of: Day to evaluate "current" at (defaults to today in the boundary)

    Returns:
        StreakResult(current_streak, best_streak); (0, 0) for an empty log
    """
    if as_of is None:
        as_of = boundary.today()
    timeline = build_day_timeline(events, list(exemptions), boundary, as_of)
    return streaks_from_timeline(timeline)


def compute_consistency_stats(
    user_id: str,
    events: Iterable[CompletionEvent],
    exemptions: Iterable[ExemptionWindow],
    boundary: DayBoundary,
    now: Optional[datetime] = None
) -> ConsistencyStats:
    """
    Build ConsistencyStats for a user

    Missed = not completed and scheduled at or before now. Prayers still ahead
    count toward neither total.
    """
    now = to_utc(now or now_utc())
    events = valid_events(events)
    streaks = calculate_streaks(events, exemptions, boundary, as_of=boundary.local_day(now))

    total_completed = sum(1 for e in events if e.completed)
    total_missed = sum(1 for e in events if not e.completed and to_utc(e.scheduled_at) <= now)
    counted = total_completed + total_missed

    return ConsistencyStats(
        user_id=user_id,
        current_streak=streaks.current_streak,
        best_streak=streaks.best_streak,
        total_completed=total_completed,
        total_missed=total_missed,
        completion_rate=round(total_completed / counted, 4) if counted else 0.0,
        computed_at=now,
    )


def milestone_reached(current_streak: int) -> Optional[int]:
    """The milestone hit exactly by this streak length, if any"""
    return current_streak if current_streak in STREAK_MILESTONES else None


def next_streak_milestone(current_streak: int) -> Milestone:
    """
    Next milestone the user is working toward

    Past the last fixed milestone, a rolling one 100 days ahead.
    """
    for milestone in MILESTONE_REWARDS:
        if current_streak < milestone.days:
            return milestone
    return Milestone(current_streak + 100, "Spiritual Legend", 10000)


def milestone_xp(current_streak: int) -> int:
    """Bonus XP for hitting a milestone exactly"""
    return XP_MILESTONE if milestone_reached(current_streak) else 0
