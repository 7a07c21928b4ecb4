"""Global test fixtures and utilities for prayer engine tests"""
import itertools
import pytest
from datetime import date, datetime, time, timedelta, timezone

from prayer_engine.models import CompletionEvent, PrayerType
from prayer_engine.store.memory import InMemoryRecordStore
from prayer_engine.utils.datetime_helpers import DayBoundary


# Sunday of ISO week 2026-W42
NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
TODAY = NOW.date()

PRAYER_HOURS = {
    PrayerType.FAJR: 5,
    PrayerType.DHUHR: 12,
    PrayerType.ASR: 15,
    PrayerType.MAGHRIB: 18,
    PrayerType.ISHA: 20,
}


# ============================================================================
# Time Fixtures
# ============================================================================

@pytest.fixture
def now():
    return NOW


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def clock():
    """Frozen clock at NOW"""
    return lambda: NOW


@pytest.fixture
def boundary():
    return DayBoundary.from_name("UTC")


# ============================================================================
# Store Fixtures
# ============================================================================

@pytest.fixture
def store():
    return InMemoryRecordStore()


# ============================================================================
# Event Factories
# ============================================================================

@pytest.fixture
def make_event():
    """
    Factory for completion events

    Events are scheduled at a fixed UTC hour per prayer; completed events are
    completed 10 minutes late unless early=True.
    """
    counter = itertools.count(1)

    def _make(
        day: date,
        prayer: PrayerType = PrayerType.FAJR,
        completed: bool = True,
        user_id: str = "user-1",
        early: bool = False,
        reflection: bool = False,
    ) -> CompletionEvent:
        scheduled = datetime.combine(day, time(PRAYER_HOURS[prayer]), tzinfo=timezone.utc)
        completed_at = None
        if completed:
            completed_at = scheduled + timedelta(minutes=-10 if early else 10)
        return CompletionEvent(
            id=f"evt-{next(counter)}",
            user_id=user_id,
            prayer_type=prayer,
            scheduled_at=scheduled,
            completed_at=completed_at,
            completed=completed,
            has_reflection=reflection,
        )

    return _make


@pytest.fixture
def make_day(make_event):
    """Factory for one day's five prayers, the first `completed` of them done"""
    def _make(day: date, completed: int = 5, user_id: str = "user-1", **kwargs):
        return [
            make_event(day, prayer, completed=index < completed, user_id=user_id, **kwargs)
            for index, prayer in enumerate(PrayerType)
        ]

    return _make
