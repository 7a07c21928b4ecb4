"""Prayer consistency and gamification engine"""

from prayer_engine.services.gamification_service import GamificationService, PrayerCompletionResult
from prayer_engine.store import InMemoryRecordStore, RecordStore
from prayer_engine.utils.datetime_helpers import DayBoundary

__version__ = "0.1.0"

__all__ = [
    "GamificationService",
    "PrayerCompletionResult",
    "InMemoryRecordStore",
    "RecordStore",
    "DayBoundary",
]
