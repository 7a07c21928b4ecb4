"""Record Store interface and implementations"""
from prayer_engine.store.base import RecordStore, DateRange
from prayer_engine.store.memory import InMemoryRecordStore

__all__ = ["RecordStore", "DateRange", "InMemoryRecordStore"]
