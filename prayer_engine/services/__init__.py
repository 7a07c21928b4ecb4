"""
Service Layer Package

- GamificationService: streaks, XP/levels, badges and challenges behind one facade
- ServiceContainer: wires the service to a Record Store
"""

from prayer_engine.services.gamification_service import GamificationService, PrayerCompletionResult
from prayer_engine.services.container import ServiceContainer, get_container, init_container, init_postgres_container

__all__ = [
    "GamificationService",
    "PrayerCompletionResult",
    "ServiceContainer",
    "get_container",
    "init_container",
    "init_postgres_container",
]
