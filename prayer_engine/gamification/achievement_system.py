"""
Badge System

Checks badge requirements against the completion log and awards:
- at most once per (user, badge), enforced by the store's uniqueness guard
- the badge row and its XP transaction are committed together
- a losing concurrent evaluation sees the badge as already held
"""

from typing import Callable, List, Optional, Union
from datetime import datetime
import logging

from prayer_engine.exceptions import ComputationError, ConflictError, NotFoundError
from prayer_engine.gamification.statistics import UserStatistics, aggregate_statistics
from prayer_engine.gamification.xp_system import XPLedger
from prayer_engine.models import (
    BadgeDefinition,
    BadgeProgress,
    BadgeRarity,
    ConsecutivePerfectDays,
    EarlyCompletionCount,
    PrayerType,
    ReflectionCount,
    SpecificPrayerCount,
    StreakLength,
    TotalCompletedCount,
    UserBadge,
    XPSource,
)
from prayer_engine.observability.metrics import record_badge_award
from prayer_engine.store.base import RecordStore
from prayer_engine.utils.datetime_helpers import DayBoundary, now_utc

logger = logging.getLogger(__name__)


BADGE_CATALOG: List[BadgeDefinition] = [
    # Common
    BadgeDefinition(
        id="first_steps", name="First Steps", description="Complete your first prayer",
        icon="🌟", rarity=BadgeRarity.COMMON, xp_reward=50,
        requirement=TotalCompletedCount(value=1),
    ),
    BadgeDefinition(
        id="getting_started", name="Getting Started", description="Complete 5 prayers total",
        icon="📚", rarity=BadgeRarity.COMMON, xp_reward=75,
        requirement=TotalCompletedCount(value=5),
    ),
    BadgeDefinition(
        id="building_habit", name="Building Habit", description="Complete 3 days in a row",
        icon="🔄", rarity=BadgeRarity.COMMON, xp_reward=100,
        requirement=StreakLength(value=3),
    ),
    # Rare
    BadgeDefinition(
        id="week_warrior", name="Week Warrior", description="Maintain 7-day streak",
        icon="⚔️", rarity=BadgeRarity.RARE, xp_reward=150,
        requirement=StreakLength(value=7),
    ),
    BadgeDefinition(
        id="prayer_master", name="Prayer Master", description="Complete 100 prayers total",
        icon="🕌", rarity=BadgeRarity.RARE, xp_reward=200,
        requirement=TotalCompletedCount(value=100),
    ),
    BadgeDefinition(
        id="night_warrior", name="Night Warrior", description="Complete Isha prayer 25 times",
        icon="🌙", rarity=BadgeRarity.RARE, xp_reward=175,
        requirement=SpecificPrayerCount(value=25, prayer=PrayerType.ISHA),
    ),
    BadgeDefinition(
        id="midday_devotee", name="Midday Devotee", description="Complete Dhuhr prayer 30 times",
        icon="☀️", rarity=BadgeRarity.RARE, xp_reward=175,
        requirement=SpecificPrayerCount(value=30, prayer=PrayerType.DHUHR),
    ),
    # Epic
    BadgeDefinition(
        id="dawn_devotee", name="Dawn Devotee", description="Complete Fajr prayer 10 times",
        icon="🌅", rarity=BadgeRarity.EPIC, xp_reward=300,
        requirement=SpecificPrayerCount(value=10, prayer=PrayerType.FAJR),
    ),
    BadgeDefinition(
        id="perfect_week", name="Perfect Week", description="Complete all prayers for 7 consecutive days",
        icon="💎", rarity=BadgeRarity.EPIC, xp_reward=400,
        requirement=ConsecutivePerfectDays(value=7),
    ),
    BadgeDefinition(
        id="early_bird", name="Early Bird", description="Complete Fajr before sunrise 20 times",
        icon="🐦", rarity=BadgeRarity.EPIC, xp_reward=350,
        requirement=EarlyCompletionCount(value=20, prayer=PrayerType.FAJR),
    ),
    BadgeDefinition(
        id="reflection_master", name="Reflection Master", description="Add reflections to 50 prayers",
        icon="📝", rarity=BadgeRarity.EPIC, xp_reward=300,
        requirement=ReflectionCount(value=50),
    ),
    # Legendary
    BadgeDefinition(
        id="consistency_king", name="Consistency King", description="Maintain 30-day streak",
        icon="👑", rarity=BadgeRarity.LEGENDARY, xp_reward=500,
        requirement=StreakLength(value=30),
    ),
    BadgeDefinition(
        id="spiritual_warrior", name="Spiritual Warrior", description="Maintain 60-day streak",
        icon="⚡", rarity=BadgeRarity.LEGENDARY, xp_reward=750,
        requirement=StreakLength(value=60),
    ),
    BadgeDefinition(
        id="prayer_legend", name="Prayer Legend", description="Complete 500 prayers total",
        icon="🏆", rarity=BadgeRarity.LEGENDARY, xp_reward=1000,
        requirement=TotalCompletedCount(value=500),
    ),
    BadgeDefinition(
        id="master_of_time", name="Master of Time", description="Complete 100 early prayers",
        icon="⏰", rarity=BadgeRarity.LEGENDARY, xp_reward=800,
        requirement=EarlyCompletionCount(value=100),
    ),
]


def get_badge_by_id(badge_id: str, catalog: Optional[List[BadgeDefinition]] = None) -> BadgeDefinition:
    """
    Look up a catalog badge

    Raises:
        NotFoundError: If no badge has this id
    """
    for badge in catalog if catalog is not None else BADGE_CATALOG:
        if badge.id == badge_id:
            return badge
    raise NotFoundError(message=f"Unknown badge '{badge_id}'", record_type="Badge", record_id=badge_id)


def requirement_metric(badge: BadgeDefinition, stats: UserStatistics) -> int:
    """Raw metric a badge requirement is measured on"""
    requirement = badge.requirement

    if isinstance(requirement, TotalCompletedCount):
        return stats.total_completed
    if isinstance(requirement, StreakLength):
        return stats.current_streak
    if isinstance(requirement, SpecificPrayerCount):
        return stats.prayer_counts.get(requirement.prayer, 0)
    if isinstance(requirement, ConsecutivePerfectDays):
        return stats.best_consecutive_perfect_days
    if isinstance(requirement, EarlyCompletionCount):
        if requirement.prayer is None:
            return stats.total_early
        return stats.early_counts.get(requirement.prayer, 0)
    if isinstance(requirement, ReflectionCount):
        return stats.reflection_count

    raise ComputationError(
        message=f"Badge '{badge.id}' has unsupported requirement {type(requirement).__name__}",
        config_key="BADGE_CATALOG"
    )


def progress_from_stats(badge: BadgeDefinition, stats: UserStatistics) -> int:
    """Progress toward a badge, capped at its target"""
    return min(requirement_metric(badge, stats), badge.requirement.value)


class BadgeEvaluator:
    """
    Evaluates and awards catalog badges

    Args:
        store: Record Store for the completion log and badge table
        ledger: XP ledger credited with badge rewards
        catalog: Badge definitions (defaults to BADGE_CATALOG)
        clock: Source of "now"
    """

    def __init__(
        self,
        store: RecordStore,
        ledger: XPLedger,
        catalog: Optional[List[BadgeDefinition]] = None,
        clock: Callable[[], datetime] = now_utc
    ):
        self.store = store
        self.ledger = ledger
        self.catalog = list(catalog) if catalog is not None else list(BADGE_CATALOG)
        self.clock = clock

        ids = [badge.id for badge in self.catalog]
        if len(ids) != len(set(ids)):
            raise ComputationError(message="Badge catalog has duplicate ids", config_key="BADGE_CATALOG")

    async def load_statistics(self, user_id: str, boundary: DayBoundary) -> UserStatistics:
        events = await self.store.fetch_events(user_id)
        exemptions = await self.store.fetch_exemptions(user_id)
        return aggregate_statistics(events, exemptions, boundary, as_of=boundary.today(self.clock()))

    async def progress_for(
        self,
        user_id: str,
        badge: Union[BadgeDefinition, str],
        boundary: Optional[DayBoundary] = None
    ) -> int:
        """
        Current progress toward one badge, in [0, target]

        Raises:
            NotFoundError: If badge is an id not in the catalog
        """
        if isinstance(badge, str):
            badge = get_badge_by_id(badge, self.catalog)
        stats = await self.load_statistics(user_id, boundary or DayBoundary())
        return progress_from_stats(badge, stats)

    async def get_badge_progress(
        self,
        user_id: str,
        boundary: Optional[DayBoundary] = None
    ) -> List[BadgeProgress]:
        """Progress toward every catalog badge, earned ones included"""
        stats = await self.load_statistics(user_id, boundary or DayBoundary())
        earned = {b.badge_id for b in await self.store.fetch_user_badges(user_id)}

        return [
            BadgeProgress(
                badge_id=badge.id,
                name=badge.name,
                icon=badge.icon,
                rarity=badge.rarity,
                progress=badge.requirement.value if badge.id in earned else progress_from_stats(badge, stats),
                target=badge.requirement.value,
                earned=badge.id in earned,
                xp_reward=badge.xp_reward,
            )
            for badge in self.catalog
        ]

    async def evaluate_and_award(
        self,
        user_id: str,
        boundary: Optional[DayBoundary] = None
    ) -> List[UserBadge]:
        """
        Award every badge whose requirement is now met

        Returns only the badges newly awarded by this call. Each badge is
        committed in its own transaction; a store failure stops evaluation and
        propagates, leaving earlier awards in place.

        Raises:
            StoreError: Badge or ledger write failed
        """
        stats = await self.load_statistics(user_id, boundary or DayBoundary())
        held = {b.badge_id for b in await self.store.fetch_user_badges(user_id)}

        newly_awarded: List[UserBadge] = []
        for badge in self.catalog:
            if badge.id in held:
                continue
            if requirement_metric(badge, stats) < badge.requirement.value:
                continue

            user_badge = await self._award(user_id, badge)
            if user_badge is not None:
                newly_awarded.append(user_badge)

        if newly_awarded:
            logger.info(f"User {user_id} earned {len(newly_awarded)} badge(s): {[b.badge_id for b in newly_awarded]}")

        return newly_awarded

    async def _award(self, user_id: str, badge: BadgeDefinition) -> Optional[UserBadge]:
        try:
            async with self.store.transaction():
                result = await self.store.insert_badge_if_absent(user_id, badge.id, badge.xp_reward)
                if not result.inserted:
                    logger.debug(f"Badge {badge.id} already held by user {user_id}")
                    return None

                if badge.xp_reward > 0:
                    await self.ledger.award(
                        user_id,
                        badge.xp_reward,
                        XPSource.BADGE,
                        source_id=badge.id,
                        description=f"Earned {badge.name} badge"
                    )
        except ConflictError:
            # A concurrent evaluation committed the same badge first
            logger.debug(f"Badge {badge.id} for user {user_id} awarded concurrently")
            return None

        record_badge_award(badge.rarity.value)
        logger.info(f"Awarded badge {badge.id} to user {user_id} (+{badge.xp_reward} XP)")
        return result.user_badge
