"""
GamificationService - Prayer Engine Facade

Single entry point the surrounding application calls. Wires the streak
calculator, XP ledger, badge evaluator and challenge engine to one Record
Store. Read projections retry transient store errors; writes surface them.
"""

import logging
from typing import Callable, List, Optional
from datetime import datetime, timedelta

from pydantic import BaseModel, Field

from prayer_engine.constants import XP_MILESTONE, XP_PERFECT_DAY
from prayer_engine.exceptions import ValidationError
from prayer_engine.gamification.achievement_system import BadgeEvaluator
from prayer_engine.gamification.challenges import ChallengeEngine, SelectionStrategy
from prayer_engine.gamification.statistics import perfect_days
from prayer_engine.gamification.streak_system import (
    build_day_timeline,
    compute_consistency_stats,
    streaks_from_timeline,
    milestone_reached,
)
from prayer_engine.gamification.xp_system import XPLedger, calculate_prayer_xp
from prayer_engine.models import (
    BadgeDefinition,
    BadgeProgress,
    ChallengePeriod,
    ChallengeStats,
    ChallengeTemplate,
    CompletionEvent,
    ConsistencyStats,
    GamificationProfile,
    LevelUpResult,
    UserBadge,
    UserChallenge,
    XPSource,
    XPTransaction,
)
from prayer_engine.resilience.retry import with_retry
from prayer_engine.store.base import RecordStore
from prayer_engine.utils.datetime_helpers import DayBoundary, now_utc

logger = logging.getLogger(__name__)


class PrayerCompletionResult(BaseModel):
    """What one processed completion earned"""
    xp_awarded: int = 0
    level_up: Optional[LevelUpResult] = None
    current_streak: int = 0
    perfect_day: bool = False
    milestone_reached: Optional[int] = None
    badges_awarded: List[UserBadge] = Field(default_factory=list)


class GamificationService:
    """
    Service for prayer consistency and gamification.

    Responsibilities:
    - Consistency stats and streaks
    - XP awarding and level/rank projection
    - Badge evaluation and progress
    - Challenge generation, progress and completion

    Args:
        store: Record Store shared by every component
        boundary: Default day boundary (callers may pass their own per call)
        clock: Source of "now"
        strategy: Challenge template selection
        badge_catalog: Override of the badge catalog
        challenge_templates: Override of the challenge catalog
    """

    def __init__(
        self,
        store: RecordStore,
        boundary: Optional[DayBoundary] = None,
        clock: Callable[[], datetime] = now_utc,
        strategy: Optional[SelectionStrategy] = None,
        badge_catalog: Optional[List[BadgeDefinition]] = None,
        challenge_templates: Optional[List[ChallengeTemplate]] = None
    ):
        self.store = store
        self.boundary = boundary or DayBoundary()
        self.clock = clock
        self.ledger = XPLedger(store, clock=clock)
        self.badges = BadgeEvaluator(store, self.ledger, catalog=badge_catalog, clock=clock)
        self.challenges = ChallengeEngine(
            store, self.ledger, strategy=strategy, templates=challenge_templates, clock=clock
        )
        logger.debug("GamificationService initialized")

    # =========================================================================
    # Consistency
    # =========================================================================

    @with_retry()
    async def compute_consistency(
        self,
        user_id: str,
        window_days: Optional[int] = None,
        boundary: Optional[DayBoundary] = None
    ) -> ConsistencyStats:
        """
        Streaks and completion totals for a user

        Args:
            user_id: User to compute for
            window_days: Only consider the trailing N days (today included)
            boundary: Day boundary override
        """
        boundary = boundary or self.boundary
        now = self.clock()

        date_range = None
        if window_days is not None:
            if window_days <= 0:
                raise ValidationError(message="window_days must be positive", field="window_days", value=window_days)
            today = boundary.today(now)
            date_range = (
                boundary.day_start(today - timedelta(days=window_days - 1)),
                boundary.day_start(today + timedelta(days=1)),
            )

        events = await self.store.fetch_events(user_id, date_range)
        exemptions = await self.store.fetch_exemptions(user_id)
        return compute_consistency_stats(user_id, events, exemptions, boundary, now=now)

    # =========================================================================
    # XP / levels
    # =========================================================================

    async def award_xp(
        self,
        user_id: str,
        amount: int,
        source: XPSource,
        source_id: Optional[str] = None,
        description: Optional[str] = None
    ) -> Optional[LevelUpResult]:
        return await self.ledger.award(user_id, amount, source, source_id, description)

    @with_retry()
    async def get_profile(self, user_id: str) -> GamificationProfile:
        return await self.ledger.profile(user_id)

    @with_retry()
    async def get_xp_history(self, user_id: str, limit: int = 50) -> List[XPTransaction]:
        return await self.ledger.history(user_id, limit=limit)

    # =========================================================================
    # Badges
    # =========================================================================

    async def evaluate_badges(self, user_id: str, boundary: Optional[DayBoundary] = None) -> List[UserBadge]:
        """Award newly earned badges; returns only the ones awarded by this call"""
        return await self.badges.evaluate_and_award(user_id, boundary or self.boundary)

    @with_retry()
    async def get_badge_progress(self, user_id: str, boundary: Optional[DayBoundary] = None) -> List[BadgeProgress]:
        return await self.badges.get_badge_progress(user_id, boundary or self.boundary)

    # =========================================================================
    # Challenges
    # =========================================================================

    async def generate_challenges(
        self,
        user_id: str,
        period: ChallengePeriod,
        boundary: Optional[DayBoundary] = None
    ) -> List[UserChallenge]:
        return await self.challenges.generate(user_id, period, boundary or self.boundary)

    async def update_challenge_progress(self, challenge_id: str, progress: int) -> None:
        await self.challenges.update_progress(challenge_id, progress)

    async def complete_challenge(self, challenge_id: str) -> None:
        await self.challenges.complete(challenge_id)

    async def refresh_challenge_progress(
        self,
        user_id: str,
        boundary: Optional[DayBoundary] = None
    ) -> List[UserChallenge]:
        return await self.challenges.refresh_progress(user_id, boundary or self.boundary)

    async def expire_lapsed(self, user_id: str) -> List[UserChallenge]:
        return await self.challenges.expire_lapsed(user_id)

    async def get_challenge_stats(self, user_id: str) -> ChallengeStats:
        return await self.challenges.get_stats(user_id)

    # =========================================================================
    # Completion processing
    # =========================================================================

    async def process_prayer_completion(
        self,
        event: CompletionEvent,
        boundary: Optional[DayBoundary] = None
    ) -> PrayerCompletionResult:
        """
        Award everything one completed prayer earns

        Safe to call again for the same event: prayer XP is keyed on the
        event id, the perfect-day bonus on the day, and the milestone bonus
        on the milestone and the day its streak started.

        Raises:
            ValidationError: The event is not completed or has no schedule
            StoreError: A write failed
        """
        if not event.completed:
            raise ValidationError(
                message=f"Prayer record {event.id} is not completed",
                field="completed",
                value=event.completed,
                user_id=event.user_id
            )
        if event.scheduled_at is None:
            raise ValidationError(
                message=f"Prayer record {event.id} has no scheduled time",
                field="scheduled_at",
                value=None,
                user_id=event.user_id
            )

        boundary = boundary or self.boundary
        user_id = event.user_id
        result = PrayerCompletionResult()

        amount = calculate_prayer_xp(event.prayer_type, event.is_early, event.has_reflection)
        awarded, level_up = await self.ledger.award_once(
            user_id, amount, XPSource.PRAYER, event.id,
            description=f"Completed {event.prayer_type.value.capitalize()} prayer"
        )
        if awarded:
            result.xp_awarded += amount
            result.level_up = level_up

        events = await self.store.fetch_events(user_id)
        exemptions = await self.store.fetch_exemptions(user_id)
        today = boundary.today(self.clock())

        # Perfect day bonus, once per local day
        day = boundary.local_day(event.scheduled_at)
        if day in perfect_days(events, boundary):
            result.perfect_day = True
            awarded, level_up = await self.ledger.award_once(
                user_id, XP_PERFECT_DAY, XPSource.PRAYER, f"perfect_day:{day.isoformat()}",
                description=f"Perfect day {day.isoformat()}"
            )
            if awarded:
                result.xp_awarded += XP_PERFECT_DAY
                result.level_up = level_up or result.level_up

        # Streak milestone bonus, once per streak
        timeline = build_day_timeline(events, exemptions, boundary, as_of=today)
        streaks = streaks_from_timeline(timeline)
        result.current_streak = streaks.current_streak
        milestone = milestone_reached(streaks.current_streak)
        if milestone:
            streak_start = timeline[-1].day - timedelta(days=milestone - 1)
            awarded, level_up = await self.ledger.award_once(
                user_id, XP_MILESTONE, XPSource.MILESTONE, f"streak_{milestone}:{streak_start.isoformat()}",
                description=f"{milestone}-day streak milestone"
            )
            if awarded:
                result.milestone_reached = milestone
                result.xp_awarded += XP_MILESTONE
                result.level_up = level_up or result.level_up

        result.badges_awarded = await self.badges.evaluate_and_award(user_id, boundary)

        logger.info(
            f"Processed {event.prayer_type.value} completion for user {user_id}: "
            f"+{result.xp_awarded} XP, streak {result.current_streak}, "
            f"{len(result.badges_awarded)} new badge(s)"
        )
        return result
