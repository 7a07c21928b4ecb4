"""
Challenges System

Time-boxed daily/weekly challenges generated from static templates.

State machine per instance:
    ACTIVE --complete() before expires_at--> COMPLETED
    ACTIVE --now > expires_at, incomplete--> EXPIRED

Both end states are terminal. Generation is idempotent per period key and
template selection goes through an injected, seedable strategy.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Sequence
from datetime import datetime
import random
import logging

from prayer_engine.config import CHALLENGE_SEED
from prayer_engine.constants import DAILY_CHALLENGE_COUNT, WEEKLY_CHALLENGE_COUNT
from prayer_engine.exceptions import ComputationError, NotFoundError, ValidationError
from prayer_engine.gamification.statistics import measure_period
from prayer_engine.gamification.xp_system import XPLedger
from prayer_engine.models import (
    ChallengePeriod,
    ChallengeState,
    ChallengeStats,
    ChallengeTemplate,
    CompletedPrayers,
    CompletionRate,
    EarlyPrayers,
    MaintainStreak,
    PerfectDays,
    PrayerType,
    Reflections,
    SpecificPrayer,
    UserChallenge,
    XPSource,
)
from prayer_engine.observability.metrics import record_challenge_outcome
from prayer_engine.store.base import RecordStore
from prayer_engine.utils.datetime_helpers import (
    DayBoundary,
    now_utc,
    period_days,
    period_end,
    period_key,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Template catalog
# =============================================================================

DAILY_TEMPLATES: List[ChallengeTemplate] = [
    ChallengeTemplate(
        id="perfect_day", name="Perfect Day", description="Complete all 5 prayers",
        icon="🌟", period=ChallengePeriod.DAILY, target=5, xp_reward=150,
        requirement=CompletedPrayers(),
    ),
    ChallengeTemplate(
        id="early_bird", name="Early Bird", description="Complete 3 prayers early",
        icon="🐦", period=ChallengePeriod.DAILY, target=3, xp_reward=100,
        requirement=EarlyPrayers(),
    ),
    ChallengeTemplate(
        id="dawn_focus", name="Dawn Focus", description="Complete Fajr prayer",
        icon="🌅", period=ChallengePeriod.DAILY, target=1, xp_reward=75,
        requirement=SpecificPrayer(prayer=PrayerType.FAJR),
    ),
    ChallengeTemplate(
        id="reflection_day", name="Reflection Day", description="Add reflections to 3 prayers",
        icon="📝", period=ChallengePeriod.DAILY, target=3, xp_reward=80,
        requirement=Reflections(),
    ),
    ChallengeTemplate(
        id="consistency", name="Consistency", description="Maintain current streak",
        icon="🔥", period=ChallengePeriod.DAILY, target=1, xp_reward=50,
        requirement=MaintainStreak(),
    ),
]

WEEKLY_TEMPLATES: List[ChallengeTemplate] = [
    ChallengeTemplate(
        id="fajr_focus", name="Fajr Focus", description="Complete Fajr 6/7 days",
        icon="🌄", period=ChallengePeriod.WEEKLY, target=6, xp_reward=500,
        requirement=SpecificPrayer(prayer=PrayerType.FAJR),
    ),
    ChallengeTemplate(
        id="consistency_challenge", name="Consistency Challenge", description="Maintain 80%+ completion",
        icon="⚡", period=ChallengePeriod.WEEKLY, target=80, xp_reward=400,
        requirement=CompletionRate(),
    ),
    ChallengeTemplate(
        id="perfect_days", name="Perfect Days", description="Have 3 perfect days",
        icon="💎", period=ChallengePeriod.WEEKLY, target=3, xp_reward=600,
        requirement=PerfectDays(),
    ),
    ChallengeTemplate(
        id="early_week", name="Early Week", description="Complete 10 early prayers",
        icon="⏰", period=ChallengePeriod.WEEKLY, target=10, xp_reward=450,
        requirement=EarlyPrayers(),
    ),
    ChallengeTemplate(
        id="reflection_week", name="Reflection Week", description="Add reflections to 15 prayers",
        icon="📖", period=ChallengePeriod.WEEKLY, target=15, xp_reward=350,
        requirement=Reflections(),
    ),
]

CHALLENGE_TEMPLATES: List[ChallengeTemplate] = DAILY_TEMPLATES + WEEKLY_TEMPLATES

CHALLENGES_PER_PERIOD: Dict[ChallengePeriod, int] = {
    ChallengePeriod.DAILY: DAILY_CHALLENGE_COUNT,
    ChallengePeriod.WEEKLY: WEEKLY_CHALLENGE_COUNT,
}


def get_template_by_id(template_id: str, templates: Optional[List[ChallengeTemplate]] = None) -> ChallengeTemplate:
    """
    Look up a challenge template

    Raises:
        NotFoundError: If no template has this id
    """
    for template in templates if templates is not None else CHALLENGE_TEMPLATES:
        if template.id == template_id:
            return template
    raise NotFoundError(
        message=f"Unknown challenge template '{template_id}'",
        record_type="ChallengeTemplate",
        record_id=template_id
    )


# =============================================================================
# Template selection
# =============================================================================

class SelectionStrategy(ABC):
    """Chooses which templates a user gets for a period"""

    @abstractmethod
    def select(
        self,
        templates: Sequence[ChallengeTemplate],
        count: int,
        user_id: str,
        period_key: str
    ) -> List[ChallengeTemplate]:
        """Return up to count distinct templates"""


class SeededSelectionStrategy(SelectionStrategy):
    """
    Deterministic sample keyed on (seed, user, period key)

    The same inputs always yield the same templates, so regenerating a lost
    period or replaying a test gives identical results.
    """

    def __init__(self, seed: str = CHALLENGE_SEED):
        self.seed = seed

    def select(
        self,
        templates: Sequence[ChallengeTemplate],
        count: int,
        user_id: str,
        period_key: str
    ) -> List[ChallengeTemplate]:
        rng = random.Random(f"{self.seed}:{user_id}:{period_key}")
        return rng.sample(list(templates), min(count, len(templates)))


# =============================================================================
# Engine
# =============================================================================

class ChallengeEngine:
    """
    Generates, tracks and completes challenge instances

    Args:
        store: Record Store for challenge instances and the completion log
        ledger: XP ledger credited on completion
        strategy: Template selection (defaults to SeededSelectionStrategy)
        templates: Template catalog (defaults to CHALLENGE_TEMPLATES)
        clock: Source of "now"
    """

    def __init__(
        self,
        store: RecordStore,
        ledger: XPLedger,
        strategy: Optional[SelectionStrategy] = None,
        templates: Optional[List[ChallengeTemplate]] = None,
        clock: Callable[[], datetime] = now_utc
    ):
        self.store = store
        self.ledger = ledger
        self.strategy = strategy or SeededSelectionStrategy()
        self.templates = list(templates) if templates is not None else list(CHALLENGE_TEMPLATES)
        self.clock = clock

        ids = [t.id for t in self.templates]
        if len(ids) != len(set(ids)):
            raise ComputationError(message="Challenge catalog has duplicate ids", config_key="CHALLENGE_TEMPLATES")

    def templates_for(self, period: ChallengePeriod) -> List[ChallengeTemplate]:
        return [t for t in self.templates if t.period == period]

    async def generate(
        self,
        user_id: str,
        period: ChallengePeriod,
        boundary: Optional[DayBoundary] = None
    ) -> List[UserChallenge]:
        """
        Challenge instances for the current period, created on first call

        Returns the stored instances unchanged when the period already has
        some. Lapsed instances from earlier periods are expired first.
        """
        period = ChallengePeriod(period)
        boundary = boundary or DayBoundary()
        now = self.clock()
        today = boundary.today(now)
        key = period_key(period, today)

        await self.expire_lapsed(user_id)

        existing = await self.store.fetch_challenges(user_id, period=period, period_key=key)
        if existing:
            logger.debug(f"User {user_id} already has {len(existing)} {period.value} challenge(s) for {key}")
            return existing

        candidates = self.templates_for(period)
        if not candidates:
            raise ComputationError(
                message=f"No {period.value} challenge templates configured",
                config_key="CHALLENGE_TEMPLATES"
            )

        selected = self.strategy.select(candidates, CHALLENGES_PER_PERIOD[period], user_id, key)
        expires_at = period_end(period, today, boundary)
        instances = [
            UserChallenge(
                user_id=user_id,
                template_id=template.id,
                period=period,
                period_key=key,
                target=template.target,
                xp_reward=template.xp_reward,
                expires_at=expires_at,
                created_at=now,
            )
            for template in selected
        ]

        stored = await self.store.upsert_challenge_instances_if_absent(user_id, period, key, instances)

        created_ids = {i.id for i in instances}
        if {c.id for c in stored} == created_ids:
            record_challenge_outcome(period.value, "generated", len(stored))
            logger.info(
                f"Generated {len(stored)} {period.value} challenge(s) for user {user_id} ({key}): "
                f"{[c.template_id for c in stored]}"
            )
        return stored

    async def update_progress(self, challenge_id: str, progress: int) -> UserChallenge:
        """
        Set progress on an ACTIVE instance; never completes it

        Raises:
            NotFoundError: Unknown challenge id
            ValidationError: Negative progress, or the instance is not ACTIVE
                (a lapsed instance is marked EXPIRED before raising)
        """
        if isinstance(progress, bool) or not isinstance(progress, int) or progress < 0:
            raise ValidationError(message="progress must be a non-negative integer", field="progress", value=progress)

        lapsed = False
        async with self.store.transaction():
            challenge = await self._fetch(challenge_id, for_update=True)
            if challenge.state == ChallengeState.ACTIVE and challenge.is_expired_at(self.clock()):
                await self._mark_expired(challenge)
                lapsed = True
            elif challenge.state != ChallengeState.ACTIVE:
                raise ValidationError(
                    message=f"Challenge {challenge_id} is {challenge.state.value}",
                    field="state",
                    value=challenge.state.value,
                    user_id=challenge.user_id
                )
            else:
                challenge.progress = progress
                challenge = await self.store.update_challenge(challenge)

        if lapsed:
            raise ValidationError(
                message=f"Challenge {challenge_id} expired",
                field="state",
                value=ChallengeState.EXPIRED.value
            )

        logger.debug(f"Challenge {challenge_id} progress: {challenge.progress}/{challenge.target}")
        return challenge

    async def complete(self, challenge_id: str) -> UserChallenge:
        """
        Complete an ACTIVE instance and award its XP exactly once

        Completing an already COMPLETED instance is a no-op.

        Raises:
            NotFoundError: Unknown challenge id
            ValidationError: Instance is EXPIRED or past its expiry
            StoreError: Write failed; nothing is persisted
        """
        lapsed = False
        async with self.store.transaction():
            challenge = await self._fetch(challenge_id, for_update=True)

            if challenge.state == ChallengeState.COMPLETED:
                logger.debug(f"Challenge {challenge_id} already completed")
                return challenge

            if challenge.state == ChallengeState.ACTIVE and challenge.is_expired_at(self.clock()):
                await self._mark_expired(challenge)
                lapsed = True
            elif challenge.state == ChallengeState.EXPIRED:
                lapsed = True
            else:
                challenge.state = ChallengeState.COMPLETED
                challenge.progress = challenge.target
                challenge.completed_at = self.clock()
                challenge = await self.store.update_challenge(challenge)

                if challenge.xp_reward > 0:
                    await self.ledger.award(
                        challenge.user_id,
                        challenge.xp_reward,
                        XPSource.CHALLENGE,
                        source_id=challenge.id,
                        description=f"Completed {self._template_name(challenge.template_id)} challenge"
                    )

        if lapsed:
            raise ValidationError(
                message=f"Challenge {challenge_id} expired and can no longer be completed",
                field="state",
                value=ChallengeState.EXPIRED.value
            )

        record_challenge_outcome(challenge.period.value, "completed")
        logger.info(f"User {challenge.user_id} completed challenge {challenge.template_id} (+{challenge.xp_reward} XP)")
        return challenge

    async def expire_lapsed(self, user_id: str) -> List[UserChallenge]:
        """Move every ACTIVE instance past its expiry to EXPIRED"""
        now = self.clock()
        expired: List[UserChallenge] = []
        async with self.store.transaction():
            for challenge in await self.store.fetch_challenges(user_id, state=ChallengeState.ACTIVE):
                if challenge.is_expired_at(now):
                    expired.append(await self._mark_expired(challenge))

        if expired:
            logger.info(f"Expired {len(expired)} lapsed challenge(s) for user {user_id}")
        return expired

    async def refresh_progress(
        self,
        user_id: str,
        boundary: Optional[DayBoundary] = None
    ) -> List[UserChallenge]:
        """
        Recompute progress of every ACTIVE instance from the completion log

        Progress is capped at the target. Instances are not completed here.
        """
        boundary = boundary or DayBoundary()
        await self.expire_lapsed(user_id)

        active = await self.store.fetch_challenges(user_id, state=ChallengeState.ACTIVE)
        if not active:
            return []

        events = await self.store.fetch_events(user_id)
        exemptions = await self.store.fetch_exemptions(user_id)
        today = boundary.today(self.clock())

        refreshed: List[UserChallenge] = []
        for challenge in active:
            try:
                template = get_template_by_id(challenge.template_id, self.templates)
            except NotFoundError:
                refreshed.append(challenge)
                continue

            first_day, last_day = period_days(challenge.period, boundary.local_day(challenge.expires_at))
            measured = measure_period(
                template.requirement, events, exemptions, boundary, first_day, last_day, as_of=today
            )
            progress = min(measured, challenge.target)
            if progress != challenge.progress:
                challenge = await self.update_progress(challenge.id, progress)
            refreshed.append(challenge)

        return refreshed

    async def get_stats(self, user_id: str) -> ChallengeStats:
        """Totals and completion rates over every instance the user has had"""
        challenges = await self.store.fetch_challenges(user_id)

        completed = [c for c in challenges if c.state == ChallengeState.COMPLETED]
        expired = [c for c in challenges if c.state == ChallengeState.EXPIRED]
        finished = len(completed) + len(expired)

        grouped: Dict[str, List[UserChallenge]] = defaultdict(list)
        for challenge in challenges:
            grouped[challenge.period.value].append(challenge)

        by_period = {}
        for period, items in grouped.items():
            done = sum(1 for c in items if c.state == ChallengeState.COMPLETED)
            lapsed = sum(1 for c in items if c.state == ChallengeState.EXPIRED)
            by_period[period] = {
                "total": len(items),
                "completed": done,
                "completion_rate": round(done / (done + lapsed), 4) if done + lapsed else 0.0,
            }

        return ChallengeStats(
            total=len(challenges),
            completed=len(completed),
            expired=len(expired),
            active=len(challenges) - finished,
            completion_rate=round(len(completed) / finished, 4) if finished else 0.0,
            total_xp_earned=sum(c.xp_reward for c in completed),
            by_period=by_period,
        )

    async def _fetch(self, challenge_id: str, for_update: bool = False) -> UserChallenge:
        challenge = await self.store.fetch_challenge(challenge_id, for_update=for_update)
        if challenge is None:
            raise NotFoundError(
                message=f"Challenge {challenge_id} does not exist",
                record_type="Challenge",
                record_id=challenge_id
            )
        return challenge

    async def _mark_expired(self, challenge: UserChallenge) -> UserChallenge:
        challenge.state = ChallengeState.EXPIRED
        stored = await self.store.update_challenge(challenge)
        record_challenge_outcome(challenge.period.value, "expired")
        logger.info(f"Challenge {challenge.id} ({challenge.template_id}) expired for user {challenge.user_id}")
        return stored

    def _template_name(self, template_id: str) -> str:
        for template in self.templates:
            if template.id == template_id:
                return template.name
        return template_id
