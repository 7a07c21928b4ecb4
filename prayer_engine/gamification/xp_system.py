"""
XP Ledger

Append-only XP transactions; a user's total is always the sum of the ledger.
Level and rank are projections of that total (see levels.py).

XP Award Rules:
- Prayer completed: 25 XP (Fajr: 40 XP)
- Completed before scheduled time: +10 XP
- Reflection added: +10 XP
- Perfect day (all five prayers): 100 XP
- Streak day: 15 XP
- Streak milestone (7/14/30/60/100 days): 200 XP
- Badges and challenges: their catalog reward
"""

from typing import Callable, List, Optional, Tuple
from datetime import datetime
import logging

from prayer_engine.constants import (
    XP_EARLY_BONUS,
    XP_FAJR_BASE,
    XP_PRAYER_BASE,
    XP_REFLECTION_BONUS,
    XP_STREAK_DAY,
)
from prayer_engine.exceptions import ValidationError
from prayer_engine.gamification.levels import build_profile, level_from_total_xp, rank_for_level, unlocked_benefits
from prayer_engine.models import (
    GamificationProfile,
    LevelUpResult,
    PrayerType,
    XPSource,
    XPTransaction,
)
from prayer_engine.observability.metrics import record_xp_award
from prayer_engine.store.base import RecordStore
from prayer_engine.utils.datetime_helpers import now_utc

logger = logging.getLogger(__name__)


def calculate_prayer_xp(prayer_type: PrayerType, is_early: bool = False, has_reflection: bool = False) -> int:
    """XP for one completed prayer, bonuses included"""
    amount = XP_FAJR_BASE if PrayerType(prayer_type) == PrayerType.FAJR else XP_PRAYER_BASE
    if is_early:
        amount += XP_EARLY_BONUS
    if has_reflection:
        amount += XP_REFLECTION_BONUS
    return amount


def calculate_streak_xp(streak_days: int) -> int:
    return max(streak_days, 0) * XP_STREAK_DAY


def _validate_award(amount: int, source: XPSource, description: Optional[str]) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(message="amount must be an integer", field="amount", value=amount)
    if amount < 0:
        if source != XPSource.CORRECTION:
            raise ValidationError(
                message="negative amounts are only allowed for corrections",
                field="amount",
                value=amount
            )
        if not description or not description.strip():
            raise ValidationError(
                message="corrections require a description",
                field="description",
                value=description
            )


class XPLedger:
    """
    Awards XP and projects levels from the ledger

    Args:
        store: Record Store holding the ledger
        clock: Source of "now" for transaction timestamps
    """

    def __init__(self, store: RecordStore, clock: Callable[[], datetime] = now_utc):
        self.store = store
        self.clock = clock

    async def award(
        self,
        user_id: str,
        amount: int,
        source: XPSource,
        source_id: Optional[str] = None,
        description: Optional[str] = None
    ) -> Optional[LevelUpResult]:
        """
        Append an XP transaction and report a level-up if one happened

        Args:
            user_id: User receiving the XP
            amount: XP to add (negative only for source=correction)
            source: Where the XP came from
            source_id: Badge/challenge/event id the award is tied to
            description: Human-readable reason

        Returns:
            LevelUpResult when the level strictly increased, else None

        Raises:
            ValidationError: Bad amount/source, or a correction would take the
                total below zero
            StoreError: Ledger write failed (nothing is persisted)
        """
        try:
            source = XPSource(source)
        except ValueError:
            raise ValidationError(message=f"unknown XP source '{source}'", field="source", value=source, user_id=user_id)
        _validate_award(amount, source, description)

        async with self.store.transaction():
            # Held until commit so concurrent awards see each other's totals
            await self.store.lock_xp_ledger(user_id)
            old_total = await self.store.total_xp(user_id)
            if amount < 0 and old_total + amount < 0:
                raise ValidationError(
                    message=f"correction of {amount} would take total XP below zero",
                    field="amount",
                    value=amount,
                    user_id=user_id
                )

            tx = XPTransaction(
                user_id=user_id,
                amount=amount,
                source=source,
                source_id=source_id,
                description=description or f"Earned {amount} XP from {source.value}",
                timestamp=self.clock(),
            )
            await self.store.append_xp_transaction(tx)
            new_total = old_total + amount

        old_level = level_from_total_xp(old_total)
        new_level = level_from_total_xp(new_total)
        leveled_up = new_level > old_level

        record_xp_award(source.value, amount, leveled_up)
        logger.info(
            f"Awarded {amount} XP to user {user_id} for {source.value}. "
            f"Total: {new_total} XP, Level: {new_level}"
        )

        if not leveled_up:
            return None

        logger.info(f"User {user_id} leveled up from {old_level} to {new_level}!")
        return LevelUpResult(
            previous_level=old_level,
            new_level=new_level,
            new_rank=rank_for_level(new_level).name,
            unlocked_benefits=unlocked_benefits(old_level, new_level),
        )

    async def award_once(
        self,
        user_id: str,
        amount: int,
        source: XPSource,
        source_id: str,
        description: Optional[str] = None
    ) -> Tuple[bool, Optional[LevelUpResult]]:
        """
        Award unless a transaction for (source, source_id) already exists

        Returns:
            (awarded, level_up)
        """
        async with self.store.transaction():
            await self.store.lock_xp_ledger(user_id)
            existing = await self.store.find_xp_transaction(user_id, XPSource(source), source_id)
            if existing is not None:
                logger.debug(f"XP for {source}:{source_id} already awarded to user {user_id}")
                return False, None
            level_up = await self.award(user_id, amount, source, source_id, description)
        return True, level_up

    async def total_xp(self, user_id: str) -> int:
        return await self.store.total_xp(user_id)

    async def profile(self, user_id: str) -> GamificationProfile:
        return build_profile(await self.store.total_xp(user_id))

    async def history(self, user_id: str, limit: int = 50) -> List[XPTransaction]:
        """Recent ledger rows, newest first"""
        if limit <= 0:
            raise ValidationError(message="limit must be positive", field="limit", value=limit, user_id=user_id)
        return await self.store.fetch_xp_transactions(user_id, limit=limit)
