"""
In-memory Record Store

Dict-backed implementation used by tests and local development. Transactions
are serialised with an asyncio.Lock and roll back by restoring a snapshot
taken on entry.
"""

import asyncio
import copy
import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List, Optional, Tuple

from prayer_engine.models import (
    BadgeInsertResult,
    ChallengePeriod,
    ChallengeState,
    CompletionEvent,
    ExemptionWindow,
    UserBadge,
    UserChallenge,
    XPSource,
    XPTransaction,
)
from prayer_engine.exceptions import NotFoundError
from prayer_engine.store.base import DateRange, RecordStore
from prayer_engine.utils.datetime_helpers import to_utc

logger = logging.getLogger(__name__)


class InMemoryRecordStore(RecordStore):
    """In-process store; state lives as long as the instance"""

    def __init__(self):
        self._events: Dict[str, List[CompletionEvent]] = {}
        self._exemptions: Dict[str, List[ExemptionWindow]] = {}
        self._xp: Dict[str, List[XPTransaction]] = {}
        self._badges: Dict[Tuple[str, str], UserBadge] = {}
        self._challenges: Dict[str, UserChallenge] = {}
        self._lock = asyncio.Lock()
        self._in_transaction: ContextVar[bool] = ContextVar(f"memory_store_tx_{id(self)}", default=False)

    # ---- seeding helpers ----

    def add_event(self, event: CompletionEvent) -> None:
        self._events.setdefault(event.user_id, []).append(event)

    def add_events(self, events: List[CompletionEvent]) -> None:
        for event in events:
            self.add_event(event)

    def add_exemption(self, exemption: ExemptionWindow) -> None:
        self._exemptions.setdefault(exemption.user_id, []).append(exemption)

    # ---- transactions ----

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["InMemoryRecordStore"]:
        if self._in_transaction.get():
            # Nested: join the outer unit
            yield self
            return

        async with self._lock:
            snapshot = self._snapshot()
            token = self._in_transaction.set(True)
            try:
                yield self
            except BaseException:
                self._restore(snapshot)
                logger.debug("Rolled back in-memory transaction")
                raise
            finally:
                self._in_transaction.reset(token)

    def _snapshot(self) -> dict:
        return copy.deepcopy({
            "events": self._events,
            "exemptions": self._exemptions,
            "xp": self._xp,
            "badges": self._badges,
            "challenges": self._challenges,
        })

    def _restore(self, snapshot: dict) -> None:
        self._events = snapshot["events"]
        self._exemptions = snapshot["exemptions"]
        self._xp = snapshot["xp"]
        self._badges = snapshot["badges"]
        self._challenges = snapshot["challenges"]

    # ---- prayer log ----

    async def fetch_events(
        self,
        user_id: str,
        date_range: Optional[DateRange] = None
    ) -> List[CompletionEvent]:
        events = list(self._events.get(user_id, []))
        if date_range is None:
            return events

        start, end = to_utc(date_range[0]), to_utc(date_range[1])
        return [
            e for e in events
            if e.scheduled_at is not None and start <= to_utc(e.scheduled_at) < end
        ]

    async def fetch_exemptions(self, user_id: str) -> List[ExemptionWindow]:
        return sorted(self._exemptions.get(user_id, []), key=lambda w: w.start_date, reverse=True)

    # ---- XP ledger ----

    async def append_xp_transaction(self, tx: XPTransaction) -> XPTransaction:
        self._xp.setdefault(tx.user_id, []).append(tx)
        return tx

    async def fetch_xp_transactions(self, user_id: str, limit: Optional[int] = None) -> List[XPTransaction]:
        # Insertion order breaks timestamp ties so "newest first" is stable
        rows = list(reversed(self._xp.get(user_id, [])))
        rows.sort(key=lambda t: t.timestamp, reverse=True)
        return rows[:limit] if limit is not None else rows

    async def find_xp_transaction(
        self,
        user_id: str,
        source: XPSource,
        source_id: str
    ) -> Optional[XPTransaction]:
        for tx in self._xp.get(user_id, []):
            if tx.source == source and tx.source_id == source_id:
                return tx
        return None

    async def total_xp(self, user_id: str) -> int:
        return sum(tx.amount for tx in self._xp.get(user_id, []))

    async def lock_xp_ledger(self, user_id: str) -> None:
        # Transactions already hold the store lock
        return None

    # ---- badges ----

    async def insert_badge_if_absent(self, user_id: str, badge_id: str, xp_awarded: int) -> BadgeInsertResult:
        key = (user_id, badge_id)
        if key in self._badges:
            return BadgeInsertResult(inserted=False, user_badge=self._badges[key])

        badge = UserBadge(
            user_id=user_id,
            badge_id=badge_id,
            earned_at=datetime.now(timezone.utc),
            xp_awarded=xp_awarded,
        )
        self._badges[key] = badge
        logger.debug(f"Stored badge {badge_id} for user {user_id}")
        return BadgeInsertResult(inserted=True, user_badge=badge)

    async def fetch_user_badges(self, user_id: str) -> List[UserBadge]:
        badges = [b for (uid, _), b in self._badges.items() if uid == user_id]
        return sorted(badges, key=lambda b: b.earned_at, reverse=True)

    # ---- challenges ----

    async def upsert_challenge_instances_if_absent(
        self,
        user_id: str,
        period: ChallengePeriod,
        period_key: str,
        instances: List[UserChallenge]
    ) -> List[UserChallenge]:
        existing = await self.fetch_challenges(user_id, period=period, period_key=period_key)
        if existing:
            return existing

        for instance in instances:
            self._challenges[instance.id] = instance.model_copy()
        return [instance.model_copy() for instance in instances]

    async def fetch_challenges(
        self,
        user_id: str,
        period: Optional[ChallengePeriod] = None,
        period_key: Optional[str] = None,
        state: Optional[ChallengeState] = None
    ) -> List[UserChallenge]:
        rows = [
            c for c in self._challenges.values()
            if c.user_id == user_id
            and (period is None or c.period == period)
            and (period_key is None or c.period_key == period_key)
            and (state is None or c.state == state)
        ]
        rows.sort(key=lambda c: c.created_at)
        return [c.model_copy() for c in rows]

    async def fetch_challenge(self, challenge_id: str, for_update: bool = False) -> Optional[UserChallenge]:
        # for_update needs no extra work: transactions already hold the store lock
        challenge = self._challenges.get(challenge_id)
        return challenge.model_copy() if challenge else None

    async def update_challenge(self, challenge: UserChallenge) -> UserChallenge:
        if challenge.id not in self._challenges:
            raise NotFoundError(
                message=f"Challenge {challenge.id} does not exist",
                record_type="Challenge",
                record_id=challenge.id,
                user_id=challenge.user_id,
                operation="update_challenge"
            )
        self._challenges[challenge.id] = challenge.model_copy()
        return challenge.model_copy()
