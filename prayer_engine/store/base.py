"""
Record Store interface

The engine reads the prayer log and writes its ledgers only through this
interface. Implementations must provide:
- consistent snapshots for reads
- insert-with-uniqueness for badges and challenge instances
- transaction() grouping several calls into one atomic unit
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import List, Optional, Tuple

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

# [start, end) on scheduled_at, aware datetimes
DateRange = Tuple[datetime, datetime]


class RecordStore(ABC):
    """Storage boundary consumed by the engine"""

    # ---- transactions ----

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager:
        """
        Group calls into one atomic unit

        Re-entrant: a nested transaction() joins the outer one. Any exception
        rolls the whole unit back.
        """

    # ---- prayer log ----

    @abstractmethod
    async def fetch_events(
        self,
        user_id: str,
        date_range: Optional[DateRange] = None
    ) -> List[CompletionEvent]:
        """Completion events, optionally limited to scheduled_at in [start, end)"""

    @abstractmethod
    async def fetch_exemptions(self, user_id: str) -> List[ExemptionWindow]:
        """All exemption windows for a user"""

    # ---- XP ledger ----

    @abstractmethod
    async def append_xp_transaction(self, tx: XPTransaction) -> XPTransaction:
        """Append one ledger row"""

    @abstractmethod
    async def fetch_xp_transactions(self, user_id: str, limit: Optional[int] = None) -> List[XPTransaction]:
        """Ledger rows, newest first"""

    @abstractmethod
    async def find_xp_transaction(
        self,
        user_id: str,
        source: XPSource,
        source_id: str
    ) -> Optional[XPTransaction]:
        """Earliest ledger row for (user, source, source_id), if any"""

    @abstractmethod
    async def total_xp(self, user_id: str) -> int:
        """Sum of all ledger amounts for a user"""

    @abstractmethod
    async def lock_xp_ledger(self, user_id: str) -> None:
        """
        Serialise ledger writers for one user until the current transaction ends

        Must be called inside transaction().
        """

    # ---- badges ----

    @abstractmethod
    async def insert_badge_if_absent(self, user_id: str, badge_id: str, xp_awarded: int) -> BadgeInsertResult:
        """Insert guarded by the (user_id, badge_id) uniqueness constraint"""

    @abstractmethod
    async def fetch_user_badges(self, user_id: str) -> List[UserBadge]:
        """Badges earned by a user, newest first"""

    # ---- challenges ----

    @abstractmethod
    async def upsert_challenge_instances_if_absent(
        self,
        user_id: str,
        period: ChallengePeriod,
        period_key: str,
        instances: List[UserChallenge]
    ) -> List[UserChallenge]:
        """Insert instances unless the period already has some; returns whichever set is stored"""

    @abstractmethod
    async def fetch_challenges(
        self,
        user_id: str,
        period: Optional[ChallengePeriod] = None,
        period_key: Optional[str] = None,
        state: Optional[ChallengeState] = None
    ) -> List[UserChallenge]:
        """Challenge instances for a user, oldest first"""

    @abstractmethod
    async def fetch_challenge(self, challenge_id: str, for_update: bool = False) -> Optional[UserChallenge]:
        """One challenge instance; for_update locks it for the current transaction"""

    @abstractmethod
    async def update_challenge(self, challenge: UserChallenge) -> UserChallenge:
        """Persist progress/state/completed_at of an existing instance"""
