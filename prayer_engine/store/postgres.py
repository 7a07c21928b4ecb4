"""PostgreSQL Record Store"""
import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from functools import wraps
from typing import AsyncIterator, Callable, List, Optional

import psycopg

from prayer_engine.exceptions import NotFoundError, wrap_store_exception
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
from prayer_engine.observability.metrics import record_store_error
from prayer_engine.store.base import DateRange, RecordStore
from prayer_engine.store.connection import Database

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS prayer_records (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    prayer_type TEXT NOT NULL CHECK (prayer_type IN ('fajr', 'dhuhr', 'asr', 'maghrib', 'isha')),
    scheduled_at TIMESTAMPTZ,
    completed_at TIMESTAMPTZ,
    completed BOOLEAN NOT NULL DEFAULT FALSE,
    has_reflection BOOLEAN NOT NULL DEFAULT FALSE
);
CREATE INDEX IF NOT EXISTS idx_prayer_records_user_scheduled ON prayer_records (user_id, scheduled_at);

CREATE TABLE IF NOT EXISTS period_exemptions (
    id BIGSERIAL PRIMARY KEY,
    user_id TEXT NOT NULL,
    start_date DATE NOT NULL,
    end_date DATE,
    reason TEXT
);

CREATE TABLE IF NOT EXISTS xp_transactions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    amount INTEGER NOT NULL,
    source TEXT NOT NULL,
    source_id TEXT,
    description TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_xp_transactions_user ON xp_transactions (user_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_xp_transactions_source ON xp_transactions (user_id, source, source_id);

CREATE TABLE IF NOT EXISTS user_badges (
    user_id TEXT NOT NULL,
    badge_id TEXT NOT NULL,
    earned_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    xp_awarded INTEGER NOT NULL,
    PRIMARY KEY (user_id, badge_id)
);

CREATE TABLE IF NOT EXISTS user_challenges (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    template_id TEXT NOT NULL,
    period TEXT NOT NULL,
    period_key TEXT NOT NULL,
    progress INTEGER NOT NULL DEFAULT 0,
    target INTEGER NOT NULL,
    xp_reward INTEGER NOT NULL,
    state TEXT NOT NULL DEFAULT 'ACTIVE',
    expires_at TIMESTAMPTZ NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    completed_at TIMESTAMPTZ,
    UNIQUE (user_id, template_id, period, period_key)
);
"""

_CHALLENGE_COLUMNS = (
    "id, user_id, template_id, period, period_key, progress, target, xp_reward, "
    "state, expires_at, created_at, completed_at"
)


def _store_operation(operation: str) -> Callable:
    """Translate driver errors raised by a store method into the engine's hierarchy"""
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(self, *args, **kwargs):
            try:
                return await func(self, *args, **kwargs)
            except psycopg.Error as e:
                error = wrap_store_exception(
                    e,
                    operation=operation,
                    user_id=args[0] if args and isinstance(args[0], str) else None
                )
                record_store_error(operation, getattr(error, "retryable", False))
                raise error from e
        return wrapper
    return decorator


class PostgresRecordStore(RecordStore):
    """Record Store on PostgreSQL via a psycopg async pool"""

    def __init__(self, database: Database):
        self.db = database
        self._active_conn: ContextVar[Optional[psycopg.AsyncConnection]] = ContextVar(
            f"pg_store_conn_{id(self)}", default=None
        )

    async def init_schema(self) -> None:
        """Create tables and indexes if missing"""
        async with self.db.connection() as conn:
            await conn.execute(SCHEMA_SQL)
        logger.info("Prayer engine schema ensured")

    # ---- transactions ----

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["PostgresRecordStore"]:
        if self._active_conn.get() is not None:
            yield self
            return

        try:
            async with self.db.connection() as conn:
                async with conn.transaction():
                    token = self._active_conn.set(conn)
                    try:
                        yield self
                    finally:
                        self._active_conn.reset(token)
        except psycopg.Error as e:
            # Commit-time failures (serialization, lost connection)
            error = wrap_store_exception(e, operation="transaction")
            record_store_error("transaction", getattr(error, "retryable", False))
            raise error from e

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[psycopg.AsyncConnection]:
        conn = self._active_conn.get()
        if conn is not None:
            yield conn
            return
        # Outside a transaction the pool commits when the connection is returned
        async with self.db.connection() as conn:
            yield conn

    # ---- prayer log ----

    @_store_operation("fetch_events")
    async def fetch_events(
        self,
        user_id: str,
        date_range: Optional[DateRange] = None
    ) -> List[CompletionEvent]:
        query = """
            SELECT id, user_id, prayer_type, scheduled_at, completed_at, completed, has_reflection
            FROM prayer_records
            WHERE user_id = %s
        """
        params: list = [user_id]
        if date_range is not None:
            query += " AND scheduled_at >= %s AND scheduled_at < %s"
            params.extend(date_range)
        query += " ORDER BY scheduled_at"

        async with self._connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                rows = await cur.fetchall()
                return [CompletionEvent(**row) for row in rows]

    @_store_operation("fetch_exemptions")
    async def fetch_exemptions(self, user_id: str) -> List[ExemptionWindow]:
        async with self._connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT user_id, start_date, end_date, reason
                    FROM period_exemptions
                    WHERE user_id = %s
                    ORDER BY start_date DESC
                    """,
                    (user_id,)
                )
                rows = await cur.fetchall()
                return [ExemptionWindow(**row) for row in rows]

    # ---- XP ledger ----

    @_store_operation("append_xp_transaction")
    async def append_xp_transaction(self, tx: XPTransaction) -> XPTransaction:
        async with self._connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO xp_transactions (id, user_id, amount, source, source_id, description, created_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    """,
                    (tx.id, tx.user_id, tx.amount, tx.source.value, tx.source_id, tx.description, tx.timestamp)
                )
        return tx

    @_store_operation("fetch_xp_transactions")
    async def fetch_xp_transactions(self, user_id: str, limit: Optional[int] = None) -> List[XPTransaction]:
        async with self._connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT id, user_id, amount, source, source_id, description, created_at AS timestamp
                    FROM xp_transactions
                    WHERE user_id = %s
                    ORDER BY created_at DESC
                    LIMIT %s
                    """,
                    (user_id, limit)
                )
                rows = await cur.fetchall()
                return [XPTransaction(**row) for row in rows]

    @_store_operation("find_xp_transaction")
    async def find_xp_transaction(
        self,
        user_id: str,
        source: XPSource,
        source_id: str
    ) -> Optional[XPTransaction]:
        async with self._connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT id, user_id, amount, source, source_id, description, created_at AS timestamp
                    FROM xp_transactions
                    WHERE user_id = %s AND source = %s AND source_id = %s
                    ORDER BY created_at
                    LIMIT 1
                    """,
                    (user_id, source.value, source_id)
                )
                row = await cur.fetchone()
                return XPTransaction(**row) if row else None

    @_store_operation("total_xp")
    async def total_xp(self, user_id: str) -> int:
        async with self._connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    "SELECT COALESCE(SUM(amount), 0) AS total FROM xp_transactions WHERE user_id = %s",
                    (user_id,)
                )
                row = await cur.fetchone()
                return int(row["total"]) if row else 0

    @_store_operation("lock_xp_ledger")
    async def lock_xp_ledger(self, user_id: str) -> None:
        async with self._connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (f"xp:{user_id}",))

    # ---- badges ----

    @_store_operation("insert_badge_if_absent")
    async def insert_badge_if_absent(self, user_id: str, badge_id: str, xp_awarded: int) -> BadgeInsertResult:
        async with self._connection() as conn:
            async with conn.cursor() as cur:
                # Try to insert, ignore if already exists
                await cur.execute(
                    """
                    INSERT INTO user_badges (user_id, badge_id, xp_awarded)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (user_id, badge_id) DO NOTHING
                    RETURNING user_id, badge_id, earned_at, xp_awarded
                    """,
                    (user_id, badge_id, xp_awarded)
                )
                row = await cur.fetchone()

                if row:
                    logger.info(f"User {user_id} earned badge {badge_id}")
                    return BadgeInsertResult(inserted=True, user_badge=UserBadge(**row))
                return BadgeInsertResult(inserted=False)

    @_store_operation("fetch_user_badges")
    async def fetch_user_badges(self, user_id: str) -> List[UserBadge]:
        async with self._connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT user_id, badge_id, earned_at, xp_awarded
                    FROM user_badges
                    WHERE user_id = %s
                    ORDER BY earned_at DESC
                    """,
                    (user_id,)
                )
                rows = await cur.fetchall()
                return [UserBadge(**row) for row in rows]

    # ---- challenges ----

    @_store_operation("upsert_challenge_instances_if_absent")
    async def upsert_challenge_instances_if_absent(
        self,
        user_id: str,
        period: ChallengePeriod,
        period_key: str,
        instances: List[UserChallenge]
    ) -> List[UserChallenge]:
        async with self.transaction():
            async with self._connection() as conn:
                async with conn.cursor() as cur:
                    # Serialise generators of the same (user, period) instance
                    await cur.execute(
                        "SELECT pg_advisory_xact_lock(hashtext(%s))",
                        (f"{user_id}:{period.value}:{period_key}",)
                    )
                    await cur.execute(
                        f"""
                        SELECT {_CHALLENGE_COLUMNS}
                        FROM user_challenges
                        WHERE user_id = %s AND period = %s AND period_key = %s
                        ORDER BY created_at
                        """,
                        (user_id, period.value, period_key)
                    )
                    existing = await cur.fetchall()
                    if existing:
                        return [UserChallenge(**row) for row in existing]

                    for instance in instances:
                        await cur.execute(
                            f"""
                            INSERT INTO user_challenges ({_CHALLENGE_COLUMNS})
                            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                            """,
                            (
                                instance.id,
                                instance.user_id,
                                instance.template_id,
                                instance.period.value,
                                instance.period_key,
                                instance.progress,
                                instance.target,
                                instance.xp_reward,
                                instance.state.value,
                                instance.expires_at,
                                instance.created_at,
                                instance.completed_at,
                            )
                        )
                    return list(instances)

    @_store_operation("fetch_challenges")
    async def fetch_challenges(
        self,
        user_id: str,
        period: Optional[ChallengePeriod] = None,
        period_key: Optional[str] = None,
        state: Optional[ChallengeState] = None
    ) -> List[UserChallenge]:
        query = f"SELECT {_CHALLENGE_COLUMNS} FROM user_challenges WHERE user_id = %s"
        params: list = [user_id]
        if period is not None:
            query += " AND period = %s"
            params.append(period.value)
        if period_key is not None:
            query += " AND period_key = %s"
            params.append(period_key)
        if state is not None:
            query += " AND state = %s"
            params.append(state.value)
        query += " ORDER BY created_at"

        async with self._connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                rows = await cur.fetchall()
                return [UserChallenge(**row) for row in rows]

    @_store_operation("fetch_challenge")
    async def fetch_challenge(self, challenge_id: str, for_update: bool = False) -> Optional[UserChallenge]:
        query = f"SELECT {_CHALLENGE_COLUMNS} FROM user_challenges WHERE id = %s"
        if for_update:
            query += " FOR UPDATE"

        async with self._connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, (challenge_id,))
                row = await cur.fetchone()
                return UserChallenge(**row) if row else None

    @_store_operation("update_challenge")
    async def update_challenge(self, challenge: UserChallenge) -> UserChallenge:
        async with self._connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    UPDATE user_challenges
                    SET progress = %s,
                        state = %s,
                        completed_at = %s
                    WHERE id = %s
                    RETURNING id
                    """,
                    (challenge.progress, challenge.state.value, challenge.completed_at, challenge.id)
                )
                if await cur.fetchone() is None:
                    raise NotFoundError(
                        message=f"Challenge {challenge.id} does not exist",
                        record_type="Challenge",
                        record_id=challenge.id,
                        user_id=challenge.user_id,
                        operation="update_challenge"
                    )
        return challenge
