"""Unit tests for the PostgreSQL Record Store with a mocked connection pool"""
import pytest
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import psycopg
from psycopg import errors as pg_errors

from prayer_engine.exceptions import ConflictError, NotFoundError, StoreError
from prayer_engine.models import ChallengePeriod, PrayerType, UserChallenge, XPSource
from prayer_engine.store.postgres import PostgresRecordStore


class FakeDatabase:
    """Stands in for Database; hands out the same mocked connection"""

    def __init__(self, conn):
        self.conn = conn
        self.checkouts = 0

    @asynccontextmanager
    async def connection(self):
        self.checkouts += 1
        yield self.conn


@pytest.fixture
def cursor():
    cur = MagicMock()
    cur.execute = AsyncMock()
    cur.fetchall = AsyncMock(return_value=[])
    cur.fetchone = AsyncMock(return_value=None)
    return cur


@pytest.fixture
def conn(cursor):
    connection = MagicMock()
    connection.execute = AsyncMock()
    connection.cursor.return_value.__aenter__.return_value = cursor
    return connection


@pytest.fixture
def database(conn):
    return FakeDatabase(conn)


@pytest.fixture
def pg_store(database):
    return PostgresRecordStore(database)


# ============================================================================
# Query Tests
# ============================================================================

@pytest.mark.asyncio
async def test_fetch_events_maps_rows(pg_store, cursor):
    scheduled = datetime(2026, 10, 18, 5, 0, tzinfo=timezone.utc)
    cursor.fetchall.return_value = [{
        "id": "evt-1",
        "user_id": "user-1",
        "prayer_type": "fajr",
        "scheduled_at": scheduled,
        "completed_at": scheduled,
        "completed": True,
        "has_reflection": False,
    }]

    events = await pg_store.fetch_events("user-1")

    assert events[0].prayer_type == PrayerType.FAJR
    query, params = cursor.execute.await_args.args
    assert "scheduled_at >=" not in query
    assert params == ["user-1"]


@pytest.mark.asyncio
async def test_fetch_events_with_range(pg_store, cursor):
    start = datetime(2026, 10, 1, tzinfo=timezone.utc)
    end = datetime(2026, 10, 18, tzinfo=timezone.utc)

    await pg_store.fetch_events("user-1", (start, end))

    query, params = cursor.execute.await_args.args
    assert "scheduled_at >= %s AND scheduled_at < %s" in query
    assert params == ["user-1", start, end]


@pytest.mark.asyncio
async def test_total_xp(pg_store, cursor):
    cursor.fetchone.return_value = {"total": 475}
    assert await pg_store.total_xp("user-1") == 475


@pytest.mark.asyncio
async def test_find_xp_transaction_miss(pg_store, cursor):
    assert await pg_store.find_xp_transaction("user-1", XPSource.PRAYER, "evt-1") is None
    assert cursor.execute.await_args.args[1] == ("user-1", "prayer", "evt-1")


@pytest.mark.asyncio
async def test_insert_badge_conflict_returns_not_inserted(pg_store, cursor):
    """ON CONFLICT DO NOTHING returns no row"""
    result = await pg_store.insert_badge_if_absent("user-1", "first_steps", 50)
    assert result.inserted is False


@pytest.mark.asyncio
async def test_insert_badge_inserted(pg_store, cursor):
    cursor.fetchone.return_value = {
        "user_id": "user-1",
        "badge_id": "first_steps",
        "earned_at": datetime(2026, 10, 18, tzinfo=timezone.utc),
        "xp_awarded": 50,
    }

    result = await pg_store.insert_badge_if_absent("user-1", "first_steps", 50)

    assert result.inserted is True
    assert result.user_badge.badge_id == "first_steps"


@pytest.mark.asyncio
async def test_update_missing_challenge(pg_store):
    challenge = UserChallenge(
        user_id="user-1",
        template_id="early_bird",
        period=ChallengePeriod.DAILY,
        period_key="2026-10-18",
        target=3,
        xp_reward=100,
        expires_at=datetime(2026, 10, 18, 23, 59, tzinfo=timezone.utc),
    )

    with pytest.raises(NotFoundError):
        await pg_store.update_challenge(challenge)


@pytest.mark.asyncio
async def test_init_schema(pg_store, conn):
    await pg_store.init_schema()
    assert "CREATE TABLE IF NOT EXISTS user_badges" in conn.execute.await_args.args[0]


# ============================================================================
# Error Translation Tests
# ============================================================================

@pytest.mark.asyncio
async def test_operational_error_becomes_retryable_store_error(pg_store, cursor):
    cursor.execute.side_effect = psycopg.OperationalError("server closed the connection")

    with patch("prayer_engine.store.postgres.record_store_error") as metric:
        with pytest.raises(StoreError) as exc_info:
            await pg_store.fetch_events("user-1")

    assert exc_info.value.retryable is True
    assert exc_info.value.operation == "fetch_events"
    assert exc_info.value.user_id == "user-1"
    metric.assert_called_once_with("fetch_events", True)


@pytest.mark.asyncio
async def test_unique_violation_becomes_conflict(pg_store, cursor):
    cursor.execute.side_effect = pg_errors.UniqueViolation("duplicate key")

    with pytest.raises(ConflictError):
        await pg_store.insert_badge_if_absent("user-1", "first_steps", 50)


@pytest.mark.asyncio
async def test_commit_failure_is_wrapped(pg_store, conn):
    conn.transaction.return_value.__aexit__ = AsyncMock(
        side_effect=pg_errors.SerializationFailure("could not serialize access")
    )

    with pytest.raises(StoreError) as exc_info:
        async with pg_store.transaction():
            pass

    assert exc_info.value.retryable is True
    assert exc_info.value.operation == "transaction"


# ============================================================================
# Transaction Tests
# ============================================================================

@pytest.mark.asyncio
async def test_calls_inside_transaction_share_one_connection(pg_store, database, cursor):
    cursor.fetchone.return_value = {"total": 0}

    async with pg_store.transaction():
        async with pg_store.transaction():
            await pg_store.total_xp("user-1")
        await pg_store.total_xp("user-1")

    assert database.checkouts == 1


@pytest.mark.asyncio
async def test_calls_outside_transaction_check_out_per_call(pg_store, database, cursor):
    cursor.fetchone.return_value = {"total": 0}

    await pg_store.total_xp("user-1")
    await pg_store.total_xp("user-1")

    assert database.checkouts == 2


@pytest.mark.asyncio
async def test_ledger_lock_is_a_per_user_advisory_lock(pg_store, database, cursor):
    cursor.fetchone.return_value = {"total": 0}

    async with pg_store.transaction():
        await pg_store.lock_xp_ledger("user-1")
        await pg_store.total_xp("user-1")

    lock_call = cursor.execute.await_args_list[0]
    assert "pg_advisory_xact_lock(hashtext(%s))" in lock_call.args[0]
    assert lock_call.args[1] == ("xp:user-1",)
    assert database.checkouts == 1
