"""Unit tests for XP Ledger (prayer_engine/gamification/xp_system.py)"""
import asyncio
import pytest
from unittest.mock import AsyncMock, patch

from prayer_engine.exceptions import StoreError, ValidationError
from prayer_engine.gamification.xp_system import XPLedger, calculate_prayer_xp, calculate_streak_xp
from prayer_engine.models import PrayerType, XPSource


@pytest.fixture
def ledger(store, clock):
    return XPLedger(store, clock=clock)


# ============================================================================
# XP Rules Tests
# ============================================================================

def test_prayer_xp_base_values():
    assert calculate_prayer_xp(PrayerType.DHUHR) == 25
    assert calculate_prayer_xp(PrayerType.FAJR) == 40


def test_prayer_xp_bonuses():
    assert calculate_prayer_xp(PrayerType.ISHA, is_early=True) == 35
    assert calculate_prayer_xp(PrayerType.FAJR, is_early=True, has_reflection=True) == 60


def test_streak_xp():
    assert calculate_streak_xp(3) == 45
    assert calculate_streak_xp(-2) == 0


# ============================================================================
# Award Tests
# ============================================================================

@pytest.mark.asyncio
async def test_award_adds_to_total(ledger):
    """total_after == total_before + amount"""
    before = await ledger.total_xp("user-1")
    await ledger.award("user-1", 40, XPSource.PRAYER, "evt-1", "Completed Fajr prayer")
    after = await ledger.total_xp("user-1")

    assert after == before + 40


@pytest.mark.asyncio
async def test_award_without_level_up_returns_none(ledger):
    assert await ledger.award("user-1", 50, XPSource.PRAYER) is None


@pytest.mark.asyncio
async def test_award_level_up(ledger):
    """Crossing 100 XP moves from level 1 to 2"""
    await ledger.award("user-1", 60, XPSource.PRAYER)
    result = await ledger.award("user-1", 40, XPSource.BADGE, "first_steps")

    assert result is not None
    assert result.previous_level == 1
    assert result.new_level == 2
    assert result.new_rank == "New Believer"
    assert result.unlocked_benefits == []


@pytest.mark.asyncio
async def test_award_rank_change_unlocks_benefits(ledger):
    """812 XP reaches level 5, the first Growing Muslim level"""
    result = await ledger.award("user-1", 812, XPSource.CHALLENGE)

    assert result.new_level == 5
    assert result.new_rank == "Growing Muslim"
    assert result.unlocked_benefits == ["Progress tracking", "Simple stats", "Encouragement"]


@pytest.mark.asyncio
async def test_award_records_transaction(ledger, store, now):
    await ledger.award("user-1", 25, XPSource.PRAYER, "evt-9")

    history = await store.fetch_xp_transactions("user-1")
    assert len(history) == 1
    assert history[0].source == XPSource.PRAYER
    assert history[0].source_id == "evt-9"
    assert history[0].timestamp == now
    assert history[0].description == "Earned 25 XP from prayer"


@pytest.mark.asyncio
async def test_award_accepts_source_string(ledger):
    await ledger.award("user-1", 10, "streak_day")
    assert await ledger.total_xp("user-1") == 10


@pytest.mark.asyncio
async def test_award_rejects_unknown_source(ledger):
    with pytest.raises(ValidationError):
        await ledger.award("user-1", 10, "bonus")


@pytest.mark.asyncio
async def test_negative_amount_requires_correction(ledger):
    with pytest.raises(ValidationError):
        await ledger.award("user-1", -5, XPSource.PRAYER)


@pytest.mark.asyncio
async def test_correction_requires_description(ledger):
    await ledger.award("user-1", 50, XPSource.PRAYER)

    with pytest.raises(ValidationError):
        await ledger.award("user-1", -5, XPSource.CORRECTION)
    with pytest.raises(ValidationError):
        await ledger.award("user-1", -5, XPSource.CORRECTION, description="   ")


@pytest.mark.asyncio
async def test_correction_applies(ledger):
    await ledger.award("user-1", 50, XPSource.PRAYER)
    await ledger.award("user-1", -20, XPSource.CORRECTION, description="Duplicate prayer record removed")

    assert await ledger.total_xp("user-1") == 30


@pytest.mark.asyncio
async def test_correction_cannot_go_below_zero(ledger, store):
    await ledger.award("user-1", 10, XPSource.PRAYER)

    with pytest.raises(ValidationError):
        await ledger.award("user-1", -20, XPSource.CORRECTION, description="Reversal")

    assert await ledger.total_xp("user-1") == 10
    assert len(await store.fetch_xp_transactions("user-1")) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [1.5, "10", True])
async def test_award_rejects_non_integer(ledger, amount):
    with pytest.raises(ValidationError):
        await ledger.award("user-1", amount, XPSource.PRAYER)


@pytest.mark.asyncio
async def test_award_store_failure_persists_nothing(ledger, store):
    """A failed append leaves the ledger untouched"""
    with patch.object(store, "append_xp_transaction", AsyncMock(side_effect=StoreError("disk gone"))):
        with pytest.raises(StoreError):
            await ledger.award("user-1", 25, XPSource.PRAYER)

    assert await ledger.total_xp("user-1") == 0


@pytest.mark.asyncio
async def test_award_reads_total_under_ledger_lock_before_append(ledger, store):
    calls = []
    real_total = store.total_xp
    real_append = store.append_xp_transaction

    async def lock(user_id):
        calls.append("lock")

    async def total(user_id):
        calls.append("total")
        return await real_total(user_id)

    async def append(tx):
        calls.append("append")
        return await real_append(tx)

    with patch.object(store, "lock_xp_ledger", AsyncMock(side_effect=lock)), \
            patch.object(store, "total_xp", AsyncMock(side_effect=total)), \
            patch.object(store, "append_xp_transaction", AsyncMock(side_effect=append)):
        await ledger.award("user-1", 25, XPSource.PRAYER)

    assert calls == ["lock", "total", "append"]


@pytest.mark.asyncio
async def test_concurrent_awards_report_one_level_up(ledger):
    """Two awards racing across 100 XP: only one of them crossed it"""
    await ledger.award("user-1", 60, XPSource.PRAYER)

    results = await asyncio.gather(
        ledger.award("user-1", 40, XPSource.PRAYER),
        ledger.award("user-1", 40, XPSource.PRAYER),
    )

    level_ups = [r for r in results if r is not None]
    assert len(level_ups) == 1
    assert level_ups[0].previous_level == 1
    assert level_ups[0].new_level == 2
    assert await ledger.total_xp("user-1") == 140


# ============================================================================
# Idempotent Award Tests)
# ============================================================================

@pytest.mark.asyncio
async def test_award_once_is_idempotent(ledger):
    first = await ledger.award_once("user-1", 25, XPSource.PRAYER, "evt-1")
    second = await ledger.award_once("user-1", 25, XPSource.PRAYER, "evt-1")

    assert first[0] is True
    assert second == (False, None)
    assert await ledger.total_xp("user-1") == 25


@pytest.mark.asyncio
async def test_award_once_distinguishes_source_ids(ledger):
    await ledger.award_once("user-1", 25, XPSource.PRAYER, "evt-1")
    await ledger.award_once("user-1", 25, XPSource.PRAYER, "evt-2")

    assert await ledger.total_xp("user-1") == 50


# ============================================================================
# Projection Tests
# ============================================================================

@pytest.mark.asyncio
async def test_profile_projection(ledger):
    await ledger.award("user-1", 300, XPSource.CHALLENGE)
    profile = await ledger.profile("user-1")

    assert profile.level == 3
    assert profile.total_xp == 300


@pytest.mark.asyncio
async def test_history_newest_first_with_limit(ledger):
    for index in range(5):
        await ledger.award("user-1", 10, XPSource.PRAYER, f"evt-{index}")

    history = await ledger.history("user-1", limit=3)

    assert [tx.source_id for tx in history] == ["evt-4", "evt-3", "evt-2"]


@pytest.mark.asyncio
async def test_history_rejects_bad_limit(ledger):
    with pytest.raises(ValidationError):
        await ledger.history("user-1", limit=0)
