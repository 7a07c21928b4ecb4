"""Unit tests for Badge System (prayer_engine/gamification/achievement_system.py)"""
import asyncio
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

from prayer_engine.exceptions import ComputationError, ConflictError, NotFoundError, StoreError
from prayer_engine.gamification.achievement_system import (
    BADGE_CATALOG,
    BadgeEvaluator,
    get_badge_by_id,
    progress_from_stats,
)
from prayer_engine.gamification.statistics import UserStatistics
from prayer_engine.gamification.xp_system import XPLedger
from prayer_engine.models import (
    BadgeDefinition,
    BadgeRarity,
    CompletionEvent,
    PrayerType,
    StreakLength,
    TotalCompletedCount,
    XPSource,
)


@pytest.fixture
def ledger(store, clock):
    return XPLedger(store, clock=clock)


@pytest.fixture
def evaluator(store, ledger, clock):
    return BadgeEvaluator(store, ledger, clock=clock)


# ============================================================================
# Catalog Tests
# ============================================================================

def test_catalog_has_fifteen_unique_badges():
    ids = [badge.id for badge in BADGE_CATALOG]
    assert len(ids) == 15
    assert len(set(ids)) == 15


def test_catalog_covers_every_rarity():
    assert {badge.rarity for badge in BADGE_CATALOG} == set(BadgeRarity)


def test_get_badge_by_id():
    assert get_badge_by_id("dawn_devotee").requirement.prayer == PrayerType.FAJR


def test_get_badge_by_id_unknown():
    with pytest.raises(NotFoundError):
        get_badge_by_id("no_such_badge")


def test_requirement_round_trips_through_tagged_union():
    badge = get_badge_by_id("early_bird")
    restored = BadgeDefinition.model_validate(badge.model_dump())

    assert restored == badge
    assert restored.requirement.kind == "early_completion"


def test_duplicate_catalog_ids_rejected(store, ledger):
    badge = get_badge_by_id("first_steps")
    with pytest.raises(ComputationError):
        BadgeEvaluator(store, ledger, catalog=[badge, badge])


# ============================================================================
# Progress Tests
# ============================================================================

def test_progress_is_capped_at_target():
    badge = get_badge_by_id("getting_started")
    assert progress_from_stats(badge, UserStatistics(total_completed=3)) == 3
    assert progress_from_stats(badge, UserStatistics(total_completed=40)) == 5


def test_streak_badge_uses_current_streak():
    """A finished run doesn't count toward a streak badge"""
    badge = get_badge_by_id("building_habit")
    assert progress_from_stats(badge, UserStatistics(current_streak=0, best_streak=4)) == 0
    assert progress_from_stats(badge, UserStatistics(current_streak=2, best_streak=4)) == 2


def test_early_badge_filters_by_prayer():
    fajr_badge = get_badge_by_id("early_bird")
    any_badge = get_badge_by_id("master_of_time")
    stats = UserStatistics(early_counts={PrayerType.FAJR: 2, PrayerType.ASR: 7}, total_early=9)

    assert progress_from_stats(fajr_badge, stats) == 2
    assert progress_from_stats(any_badge, stats) == 9


@pytest.mark.asyncio
async def test_progress_for_by_id(evaluator, store, make_day, today, boundary):
    store.add_events(make_day(today - timedelta(days=1), completed=3))

    assert await evaluator.progress_for("user-1", "getting_started", boundary) == 3
    assert await evaluator.progress_for("user-1", get_badge_by_id("first_steps"), boundary) == 1


@pytest.mark.asyncio
async def test_progress_for_unknown_badge(evaluator):
    with pytest.raises(NotFoundError):
        await evaluator.progress_for("user-1", "no_such_badge")


@pytest.mark.asyncio
async def test_get_badge_progress_lists_catalog(evaluator, store, make_day, today, boundary):
    store.add_events(make_day(today - timedelta(days=1)))
    await evaluator.evaluate_and_award("user-1", boundary)

    progress = {p.badge_id: p for p in await evaluator.get_badge_progress("user-1", boundary)}

    assert len(progress) == 15
    assert progress["first_steps"].earned is True
    assert progress["first_steps"].percentage == 100
    assert progress["getting_started"].earned is True
    assert progress["prayer_master"].earned is False
    assert progress["prayer_master"].progress == 5
    assert progress["prayer_master"].percentage == 5


# ============================================================================
# Award Tests
# ============================================================================

@pytest.mark.asyncio
async def test_evaluate_awards_met_badges(evaluator, store, make_day, today, boundary):
    for offset in range(3, 0, -1):
        store.add_events(make_day(today - timedelta(days=offset)))

    awarded = await evaluator.evaluate_and_award("user-1", boundary)

    assert {b.badge_id for b in awarded} == {"first_steps", "getting_started", "building_habit"}
    # 50 + 75 + 100
    assert await store.total_xp("user-1") == 225


@pytest.mark.asyncio
async def test_evaluate_twice_awards_once(evaluator, store, make_day, today, boundary):
    """Same badge twice -> one UserBadge row and one XP transaction"""
    store.add_events(make_day(today - timedelta(days=1)))

    first = await evaluator.evaluate_and_award("user-1", boundary)
    second = await evaluator.evaluate_and_award("user-1", boundary)

    assert len(first) == 2
    assert second == []
    assert len(await store.fetch_user_badges("user-1")) == 2
    badge_txs = [tx for tx in await store.fetch_xp_transactions("user-1") if tx.source == XPSource.BADGE]
    assert len(badge_txs) == 2


@pytest.mark.asyncio
async def test_concurrent_evaluations_award_once(evaluator, store, make_day, today, boundary):
    store.add_events(make_day(today - timedelta(days=1), completed=1))

    results = await asyncio.gather(
        evaluator.evaluate_and_award("user-1", boundary),
        evaluator.evaluate_and_award("user-1", boundary),
    )

    assert sum(len(r) for r in results) == 1
    assert await store.total_xp("user-1") == 50


@pytest.mark.asyncio
async def test_conflict_on_insert_is_treated_as_awarded(evaluator, store, make_day, today, boundary):
    store.add_events(make_day(today - timedelta(days=1), completed=1))

    with patch.object(store, "insert_badge_if_absent", AsyncMock(side_effect=ConflictError("duplicate"))):
        awarded = await evaluator.evaluate_and_award("user-1", boundary)

    assert awarded == []
    assert await store.total_xp("user-1") == 0


@pytest.mark.asyncio
async def test_store_error_leaves_no_partial_award(evaluator, store, make_day, today, boundary):
    """Badge row and XP are one unit: a failed XP append rolls the badge back"""
    store.add_events(make_day(today - timedelta(days=1), completed=1))

    with patch.object(store, "append_xp_transaction", AsyncMock(side_effect=StoreError("timeout"))):
        with pytest.raises(StoreError) as exc_info:
            await evaluator.evaluate_and_award("user-1", boundary)

    assert exc_info.value.retryable is True
    assert await store.fetch_user_badges("user-1") == []
    assert await store.total_xp("user-1") == 0


@pytest.mark.asyncio
async def test_zero_reward_badge_awards_without_xp(store, ledger, clock, make_day, today, boundary):
    badge = BadgeDefinition(
        id="hello", name="Hello", description="First prayer", icon="👋",
        rarity=BadgeRarity.COMMON, xp_reward=0, requirement=TotalCompletedCount(value=1),
    )
    evaluator = BadgeEvaluator(store, ledger, catalog=[badge], clock=clock)
    store.add_events(make_day(today - timedelta(days=1), completed=1))

    awarded = await evaluator.evaluate_and_award("user-1", boundary)

    assert [b.badge_id for b in awarded] == ["hello"]
    assert await store.fetch_xp_transactions("user-1") == []


@pytest.mark.asyncio
async def test_streak_badge_not_awarded_after_broken_streak(store, ledger, clock, make_day, today, boundary):
    """Four perfect days, then a 1/5 day yesterday: current streak is 0"""
    badge = BadgeDefinition(
        id="three", name="Three", description="3-day streak", icon="3",
        rarity=BadgeRarity.COMMON, xp_reward=10, requirement=StreakLength(value=3),
    )
    evaluator = BadgeEvaluator(store, ledger, catalog=[badge], clock=clock)
    for offset in (10, 9, 8, 7):
        store.add_events(make_day(today - timedelta(days=offset)))
    store.add_events(make_day(today - timedelta(days=1), completed=1))

    assert await evaluator.progress_for("user-1", "three", boundary) == 0
    assert await evaluator.evaluate_and_award("user-1", boundary) == []
    assert await store.total_xp("user-1") == 0


@pytest.mark.asyncio
async def test_streak_badge_awarded_on_live_streak(store, ledger, clock, make_day, today, boundary):
    badge = BadgeDefinition(
        id="three", name="Three", description="3-day streak", icon="3",
        rarity=BadgeRarity.COMMON, xp_reward=10, requirement=StreakLength(value=3),
    )
    evaluator = BadgeEvaluator(store, ledger, catalog=[badge], clock=clock)
    for offset in (3, 2, 1):
        store.add_events(make_day(today - timedelta(days=offset)))

    awarded = await evaluator.evaluate_and_award("user-1", boundary)

    assert [b.badge_id for b in awarded] == ["three"]


@pytest.mark.asyncio
async def test_mixed_naive_and_aware_timestamps(evaluator, store, boundary):
    """A naive scheduled_at is read as UTC next to an aware completed_at"""
    store.add_event(CompletionEvent(
        id="evt-naive",
        user_id="user-1",
        prayer_type=PrayerType.FAJR,
        scheduled_at=datetime(2026, 10, 18, 5, 0),
        completed_at=datetime(2026, 10, 18, 5, 10, tzinfo=timezone.utc),
        completed=True,
    ))

    awarded = await evaluator.evaluate_and_award("user-1", boundary)

    assert [b.badge_id for b in awarded] == ["first_steps"]
