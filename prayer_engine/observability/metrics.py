"""
Prometheus metrics for the prayer engine

Defines the counters the engine updates as it awards XP, badges and
challenges, and as store calls fail. Exposition (an HTTP /metrics endpoint)
belongs to the embedding application.
"""

import logging
from prometheus_client import Counter

logger = logging.getLogger(__name__)

# =============================================================================
# Progression Metrics
# =============================================================================

xp_awarded_total = Counter(
    "prayer_engine_xp_awarded_total",
    "Total XP appended to the ledger",
    ["source"],  # source: prayer/streak_day/badge/challenge/milestone/correction
)

level_ups_total = Counter(
    "prayer_engine_level_ups_total",
    "Total level-ups produced by XP awards",
)

badges_awarded_total = Counter(
    "prayer_engine_badges_awarded_total",
    "Total badges awarded",
    ["rarity"],
)

challenges_total = Counter(
    "prayer_engine_challenges_total",
    "Challenge instances by lifecycle outcome",
    ["period", "outcome"],  # outcome: generated/completed/expired
)

# =============================================================================
# Store Metrics
# =============================================================================

store_errors_total = Counter(
    "prayer_engine_store_errors_total",
    "Record Store failures by operation",
    ["operation", "retryable"],
)


def record_xp_award(source: str, amount: int, leveled_up: bool) -> None:
    """Record an XP award; never raises"""
    try:
        if amount > 0:
            xp_awarded_total.labels(source=source).inc(amount)
        if leveled_up:
            level_ups_total.inc()
    except Exception as e:
        logger.warning(f"Failed to record XP metric: {e}")


def record_badge_award(rarity: str) -> None:
    try:
        badges_awarded_total.labels(rarity=rarity).inc()
    except Exception as e:
        logger.warning(f"Failed to record badge metric: {e}")


def record_challenge_outcome(period: str, outcome: str, count: int = 1) -> None:
    try:
        if count > 0:
            challenges_total.labels(period=period, outcome=outcome).inc(count)
    except Exception as e:
        logger.warning(f"Failed to record challenge metric: {e}")


def record_store_error(operation: str, retryable: bool) -> None:
    try:
        store_errors_total.labels(operation=operation, retryable=str(retryable).lower()).inc()
    except Exception as e:
        logger.warning(f"Failed to record store error metric: {e}")
