"""
Prometheus metrics definitions for the progression engine.

Metrics are organized by category:
- Completion metrics: accepted/rejected completions, spot checks
- Progression metrics: level-ups, rewards granted
- Trust metrics: trust movements, weekly decay
- Loot metrics: chests unlocked and opened
- Streak metrics: resets and savers spent

The host process decides whether to expose them (e.g. a /metrics endpoint).
"""

import logging
from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)

# =============================================================================
# Completion Metrics
# =============================================================================

quest_completions_total = Counter(
    "levelup_quest_completions_total",
    "Total quest completion attempts",
    ["status"],  # status: accepted/rejected/invalid
)

proof_requests_total = Counter(
    "levelup_proof_requests_total",
    "Completions that triggered a spot-check proof request",
)

completion_confidence = Histogram(
    "levelup_completion_confidence",
    "Evidence confidence per completion",
    buckets=[0.1, 0.3, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0],
)

# =============================================================================
# Progression Metrics
# =============================================================================

level_ups_total = Counter(
    "levelup_level_ups_total",
    "Total levels gained",
)

rewards_granted_total = Counter(
    "levelup_rewards_granted_total",
    "Total reward amount granted",
    ["reward_type"],  # xp/gold/gems/tickets/item
)

# =============================================================================
# Trust Metrics
# =============================================================================

trust_changes_total = Counter(
    "levelup_trust_changes_total",
    "Trust score movements by direction",
    ["direction"],  # up/flat/down
)

trust_decays_total = Counter(
    "levelup_trust_decays_total",
    "Weekly idle decays applied",
)

# =============================================================================
# Loot Metrics
# =============================================================================

chests_unlocked_total = Counter(
    "levelup_chests_unlocked_total",
    "Loot chests unlocked",
    ["tier"],  # common/rare/epic
)

chests_opened_total = Counter(
    "levelup_chests_opened_total",
    "Loot chests opened",
    ["tier"],
)

# =============================================================================
# Streak Metrics
# =============================================================================

streak_resets_total = Counter(
    "levelup_streak_resets_total",
    "Streaks reset to zero",
)

streak_savers_used_total = Counter(
    "levelup_streak_savers_used_total",
    "Streak savers spent to keep a broken streak",
)

# =============================================================================
# Season & Guild Metrics
# =============================================================================

contribution_xp_total = Counter(
    "levelup_contribution_xp_total",
    "Quest XP credited to seasons and guilds",
    ["target"],  # season/guild
)

season_tiers_reached_total = Counter(
    "levelup_season_tiers_reached_total",
    "Season pass tiers reached",
)


def record_completion(result) -> None:
    """
    Record metrics for an accepted CompletionResult

    Args:
        result: CompletionResult applied by the store
    """
    quest_completions_total.labels(status="accepted").inc()
    completion_confidence.observe(result.confidence)

    if result.needs_proof:
        proof_requests_total.inc()

    if result.trust_delta > 0:
        trust_changes_total.labels(direction="up").inc()
    elif result.trust_delta < 0:
        trust_changes_total.labels(direction="down").inc()
    else:
        trust_changes_total.labels(direction="flat").inc()

    record_rewards(result.all_rewards)

    if result.streak.was_reset:
        streak_resets_total.inc()
    if result.streak.saver_consumed:
        streak_savers_used_total.inc()
    if result.chest is not None:
        chests_unlocked_total.labels(tier=result.chest.tier.value).inc()


def record_rewards(rewards) -> None:
    for reward in rewards:
        rewards_granted_total.labels(reward_type=reward.type.value).inc(reward.amount)


def record_level_ups(levels_gained: int) -> None:
    if levels_gained > 0:
        level_ups_total.inc(levels_gained)
