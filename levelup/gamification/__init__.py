"""
Progression and trust-verification engine

This package turns quest completions into state changes:
- Progression curve (XP per level, reward multipliers)
- Trust evaluation (evidence confidence, spot checks, trust score)
- Loot generation (quest rewards, daily chests)
- Streak tracking (calendar-day continuity, streak savers)
- Progression engine (one completion end-to-end)
"""

from levelup.gamification.progression_curve import (
    xp_required_for_level,
    level_progress,
    difficulty_multiplier,
    trust_multiplier,
    streak_multiplier,
)
from levelup.gamification.trust_evaluator import TrustEvaluator
from levelup.gamification.loot_generator import LootGenerator, LootTable
from levelup.gamification.streak_tracker import StreakTracker
from levelup.gamification.progression_engine import (
    ProgressionEngine,
    apply_rewards,
    resolve_level_ups,
)

__all__ = [
    "xp_required_for_level",
    "level_progress",
    "difficulty_multiplier",
    "trust_multiplier",
    "streak_multiplier",
    "TrustEvaluator",
    "LootGenerator",
    "LootTable",
    "StreakTracker",
    "ProgressionEngine",
    "apply_rewards",
    "resolve_level_ups",
]
