"""
Progression Curve

Pure functions for the leveling curve and reward scaling. No state.

Leveling Curve:
- XP to clear level L: floor(100 * 1.15^(L-1))
- Level 1: 100 XP, Level 2: 115 XP, Level 10: 351 XP

Reward Multipliers:
- Difficulty: easy 0.7, standard 1.0, hard 1.5
- Trust: 0.5 + trust/100 * 0.7 (range 0.5 - 1.2)
- Streak: 3+ days 1.1, 7+ 1.25, 14+ 1.5, 30+ 2.0
"""

from levelup.models.quest import DIFFICULTY_MULTIPLIERS, Difficulty

BASE_LEVEL_XP = 100

# Highest threshold first; the first one met wins
STREAK_MULTIPLIERS: list[tuple[int, float]] = [
    (30, 2.0),
    (14, 1.5),
    (7, 1.25),
    (3, 1.1),
]

MIN_TRUST_MULTIPLIER = 0.5
TRUST_MULTIPLIER_SPAN = 0.7


def xp_required_for_level(level: int) -> int:
    """
    XP needed to clear a level

    Computed with integer arithmetic (1.15 == 23/20) so the curve is exact
    and strictly increasing.

    Args:
        level: Level (>= 1)

    Returns:
        floor(100 * 1.15^(level-1))
    """
    if level < 1:
        raise ValueError(f"level must be >= 1, got {level}")
    exponent = level - 1
    return BASE_LEVEL_XP * 23 ** exponent // 20 ** exponent


def level_progress(xp: int, level: int) -> float:
    """Progress through the current level, 0.0 to 1.0"""
    return min(1.0, xp / xp_required_for_level(level))


def difficulty_multiplier(difficulty: Difficulty) -> float:
    return DIFFICULTY_MULTIPLIERS[Difficulty(difficulty)]


def trust_multiplier(trust_score: float) -> float:
    """
    Reward throttle derived from trust

    Low trust never reaches zero, high trust earns up to +20%.
    Out-of-range input is clamped first.
    """
    normalized = max(0.0, min(100.0, trust_score)) / 100.0
    return MIN_TRUST_MULTIPLIER + normalized * TRUST_MULTIPLIER_SPAN


def streak_multiplier(streak: int) -> float:
    for threshold, multiplier in STREAK_MULTIPLIERS:
        if streak >= threshold:
            return multiplier
    return 1.0
