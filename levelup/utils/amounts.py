"""
Reward amount rounding

Every computed reward (XP, gold, gems) is floored to an integer. Float
products such as 100 * 1.15 land just under the exact value, so a small
tolerance is added before flooring.
"""

import math

# 100 * 1.15 == 114.99999999999999
FLOOR_TOLERANCE = 1e-9


def floor_amount(value: float) -> int:
    """Floor a computed reward amount"""
    return math.floor(value + FLOOR_TOLERANCE)
