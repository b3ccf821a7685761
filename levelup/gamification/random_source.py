"""Injectable randomness for loot rolls and spot checks"""
import logging
import random
from typing import Optional, Protocol

from levelup import config

logger = logging.getLogger(__name__)


class RandomSource(Protocol):
    """Subset of random.Random the engine draws from"""

    def random(self) -> float:
        """Uniform draw in [0, 1)"""
        ...

    def randint(self, a: int, b: int) -> int:
        """Uniform integer in [a, b], both inclusive"""
        ...


def default_random_source(seed: Optional[int] = None) -> random.Random:
    """
    Build the default source

    Seeded from the argument, else RNG_SEED, else OS entropy.
    """
    if seed is None:
        seed = config.RNG_SEED
    if seed is not None:
        logger.debug(f"Using seeded random source (seed={seed})")
    return random.Random(seed)
