"""Configuration management"""
import logging
import os
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from levelup.exceptions import ConfigurationError

load_dotenv()


def _optional_int(name: str) -> int | None:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else None


# Logging
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

# Calendar day boundaries (streaks, "completed today", ISO weeks)
TIMEZONE: str = os.getenv("TIMEZONE", "UTC")

# Trust
DEFAULT_TRUST_SCORE: float = float(os.getenv("DEFAULT_TRUST_SCORE", "60"))
CONFIDENCE_THRESHOLD: float = float(os.getenv("CONFIDENCE_THRESHOLD", "0.6"))
BASE_PROOF_CHECK_RATE: float = float(os.getenv("BASE_PROOF_CHECK_RATE", "0.1"))
LOW_TRUST_PROOF_CHECK_RATE: float = float(os.getenv("LOW_TRUST_PROOF_CHECK_RATE", "0.4"))
LOW_TRUST_THRESHOLD: float = float(os.getenv("LOW_TRUST_THRESHOLD", "40"))
WEEKLY_DECAY_AMOUNT: float = float(os.getenv("WEEKLY_DECAY_AMOUNT", "5"))

# Engagement policy (not invariants, product choices)
STREAK_DAILY_MINIMUM: int = int(os.getenv("STREAK_DAILY_MINIMUM", "3"))
DAILY_CHEST_THRESHOLD: int = int(os.getenv("DAILY_CHEST_THRESHOLD", "3"))

# Randomness (unset = nondeterministic)
RNG_SEED: int | None = _optional_int("RNG_SEED")


def configure_logging(level: str | None = None) -> None:
    """Configure root logging with the application format"""
    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        level=getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO)
    )


# Validation
def validate_config() -> None:
    """Validate tunable constants"""
    for key, rate in (
        ("CONFIDENCE_THRESHOLD", CONFIDENCE_THRESHOLD),
        ("BASE_PROOF_CHECK_RATE", BASE_PROOF_CHECK_RATE),
        ("LOW_TRUST_PROOF_CHECK_RATE", LOW_TRUST_PROOF_CHECK_RATE),
    ):
        if not 0.0 <= rate <= 1.0:
            raise ConfigurationError(f"{key} must be within [0, 1], got {rate}", config_key=key)

    for key, score in (
        ("DEFAULT_TRUST_SCORE", DEFAULT_TRUST_SCORE),
        ("LOW_TRUST_THRESHOLD", LOW_TRUST_THRESHOLD),
    ):
        if not 0.0 <= score <= 100.0:
            raise ConfigurationError(f"{key} must be within [0, 100], got {score}", config_key=key)

    if WEEKLY_DECAY_AMOUNT < 0:
        raise ConfigurationError("WEEKLY_DECAY_AMOUNT cannot be negative", config_key="WEEKLY_DECAY_AMOUNT")
    if STREAK_DAILY_MINIMUM < 1:
        raise ConfigurationError("STREAK_DAILY_MINIMUM must be at least 1", config_key="STREAK_DAILY_MINIMUM")
    if DAILY_CHEST_THRESHOLD < 1:
        raise ConfigurationError("DAILY_CHEST_THRESHOLD must be at least 1", config_key="DAILY_CHEST_THRESHOLD")

    try:
        ZoneInfo(TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(f"Unknown timezone '{TIMEZONE}'", config_key="TIMEZONE", cause=e)
