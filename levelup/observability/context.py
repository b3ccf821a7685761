"""
Sentry context for progression events

Every event carries the player's progression (level, trust, streak) and
is tagged with the quest or chest it concerns, so an error report can be
matched to the completion log.
"""

import logging
from typing import Any, Dict, Optional

import sentry_sdk
from sentry_sdk import set_user, add_breadcrumb as sentry_add_breadcrumb

from levelup.exceptions import LevelUpError, PreconditionFailedError
from levelup.models.completion import ChestOpenResult, CompletionResult
from levelup.models.user import UserProgress

logger = logging.getLogger(__name__)


def set_user_context(user: UserProgress) -> None:
    """
    Attach the player and their progression to subsequent events.

    Args:
        user: Snapshot the next operation starts from
    """
    set_user({"id": user.user_id})
    sentry_sdk.set_context("progression", {
        "level": user.level,
        "xp": user.xp,
        "trust_score": user.trust_score,
        "streak": user.streak,
    })
    logger.debug(f"Set Sentry user context: user_id={user.user_id}, level={user.level}")


def _breadcrumb(category: str, message: str, level: str = "info", data: Optional[Dict[str, Any]] = None) -> None:
    sentry_add_breadcrumb(category=category, message=message, level=level, data=data or {})


def add_completion_breadcrumb(result: CompletionResult) -> None:
    """Record an accepted completion on the event trail"""
    _breadcrumb(
        "completion",
        "Quest completed",
        data={
            "quest_id": result.quest_id,
            "confidence": result.confidence,
            "needs_proof": result.needs_proof,
            "new_level": result.new_level,
            "streak": result.streak.streak,
            "chest_tier": result.chest.tier.value if result.chest is not None else None,
        },
    )


def add_rejection_breadcrumb(
    error: PreconditionFailedError,
    quest_id: Optional[str] = None,
    chest_id: Optional[str] = None,
) -> None:
    """Record a rejected completion or chest opening"""
    data: Dict[str, Any] = {"reason": error.reason}
    if quest_id:
        data["quest_id"] = quest_id
    if chest_id:
        data["chest_id"] = chest_id
    _breadcrumb("chest" if chest_id else "completion", error.user_message, level="warning", data=data)


def add_chest_breadcrumb(result: ChestOpenResult, tier: str) -> None:
    """Record an opened chest and what it paid out"""
    _breadcrumb(
        "chest",
        "Chest opened",
        data={
            "chest_id": result.chest_id,
            "tier": tier,
            "rewards": [f"{r.amount} {r.type.value}" for r in result.rewards],
            "leveled_up": result.leveled_up,
        },
    )


def add_trust_breadcrumb(week: str, idle_weeks: int, trust_before: float, trust_after: float) -> None:
    """Record a weekly trust decay"""
    _breadcrumb(
        "trust",
        "Weekly maintenance",
        data={
            "week": week,
            "idle_weeks": idle_weeks,
            "trust_before": trust_before,
            "trust_after": trust_after,
        },
    )


def capture_exception_with_context(
    exception: Exception,
    user_id: Optional[str] = None,
    quest_id: Optional[str] = None,
    chest_id: Optional[str] = None,
    operation: Optional[str] = None,
) -> Optional[str]:
    """
    Report a handled exception, tagged with the record it concerns.

    LevelUpError subclasses also attach their to_dict() payload and
    request id.

    Returns:
        Event ID from Sentry, or None if not sent
    """
    with sentry_sdk.new_scope() as scope:
        tags = {"user_id": user_id, "quest_id": quest_id, "chest_id": chest_id, "operation": operation}
        for key, value in tags.items():
            if value:
                scope.set_tag(key, value)

        if isinstance(exception, LevelUpError):
            scope.set_tag("request_id", exception.request_id)
            scope.set_context("levelup_error", exception.to_dict())

        return sentry_sdk.capture_exception(exception)
