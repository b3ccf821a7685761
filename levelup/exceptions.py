"""
Standardized exception hierarchy for the progression engine
Provides rich context, consistent logging, and user-friendly error messages

Low confidence, missing evidence and empty signal lists are expected
outcomes and never raise. Only malformed snapshots (InvalidInputError) and
rejected actions (PreconditionFailedError) do.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


class LevelUpError(Exception):
    """
    Base exception for all levelup errors

    Logs itself on creation with the user, operation and record it
    concerns. `user_message` is safe to show in the app; `to_dict()` is
    what the store and the Sentry scope attach.

    Example:
        raise LevelUpError(
            message="Failed to apply completion",
            user_id="user-1",
            operation="complete_quest",
            context={"quest_id": "abc-123"}
        )
    """

    log_level: int = logging.ERROR

    def __init__(
        self,
        message: str,
        user_id: Optional[str] = None,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.request_id = request_id or str(uuid4())
        self.operation = operation
        self.context = context or {}
        self.cause = cause
        self.user_message = user_message or "An error occurred. Please try again."
        self.timestamp = datetime.now(timezone.utc)

        # Auto-log on creation
        self._log_error()

    def _log_error(self) -> None:
        """Log error with full context"""
        log_data = {
            "error_type": self.__class__.__name__,
            "error_message": self.message,  # Avoid conflict with logging's 'message' field
            "request_id": self.request_id,
            "user_id": self.user_id,
            "operation": self.operation,
            "error_context": self.context,
            "timestamp": self.timestamp.isoformat()
        }

        if self.cause:
            log_data["cause"] = str(self.cause)
            logger.log(self.log_level, f"{self.__class__.__name__}: {self.message}", extra=log_data, exc_info=self.cause)
        else:
            logger.log(self.log_level, f"{self.__class__.__name__}: {self.message}", extra=log_data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for the presentation layer"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "user_message": self.user_message,
            "operation": self.operation,
            "details": {k: v for k, v in self.context.items() if v is not None},
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Invalid Input (malformed snapshots)
# ==========================================

class InvalidInputError(LevelUpError):
    """
    Raised when a user or quest snapshot is malformed

    The engine rejects instead of clamping so caller bugs surface.

    Example:
        raise InvalidInputError(
            message="Level must be at least 1",
            field="level",
            value=0,
            user_id="user-1"
        )
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=message,
            user_message=f"Invalid {field}: {message}" if field else message,
            context={"field": field, "value": value},
            **kwargs
        )


# ==========================================
# Precondition Failures (rejected actions)
# ==========================================

class PreconditionFailedError(LevelUpError):
    """
    Base class for actions rejected before any state change

    Surfaced to the UI as a no-op, never as a crash.
    """

    log_level = logging.WARNING
    reason: str = "precondition_failed"

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["reason"] = self.reason
        return data


class QuestNotCompletableError(PreconditionFailedError):
    """Quest is not active or still on cooldown"""

    def __init__(
        self,
        message: str,
        quest_id: Optional[str] = None,
        reason: str = "status",
        **kwargs
    ):
        self.quest_id = quest_id
        self.reason = reason
        if reason == "cooldown":
            user_message = "This quest is still on cooldown. Come back a bit later!"
        else:
            user_message = "This quest can't be completed right now."
        super().__init__(
            message=message,
            user_message=user_message,
            context={"quest_id": quest_id, "reason": reason},
            **kwargs
        )


class ChestAlreadyOpenedError(PreconditionFailedError):
    """Loot chest was already consumed"""

    reason = "chest_opened"

    def __init__(self, message: str, chest_id: Optional[str] = None, **kwargs):
        self.chest_id = chest_id
        super().__init__(
            message=message,
            user_message="This chest has already been opened.",
            context={"chest_id": chest_id},
            **kwargs
        )


class StreakSaverUnavailableError(PreconditionFailedError):
    """Caller asked to use a streak saver the user does not hold"""

    reason = "no_streak_saver"

    def __init__(self, message: str = "No streak saver available", **kwargs):
        super().__init__(
            message=message,
            user_message="You don't have a Streak Saver to use.",
            **kwargs
        )


# ==========================================
# Store Errors
# ==========================================

class RecordNotFoundError(LevelUpError):
    """Requested record does not exist in the profile store"""

    def __init__(
        self,
        message: str,
        record_type: Optional[str] = None,
        record_id: Optional[str] = None,
        **kwargs
    ):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(
            message=message,
            user_message=f"{record_type or 'Record'} not found.",
            context={"record_type": record_type, "record_id": record_id},
            **kwargs
        )


# ==========================================
# Configuration Errors
# ==========================================

class ConfigurationError(LevelUpError):
    """System configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            user_message="The system is not properly configured. Please contact support.",
            context={"config_key": config_key},
            **kwargs
        )
