"""Quest model with difficulty, verification signals and cooldown"""
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from levelup.utils.amounts import floor_amount
from levelup.utils.datetime_helpers import ensure_aware

BASE_QUEST_XP = 50
BASE_QUEST_GOLD = 20


class QuestType(str, Enum):
    """Quest types"""
    HABIT = "habit"
    TASK = "task"
    TIMED_CHALLENGE = "timed_challenge"
    EVENT = "event"
    TEAM_QUEST = "team_quest"


class Difficulty(str, Enum):
    """Quest difficulty"""
    EASY = "easy"
    STANDARD = "standard"
    HARD = "hard"


DIFFICULTY_MULTIPLIERS: dict[Difficulty, float] = {
    Difficulty.EASY: 0.7,
    Difficulty.STANDARD: 1.0,
    Difficulty.HARD: 1.5,
}


class QuestCategory(str, Enum):
    """Quest category, feeds the skill tally"""
    FITNESS = "fitness"
    FOCUS = "focus"
    KNOWLEDGE = "knowledge"
    SOCIAL = "social"
    WELLBEING = "wellbeing"


class QuestStatus(str, Enum):
    """Quest lifecycle status"""
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    ARCHIVED = "archived"


class VerificationType(str, Enum):
    """How a quest is expected to be verified"""
    MANUAL = "manual"
    HEALTH_KIT = "health_kit"
    PHOTO = "photo"
    TIMER = "timer"
    LOCATION = "location"
    HYBRID = "hybrid"


class VerificationSignal(str, Enum):
    """A piece of evidence that can corroborate a completion"""
    HEALTH_WORKOUT = "health_workout"
    HEALTH_STEPS = "health_steps"
    HEALTH_SLEEP = "health_sleep"
    HEALTH_MINDFULNESS = "health_mindfulness"
    LOW_APP_SWITCHING = "low_app_switching"
    TIMER_COMPLETION = "timer_completion"
    LOCATION_DWELL = "location_dwell"
    PHOTO_PROOF = "photo_proof"


class Quest(BaseModel):
    """Quest snapshot as supplied by the persistence layer"""
    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    title: str = Field(min_length=1)
    description: Optional[str] = None
    quest_type: QuestType = QuestType.HABIT
    difficulty: Difficulty = Difficulty.STANDARD
    category: QuestCategory = QuestCategory.FITNESS
    verification_type: VerificationType = VerificationType.MANUAL
    signals_required: list[VerificationSignal] = Field(default_factory=list)
    status: QuestStatus = QuestStatus.ACTIVE
    cooldown_hours: int = Field(24, ge=0)
    last_completed_at: Optional[datetime] = None
    completion_count: int = Field(0, ge=0)

    @field_validator('signals_required')
    @classmethod
    def dedupe_signals(cls, v: list[VerificationSignal]) -> list[VerificationSignal]:
        """Signals form a set; keep first occurrence order"""
        return list(dict.fromkeys(v))

    @field_validator('last_completed_at')
    @classmethod
    def validate_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Naive timestamps are assumed to be UTC"""
        return ensure_aware(v) if v is not None else v

    @property
    def reward_multiplier(self) -> float:
        return DIFFICULTY_MULTIPLIERS[self.difficulty]

    @property
    def base_xp(self) -> int:
        return floor_amount(BASE_QUEST_XP * self.reward_multiplier)

    @property
    def base_gold(self) -> int:
        return floor_amount(BASE_QUEST_GOLD * self.reward_multiplier)

    def is_on_cooldown(self, now: datetime) -> bool:
        if self.last_completed_at is None:
            return False
        return now - self.last_completed_at < timedelta(hours=self.cooldown_hours)

    def can_complete(self, now: datetime) -> bool:
        return self.status == QuestStatus.ACTIVE and not self.is_on_cooldown(now)

    def mark_completed(self, now: datetime) -> "Quest":
        return self.model_copy(update={
            "status": QuestStatus.COMPLETED,
            "last_completed_at": now,
            "completion_count": self.completion_count + 1,
        })

    def reopen_if_ready(self, now: datetime) -> "Quest":
        """Start the next cycle of a completed habit once its cooldown elapsed"""
        if (
            self.quest_type == QuestType.HABIT
            and self.status == QuestStatus.COMPLETED
            and not self.is_on_cooldown(now)
        ):
            return self.model_copy(update={"status": QuestStatus.ACTIVE})
        return self
