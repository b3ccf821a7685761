"""Verification evidence, engine results and the completion log entry"""
from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from levelup.models.quest import Quest, VerificationSignal
from levelup.models.reward import LootChest, Reward
from levelup.models.user import UserProgress


# ============================================================================
# EVIDENCE
# ============================================================================

class HealthSummary(BaseModel):
    """Health data gathered by the evidence provider"""
    workout_type: Optional[str] = None
    duration_seconds: Optional[float] = Field(None, ge=0)
    calories: Optional[float] = Field(None, ge=0)
    steps: Optional[int] = Field(None, ge=0)
    distance: Optional[float] = Field(None, ge=0)


class FocusSessionData(BaseModel):
    """Focus timer statistics"""
    duration_seconds: float = Field(ge=0)
    app_switches: int = Field(0, ge=0)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


class VerificationPayload(BaseModel):
    """
    Best-effort evidence bundle

    Every field is optional. A missing field means the signal was not
    met, never an error.
    """
    photo_reference: Optional[str] = None
    health_summary: Optional[HealthSummary] = None
    focus_session: Optional[FocusSessionData] = None
    location_hash: Optional[str] = None
    manual_notes: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        """Manual, unverified completion"""
        return all(
            value is None
            for value in (
                self.photo_reference,
                self.health_summary,
                self.focus_session,
                self.location_hash,
                self.manual_notes,
            )
        )


class VerificationResult(BaseModel):
    """Outcome of scoring a payload"""
    confidence: float = Field(ge=0, le=1)
    trust_delta: float
    needs_proof: bool
    signals_verified: list[VerificationSignal] = Field(default_factory=list)


# ============================================================================
# STREAKS
# ============================================================================

class StreakStatus(str, Enum):
    """Continuity of a streak relative to today"""
    ACTIVE = "active"                      # already counted today
    NEEDS_COMPLETION = "needs_completion"  # must complete today to extend
    BROKEN = "broken"                      # at least one day missed


class StreakUpdate(BaseModel):
    """Streak decision for one completion"""
    status: StreakStatus
    previous_streak: int
    streak: int
    last_active_date: Optional[date] = None
    incremented: bool = False
    was_reset: bool = False
    saver_consumed: bool = False
    milestone: Optional[int] = None


# ============================================================================
# ENGINE RESULTS
# ============================================================================

class CompletionResult(BaseModel):
    """
    Everything a caller must apply after one quest completion

    Ephemeral: the engine never persists it. The caller applies user,
    quest and chest atomically and appends the rewards to its log.
    """
    quest_id: str
    completed_at: datetime
    confidence: float
    trust_delta: float
    needs_proof: bool
    signals_verified: list[VerificationSignal] = Field(default_factory=list)
    rewards: list[Reward] = Field(default_factory=list)
    bonus_rewards: list[Reward] = Field(default_factory=list)
    leveled_up: bool = False
    new_level: int
    deferred_items: list[Reward] = Field(default_factory=list)
    skill_gains: dict[str, int] = Field(default_factory=dict)
    # Quest XP credited to the active season and the user's guild
    contribution_xp: int = Field(0, ge=0)
    streak: StreakUpdate
    completed_today: int
    chest: Optional[LootChest] = None
    user: UserProgress
    quest: Quest

    @property
    def all_rewards(self) -> list[Reward]:
        return [*self.rewards, *self.bonus_rewards]


class ChestOpenResult(BaseModel):
    """Outcome of opening a loot chest"""
    chest_id: str
    rewards: list[Reward] = Field(default_factory=list)
    bonus_rewards: list[Reward] = Field(default_factory=list)
    deferred_items: list[Reward] = Field(default_factory=list)
    leveled_up: bool = False
    new_level: int
    user: UserProgress


class CompletionRecord(BaseModel):
    """Append-only completion log entry, keyed by (quest_id, timestamp)"""
    id: str = Field(default_factory=lambda: str(uuid4()))
    quest_id: str
    user_id: str
    timestamp: datetime
    verification_payload: VerificationPayload = Field(default_factory=VerificationPayload)
    confidence_score: float
    trust_delta: float
    rewards_granted: list[Reward] = Field(default_factory=list)
    was_verified: bool = False
    requires_proof: bool = False

    @property
    def key(self) -> tuple[str, datetime]:
        return (self.quest_id, self.timestamp)
