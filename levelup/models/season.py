"""Season pass models"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from levelup.utils.datetime_helpers import ensure_aware


class SeasonTier(BaseModel):
    """One step of the season pass"""
    level: int = Field(ge=1)
    xp_required: int = Field(ge=0)


class Season(BaseModel):
    """A time-boxed season with an XP-gated pass"""
    id: str
    name: str = Field(min_length=1)
    theme: Optional[str] = None
    start_at: datetime
    end_at: datetime
    tiers: list[SeasonTier] = Field(default_factory=list)

    @field_validator('start_at', 'end_at')
    @classmethod
    def validate_timezone(cls, v: datetime) -> datetime:
        """Naive timestamps are assumed to be UTC"""
        return ensure_aware(v)

    @field_validator('tiers')
    @classmethod
    def sort_tiers(cls, v: list[SeasonTier]) -> list[SeasonTier]:
        return sorted(v, key=lambda tier: tier.xp_required)

    @model_validator(mode='after')
    def validate_window(self) -> "Season":
        if self.end_at <= self.start_at:
            raise ValueError("Season must end after it starts")
        return self

    def is_active(self, now: datetime) -> bool:
        return self.start_at <= now < self.end_at

    def tier_for(self, season_xp: int) -> int:
        """Highest tier reached with this much season XP, 0 before the first"""
        reached = 0
        for tier in self.tiers:
            if season_xp >= tier.xp_required:
                reached = max(reached, tier.level)
        return reached


class SeasonProgress(BaseModel):
    """A user's standing in one season"""
    user_id: str
    season_id: str
    season_xp: int = Field(0, ge=0)
    current_tier: int = Field(0, ge=0)
    claimed_tiers: list[int] = Field(default_factory=list)
