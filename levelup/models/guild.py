"""Guild model with a shared weekly XP goal"""
from typing import Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_WEEKLY_GOAL = 1000


class Guild(BaseModel):
    """Team pooling its members' quest XP"""
    id: str
    name: str = Field(min_length=1)
    description: Optional[str] = None
    owner_id: str
    member_ids: list[str] = Field(default_factory=list)
    weekly_goal: int = Field(DEFAULT_WEEKLY_GOAL, ge=1)
    team_xp: int = Field(0, ge=0)

    @field_validator('member_ids')
    @classmethod
    def dedupe_members(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))

    @property
    def goal_progress(self) -> float:
        """Share of the weekly goal reached, capped at 1.0"""
        return min(1.0, self.team_xp / self.weekly_goal)

    @property
    def goal_reached(self) -> bool:
        return self.team_xp >= self.weekly_goal
