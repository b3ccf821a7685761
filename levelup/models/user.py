"""User progression snapshot models"""
from datetime import date
from typing import Optional

from pydantic import BaseModel, Field

from levelup import config
from levelup.models.quest import QuestCategory


# Quest category -> skill it trains
CATEGORY_SKILLS: dict[QuestCategory, str] = {
    QuestCategory.FITNESS: "strength",
    QuestCategory.FOCUS: "focus",
    QuestCategory.KNOWLEDGE: "knowledge",
    QuestCategory.SOCIAL: "social",
    QuestCategory.WELLBEING: "wellbeing",
}


class Currencies(BaseModel):
    """Spendable balances"""
    gold: int = Field(0, ge=0)
    gems: int = Field(0, ge=0)
    tickets: int = Field(0, ge=0)


class Skills(BaseModel):
    """Per-category skill tally (cosmetic)"""
    strength: int = Field(0, ge=0)
    focus: int = Field(0, ge=0)
    knowledge: int = Field(0, ge=0)
    social: int = Field(0, ge=0)
    wellbeing: int = Field(0, ge=0)


class UserProgress(BaseModel):
    """
    Progression snapshot passed into the engine

    xp is measured against the current level's requirement, never a
    running total across levels.
    """
    user_id: str
    level: int = Field(1, ge=1)
    xp: int = Field(0, ge=0)
    currencies: Currencies = Field(default_factory=Currencies)
    trust_score: float = Field(config.DEFAULT_TRUST_SCORE, ge=0, le=100)
    streak: int = Field(0, ge=0)
    last_active_date: Optional[date] = None
    skills: Skills = Field(default_factory=Skills)

