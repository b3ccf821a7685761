"""Reward and loot chest models"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class RewardType(str, Enum):
    """What a reward increments"""
    XP = "xp"
    GOLD = "gold"
    GEMS = "gems"
    TICKETS = "tickets"
    ITEM = "item"


class Rarity(str, Enum):
    """Reward rarity"""
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    MYTHIC = "mythic"


class ChestType(str, Enum):
    """Where a chest came from"""
    DAILY = "daily"
    STANDARD = "standard"
    SEASONAL = "seasonal"


class ChestTier(str, Enum):
    """Chest tier, decides the number of reward slots"""
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"


class Reward(BaseModel):
    """Granted reward. Value object, never mutated once granted."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    type: RewardType
    amount: int = Field(ge=1)
    rarity: Rarity = Rarity.COMMON
    source: str
    item_id: Optional[str] = None


class LootChest(BaseModel):
    """Bundle of pending rewards, consumed by an explicit open action"""
    id: str = Field(default_factory=lambda: str(uuid4()))
    type: ChestType = ChestType.STANDARD
    tier: ChestTier = ChestTier.COMMON
    rewards: list[Reward] = Field(default_factory=list)
    opened: bool = False
    unlocked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
