"""
Loot Generator

Weighted-random reward bundles for quest completions and loot chests.
All ranges are inclusive and drawn uniformly from the injected source.

Quest rewards:
- Always one XP reward and one gold reward
  amount = max(1, floor(base * trust_multiplier * extra)), extra is the
  streak multiplier for XP and 1.0 for gold
- Hard quests: 15% chance of a rare 1-3 gem bonus

Chests:
- 5+ quests today: epic, 4 slots
- 3+ quests today: rare, 3 slots
- otherwise: common, 2 slots
- Daily chests open with gold (50-150) and XP (30-100); other chests
  open with gold only
- Remaining slots: 30% rare gems (1-5), else gold (20-80)
- Epic chests: 2% extra mythic jackpot of 50 gems
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from levelup.gamification.progression_curve import trust_multiplier
from levelup.gamification.random_source import RandomSource, default_random_source
from levelup.models.quest import Difficulty, Quest
from levelup.models.reward import ChestTier, ChestType, LootChest, Rarity, Reward, RewardType
from levelup.utils.amounts import floor_amount

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LootTable:
    """Tunable probabilities and ranges"""
    hard_gem_chance: float = 0.15
    hard_gem_range: tuple[int, int] = (1, 3)

    epic_threshold: int = 5
    rare_threshold: int = 3
    epic_slots: int = 4
    rare_slots: int = 3
    common_slots: int = 2

    opening_gold_range: tuple[int, int] = (50, 150)
    opening_xp_range: tuple[int, int] = (30, 100)
    slot_gem_chance: float = 0.3
    slot_gem_range: tuple[int, int] = (1, 5)
    slot_gold_range: tuple[int, int] = (20, 80)

    mythic_chance: float = 0.02
    mythic_gems: int = 50


DEFAULT_LOOT_TABLE = LootTable()


class LootGenerator:
    """Reward bundles drawn from a loot table"""

    def __init__(self, rng: Optional[RandomSource] = None, table: LootTable = DEFAULT_LOOT_TABLE):
        self.rng = rng or default_random_source()
        self.table = table

    def _roll(self, bounds: tuple[int, int]) -> int:
        low, high = bounds
        return self.rng.randint(low, high)

    def generate_quest_rewards(
        self,
        quest: Quest,
        trust_score: float,
        streak_multiplier: float = 1.0,
    ) -> list[Reward]:
        """
        Rewards for one quest completion

        Args:
            quest: Completed quest (supplies base XP/gold)
            trust_score: Trust used to scale both amounts
            streak_multiplier: Extra multiplier applied to XP only

        Returns:
            [xp, gold] plus an optional rare gem bonus for hard quests
        """
        trust_mult = trust_multiplier(trust_score)
        source = f"Quest: {quest.title}"

        xp = max(1, floor_amount(quest.base_xp * trust_mult * streak_multiplier))
        gold = max(1, floor_amount(quest.base_gold * trust_mult))

        rewards = [
            Reward(type=RewardType.XP, amount=xp, source=source),
            Reward(type=RewardType.GOLD, amount=gold, source=source),
        ]

        if quest.difficulty == Difficulty.HARD and self.rng.random() < self.table.hard_gem_chance:
            rewards.append(Reward(
                type=RewardType.GEMS,
                amount=self._roll(self.table.hard_gem_range),
                rarity=Rarity.RARE,
                source="Hard Quest Bonus",
            ))
            logger.debug(f"Hard quest bonus gems for quest {quest.id}")

        return rewards

    def chest_tier(self, quests_completed_today: int) -> tuple[ChestTier, int]:
        """Tier and slot count for the day's engagement"""
        if quests_completed_today >= self.table.epic_threshold:
            return ChestTier.EPIC, self.table.epic_slots
        if quests_completed_today >= self.table.rare_threshold:
            return ChestTier.RARE, self.table.rare_slots
        return ChestTier.COMMON, self.table.common_slots

    def generate_chest(
        self,
        quests_completed_today: int,
        trust_score: float,
        chest_type: ChestType = ChestType.DAILY,
        unlocked_at: Optional[datetime] = None,
    ) -> LootChest:
        """
        Build a chest for the day's engagement

        Args:
            quests_completed_today: Completions today, including the current one
            trust_score: Current trust (recorded for auditing; contents do
                not scale with it)
            chest_type: DAILY opens with gold + XP, anything else with gold
            unlocked_at: Unlock instant from the caller's clock

        Returns:
            Unopened LootChest
        """
        tier, slots = self.chest_tier(quests_completed_today)
        source = "Daily Chest" if chest_type == ChestType.DAILY else f"{tier.value.title()} Chest"

        rewards = [Reward(type=RewardType.GOLD, amount=self._roll(self.table.opening_gold_range), source=source)]
        if chest_type == ChestType.DAILY:
            rewards.append(Reward(type=RewardType.XP, amount=self._roll(self.table.opening_xp_range), source=source))

        while len(rewards) < slots:
            if self.rng.random() < self.table.slot_gem_chance:
                rewards.append(Reward(
                    type=RewardType.GEMS,
                    amount=self._roll(self.table.slot_gem_range),
                    rarity=Rarity.RARE,
                    source=source,
                ))
            else:
                rewards.append(Reward(type=RewardType.GOLD, amount=self._roll(self.table.slot_gold_range), source=source))

        if tier == ChestTier.EPIC and self.rng.random() < self.table.mythic_chance:
            rewards.append(Reward(
                type=RewardType.GEMS,
                amount=self.table.mythic_gems,
                rarity=Rarity.MYTHIC,
                source=f"{source} - Mythic Drop!",
            ))
            logger.info(f"Mythic drop rolled in {tier.value} chest")

        logger.debug(
            f"Generated {chest_type.value} chest: tier={tier.value}, "
            f"slots={len(rewards)}, quests_today={quests_completed_today}, trust={trust_score:.1f}"
        )

        chest = LootChest(type=chest_type, tier=tier, rewards=rewards)
        if unlocked_at is not None:
            chest.unlocked_at = unlocked_at
        return chest
