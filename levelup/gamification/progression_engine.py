"""
Progression Engine

Turns "I did quest X" into a CompletionResult. Snapshot in, result out:
the engine never owns persisted state, and the caller applies the result
atomically (one in-flight completion per user).

Completion flow:
1. Verify - reject non-completable quests before anything else, then
   score the evidence
2. Update trust - clamp(trust + delta, 0, 100)
3. Decide the streak - continue, reset or bridge with a saver
4. Compute rewards - base XP/gold scaled by trust, XP also by the streak
   left after step 3 (a reset streak earns no bonus)
5. Apply rewards - currencies and XP; item rewards are deferred to the
   caller's inventory
6. Resolve level-ups - roll overflow XP into levels, +level*10 gold per
   level and 5 rare gems every 5th level
7. Skill tally, season/guild contribution and daily chest
8. Emit CompletionResult
"""

import logging
from typing import Optional

from levelup import config
from levelup.exceptions import (
    ChestAlreadyOpenedError,
    InvalidInputError,
    QuestNotCompletableError,
)
from levelup.gamification.loot_generator import LootGenerator
from levelup.gamification.progression_curve import streak_multiplier, xp_required_for_level
from levelup.gamification.random_source import RandomSource, default_random_source
from levelup.gamification.streak_tracker import StreakTracker
from levelup.gamification.trust_evaluator import TrustEvaluator
from levelup.models.completion import (
    ChestOpenResult,
    CompletionResult,
    VerificationPayload,
)
from levelup.models.quest import Quest, QuestStatus
from levelup.models.reward import ChestType, LootChest, Rarity, Reward, RewardType
from levelup.models.user import CATEGORY_SKILLS, UserProgress
from levelup.utils.datetime_helpers import Clock, SystemClock

logger = logging.getLogger(__name__)

XP_BOOST_MULTIPLIER = 2.0
LEVEL_GOLD_BONUS_PER_LEVEL = 10
MILESTONE_LEVEL_INTERVAL = 5
MILESTONE_GEMS = 5
SKILL_XP_DIVISOR = 10

_CURRENCY_FIELDS = {
    RewardType.GOLD: "gold",
    RewardType.GEMS: "gems",
    RewardType.TICKETS: "tickets",
}


# ============================================================================
# Snapshot validation
# ============================================================================

def validate_user_snapshot(user: UserProgress) -> None:
    """
    Reject malformed user snapshots instead of clamping them

    Pydantic validates on construction; this also catches snapshots built
    with model_construct() or mutated after validation.
    """
    checks = (
        ("level", user.level, user.level >= 1),
        ("xp", user.xp, user.xp >= 0),
        ("streak", user.streak, user.streak >= 0),
        ("trust_score", user.trust_score, 0.0 <= user.trust_score <= 100.0),
        ("currencies.gold", user.currencies.gold, user.currencies.gold >= 0),
        ("currencies.gems", user.currencies.gems, user.currencies.gems >= 0),
        ("currencies.tickets", user.currencies.tickets, user.currencies.tickets >= 0),
    )
    for field, value, ok in checks:
        if not ok:
            raise InvalidInputError(
                message=f"{field} out of range: {value}",
                field=field,
                value=value,
                user_id=user.user_id,
                operation="validate_user_snapshot",
            )


def validate_quest_snapshot(quest: Quest, user: UserProgress) -> None:
    if quest.cooldown_hours < 0:
        raise InvalidInputError(
            message=f"cooldown_hours cannot be negative: {quest.cooldown_hours}",
            field="cooldown_hours",
            value=quest.cooldown_hours,
            user_id=user.user_id,
            operation="validate_quest_snapshot",
        )
    if quest.user_id != user.user_id:
        raise InvalidInputError(
            message=f"Quest {quest.id} belongs to {quest.user_id}, not {user.user_id}",
            field="user_id",
            value=quest.user_id,
            user_id=user.user_id,
            operation="validate_quest_snapshot",
        )


# ============================================================================
# Reward application (shared by completions and chests)
# ============================================================================

def apply_rewards(user: UserProgress, rewards: list[Reward]) -> tuple[UserProgress, list[Reward]]:
    """
    Add rewards to a snapshot

    Args:
        user: Snapshot before the rewards
        rewards: Rewards to apply, in order

    Returns:
        (updated snapshot, item rewards for the caller's inventory)

    XP is added as-is; call resolve_level_ups() afterwards.
    """
    xp = user.xp
    balances = user.currencies.model_dump()
    deferred_items = []

    for reward in rewards:
        if reward.type == RewardType.XP:
            xp += reward.amount
        elif reward.type == RewardType.ITEM:
            deferred_items.append(reward)
        else:
            balances[_CURRENCY_FIELDS[reward.type]] += reward.amount

    updated = user.model_copy(update={
        "xp": xp,
        "currencies": user.currencies.model_copy(update=balances),
    })
    return updated, deferred_items


def resolve_level_ups(user: UserProgress) -> tuple[UserProgress, list[Reward]]:
    """
    Roll overflow XP into level-ups

    Terminates because the requirement grows with every level while the XP
    being rolled over is finite. Level bonuses are applied to the returned
    snapshot.

    Returns:
        (snapshot with xp < xp_required_for_level(level), bonus rewards)
    """
    level = user.level
    xp = user.xp
    bonus_rewards = []

    while xp >= xp_required_for_level(level):
        xp -= xp_required_for_level(level)
        level += 1

        bonus_rewards.append(Reward(
            type=RewardType.GOLD,
            amount=level * LEVEL_GOLD_BONUS_PER_LEVEL,
            source=f"Level {level} Bonus",
        ))
        if level % MILESTONE_LEVEL_INTERVAL == 0:
            bonus_rewards.append(Reward(
                type=RewardType.GEMS,
                amount=MILESTONE_GEMS,
                rarity=Rarity.RARE,
                source=f"Level {level} Milestone",
            ))

    if level > user.level:
        logger.info(f"User {user.user_id} leveled up from {user.level} to {level}!")

    leveled = user.model_copy(update={"level": level, "xp": xp})
    leveled, _ = apply_rewards(leveled, bonus_rewards)
    return leveled, bonus_rewards


# ============================================================================
# Engine
# ============================================================================

class ProgressionEngine:
    """
    Orchestrates curve, trust, loot and streaks for one event at a time.

    Pure and synchronous apart from the injected random source and clock.
    """

    def __init__(
        self,
        rng: Optional[RandomSource] = None,
        clock: Optional[Clock] = None,
        trust_evaluator: Optional[TrustEvaluator] = None,
        loot_generator: Optional[LootGenerator] = None,
        streak_tracker: Optional[StreakTracker] = None,
        daily_chest_threshold: Optional[int] = None,
    ):
        rng = rng or default_random_source()
        self.clock = clock or SystemClock()
        self.trust_evaluator = trust_evaluator or TrustEvaluator(rng=rng)
        self.loot_generator = loot_generator or LootGenerator(rng=rng)
        self.streak_tracker = streak_tracker or StreakTracker()
        self.daily_chest_threshold = (
            config.DAILY_CHEST_THRESHOLD if daily_chest_threshold is None else daily_chest_threshold
        )

    def check_can_complete(self, quest: Quest, user_id: Optional[str] = None) -> None:
        """Raise QuestNotCompletableError unless the quest is completable now"""
        now = self.clock.now()
        if quest.status != QuestStatus.ACTIVE:
            raise QuestNotCompletableError(
                message=f"Quest {quest.id} is {quest.status.value}, not active",
                quest_id=quest.id,
                reason="status",
                user_id=user_id,
                operation="complete_quest",
            )
        if quest.is_on_cooldown(now):
            raise QuestNotCompletableError(
                message=f"Quest {quest.id} is on cooldown until "
                        f"{quest.cooldown_hours}h after {quest.last_completed_at}",
                quest_id=quest.id,
                reason="cooldown",
                user_id=user_id,
                operation="complete_quest",
            )

    def process_completion(
        self,
        user: UserProgress,
        quest: Quest,
        payload: Optional[VerificationPayload] = None,
        *,
        prior_completions_today: int = 0,
        use_streak_saver: bool = False,
        xp_boost_active: bool = False,
        has_unopened_daily_chest: bool = False,
    ) -> CompletionResult:
        """
        Process one quest completion end-to-end

        Args:
            user: Progression snapshot
            quest: Quest snapshot being completed
            payload: Best-effort evidence, None for manual completions
            prior_completions_today: Completions already recorded today
            use_streak_saver: Spend a streak saver if the streak is broken
            xp_boost_active: An "XP Boost x2" booster is running
            has_unopened_daily_chest: Caller already holds an unopened daily chest

        Returns:
            CompletionResult for the caller to apply

        Raises:
            InvalidInputError: Malformed snapshot
            QuestNotCompletableError: Quest inactive or on cooldown; nothing
                was computed or drawn
        """
        validate_user_snapshot(user)
        validate_quest_snapshot(quest, user)
        if prior_completions_today < 0:
            raise InvalidInputError(
                message="prior_completions_today cannot be negative",
                field="prior_completions_today",
                value=prior_completions_today,
                user_id=user.user_id,
            )
        self.check_can_complete(quest, user_id=user.user_id)

        now = self.clock.now()
        today = self.clock.today()

        # 1. Verify
        verification = self.trust_evaluator.evaluate(quest, payload, user.trust_score)

        # 2. Update trust
        new_trust = self.trust_evaluator.update_trust_score(user.trust_score, verification.trust_delta)

        # 3. Decide the streak
        completed_today = prior_completions_today + 1
        streak_update = self.streak_tracker.advance(
            streak=user.streak,
            last_active_date=user.last_active_date,
            today=today,
            completed_today=completed_today,
            use_streak_saver=use_streak_saver,
        )
        bonus_streak = 0 if streak_update.was_reset else user.streak

        # 4. Compute rewards (scaled by the trust the user arrived with)
        xp_multiplier = streak_multiplier(bonus_streak)
        if xp_boost_active:
            xp_multiplier *= XP_BOOST_MULTIPLIER
        rewards = self.loot_generator.generate_quest_rewards(quest, user.trust_score, xp_multiplier)

        # 5. Apply rewards
        updated, deferred_items = apply_rewards(user, rewards)

        # 6. Resolve level-ups
        updated, bonus_rewards = resolve_level_ups(updated)

        # 7. Skills, contribution, chest
        xp_granted = sum(r.amount for r in rewards if r.type == RewardType.XP)
        skill = CATEGORY_SKILLS[quest.category]
        skill_gains = {}
        skills = updated.skills
        if xp_granted // SKILL_XP_DIVISOR > 0:
            skill_gains[skill] = xp_granted // SKILL_XP_DIVISOR
            skills = skills.model_copy(update={skill: getattr(skills, skill) + skill_gains[skill]})

        chest = None
        if completed_today >= self.daily_chest_threshold and not has_unopened_daily_chest:
            chest = self.loot_generator.generate_chest(
                completed_today, new_trust, chest_type=ChestType.DAILY, unlocked_at=now
            )
            logger.info(f"Daily {chest.tier.value} chest unlocked for user {user.user_id}")

        updated = updated.model_copy(update={
            "trust_score": new_trust,
            "streak": streak_update.streak,
            "last_active_date": streak_update.last_active_date,
            "skills": skills,
        })

        logger.info(
            f"User {user.user_id} completed quest {quest.id}: "
            f"+{xp_granted} XP, confidence={verification.confidence:.2f}, "
            f"trust {user.trust_score:.1f} -> {new_trust:.1f}, "
            f"level {updated.level}, streak {updated.streak}"
        )
        if verification.needs_proof:
            logger.info(f"Spot check requested for user {user.user_id} on quest {quest.id}")

        return CompletionResult(
            quest_id=quest.id,
            completed_at=now,
            confidence=verification.confidence,
            trust_delta=verification.trust_delta,
            needs_proof=verification.needs_proof,
            signals_verified=verification.signals_verified,
            rewards=rewards,
            bonus_rewards=bonus_rewards,
            leveled_up=updated.level > user.level,
            new_level=updated.level,
            deferred_items=deferred_items,
            skill_gains=skill_gains,
            contribution_xp=xp_granted,
            streak=streak_update,
            completed_today=completed_today,
            chest=chest,
            user=updated,
            quest=quest.mark_completed(now),
        )

    def open_chest(self, user: UserProgress, chest: LootChest) -> ChestOpenResult:
        """
        Apply a chest's rewards with the same routine as completions

        Raises:
            ChestAlreadyOpenedError: The chest was consumed before
        """
        validate_user_snapshot(user)
        if chest.opened:
            raise ChestAlreadyOpenedError(
                message=f"Chest {chest.id} was already opened",
                chest_id=chest.id,
                user_id=user.user_id,
                operation="open_chest",
            )

        updated, deferred_items = apply_rewards(user, chest.rewards)
        updated, bonus_rewards = resolve_level_ups(updated)

        logger.info(
            f"User {user.user_id} opened {chest.tier.value} chest {chest.id} "
            f"({len(chest.rewards)} rewards)"
        )

        return ChestOpenResult(
            chest_id=chest.id,
            rewards=list(chest.rewards),
            bonus_rewards=bonus_rewards,
            deferred_items=deferred_items,
            leveled_up=updated.level > user.level,
            new_level=updated.level,
            user=updated,
        )
