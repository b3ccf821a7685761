"""Unit tests for the Progression Engine (levelup/gamification/progression_engine.py)"""
import random
from datetime import timedelta

import pytest

from levelup.exceptions import (
    ChestAlreadyOpenedError,
    InvalidInputError,
    QuestNotCompletableError,
)
from levelup.gamification.progression_curve import xp_required_for_level
from levelup.gamification.progression_engine import (
    ProgressionEngine,
    apply_rewards,
    resolve_level_ups,
)
from levelup.models.completion import HealthSummary, VerificationPayload
from levelup.models.quest import QuestCategory, QuestStatus, VerificationSignal
from levelup.models.reward import ChestTier, ChestType, LootChest, Rarity, Reward, RewardType
from levelup.models.user import Currencies, UserProgress


def _reward(reward_type, amount, **kwargs):
    return Reward(type=reward_type, amount=amount, source="test", **kwargs)


# ============================================================================
# Reward Application Tests
# ============================================================================

def test_apply_rewards_adds_xp_and_currencies(test_user):
    """Test XP and every currency are incremented"""
    rewards = [
        _reward(RewardType.XP, 20),
        _reward(RewardType.GOLD, 15),
        _reward(RewardType.GEMS, 2),
        _reward(RewardType.TICKETS, 1),
    ]

    updated, deferred = apply_rewards(test_user, rewards)

    assert updated.xp == 20
    assert updated.currencies == Currencies(gold=15, gems=2, tickets=1)
    assert deferred == []
    assert test_user.xp == 0


def test_apply_rewards_defers_items(test_user):
    """Test item rewards are handed back for the caller's inventory"""
    item = _reward(RewardType.ITEM, 1, item_id="streak_saver")

    updated, deferred = apply_rewards(test_user, [item])

    assert deferred == [item]
    assert updated == test_user


# ============================================================================
# Level-up Tests
# ============================================================================

def test_resolve_level_up_with_overflow():
    """Test level 1 with 90 XP + 20 XP becomes level 2 with 10 XP and a 20 gold bonus"""
    user = UserProgress(user_id="user-1", level=1, xp=90)
    user, _ = apply_rewards(user, [_reward(RewardType.XP, 20)])

    leveled, bonus = resolve_level_ups(user)

    assert leveled.level == 2
    assert leveled.xp == 10
    assert [(r.type, r.amount) for r in bonus] == [(RewardType.GOLD, 20)]
    assert leveled.currencies.gold == 20


def test_resolve_multiple_level_ups():
    """Test one grant can cross several levels"""
    user = UserProgress(user_id="user-1", level=1, xp=100 + 115 + 5)

    leveled, bonus = resolve_level_ups(user)

    assert leveled.level == 3
    assert leveled.xp == 5
    assert [r.amount for r in bonus] == [20, 30]
    assert leveled.currencies.gold == 50


def test_resolve_milestone_level_grants_gems():
    """Test every 5th level adds 5 rare gems"""
    user = UserProgress(user_id="user-1", level=4, xp=152)

    leveled, bonus = resolve_level_ups(user)

    assert leveled.level == 5
    assert leveled.xp == 0
    gems = [r for r in bonus if r.type == RewardType.GEMS]
    assert len(gems) == 1
    assert gems[0].amount == 5
    assert gems[0].rarity == Rarity.RARE
    assert leveled.currencies.gems == 5


def test_resolve_no_level_up(test_user):
    """Test XP below the requirement is left alone"""
    user = test_user.model_copy(update={"xp": 99})

    leveled, bonus = resolve_level_ups(user)

    assert leveled.level == 1
    assert leveled.xp == 99
    assert bonus == []


# ============================================================================
# Completion Tests
# ============================================================================

def test_process_completion_manual_quest(engine, test_user, test_quest, now, today):
    """Test a manual completion at default trust"""
    result = engine.process_completion(test_user, test_quest)

    assert result.confidence == 0.5
    assert result.trust_delta == 0.0
    assert result.needs_proof is False
    assert [(r.type, r.amount) for r in result.rewards] == [(RewardType.XP, 46), (RewardType.GOLD, 18)]
    assert result.leveled_up is False
    assert result.user.xp == 46
    assert result.user.currencies.gold == 18
    assert result.user.trust_score == 60
    assert result.skill_gains == {"strength": 4}
    assert result.user.skills.strength == 4
    assert result.completed_today == 1
    assert result.chest is None
    assert result.completed_at == now
    assert result.quest.status == QuestStatus.COMPLETED
    assert result.quest.last_completed_at == now
    assert result.quest.completion_count == 1


def test_process_completion_confident_evidence(make_rng, clock, test_user, make_quest):
    """Test confidence 0.75 raises trust and never asks for proof"""
    rng = make_rng(randoms=[0.0])
    engine = ProgressionEngine(rng=rng, clock=clock)
    quest = make_quest(signals_required=[VerificationSignal.HEALTH_WORKOUT, VerificationSignal.LOCATION_DWELL])
    payload = VerificationPayload(
        health_summary=HealthSummary(duration_seconds=1800),
        location_hash="gym-42",
    )

    result = engine.process_completion(test_user, quest, payload)

    assert result.confidence == pytest.approx(0.75)
    assert result.needs_proof is False
    assert result.user.trust_score == 60.5
    assert rng.random_calls == 0


def test_process_completion_rewards_use_prior_trust(engine, test_user, make_quest):
    """Test rewards scale with the trust the user arrived with"""
    quest = make_quest(signals_required=[VerificationSignal.PHOTO_PROOF])

    result = engine.process_completion(test_user, quest, None)

    assert result.user.trust_score == 59.0
    assert result.rewards[0].amount == 46


def test_process_completion_spot_check(make_rng, clock, test_user, make_quest):
    """Test low confidence can trigger a proof request"""
    engine = ProgressionEngine(rng=make_rng(randoms=[0.05]), clock=clock)
    quest = make_quest(signals_required=[VerificationSignal.HEALTH_STEPS])

    result = engine.process_completion(test_user, quest)

    assert result.needs_proof is True
    assert result.confidence == 0.0


def test_process_completion_streak_and_boost(engine, make_quest, yesterday):
    """Test XP uses the streak multiplier doubled by an XP booster"""
    user = UserProgress(user_id="user-1", streak=7, last_active_date=yesterday)

    result = engine.process_completion(user, make_quest(), xp_boost_active=True)

    xp = [r.amount for r in result.rewards if r.type == RewardType.XP]
    gold = [r.amount for r in result.rewards if r.type == RewardType.GOLD]
    assert xp == [115]
    assert gold == [18]


def test_process_completion_levels_up(engine, make_quest):
    """Test a completion that crosses a level boundary"""
    user = UserProgress(user_id="user-1", level=1, xp=90)

    result = engine.process_completion(user, make_quest())

    assert result.leveled_up is True
    assert result.new_level == 2
    assert result.user.xp == 36
    assert result.user.currencies.gold == 18 + 20
    assert [r.source for r in result.bonus_rewards] == ["Level 2 Bonus"]
    assert len(result.all_rewards) == 3


def test_process_completion_unlocks_rare_daily_chest(make_rng, clock, test_user, test_quest, now, today):
    """Test the third completion of the day unlocks a rare daily chest and extends the streak"""
    engine = ProgressionEngine(rng=make_rng(ints=[100, 50, 40]), clock=clock)

    result = engine.process_completion(test_user, test_quest, prior_completions_today=2)

    assert result.completed_today == 3
    assert result.chest is not None
    assert result.chest.type == ChestType.DAILY
    assert result.chest.tier == ChestTier.RARE
    assert [(r.type, r.amount) for r in result.chest.rewards] == [
        (RewardType.GOLD, 100),
        (RewardType.XP, 50),
        (RewardType.GOLD, 40),
    ]
    assert result.chest.unlocked_at == now
    assert result.streak.incremented is True
    assert result.user.streak == 1
    assert result.user.last_active_date == today


def test_process_completion_one_unopened_daily_chest(engine, test_user, test_quest):
    """Test no second daily chest while one is still unopened"""
    result = engine.process_completion(
        test_user, test_quest, prior_completions_today=4, has_unopened_daily_chest=True
    )

    assert result.chest is None


def test_process_completion_skill_follows_category(engine, test_user, make_quest):
    """Test the quest category picks the skill"""
    result = engine.process_completion(test_user, make_quest(category=QuestCategory.KNOWLEDGE))

    assert result.skill_gains == {"knowledge": 4}
    assert result.user.skills.strength == 0


def test_process_completion_streak_saver(engine, make_quest, make_date, yesterday):
    """Test an accepted streak saver is reported for the caller to consume"""
    user = UserProgress(user_id="user-1", streak=12, last_active_date=make_date(3))

    result = engine.process_completion(user, make_quest(), use_streak_saver=True)

    assert result.streak.saver_consumed is True
    assert result.user.streak == 12
    assert result.user.last_active_date == yesterday


def test_process_completion_broken_streak_resets(engine, make_quest, make_date):
    """Test a broken streak without a saver resets to 0"""
    user = UserProgress(user_id="user-1", streak=12, last_active_date=make_date(3))

    result = engine.process_completion(user, make_quest())

    assert result.streak.was_reset is True
    assert result.user.streak == 0


def test_process_completion_reset_streak_earns_no_bonus(engine, make_quest, make_date):
    """Test the completion that breaks a 30-day streak earns base XP only"""
    user = UserProgress(user_id="user-1", streak=30, last_active_date=make_date(10))

    result = engine.process_completion(user, make_quest())

    xp = [r.amount for r in result.rewards if r.type == RewardType.XP]
    assert result.streak.was_reset is True
    assert result.user.streak == 0
    assert xp == [46]


def test_process_completion_saved_streak_keeps_bonus(engine, make_quest, make_date):
    """Test a streak bridged by a saver keeps its multiplier"""
    user = UserProgress(user_id="user-1", streak=30, last_active_date=make_date(10))

    result = engine.process_completion(user, make_quest(), use_streak_saver=True)

    xp = [r.amount for r in result.rewards if r.type == RewardType.XP]
    assert result.streak.saver_consumed is True
    assert xp == [92]


def test_process_completion_reports_contribution_xp(engine, test_user, make_quest):
    """Test the quest XP is reported as season and guild contribution"""
    result = engine.process_completion(test_user, make_quest())

    assert result.contribution_xp == 46
    assert result.contribution_xp == sum(r.amount for r in result.rewards if r.type == RewardType.XP)


# ============================================================================
# Precondition Tests
# ============================================================================

def test_double_completion_rejected(engine, rng, test_user, test_quest):
    """Test completing an already completed quest is rejected before any draw"""
    first = engine.process_completion(test_user, test_quest)
    draws = rng.random_calls

    with pytest.raises(QuestNotCompletableError) as exc_info:
        engine.process_completion(first.user, first.quest)

    assert exc_info.value.reason == "status"
    assert exc_info.value.quest_id == test_quest.id
    assert rng.random_calls == draws


def test_cooldown_rejected(engine, test_user, make_quest, now):
    """Test an active quest inside its cooldown is rejected"""
    quest = make_quest(last_completed_at=now - timedelta(hours=1), cooldown_hours=24)

    with pytest.raises(QuestNotCompletableError) as exc_info:
        engine.process_completion(test_user, quest)

    assert exc_info.value.reason == "cooldown"


def test_cooldown_elapsed(engine, test_user, make_quest, now):
    """Test the quest is completable once the cooldown is over"""
    quest = make_quest(last_completed_at=now - timedelta(hours=24), cooldown_hours=24)

    result = engine.process_completion(test_user, quest)

    assert result.quest.completion_count == 1


def test_archived_quest_rejected(engine, test_user, make_quest):
    """Test inactive statuses are rejected"""
    with pytest.raises(QuestNotCompletableError):
        engine.process_completion(test_user, make_quest(status=QuestStatus.ARCHIVED))


def test_malformed_user_rejected(engine, test_quest):
    """Test a snapshot that bypassed validation is rejected, not clamped"""
    user = UserProgress.model_construct(
        user_id="user-1",
        level=0,
        xp=0,
        currencies=Currencies(),
        trust_score=60.0,
        streak=0,
        last_active_date=None,
    )

    with pytest.raises(InvalidInputError) as exc_info:
        engine.process_completion(user, test_quest)

    assert exc_info.value.field == "level"


def test_foreign_quest_rejected(engine, test_user, make_quest):
    """Test a quest owned by another user is rejected"""
    with pytest.raises(InvalidInputError) as exc_info:
        engine.process_completion(test_user, make_quest(user_id="someone-else"))

    assert exc_info.value.field == "user_id"


def test_negative_prior_completions_rejected(engine, test_user, test_quest):
    """Test caller bookkeeping errors surface"""
    with pytest.raises(InvalidInputError):
        engine.process_completion(test_user, test_quest, prior_completions_today=-1)


# ============================================================================
# Chest Opening Tests
# ============================================================================

def test_open_chest_applies_rewards(engine, test_user):
    """Test chest rewards go through the same reward application"""
    chest = LootChest(
        type=ChestType.DAILY,
        tier=ChestTier.RARE,
        rewards=[
            _reward(RewardType.GOLD, 100),
            _reward(RewardType.XP, 120),
            _reward(RewardType.GEMS, 3),
        ],
    )

    result = engine.open_chest(test_user, chest)

    assert result.chest_id == chest.id
    assert result.leveled_up is True
    assert result.new_level == 2
    assert result.user.xp == 20
    assert result.user.currencies.gold == 100 + 20
    assert result.user.currencies.gems == 3


def test_open_chest_twice_rejected(engine, test_user):
    """Test an opened chest cannot be consumed again"""
    chest = LootChest(rewards=[_reward(RewardType.GOLD, 10)], opened=True)

    with pytest.raises(ChestAlreadyOpenedError) as exc_info:
        engine.open_chest(test_user, chest)

    assert exc_info.value.reason == "chest_opened"


def test_repeat_completions_rejected_every_time(engine, test_user, test_quest):
    """Test every attempt after the first success is rejected"""
    first = engine.process_completion(test_user, test_quest)

    for _ in range(2):
        with pytest.raises(QuestNotCompletableError):
            engine.process_completion(first.user, first.quest)


def test_xp_stays_below_requirement(clock, make_quest):
    """Test no overflow XP is left after any completion"""
    engine = ProgressionEngine(rng=random.Random(99), clock=clock)
    user = UserProgress(user_id="user-1", trust_score=100, streak=30)
    quest = make_quest(cooldown_hours=0)

    for completed in range(60):
        result = engine.process_completion(
            user, quest, prior_completions_today=completed, xp_boost_active=True
        )
        user = result.user
        quest = result.quest.model_copy(update={"status": QuestStatus.ACTIVE})

        assert 0 <= user.xp < xp_required_for_level(user.level)

    assert user.level > 10
