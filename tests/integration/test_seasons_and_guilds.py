"""Integration tests for season and guild XP in the profile store"""
from datetime import timedelta

import pytest

from levelup.exceptions import InvalidInputError, RecordNotFoundError
from levelup.models.guild import Guild
from levelup.models.quest import QuestStatus
from levelup.models.season import Season, SeasonTier
from levelup.models.user import UserProgress
from levelup.services.profile_store import InMemoryProfileStore


@pytest.fixture
def store(engine):
    """Store sharing the scripted engine and fixed clock"""
    return InMemoryProfileStore(engine=engine)


@pytest.fixture
def season(now):
    """Season running around the pinned clock"""
    return Season(
        id="season-1",
        name="Autumn Ascent",
        theme="autumn",
        start_at=now - timedelta(days=10),
        end_at=now + timedelta(days=20),
        tiers=[
            SeasonTier(level=2, xp_required=90),
            SeasonTier(level=1, xp_required=40),
        ],
    )


# ============================================================================
# Season Tests
# ============================================================================

@pytest.mark.asyncio
async def test_completion_credits_season(store, season, test_user, make_quest):
    """Test quest XP accrues to the season and unlocks tiers"""
    first, second = make_quest(title="Read"), make_quest(title="Stretch")
    await store.add_user(test_user)
    await store.add_quest(first)
    await store.add_quest(second)
    await store.start_season(season)

    result = await store.complete_quest(test_user.user_id, first.id)
    assert result["season_xp"] == 46
    assert result["season_tier"] == 1

    result = await store.complete_quest(test_user.user_id, second.id)
    assert result["season_xp"] == 92
    assert result["season_tier"] == 2

    progress = await store.get_season_progress(test_user.user_id)
    assert progress.season_id == "season-1"
    assert progress.season_xp == 92


@pytest.mark.asyncio
async def test_no_season_credit_outside_window(store, season, clock, test_user, test_quest):
    """Test completions after the season ended are not credited"""
    await store.add_user(test_user)
    await store.add_quest(test_quest)
    await store.start_season(season)

    clock.advance(days=21)
    result = await store.complete_quest(test_user.user_id, test_quest.id)

    assert result["success"] is True
    assert result["season_xp"] is None
    assert await store.get_season_progress(test_user.user_id) is None


@pytest.mark.asyncio
async def test_rejected_completion_credits_nothing(store, season, test_user, make_quest):
    """Test a rejected completion adds no season XP"""
    archived = make_quest(status=QuestStatus.ARCHIVED)
    await store.add_user(test_user)
    await store.add_quest(archived)
    await store.start_season(season)

    result = await store.complete_quest(test_user.user_id, archived.id)

    assert result["success"] is False
    assert await store.get_season_progress(test_user.user_id) is None


@pytest.mark.asyncio
async def test_new_season_drops_old_progress(store, season, test_user, test_quest):
    """Test starting another season resets progress"""
    await store.add_user(test_user)
    await store.add_quest(test_quest)
    await store.start_season(season)
    await store.complete_quest(test_user.user_id, test_quest.id)

    await store.start_season(season.model_copy(update={"id": "season-2"}))

    assert await store.get_season_progress(test_user.user_id) is None


# ============================================================================
# Guild Tests
# ============================================================================

@pytest.mark.asyncio
async def test_members_pool_team_xp(store, test_user, make_quest):
    """Test every member's quest XP counts toward the guild goal"""
    friend = UserProgress(user_id="user-2")
    await store.add_user(test_user)
    await store.add_user(friend)
    own_quest = make_quest()
    friend_quest = make_quest(user_id="user-2")
    await store.add_quest(own_quest)
    await store.add_quest(friend_quest)

    guild = await store.create_guild(Guild(id="guild-1", name="Early Risers", owner_id=test_user.user_id))
    assert guild.member_ids == [test_user.user_id]
    await store.join_guild("user-2", "guild-1")

    await store.complete_quest(test_user.user_id, own_quest.id)
    result = await store.complete_quest("user-2", friend_quest.id)

    assert result["guild_team_xp"] == 92
    guild = await store.get_guild("guild-1")
    assert guild.member_ids == [test_user.user_id, "user-2"]
    assert guild.team_xp == 92
    assert guild.goal_progress == pytest.approx(0.092)


@pytest.mark.asyncio
async def test_guildless_completion(store, test_user, test_quest):
    """Test users outside a guild report no team XP"""
    await store.add_user(test_user)
    await store.add_quest(test_quest)

    result = await store.complete_quest(test_user.user_id, test_quest.id)

    assert result["guild_team_xp"] is None


@pytest.mark.asyncio
async def test_one_guild_per_user(store, test_user):
    """Test a member cannot join a second guild"""
    await store.add_user(test_user)
    await store.add_user(UserProgress(user_id="user-2"))
    await store.create_guild(Guild(id="guild-1", name="Early Risers", owner_id=test_user.user_id))
    await store.create_guild(Guild(id="guild-2", name="Night Owls", owner_id="user-2"))

    with pytest.raises(InvalidInputError):
        await store.join_guild(test_user.user_id, "guild-2")

    # Joining your own guild again is a no-op
    guild = await store.join_guild(test_user.user_id, "guild-1")
    assert guild.member_ids == [test_user.user_id]


@pytest.mark.asyncio
async def test_unknown_guild(store, test_user):
    """Test missing guilds raise RecordNotFoundError"""
    await store.add_user(test_user)

    with pytest.raises(RecordNotFoundError):
        await store.join_guild(test_user.user_id, "guild-x")
