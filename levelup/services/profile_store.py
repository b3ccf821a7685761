"""
InMemoryProfileStore - caller-owned progression state

Reference owner of persisted User/Quest/Inventory records. The engine
computes, this store applies:
- One asyncio.Lock per user, so at most one completion per user is in
  flight and every result is applied to the snapshot it was computed from
- Rejected completions (inactive quest, cooldown, missing streak saver)
  come back as {'success': False, ...} and change nothing, not even
  pending weekly decay
- Accepted completions update user, quest, completion log, chests,
  inventory, season progress and guild XP together

Not persisted across processes; a database-backed store implements the
same operations inside a transaction.
"""

import asyncio
import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from levelup.exceptions import (
    InvalidInputError,
    PreconditionFailedError,
    RecordNotFoundError,
    StreakSaverUnavailableError,
)
from levelup.gamification.progression_engine import ProgressionEngine
from levelup.models.completion import CompletionRecord, CompletionResult, VerificationPayload
from levelup.models.guild import Guild
from levelup.models.quest import Quest
from levelup.models.reward import ChestType, LootChest, Reward, RewardType
from levelup.models.season import Season, SeasonProgress
from levelup.models.user import UserProgress
from levelup.observability import metrics
from levelup.observability.context import (
    add_chest_breadcrumb,
    add_completion_breadcrumb,
    add_rejection_breadcrumb,
    add_trust_breadcrumb,
    capture_exception_with_context,
    set_user_context,
)
from levelup.utils.datetime_helpers import Clock, iso_week_key, week_start

logger = logging.getLogger(__name__)

STREAK_SAVER_ITEM_ID = "streak_saver"


class InMemoryProfileStore:
    """
    Single-writer progression store.

    Responsibilities:
    - Holding user snapshots, quests, completion log, chests and inventory
    - Holding the current season, per-user season progress and guilds
    - Serializing completions per user
    - Applying CompletionResult / ChestOpenResult atomically
    - Settling the weekly trust decay on the first accepted completion of
      a new ISO week
    """

    def __init__(self, engine: Optional[ProgressionEngine] = None, clock: Optional[Clock] = None):
        """
        Initialize the store.

        Args:
            engine: Progression engine (built with `clock` when omitted)
            clock: Clock shared with the engine
        """
        self.engine = engine or ProgressionEngine(clock=clock)
        self.clock = self.engine.clock

        self._users: Dict[str, UserProgress] = {}
        self._quests: Dict[str, Dict[str, Quest]] = {}
        self._completion_log: Dict[str, List[CompletionRecord]] = {}
        self._chests: Dict[str, List[LootChest]] = {}
        self._inventory: Dict[str, Dict[str, int]] = {}
        self._xp_boost_until: Dict[str, datetime] = {}
        self._last_maintenance_week: Dict[str, date] = {}
        self._season: Optional[Season] = None
        self._season_progress: Dict[str, SeasonProgress] = {}
        self._guilds: Dict[str, Guild] = {}
        self._guild_of: Dict[str, str] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

        logger.debug("InMemoryProfileStore initialized")

    def _lock(self, user_id: str) -> asyncio.Lock:
        return self._locks.setdefault(user_id, asyncio.Lock())

    # =========================================================================
    # Records
    # =========================================================================

    async def add_user(self, user: UserProgress) -> UserProgress:
        async with self._lock(user.user_id):
            self._users[user.user_id] = user
            self._quests.setdefault(user.user_id, {})
            self._completion_log.setdefault(user.user_id, [])
            self._chests.setdefault(user.user_id, [])
            self._inventory.setdefault(user.user_id, {})
            self._last_maintenance_week.setdefault(user.user_id, week_start(self.clock.today()))
            logger.info(f"Registered user {user.user_id}")
            return user

    async def add_quest(self, quest: Quest) -> Quest:
        async with self._lock(quest.user_id):
            self._require_user(quest.user_id)
            self._quests[quest.user_id][quest.id] = quest
            return quest

    async def get_user(self, user_id: str) -> UserProgress:
        return self._require_user(user_id)

    async def get_quest(self, user_id: str, quest_id: str) -> Quest:
        return self._require_quest(user_id, quest_id)

    async def get_quests(self, user_id: str) -> List[Quest]:
        self._require_user(user_id)
        return list(self._quests[user_id].values())

    async def get_completion_log(self, user_id: str) -> List[CompletionRecord]:
        self._require_user(user_id)
        return list(self._completion_log[user_id])

    async def get_available_chests(self, user_id: str) -> List[LootChest]:
        self._require_user(user_id)
        return list(self._chests[user_id])

    async def get_inventory(self, user_id: str) -> Dict[str, int]:
        self._require_user(user_id)
        return dict(self._inventory[user_id])

    async def grant_item(self, user_id: str, item_id: str, quantity: int = 1) -> int:
        """Add items to the inventory, returns the new quantity"""
        if quantity < 1:
            raise InvalidInputError("Quantity must be positive", field="quantity", value=quantity, user_id=user_id)
        async with self._lock(user_id):
            self._require_user(user_id)
            inventory = self._inventory[user_id]
            inventory[item_id] = inventory.get(item_id, 0) + quantity
            return inventory[item_id]

    async def activate_xp_boost(self, user_id: str, hours: float = 1.0) -> datetime:
        """Start an XP Boost x2 booster, returns its expiry"""
        async with self._lock(user_id):
            self._require_user(user_id)
            expires_at = self.clock.now() + timedelta(hours=hours)
            self._xp_boost_until[user_id] = expires_at
            logger.info(f"XP boost active for user {user_id} until {expires_at.isoformat()}")
            return expires_at

    def _require_user(self, user_id: str) -> UserProgress:
        user = self._users.get(user_id)
        if user is None:
            raise RecordNotFoundError(
                message=f"User {user_id} not found",
                record_type="User",
                record_id=user_id,
            )
        return user

    def _require_quest(self, user_id: str, quest_id: str) -> Quest:
        self._require_user(user_id)
        quest = self._quests[user_id].get(quest_id)
        if quest is None:
            raise RecordNotFoundError(
                message=f"Quest {quest_id} not found for user {user_id}",
                record_type="Quest",
                record_id=quest_id,
                user_id=user_id,
            )
        return quest

    # =========================================================================
    # Completions
    # =========================================================================

    def _completions_on(self, user_id: str, day: date) -> int:
        return sum(1 for record in self._completion_log[user_id] if record.timestamp.date() == day)

    def _completions_between(self, user_id: str, start: date, end: date) -> int:
        return sum(
            1 for record in self._completion_log[user_id]
            if start <= record.timestamp.date() <= end
        )

    def _has_unopened_daily_chest(self, user_id: str) -> bool:
        return any(
            chest.type == ChestType.DAILY and not chest.opened
            for chest in self._chests[user_id]
        )

    def _xp_boost_active(self, user_id: str) -> bool:
        expires_at = self._xp_boost_until.get(user_id)
        return expires_at is not None and self.clock.now() < expires_at

    def _add_items(self, user_id: str, items: List[Reward]) -> None:
        inventory = self._inventory[user_id]
        for item in items:
            if item.item_id:
                inventory[item.item_id] = inventory.get(item.item_id, 0) + item.amount

    async def complete_quest(
        self,
        user_id: str,
        quest_id: str,
        payload: Optional[VerificationPayload] = None,
        use_streak_saver: bool = False,
    ) -> Dict[str, Any]:
        """
        Complete a quest and apply the result.

        Idle-week trust decay owed since the last maintenance run is
        computed first and fed to the engine, but only committed when the
        completion is accepted.

        Args:
            user_id: Owner of the quest
            quest_id: Quest to complete
            payload: Best-effort evidence from the providers
            use_streak_saver: User agreed to spend a streak saver

        Returns:
            {
                'success': bool,
                'reason': str,           # only when rejected
                'message': str,          # user-facing
                'xp_awarded': int,
                'gold_awarded': int,
                'rewards': list,
                'bonus_rewards': list,
                'leveled_up': bool,
                'new_level': int,
                'confidence': float,
                'needs_proof': bool,
                'trust_score': float,
                'current_streak': int,
                'streak_milestone': int | None,
                'chest_unlocked': dict | None,
                'season_xp': int | None,       # None until season XP is earned
                'season_tier': int | None,
                'guild_team_xp': int | None,   # None when not in a guild
                'completion_id': str
            }

        Raises:
            RecordNotFoundError: Unknown user or quest
            InvalidInputError: Stored snapshot is malformed
        """
        async with self._lock(user_id):
            self._require_quest(user_id, quest_id)
            decay = self._pending_decay(user_id)
            user = self._users[user_id].model_copy(update={"trust_score": decay["trust_score"]})
            quest = self._quests[user_id][quest_id]
            set_user_context(user)

            try:
                if use_streak_saver and self._inventory[user_id].get(STREAK_SAVER_ITEM_ID, 0) <= 0:
                    raise StreakSaverUnavailableError(user_id=user_id, operation="complete_quest")

                result = self.engine.process_completion(
                    user,
                    quest,
                    payload,
                    prior_completions_today=self._completions_on(user_id, self.clock.today()),
                    use_streak_saver=use_streak_saver,
                    xp_boost_active=self._xp_boost_active(user_id),
                    has_unopened_daily_chest=self._has_unopened_daily_chest(user_id),
                )
            except PreconditionFailedError as e:
                metrics.quest_completions_total.labels(status="rejected").inc()
                add_rejection_breadcrumb(e, quest_id=quest_id)
                return {
                    "success": False,
                    "reason": e.reason,
                    "message": e.user_message,
                    "quest_id": quest_id,
                }
            except InvalidInputError as e:
                metrics.quest_completions_total.labels(status="invalid").inc()
                capture_exception_with_context(
                    e, user_id=user_id, quest_id=quest_id, operation="complete_quest"
                )
                raise

            self._commit_decay(user_id, decay)
            record = self._apply_completion(user_id, result, payload)

        metrics.record_completion(result)
        metrics.record_level_ups(result.new_level - user.level)
        add_completion_breadcrumb(result)

        return self._completion_response(
            result, record, self._season_progress.get(user_id), self._guild_for(user_id)
        )

    def _apply_completion(
        self,
        user_id: str,
        result: CompletionResult,
        payload: Optional[VerificationPayload],
    ) -> CompletionRecord:
        """Apply every part of a result; callers hold the user's lock"""
        record = CompletionRecord(
            quest_id=result.quest_id,
            user_id=user_id,
            timestamp=result.completed_at,
            verification_payload=payload or VerificationPayload(),
            confidence_score=result.confidence,
            trust_delta=result.trust_delta,
            rewards_granted=result.all_rewards,
            was_verified=result.confidence >= self.engine.trust_evaluator.confidence_threshold,
            requires_proof=result.needs_proof,
        )

        self._users[user_id] = result.user
        self._quests[user_id][result.quest_id] = result.quest
        self._completion_log[user_id].append(record)
        self._add_items(user_id, result.deferred_items)

        if result.chest is not None:
            self._chests[user_id].append(result.chest)

        if result.streak.saver_consumed:
            self._inventory[user_id][STREAK_SAVER_ITEM_ID] -= 1
            logger.info(f"User {user_id} spent a streak saver")

        self._credit_season(user_id, result.contribution_xp, result.completed_at)
        self._credit_guild(user_id, result.contribution_xp)

        return record

    @staticmethod
    def _completion_response(
        result: CompletionResult,
        record: CompletionRecord,
        season_progress: Optional[SeasonProgress] = None,
        guild: Optional[Guild] = None,
    ) -> Dict[str, Any]:
        xp_awarded = sum(r.amount for r in result.rewards if r.type == RewardType.XP)
        gold_awarded = sum(r.amount for r in result.rewards if r.type == RewardType.GOLD)

        message = f"+{xp_awarded} XP, +{gold_awarded} Gold"
        if result.leveled_up:
            message += f"\n⬆️ Level up! You're now level {result.new_level}"
        if result.streak.milestone:
            message += f"\n🔥 {result.streak.milestone}-day streak!"
        if result.chest is not None:
            message += f"\n🎁 {result.chest.tier.value.title()} chest unlocked!"
        if result.needs_proof:
            message += "\n📸 Please add a proof for this one."

        return {
            "success": True,
            "quest_id": result.quest_id,
            "completion_id": record.id,
            "xp_awarded": xp_awarded,
            "gold_awarded": gold_awarded,
            "rewards": [r.model_dump() for r in result.rewards],
            "bonus_rewards": [r.model_dump() for r in result.bonus_rewards],
            "leveled_up": result.leveled_up,
            "new_level": result.new_level,
            "confidence": result.confidence,
            "needs_proof": result.needs_proof,
            "trust_score": result.user.trust_score,
            "current_streak": result.streak.streak,
            "streak_milestone": result.streak.milestone,
            "chest_unlocked": (
                {"chest_id": result.chest.id, "tier": result.chest.tier.value}
                if result.chest is not None else None
            ),
            "season_xp": season_progress.season_xp if season_progress is not None else None,
            "season_tier": season_progress.current_tier if season_progress is not None else None,
            "guild_team_xp": guild.team_xp if guild is not None else None,
            "message": message,
        }

    # =========================================================================
    # Chests
    # =========================================================================

    async def open_chest(self, user_id: str, chest_id: str) -> Dict[str, Any]:
        """
        Open an available chest and apply its rewards.

        Returns:
            {
                'success': bool,
                'rewards': list,
                'bonus_rewards': list,
                'leveled_up': bool,
                'new_level': int,
                'message': str
            }
        """
        async with self._lock(user_id):
            user = self._require_user(user_id)
            chest = next((c for c in self._chests[user_id] if c.id == chest_id), None)
            if chest is None:
                raise RecordNotFoundError(
                    message=f"Chest {chest_id} not available for user {user_id}",
                    record_type="Chest",
                    record_id=chest_id,
                    user_id=user_id,
                )

            try:
                result = self.engine.open_chest(user, chest)
            except PreconditionFailedError as e:
                add_rejection_breadcrumb(e, chest_id=chest_id)
                return {"success": False, "reason": e.reason, "message": e.user_message}

            self._users[user_id] = result.user
            self._add_items(user_id, result.deferred_items)
            self._chests[user_id] = [c for c in self._chests[user_id] if c.id != chest_id]

        metrics.chests_opened_total.labels(tier=chest.tier.value).inc()
        metrics.record_rewards(result.rewards + result.bonus_rewards)
        metrics.record_level_ups(result.new_level - user.level)
        add_chest_breadcrumb(result, chest.tier.value)

        return {
            "success": True,
            "chest_id": chest_id,
            "rewards": [r.model_dump() for r in result.rewards],
            "bonus_rewards": [r.model_dump() for r in result.bonus_rewards],
            "leveled_up": result.leveled_up,
            "new_level": result.new_level,
            "message": ", ".join(f"+{r.amount} {r.type.value}" for r in result.rewards),
        }

    # =========================================================================
    # Seasons & Guilds
    # =========================================================================

    async def start_season(self, season: Season) -> Season:
        """Make `season` the current season; earlier season progress is dropped"""
        self._season = season
        self._season_progress = {
            user_id: progress
            for user_id, progress in self._season_progress.items()
            if progress.season_id == season.id
        }
        logger.info(f"Season {season.id} ({season.name}) runs until {season.end_at.isoformat()}")
        return season

    async def get_season_progress(self, user_id: str) -> Optional[SeasonProgress]:
        self._require_user(user_id)
        return self._season_progress.get(user_id)

    def _credit_season(self, user_id: str, xp: int, completed_at: datetime) -> None:
        season = self._season
        if season is None or xp <= 0 or not season.is_active(completed_at):
            return

        progress = self._season_progress.get(user_id) or SeasonProgress(user_id=user_id, season_id=season.id)
        season_xp = progress.season_xp + xp
        tier = season.tier_for(season_xp)
        if tier > progress.current_tier:
            metrics.season_tiers_reached_total.inc(tier - progress.current_tier)
            logger.info(f"User {user_id} reached tier {tier} of season {season.id}")

        self._season_progress[user_id] = progress.model_copy(
            update={"season_xp": season_xp, "current_tier": tier}
        )
        metrics.contribution_xp_total.labels(target="season").inc(xp)

    async def create_guild(self, guild: Guild) -> Guild:
        """Register a guild; its owner becomes its first member"""
        async with self._lock(guild.owner_id):
            self._require_user(guild.owner_id)
            if guild.id in self._guilds:
                raise InvalidInputError(
                    f"Guild {guild.id} already exists", field="guild_id", value=guild.id, user_id=guild.owner_id
                )
            self._check_guildless(guild.owner_id)

            member_ids = [guild.owner_id, *guild.member_ids]
            guild = guild.model_copy(update={"member_ids": list(dict.fromkeys(member_ids))})
            for member_id in guild.member_ids:
                self._require_user(member_id)
                if member_id != guild.owner_id:
                    self._check_guildless(member_id)

            self._guilds[guild.id] = guild
            for member_id in guild.member_ids:
                self._guild_of[member_id] = guild.id
            logger.info(f"Guild {guild.id} created by user {guild.owner_id}")
            return guild

    async def join_guild(self, user_id: str, guild_id: str) -> Guild:
        async with self._lock(user_id):
            self._require_user(user_id)
            guild = self._require_guild(guild_id)
            if self._guild_of.get(user_id) == guild_id:
                return guild
            self._check_guildless(user_id)

            guild = guild.model_copy(update={"member_ids": [*guild.member_ids, user_id]})
            self._guilds[guild_id] = guild
            self._guild_of[user_id] = guild_id
            logger.info(f"User {user_id} joined guild {guild_id}")
            return guild

    async def get_guild(self, guild_id: str) -> Guild:
        return self._require_guild(guild_id)

    def _require_guild(self, guild_id: str) -> Guild:
        guild = self._guilds.get(guild_id)
        if guild is None:
            raise RecordNotFoundError(
                message=f"Guild {guild_id} not found",
                record_type="Guild",
                record_id=guild_id,
            )
        return guild

    def _check_guildless(self, user_id: str) -> None:
        current = self._guild_of.get(user_id)
        if current is not None:
            raise InvalidInputError(
                f"User {user_id} already belongs to guild {current}",
                field="guild_id",
                value=current,
                user_id=user_id,
            )

    def _guild_for(self, user_id: str) -> Optional[Guild]:
        guild_id = self._guild_of.get(user_id)
        return self._guilds.get(guild_id) if guild_id else None

    def _credit_guild(self, user_id: str, xp: int) -> None:
        # Other members hold their own locks; no await between read and write
        guild = self._guild_for(user_id)
        if guild is None or xp <= 0:
            return

        reached_before = guild.goal_reached
        guild = guild.model_copy(update={"team_xp": guild.team_xp + xp})
        self._guilds[guild.id] = guild
        metrics.contribution_xp_total.labels(target="guild").inc(xp)
        if guild.goal_reached and not reached_before:
            logger.info(f"Guild {guild.id} reached its weekly goal of {guild.weekly_goal} XP")

    # =========================================================================
    # Periodic maintenance
    # =========================================================================

    async def refresh_quests(self, user_id: str) -> List[str]:
        """Reopen completed habit quests whose cooldown elapsed"""
        async with self._lock(user_id):
            self._require_user(user_id)
            now = self.clock.now()
            reopened = []
            for quest_id, quest in self._quests[user_id].items():
                refreshed = quest.reopen_if_ready(now)
                if refreshed is not quest:
                    self._quests[user_id][quest_id] = refreshed
                    reopened.append(quest_id)

            if reopened:
                logger.debug(f"Reopened {len(reopened)} quests for user {user_id}")
            return reopened

    async def run_weekly_maintenance(self, user_id: str) -> Dict[str, Any]:
        """
        Apply idle-week trust decay, at most once per ISO week.

        Walks every ISO week since the last run and decays trust once for
        each week without completions. The first accepted complete_quest()
        of a week settles this too, so an explicit call is only needed for
        users who stopped completing quests.

        Returns:
            {
                'applied': bool,
                'week': str,              # current ISO week key
                'idle_weeks': int,
                'trust_score': float
            }
        """
        async with self._lock(user_id):
            self._require_user(user_id)
            decay = self._pending_decay(user_id)
            self._commit_decay(user_id, decay)
            return decay

    def _pending_decay(self, user_id: str) -> Dict[str, Any]:
        """Decay owed for skipped weeks; reads only, callers hold the user's lock"""
        trust = self._users[user_id].trust_score
        this_week = week_start(self.clock.today())
        week_key = iso_week_key(this_week)
        last_week = self._last_maintenance_week.get(user_id)

        if last_week is None or last_week >= this_week:
            # Unknown history or already ran this week
            return {"applied": False, "week": week_key, "idle_weeks": 0, "trust_score": trust}

        idle_weeks = 0
        monday = last_week
        while monday < this_week:
            completions = self._completions_between(user_id, monday, monday + timedelta(days=6))
            if completions == 0:
                idle_weeks += 1
            trust = self.engine.trust_evaluator.apply_weekly_decay(trust, completions)
            monday += timedelta(days=7)

        return {"applied": True, "week": week_key, "idle_weeks": idle_weeks, "trust_score": trust}

    def _commit_decay(self, user_id: str, decay: Dict[str, Any]) -> None:
        """Store a decay from _pending_decay; callers hold the user's lock"""
        this_week = week_start(self.clock.today())
        last_week = self._last_maintenance_week.get(user_id)
        self._last_maintenance_week[user_id] = max(last_week or this_week, this_week)
        if not decay["applied"]:
            return

        user = self._users[user_id]
        self._users[user_id] = user.model_copy(update={"trust_score": decay["trust_score"]})
        if decay["idle_weeks"]:
            metrics.trust_decays_total.inc(decay["idle_weeks"])

        logger.info(
            f"Weekly maintenance for user {user_id} ({decay['week']}): "
            f"{decay['idle_weeks']} idle weeks, trust {user.trust_score:.1f} -> {decay['trust_score']:.1f}"
        )
        add_trust_breadcrumb(decay["week"], decay["idle_weeks"], user.trust_score, decay["trust_score"])
