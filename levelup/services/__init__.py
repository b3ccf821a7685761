"""
Service Layer Package

Caller-side owners of progression state. The engine computes results;
services persist and apply them.

- InMemoryProfileStore: users, quests, completion log, chests, inventory,
  season progress and guilds
"""

from levelup.services.profile_store import InMemoryProfileStore, STREAK_SAVER_ITEM_ID

__all__ = ["InMemoryProfileStore", "STREAK_SAVER_ITEM_ID"]
