"""
Streak Tracker

Day-granularity streak continuity, independent of reward computation.

Logic:
- Same calendar day as last active: already counted (active)
- Previous calendar day: must complete today to extend (needs completion)
- Older: streak broken; resets to 0 unless the caller spends a streak saver
- The streak grows at most once per calendar day, and only once the day's
  completions reach the daily minimum (3 by default)

Streak savers are never spent implicitly. The caller checks evaluate(),
asks the user, then passes use_streak_saver=True. A spent saver bridges
the gap by marking yesterday as active.
"""

import logging
from datetime import date, timedelta
from typing import Optional

from levelup import config
from levelup.models.completion import StreakStatus, StreakUpdate
from levelup.utils.datetime_helpers import calendar_days_between

logger = logging.getLogger(__name__)

# Streak lengths that unlock an achievement
STREAK_MILESTONES = (5, 7, 30)


class StreakTracker:
    """Streak continuity decisions"""

    def __init__(self, daily_minimum: Optional[int] = None):
        self.daily_minimum = config.STREAK_DAILY_MINIMUM if daily_minimum is None else daily_minimum

    @staticmethod
    def evaluate(last_active_date: Optional[date], today: date) -> StreakStatus:
        """
        Continuity of the streak as of today

        Args:
            last_active_date: Last day the streak was counted (None = never)
            today: Current calendar day

        Returns:
            StreakStatus
        """
        if last_active_date is None:
            return StreakStatus.NEEDS_COMPLETION

        days = calendar_days_between(last_active_date, today)
        # Clock skew can put the last active day in the future
        if days <= 0:
            return StreakStatus.ACTIVE
        if days == 1:
            return StreakStatus.NEEDS_COMPLETION
        return StreakStatus.BROKEN

    def advance(
        self,
        streak: int,
        last_active_date: Optional[date],
        today: date,
        completed_today: int,
        use_streak_saver: bool = False,
    ) -> StreakUpdate:
        """
        Apply one completion to the streak

        Args:
            streak: Current streak length
            last_active_date: Last counted day
            today: Current calendar day
            completed_today: Completions today, including this one
            use_streak_saver: Caller chose to spend a saver on a broken streak

        Returns:
            StreakUpdate describing the new streak and what happened
        """
        status = self.evaluate(last_active_date, today)
        new_streak = streak
        new_last_active = last_active_date
        was_reset = False
        saver_consumed = False

        if status == StreakStatus.BROKEN and streak > 0:
            if use_streak_saver:
                saver_consumed = True
                new_last_active = today - timedelta(days=1)
                logger.info(f"Streak saver spent, streak of {streak} days preserved")
            else:
                new_streak = 0
                was_reset = True
                logger.info(f"Streak broken: {streak} -> 0 (last active {last_active_date})")

        incremented = False
        if status != StreakStatus.ACTIVE and completed_today >= self.daily_minimum:
            new_streak += 1
            new_last_active = today
            incremented = True
            logger.debug(f"Streak extended to {new_streak} days")

        milestone = new_streak if incremented and new_streak in STREAK_MILESTONES else None

        return StreakUpdate(
            status=status,
            previous_streak=streak,
            streak=new_streak,
            last_active_date=new_last_active,
            incremented=incremented,
            was_reset=was_reset,
            saver_consumed=saver_consumed,
            milestone=milestone,
        )
