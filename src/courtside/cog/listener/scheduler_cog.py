"""Background scheduler cogs for Courtside.

Contains two cogs:
- TierSyncCog        – weekly pass syncing tier roles with the ranking sheet
- ReminderClaimCog   – starts the reminder claim loop once the bot is ready
"""

from __future__ import annotations

import datetime

import discord
from discord.ext import commands, tasks

from courtside.notifications.reminder_scheduler import ReminderScheduler
from courtside.ranking.reconciliation import TierReconciler
from courtside.util.logger import get_logger

logger = get_logger("scheduler_cog")


# ---------------------------------------------------------------------------
# Tier sync
# ---------------------------------------------------------------------------

class TierSyncCog(commands.Cog):
    """
    Runs :meth:`TierReconciler.run_pass` once a week.

    ``tasks.loop(time=...)`` fires daily at the configured local time; the
    pass only runs on the configured weekday.
    """

    def __init__(
        self,
        bot: discord.Bot,
        reconciler: TierReconciler,
        *,
        run_at: datetime.time,
        weekday: int,
    ) -> None:
        self.bot = bot
        self.reconciler = reconciler
        self.run_at = run_at
        self.weekday = weekday

    def is_run_day(self, now: datetime.datetime | None = None) -> bool:
        tz = self.run_at.tzinfo or datetime.timezone.utc
        now = now.astimezone(tz) if now else datetime.datetime.now(tz)
        return now.weekday() == self.weekday

    async def run_now(self):
        """Run a pass immediately, whatever the weekday. Returns the report or None."""
        logger.info("[TIER_SYNC] Manual pass requested")
        return await self.reconciler.run_pass()

    @tasks.loop(hours=24)  # real schedule set in on_ready
    async def _weekly_task(self) -> None:
        if not self.is_run_day():
            return
        try:
            await self.reconciler.run_pass()
        except Exception as exc:
            # an escaping exception would stop the loop for good
            logger.exception("[TIER_SYNC] Unexpected error during pass: %s", exc)

    @_weekly_task.before_loop
    async def _before_weekly(self) -> None:
        await self.bot.wait_until_ready()

    @commands.Cog.listener()
    async def on_ready(self) -> None:
        if not self._weekly_task.is_running():
            self._weekly_task.change_interval(time=self.run_at)
            self._weekly_task.start()
            logger.info("[TIER_SYNC] Scheduled weekly pass (weekday=%d, time=%s)", self.weekday, self.run_at)

    def cog_unload(self) -> None:
        self._weekly_task.cancel()
        logger.info("[TIER_SYNC] Stopped")


# ---------------------------------------------------------------------------
# Reminder claim loop
# ---------------------------------------------------------------------------

class ReminderClaimCog(commands.Cog):
    """Starts the reminder claim loop on first ready; the composition root stops it."""

    def __init__(self, bot: discord.Bot, scheduler: ReminderScheduler) -> None:
        self.bot = bot
        self.scheduler = scheduler

    @commands.Cog.listener()
    async def on_ready(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

def setup(
    bot: discord.Bot,
    *,
    reconciler: TierReconciler | None,
    scheduler: ReminderScheduler | None,
    run_at: datetime.time,
    weekday: int,
) -> None:
    if reconciler is not None:
        bot.add_cog(TierSyncCog(bot, reconciler, run_at=run_at, weekday=weekday))
    if scheduler is not None:
        bot.add_cog(ReminderClaimCog(bot, scheduler))
