"""Onboarding listener cog.

Watches member updates for the moment a member completes Discord's
onboarding flow and, if that happens soon enough after they joined, hands the
member to the reminder scheduler.
"""

from __future__ import annotations

import datetime

import discord
from discord.ext import commands

from courtside.datatypes.discord_datatypes import UserID
from courtside.notifications.reminder_scheduler import ReminderScheduler
from courtside.util.logger import get_logger

logger = get_logger("onboarding_listener")


def completed_onboarding(before: discord.Member, after: discord.Member) -> bool:
    """True when the ``completed_onboarding`` flag flipped from off to on."""
    return not before.flags.completed_onboarding and bool(after.flags.completed_onboarding)


def within_window(
    joined_at: datetime.datetime | None,
    window: datetime.timedelta,
    now: datetime.datetime | None = None,
) -> bool:
    """True when *joined_at* is known and no more than *window* before *now*."""
    if joined_at is None:
        return False
    now = now or datetime.datetime.now(datetime.timezone.utc)
    if joined_at.tzinfo is None:
        joined_at = joined_at.replace(tzinfo=datetime.timezone.utc)
    return now - joined_at <= window


class OnboardingListenerCog(commands.Cog):
    """Enqueues the onboarding reminder for members who just finished onboarding."""

    def __init__(
        self,
        bot: discord.Bot,
        scheduler: ReminderScheduler,
        *,
        guild_id: int | None,
        reminder_key: str,
        delay_seconds: int,
        window: datetime.timedelta,
    ) -> None:
        self.bot = bot
        self.scheduler = scheduler
        self.guild_id = guild_id
        self.reminder_key = reminder_key
        self.delay_seconds = delay_seconds
        self.window = window

    @commands.Cog.listener(name="on_member_update")
    async def on_member_update(self, before: discord.Member, after: discord.Member) -> None:
        if self.guild_id is not None and after.guild.id != self.guild_id:
            return
        if not completed_onboarding(before, after):
            return
        if not within_window(after.joined_at, self.window):
            logger.debug("[ONBOARDING] %s finished onboarding outside the window; ignoring", after.id)
            return

        await self.scheduler.enqueue(
            UserID.from_user(after),
            self.reminder_key,
            self.delay_seconds,
            recipient=after,
        )


def setup(bot: discord.Bot, scheduler: ReminderScheduler, **options) -> None:
    """Register the OnboardingListenerCog with the bot."""
    bot.add_cog(OnboardingListenerCog(bot, scheduler, **options))
