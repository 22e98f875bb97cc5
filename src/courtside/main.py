"""
Courtside
=========

Background automation for the community Discord bot: a weekly job that keeps
tier roles in sync with the ranking spreadsheet, and a scheduler that sends a
one-time reminder DM after a member finishes onboarding.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. COURTSIDE_HOME environment variable, if set.
    2. If running in a frozen/compiled context, use the executable's directory.
    3. Otherwise, assume running from source and use the project root.
    """
    if env_home := os.getenv("COURTSIDE_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
import datetime
from dataclasses import dataclass

import discord
from dotenv import load_dotenv

from courtside.cog.listener import onboarding_listener, scheduler_cog
from courtside.configuration.app_configuration import AppConfig, app_config
from courtside.database.db_connection import db_connection
from courtside.database.db_schema import SchemaManager
from courtside.datatypes.discord_datatypes import ChannelID, GuildID
from courtside.notifications.reminder_messages import ReminderMessages
from courtside.notifications.reminder_scheduler import ReminderScheduler
from courtside.ranking.audit_sink import AuditSink
from courtside.ranking.member_directory import GuildMemberDirectory
from courtside.ranking.reconciliation import TierReconciler
from courtside.ranking.sheet_fetcher import RankingSheetFetcher
from courtside.ranking.tier_resolver import TierDefinition
from courtside.repositories.notification_ticket_repo import ticket_storage
from courtside.util.logger import get_logger, handle_exception


logger = get_logger("main")


@dataclass
class Services:
    """Long-lived background services owned by the composition root."""
    reconciler: TierReconciler | None = None
    scheduler: ReminderScheduler | None = None


def load_environment() -> str:
    """Load ``.env`` and return the Discord bot token.

    Raises
    ------
    SystemExit
        If the required ``DISCORD_BOT_TOKEN`` variable is missing.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    """Intents for member updates (onboarding flag) and role edits."""
    intents = discord.Intents.default()
    intents.guilds = True
    intents.members = True
    return intents


def build_reconciler(bot: discord.Bot, config: AppConfig) -> TierReconciler | None:
    """Wire the tier sync pipeline, or return None when it is disabled or unconfigured."""
    if not config.tier_sync_enabled:
        logger.info("Tier sync disabled in configuration.")
        return None
    if config.guild_id is None:
        logger.error("Tier sync needs 'guild_id'; tier sync will not run.")
        return None

    api_key = os.getenv("SHEETS_API_KEY", "")
    if not api_key:
        logger.error("'SHEETS_API_KEY' not set; tier sync passes will fail until it is.")

    tiers = TierDefinition.from_config(config.tier_entries)
    if not tiers.covers_all_scores():
        logger.warning("Tier table leaves gaps; scores in a gap are skipped.")

    timeout = config.call_timeout_seconds
    fetcher = RankingSheetFetcher(
        config.spreadsheet_id,
        api_key,
        sheet_label=config.sheet_label,
        value_range=config.value_range,
        timeout=timeout,
    )
    audit = AuditSink(
        bot,
        thread_id=ChannelID(config.audit_thread_id) if config.audit_thread_id else None,
        parent_channel_id=ChannelID(config.audit_parent_channel_id) if config.audit_parent_channel_id else None,
        thread_name=config.audit_thread_name,
        timeout=timeout,
    )
    directory = GuildMemberDirectory(bot, GuildID(config.guild_id), timeout=timeout)
    return TierReconciler(fetcher, directory, tiers, audit)


def build_scheduler(bot: discord.Bot, config: AppConfig) -> ReminderScheduler | None:
    if not config.onboarding_enabled:
        logger.info("Onboarding reminders disabled in configuration.")
        return None
    return ReminderScheduler(
        bot,
        ReminderMessages(config.messages),
        connection=db_connection,
        poll_interval=config.reminder_poll_interval_seconds,
        timeout=config.call_timeout_seconds,
        welcome_delay=config.onboarding_welcome_delay_seconds,
    )


def create_bot(config: AppConfig = app_config) -> tuple[discord.Bot, Services]:
    """Instantiate the Discord bot, its background services and cogs."""
    bot = discord.Bot(intents=build_intents())
    services = Services(
        reconciler=build_reconciler(bot, config),
        scheduler=build_scheduler(bot, config),
    )

    scheduler_cog.setup(
        bot,
        reconciler=services.reconciler,
        scheduler=services.scheduler,
        run_at=config.tier_sync_time,
        weekday=config.tier_sync_weekday,
    )
    if services.scheduler is not None:
        onboarding_listener.setup(
            bot,
            services.scheduler,
            guild_id=config.guild_id,
            reminder_key=config.onboarding_reminder_key,
            delay_seconds=config.onboarding_reminder_delay_seconds,
            window=datetime.timedelta(hours=config.onboarding_window_hours),
        )

    logger.info("All cogs loaded successfully.")
    return bot, services


async def initialize_database(config: AppConfig = app_config) -> int:
    """Open the shared connection, make sure the schema exists and return the pending ticket count."""
    await db_connection.open(config.database_path)
    await SchemaManager.initialize_schema(db_connection.connection)

    async with db_connection.read() as conn:
        pending = await ticket_storage.get_pending(conn)
    if pending:
        logger.info("[MAIN] %d reminder ticket(s) pending, next due at %d", len(pending), pending[0].fire_at)
    return len(pending)


async def shutdown_runtime(bot: discord.Bot | None, services: Services | None) -> None:
    """Stop background services, close the bot and the database."""
    if services is not None and services.scheduler is not None:
        try:
            await services.scheduler.stop()
        except Exception as exc:
            logger.exception("Error while stopping reminder scheduler: %s", exc)

    if bot is not None and not bot.is_closed():
        try:
            await bot.close()
        except Exception as exc:
            logger.exception("Error while closing Discord client: %s", exc)

    await db_connection.close()
    logger.info("Shutdown complete.")


async def async_main() -> int:
    """Bootstrap database and bot, run until disconnected, return an exit code."""
    token = load_environment()

    try:
        logger.info("Initializing database...")
        await initialize_database()
    except Exception as exc:
        logger.critical("Failed to initialize database: %s", exc)
        return 1

    bot: discord.Bot | None = None
    services: Services | None = None
    exit_code = 0
    try:
        bot, services = create_bot()
        logger.info("Attempting to connect to Discord…")
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(bot, services)

    return exit_code


def main() -> int:
    """Console entrypoint returning the process exit code."""
    sys.excepthook = handle_exception
    logger.info("Starting Courtside…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except SystemExit as exit_exc:
        code = exit_exc.code
        if isinstance(code, int):
            return code
        return 1


if __name__ == "__main__":
    sys.exit(main())
