import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from courtside import main
from courtside.configuration.app_configuration import AppConfig
from courtside.database.db_connection import ConnectionManager
from courtside.notifications.reminder_scheduler import ReminderScheduler
from courtside.ranking.reconciliation import TierReconciler
from courtside.repositories.notification_ticket_repo import ticket_storage


@pytest.fixture()
def make_config(tmp_path):
    def _make(payload):
        path = tmp_path / "app_config.yml"
        path.write_text(json.dumps(payload), encoding="utf-8")
        return AppConfig(path)

    return _make


def test_build_intents_enable_members():
    intents = main.build_intents()

    assert intents.members is True
    assert intents.guilds is True


def test_build_reconciler_wires_pipeline(make_config, monkeypatch):
    monkeypatch.setenv("SHEETS_API_KEY", "key")
    config = make_config({
        "guild_id": 752216589792706621,
        "call_timeout_seconds": 7,
        "tier_sync": {"spreadsheet_id": "sheet", "audit_thread_id": 1379600000000000000},
    })

    reconciler = main.build_reconciler(MagicMock(), config)

    assert isinstance(reconciler, TierReconciler)
    assert reconciler.source.api_key == "key"
    assert reconciler.source.timeout == 7
    assert reconciler.audit.thread_id == 1379600000000000000
    assert len(reconciler.tiers) == 3


def test_build_reconciler_disabled_or_without_guild(make_config):
    assert main.build_reconciler(MagicMock(), make_config({"tier_sync": {"enabled": False}})) is None
    assert main.build_reconciler(MagicMock(), make_config({})) is None


def test_build_scheduler(make_config):
    config = make_config({"onboarding": {"poll_interval_seconds": 15}})

    scheduler = main.build_scheduler(MagicMock(), config)

    assert isinstance(scheduler, ReminderScheduler)
    assert scheduler.poll_interval == 15
    assert main.build_scheduler(MagicMock(), make_config({"onboarding": {"enabled": False}})) is None


def test_load_environment_requires_token(monkeypatch):
    monkeypatch.setattr(main, "load_dotenv", lambda **_: None)
    monkeypatch.delenv("DISCORD_BOT_TOKEN", raising=False)

    with pytest.raises(SystemExit):
        main.load_environment()

    monkeypatch.setenv("DISCORD_BOT_TOKEN", "token")
    assert main.load_environment() == "token"


@pytest.mark.asyncio
async def test_shutdown_runtime_stops_everything(monkeypatch):
    close_db = AsyncMock()
    monkeypatch.setattr(main.db_connection, "close", close_db)
    scheduler = MagicMock(stop=AsyncMock())
    bot = MagicMock(close=AsyncMock())
    bot.is_closed.return_value = False

    await main.shutdown_runtime(bot, main.Services(scheduler=scheduler))

    scheduler.stop.assert_awaited_once()
    bot.close.assert_awaited_once()
    close_db.assert_awaited_once()


@pytest.mark.asyncio
async def test_shutdown_runtime_tolerates_missing_pieces(monkeypatch):
    close_db = AsyncMock()
    monkeypatch.setattr(main.db_connection, "close", close_db)

    await main.shutdown_runtime(None, None)

    close_db.assert_awaited_once()


@pytest.mark.asyncio
async def test_initialize_database_reports_pending_tickets(make_config, tmp_path, monkeypatch):
    manager = ConnectionManager()
    monkeypatch.setattr(main, "db_connection", manager)
    config = make_config({"database": {"path": str(tmp_path / "data" / "courtside.db")}})

    try:
        assert await main.initialize_database(config) == 0

        async with manager.transaction() as conn:
            await ticket_storage.insert_if_absent(conn, "123456789012345678", "hour_1", 1000)

        assert await main.initialize_database(config) == 1
    finally:
        await manager.close()
