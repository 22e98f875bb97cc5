from __future__ import annotations
from datetime import time as dt_time
from pathlib import Path
import fcntl
from typing import Any, Dict, List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import yaml

from courtside.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

DEFAULT_TIERS: List[Dict[str, Any]] = [
    {"min": 0, "max": 3699, "role_id": 1379598636068896828, "label": "Rookie"},
    {"min": 3700, "max": 5099, "role_id": 1379598705283432509, "label": "Pro"},
    {"min": 5100, "max": None, "role_id": 1379598755560685568, "label": "All-Star"},
]


class AppConfig:
    """File-lock based accessor around the YAML-based application configuration.

    The class caches contents of ``./config/app_config.yml`` and exposes typed
    properties for the tier sync job, the onboarding reminders and the shared
    runtime knobs. Every property falls back to a default so a missing or
    malformed file degrades to defaults instead of crashing the bot.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
            return {}
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if not isinstance(data, dict):
            logger.error("[APP CONFIGURATION] Config %s is not a mapping; using defaults.", self.config_path)
            return {}
        return data

    def _section(self, key: str) -> Dict[str, Any]:
        value = self._data.get(key, {})
        return value if isinstance(value, dict) else {}

    @staticmethod
    def _optional_int(value: Any) -> int | None:
        try:
            return int(value) if value is not None else None
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _number(section: Dict[str, Any], key: str, default: float, cast=float):
        value = section.get(key, default)
        try:
            return cast(value)
        except (TypeError, ValueError):
            logger.warning("[APP CONFIGURATION] Invalid value for %s: %r; using %s.", key, value, default)
            return cast(default)

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns the raw mapping that was loaded (which will be an empty dict on error).
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping (do not mutate)."""
        return self._data

    # --------------------------
    # Runtime
    # --------------------------
    @property
    def guild_id(self) -> int | None:
        """The single guild this bot manages."""
        return self._optional_int(self._data.get("guild_id"))

    @property
    def call_timeout_seconds(self) -> float:
        """Upper bound for any single Discord, spreadsheet or database call."""
        return self._number(self._data, "call_timeout_seconds", 30.0)

    @property
    def database_path(self) -> Path:
        path = self._section("database").get("path") or "./data/courtside.db"
        return Path(str(path)).resolve()

    # --------------------------
    # Tier sync
    # --------------------------
    @property
    def tier_sync(self) -> Dict[str, Any]:
        return self._section("tier_sync")

    @property
    def tier_sync_enabled(self) -> bool:
        return bool(self.tier_sync.get("enabled", True))

    @property
    def spreadsheet_id(self) -> str:
        return str(self.tier_sync.get("spreadsheet_id") or "")

    @property
    def sheet_label(self) -> str:
        """Prefix of versioned sheet titles, e.g. ``Season`` for ``Season 12``."""
        return str(self.tier_sync.get("sheet_label") or "Season")

    @property
    def value_range(self) -> str:
        """A1 range holding the id/score columns inside the selected sheet."""
        return str(self.tier_sync.get("value_range") or "G2:H")

    @property
    def tier_entries(self) -> List[Dict[str, Any]]:
        tiers = self.tier_sync.get("tiers")
        if isinstance(tiers, list) and tiers:
            return tiers
        return DEFAULT_TIERS

    @property
    def tier_sync_timezone(self) -> ZoneInfo:
        name = str(self.tier_sync.get("timezone") or "America/Chicago")
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.error("[APP CONFIGURATION] Unknown timezone %r; falling back to UTC.", name)
            return ZoneInfo("UTC")

    @property
    def tier_sync_weekday(self) -> int:
        """Weekday of the weekly pass, 0 = Monday."""
        value = self.tier_sync.get("weekday", "monday")
        if isinstance(value, int) and 0 <= value <= 6:
            return value
        text = str(value).strip().lower()
        if text in WEEKDAYS:
            return WEEKDAYS.index(text)
        logger.error("[APP CONFIGURATION] Unknown weekday %r; falling back to Monday.", value)
        return 0

    @property
    def tier_sync_time(self) -> dt_time:
        """Local wall-clock time of the weekly pass, timezone-aware."""
        raw = str(self.tier_sync.get("time") or "12:00")
        try:
            hour, minute = (int(part) for part in raw.split(":", 1))
            return dt_time(hour=hour, minute=minute, tzinfo=self.tier_sync_timezone)
        except ValueError:
            logger.error("[APP CONFIGURATION] Invalid tier_sync.time %r; falling back to 12:00.", raw)
            return dt_time(hour=12, tzinfo=self.tier_sync_timezone)

    @property
    def audit_thread_id(self) -> int | None:
        return self._optional_int(self.tier_sync.get("audit_thread_id"))

    @property
    def audit_parent_channel_id(self) -> int | None:
        return self._optional_int(self.tier_sync.get("audit_parent_channel_id"))

    @property
    def audit_thread_name(self) -> str:
        return str(self.tier_sync.get("audit_thread_name") or "tier-sync-audit")

    # --------------------------
    # Onboarding reminders
    # --------------------------
    @property
    def onboarding(self) -> Dict[str, Any]:
        return self._section("onboarding")

    @property
    def onboarding_enabled(self) -> bool:
        return bool(self.onboarding.get("enabled", True))

    @property
    def onboarding_window_hours(self) -> float:
        """Onboarding must complete within this many hours of joining to qualify."""
        return self._number(self.onboarding, "window_hours", 48)

    @property
    def onboarding_reminder_key(self) -> str:
        return str(self.onboarding.get("reminder_key") or "hour_1")

    @property
    def onboarding_reminder_delay_seconds(self) -> int:
        return self._number(self.onboarding, "reminder_delay_seconds", 3600, cast=int)

    @property
    def onboarding_welcome_delay_seconds(self) -> float:
        return self._number(self.onboarding, "welcome_delay_seconds", 1.0)

    @property
    def reminder_poll_interval_seconds(self) -> float:
        return self._number(self.onboarding, "poll_interval_seconds", 300.0)

    # --------------------------
    # Message bodies
    # --------------------------
    @property
    def messages(self) -> Dict[str, Any]:
        return self._section("messages")


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
