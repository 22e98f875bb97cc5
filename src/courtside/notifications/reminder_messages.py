"""Embeds for the onboarding welcome DM and keyed reminder DMs."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

import discord

DEFAULT_WELCOME: Dict[str, Any] = {
    "title": "Welcome!",
    "description": "Heya {display_name}! Congrats on finishing the onboarding.",
    "footer": "We hope you enjoy your stay!",
    "color": 0x2ECC71,
}


class _FormatDefaults(dict):
    """Leave unknown ``{placeholders}`` in the text instead of raising."""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def _build_embed(template: Mapping[str, Any], user: discord.abc.User) -> discord.Embed:
    values = _FormatDefaults(
        mention=user.mention,
        display_name=getattr(user, "display_name", None) or user.name,
        name=user.name,
    )
    embed = discord.Embed(
        title=str(template.get("title", "")).format_map(values),
        description=str(template.get("description", "")).format_map(values),
        color=int(template.get("color", 0)),
    )
    footer = template.get("footer")
    if footer:
        embed.set_footer(text=str(footer).format_map(values))
    return embed


class ReminderMessages:
    """Message templates keyed by reminder key, loaded from the ``messages`` config section."""

    def __init__(self, messages: Optional[Mapping[str, Any]] = None) -> None:
        messages = messages or {}
        welcome = messages.get("welcome")
        self.welcome = welcome if isinstance(welcome, Mapping) else DEFAULT_WELCOME
        reminders = messages.get("reminders")
        self.reminders: Dict[str, Mapping[str, Any]] = dict(reminders) if isinstance(reminders, Mapping) else {}

    def has_reminder(self, reminder_key: str) -> bool:
        return reminder_key in self.reminders

    def welcome_embed(self, user: discord.abc.User) -> discord.Embed:
        return _build_embed(self.welcome, user)

    def reminder_embed(self, reminder_key: str, user: discord.abc.User) -> discord.Embed:
        """
        Raises:
            KeyError: If no template exists for *reminder_key*.
        """
        return _build_embed(self.reminders[reminder_key], user)
