"""
Type-safe wrapper classes for Discord identifiers.

Discord snowflakes are 64-bit integers that arrive as strings from the ranking
spreadsheet and the database, and as ints from the Discord API. These wrappers
keep the string form internally so both sides compare equal.
"""

from __future__ import annotations

import re
from typing import Union

import discord

# Strict shape of a Discord account id as written in the ranking sheet.
SNOWFLAKE_PATTERN = re.compile(r"^\d{17,19}$")


class _SnowflakeID:
    """
    Shared behaviour for snowflake wrappers.

    Attributes:
        _value (str): The snowflake ID stored as a string for JSON parity.

    Example:
        >>> uid = UserID(123456789012345678)
        >>> uid.to_int()
        123456789012345678
        >>> UserID("123456789012345678") == 123456789012345678
        True
    """

    __slots__ = ("_value",)

    def __init__(self, value: Union[str, int, "_SnowflakeID"]) -> None:
        """
        Raises:
            ValueError: If the value cannot be converted to a valid snowflake.
        """
        if isinstance(value, _SnowflakeID):
            self._value = value._value
        elif isinstance(value, bool):
            raise ValueError(f"Cannot create {type(self).__name__} from bool")
        elif isinstance(value, int):
            self._value = str(value)
        elif isinstance(value, str):
            self._value = str(int(value.strip()))
        else:
            raise ValueError(f"Cannot create {type(self).__name__} from {type(value).__name__}: {value}")

    def to_int(self) -> int:
        """Convert to an integer for Discord API calls."""
        return int(self._value)

    def to_object(self) -> discord.Object:
        """Return a bare ``discord.Object`` usable wherever py-cord wants a snowflake."""
        return discord.Object(id=self.to_int())

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, type(self)):
            return self._value == other._value
        if isinstance(other, str):
            return self._value == other
        if isinstance(other, int) and not isinstance(other, bool):
            return self._value == str(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)


class UserID(_SnowflakeID):
    """Type-safe wrapper for Discord user snowflake IDs."""

    __slots__ = ()

    @classmethod
    def from_user(cls, member: Union[discord.Member, discord.User]) -> "UserID":
        return cls(member.id)

    @staticmethod
    def looks_like(text: str) -> bool:
        """Return True if *text* has the strict shape of an account id."""
        return bool(SNOWFLAKE_PATTERN.match(text.strip()))

    @property
    def mention(self) -> str:
        return f"<@{self._value}>"


class RoleID(_SnowflakeID):
    """Type-safe wrapper for Discord role snowflake IDs."""

    __slots__ = ()

    @property
    def mention(self) -> str:
        return f"<@&{self._value}>"


class ChannelID(_SnowflakeID):
    """Type-safe wrapper for Discord channel and thread snowflake IDs."""

    __slots__ = ()


class GuildID(_SnowflakeID):
    """Type-safe wrapper for Discord guild snowflake IDs."""

    __slots__ = ()
