"""
Discord-backed directory of guild members and their roles.

The reconciler talks to a :class:`MemberDirectory`; :class:`GuildMemberDirectory`
is the py-cord implementation. Discord exceptions are translated into
:class:`IdentityNotFound` and :class:`MutationError` here so the reconciliation
logic never imports discord.
"""

from __future__ import annotations

from typing import Dict, Protocol

import discord

from courtside.datatypes.discord_datatypes import GuildID, RoleID, UserID
from courtside.util.async_utils import with_timeout
from courtside.util.errors import IdentityNotFound, MutationError
from courtside.util.logger import get_logger

logger = get_logger("member_directory")

AUDIT_REASON = "Weekly tier sync"


class MemberDirectory(Protocol):
    """Role read/write surface used by the tier reconciler."""

    def reset(self) -> None: ...

    async def fetch_roles(self, identity: UserID) -> frozenset[RoleID]: ...

    async def add_role(self, identity: UserID, role_id: RoleID) -> None: ...

    async def remove_role(self, identity: UserID, role_id: RoleID) -> None: ...


class GuildMemberDirectory:
    """
    :class:`MemberDirectory` over a single guild.

    Members fetched during a pass are cached until :meth:`reset` or until one
    of their roles changes; a cached ``Member`` keeps the role list it was
    fetched with.
    """

    def __init__(self, bot: discord.Bot, guild_id: GuildID, *, timeout: float = 30.0) -> None:
        self.bot = bot
        self.guild_id = guild_id
        self.timeout = timeout
        self._members: Dict[UserID, discord.Member] = {}

    def reset(self) -> None:
        self._members.clear()

    async def _guild(self) -> discord.Guild:
        guild = self.bot.get_guild(self.guild_id.to_int())
        if guild is None:
            guild = await with_timeout(self.bot.fetch_guild(self.guild_id.to_int()), self.timeout, "fetch_guild")
        return guild

    async def _member(self, identity: UserID) -> discord.Member:
        member = self._members.get(identity)
        if member is not None:
            return member

        guild = await self._guild()
        try:
            member = await with_timeout(guild.fetch_member(identity.to_int()), self.timeout, "fetch_member")
        except discord.NotFound as exc:
            raise IdentityNotFound(str(identity), "not a member of the guild") from exc

        self._members[identity] = member
        return member

    async def fetch_roles(self, identity: UserID) -> frozenset[RoleID]:
        member = await self._member(identity)
        return frozenset(RoleID(role.id) for role in member.roles)

    async def add_role(self, identity: UserID, role_id: RoleID) -> None:
        member = await self._member(identity)
        try:
            await with_timeout(member.add_roles(role_id.to_object(), reason=AUDIT_REASON), self.timeout, "add_roles")
        except discord.NotFound as exc:
            raise IdentityNotFound(str(identity), "left during the pass") from exc
        except (discord.HTTPException, TimeoutError) as exc:
            raise MutationError(f"Could not add role {role_id} to {identity}: {exc}") from exc
        self._members.pop(identity, None)

    async def remove_role(self, identity: UserID, role_id: RoleID) -> None:
        member = await self._member(identity)
        try:
            await with_timeout(member.remove_roles(role_id.to_object(), reason=AUDIT_REASON), self.timeout, "remove_roles")
        except discord.NotFound as exc:
            raise IdentityNotFound(str(identity), "left during the pass") from exc
        except (discord.HTTPException, TimeoutError) as exc:
            raise MutationError(f"Could not remove role {role_id} from {identity}: {exc}") from exc
        self._members.pop(identity, None)
