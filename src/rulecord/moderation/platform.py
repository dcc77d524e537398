"""
Outbound platform primitives the moderation engine depends on.

The engine only talks to these protocols. ``rulecord.util.discord_utils``
implements :class:`ModerationPlatform` on top of py-cord; tests pass fakes.
Implementations raise :class:`ModerationPermissionError` when the platform
refuses for lack of permissions and :class:`PlatformError` for any other
failure.
"""

from __future__ import annotations

import datetime
from typing import Protocol, runtime_checkable

import discord

from rulecord.datatypes.discord_datatypes import ChannelID, GuildID, MemberSnapshot, MessageID, RoleID, UserID


@runtime_checkable
class ModerationPlatform(Protocol):

    async def get_member(self, guild_id: GuildID, user_id: UserID) -> MemberSnapshot | None:
        """Current membership snapshot, or None when the user is not in the guild."""
        ...

    async def get_bot_member(self, guild_id: GuildID) -> MemberSnapshot | None:
        ...

    async def get_guild_name(self, guild_id: GuildID) -> str:
        ...

    async def timeout(self, guild_id: GuildID, user_id: UserID, duration: datetime.timedelta, reason: str) -> None:
        ...

    async def kick(self, guild_id: GuildID, user_id: UserID, reason: str) -> None:
        ...

    async def ban(self, guild_id: GuildID, user_id: UserID, reason: str, delete_message_seconds: int = 0) -> None:
        ...

    async def unban(self, guild_id: GuildID, user_id: UserID, reason: str) -> None:
        ...

    async def add_role(self, guild_id: GuildID, user_id: UserID, role_id: RoleID, reason: str) -> None:
        ...

    async def remove_role(self, guild_id: GuildID, user_id: UserID, role_id: RoleID, reason: str) -> None:
        ...

    async def send_direct_message(
        self, user_id: UserID, content: str | None = None, embed: discord.Embed | None = None
    ) -> None:
        ...

    async def send_channel_message(
        self, channel_id: ChannelID, content: str | None = None, embed: discord.Embed | None = None
    ) -> None:
        ...

    async def delete_message(self, channel_id: ChannelID, message_id: MessageID) -> None:
        ...

    async def remove_reaction(self, channel_id: ChannelID, message_id: MessageID, emoji: str, user_id: UserID) -> None:
        ...


@runtime_checkable
class ModLogSink(Protocol):
    """External audit-log collaborator (e.g. a dedicated logging cog)."""

    async def send_mod_action_log(self, guild_id: GuildID, embed: discord.Embed) -> bool:
        """Return True when the entry was delivered."""
        ...
