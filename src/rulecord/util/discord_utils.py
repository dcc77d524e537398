"""
discord_utils.py
================

py-cord side of the moderation engine.

``DiscordModerationPlatform`` implements the outbound primitives of
:class:`rulecord.moderation.platform.ModerationPlatform` over a
``discord.Bot``; py-cord and transport (``aiohttp``, timeout) exceptions are
translated into the engine's error types. The snapshot helpers turn py-cord
members into :class:`MemberSnapshot` objects. This module keeps no state of
its own.
"""

from __future__ import annotations

import asyncio
import datetime
from contextlib import asynccontextmanager
from typing import AsyncIterator

import aiohttp
import discord

from rulecord.datatypes.discord_datatypes import (
    ChannelID,
    GuildID,
    MemberSnapshot,
    MessageID,
    RoleID,
    UserID,
)
from rulecord.moderation.errors import ModerationPermissionError, PlatformError
from rulecord.util.logger import get_logger

logger = get_logger("discord_utils")

# Human-friendly label for a permanent duration
PERMANENT_DURATION = "Till the end of time"


def format_duration(seconds: int) -> str:
    """
    Convert a duration in seconds to a human-readable string.

    ``0`` means permanent. Larger units are combined with the next smaller
    one (``"2 days 3 hours"``) so clamped timeouts read naturally.
    """
    seconds = int(seconds)
    if seconds <= 0:
        return PERMANENT_DURATION

    units = (("day", 86400), ("hour", 3600), ("min", 60), ("sec", 1))
    parts = []
    for name, size in units:
        count, seconds = divmod(seconds, size)
        if count:
            parts.append(f"{count} {name}{'s' if count != 1 else ''}")
        if len(parts) == 2:
            break
    return " ".join(parts)


def snapshot_member(member: discord.Member) -> MemberSnapshot:
    """Build a :class:`MemberSnapshot` from a py-cord member."""
    guild = member.guild
    return MemberSnapshot(
        user_id=UserID.from_user(member),
        guild_id=GuildID(guild.id),
        username=member.name,
        nickname=member.nick,
        role_ids=frozenset(RoleID(role.id) for role in member.roles),
        top_role_position=member.top_role.position if member.top_role else 0,
        is_bot=member.bot or member.system,
        is_owner=guild.owner_id == member.id,
    )


def snapshot_user(user: discord.abc.User, guild_id: int) -> MemberSnapshot:
    """Snapshot for an author that is not (or no longer) a guild member."""
    return MemberSnapshot(
        user_id=UserID.from_user(user),
        guild_id=GuildID(guild_id),
        username=user.name,
        is_bot=user.bot or getattr(user, "system", False),
    )


@asynccontextmanager
async def platform_call(description: str) -> AsyncIterator[None]:
    """Translate py-cord and transport exceptions raised inside the block."""
    try:
        yield
    except discord.Forbidden as exc:
        raise ModerationPermissionError(f"{description}: missing permissions ({exc.text or exc.status})") from exc
    except discord.HTTPException as exc:
        raise PlatformError(f"{description}: {exc.text or exc}", status=exc.status, code=exc.code) from exc
    except discord.ClientException as exc:
        raise PlatformError(f"{description}: {exc}") from exc
    except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
        # Transport-level failures
        raise PlatformError(f"{description}: {type(exc).__name__}: {exc}") from exc


class DiscordModerationPlatform:
    """Moderation primitives backed by a py-cord bot."""

    def __init__(self, bot: discord.Bot) -> None:
        self.bot = bot

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _guild(self, guild_id: GuildID) -> discord.Guild:
        guild = self.bot.get_guild(guild_id.to_int())
        if guild is not None:
            return guild
        async with platform_call(f"fetch guild {guild_id}"):
            return await self.bot.fetch_guild(guild_id.to_int())

    async def _member(self, guild: discord.Guild, user_id: UserID) -> discord.Member | None:
        member = guild.get_member(user_id.to_int())
        if member is not None:
            return member
        async with platform_call(f"fetch member {user_id}"):
            try:
                return await guild.fetch_member(user_id.to_int())
            except discord.NotFound:
                return None

    async def _messageable(self, channel_id: ChannelID):
        channel = self.bot.get_channel(channel_id.to_int())
        if channel is not None:
            return channel
        async with platform_call(f"fetch channel {channel_id}"):
            return await self.bot.fetch_channel(channel_id.to_int())

    async def get_member(self, guild_id: GuildID, user_id: UserID) -> MemberSnapshot | None:
        guild = await self._guild(guild_id)
        member = await self._member(guild, user_id)
        return snapshot_member(member) if member is not None else None

    async def get_bot_member(self, guild_id: GuildID) -> MemberSnapshot | None:
        guild = await self._guild(guild_id)
        return snapshot_member(guild.me) if guild.me is not None else None

    async def get_guild_name(self, guild_id: GuildID) -> str:
        guild = await self._guild(guild_id)
        return guild.name

    # ------------------------------------------------------------------
    # Sanctions
    # ------------------------------------------------------------------

    async def timeout(self, guild_id: GuildID, user_id: UserID, duration: datetime.timedelta, reason: str) -> None:
        guild = await self._guild(guild_id)
        member = await self._member(guild, user_id)
        if member is None:
            raise PlatformError(f"timeout {user_id}: not a member of guild {guild_id}")
        async with platform_call(f"timeout {user_id}"):
            await member.timeout_for(duration, reason=reason)

    async def kick(self, guild_id: GuildID, user_id: UserID, reason: str) -> None:
        guild = await self._guild(guild_id)
        async with platform_call(f"kick {user_id}"):
            await guild.kick(discord.Object(id=user_id.to_int()), reason=reason)

    async def ban(self, guild_id: GuildID, user_id: UserID, reason: str, delete_message_seconds: int = 0) -> None:
        guild = await self._guild(guild_id)
        async with platform_call(f"ban {user_id}"):
            await guild.ban(
                discord.Object(id=user_id.to_int()),
                reason=reason,
                delete_message_seconds=delete_message_seconds,
            )

    async def unban(self, guild_id: GuildID, user_id: UserID, reason: str) -> None:
        guild = await self._guild(guild_id)
        async with platform_call(f"unban {user_id}"):
            await guild.unban(discord.Object(id=user_id.to_int()), reason=reason)

    async def add_role(self, guild_id: GuildID, user_id: UserID, role_id: RoleID, reason: str) -> None:
        guild = await self._guild(guild_id)
        member = await self._member(guild, user_id)
        if member is None:
            raise PlatformError(f"add role to {user_id}: not a member of guild {guild_id}")
        async with platform_call(f"add role {role_id} to {user_id}"):
            await member.add_roles(discord.Object(id=role_id.to_int()), reason=reason)

    async def remove_role(self, guild_id: GuildID, user_id: UserID, role_id: RoleID, reason: str) -> None:
        guild = await self._guild(guild_id)
        member = await self._member(guild, user_id)
        if member is None:
            # Nothing to remove once the member has left
            return
        async with platform_call(f"remove role {role_id} from {user_id}"):
            await member.remove_roles(discord.Object(id=role_id.to_int()), reason=reason)

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    async def send_direct_message(
        self, user_id: UserID, content: str | None = None, embed: discord.Embed | None = None
    ) -> None:
        user = self.bot.get_user(user_id.to_int())
        async with platform_call(f"DM {user_id}"):
            if user is None:
                user = await self.bot.fetch_user(user_id.to_int())
            await user.send(content=content, embed=embed)

    async def send_channel_message(
        self, channel_id: ChannelID, content: str | None = None, embed: discord.Embed | None = None
    ) -> None:
        channel = await self._messageable(channel_id)
        if not isinstance(channel, discord.abc.Messageable):
            raise PlatformError(f"channel {channel_id} cannot receive messages")
        async with platform_call(f"send to channel {channel_id}"):
            await channel.send(content=content, embed=embed)

    async def delete_message(self, channel_id: ChannelID, message_id: MessageID) -> None:
        channel = await self._messageable(channel_id)
        async with platform_call(f"delete message {message_id}"):
            await channel.get_partial_message(message_id.to_int()).delete()

    async def remove_reaction(self, channel_id: ChannelID, message_id: MessageID, emoji: str, user_id: UserID) -> None:
        channel = await self._messageable(channel_id)
        async with platform_call(f"remove reaction on {message_id}"):
            await channel.get_partial_message(message_id.to_int()).remove_reaction(
                emoji, discord.Object(id=user_id.to_int())
            )
