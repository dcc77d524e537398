"""
Best-effort delivery of audit-log embeds.

The external logging collaborator is tried first; when it is missing,
declines (returns False) or fails, the embed goes to the guild's configured
fallback log channel. Failures are logged and swallowed.
"""

from __future__ import annotations

import discord

from rulecord.datatypes.discord_datatypes import GuildID
from rulecord.datatypes.moderation_config import ModerationConfig
from rulecord.moderation.platform import ModerationPlatform, ModLogSink
from rulecord.util.logger import get_logger

logger = get_logger("mod_log")


class ModLogSender:

    def __init__(self, platform: ModerationPlatform, sink: ModLogSink | None = None) -> None:
        self._platform = platform
        self._sink = sink

    async def send(self, guild_id: GuildID, embed: discord.Embed, config: ModerationConfig) -> bool:
        if self._sink is not None:
            try:
                if await self._sink.send_mod_action_log(guild_id, embed):
                    return True
            except Exception as exc:
                logger.warning("[MOD LOG] Logging collaborator failed for guild %s: %s", guild_id, exc)

        if config.log_channel_id is None:
            logger.debug("[MOD LOG] No log channel configured for guild %s", guild_id)
            return False

        try:
            await self._platform.send_channel_message(config.log_channel_id, embed=embed)
        except Exception as exc:
            logger.warning(
                "[MOD LOG] Could not post to log channel %s in guild %s: %s",
                config.log_channel_id, guild_id, exc,
            )
            return False
        return True
