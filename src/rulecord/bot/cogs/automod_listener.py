"""Automod listener Cog for Rulecord.

Translates py-cord gateway events (new and edited messages, reactions,
member joins and profile updates) into :class:`AutomodEvent` objects and hands
them to the automod orchestrator.
"""

import discord
from discord.ext import commands

from rulecord.datatypes.automod_datatypes import AutomodEvent, EventKind
from rulecord.datatypes.discord_datatypes import ChannelID, GuildID, MessageID
from rulecord.moderation.automod_orchestrator import AutomodOrchestrator
from rulecord.moderation.content_extraction import format_reaction_emoji
from rulecord.util.discord_utils import snapshot_member, snapshot_user
from rulecord.util.logger import get_logger

logger = get_logger("automod_listener_cog")


class AutomodListenerCog(commands.Cog):
    """Cog feeding gateway events into the automod pipeline."""

    def __init__(self, discord_bot_instance, orchestrator: AutomodOrchestrator):
        self.bot = discord_bot_instance
        self.orchestrator = orchestrator
        logger.info("Automod listener cog loaded")

    async def _dispatch(self, event: AutomodEvent) -> None:
        try:
            outcome = await self.orchestrator.handle_event(event)
        except Exception:
            logger.exception("[AUTOMOD LISTENER] Failed to process %s event in guild %s", event.kind, event.guild_id)
            return

        if outcome is not None and outcome.errors:
            logger.warning(
                "[AUTOMOD LISTENER] Rule '%s' finished with errors: %s",
                outcome.match.rule.name, "; ".join(outcome.errors),
            )

    @staticmethod
    def build_message_event(message: discord.Message) -> AutomodEvent | None:
        """Normalize a guild message; returns None for DMs."""
        if message.guild is None:
            return None

        if isinstance(message.author, discord.Member):
            author = snapshot_member(message.author)
        else:
            author = snapshot_user(message.author, message.guild.id)

        return AutomodEvent(
            kind=EventKind.MESSAGE,
            guild_id=GuildID.from_guild(message.guild),
            author=author,
            channel_id=ChannelID.from_channel(message.channel),
            message_id=MessageID.from_message(message),
            content=message.content or "",
            sticker_names=[sticker.name for sticker in message.stickers],
            is_system=message.is_system(),
        )

    @staticmethod
    def build_member_event(member: discord.Member) -> AutomodEvent:
        return AutomodEvent(
            kind=EventKind.MEMBER_UPDATE,
            guild_id=GuildID.from_guild(member.guild),
            author=snapshot_member(member),
        )

    @commands.Cog.listener(name="on_message")
    async def on_message(self, message: discord.Message):
        event = self.build_message_event(message)
        if event is not None:
            await self._dispatch(event)

    @commands.Cog.listener(name="on_message_edit")
    async def on_message_edit(self, before: discord.Message, after: discord.Message):
        # Embed unfurls also fire edits
        if before.content == after.content:
            return
        event = self.build_message_event(after)
        if event is not None:
            await self._dispatch(event)

    @commands.Cog.listener(name="on_raw_reaction_add")
    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent):
        if payload.guild_id is None or payload.member is None:
            return

        event = AutomodEvent(
            kind=EventKind.REACTION,
            guild_id=GuildID(payload.guild_id),
            author=snapshot_member(payload.member),
            channel_id=ChannelID(payload.channel_id),
            message_id=MessageID(payload.message_id),
            reaction_emoji=format_reaction_emoji(payload.emoji.name, payload.emoji.id),
        )
        await self._dispatch(event)

    @commands.Cog.listener(name="on_member_join")
    async def on_member_join(self, member: discord.Member):
        await self._dispatch(self.build_member_event(member))

    @commands.Cog.listener(name="on_member_update")
    async def on_member_update(self, before: discord.Member, after: discord.Member):
        if before.name == after.name and before.nick == after.nick:
            return
        await self._dispatch(self.build_member_event(after))


def setup(discord_bot_instance, orchestrator: AutomodOrchestrator):
    """Register the AutomodListenerCog with the bot."""
    discord_bot_instance.add_cog(AutomodListenerCog(discord_bot_instance, orchestrator))
