"""
Direct-message notifications for sanctioned members.

Templates use ``{name}`` placeholders. Known names:
``user``, ``username``, ``server``, ``rule``, ``channel``, ``points``,
``total_points``, ``action``, ``reason``, ``moderator``, ``matched_content``,
``timestamp``, ``duration``. A placeholder whose value is missing stays in
the output verbatim.

The DM to send is resolved along a chain, first hit wins per attribute:
rule override → tier override → community default → hardcoded fallback.
"""

from __future__ import annotations

import datetime
import re
from typing import Any, Mapping

import discord

from rulecord.datatypes.automod_datatypes import EmbedTemplate, NotificationMode, NotificationOverride
from rulecord.datatypes.discord_datatypes import GuildID, UserID
from rulecord.datatypes.moderation_config import ModerationConfig
from rulecord.moderation.errors import ModerationError
from rulecord.moderation.platform import ModerationPlatform
from rulecord.util.logger import get_logger

logger = get_logger("notifications")

PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")

DEFAULT_TEMPLATE = (
    "You have received a **{action}** in **{server}**.\n"
    "**Reason:** {reason}"
)


def render_template(template: str, variables: Mapping[str, Any]) -> str:
    """Substitute ``{name}`` placeholders; unknown or missing names are left as-is."""

    def substitute(match: re.Match[str]) -> str:
        value = variables.get(match.group(1))
        return match.group(0) if value is None else str(value)

    return PLACEHOLDER_RE.sub(substitute, template)


def render_embed(template: EmbedTemplate, variables: Mapping[str, Any]) -> discord.Embed:
    embed = discord.Embed(timestamp=datetime.datetime.now(datetime.timezone.utc))
    if template.title:
        embed.title = render_template(template.title, variables)
    if template.description:
        embed.description = render_template(template.description, variables)
    if template.color is not None:
        embed.colour = discord.Colour(template.color)
    for field in template.fields:
        embed.add_field(
            name=render_template(field.name, variables),
            value=render_template(field.value, variables),
            inline=field.inline,
        )
    return embed


def resolve_notification(*overrides: NotificationOverride | None) -> tuple[NotificationMode, str | None, EmbedTemplate | None]:
    """Walk the overrides in order and return the first mode, template and embed found."""
    chain = [o for o in overrides if o is not None]
    mode = next((o.mode for o in chain if o.mode is not None), NotificationMode.TEMPLATE)
    template = next((o.template for o in chain if o.template), None)
    embed = next((o.embed for o in chain if o.embed is not None), None)
    return mode, template, embed


class ModerationNotifier:
    """Sends the resolved DM through the platform. Never raises."""

    def __init__(self, platform: ModerationPlatform) -> None:
        self._platform = platform

    async def notify(
        self,
        guild_id: GuildID,
        user_id: UserID,
        config: ModerationConfig,
        variables: Mapping[str, Any],
        *,
        rule_override: NotificationOverride | None = None,
        tier_override: NotificationOverride | None = None,
    ) -> bool:
        """
        Returns:
            True when a DM was delivered, False when notifications are off
            for the guild or delivery failed.
        """
        if not config.notify_on_infraction:
            return False

        mode, template, embed_template = resolve_notification(
            rule_override, tier_override, config.default_notification
        )

        try:
            if mode is NotificationMode.EMBED and embed_template is not None:
                await self._platform.send_direct_message(user_id, embed=render_embed(embed_template, variables))
            else:
                content = render_template(template or DEFAULT_TEMPLATE, variables)
                await self._platform.send_direct_message(user_id, content=content)
        except ModerationError as exc:
            # Most often the member has DMs closed
            logger.debug("[NOTIFY] Could not DM user %s in guild %s: %s", user_id, guild_id, exc)
            return False
        except Exception:
            logger.exception("[NOTIFY] Unexpected error while DMing user %s", user_id)
            return False

        return True
