"""
Audit-log embeds for manual actions, escalations and automod hits.
"""

import datetime

import discord

from rulecord.datatypes.action_datatypes import ActionType, EscalationResult
from rulecord.datatypes.automod_datatypes import AutomodEvent, RuleMatch
from rulecord.datatypes.discord_datatypes import UserID
from rulecord.datatypes.moderation_config import EscalationTier
from rulecord.util.discord_utils import format_duration

ACTION_EMOJIS = {
    ActionType.WARN: "⚠️",
    ActionType.TIMEOUT: "⏱️",
    ActionType.MUTE: "🔇",
    ActionType.KICK: "👢",
    ActionType.BAN: "🔨",
    ActionType.UNBAN: "🔓",
}

ACTION_COLORS = {
    ActionType.WARN: discord.Color.gold(),
    ActionType.TIMEOUT: discord.Color.orange(),
    ActionType.MUTE: discord.Color.orange(),
    ActionType.KICK: discord.Color.red(),
    ActionType.BAN: discord.Color.dark_red(),
    ActionType.UNBAN: discord.Color.green(),
}


def truncate(text: str, limit: int) -> str:
    if limit <= 0 or len(text) <= limit:
        return text
    return text[: max(limit - 1, 0)] + "…"


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _duration_value(duration: datetime.timedelta) -> str:
    expires_unix = int((_now() + duration).timestamp())
    return f"{format_duration(int(duration.total_seconds()))} (Expires: <t:{expires_unix}:R>)"


def build_action_embed(
    action: ActionType,
    user_id: UserID,
    reason: str,
    moderator_id: UserID | None = None,
    duration: datetime.timedelta | None = None,
    points: int | None = None,
    active_points: int | None = None,
) -> discord.Embed:
    """Embed describing a manual moderation action."""
    emoji = ACTION_EMOJIS.get(action, "⚙️")
    embed = discord.Embed(
        title=f"{emoji} {action.value.capitalize()} Issued",
        color=ACTION_COLORS.get(action, discord.Color.red()),
        timestamp=_now(),
    )
    embed.add_field(name="User", value=f"<@{user_id}> (`{user_id}`)", inline=True)
    if moderator_id is not None:
        embed.add_field(name="Moderator", value=f"<@{moderator_id}>", inline=True)
    embed.add_field(name="Reason", value=reason or "No reason provided", inline=False)

    if duration and duration.total_seconds() > 0:
        embed.add_field(name="Duration", value=_duration_value(duration), inline=False)

    if points:
        total = f" (total active: {active_points})" if active_points is not None else ""
        embed.add_field(name="Points", value=f"+{points}{total}", inline=True)

    embed.set_footer(text=f"User ID: {user_id}")
    return embed


def build_escalation_embed(
    user_id: UserID,
    tier: EscalationTier,
    active_points: int,
    duration: datetime.timedelta | None = None,
) -> discord.Embed:
    """Embed announcing that an escalation tier fired."""
    embed = discord.Embed(
        title="⚡ Escalation Triggered",
        color=discord.Color.dark_orange(),
        timestamp=_now(),
    )
    embed.add_field(name="User", value=f"<@{user_id}> (`{user_id}`)", inline=True)
    embed.add_field(name="Tier", value=tier.name, inline=True)
    embed.add_field(name="Action", value=tier.action.value.capitalize(), inline=True)
    embed.add_field(name="Active Points", value=f"{active_points} (threshold {tier.threshold})", inline=True)
    if duration and duration.total_seconds() > 0:
        embed.add_field(name="Duration", value=_duration_value(duration), inline=True)
    embed.set_footer(text=f"User ID: {user_id}")
    return embed


def build_automod_embed(
    match: RuleMatch,
    event: AutomodEvent,
    points_recorded: int,
    active_points: int | None,
    escalation: EscalationResult | None,
    content_limit: int = 200,
) -> discord.Embed:
    """Embed describing an automod rule hit and what was done about it."""
    rule = match.rule
    embed = discord.Embed(
        title="🛡️ Automod Rule Triggered",
        color=discord.Color.orange(),
        timestamp=_now(),
    )
    embed.add_field(name="User", value=f"{event.author.mention} (`{event.author.user_id}`)", inline=True)
    embed.add_field(name="Rule", value=rule.name, inline=True)
    embed.add_field(name="Target", value=str(match.target), inline=True)
    if event.channel_id is not None:
        embed.add_field(name="Channel", value=f"<#{event.channel_id}>", inline=True)

    embed.add_field(
        name="Matched Content",
        value=f"```{truncate(match.matched_content, content_limit)}```",
        inline=False,
    )
    embed.add_field(name="Pattern", value=f"`{match.matched_pattern.label or match.matched_pattern.regex}`", inline=False)

    if points_recorded:
        total = f" (total active: {active_points})" if active_points is not None else ""
        embed.add_field(name="Points", value=f"+{points_recorded}{total}", inline=True)

    if escalation is not None and escalation.triggered:
        embed.add_field(
            name="Escalation",
            value=f"{escalation.tier_name} → {escalation.action.value if escalation.action else 'none'}",
            inline=True,
        )

    embed.set_footer(text=f"Rule #{rule.id}" if rule.id is not None else "Automod")
    return embed
