"""
Per-guild moderation configuration and escalation tiers.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, List

from rulecord.datatypes.automod_datatypes import EmbedTemplate, NotificationMode, NotificationOverride
from rulecord.datatypes.discord_datatypes import ChannelID, GuildID, RoleID


class EscalationAction(Enum):
    """Sanctions an escalation tier can apply."""

    TIMEOUT = "timeout"
    KICK = "kick"
    BAN = "ban"

    def __str__(self) -> str:
        return self.value


class MuteMode(Enum):
    """How ``mute`` silences a member: native timeout or a mute role."""

    TIMEOUT = "timeout"
    ROLE = "role"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True)
class EscalationTier:
    """
    Threshold sanction applied when a member's active points reach it.

    Attributes:
        name: Label shown in logs and notifications.
        threshold: Active points at or above which the tier fires.
        action: Sanction to apply.
        duration: Timeout length; required for TIMEOUT, ignored otherwise.
        reason: Optional reason text for the platform audit log.
        notification: Optional DM override used when this tier fires.
    """
    name: str
    threshold: int
    action: EscalationAction
    duration: datetime.timedelta | None = None
    reason: str | None = None
    notification: NotificationOverride | None = None


@dataclass(slots=True)
class ModerationConfig:
    """
    Everything a guild configures about automated moderation.

    A guild without a stored row behaves as if it had ``ModerationConfig(guild_id)``.
    """
    guild_id: GuildID
    automod_enabled: bool = True
    decay_enabled: bool = False
    decay_days: int = 30
    notify_on_infraction: bool = True
    notify_mode: NotificationMode = NotificationMode.TEMPLATE
    default_template: str | None = None
    default_embed: EmbedTemplate | None = None
    immune_role_ids: FrozenSet[RoleID] = frozenset()
    escalation_tiers: List[EscalationTier] = field(default_factory=list)
    log_channel_id: ChannelID | None = None
    mute_mode: MuteMode = MuteMode.TIMEOUT
    mute_role_id: RoleID | None = None

    @property
    def default_notification(self) -> NotificationOverride:
        """The community default expressed as the last override in the chain."""
        return NotificationOverride(
            mode=self.notify_mode,
            template=self.default_template,
            embed=self.default_embed,
        )
