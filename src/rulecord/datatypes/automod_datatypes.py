"""
Automod rule definitions and the normalized events they are evaluated against.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, List, Tuple

from rulecord.datatypes.discord_datatypes import ChannelID, GuildID, MemberSnapshot, MessageID, RoleID


class AutomodTarget(Enum):
    """Which piece of an event a rule inspects."""

    MESSAGE_CONTENT = "message_content"
    MESSAGE_EMOJI = "message_emoji"
    STICKER = "sticker"
    LINK = "link"
    USERNAME = "username"
    NICKNAME = "nickname"
    REACTION_EMOJI = "reaction_emoji"

    def __str__(self) -> str:
        return self.value


class EventKind(Enum):
    """Kinds of inbound events the orchestrator accepts."""

    MESSAGE = "message"
    REACTION = "reaction"
    MEMBER_UPDATE = "member_update"

    def __str__(self) -> str:
        return self.value


# Which targets can produce content for each event kind.
APPLICABLE_TARGETS: dict[EventKind, FrozenSet[AutomodTarget]] = {
    EventKind.MESSAGE: frozenset({
        AutomodTarget.MESSAGE_CONTENT,
        AutomodTarget.MESSAGE_EMOJI,
        AutomodTarget.STICKER,
        AutomodTarget.LINK,
    }),
    EventKind.REACTION: frozenset({AutomodTarget.REACTION_EMOJI}),
    EventKind.MEMBER_UPDATE: frozenset({AutomodTarget.USERNAME, AutomodTarget.NICKNAME}),
}


class MatchMode(Enum):
    """How a rule combines its patterns."""

    ANY = "any"
    ALL = "all"

    def __str__(self) -> str:
        return self.value


class AutomodAction(Enum):
    """Steps the orchestrator performs when a rule matches."""

    DELETE = "delete"
    RECORD = "record"
    NOTIFY = "notify"
    LOG = "log"

    def __str__(self) -> str:
        return self.value


class NotificationMode(Enum):
    """How direct-message notifications are rendered."""

    TEMPLATE = "template"
    EMBED = "embed"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True)
class EmbedField:
    name: str
    value: str
    inline: bool = False


@dataclass(slots=True)
class EmbedTemplate:
    """Stored embed layout; every text field may contain ``{placeholders}``."""
    title: str | None = None
    description: str | None = None
    color: int | None = None
    fields: List[EmbedField] = field(default_factory=list)


@dataclass(slots=True)
class NotificationOverride:
    """
    Per-rule or per-tier replacement for the community's default DM.

    Any attribute left as None falls through to the next link of the
    resolution chain.
    """
    mode: NotificationMode | None = None
    template: str | None = None
    embed: EmbedTemplate | None = None

    def is_empty(self) -> bool:
        return self.mode is None and self.template is None and self.embed is None


@dataclass(slots=True, frozen=True)
class RulePattern:
    """A single regular expression with its flag letters and an optional label."""
    regex: str
    flags: str = ""
    label: str | None = None


@dataclass(slots=True)
class AutomodRule:
    """
    A named content rule belonging to one guild.

    Attributes:
        id: Database row id (None before the rule is persisted).
        guild_id: Owning guild.
        name: Display name, used in logs and notifications.
        enabled: Disabled rules are never evaluated.
        priority: Higher priorities are evaluated first.
        targets: Targets inspected, in evaluation order.
        patterns: Patterns combined according to ``match_mode``.
        match_mode: ANY or ALL.
        points: Infraction points recorded on a match (0 records nothing).
        actions: Steps performed on a match.
        notification: Optional DM override for this rule.
        channel_ids: When non-empty, only events in these channels are checked.
        exempt_role_ids: Members holding any of these roles are skipped.
        excluded_channel_ids: Events in these channels are never checked.
        required_role_ids: When non-empty, only members holding one of these roles are checked.
        preset_id: Set when the rule was installed from a built-in preset.
    """
    guild_id: GuildID
    name: str
    targets: Tuple[AutomodTarget, ...]
    patterns: Tuple[RulePattern, ...]
    id: int | None = None
    enabled: bool = True
    priority: int = 0
    match_mode: MatchMode = MatchMode.ANY
    points: int = 0
    actions: FrozenSet[AutomodAction] = frozenset(AutomodAction)
    notification: NotificationOverride | None = None
    channel_ids: FrozenSet[ChannelID] = frozenset()
    exempt_role_ids: FrozenSet[RoleID] = frozenset()
    excluded_channel_ids: FrozenSet[ChannelID] = frozenset()
    required_role_ids: FrozenSet[RoleID] = frozenset()
    preset_id: str | None = None

    def has_action(self, action: AutomodAction) -> bool:
        return action in self.actions


@dataclass(slots=True)
class PatternMatch:
    """The pattern that satisfied a test and the substring it matched."""
    pattern: RulePattern
    matched_text: str


@dataclass(slots=True)
class RuleMatch:
    """Result of a successful rule evaluation."""
    rule: AutomodRule
    target: AutomodTarget
    matched_content: str
    matched_pattern: RulePattern


@dataclass(slots=True)
class AutomodEvent:
    """
    Platform-neutral inbound event.

    Message events carry ``content``, ``sticker_names`` and ``message_id``;
    reaction events carry ``reaction_emoji`` (and the reacted message's id);
    member update events only need the author snapshot.
    """
    kind: EventKind
    guild_id: GuildID
    author: MemberSnapshot
    channel_id: ChannelID | None = None
    message_id: MessageID | None = None
    content: str = ""
    sticker_names: List[str] = field(default_factory=list)
    reaction_emoji: str | None = None
    is_system: bool = False
