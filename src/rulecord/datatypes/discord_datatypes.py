"""
Type-safe wrapper classes for Discord identifiers and member snapshots.

Snowflakes are 64-bit integers that travel as strings in JSON payloads and
as integers through the Discord API. The wrappers below accept either form
and keep guild, user, channel, role and message IDs from being mixed up.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Union


class Snowflake:
    """
    Common behaviour for the typed snowflake wrappers.

    Instances compare equal to wrappers of the same concrete type and to the
    raw ``int``/``str`` form of the same ID, so they can be used directly as
    dict keys and in comparisons with values coming from py-cord.

    Example:
        >>> gid = GuildID.from_int(123456789012345678)
        >>> gid.to_int()
        123456789012345678
        >>> gid == "123456789012345678"
        True
    """

    __slots__ = ("_value",)

    def __init__(self, value: Union[str, int, "Snowflake"]) -> None:
        if isinstance(value, Snowflake):
            self._value = value._value
        elif isinstance(value, bool):
            raise ValueError(f"Cannot create {type(self).__name__} from bool: {value}")
        elif isinstance(value, int):
            self._value = str(value)
        elif isinstance(value, str):
            # Validate that it's a valid integer string
            self._value = str(int(value.strip()))
        else:
            raise ValueError(f"Cannot create {type(self).__name__} from {type(value).__name__}: {value}")

    @classmethod
    def from_int(cls, value: int):
        return cls(value)

    def to_int(self) -> int:
        """Convert to an integer for Discord API calls and SQLite columns."""
        return int(self._value)

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Snowflake):
            return type(other) is type(self) and self._value == other._value
        if isinstance(other, str):
            return self._value == other
        if isinstance(other, int):
            return self._value == str(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)


class GuildID(Snowflake):
    """Type-safe wrapper for Discord guild (community) snowflake IDs."""

    __slots__ = ()

    @classmethod
    def from_guild(cls, guild) -> "GuildID":
        return cls(guild.id)


class UserID(Snowflake):
    """Type-safe wrapper for Discord user snowflake IDs."""

    __slots__ = ()

    @classmethod
    def from_user(cls, member) -> "UserID":
        """Create a UserID from a Discord Member or User object."""
        return cls(member.id)


class ChannelID(Snowflake):
    """Type-safe wrapper for Discord channel snowflake IDs."""

    __slots__ = ()

    @classmethod
    def from_channel(cls, channel) -> "ChannelID":
        return cls(channel.id)


class RoleID(Snowflake):
    """Type-safe wrapper for Discord role snowflake IDs."""

    __slots__ = ()


class MessageID(Snowflake):
    """Type-safe wrapper for Discord message snowflake IDs."""

    __slots__ = ()

    @classmethod
    def from_message(cls, message) -> "MessageID":
        return cls(message.id)


@dataclass(slots=True)
class MemberSnapshot:
    """
    Platform-neutral view of a guild member at the time of an event.

    The moderation engine never touches py-cord objects directly; the
    listener cog and the platform adapter build these snapshots instead.

    Attributes:
        user_id: The member's user ID.
        guild_id: Guild the snapshot was taken in.
        username: Account username.
        nickname: Guild nickname, or None when unset.
        role_ids: IDs of every role the member holds.
        top_role_position: Position of the member's highest role (0 = @everyone).
        is_bot: True for bot and system accounts.
        is_owner: True when the member owns the guild.
    """
    user_id: UserID
    guild_id: GuildID
    username: str = ""
    nickname: str | None = None
    role_ids: FrozenSet[RoleID] = field(default_factory=frozenset)
    top_role_position: int = 0
    is_bot: bool = False
    is_owner: bool = False

    @property
    def display_name(self) -> str:
        return self.nickname or self.username

    @property
    def mention(self) -> str:
        return f"<@{self.user_id}>"

    def has_any_role(self, role_ids) -> bool:
        """Return True when the member holds at least one of ``role_ids``."""
        return any(RoleID(role_id) in self.role_ids for role_id in role_ids)
