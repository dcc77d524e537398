"""
Infraction ledger records.

``created_at`` is kept as unix seconds (UTC), matching the INTEGER column it
is stored in, so decay comparisons need no parsing.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import List

from rulecord.datatypes.discord_datatypes import GuildID, UserID


class InfractionSource(Enum):
    AUTOMOD = "automod"
    MANUAL = "manual"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True)
class Infraction:
    """One row of a member's infraction history."""
    guild_id: GuildID
    user_id: UserID
    points: int
    source: InfractionSource
    reason: str
    created_at: int
    id: int | None = None
    rule_name: str | None = None
    moderator_id: UserID | None = None
    matched_content: str | None = None
    active: bool = True
    # Set by the decay sweep; informational, point sums use the live window
    decayed_at: int | None = None

    @property
    def created_at_datetime(self) -> datetime.datetime:
        return datetime.datetime.fromtimestamp(self.created_at, tz=datetime.timezone.utc)


@dataclass(slots=True)
class InfractionPage:
    """A page of infractions, newest first."""
    items: List[Infraction] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 10

    @property
    def pages(self) -> int:
        # ceil(total / page_size) without floats
        return -(-self.total // self.page_size) if self.page_size > 0 else 0


@dataclass(slots=True)
class InfractionStats:
    """
    Guild-wide ledger summary.

    Active counts exclude staff-cleared rows and rows the last decay sweep
    marked as decayed.
    """
    total_infractions: int = 0
    active_infractions: int = 0
    total_points: int = 0
    decayed_infractions: int = 0
    distinct_users: int = 0
    automod_infractions: int = 0
    manual_infractions: int = 0
