"""
Action types and result structures for moderation actions.

Every executor operation and every escalation returns one of these instead of
raising, so callers can report partial outcomes (sanction applied, DM failed).
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from enum import Enum

from rulecord.datatypes.discord_datatypes import UserID
from rulecord.datatypes.infraction_datatypes import Infraction
from rulecord.datatypes.moderation_config import EscalationAction, EscalationTier


class ActionType(Enum):
    """Enumeration of supported moderation actions."""

    BAN = "ban"
    UNBAN = "unban"
    KICK = "kick"
    MUTE = "mute"
    WARN = "warn"
    TIMEOUT = "timeout"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_escalation(cls, action: EscalationAction) -> "ActionType":
        return cls(action.value)


class ErrorKind(Enum):
    """Why an action failed."""

    VALIDATION = "validation"
    PERMISSION = "permission"
    PLATFORM = "platform"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True)
class EscalationResult:
    """Outcome of an escalation check.

    ``suppressed`` is True when a tier qualified but the escalation guard
    skipped it because it already ran inside the cooldown window.
    """
    triggered: bool = False
    tier_name: str | None = None
    action: EscalationAction | None = None
    tier: EscalationTier | None = None
    duration: datetime.timedelta | None = None
    suppressed: bool = False
    error: str | None = None

    @classmethod
    def none(cls) -> "EscalationResult":
        return cls()


@dataclass(slots=True)
class ActionResult:
    """Outcome of a manual moderation action.

    Attributes:
        success: True when the platform applied the sanction.
        action: The requested action.
        user_id: The target member.
        error: Human-readable failure reason.
        error_kind: Category of the failure.
        notified: True when the DM to the target went through.
        logged: True when the audit log entry was delivered.
        infraction: Ledger row recorded as part of the action, if any.
        active_points: Member's active points after recording.
        escalation: Escalation outcome triggered by this action, if checked.
        duration: Effective duration after clamping.
    """
    success: bool
    action: ActionType
    user_id: UserID
    error: str | None = None
    error_kind: ErrorKind | None = None
    notified: bool = False
    logged: bool = False
    infraction: Infraction | None = None
    active_points: int | None = None
    escalation: EscalationResult | None = None
    duration: datetime.timedelta | None = None

    @classmethod
    def failed(cls, action: ActionType, user_id: UserID, kind: ErrorKind, error: str) -> "ActionResult":
        return cls(success=False, action=action, user_id=user_id, error=error, error_kind=kind)
