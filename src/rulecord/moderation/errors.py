"""
Exception hierarchy for the moderation engine.

``ValidationError`` is raised to callers (bad rule, bad tier, non-positive
points). ``ModerationPermissionError`` and ``PlatformError`` are raised by the
platform adapter and converted into failed results by the action executor and
escalation service; they never escape those components.
"""

from __future__ import annotations


class ModerationError(Exception):
    """Base class for every error raised by the moderation engine."""


class ValidationError(ModerationError):
    """Input rejected before anything was persisted or sent to the platform."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class ModerationPermissionError(ModerationError):
    """The bot or the acting moderator may not act on the target."""


class PlatformError(ModerationError):
    """The chat platform rejected or failed a request."""

    def __init__(self, message: str, *, status: int | None = None, code: int | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.code = code
