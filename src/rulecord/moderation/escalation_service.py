"""
Threshold escalation: turn accumulated points into a real sanction.

Tiers are re-sorted by threshold on every call, so the order they were
stored in never matters; the single highest tier at or below the member's
active points fires. A failed sanction is logged and reported as not
triggered. The ledger is never touched here.
"""

from __future__ import annotations

import datetime
import time
from typing import Callable, Dict, Sequence, Tuple

from rulecord.configuration.app_configuration import DISCORD_MAX_TIMEOUT
from rulecord.datatypes.action_datatypes import EscalationResult
from rulecord.datatypes.discord_datatypes import GuildID, UserID
from rulecord.datatypes.moderation_config import EscalationAction, EscalationTier, ModerationConfig
from rulecord.moderation.errors import ModerationError
from rulecord.moderation.mod_log import ModLogSender
from rulecord.moderation.platform import ModerationPlatform
from rulecord.ui.action_embed import build_escalation_embed
from rulecord.util.logger import get_logger

logger = get_logger("escalation_service")

DEFAULT_TIMEOUT = datetime.timedelta(hours=1)


class EscalationGuard:
    """
    Optional suppression of repeated escalations.

    With ``cooldown_seconds == 0`` every call is allowed, so two concurrent
    infractions crossing the same threshold may both apply the tier
    (at-least-once). A positive cooldown lets only the first execution of a
    given tier for a given member through within the window.
    """

    def __init__(self, cooldown_seconds: float = 0.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._last_run: Dict[Tuple[str, str, str], float] = {}

    @property
    def enabled(self) -> bool:
        return self.cooldown_seconds > 0

    def acquire(self, guild_id: GuildID, user_id: UserID, tier_name: str) -> bool:
        """Claim the right to execute; check and mark happen without yielding."""
        if not self.enabled:
            return True

        key = (str(guild_id), str(user_id), tier_name)
        now = self._clock()
        last = self._last_run.get(key)
        if last is not None and now - last < self.cooldown_seconds:
            return False

        self._last_run[key] = now
        self._prune(now)
        return True

    def release(self, guild_id: GuildID, user_id: UserID, tier_name: str) -> None:
        """Forget a claim whose sanction failed so a later call may retry."""
        self._last_run.pop((str(guild_id), str(user_id), tier_name), None)

    def _prune(self, now: float) -> None:
        if len(self._last_run) < 1024:
            return
        expired = [k for k, ts in self._last_run.items() if now - ts >= self.cooldown_seconds]
        for key in expired:
            del self._last_run[key]


class EscalationService:
    """
    Applies escalation tiers through the platform.

    Args:
        platform: Outbound moderation primitives.
        mod_log: Audit-log sender used after a successful escalation.
        guard: Duplicate-suppression policy; defaults to disabled.
        max_timeout: Upper bound for timeout durations.
        default_timeout: Used for timeout tiers stored without a duration.
    """

    def __init__(
        self,
        platform: ModerationPlatform,
        mod_log: ModLogSender,
        guard: EscalationGuard | None = None,
        max_timeout: datetime.timedelta = DISCORD_MAX_TIMEOUT,
        default_timeout: datetime.timedelta = DEFAULT_TIMEOUT,
    ) -> None:
        self._platform = platform
        self._mod_log = mod_log
        self._guard = guard or EscalationGuard()
        self._max_timeout = min(max_timeout, DISCORD_MAX_TIMEOUT)
        self._default_timeout = default_timeout

    @staticmethod
    def select_tier(tiers: Sequence[EscalationTier], points: int) -> EscalationTier | None:
        """Highest-threshold tier whose threshold is at or below ``points``."""
        for tier in sorted(tiers, key=lambda t: t.threshold, reverse=True):
            if tier.threshold <= points:
                return tier
        return None

    def timeout_duration(self, tier: EscalationTier) -> datetime.timedelta:
        duration = tier.duration if tier.duration and tier.duration.total_seconds() > 0 else self._default_timeout
        return min(duration, self._max_timeout)

    async def _apply(
        self,
        guild_id: GuildID,
        user_id: UserID,
        tier: EscalationTier,
        reason: str,
    ) -> datetime.timedelta | None:
        match tier.action:
            case EscalationAction.TIMEOUT:
                duration = self.timeout_duration(tier)
                await self._platform.timeout(guild_id, user_id, duration, reason)
                return duration
            case EscalationAction.KICK:
                await self._platform.kick(guild_id, user_id, reason)
            case EscalationAction.BAN:
                await self._platform.ban(guild_id, user_id, reason, delete_message_seconds=0)
        return None

    async def check_and_escalate(
        self,
        guild_id: GuildID,
        user_id: UserID,
        current_points: int,
        tiers: Sequence[EscalationTier],
        config: ModerationConfig | None = None,
    ) -> EscalationResult:
        """
        Apply the qualifying tier, if any.

        Returns:
            ``triggered=True`` only when the platform applied the sanction.
        """
        tier = self.select_tier(tiers, current_points)
        if tier is None:
            return EscalationResult.none()

        if not self._guard.acquire(guild_id, user_id, tier.name):
            logger.info(
                "[ESCALATION] Suppressed repeat of tier '%s' for user %s in guild %s",
                tier.name, user_id, guild_id,
            )
            return EscalationResult(triggered=False, tier_name=tier.name, action=tier.action, tier=tier, suppressed=True)

        reason = tier.reason or f"Escalation: {tier.name} ({current_points} active points)"
        try:
            duration = await self._apply(guild_id, user_id, tier, reason)
        except ModerationError as exc:
            self._guard.release(guild_id, user_id, tier.name)
            logger.warning(
                "[ESCALATION] Failed to apply %s (tier '%s') to user %s in guild %s: %s",
                tier.action, tier.name, user_id, guild_id, exc,
            )
            return EscalationResult(triggered=False, tier_name=tier.name, action=tier.action, tier=tier, error=str(exc))

        logger.info(
            "[ESCALATION] Applied %s (tier '%s', %d points) to user %s in guild %s",
            tier.action, tier.name, current_points, user_id, guild_id,
        )

        if config is not None:
            embed = build_escalation_embed(user_id, tier, current_points, duration)
            await self._mod_log.send(guild_id, embed, config)

        return EscalationResult(
            triggered=True,
            tier_name=tier.name,
            action=tier.action,
            tier=tier,
            duration=duration,
        )
