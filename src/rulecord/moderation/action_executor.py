"""
Guarded manual moderation actions: ban, kick, mute, warn, unban.

Every operation returns an :class:`ActionResult` instead of raising for
permission or platform problems. Preconditions are checked before any
platform call:

- kick, mute and warn need the target to be a current member;
- guild owners can never be targeted;
- the bot's top role, and the acting moderator's unless they own the guild,
  must sit strictly above the target's top role.

Once the platform applies the sanction the target is notified and the action
is logged, both best effort; their outcome is reported through ``notified``
and ``logged`` and never changes ``success``. Platform calls are not retried.
"""

from __future__ import annotations

import datetime
from typing import Any, Dict

from rulecord.configuration.app_configuration import DISCORD_MAX_TIMEOUT
from rulecord.datatypes.action_datatypes import ActionResult, ActionType, ErrorKind, EscalationResult
from rulecord.datatypes.discord_datatypes import GuildID, MemberSnapshot, UserID
from rulecord.datatypes.infraction_datatypes import InfractionSource
from rulecord.datatypes.moderation_config import ModerationConfig, MuteMode
from rulecord.moderation.errors import ModerationError, ModerationPermissionError, ValidationError
from rulecord.moderation.escalation_service import EscalationService
from rulecord.moderation.infraction_ledger import InfractionLedger
from rulecord.moderation.mod_log import ModLogSender
from rulecord.moderation.notifications import ModerationNotifier
from rulecord.moderation.platform import ModerationPlatform
from rulecord.scheduler.unmute_scheduler import UnmuteScheduler
from rulecord.services.moderation_settings_service import ModerationSettingsService
from rulecord.ui.action_embed import build_action_embed
from rulecord.util.discord_utils import format_duration
from rulecord.util.logger import get_logger

logger = get_logger("action_executor")


class PreconditionFailed(Exception):
    """Internal signal carrying the failed result out of the checks."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class ActionExecutor:
    """
    Executes manual sanctions through the platform.

    Args:
        platform: Outbound moderation primitives.
        settings: Per-guild config (mute mode, log channel, DM templates).
        ledger: Infraction ledger used by warn and by actions carrying points.
        escalation: Escalation service run after a warn.
        notifier: DM sender.
        mod_log: Audit-log sender.
        unmute_scheduler: Lifts timed role mutes; optional.
        max_timeout: Upper bound for native timeouts.
    """

    def __init__(
        self,
        platform: ModerationPlatform,
        settings: ModerationSettingsService,
        ledger: InfractionLedger,
        escalation: EscalationService,
        notifier: ModerationNotifier,
        mod_log: ModLogSender,
        unmute_scheduler: UnmuteScheduler | None = None,
        max_timeout: datetime.timedelta = DISCORD_MAX_TIMEOUT,
    ) -> None:
        self._platform = platform
        self._settings = settings
        self._ledger = ledger
        self._escalation = escalation
        self._notifier = notifier
        self._mod_log = mod_log
        self._unmute_scheduler = unmute_scheduler
        self._max_timeout = min(max_timeout, DISCORD_MAX_TIMEOUT)

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    async def _check_target(
        self,
        guild_id: GuildID,
        user_id: UserID,
        moderator_id: UserID | None,
        require_member: bool,
    ) -> MemberSnapshot | None:
        """
        Validate membership and hierarchy.

        Raises:
            PreconditionFailed: With the error kind to report.
        """
        if moderator_id is not None and moderator_id == user_id:
            raise PreconditionFailed(ErrorKind.VALIDATION, "You cannot moderate yourself")

        try:
            target = await self._platform.get_member(guild_id, user_id)
        except ModerationError as exc:
            raise PreconditionFailed(ErrorKind.PLATFORM, f"Could not look up the target: {exc}") from exc

        if target is None:
            if require_member:
                raise PreconditionFailed(ErrorKind.VALIDATION, "User is not a member of this server")
            return None

        if target.is_owner:
            raise PreconditionFailed(ErrorKind.PERMISSION, "The server owner cannot be moderated")

        try:
            bot_member = await self._platform.get_bot_member(guild_id)
            actor = await self._platform.get_member(guild_id, moderator_id) if moderator_id is not None else None
        except ModerationError as exc:
            raise PreconditionFailed(ErrorKind.PLATFORM, f"Could not check role hierarchy: {exc}") from exc

        if bot_member is None or bot_member.top_role_position <= target.top_role_position:
            raise PreconditionFailed(ErrorKind.PERMISSION, "My highest role is not above the target's highest role")

        if moderator_id is not None:
            if actor is None:
                raise PreconditionFailed(ErrorKind.PERMISSION, "Acting moderator is not a member of this server")
            if not actor.is_owner and actor.top_role_position <= target.top_role_position:
                raise PreconditionFailed(ErrorKind.PERMISSION, "Your highest role is not above the target's highest role")

        return target

    # ------------------------------------------------------------------
    # Shared follow-up
    # ------------------------------------------------------------------

    async def _guild_name(self, guild_id: GuildID) -> str:
        try:
            return await self._platform.get_guild_name(guild_id)
        except ModerationError:
            return str(guild_id)

    async def _variables(
        self,
        guild_id: GuildID,
        user_id: UserID,
        target: MemberSnapshot | None,
        action: ActionType,
        reason: str,
        moderator_id: UserID | None,
        points: int | None = None,
        total_points: int | None = None,
        duration: datetime.timedelta | None = None,
    ) -> Dict[str, Any]:
        return {
            "user": f"<@{user_id}>",
            "username": target.username if target else None,
            "server": await self._guild_name(guild_id),
            "action": action.value,
            "reason": reason,
            "moderator": f"<@{moderator_id}>" if moderator_id is not None else None,
            "points": points,
            "total_points": total_points,
            "duration": format_duration(int(duration.total_seconds())) if duration else None,
            "timestamp": datetime.datetime.now(datetime.timezone.utc).strftime("%Y-%m-%d %H:%M UTC"),
        }

    async def _finish(
        self,
        result: ActionResult,
        guild_id: GuildID,
        config: ModerationConfig,
        target: MemberSnapshot | None,
        reason: str,
        moderator_id: UserID | None,
        escalation: EscalationResult | None = None,
    ) -> ActionResult:
        points = result.infraction.points if result.infraction else None
        variables = await self._variables(
            guild_id, result.user_id, target, result.action, reason, moderator_id,
            points=points, total_points=result.active_points, duration=result.duration,
        )
        tier_override = None
        if escalation is not None and escalation.triggered:
            # The DM describes the sanction that was actually applied
            variables["action"] = escalation.action.value
            if escalation.duration:
                variables["duration"] = format_duration(int(escalation.duration.total_seconds()))
            if escalation.tier is not None:
                tier_override = escalation.tier.notification
        result.notified = await self._notifier.notify(
            guild_id, result.user_id, config, variables, tier_override=tier_override,
        )

        embed = build_action_embed(
            result.action, result.user_id, reason,
            moderator_id=moderator_id, duration=result.duration,
            points=points, active_points=result.active_points,
        )
        result.logged = await self._mod_log.send(guild_id, embed, config)

        logger.info(
            "[ACTION] %s applied to user %s in guild %s (notified=%s, logged=%s)",
            result.action, result.user_id, guild_id, result.notified, result.logged,
        )
        return result

    async def _record_points(
        self,
        result: ActionResult,
        guild_id: GuildID,
        points: int,
        reason: str,
        moderator_id: UserID | None,
    ) -> None:
        """Attach an infraction to an already applied sanction; failures are only logged."""
        if points <= 0:
            return
        try:
            result.infraction = await self._ledger.record(
                guild_id, result.user_id, points, InfractionSource.MANUAL, reason, moderator_id=moderator_id,
            )
            result.active_points = await self._ledger.active_points(guild_id, result.user_id)
        except Exception:
            logger.exception("[ACTION] Failed to record %d point(s) for user %s", points, result.user_id)

    @staticmethod
    def _platform_failure(action: ActionType, user_id: UserID, exc: ModerationError) -> ActionResult:
        kind = ErrorKind.PERMISSION if isinstance(exc, ModerationPermissionError) else ErrorKind.PLATFORM
        logger.warning("[ACTION] %s on user %s failed: %s", action, user_id, exc)
        return ActionResult.failed(action, user_id, kind, str(exc))

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def ban(
        self,
        guild_id: GuildID,
        user_id: UserID,
        reason: str,
        *,
        moderator_id: UserID | None = None,
        delete_message_seconds: int = 0,
        points: int = 0,
    ) -> ActionResult:
        """Ban a user; works for members and non-members alike."""
        try:
            target = await self._check_target(guild_id, user_id, moderator_id, require_member=False)
        except PreconditionFailed as exc:
            return ActionResult.failed(ActionType.BAN, user_id, exc.kind, str(exc))

        if delete_message_seconds < 0:
            return ActionResult.failed(ActionType.BAN, user_id, ErrorKind.VALIDATION, "Message deletion window cannot be negative")

        config = await self._settings.get_config(guild_id)
        try:
            await self._platform.ban(guild_id, user_id, reason, delete_message_seconds=delete_message_seconds)
        except ModerationError as exc:
            return self._platform_failure(ActionType.BAN, user_id, exc)

        result = ActionResult(success=True, action=ActionType.BAN, user_id=user_id)
        await self._record_points(result, guild_id, points, reason, moderator_id)
        return await self._finish(result, guild_id, config, target, reason, moderator_id)

    async def kick(
        self,
        guild_id: GuildID,
        user_id: UserID,
        reason: str,
        *,
        moderator_id: UserID | None = None,
        points: int = 0,
    ) -> ActionResult:
        try:
            target = await self._check_target(guild_id, user_id, moderator_id, require_member=True)
        except PreconditionFailed as exc:
            return ActionResult.failed(ActionType.KICK, user_id, exc.kind, str(exc))

        config = await self._settings.get_config(guild_id)
        try:
            await self._platform.kick(guild_id, user_id, reason)
        except ModerationError as exc:
            return self._platform_failure(ActionType.KICK, user_id, exc)

        result = ActionResult(success=True, action=ActionType.KICK, user_id=user_id)
        await self._record_points(result, guild_id, points, reason, moderator_id)
        return await self._finish(result, guild_id, config, target, reason, moderator_id)

    async def mute(
        self,
        guild_id: GuildID,
        user_id: UserID,
        reason: str,
        *,
        duration: datetime.timedelta | None = None,
        moderator_id: UserID | None = None,
        points: int = 0,
    ) -> ActionResult:
        """
        Silence a member using the guild's mute mode.

        Timeout mode needs a duration and clamps it to the platform maximum.
        Role mode adds the configured mute role; with a duration the role is
        removed again by the unmute scheduler, without one it stays.
        """
        try:
            target = await self._check_target(guild_id, user_id, moderator_id, require_member=True)
        except PreconditionFailed as exc:
            return ActionResult.failed(ActionType.MUTE, user_id, exc.kind, str(exc))

        if duration is not None and duration.total_seconds() <= 0:
            return ActionResult.failed(ActionType.MUTE, user_id, ErrorKind.VALIDATION, "Mute duration must be positive")

        config = await self._settings.get_config(guild_id)

        if config.mute_mode is MuteMode.TIMEOUT:
            if duration is None:
                return ActionResult.failed(
                    ActionType.MUTE, user_id, ErrorKind.VALIDATION, "Timeout mutes need a duration",
                )
            effective = min(duration, self._max_timeout)
            try:
                await self._platform.timeout(guild_id, user_id, effective, reason)
            except ModerationError as exc:
                return self._platform_failure(ActionType.MUTE, user_id, exc)
        else:
            if config.mute_role_id is None:
                return ActionResult.failed(
                    ActionType.MUTE, user_id, ErrorKind.VALIDATION, "No mute role is configured for this server",
                )
            effective = duration
            try:
                await self._platform.add_role(guild_id, user_id, config.mute_role_id, reason)
            except ModerationError as exc:
                return self._platform_failure(ActionType.MUTE, user_id, exc)

            if effective is not None:
                if self._unmute_scheduler is not None:
                    await self._unmute_scheduler.schedule(
                        guild_id, user_id, config.mute_role_id, effective.total_seconds(),
                    )
                else:
                    logger.warning("[ACTION] No unmute scheduler; role mute for %s will not expire", user_id)

        result = ActionResult(success=True, action=ActionType.MUTE, user_id=user_id, duration=effective)
        await self._record_points(result, guild_id, points, reason, moderator_id)
        return await self._finish(result, guild_id, config, target, reason, moderator_id)

    async def warn(
        self,
        guild_id: GuildID,
        user_id: UserID,
        reason: str,
        *,
        points: int = 1,
        moderator_id: UserID | None = None,
    ) -> ActionResult:
        """Record a manual infraction, then run escalation with the new total."""
        try:
            target = await self._check_target(guild_id, user_id, moderator_id, require_member=True)
        except PreconditionFailed as exc:
            return ActionResult.failed(ActionType.WARN, user_id, exc.kind, str(exc))

        config = await self._settings.get_config(guild_id)
        try:
            infraction = await self._ledger.record(
                guild_id, user_id, points, InfractionSource.MANUAL, reason, moderator_id=moderator_id,
            )
        except ValidationError as exc:
            return ActionResult.failed(ActionType.WARN, user_id, ErrorKind.VALIDATION, str(exc))

        active = await self._ledger.active_points(guild_id, user_id)
        escalation = await self._escalation.check_and_escalate(
            guild_id, user_id, active, config.escalation_tiers, config,
        )

        result = ActionResult(
            success=True,
            action=ActionType.WARN,
            user_id=user_id,
            infraction=infraction,
            active_points=active,
            escalation=escalation,
        )
        return await self._finish(result, guild_id, config, target, reason, moderator_id, escalation)

    async def unban(
        self,
        guild_id: GuildID,
        user_id: UserID,
        reason: str,
        *,
        moderator_id: UserID | None = None,
    ) -> ActionResult:
        if moderator_id is not None and moderator_id == user_id:
            return ActionResult.failed(ActionType.UNBAN, user_id, ErrorKind.VALIDATION, "You cannot moderate yourself")

        config = await self._settings.get_config(guild_id)
        try:
            await self._platform.unban(guild_id, user_id, reason)
        except ModerationError as exc:
            return self._platform_failure(ActionType.UNBAN, user_id, exc)

        result = ActionResult(success=True, action=ActionType.UNBAN, user_id=user_id)
        return await self._finish(result, guild_id, config, None, reason, moderator_id)
