"""
Automod pipeline for one inbound event.

The orchestrator runs the rule engine and then walks the matched rule's
actions in a fixed order: remove the content, record points, escalate,
notify the member, write the audit log. Only "no match" stops the pipeline;
a failure in any later step is logged, noted on the outcome and the next
step still runs.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, List

from rulecord.datatypes.action_datatypes import EscalationResult
from rulecord.datatypes.automod_datatypes import AutomodAction, AutomodEvent, EventKind, RuleMatch
from rulecord.datatypes.infraction_datatypes import Infraction, InfractionSource
from rulecord.datatypes.moderation_config import ModerationConfig
from rulecord.moderation.errors import ModerationError
from rulecord.moderation.escalation_service import EscalationService
from rulecord.moderation.infraction_ledger import InfractionLedger
from rulecord.moderation.mod_log import ModLogSender
from rulecord.moderation.notifications import ModerationNotifier
from rulecord.moderation.platform import ModerationPlatform
from rulecord.moderation.rule_engine import RuleEngine
from rulecord.services.moderation_settings_service import ModerationSettingsService
from rulecord.ui.action_embed import build_automod_embed, truncate
from rulecord.util.discord_utils import format_duration
from rulecord.util.logger import get_logger

logger = get_logger("automod")


@dataclass(slots=True)
class AutomodOutcome:
    """
    What the pipeline did for one matched event.

    ``errors`` holds one entry per step that failed, prefixed with the step
    name (``delete``, ``record``, ``escalate``, ``notify``, ``log``).
    """
    match: RuleMatch
    content_removed: bool = False
    infraction: Infraction | None = None
    active_points: int | None = None
    escalation: EscalationResult | None = None
    notified: bool = False
    logged: bool = False
    errors: List[str] = field(default_factory=list)

    @property
    def escalated(self) -> bool:
        return self.escalation is not None and self.escalation.triggered


class AutomodOrchestrator:
    """
    Glue between inbound events and the moderation components.

    Args:
        platform: Outbound primitives (content removal, guild lookups).
        settings: Source of per-guild config and enabled rules.
        engine: Rule engine used for evaluation.
        ledger: Infraction ledger.
        escalation: Escalation service.
        notifier: DM sender.
        mod_log: Audit-log sender.
        content_log_limit: Max characters of matched content shown in logs and DMs.
    """

    def __init__(
        self,
        platform: ModerationPlatform,
        settings: ModerationSettingsService,
        engine: RuleEngine,
        ledger: InfractionLedger,
        escalation: EscalationService,
        notifier: ModerationNotifier,
        mod_log: ModLogSender,
        content_log_limit: int = 200,
    ) -> None:
        self._platform = platform
        self._settings = settings
        self._engine = engine
        self._ledger = ledger
        self._escalation = escalation
        self._notifier = notifier
        self._mod_log = mod_log
        self._content_log_limit = content_log_limit

    @staticmethod
    def _is_exempt(event: AutomodEvent, config: ModerationConfig) -> bool:
        if not config.automod_enabled:
            return True
        return event.author.has_any_role(config.immune_role_ids)

    async def handle_event(self, event: AutomodEvent) -> AutomodOutcome | None:
        """
        Evaluate one event and apply the matched rule's actions.

        Returns:
            None when the event was skipped or nothing matched, otherwise the
            outcome of every step.
        """
        if event.is_system or event.author.is_bot:
            return None

        config = await self._settings.get_config(event.guild_id)
        if self._is_exempt(event, config):
            return None

        rules = await self._settings.get_enabled_rules(event.guild_id)
        match = self._engine.evaluate(event, rules)
        if match is None:
            return None

        rule = match.rule
        outcome = AutomodOutcome(match=match)
        logger.info(
            "[AUTOMOD] Rule '%s' matched %s of user %s in guild %s",
            rule.name, match.target, event.author.user_id, event.guild_id,
        )

        if rule.has_action(AutomodAction.DELETE):
            await self._remove_content(event, outcome)

        if rule.has_action(AutomodAction.RECORD) and rule.points > 0:
            await self._record(event, match, outcome)

        if outcome.infraction is not None:
            await self._escalate(event, config, outcome)

        if rule.has_action(AutomodAction.NOTIFY):
            await self._notify(event, config, outcome)

        if rule.has_action(AutomodAction.LOG):
            await self._log(event, config, outcome)

        return outcome

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _remove_content(self, event: AutomodEvent, outcome: AutomodOutcome) -> None:
        if event.channel_id is None or event.message_id is None:
            return

        try:
            if event.kind is EventKind.MESSAGE:
                await self._platform.delete_message(event.channel_id, event.message_id)
                outcome.content_removed = True
            elif event.kind is EventKind.REACTION and event.reaction_emoji:
                await self._platform.remove_reaction(
                    event.channel_id, event.message_id, event.reaction_emoji, event.author.user_id,
                )
                outcome.content_removed = True
        except ModerationError as exc:
            # The author may already have deleted or edited it
            logger.debug("[AUTOMOD] Content removal failed for message %s: %s", event.message_id, exc)
            outcome.errors.append(f"delete: {exc}")
        except Exception as exc:
            logger.exception("[AUTOMOD] Unexpected error removing content for message %s", event.message_id)
            outcome.errors.append(f"delete: {exc}")

    async def _record(self, event: AutomodEvent, match: RuleMatch, outcome: AutomodOutcome) -> None:
        rule = match.rule
        try:
            outcome.infraction = await self._ledger.record(
                event.guild_id,
                event.author.user_id,
                rule.points,
                InfractionSource.AUTOMOD,
                f"Automod rule: {rule.name}",
                rule_name=rule.name,
                matched_content=match.matched_content,
            )
        except Exception as exc:
            logger.exception("[AUTOMOD] Failed to record infraction for user %s", event.author.user_id)
            outcome.errors.append(f"record: {exc}")

    async def _escalate(self, event: AutomodEvent, config: ModerationConfig, outcome: AutomodOutcome) -> None:
        try:
            outcome.active_points = await self._ledger.active_points(event.guild_id, event.author.user_id)
            outcome.escalation = await self._escalation.check_and_escalate(
                event.guild_id, event.author.user_id, outcome.active_points, config.escalation_tiers, config,
            )
        except Exception as exc:
            logger.exception("[AUTOMOD] Escalation check failed for user %s", event.author.user_id)
            outcome.errors.append(f"escalate: {exc}")
            return

        if outcome.escalation.error:
            outcome.errors.append(f"escalate: {outcome.escalation.error}")

    async def _variables(self, event: AutomodEvent, outcome: AutomodOutcome) -> Dict[str, Any]:
        match = outcome.match
        try:
            server = await self._platform.get_guild_name(event.guild_id)
        except ModerationError:
            server = str(event.guild_id)

        action = "warning"
        duration = None
        if outcome.escalated:
            action = outcome.escalation.action.value
            if outcome.escalation.duration:
                duration = format_duration(int(outcome.escalation.duration.total_seconds()))

        return {
            "user": event.author.mention,
            "username": event.author.username,
            "server": server,
            "rule": match.rule.name,
            "channel": f"<#{event.channel_id}>" if event.channel_id is not None else None,
            "points": outcome.infraction.points if outcome.infraction else None,
            "total_points": outcome.active_points,
            "action": action,
            "reason": f"Automod rule: {match.rule.name}",
            "moderator": "Automod",
            "matched_content": truncate(match.matched_content, self._content_log_limit),
            "timestamp": datetime.datetime.now(datetime.timezone.utc).strftime("%Y-%m-%d %H:%M UTC"),
            "duration": duration,
        }

    async def _notify(self, event: AutomodEvent, config: ModerationConfig, outcome: AutomodOutcome) -> None:
        tier_override = None
        if outcome.escalated and outcome.escalation.tier is not None:
            tier_override = outcome.escalation.tier.notification

        try:
            variables = await self._variables(event, outcome)
            outcome.notified = await self._notifier.notify(
                event.guild_id,
                event.author.user_id,
                config,
                variables,
                rule_override=outcome.match.rule.notification,
                tier_override=tier_override,
            )
        except Exception as exc:
            logger.exception("[AUTOMOD] Notification step failed for user %s", event.author.user_id)
            outcome.errors.append(f"notify: {exc}")

    async def _log(self, event: AutomodEvent, config: ModerationConfig, outcome: AutomodOutcome) -> None:
        try:
            embed = build_automod_embed(
                outcome.match,
                event,
                outcome.infraction.points if outcome.infraction else 0,
                outcome.active_points,
                outcome.escalation,
                content_limit=self._content_log_limit,
            )
            outcome.logged = await self._mod_log.send(event.guild_id, embed, config)
        except Exception as exc:
            logger.exception("[AUTOMOD] Audit log step failed in guild %s", event.guild_id)
            outcome.errors.append(f"log: {exc}")
