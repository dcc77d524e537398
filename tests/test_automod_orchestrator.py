import datetime
from types import SimpleNamespace

import pytest

from rulecord.datatypes.automod_datatypes import (
    AutomodAction,
    AutomodEvent,
    AutomodRule,
    AutomodTarget,
    EventKind,
    NotificationOverride,
    RulePattern,
)
from rulecord.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, RoleID, UserID
from rulecord.datatypes.infraction_datatypes import InfractionSource
from rulecord.datatypes.moderation_config import EscalationAction, EscalationTier
from rulecord.moderation.automod_orchestrator import AutomodOrchestrator
from rulecord.moderation.errors import ModerationPermissionError, PlatformError
from rulecord.moderation.escalation_service import EscalationService
from rulecord.moderation.infraction_ledger import InfractionLedger
from rulecord.moderation.mod_log import ModLogSender
from rulecord.moderation.notifications import ModerationNotifier
from rulecord.moderation.rule_engine import RuleEngine
from rulecord.services.moderation_settings_service import ModerationSettingsService

GUILD = GuildID(1000)
AUTHOR = UserID(42)
LOG_CHANNEL = ChannelID(77)

T1 = EscalationTier(name="T1", threshold=5, action=EscalationAction.TIMEOUT, duration=datetime.timedelta(seconds=600))


@pytest.fixture()
def env(database, platform):
    settings = ModerationSettingsService(database)
    ledger = InfractionLedger(database, settings)
    mod_log = ModLogSender(platform)
    orchestrator = AutomodOrchestrator(
        platform,
        settings,
        RuleEngine(),
        ledger,
        EscalationService(platform, mod_log),
        ModerationNotifier(platform),
        mod_log,
        content_log_limit=200,
    )
    return SimpleNamespace(orchestrator=orchestrator, settings=settings, ledger=ledger, platform=platform)


async def add_rule(env, name="R1", regex="badword", points=5, priority=10, **kwargs) -> AutomodRule:
    return await env.settings.create_rule(
        AutomodRule(
            guild_id=GUILD,
            name=name,
            targets=kwargs.pop("targets", (AutomodTarget.MESSAGE_CONTENT,)),
            patterns=(RulePattern(regex=regex),),
            priority=priority,
            points=points,
            **kwargs,
        )
    )


def message(make_member, content, roles=(), **member_kwargs) -> AutomodEvent:
    return AutomodEvent(
        kind=EventKind.MESSAGE,
        guild_id=GUILD,
        author=make_member(AUTHOR, roles=roles, **member_kwargs),
        channel_id=ChannelID(10),
        message_id=MessageID(500),
        content=content,
    )


@pytest.mark.asyncio
async def test_badword_scenario_records_and_escalates(env, make_member):
    await add_rule(env)
    await env.settings.update_config(GUILD, escalation_tiers=[T1], log_channel_id=LOG_CHANNEL)

    outcome = await env.orchestrator.handle_event(message(make_member, "this is a badword"))

    assert outcome.errors == []
    assert outcome.content_removed
    assert env.platform.called("delete_message")[0][1] == (ChannelID(10), MessageID(500))

    page = await env.ledger.list_infractions(GUILD, AUTHOR)
    assert page.total == 1
    infraction = page.items[0]
    assert infraction.points == 5
    assert infraction.source is InfractionSource.AUTOMOD
    assert infraction.rule_name == "R1"
    assert infraction.matched_content == "badword"

    assert outcome.escalation.triggered
    assert outcome.escalation.tier_name == "T1"
    assert outcome.escalation.action is EscalationAction.TIMEOUT
    assert env.platform.called("timeout")[0][1][2] == datetime.timedelta(milliseconds=600000)

    assert outcome.notified
    assert outcome.logged


@pytest.mark.asyncio
async def test_bot_authors_are_ignored(env, make_member):
    await add_rule(env)
    assert await env.orchestrator.handle_event(message(make_member, "badword", is_bot=True)) is None
    assert env.platform.calls == []


@pytest.mark.asyncio
async def test_system_messages_are_ignored(env, make_member):
    await add_rule(env)
    event = message(make_member, "badword")
    event.is_system = True
    assert await env.orchestrator.handle_event(event) is None


@pytest.mark.asyncio
async def test_immune_role_skips_evaluation(env, make_member):
    await add_rule(env)
    await env.settings.update_config(GUILD, immune_role_ids=frozenset({RoleID(5)}))

    assert await env.orchestrator.handle_event(message(make_member, "badword", roles=(5,))) is None
    assert env.platform.calls == []
    assert await env.ledger.active_points(GUILD, AUTHOR) == 0


@pytest.mark.asyncio
async def test_disabled_automod_skips_evaluation(env, make_member):
    await add_rule(env)
    await env.settings.update_config(GUILD, automod_enabled=False)
    assert await env.orchestrator.handle_event(message(make_member, "badword")) is None


@pytest.mark.asyncio
async def test_no_match_does_nothing(env, make_member):
    await add_rule(env)
    assert await env.orchestrator.handle_event(message(make_member, "perfectly fine")) is None
    assert env.platform.calls == []


@pytest.mark.asyncio
async def test_removal_failure_does_not_block_recording(env, make_member):
    await add_rule(env)
    env.platform.failures["delete_message"] = PlatformError("Unknown Message", status=404)

    outcome = await env.orchestrator.handle_event(message(make_member, "badword"))

    assert not outcome.content_removed
    assert outcome.errors[0].startswith("delete:")
    assert outcome.infraction is not None
    assert await env.ledger.active_points(GUILD, AUTHOR) == 5


@pytest.mark.asyncio
async def test_escalation_failure_keeps_points(env, make_member):
    await add_rule(env)
    await env.settings.update_config(GUILD, escalation_tiers=[T1])
    env.platform.failures["timeout"] = ModerationPermissionError("missing permissions")

    outcome = await env.orchestrator.handle_event(message(make_member, "badword"))

    assert not outcome.escalation.triggered
    assert any(error.startswith("escalate:") for error in outcome.errors)
    assert await env.ledger.active_points(GUILD, AUTHOR) == 5
    assert outcome.notified


@pytest.mark.asyncio
async def test_notification_failure_does_not_block_logging(env, make_member):
    await add_rule(env)
    await env.settings.update_config(GUILD, log_channel_id=LOG_CHANNEL)
    env.platform.failures["send_direct_message"] = ModerationPermissionError("DMs closed")

    outcome = await env.orchestrator.handle_event(message(make_member, "badword"))

    assert not outcome.notified
    assert outcome.logged


@pytest.mark.asyncio
async def test_only_configured_actions_run(env, make_member):
    await add_rule(env, actions=frozenset({AutomodAction.LOG}))
    await env.settings.update_config(GUILD, log_channel_id=LOG_CHANNEL)

    outcome = await env.orchestrator.handle_event(message(make_member, "badword"))

    assert outcome.infraction is None
    assert env.platform.called("delete_message") == []
    assert env.platform.called("send_direct_message") == []
    assert len(env.platform.called("send_channel_message")) == 1


@pytest.mark.asyncio
async def test_zero_point_rule_records_nothing(env, make_member):
    await add_rule(env, points=0)
    await env.settings.update_config(GUILD, escalation_tiers=[T1])

    outcome = await env.orchestrator.handle_event(message(make_member, "badword"))

    assert outcome.infraction is None
    assert outcome.escalation is None
    assert env.platform.called("timeout") == []


@pytest.mark.asyncio
async def test_logged_content_is_truncated(env, make_member):
    await add_rule(env, regex="a+")
    await env.settings.update_config(GUILD, log_channel_id=LOG_CHANNEL)

    await env.orchestrator.handle_event(message(make_member, "a" * 300))

    embed = env.platform.called("send_channel_message")[0][2]["embed"]
    field = next(f for f in embed.fields if f.name == "Matched Content")
    assert len(field.value.strip("`")) == 200


@pytest.mark.asyncio
async def test_rule_override_then_tier_override(env, make_member):
    await add_rule(env, notification=NotificationOverride(template="Rule {rule} hit by {user}"))
    await env.settings.update_config(GUILD, escalation_tiers=[T1])

    await env.orchestrator.handle_event(message(make_member, "badword"))
    assert env.platform.called("send_direct_message")[0][2]["content"] == "Rule R1 hit by <@42>"


@pytest.mark.asyncio
async def test_tier_override_used_when_escalation_fires(env, make_member):
    tier = EscalationTier(
        name="T1",
        threshold=5,
        action=EscalationAction.TIMEOUT,
        duration=datetime.timedelta(minutes=10),
        notification=NotificationOverride(template="Timed out for {duration}"),
    )
    await add_rule(env)
    await env.settings.update_config(GUILD, escalation_tiers=[tier])

    await env.orchestrator.handle_event(message(make_member, "badword"))
    assert env.platform.called("send_direct_message")[0][2]["content"] == "Timed out for 10 mins"


@pytest.mark.asyncio
async def test_reaction_is_removed(env, make_member):
    await add_rule(env, regex="pepe", targets=(AutomodTarget.REACTION_EMOJI,))
    event = AutomodEvent(
        kind=EventKind.REACTION,
        guild_id=GUILD,
        author=make_member(AUTHOR),
        channel_id=ChannelID(10),
        message_id=MessageID(500),
        reaction_emoji="pepe:123",
    )

    outcome = await env.orchestrator.handle_event(event)

    assert outcome.match.matched_content == "pepe:123"
    _, args, _ = env.platform.called("remove_reaction")[0]
    assert args == (ChannelID(10), MessageID(500), "pepe:123", AUTHOR)
