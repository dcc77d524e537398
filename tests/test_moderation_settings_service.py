import asyncio
import dataclasses
import datetime

import pytest

from rulecord.database.db_cache import DatabaseQueryCache
from rulecord.datatypes.automod_datatypes import (
    AutomodAction,
    AutomodRule,
    AutomodTarget,
    NotificationOverride,
    RulePattern,
)
from rulecord.datatypes.discord_datatypes import ChannelID, GuildID, RoleID
from rulecord.datatypes.moderation_config import EscalationAction, EscalationTier, MuteMode
from rulecord.moderation.errors import ValidationError
from rulecord.moderation.presets import PRESETS
from rulecord.repositories.automod_rule_repo import AutomodRuleRepo
from rulecord.repositories.moderation_config_repo import ModerationConfigRepo
from rulecord.services.moderation_settings_service import ModerationSettingsService

GUILD = GuildID(1000)


def make_rule(name="Bad words", regex="badword", **kwargs) -> AutomodRule:
    return AutomodRule(
        guild_id=GUILD,
        name=name,
        targets=(AutomodTarget.MESSAGE_CONTENT,),
        patterns=(RulePattern(regex=regex, flags="i"),),
        **kwargs,
    )


@pytest.fixture()
def service(database) -> ModerationSettingsService:
    return ModerationSettingsService(database, cache=DatabaseQueryCache(ttl_seconds=300))


@pytest.mark.asyncio
async def test_get_config_defaults_without_persisting(service):
    config = await service.get_config(GUILD)
    assert config.automod_enabled is True
    assert config.decay_enabled is False
    assert config.escalation_tiers == []
    assert await service.list_rules(GUILD) == []


@pytest.mark.asyncio
async def test_update_config_round_trips_tiers_and_roles(service):
    tiers = [
        EscalationTier(name="ban", threshold=50, action=EscalationAction.BAN),
        EscalationTier(
            name="timeout",
            threshold=10,
            action=EscalationAction.TIMEOUT,
            duration=datetime.timedelta(minutes=10),
            notification=NotificationOverride(template="Muted for {duration}"),
        ),
    ]
    await service.update_config(
        GUILD,
        escalation_tiers=tiers,
        immune_role_ids=frozenset({RoleID(5)}),
        log_channel_id=ChannelID(77),
    )

    service._cache.invalidate_guild(GUILD)
    stored = await service.get_config(GUILD)
    assert [t.name for t in stored.escalation_tiers] == ["ban", "timeout"]
    assert stored.escalation_tiers[1].duration == datetime.timedelta(minutes=10)
    assert stored.escalation_tiers[1].notification.template == "Muted for {duration}"
    assert stored.immune_role_ids == frozenset({RoleID(5)})
    assert stored.log_channel_id == ChannelID(77)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "tier",
    [
        EscalationTier(name="t", threshold=5, action=EscalationAction.TIMEOUT),
        EscalationTier(name="t", threshold=0, action=EscalationAction.KICK),
        EscalationTier(name="", threshold=5, action=EscalationAction.BAN),
    ],
)
async def test_invalid_tiers_rejected_before_persistence(service, tier):
    with pytest.raises(ValidationError):
        await service.update_config(GUILD, escalation_tiers=[tier])
    service._cache.invalidate_guild(GUILD)
    assert (await service.get_config(GUILD)).escalation_tiers == []


@pytest.mark.asyncio
async def test_config_validation_rules(service):
    with pytest.raises(ValidationError):
        await service.update_config(GUILD, decay_enabled=True, decay_days=0)
    with pytest.raises(ValidationError):
        await service.update_config(GUILD, mute_mode=MuteMode.ROLE)
    with pytest.raises(ValidationError):
        await service.update_config(GUILD, not_a_field=True)


@pytest.mark.asyncio
async def test_get_or_create_config_persists_defaults(service, database):
    created = await service.get_or_create_config(GUILD)
    assert created.guild_id == GUILD

    async with database.read() as conn:
        cursor = await conn.execute("SELECT COUNT(*) FROM moderation_config")
        assert (await cursor.fetchone())[0] == 1


@pytest.mark.asyncio
async def test_create_rule_validates_patterns(service):
    with pytest.raises(ValidationError):
        await service.create_rule(make_rule(regex="(unclosed"))
    with pytest.raises(ValidationError):
        await service.create_rule(make_rule(name=" "))
    with pytest.raises(ValidationError):
        await service.create_rule(make_rule(points=-1))
    with pytest.raises(ValidationError):
        await service.create_rule(dataclasses.replace(make_rule(), targets=()))
    assert await service.list_rules(GUILD) == []


@pytest.mark.asyncio
async def test_rule_crud_round_trip(service):
    rule = await service.create_rule(
        make_rule(
            priority=5,
            points=3,
            actions=frozenset({AutomodAction.DELETE, AutomodAction.LOG}),
            channel_ids=frozenset({ChannelID(10)}),
            excluded_channel_ids=frozenset({ChannelID(11)}),
            required_role_ids=frozenset({RoleID(3), RoleID(4)}),
        )
    )
    assert rule.id is not None

    stored = await service.get_rule(GUILD, rule.id)
    assert stored.name == "Bad words"
    assert stored.patterns == rule.patterns
    assert stored.actions == frozenset({AutomodAction.DELETE, AutomodAction.LOG})
    assert stored.channel_ids == frozenset({ChannelID(10)})
    assert stored.excluded_channel_ids == frozenset({ChannelID(11)})
    assert stored.required_role_ids == frozenset({RoleID(3), RoleID(4)})

    await service.update_rule(dataclasses.replace(stored, name="Renamed"))
    assert (await service.get_rule(GUILD, rule.id)).name == "Renamed"

    assert await service.delete_rule(GUILD, rule.id)
    assert not await service.delete_rule(GUILD, rule.id)
    assert await service.get_rule(GUILD, rule.id) is None


@pytest.mark.asyncio
async def test_update_missing_rule_raises(service):
    with pytest.raises(ValidationError):
        await service.update_rule(make_rule())
    with pytest.raises(ValidationError):
        await service.update_rule(dataclasses.replace(make_rule(), id=999))


@pytest.mark.asyncio
async def test_writes_invalidate_cached_rules(service):
    rule = await service.create_rule(make_rule())
    assert [r.id for r in await service.get_enabled_rules(GUILD)] == [rule.id]

    assert await service.toggle_rule(GUILD, rule.id, False)
    assert await service.get_enabled_rules(GUILD) == []

    await service.toggle_rule(GUILD, rule.id, True)
    assert len(await service.get_enabled_rules(GUILD)) == 1


@pytest.mark.asyncio
async def test_config_writes_invalidate_cache(service):
    assert (await service.get_config(GUILD)).automod_enabled is True
    await service.update_config(GUILD, automod_enabled=False)
    assert (await service.get_config(GUILD)).automod_enabled is False


@pytest.mark.asyncio
async def test_read_overtaken_by_write_is_not_cached(service, monkeypatch):
    original = ModerationConfigRepo.get
    writes = []

    async def get_then_write(conn, guild_id):
        config = await original(conn, guild_id)
        if not writes:
            writes.append(guild_id)
            await service.update_config(guild_id, decay_days=7)
        return config

    monkeypatch.setattr(ModerationConfigRepo, "get", staticmethod(get_then_write))

    stale = await service.get_config(GUILD)
    assert stale.decay_days == 30
    assert (await service.get_config(GUILD)).decay_days == 7


@pytest.mark.asyncio
async def test_rule_list_overtaken_by_write_is_not_cached(service, monkeypatch):
    original = AutomodRuleRepo.list_for_guild
    writes = []

    async def list_then_write(conn, guild_id, enabled_only=False):
        rules = await original(conn, guild_id, enabled_only=enabled_only)
        if not writes:
            writes.append(guild_id)
            await service.create_rule(make_rule())
        return rules

    monkeypatch.setattr(AutomodRuleRepo, "list_for_guild", staticmethod(list_then_write))

    assert await service.get_enabled_rules(GUILD) == []
    assert len(await service.get_enabled_rules(GUILD)) == 1


@pytest.mark.asyncio
async def test_concurrent_config_updates_do_not_lose_fields(service):
    await service.get_config(GUILD)
    await asyncio.gather(
        service.update_config(GUILD, automod_enabled=False),
        service.update_config(GUILD, decay_days=7),
    )

    service._cache.invalidate_guild(GUILD)
    stored = await service.get_config(GUILD)
    assert stored.automod_enabled is False
    assert stored.decay_days == 7


@pytest.mark.asyncio
async def test_install_and_remove_preset(service):
    rule = await service.install_preset(GUILD, "invite-links")
    assert rule.preset_id == "invite-links"
    assert rule.points == PRESETS["invite-links"].points

    again = await service.install_preset(GUILD, "invite-links")
    rules = await service.list_rules(GUILD)
    assert [r.id for r in rules] == [again.id]

    assert await service.remove_preset(GUILD, "invite-links")
    assert not await service.remove_preset(GUILD, "invite-links")
    assert await service.list_rules(GUILD) == []

    with pytest.raises(ValidationError):
        await service.install_preset(GUILD, "does-not-exist")


@pytest.mark.asyncio
async def test_create_rule_from_wildcards(service):
    rule = await service.create_rule_from_wildcards(GUILD, "Scams", "free nitro*, *scam*", points=2)

    stored = await service.get_rule(GUILD, rule.id)
    assert stored.targets == (AutomodTarget.MESSAGE_CONTENT,)
    assert [p.label for p in stored.patterns] == ['Starts with "free nitro"', 'Contains "scam"']
    assert all(p.flags == "i" for p in stored.patterns)
    assert stored.points == 2


@pytest.mark.asyncio
async def test_create_rule_from_bad_wildcards_writes_nothing(service):
    with pytest.raises(ValidationError) as exc_info:
        await service.create_rule_from_wildcards(GUILD, "Broken", "ok, **, x")

    assert exc_info.value.field == "patterns"
    assert '"**"' in str(exc_info.value)
    assert '"x"' in str(exc_info.value)
    assert await service.list_rules(GUILD) == []
