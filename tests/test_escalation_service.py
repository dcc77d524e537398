import datetime
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from rulecord.datatypes.discord_datatypes import ChannelID, GuildID, UserID
from rulecord.datatypes.moderation_config import EscalationAction, EscalationTier, ModerationConfig
from rulecord.moderation.errors import PlatformError
from rulecord.moderation.escalation_service import EscalationGuard, EscalationService
from rulecord.moderation.mod_log import ModLogSender
from rulecord.util.discord_utils import DiscordModerationPlatform

GUILD = GuildID(1000)
USER = UserID(42)

TIERS = [
    EscalationTier(name="T-ban", threshold=50, action=EscalationAction.BAN),
    EscalationTier(
        name="T-timeout", threshold=10, action=EscalationAction.TIMEOUT, duration=datetime.timedelta(minutes=10)
    ),
    EscalationTier(name="T-kick", threshold=25, action=EscalationAction.KICK),
]


class Clock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def make_service(platform, guard=None, **kwargs) -> EscalationService:
    return EscalationService(platform, ModLogSender(platform), guard=guard, **kwargs)


def test_select_tier_ignores_stored_order():
    assert EscalationService.select_tier(TIERS, 30).name == "T-kick"
    assert EscalationService.select_tier(TIERS, 10).name == "T-timeout"
    assert EscalationService.select_tier(TIERS, 50).name == "T-ban"
    assert EscalationService.select_tier(TIERS, 9) is None
    assert EscalationService.select_tier([], 100) is None


@pytest.mark.asyncio
async def test_kick_selected_at_thirty_points(platform):
    result = await make_service(platform).check_and_escalate(GUILD, USER, 30, TIERS)

    assert result.triggered
    assert result.tier_name == "T-kick"
    assert result.action is EscalationAction.KICK
    assert len(platform.called("kick")) == 1
    assert platform.called("timeout") == []
    assert platform.called("ban") == []


@pytest.mark.asyncio
async def test_below_lowest_threshold_does_nothing(platform):
    result = await make_service(platform).check_and_escalate(GUILD, USER, 3, TIERS)
    assert not result.triggered
    assert result.tier_name is None
    assert platform.calls == []


@pytest.mark.asyncio
async def test_timeout_duration_is_clamped(platform):
    tiers = [EscalationTier(name="long", threshold=1, action=EscalationAction.TIMEOUT, duration=datetime.timedelta(days=60))]
    result = await make_service(platform).check_and_escalate(GUILD, USER, 1, tiers)

    assert result.duration == datetime.timedelta(days=28)
    _, args, _ = platform.called("timeout")[0]
    assert args[2] == datetime.timedelta(days=28)


@pytest.mark.asyncio
async def test_timeout_without_duration_uses_default(platform):
    tiers = [EscalationTier(name="t", threshold=1, action=EscalationAction.TIMEOUT)]
    service = make_service(platform, default_timeout=datetime.timedelta(minutes=5))
    result = await service.check_and_escalate(GUILD, USER, 1, tiers)
    assert result.duration == datetime.timedelta(minutes=5)


@pytest.mark.asyncio
async def test_ban_keeps_message_history(platform):
    tiers = [EscalationTier(name="b", threshold=1, action=EscalationAction.BAN)]
    await make_service(platform).check_and_escalate(GUILD, USER, 1, tiers)
    _, _, kwargs = platform.called("ban")[0]
    assert kwargs["delete_message_seconds"] == 0


@pytest.mark.asyncio
async def test_platform_failure_reports_not_triggered(platform):
    platform.failures["kick"] = PlatformError("rate limited", status=429)
    result = await make_service(platform).check_and_escalate(GUILD, USER, 30, TIERS)

    assert not result.triggered
    assert result.tier_name == "T-kick"
    assert "rate limited" in result.error


@pytest.mark.asyncio
async def test_success_is_logged_to_channel(platform):
    config = ModerationConfig(guild_id=GUILD, log_channel_id=ChannelID(77))
    await make_service(platform).check_and_escalate(GUILD, USER, 30, TIERS, config)

    sent = platform.called("send_channel_message")
    assert len(sent) == 1
    assert sent[0][2]["embed"].title == "⚡ Escalation Triggered"


@pytest.mark.asyncio
async def test_without_guard_concurrent_escalations_both_apply(platform):
    service = make_service(platform, guard=EscalationGuard(cooldown_seconds=0))
    first = await service.check_and_escalate(GUILD, USER, 30, TIERS)
    second = await service.check_and_escalate(GUILD, USER, 30, TIERS)

    assert first.triggered and second.triggered
    assert len(platform.called("kick")) == 2


@pytest.mark.asyncio
async def test_guard_suppresses_repeat_within_cooldown(platform):
    clock = Clock()
    service = make_service(platform, guard=EscalationGuard(cooldown_seconds=60, clock=clock))

    first = await service.check_and_escalate(GUILD, USER, 30, TIERS)
    second = await service.check_and_escalate(GUILD, USER, 30, TIERS)
    assert first.triggered
    assert not second.triggered and second.suppressed
    assert len(platform.called("kick")) == 1

    clock.now += 61
    third = await service.check_and_escalate(GUILD, USER, 30, TIERS)
    assert third.triggered
    assert len(platform.called("kick")) == 2


@pytest.mark.asyncio
async def test_guard_releases_after_failure(platform):
    service = make_service(platform, guard=EscalationGuard(cooldown_seconds=60, clock=Clock()))
    platform.failures["kick"] = PlatformError("boom")
    assert not (await service.check_and_escalate(GUILD, USER, 30, TIERS)).triggered

    del platform.failures["kick"]
    assert (await service.check_and_escalate(GUILD, USER, 30, TIERS)).triggered


def test_guard_is_per_member_and_tier():
    guard = EscalationGuard(cooldown_seconds=60, clock=Clock())
    assert guard.acquire(GUILD, USER, "a")
    assert not guard.acquire(GUILD, USER, "a")
    assert guard.acquire(GUILD, USER, "b")
    assert guard.acquire(GUILD, UserID(43), "a")


@pytest.mark.asyncio
async def test_transport_failure_on_discord_platform_is_reported():
    guild = MagicMock()
    guild.kick = AsyncMock(side_effect=aiohttp.ClientOSError(104, "Connection reset by peer"))
    bot = MagicMock()
    bot.get_guild.return_value = guild
    discord_platform = DiscordModerationPlatform(bot)
    tiers = [EscalationTier(name="kick", threshold=1, action=EscalationAction.KICK)]

    service = make_service(discord_platform, guard=EscalationGuard(cooldown_seconds=60))
    result = await service.check_and_escalate(GUILD, USER, 5, tiers)

    assert not result.triggered
    assert "Connection reset" in result.error
    guild.kick.assert_awaited_once()

    # The guard slot is released so the next infraction can retry
    guild.kick.side_effect = None
    retry = await service.check_and_escalate(GUILD, USER, 6, tiers)
    assert retry.triggered
