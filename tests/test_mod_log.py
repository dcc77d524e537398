from unittest.mock import AsyncMock

import discord
import pytest

from rulecord.datatypes.discord_datatypes import ChannelID, GuildID
from rulecord.datatypes.moderation_config import ModerationConfig
from rulecord.moderation.errors import PlatformError
from rulecord.moderation.mod_log import ModLogSender

GUILD = GuildID(1000)


@pytest.fixture()
def embed() -> discord.Embed:
    return discord.Embed(title="Test")


@pytest.fixture()
def config() -> ModerationConfig:
    return ModerationConfig(guild_id=GUILD, log_channel_id=ChannelID(77))


@pytest.mark.asyncio
async def test_sink_delivery_skips_fallback(platform, embed, config):
    sink = AsyncMock()
    sink.send_mod_action_log.return_value = True

    assert await ModLogSender(platform, sink).send(GUILD, embed, config) is True
    sink.send_mod_action_log.assert_awaited_once_with(GUILD, embed)
    assert platform.called("send_channel_message") == []


@pytest.mark.asyncio
async def test_sink_returning_false_falls_back_to_channel(platform, embed, config):
    sink = AsyncMock()
    sink.send_mod_action_log.return_value = False

    assert await ModLogSender(platform, sink).send(GUILD, embed, config) is True
    _, args, kwargs = platform.called("send_channel_message")[0]
    assert args[0] == ChannelID(77)
    assert kwargs["embed"] is embed


@pytest.mark.asyncio
async def test_sink_error_falls_back_to_channel(platform, embed, config):
    sink = AsyncMock()
    sink.send_mod_action_log.side_effect = RuntimeError("down")

    assert await ModLogSender(platform, sink).send(GUILD, embed, config) is True
    assert len(platform.called("send_channel_message")) == 1


@pytest.mark.asyncio
async def test_no_channel_configured(platform, embed):
    assert await ModLogSender(platform).send(GUILD, embed, ModerationConfig(guild_id=GUILD)) is False
    assert platform.calls == []


@pytest.mark.asyncio
async def test_channel_failure_is_swallowed(platform, embed, config):
    platform.failures["send_channel_message"] = PlatformError("missing access")
    assert await ModLogSender(platform).send(GUILD, embed, config) is False
