"""
Pytest configuration and fixtures for Rulecord tests.
"""

import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from rulecord.database.database import Database  # noqa: E402
from rulecord.datatypes.discord_datatypes import GuildID, MemberSnapshot, RoleID, UserID  # noqa: E402

GUILD_ID = GuildID(1000)
BOT_ID = UserID(1)


class FakePlatform:
    """
    In-memory stand-in for the py-cord adapter.

    Every sanction and message call is appended to ``calls`` as
    ``(name, args, kwargs)``; lookups are not recorded. Set
    ``failures[name]`` to an exception to make that call raise.
    """

    def __init__(self) -> None:
        self.calls = []
        self.failures = {}
        self.members = {}
        self.bot_members = {}
        self.guild_name = "Test Server"

    def add_member(self, member: MemberSnapshot) -> MemberSnapshot:
        self.members[(str(member.guild_id), str(member.user_id))] = member
        return member

    def called(self, name: str) -> list:
        return [call for call in self.calls if call[0] == name]

    def _record(self, name, *args, **kwargs) -> None:
        self.calls.append((name, args, kwargs))
        exc = self.failures.get(name)
        if exc is not None:
            raise exc

    async def get_member(self, guild_id, user_id):
        return self.members.get((str(guild_id), str(user_id)))

    async def get_bot_member(self, guild_id):
        return self.bot_members.get(str(guild_id))

    async def get_guild_name(self, guild_id):
        return self.guild_name

    async def timeout(self, guild_id, user_id, duration, reason):
        self._record("timeout", guild_id, user_id, duration, reason)

    async def kick(self, guild_id, user_id, reason):
        self._record("kick", guild_id, user_id, reason)

    async def ban(self, guild_id, user_id, reason, delete_message_seconds=0):
        self._record("ban", guild_id, user_id, reason, delete_message_seconds=delete_message_seconds)

    async def unban(self, guild_id, user_id, reason):
        self._record("unban", guild_id, user_id, reason)

    async def add_role(self, guild_id, user_id, role_id, reason):
        self._record("add_role", guild_id, user_id, role_id, reason)

    async def remove_role(self, guild_id, user_id, role_id, reason):
        self._record("remove_role", guild_id, user_id, role_id, reason)

    async def send_direct_message(self, user_id, content=None, embed=None):
        self._record("send_direct_message", user_id, content=content, embed=embed)

    async def send_channel_message(self, channel_id, content=None, embed=None):
        self._record("send_channel_message", channel_id, content=content, embed=embed)

    async def delete_message(self, channel_id, message_id):
        self._record("delete_message", channel_id, message_id)

    async def remove_reaction(self, channel_id, message_id, emoji, user_id):
        self._record("remove_reaction", channel_id, message_id, emoji, user_id)


def build_member(user_id, guild_id=GUILD_ID, position=1, roles=(), **kwargs) -> MemberSnapshot:
    return MemberSnapshot(
        user_id=UserID(user_id),
        guild_id=GuildID(guild_id),
        username=kwargs.pop("username", f"user{user_id}"),
        role_ids=frozenset(RoleID(r) for r in roles),
        top_role_position=position,
        **kwargs,
    )


@pytest.fixture
def make_member():
    """Factory for member snapshots: ``make_member(user_id, position=1, roles=(), ...)``."""
    return build_member


@pytest.fixture
def platform() -> FakePlatform:
    """Fake platform whose bot sits at role position 10 in ``GUILD_ID``."""
    fake = FakePlatform()
    fake.bot_members[str(GUILD_ID)] = build_member(BOT_ID, position=10, is_bot=True, username="rulecord")
    return fake


@pytest_asyncio.fixture
async def database(tmp_path):
    """Initialized database in a temporary directory."""
    db = Database(tmp_path / "test.db")
    assert await db.initialize()
    yield db
    await db.shutdown()
