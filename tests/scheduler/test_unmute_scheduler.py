"""Tests for unmute_scheduler module."""

import asyncio

import pytest

from rulecord.datatypes.discord_datatypes import GuildID, RoleID, UserID
from rulecord.moderation.errors import PlatformError
from rulecord.repositories.role_mute_repo import RoleMuteRecord, RoleMuteRepo
from rulecord.scheduler.unmute_scheduler import UnmuteJob, UnmuteScheduler

GUILD = GuildID(1000)
USER = UserID(42)
ROLE = RoleID(555)


class TestUnmuteJob:
    """Tests for UnmuteJob dataclass."""

    def test_default_reason_and_key(self):
        job = UnmuteJob(guild_id=GUILD, user_id=USER, role_id=ROLE)
        assert job.reason == "Mute duration expired."
        assert job.key == ("1000", "42")


class TestUnmuteScheduler:
    """Tests for UnmuteScheduler class."""

    def test_initialization(self, platform):
        scheduler = UnmuteScheduler(platform)
        assert scheduler.heap == []
        assert scheduler.pending_keys == {}
        assert scheduler.cancelled_ids == set()
        assert scheduler.counter == 0
        assert scheduler.runner_task is None

    @pytest.mark.asyncio
    async def test_non_positive_duration_runs_immediately(self, platform):
        scheduler = UnmuteScheduler(platform)
        await scheduler.schedule(GUILD, USER, ROLE, 0)

        _, args, _ = platform.called("remove_role")[0]
        assert args[:3] == (GUILD, USER, ROLE)
        assert scheduler.runner_task is None

    @pytest.mark.asyncio
    async def test_job_runs_after_delay(self, platform):
        scheduler = UnmuteScheduler(platform)
        try:
            await scheduler.schedule(GUILD, USER, ROLE, 0.05)
            assert scheduler.is_scheduled(GUILD, USER)

            await asyncio.sleep(0.2)

            assert len(platform.called("remove_role")) == 1
            assert not scheduler.is_scheduled(GUILD, USER)
        finally:
            await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_reschedule_replaces_pending_job(self, platform):
        scheduler = UnmuteScheduler(platform)
        try:
            await scheduler.schedule(GUILD, USER, ROLE, 0.05)
            await scheduler.schedule(GUILD, USER, ROLE, 0.1)
            assert scheduler.counter == 2

            await asyncio.sleep(0.3)
            assert len(platform.called("remove_role")) == 1
        finally:
            await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_cancel(self, platform):
        scheduler = UnmuteScheduler(platform)
        try:
            await scheduler.schedule(GUILD, USER, ROLE, 0.05)
            assert await scheduler.cancel(GUILD, USER) is True
            assert await scheduler.cancel(GUILD, USER) is False

            await asyncio.sleep(0.15)
            assert platform.called("remove_role") == []
        finally:
            await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_execute_swallows_platform_errors(self, platform):
        platform.failures["remove_role"] = PlatformError("Unknown Member", status=404)
        scheduler = UnmuteScheduler(platform)

        ok = await scheduler.execute(UnmuteJob(guild_id=GUILD, user_id=USER, role_id=ROLE))
        assert ok is False

    @pytest.mark.asyncio
    async def test_shutdown_clears_state_and_is_repeatable(self, platform):
        scheduler = UnmuteScheduler(platform)
        await scheduler.schedule(GUILD, USER, ROLE, 60)

        await scheduler.shutdown()
        await scheduler.shutdown()

        assert scheduler.heap == []
        assert scheduler.pending_keys == {}
        assert scheduler.runner_task is None


async def stored_mutes(database):
    async with database.read() as conn:
        return await RoleMuteRepo.list_pending(conn)


class FixedClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestUnmuteSchedulerPersistence:
    """Role mutes stored in the database survive a restart."""

    @pytest.mark.asyncio
    async def test_schedule_stores_row_and_execute_removes_it(self, platform, database):
        scheduler = UnmuteScheduler(platform, database, clock=FixedClock(1000))
        try:
            await scheduler.schedule(GUILD, USER, ROLE, 60, reason="Muted for spam")

            [record] = await stored_mutes(database)
            assert (record.guild_id, record.user_id, record.role_id) == (GUILD, USER, ROLE)
            assert record.unmute_at == 1060
            assert record.reason == "Muted for spam"

            assert await scheduler.execute(UnmuteJob(guild_id=GUILD, user_id=USER, role_id=ROLE))
            assert await stored_mutes(database) == []
        finally:
            await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_reschedule_replaces_stored_row(self, platform, database):
        scheduler = UnmuteScheduler(platform, database, clock=FixedClock(1000))
        try:
            await scheduler.schedule(GUILD, USER, ROLE, 60)
            await scheduler.schedule(GUILD, USER, ROLE, 600)

            [record] = await stored_mutes(database)
            assert record.unmute_at == 1600
        finally:
            await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_cancel_deletes_stored_row(self, platform, database):
        scheduler = UnmuteScheduler(platform, database, clock=FixedClock(1000))
        try:
            await scheduler.schedule(GUILD, USER, ROLE, 60)
            assert await scheduler.cancel(GUILD, USER) is True
            assert await stored_mutes(database) == []
            assert await scheduler.cancel(GUILD, USER) is False
        finally:
            await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_restart_requeues_pending_mutes(self, platform, database):
        clock = FixedClock(1000)
        first = UnmuteScheduler(platform, database, clock=clock)
        await first.schedule(GUILD, USER, ROLE, 3600)
        await first.shutdown()
        assert len(await stored_mutes(database)) == 1

        clock.now = 2000
        second = UnmuteScheduler(platform, database, clock=clock)
        try:
            assert await second.restore() == 1
            assert second.is_scheduled(GUILD, USER)
            remaining = second.heap[0][0] - asyncio.get_running_loop().time()
            assert 2500 < remaining <= 2600
            assert platform.called("remove_role") == []
        finally:
            await second.shutdown()

    @pytest.mark.asyncio
    async def test_restore_lifts_overdue_mutes_immediately(self, platform, database):
        async with database.transaction() as conn:
            await RoleMuteRepo.upsert(
                conn, RoleMuteRecord(guild_id=GUILD, user_id=USER, role_id=ROLE, unmute_at=500, reason="expired")
            )

        scheduler = UnmuteScheduler(platform, database, clock=FixedClock(1000))
        assert await scheduler.restore() == 1

        _, args, _ = platform.called("remove_role")[0]
        assert args == (GUILD, USER, ROLE, "expired")
        assert await stored_mutes(database) == []
        assert scheduler.runner_task is None

    @pytest.mark.asyncio
    async def test_failed_removal_keeps_row_for_next_restore(self, platform, database):
        platform.failures["remove_role"] = PlatformError("service unavailable", status=503)
        async with database.transaction() as conn:
            await RoleMuteRepo.upsert(
                conn, RoleMuteRecord(guild_id=GUILD, user_id=USER, role_id=ROLE, unmute_at=500, reason="expired")
            )

        scheduler = UnmuteScheduler(platform, database, clock=FixedClock(1000))
        await scheduler.restore()

        assert len(await stored_mutes(database)) == 1

    @pytest.mark.asyncio
    async def test_restore_without_database_is_a_noop(self, platform):
        assert await UnmuteScheduler(platform).restore() == 0
