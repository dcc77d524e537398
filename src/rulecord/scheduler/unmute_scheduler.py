"""
Delayed removal of the mute role for role-mode mutes with a duration.

Jobs live in a min-heap ordered by due time; a single background task
sleeps on an ``asyncio.Condition`` until the next job is due or the heap
changes. Rescheduling a member replaces the pending job.

With a database attached every job is also written to ``role_mutes`` and
deleted once the role is lifted or the mute cancelled; ``restore()``
re-queues the rows left by an earlier run. Shutdown keeps the rows.
"""

import asyncio
import heapq
import time
from dataclasses import dataclass
from typing import Callable, Dict, Tuple

import aiosqlite

from rulecord.database.database import Database
from rulecord.datatypes.discord_datatypes import GuildID, RoleID, UserID
from rulecord.moderation.errors import ModerationError
from rulecord.moderation.platform import ModerationPlatform
from rulecord.repositories.role_mute_repo import RoleMuteRecord, RoleMuteRepo
from rulecord.util.logger import get_logger

logger = get_logger("unmute_scheduler")


@dataclass
class UnmuteJob:
    """
    Everything needed to lift one role mute.

    Attributes:
        guild_id: Guild the mute applies in.
        user_id: Muted member.
        role_id: Mute role to remove.
        reason: Audit log reason for the removal.
    """
    guild_id: GuildID
    user_id: UserID
    role_id: RoleID
    reason: str = "Mute duration expired."

    @property
    def key(self) -> Tuple[str, str]:
        return (str(self.guild_id), str(self.user_id))


class UnmuteScheduler:
    """
    Scheduler for delayed mute-role removal.

    Attributes:
        heap (list): Min-heap of (run_at, job_id, payload) tuples.
        pending_keys (Dict): Maps (guild_id, user_id) to the live job_id.
        cancelled_ids (set): Job IDs to skip when they reach the top of the heap.
        counter (int): Monotonically increasing job ID counter.
        runner_task (asyncio.Task | None): Background task processing the schedule.
        database (Database | None): Where pending mutes are persisted, if anywhere.
        clock (Callable): Wall clock in unix seconds, used for persisted due times.
    """

    def __init__(
        self,
        platform: ModerationPlatform,
        database: Database | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.platform = platform
        self.database = database
        self.clock = clock
        self.heap: list[tuple[float, int, UnmuteJob]] = []
        self.pending_keys: Dict[Tuple[str, str], int] = {}
        self.cancelled_ids: set[int] = set()
        self.counter: int = 0
        self.runner_task: asyncio.Task[None] | None = None
        self.condition: asyncio.Condition = asyncio.Condition()

    def ensure_runner(self) -> None:
        if self.runner_task is None or self.runner_task.done():
            loop = asyncio.get_running_loop()
            self.runner_task = loop.create_task(self.run(), name="rulecord-unmute-scheduler")

    async def schedule(
        self,
        guild_id: GuildID,
        user_id: UserID,
        role_id: RoleID,
        duration_seconds: float,
        *,
        reason: str = "Mute duration expired.",
    ) -> None:
        """
        Schedule removal of ``role_id`` after ``duration_seconds``.

        Non-positive durations execute immediately. An existing job for the
        same member is cancelled and replaced.
        """
        payload = UnmuteJob(guild_id=guild_id, user_id=user_id, role_id=role_id, reason=reason)

        if duration_seconds <= 0:
            await self.execute(payload)
            return

        if self.database is not None:
            record = RoleMuteRecord(
                guild_id=guild_id,
                user_id=user_id,
                role_id=role_id,
                unmute_at=int(self.clock() + duration_seconds),
                reason=reason,
            )
            async with self.database.transaction() as conn:
                await RoleMuteRepo.upsert(conn, record)

        await self.enqueue(payload, duration_seconds)

    async def enqueue(self, payload: UnmuteJob, delay_seconds: float) -> None:
        """Put a job on the heap without touching the database."""
        loop = asyncio.get_running_loop()
        run_at = loop.time() + delay_seconds

        async with self.condition:
            self.ensure_runner()
            if payload.key in self.pending_keys:
                self.cancelled_ids.add(self.pending_keys[payload.key])

            self.counter += 1
            job_id = self.counter
            heapq.heappush(self.heap, (run_at, job_id, payload))
            self.pending_keys[payload.key] = job_id
            self.condition.notify_all()

    async def cancel(self, guild_id: GuildID, user_id: UserID) -> bool:
        """Cancel a pending removal; returns False when none was scheduled."""
        async with self.condition:
            job_id = self.pending_keys.pop((str(guild_id), str(user_id)), None)
            if job_id is not None:
                self.cancelled_ids.add(job_id)
                self.condition.notify_all()

        deleted = False
        if self.database is not None:
            async with self.database.transaction() as conn:
                deleted = await RoleMuteRepo.delete(conn, guild_id, user_id)
        return job_id is not None or deleted

    async def restore(self) -> int:
        """Re-queue mutes persisted by an earlier run; overdue ones are lifted now."""
        if self.database is None:
            return 0

        async with self.database.read() as conn:
            records = await RoleMuteRepo.list_pending(conn)

        for record in records:
            payload = UnmuteJob(
                guild_id=record.guild_id,
                user_id=record.user_id,
                role_id=record.role_id,
                reason=record.reason,
            )
            remaining = record.unmute_at - self.clock()
            if remaining <= 0:
                await self.execute(payload)
            else:
                await self.enqueue(payload, remaining)

        logger.info("[UNMUTE] Restored %d pending role mutes", len(records))
        return len(records)

    def is_scheduled(self, guild_id: GuildID, user_id: UserID) -> bool:
        return (str(guild_id), str(user_id)) in self.pending_keys

    async def shutdown(self) -> None:
        """Stop the runner and drop every in-memory job. Safe to call twice."""
        async with self.condition:
            if self.runner_task:
                self.runner_task.cancel()
            self.heap.clear()
            self.pending_keys.clear()
            self.cancelled_ids.clear()
            self.condition.notify_all()

        if self.runner_task:
            try:
                await self.runner_task
            except asyncio.CancelledError:
                pass
            finally:
                self.runner_task = None

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            async with self.condition:
                while self.heap and self.heap[0][1] in self.cancelled_ids:
                    _, job_id, _ = heapq.heappop(self.heap)
                    self.cancelled_ids.discard(job_id)

                if not self.heap:
                    await self.condition.wait()
                    continue

                run_at = self.heap[0][0]
                delay = run_at - loop.time()

                if delay > 0:
                    try:
                        await asyncio.wait_for(self.condition.wait(), timeout=delay)
                    except asyncio.TimeoutError:
                        pass
                    continue

                _, job_id, payload = heapq.heappop(self.heap)
                if self.pending_keys.get(payload.key) == job_id:
                    del self.pending_keys[payload.key]

            await self.execute(payload)

    async def execute(self, payload: UnmuteJob) -> bool:
        """
        Remove the mute role, then its stored row. Errors are logged, never raised.

        A failed removal keeps the row so the next ``restore()`` retries it.
        """
        try:
            await self.platform.remove_role(payload.guild_id, payload.user_id, payload.role_id, payload.reason)
        except ModerationError as exc:
            logger.error("[UNMUTE] Failed to remove mute role from user %s in guild %s: %s",
                         payload.user_id, payload.guild_id, exc)
            return False

        logger.info("[UNMUTE] Removed mute role from user %s in guild %s", payload.user_id, payload.guild_id)

        if self.database is not None:
            try:
                async with self.database.transaction() as conn:
                    await RoleMuteRepo.delete(conn, payload.guild_id, payload.user_id)
            except aiosqlite.Error as exc:
                logger.error("[UNMUTE] Failed to delete stored mute for user %s in guild %s: %s",
                             payload.user_id, payload.guild_id, exc)
        return True
