"""
Append-only record of infractions with read-time point decay.

A member's active points are the sum of points on rows that are still
active and, when the guild has decay enabled, newer than ``decay_days``.
Decay is evaluated on every read against the guild's current window, so
points fall off without a background job and come back if the window is
widened. The periodic sweep only refreshes the informational ``decayed_at``
marker; ``active`` is reserved for staff clears.
"""

from __future__ import annotations

import time
from typing import Callable

from rulecord.database.database import Database
from rulecord.datatypes.discord_datatypes import GuildID, UserID
from rulecord.datatypes.infraction_datatypes import Infraction, InfractionPage, InfractionSource, InfractionStats
from rulecord.datatypes.moderation_config import ModerationConfig
from rulecord.moderation.errors import ValidationError
from rulecord.repositories.infraction_repo import InfractionRepo
from rulecord.services.moderation_settings_service import ModerationSettingsService
from rulecord.util.logger import get_logger

logger = get_logger("infraction_ledger")

SECONDS_PER_DAY = 86400


class InfractionLedger:
    """
    Records infractions and answers point and history queries.

    Args:
        database: Initialized database coordinator.
        settings: Source of each guild's decay settings.
        clock: Returns the current unix time; injectable for tests.
    """

    def __init__(
        self,
        database: Database,
        settings: ModerationSettingsService,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._database = database
        self._settings = settings
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    def decay_cutoff(self, config: ModerationConfig) -> int | None:
        """Rows created at or before the returned timestamp no longer count."""
        if not config.decay_enabled or config.decay_days <= 0:
            return None
        return self._now() - config.decay_days * SECONDS_PER_DAY

    async def record(
        self,
        guild_id: GuildID,
        user_id: UserID,
        points: int,
        source: InfractionSource,
        reason: str,
        *,
        rule_name: str | None = None,
        moderator_id: UserID | None = None,
        matched_content: str | None = None,
    ) -> Infraction:
        """
        Append an infraction.

        Raises:
            ValidationError: If ``points`` is not positive; nothing is written.
        """
        if points <= 0:
            raise ValidationError("Infraction points must be positive", field="points")

        infraction = Infraction(
            guild_id=guild_id,
            user_id=user_id,
            points=points,
            source=source,
            reason=reason,
            rule_name=rule_name,
            moderator_id=moderator_id,
            matched_content=matched_content,
            created_at=self._now(),
        )
        async with self._database.db_perf_mon.timed("record_infraction"):
            async with self._database.transaction() as conn:
                infraction.id = await InfractionRepo.insert(conn, infraction)

        logger.info(
            "[LEDGER] Recorded %d point(s) for user %s in guild %s (%s: %s)",
            points, user_id, guild_id, source, rule_name or reason,
        )
        return infraction

    async def active_points(self, guild_id: GuildID, user_id: UserID) -> int:
        config = await self._settings.get_config(guild_id)
        cutoff = self.decay_cutoff(config)
        async with self._database.db_perf_mon.timed("active_points"):
            async with self._database.read() as conn:
                return await InfractionRepo.sum_active_points(conn, guild_id, user_id, created_after=cutoff)

    async def list_infractions(
        self,
        guild_id: GuildID,
        user_id: UserID,
        page: int = 1,
        page_size: int = 10,
    ) -> InfractionPage:
        """
        One page of a member's history, newest first. Inactive rows are
        included so moderators see cleared and decayed history too.
        """
        if page < 1:
            raise ValidationError("Page numbers start at 1", field="page")
        if page_size < 1:
            raise ValidationError("Page size must be positive", field="page_size")

        async with self._database.read() as conn:
            total = await InfractionRepo.count_for_member(conn, guild_id, user_id)
            items = await InfractionRepo.page_for_member(
                conn, guild_id, user_id, limit=page_size, offset=(page - 1) * page_size
            )
        return InfractionPage(items=items, total=total, page=page, page_size=page_size)

    async def clear(self, guild_id: GuildID, user_id: UserID) -> int:
        """Deactivate every active infraction of a member; returns how many changed."""
        async with self._database.transaction() as conn:
            cleared = await InfractionRepo.deactivate_member(conn, guild_id, user_id)
        logger.info("[LEDGER] Cleared %d infraction(s) for user %s in guild %s", cleared, user_id, guild_id)
        return cleared

    async def get_stats(self, guild_id: GuildID) -> InfractionStats:
        async with self._database.read() as conn:
            return await InfractionRepo.guild_stats(conn, guild_id)

    async def sweep_decayed(self, now: int | None = None) -> int:
        """Refresh decay markers; point sums are unaffected."""
        return await self._database.sweep_decayed_infractions(self._now() if now is None else now)
