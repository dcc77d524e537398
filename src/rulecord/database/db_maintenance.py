"""
Database maintenance operations: VACUUM, ANALYZE and the infraction decay sweep.
"""

import time

import aiosqlite

from rulecord.database.db_perf_mon import DatabasePerformanceMonitor
from rulecord.repositories.infraction_repo import InfractionRepo
from rulecord.util.logger import get_logger

logger = get_logger("database_maintenance")


class MaintenanceOperations:
    """Handles database maintenance and optimization operations."""

    def __init__(self, performance: DatabasePerformanceMonitor):
        self._performance = performance

    async def vacuum(self, db: aiosqlite.Connection) -> bool:
        """Reclaim space. Returns False (and logs) on failure."""
        try:
            logger.info("[MAINTENANCE] Starting VACUUM operation")
            start_time = time.perf_counter()
            await db.execute("VACUUM")
            duration = time.perf_counter() - start_time
            logger.info("[MAINTENANCE] VACUUM completed in %.2f seconds", duration)
            self._performance.track("VACUUM", duration)
            return True
        except aiosqlite.Error as e:
            logger.error("[MAINTENANCE] VACUUM failed: %s", e)
            return False

    async def analyze(self, db: aiosqlite.Connection) -> bool:
        """Refresh query planner statistics. Returns False (and logs) on failure."""
        try:
            logger.info("[MAINTENANCE] Starting ANALYZE operation")
            start_time = time.perf_counter()
            await db.execute("ANALYZE")
            duration = time.perf_counter() - start_time
            logger.info("[MAINTENANCE] ANALYZE completed in %.2f seconds", duration)
            self._performance.track("ANALYZE", duration)
            return True
        except aiosqlite.Error as e:
            logger.error("[MAINTENANCE] ANALYZE failed: %s", e)
            return False

    async def sweep_decayed_infractions(self, db: aiosqlite.Connection, now: int) -> int:
        """
        Refresh the ``decayed_at`` markers against each guild's current window.

        Rows that fell out of the window are stamped; rows back inside a
        widened window (or whose guild turned decay off) are unstamped.
        Point sums never read the marker. Runs inside the caller's write
        transaction.

        Returns:
            Number of rows newly marked as decayed.
        """
        start_time = time.perf_counter()
        restored = await InfractionRepo.unmark_decayed(db, now)
        swept = await InfractionRepo.mark_decayed(db, now)
        self._performance.track("sweep_decayed_infractions", time.perf_counter() - start_time)
        if swept or restored:
            logger.info("[MAINTENANCE] Marked %d infractions decayed, restored %d", swept, restored)
        return swept
