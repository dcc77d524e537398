"""
Central coordinator for the SQLite database.

The Database owns the connection manager and delegates to specialised
modules:
- db_schema: table/index creation
- db_maintenance: vacuum, analyze, decay sweep
- db_perf_mon: query timing and statistics

Repositories (``rulecord.repositories``) hold the SQL for each table and are
called with the connection handed out by ``read()`` / ``transaction()``.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Dict

import aiosqlite

from rulecord.database.db_connection import ConnectionManager
from rulecord.database.db_maintenance import MaintenanceOperations
from rulecord.database.db_perf_mon import DatabasePerformanceMonitor
from rulecord.database.db_schema import SchemaManager
from rulecord.util.logger import get_logger

logger = get_logger("database")

DB_PATH = Path("./data/rulecord.db").resolve()


class Database:
    """
    Database lifecycle and access.

    Lifecycle:
        1. ``await initialize()`` at startup (opens the connection, creates schema)
        2. ``read()`` / ``transaction()`` for repository calls
        3. ``await shutdown()`` at program end
    """

    def __init__(self, db_path: Path = DB_PATH):
        self.db_path = db_path
        self._initialized = False

        self.connection = ConnectionManager()
        self.db_perf_mon = DatabasePerformanceMonitor()
        self._maintenance = MaintenanceOperations(self.db_perf_mon)

    async def initialize(self) -> bool:
        """
        Open the connection and create the schema. Safe to call twice.

        Returns:
            True if initialization succeeded, False otherwise
        """
        if self._initialized:
            logger.debug("[DATABASE] Already initialized, skipping")
            return True

        try:
            await self.connection.open(self.db_path)
            await SchemaManager.initialize_schema(self.connection.connection)
        except (aiosqlite.Error, OSError) as e:
            logger.error("[DATABASE] Database initialization failed: %s", e)
            await self.connection.close()
            return False

        self._initialized = True
        logger.info("[DATABASE] Database initialized at %s", self.db_path)
        return True

    async def shutdown(self) -> None:
        if not self._initialized:
            return

        await self.connection.close()
        self._initialized = False
        logger.info("[DATABASE] Database shutdown complete")

    @property
    def initialized(self) -> bool:
        return self._initialized

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def read(self) -> AsyncIterator[aiosqlite.Connection]:
        async with self.connection.read() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        async with self.connection.transaction() as conn:
            yield conn

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def vacuum(self) -> bool:
        async with self.read() as db:
            return await self._maintenance.vacuum(db)

    async def analyze(self) -> bool:
        async with self.read() as db:
            return await self._maintenance.analyze(db)

    async def sweep_decayed_infractions(self, now: int | None = None) -> int:
        """Mark infractions past their guild's decay window; returns how many were newly marked."""
        now = int(time.time()) if now is None else now
        async with self.transaction() as db:
            return await self._maintenance.sweep_decayed_infractions(db, now)

    def get_db_performance_stats(self) -> Dict[str, Dict[str, float]]:
        return self.db_perf_mon.get_statistics()
