"""
Database package for Rulecord.

Provides the SQLite lifecycle (``Database``), a single aiosqlite connection
with serialized writes, schema creation, a TTL query cache, query timing and
maintenance (VACUUM, ANALYZE, infraction decay sweep).

Public API:
    Database: lifecycle and connection access
    DatabaseQueryCache: per-guild TTL cache
"""

from rulecord.database.database import Database
from rulecord.database.db_cache import DatabaseQueryCache

__all__ = ["Database", "DatabaseQueryCache"]
