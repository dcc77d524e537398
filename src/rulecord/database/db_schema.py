"""
Database schema initialization and version tracking.

Timestamps that take part in comparisons (``infractions.created_at``,
``role_mutes.unmute_at``) are INTEGER unix seconds. Bookkeeping columns use
``CURRENT_TIMESTAMP``.
"""

import aiosqlite

from rulecord.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 2

# Columns added after version 1, applied to older databases by _add_missing_columns.
_ADDED_COLUMNS = (
    ("automod_rules", "excluded_channel_ids", "TEXT NOT NULL DEFAULT '[]'"),
    ("automod_rules", "required_role_ids", "TEXT NOT NULL DEFAULT '[]'"),
    ("infractions", "decayed_at", "INTEGER"),
)


class SchemaManager:
    """Creates tables, indexes and triggers; every statement is idempotent."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        await SchemaManager._create_tables(db)
        await SchemaManager._add_missing_columns(db)
        await SchemaManager._create_indexes(db)
        await SchemaManager._create_triggers(db)
        await SchemaManager._update_schema_version(db)
        await db.commit()
        logger.info("[SCHEMA] Database schema initialized (version %d)", SCHEMA_VERSION)

    @staticmethod
    async def _create_tables(db: aiosqlite.Connection) -> None:
        """Create all required database tables."""
        await db.execute("""
            CREATE TABLE IF NOT EXISTS moderation_config (
                guild_id INTEGER PRIMARY KEY,
                automod_enabled INTEGER NOT NULL DEFAULT 1,
                decay_enabled INTEGER NOT NULL DEFAULT 0,
                decay_days INTEGER NOT NULL DEFAULT 30,
                notify_on_infraction INTEGER NOT NULL DEFAULT 1,
                notify_mode TEXT NOT NULL DEFAULT 'template',
                default_template TEXT,
                default_embed TEXT,
                log_channel_id INTEGER,
                mute_mode TEXT NOT NULL DEFAULT 'timeout',
                mute_role_id INTEGER,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS moderation_immune_roles (
                guild_id INTEGER NOT NULL,
                role_id INTEGER NOT NULL,
                PRIMARY KEY (guild_id, role_id),
                FOREIGN KEY (guild_id) REFERENCES moderation_config(guild_id) ON DELETE CASCADE
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS escalation_tiers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                guild_id INTEGER NOT NULL,
                name TEXT NOT NULL,
                threshold INTEGER NOT NULL,
                action TEXT NOT NULL,
                duration_seconds INTEGER,
                reason TEXT,
                notification TEXT,
                FOREIGN KEY (guild_id) REFERENCES moderation_config(guild_id) ON DELETE CASCADE
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS automod_rules (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                guild_id INTEGER NOT NULL,
                name TEXT NOT NULL,
                enabled INTEGER NOT NULL DEFAULT 1,
                priority INTEGER NOT NULL DEFAULT 0,
                targets TEXT NOT NULL,
                patterns TEXT NOT NULL,
                match_mode TEXT NOT NULL DEFAULT 'any',
                points INTEGER NOT NULL DEFAULT 0,
                actions TEXT NOT NULL,
                notification TEXT,
                channel_ids TEXT NOT NULL DEFAULT '[]',
                exempt_role_ids TEXT NOT NULL DEFAULT '[]',
                excluded_channel_ids TEXT NOT NULL DEFAULT '[]',
                required_role_ids TEXT NOT NULL DEFAULT '[]',
                preset_id TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS infractions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                guild_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                points INTEGER NOT NULL CHECK (points > 0),
                source TEXT NOT NULL,
                reason TEXT NOT NULL DEFAULT '',
                rule_name TEXT,
                moderator_id INTEGER,
                matched_content TEXT,
                created_at INTEGER NOT NULL,
                active INTEGER NOT NULL DEFAULT 1,
                decayed_at INTEGER
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS role_mutes (
                guild_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                role_id INTEGER NOT NULL,
                unmute_at INTEGER NOT NULL,
                reason TEXT NOT NULL DEFAULT '',
                PRIMARY KEY (guild_id, user_id)
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    @staticmethod
    async def _add_missing_columns(db: aiosqlite.Connection) -> None:
        """Bring tables created by an older schema version up to date."""
        for table, column, definition in _ADDED_COLUMNS:
            cursor = await db.execute(f"PRAGMA table_info({table})")
            existing = {row[1] for row in await cursor.fetchall()}
            if column not in existing:
                await db.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")
                logger.info("[SCHEMA] Added column %s.%s", table, column)

    @staticmethod
    async def _create_indexes(db: aiosqlite.Connection) -> None:
        await db.execute("CREATE INDEX IF NOT EXISTS idx_immune_roles_guild ON moderation_immune_roles(guild_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_escalation_tiers_guild ON escalation_tiers(guild_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_automod_rules_guild ON automod_rules(guild_id, enabled)")
        await db.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_automod_rules_preset "
            "ON automod_rules(guild_id, preset_id) WHERE preset_id IS NOT NULL"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_infractions_member "
            "ON infractions(guild_id, user_id, active, created_at DESC)"
        )
        await db.execute("CREATE INDEX IF NOT EXISTS idx_infractions_created ON infractions(created_at)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_role_mutes_due ON role_mutes(unmute_at)")

    @staticmethod
    async def _create_triggers(db: aiosqlite.Connection) -> None:
        """Create triggers for automatic timestamp updates."""
        await db.execute("""
            CREATE TRIGGER IF NOT EXISTS update_moderation_config_timestamp
            AFTER UPDATE ON moderation_config
            FOR EACH ROW WHEN NEW.updated_at = OLD.updated_at
            BEGIN
                UPDATE moderation_config SET updated_at = CURRENT_TIMESTAMP
                WHERE guild_id = NEW.guild_id;
            END
        """)

        await db.execute("""
            CREATE TRIGGER IF NOT EXISTS update_automod_rules_timestamp
            AFTER UPDATE ON automod_rules
            FOR EACH ROW WHEN NEW.updated_at = OLD.updated_at
            BEGIN
                UPDATE automod_rules SET updated_at = CURRENT_TIMESTAMP
                WHERE id = NEW.id;
            END
        """)

    @staticmethod
    async def _update_schema_version(db: aiosqlite.Connection) -> None:
        await db.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
