"""
Persistent storage for pending role-mute removals.

``unmute_at`` is INTEGER unix seconds. One row per (guild, member); a newer
mute replaces the older row.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

import aiosqlite

from rulecord.datatypes.discord_datatypes import GuildID, RoleID, UserID


@dataclass
class RoleMuteRecord:
    """A single row from the ``role_mutes`` table."""
    guild_id: GuildID
    user_id: UserID
    role_id: RoleID
    unmute_at: int   # unix seconds (UTC)
    reason: str


class RoleMuteRepo:
    """Low-level CRUD for the ``role_mutes`` table."""

    @staticmethod
    async def upsert(conn: aiosqlite.Connection, record: RoleMuteRecord) -> None:
        await conn.execute(
            """
            INSERT INTO role_mutes (guild_id, user_id, role_id, unmute_at, reason)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(guild_id, user_id) DO UPDATE SET
                role_id   = excluded.role_id,
                unmute_at = excluded.unmute_at,
                reason    = excluded.reason
            """,
            (
                record.guild_id.to_int(),
                record.user_id.to_int(),
                record.role_id.to_int(),
                record.unmute_at,
                record.reason,
            ),
        )

    @staticmethod
    async def delete(conn: aiosqlite.Connection, guild_id: GuildID, user_id: UserID) -> bool:
        """Remove the row once the role was lifted or the mute cancelled."""
        cursor = await conn.execute(
            "DELETE FROM role_mutes WHERE guild_id = ? AND user_id = ?",
            (guild_id.to_int(), user_id.to_int()),
        )
        return cursor.rowcount > 0

    @staticmethod
    async def list_pending(conn: aiosqlite.Connection) -> List[RoleMuteRecord]:
        """Every stored mute, soonest first."""
        cursor = await conn.execute(
            "SELECT guild_id, user_id, role_id, unmute_at, reason FROM role_mutes ORDER BY unmute_at"
        )
        rows = await cursor.fetchall()
        return [
            RoleMuteRecord(
                guild_id=GuildID(row[0]),
                user_id=UserID(row[1]),
                role_id=RoleID(row[2]),
                unmute_at=row[3],
                reason=row[4],
            )
            for row in rows
        ]
