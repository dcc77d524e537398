"""
Persistent storage for the infraction ledger.

``created_at`` is INTEGER unix seconds; decay filtering is a plain integer
comparison against a cutoff computed by the caller.
"""

from __future__ import annotations

from typing import List

import aiosqlite

from rulecord.datatypes.discord_datatypes import GuildID, UserID
from rulecord.datatypes.infraction_datatypes import Infraction, InfractionSource, InfractionStats

_COLUMNS = (
    "id, guild_id, user_id, points, source, reason, rule_name, "
    "moderator_id, matched_content, created_at, active, decayed_at"
)


def _row_to_infraction(row) -> Infraction:
    return Infraction(
        id=row["id"],
        guild_id=GuildID(row["guild_id"]),
        user_id=UserID(row["user_id"]),
        points=row["points"],
        source=InfractionSource(row["source"]),
        reason=row["reason"],
        rule_name=row["rule_name"],
        moderator_id=UserID(row["moderator_id"]) if row["moderator_id"] is not None else None,
        matched_content=row["matched_content"],
        created_at=row["created_at"],
        active=bool(row["active"]),
        decayed_at=row["decayed_at"],
    )


class InfractionRepo:
    """Low-level CRUD for the ``infractions`` table."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def insert(conn: aiosqlite.Connection, infraction: Infraction) -> int:
        """Insert a row and return its id."""
        cursor = await conn.execute(
            """
            INSERT INTO infractions (
                guild_id, user_id, points, source, reason, rule_name,
                moderator_id, matched_content, created_at, active
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                infraction.guild_id.to_int(),
                infraction.user_id.to_int(),
                infraction.points,
                infraction.source.value,
                infraction.reason,
                infraction.rule_name,
                infraction.moderator_id.to_int() if infraction.moderator_id else None,
                infraction.matched_content,
                infraction.created_at,
                int(infraction.active),
            ),
        )
        return cursor.lastrowid

    @staticmethod
    async def deactivate_member(conn: aiosqlite.Connection, guild_id: GuildID, user_id: UserID) -> int:
        """Flip every active row of a member to inactive; returns the row count."""
        cursor = await conn.execute(
            "UPDATE infractions SET active = 0 WHERE guild_id = ? AND user_id = ? AND active = 1",
            (guild_id.to_int(), user_id.to_int()),
        )
        return cursor.rowcount

    @staticmethod
    async def mark_decayed(conn: aiosqlite.Connection, now: int) -> int:
        """
        Stamp ``decayed_at`` on active rows older than their guild's decay window.

        ``active`` is left alone: it only records staff clears, and point
        sums apply the current window at read time.
        """
        cursor = await conn.execute(
            """
            UPDATE infractions SET decayed_at = ?
            WHERE active = 1 AND decayed_at IS NULL AND EXISTS (
                SELECT 1 FROM moderation_config c
                WHERE c.guild_id = infractions.guild_id
                  AND c.decay_enabled = 1
                  AND infractions.created_at <= ? - c.decay_days * 86400
            )
            """,
            (now, now),
        )
        return cursor.rowcount

    @staticmethod
    async def unmark_decayed(conn: aiosqlite.Connection, now: int) -> int:
        """Clear ``decayed_at`` on rows back inside a widened window or whose guild turned decay off."""
        cursor = await conn.execute(
            """
            UPDATE infractions SET decayed_at = NULL
            WHERE decayed_at IS NOT NULL AND NOT EXISTS (
                SELECT 1 FROM moderation_config c
                WHERE c.guild_id = infractions.guild_id
                  AND c.decay_enabled = 1
                  AND infractions.created_at <= ? - c.decay_days * 86400
            )
            """,
            (now,),
        )
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def sum_active_points(
        conn: aiosqlite.Connection,
        guild_id: GuildID,
        user_id: UserID,
        created_after: int | None = None,
    ) -> int:
        """Sum of points on active rows, optionally only rows newer than ``created_after``."""
        query = "SELECT COALESCE(SUM(points), 0) FROM infractions WHERE guild_id = ? AND user_id = ? AND active = 1"
        params: list = [guild_id.to_int(), user_id.to_int()]
        if created_after is not None:
            query += " AND created_at > ?"
            params.append(created_after)

        cursor = await conn.execute(query, params)
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    @staticmethod
    async def count_for_member(conn: aiosqlite.Connection, guild_id: GuildID, user_id: UserID) -> int:
        cursor = await conn.execute(
            "SELECT COUNT(*) FROM infractions WHERE guild_id = ? AND user_id = ?",
            (guild_id.to_int(), user_id.to_int()),
        )
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    @staticmethod
    async def page_for_member(
        conn: aiosqlite.Connection,
        guild_id: GuildID,
        user_id: UserID,
        limit: int,
        offset: int,
    ) -> List[Infraction]:
        """Newest first; rows with the same second are ordered by id."""
        cursor = await conn.execute(
            f"SELECT {_COLUMNS} FROM infractions WHERE guild_id = ? AND user_id = ? "
            "ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
            (guild_id.to_int(), user_id.to_int(), limit, offset),
        )
        rows = await cursor.fetchall()
        return [_row_to_infraction(row) for row in rows]

    @staticmethod
    async def guild_stats(conn: aiosqlite.Connection, guild_id: GuildID) -> InfractionStats:
        cursor = await conn.execute(
            """
            SELECT
                COUNT(*),
                COALESCE(SUM(CASE WHEN active = 1 AND decayed_at IS NULL THEN 1 ELSE 0 END), 0),
                COALESCE(SUM(CASE WHEN active = 1 AND decayed_at IS NULL THEN points ELSE 0 END), 0),
                COALESCE(SUM(CASE WHEN active = 1 AND decayed_at IS NOT NULL THEN 1 ELSE 0 END), 0),
                COUNT(DISTINCT user_id),
                COALESCE(SUM(CASE WHEN source = 'automod' THEN 1 ELSE 0 END), 0),
                COALESCE(SUM(CASE WHEN source = 'manual' THEN 1 ELSE 0 END), 0)
            FROM infractions WHERE guild_id = ?
            """,
            (guild_id.to_int(),),
        )
        row = await cursor.fetchone()
        return InfractionStats(
            total_infractions=row[0],
            active_infractions=row[1],
            total_points=row[2],
            decayed_infractions=row[3],
            distinct_users=row[4],
            automod_infractions=row[5],
            manual_infractions=row[6],
        )
