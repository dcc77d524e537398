"""
Persistent storage for automod rules.

Targets keep their declared order (it is the evaluation order). Patterns,
channel and role scopes and DM overrides are JSON columns.
"""

from __future__ import annotations

from typing import List

import aiosqlite

from rulecord.datatypes.automod_datatypes import AutomodAction, AutomodRule, AutomodTarget, MatchMode
from rulecord.datatypes.discord_datatypes import ChannelID, GuildID, RoleID
from rulecord.repositories import json_codec

_COLUMNS = (
    "id, guild_id, name, enabled, priority, targets, patterns, match_mode, points, "
    "actions, notification, channel_ids, exempt_role_ids, excluded_channel_ids, required_role_ids, preset_id"
)


def _row_to_rule(row) -> AutomodRule:
    return AutomodRule(
        id=row["id"],
        guild_id=GuildID(row["guild_id"]),
        name=row["name"],
        enabled=bool(row["enabled"]),
        priority=row["priority"],
        targets=tuple(json_codec.load_enum_values(row["targets"], AutomodTarget)),
        patterns=json_codec.load_patterns(row["patterns"]),
        match_mode=MatchMode(row["match_mode"]),
        points=row["points"],
        actions=frozenset(json_codec.load_enum_values(row["actions"], AutomodAction)),
        notification=json_codec.load_notification(row["notification"]),
        channel_ids=json_codec.load_ids(row["channel_ids"], ChannelID),
        exempt_role_ids=json_codec.load_ids(row["exempt_role_ids"], RoleID),
        excluded_channel_ids=json_codec.load_ids(row["excluded_channel_ids"], ChannelID),
        required_role_ids=json_codec.load_ids(row["required_role_ids"], RoleID),
        preset_id=row["preset_id"],
    )


def _rule_params(rule: AutomodRule) -> tuple:
    return (
        rule.name,
        int(rule.enabled),
        rule.priority,
        json_codec.dump_enum_values(rule.targets),
        json_codec.dump_patterns(rule.patterns),
        rule.match_mode.value,
        rule.points,
        json_codec.dump_enum_values(sorted(rule.actions, key=lambda a: a.value)),
        json_codec.dump_notification(rule.notification),
        json_codec.dump_ids(rule.channel_ids),
        json_codec.dump_ids(rule.exempt_role_ids),
        json_codec.dump_ids(rule.excluded_channel_ids),
        json_codec.dump_ids(rule.required_role_ids),
        rule.preset_id,
    )


class AutomodRuleRepo:
    """Low-level CRUD for the ``automod_rules`` table."""

    @staticmethod
    async def insert(conn: aiosqlite.Connection, rule: AutomodRule) -> int:
        cursor = await conn.execute(
            """
            INSERT INTO automod_rules (
                name, enabled, priority, targets, patterns, match_mode, points,
                actions, notification, channel_ids, exempt_role_ids,
                excluded_channel_ids, required_role_ids, preset_id, guild_id
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            _rule_params(rule) + (rule.guild_id.to_int(),),
        )
        return cursor.lastrowid

    @staticmethod
    async def update(conn: aiosqlite.Connection, rule: AutomodRule) -> bool:
        cursor = await conn.execute(
            """
            UPDATE automod_rules SET
                name = ?, enabled = ?, priority = ?, targets = ?, patterns = ?,
                match_mode = ?, points = ?, actions = ?, notification = ?,
                channel_ids = ?, exempt_role_ids = ?, excluded_channel_ids = ?,
                required_role_ids = ?, preset_id = ?
            WHERE guild_id = ? AND id = ?
            """,
            _rule_params(rule) + (rule.guild_id.to_int(), rule.id),
        )
        return cursor.rowcount > 0

    @staticmethod
    async def set_enabled(conn: aiosqlite.Connection, guild_id: GuildID, rule_id: int, enabled: bool) -> bool:
        cursor = await conn.execute(
            "UPDATE automod_rules SET enabled = ? WHERE guild_id = ? AND id = ?",
            (int(enabled), guild_id.to_int(), rule_id),
        )
        return cursor.rowcount > 0

    @staticmethod
    async def delete(conn: aiosqlite.Connection, guild_id: GuildID, rule_id: int) -> bool:
        cursor = await conn.execute(
            "DELETE FROM automod_rules WHERE guild_id = ? AND id = ?",
            (guild_id.to_int(), rule_id),
        )
        return cursor.rowcount > 0

    @staticmethod
    async def delete_preset(conn: aiosqlite.Connection, guild_id: GuildID, preset_id: str) -> bool:
        cursor = await conn.execute(
            "DELETE FROM automod_rules WHERE guild_id = ? AND preset_id = ?",
            (guild_id.to_int(), preset_id),
        )
        return cursor.rowcount > 0

    @staticmethod
    async def get(conn: aiosqlite.Connection, guild_id: GuildID, rule_id: int) -> AutomodRule | None:
        cursor = await conn.execute(
            f"SELECT {_COLUMNS} FROM automod_rules WHERE guild_id = ? AND id = ?",
            (guild_id.to_int(), rule_id),
        )
        row = await cursor.fetchone()
        return _row_to_rule(row) if row else None

    @staticmethod
    async def list_for_guild(
        conn: aiosqlite.Connection,
        guild_id: GuildID,
        enabled_only: bool = False,
    ) -> List[AutomodRule]:
        """Rules in creation order; the rule engine applies priority ordering."""
        query = f"SELECT {_COLUMNS} FROM automod_rules WHERE guild_id = ?"
        if enabled_only:
            query += " AND enabled = 1"
        query += " ORDER BY id"
        cursor = await conn.execute(query, (guild_id.to_int(),))
        rows = await cursor.fetchall()
        return [_row_to_rule(row) for row in rows]
