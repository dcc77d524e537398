"""
Persistent storage for per-guild moderation config, immune roles and
escalation tiers.

A config is written as a whole: the row is upserted and the immune-role and
tier child rows are replaced inside the caller's transaction.
"""

from __future__ import annotations

import datetime
from typing import List

import aiosqlite

from rulecord.datatypes.automod_datatypes import NotificationMode
from rulecord.datatypes.discord_datatypes import ChannelID, GuildID, RoleID
from rulecord.datatypes.moderation_config import EscalationAction, EscalationTier, ModerationConfig, MuteMode
from rulecord.repositories import json_codec


class ModerationConfigRepo:
    """Low-level CRUD for ``moderation_config`` and its child tables."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def upsert(conn: aiosqlite.Connection, config: ModerationConfig) -> None:
        guild_id = config.guild_id.to_int()
        await conn.execute(
            """
            INSERT INTO moderation_config (
                guild_id, automod_enabled, decay_enabled, decay_days,
                notify_on_infraction, notify_mode, default_template, default_embed,
                log_channel_id, mute_mode, mute_role_id
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(guild_id) DO UPDATE SET
                automod_enabled      = excluded.automod_enabled,
                decay_enabled        = excluded.decay_enabled,
                decay_days           = excluded.decay_days,
                notify_on_infraction = excluded.notify_on_infraction,
                notify_mode          = excluded.notify_mode,
                default_template     = excluded.default_template,
                default_embed        = excluded.default_embed,
                log_channel_id       = excluded.log_channel_id,
                mute_mode            = excluded.mute_mode,
                mute_role_id         = excluded.mute_role_id
            """,
            (
                guild_id,
                int(config.automod_enabled),
                int(config.decay_enabled),
                config.decay_days,
                int(config.notify_on_infraction),
                config.notify_mode.value,
                config.default_template,
                json_codec.dump_embed(config.default_embed),
                config.log_channel_id.to_int() if config.log_channel_id else None,
                config.mute_mode.value,
                config.mute_role_id.to_int() if config.mute_role_id else None,
            ),
        )

        await conn.execute("DELETE FROM moderation_immune_roles WHERE guild_id = ?", (guild_id,))
        await conn.executemany(
            "INSERT INTO moderation_immune_roles (guild_id, role_id) VALUES (?, ?)",
            [(guild_id, role_id.to_int()) for role_id in config.immune_role_ids],
        )

        await conn.execute("DELETE FROM escalation_tiers WHERE guild_id = ?", (guild_id,))
        await conn.executemany(
            """
            INSERT INTO escalation_tiers (guild_id, name, threshold, action, duration_seconds, reason, notification)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    guild_id,
                    tier.name,
                    tier.threshold,
                    tier.action.value,
                    int(tier.duration.total_seconds()) if tier.duration else None,
                    tier.reason,
                    json_codec.dump_notification(tier.notification),
                )
                for tier in config.escalation_tiers
            ],
        )

    @staticmethod
    async def delete(conn: aiosqlite.Connection, guild_id: GuildID) -> bool:
        cursor = await conn.execute("DELETE FROM moderation_config WHERE guild_id = ?", (guild_id.to_int(),))
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def get(conn: aiosqlite.Connection, guild_id: GuildID) -> ModerationConfig | None:
        cursor = await conn.execute(
            """
            SELECT guild_id, automod_enabled, decay_enabled, decay_days, notify_on_infraction,
                   notify_mode, default_template, default_embed, log_channel_id, mute_mode, mute_role_id
            FROM moderation_config WHERE guild_id = ?
            """,
            (guild_id.to_int(),),
        )
        row = await cursor.fetchone()
        if row is None:
            return None

        return ModerationConfig(
            guild_id=GuildID(row["guild_id"]),
            automod_enabled=bool(row["automod_enabled"]),
            decay_enabled=bool(row["decay_enabled"]),
            decay_days=row["decay_days"],
            notify_on_infraction=bool(row["notify_on_infraction"]),
            notify_mode=NotificationMode(row["notify_mode"]),
            default_template=row["default_template"],
            default_embed=json_codec.load_embed(row["default_embed"]),
            immune_role_ids=await ModerationConfigRepo.get_immune_roles(conn, guild_id),
            escalation_tiers=await ModerationConfigRepo.get_tiers(conn, guild_id),
            log_channel_id=ChannelID(row["log_channel_id"]) if row["log_channel_id"] is not None else None,
            mute_mode=MuteMode(row["mute_mode"]),
            mute_role_id=RoleID(row["mute_role_id"]) if row["mute_role_id"] is not None else None,
        )

    @staticmethod
    async def get_immune_roles(conn: aiosqlite.Connection, guild_id: GuildID) -> frozenset[RoleID]:
        cursor = await conn.execute(
            "SELECT role_id FROM moderation_immune_roles WHERE guild_id = ?",
            (guild_id.to_int(),),
        )
        rows = await cursor.fetchall()
        return frozenset(RoleID(row[0]) for row in rows)

    @staticmethod
    async def get_tiers(conn: aiosqlite.Connection, guild_id: GuildID) -> List[EscalationTier]:
        """Tiers in stored order; ordering by threshold is the escalation service's job."""
        cursor = await conn.execute(
            "SELECT name, threshold, action, duration_seconds, reason, notification "
            "FROM escalation_tiers WHERE guild_id = ? ORDER BY id",
            (guild_id.to_int(),),
        )
        rows = await cursor.fetchall()
        return [
            EscalationTier(
                name=row["name"],
                threshold=row["threshold"],
                action=EscalationAction(row["action"]),
                duration=datetime.timedelta(seconds=row["duration_seconds"])
                if row["duration_seconds"] is not None else None,
                reason=row["reason"],
                notification=json_codec.load_notification(row["notification"]),
            )
            for row in rows
        ]
