"""
ModerationSettingsService: per-guild moderation config and automod rules.

Responsibilities:
- Validate configs, tiers and rules before anything is written
- Persist through the repositories inside one transaction per write
- Serve reads through a TTL cache that every write invalidates for its
  guild, so the next evaluation sees the change
- Per-guild async locks so two writes for one guild are serialized

The service never does SQL itself.
"""

from __future__ import annotations

import asyncio
import dataclasses
from typing import Any, Dict, List, Tuple

from rulecord.database.database import Database
from rulecord.database.db_cache import DatabaseQueryCache
from rulecord.datatypes.automod_datatypes import AutomodRule, AutomodTarget
from rulecord.datatypes.discord_datatypes import GuildID
from rulecord.datatypes.moderation_config import EscalationAction, EscalationTier, ModerationConfig, MuteMode
from rulecord.moderation.errors import ValidationError
from rulecord.moderation.pattern_matcher import PatternMatcher
from rulecord.moderation.presets import get_preset
from rulecord.moderation.wildcard import parse_wildcard_patterns
from rulecord.repositories.automod_rule_repo import AutomodRuleRepo
from rulecord.repositories.moderation_config_repo import ModerationConfigRepo
from rulecord.util.logger import get_logger

logger = get_logger("moderation_settings_service")

CONFIG_CACHE = "config"
RULES_CACHE = "rules"


class ModerationSettingsService:
    """
    Config and rule CRUD.

    Args:
        database: Initialized database coordinator.
        matcher: Used to validate rule patterns at save time.
        cache: Read-through cache for configs and enabled rule lists.
    """

    def __init__(
        self,
        database: Database,
        matcher: PatternMatcher | None = None,
        cache: DatabaseQueryCache | None = None,
    ) -> None:
        self._database = database
        self._matcher = matcher or PatternMatcher()
        self._cache = cache or DatabaseQueryCache(ttl_seconds=60)
        self._per_guild_locks: Dict[int, asyncio.Lock] = {}
        # Bumped on every write; a read only fills the cache if no write landed meanwhile
        self._generations: Dict[int, int] = {}

    def _lock_for(self, guild_id: GuildID) -> asyncio.Lock:
        gid = guild_id.to_int()
        if gid not in self._per_guild_locks:
            self._per_guild_locks[gid] = asyncio.Lock()
        return self._per_guild_locks[gid]

    def _generation(self, guild_id: GuildID) -> int:
        return self._generations.get(guild_id.to_int(), 0)

    def _invalidate(self, guild_id: GuildID) -> None:
        gid = guild_id.to_int()
        self._generations[gid] = self._generations.get(gid, 0) + 1
        self._cache.invalidate_guild(guild_id)

    def _fill(self, guild_id: GuildID, key: str, generation: int, value: Any) -> None:
        if self._generation(guild_id) == generation:
            self._cache.set(key, value)
        else:
            logger.debug("[MODERATION SETTINGS] Skipped caching stale %s", key)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def validate_tier(tier: EscalationTier) -> None:
        if not tier.name or not tier.name.strip():
            raise ValidationError("Escalation tier needs a name", field="escalation_tiers")
        if tier.threshold <= 0:
            raise ValidationError(f"Tier '{tier.name}' threshold must be positive", field="escalation_tiers")
        if tier.action is EscalationAction.TIMEOUT:
            if tier.duration is None or tier.duration.total_seconds() <= 0:
                raise ValidationError(f"Timeout tier '{tier.name}' needs a positive duration", field="escalation_tiers")

    def validate_config(self, config: ModerationConfig) -> None:
        if config.decay_enabled and config.decay_days <= 0:
            raise ValidationError("Decay days must be positive when decay is enabled", field="decay_days")
        if config.mute_mode is MuteMode.ROLE and config.mute_role_id is None:
            raise ValidationError("Role mute mode needs a mute role", field="mute_role_id")
        for tier in config.escalation_tiers:
            self.validate_tier(tier)

    def validate_rule(self, rule: AutomodRule) -> None:
        if not rule.name or not rule.name.strip():
            raise ValidationError("Rule needs a name", field="name")
        if not rule.targets:
            raise ValidationError("Rule needs at least one target", field="targets")
        if not rule.patterns:
            raise ValidationError("Rule needs at least one pattern", field="patterns")
        if rule.points < 0:
            raise ValidationError("Rule points cannot be negative", field="points")
        self._matcher.validate_patterns(rule.patterns)

    # ------------------------------------------------------------------
    # Config
    # ------------------------------------------------------------------

    async def get_config(self, guild_id: GuildID) -> ModerationConfig:
        """Stored config, or defaults when the guild never saved one."""
        key = DatabaseQueryCache.key(CONFIG_CACHE, guild_id)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        generation = self._generation(guild_id)
        async with self._database.read() as conn:
            config = await ModerationConfigRepo.get(conn, guild_id)

        if config is None:
            config = ModerationConfig(guild_id=guild_id)
        self._fill(guild_id, key, generation, config)
        return config

    async def get_or_create_config(self, guild_id: GuildID) -> ModerationConfig:
        """Like ``get_config`` but persists the defaults on first access."""
        async with self._lock_for(guild_id):
            async with self._database.read() as conn:
                config = await ModerationConfigRepo.get(conn, guild_id)
            if config is not None:
                return config

            config = ModerationConfig(guild_id=guild_id)
            async with self._database.transaction() as conn:
                await ModerationConfigRepo.upsert(conn, config)
            self._invalidate(guild_id)
            logger.info("[MODERATION SETTINGS] Created default config for guild %s", guild_id)
            return config

    async def _persist_config(self, config: ModerationConfig) -> ModerationConfig:
        self.validate_config(config)
        async with self._database.transaction() as conn:
            await ModerationConfigRepo.upsert(conn, config)
        self._invalidate(config.guild_id)
        logger.info("[MODERATION SETTINGS] Saved config for guild %s", config.guild_id)
        return config

    async def save_config(self, config: ModerationConfig) -> ModerationConfig:
        async with self._lock_for(config.guild_id):
            return await self._persist_config(config)

    async def update_config(self, guild_id: GuildID, **changes: Any) -> ModerationConfig:
        """
        Apply field changes to the current config and persist it.

        Raises:
            ValidationError: On unknown fields or an invalid resulting config.
        """
        known = {f.name for f in dataclasses.fields(ModerationConfig)} - {"guild_id"}
        unknown = set(changes) - known
        if unknown:
            raise ValidationError(f"Unknown config fields: {', '.join(sorted(unknown))}")
        async with self._lock_for(guild_id):
            current = await self.get_config(guild_id)
            updated = dataclasses.replace(current, **changes)
            return await self._persist_config(updated)

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    async def list_rules(self, guild_id: GuildID) -> List[AutomodRule]:
        async with self._database.read() as conn:
            return await AutomodRuleRepo.list_for_guild(conn, guild_id)

    async def get_enabled_rules(self, guild_id: GuildID) -> List[AutomodRule]:
        key = DatabaseQueryCache.key(RULES_CACHE, guild_id)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        generation = self._generation(guild_id)
        async with self._database.read() as conn:
            rules = await AutomodRuleRepo.list_for_guild(conn, guild_id, enabled_only=True)
        self._fill(guild_id, key, generation, rules)
        return rules

    async def get_rule(self, guild_id: GuildID, rule_id: int) -> AutomodRule | None:
        async with self._database.read() as conn:
            return await AutomodRuleRepo.get(conn, guild_id, rule_id)

    async def create_rule(self, rule: AutomodRule) -> AutomodRule:
        self.validate_rule(rule)
        async with self._lock_for(rule.guild_id):
            async with self._database.transaction() as conn:
                rule_id = await AutomodRuleRepo.insert(conn, rule)
            self._invalidate(rule.guild_id)
        logger.info("[MODERATION SETTINGS] Created rule '%s' (#%d) in guild %s", rule.name, rule_id, rule.guild_id)
        return dataclasses.replace(rule, id=rule_id)

    async def create_rule_from_wildcards(
        self,
        guild_id: GuildID,
        name: str,
        wildcards: str,
        *,
        targets: Tuple[AutomodTarget, ...] = (AutomodTarget.MESSAGE_CONTENT,),
        **fields: Any,
    ) -> AutomodRule:
        """
        Create a rule from comma-separated AutoMod wildcard words.

        Raises:
            ValidationError: Listing every rejected word, before anything is written.
        """
        parsed = parse_wildcard_patterns(wildcards)
        if not parsed.success:
            raise ValidationError("; ".join(parsed.errors), field="patterns")
        rule = AutomodRule(
            guild_id=guild_id,
            name=name,
            targets=tuple(targets),
            patterns=tuple(parsed.patterns),
            **fields,
        )
        return await self.create_rule(rule)

    async def update_rule(self, rule: AutomodRule) -> AutomodRule:
        if rule.id is None:
            raise ValidationError("Cannot update a rule without an id", field="id")
        self.validate_rule(rule)
        async with self._lock_for(rule.guild_id):
            async with self._database.transaction() as conn:
                found = await AutomodRuleRepo.update(conn, rule)
            self._invalidate(rule.guild_id)
        if not found:
            raise ValidationError(f"Rule #{rule.id} does not exist in guild {rule.guild_id}", field="id")
        return rule

    async def toggle_rule(self, guild_id: GuildID, rule_id: int, enabled: bool) -> bool:
        async with self._lock_for(guild_id):
            async with self._database.transaction() as conn:
                found = await AutomodRuleRepo.set_enabled(conn, guild_id, rule_id, enabled)
            self._invalidate(guild_id)
        return found

    async def delete_rule(self, guild_id: GuildID, rule_id: int) -> bool:
        async with self._lock_for(guild_id):
            async with self._database.transaction() as conn:
                deleted = await AutomodRuleRepo.delete(conn, guild_id, rule_id)
            self._invalidate(guild_id)
        return deleted

    # ------------------------------------------------------------------
    # Presets
    # ------------------------------------------------------------------

    async def install_preset(self, guild_id: GuildID, preset_id: str) -> AutomodRule:
        """Create a fresh, editable rule from a built-in preset (replacing an earlier copy)."""
        preset = get_preset(preset_id)
        if preset is None:
            raise ValidationError(f"Unknown preset '{preset_id}'", field="preset_id")

        rule = preset.to_rule(guild_id)
        self.validate_rule(rule)
        async with self._lock_for(guild_id):
            async with self._database.transaction() as conn:
                await AutomodRuleRepo.delete_preset(conn, guild_id, preset_id)
                rule_id = await AutomodRuleRepo.insert(conn, rule)
            self._invalidate(guild_id)
        logger.info("[MODERATION SETTINGS] Installed preset '%s' in guild %s", preset_id, guild_id)
        return dataclasses.replace(rule, id=rule_id)

    async def remove_preset(self, guild_id: GuildID, preset_id: str) -> bool:
        async with self._lock_for(guild_id):
            async with self._database.transaction() as conn:
                removed = await AutomodRuleRepo.delete_preset(conn, guild_id, preset_id)
            self._invalidate(guild_id)
        return removed
