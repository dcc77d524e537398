from __future__ import annotations

import datetime
import fcntl
from pathlib import Path
from typing import Any, Dict

import yaml

from rulecord.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()

# Discord refuses communication timeouts longer than 28 days.
DISCORD_MAX_TIMEOUT = datetime.timedelta(days=28)


class AppConfig:
    """File-lock based accessor around the YAML-based application configuration.

    The class caches contents of ``./config/app_config.yml`` and exposes typed
    properties with safe defaults, so a missing or partial file still yields a
    working engine. Uses fcntl file locks for safe concurrent access across
    processes.
    """

    def __init__(self, config_path: Path = CONFIG_PATH) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            logger.warning("[APP CONFIGURATION] Config file %s not found, using defaults.", self.config_path)
            return {}
        except (OSError, yaml.YAMLError) as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if not isinstance(data, dict):
            if data is not None:
                logger.error("[APP CONFIGURATION] Config %s is not a mapping, ignoring it.", self.config_path)
            return {}
        return data

    def _section(self, name: str) -> Dict[str, Any]:
        section = self._data.get(name, {})
        return section if isinstance(section, dict) else {}

    def _number(self, section: str, key: str, default: float) -> float:
        value = self._section(section).get(key, default)
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning("[APP CONFIGURATION] %s.%s=%r is not a number, using %s", section, key, value, default)
            return float(default)

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns the raw mapping that was loaded (an empty dict on error).
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # Database
    # --------------------------
    @property
    def database_path(self) -> Path:
        """SQLite file backing the ledger, rules and per-guild config."""
        value = self._section("database").get("path") or "./data/rulecord.db"
        return Path(str(value)).resolve()

    @property
    def cache_ttl_seconds(self) -> int:
        """Lifetime of cached guild config and rule lists."""
        return int(self._number("database", "cache_ttl_seconds", 60))

    # --------------------------
    # Pattern matching
    # --------------------------
    @property
    def max_pattern_length(self) -> int:
        return int(self._number("automod", "max_pattern_length", 500))

    @property
    def max_input_length(self) -> int:
        """Content is truncated to this many characters before matching."""
        return int(self._number("automod", "max_input_length", 10000))

    @property
    def matched_content_log_limit(self) -> int:
        return int(self._number("automod", "matched_content_log_limit", 200))

    # --------------------------
    # Sanctions
    # --------------------------
    @property
    def max_timeout(self) -> datetime.timedelta:
        """Upper bound applied to every timeout; never above Discord's 28 days."""
        seconds = self._number("sanctions", "max_timeout_seconds", DISCORD_MAX_TIMEOUT.total_seconds())
        return min(datetime.timedelta(seconds=seconds), DISCORD_MAX_TIMEOUT)

    @property
    def default_timeout(self) -> datetime.timedelta:
        """Used when a stored timeout tier has no duration."""
        return datetime.timedelta(seconds=self._number("sanctions", "default_timeout_seconds", 3600))

    # --------------------------
    # Escalation
    # --------------------------
    @property
    def escalation_cooldown_seconds(self) -> float:
        """Window in which the same tier is not applied twice to one member.

        0 (the default) disables the guard: concurrent infractions may each
        execute the same tier.
        """
        return max(0.0, self._number("escalation", "cooldown_seconds", 0))

    # --------------------------
    # Decay sweep
    # --------------------------
    @property
    def decay_sweep_enabled(self) -> bool:
        return bool(self._section("decay_sweep").get("enabled", True))

    @property
    def decay_sweep_interval(self) -> float:
        return self._number("decay_sweep", "interval_seconds", 3600)
