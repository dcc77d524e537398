"""
TTL cache for per-guild query results (moderation config, enabled rules).

Entries are keyed ``"<kind>:<guild_id>"`` so all entries of one guild can be
dropped at once with ``invalidate_guild``.
"""

from typing import Any, Callable, Dict, Optional, Tuple
import time

from rulecord.util.logger import get_logger

logger = get_logger("database_cache")


class DatabaseQueryCache:
    """
    TTL-based cache for database query results.

    Args:
        ttl_seconds: Lifetime of an entry; 0 disables caching entirely.
        clock: Time source, injectable for tests.
    """

    def __init__(self, ttl_seconds: float = 60, clock: Callable[[], float] = time.monotonic):
        self._cache: Dict[str, Tuple[float, Any]] = {}
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    @staticmethod
    def key(kind: str, guild_id: Any) -> str:
        return f"{kind}:{guild_id}"

    def get(self, cache_key: str) -> Optional[Any]:
        """Return the cached value, or None when absent or expired."""
        entry = self._cache.get(cache_key)
        if entry is None:
            return None

        timestamp, result = entry
        if self._clock() - timestamp < self._ttl_seconds:
            logger.debug("[CACHE] Hit for key: %s", cache_key)
            return result

        del self._cache[cache_key]
        logger.debug("[CACHE] Expired key: %s", cache_key)
        return None

    def set(self, cache_key: str, result: Any) -> None:
        if self._ttl_seconds <= 0:
            return
        self._cache[cache_key] = (self._clock(), result)
        logger.debug("[CACHE] Set key: %s", cache_key)

    def invalidate_guild(self, guild_id: Any) -> int:
        suffix = f":{guild_id}"
        keys_to_delete = [k for k in self._cache if k.endswith(suffix)]
        for key in keys_to_delete:
            del self._cache[key]
        return len(keys_to_delete)

    def get_db_cache_stats(self) -> Dict[str, float]:
        return {
            "size": len(self._cache),
            "ttl_seconds": self._ttl_seconds,
        }
