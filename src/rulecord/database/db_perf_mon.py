"""
Performance monitoring for database operations.

Tracks query execution times and logs slow queries.
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from rulecord.util.logger import get_logger

logger = get_logger("database_perf_mon")


class DatabasePerformanceMonitor:
    """
    Records execution times per query name and reports count, average, min
    and max.
    """

    def __init__(self, slow_query_threshold_ms: float = 100.0):
        self._query_stats: Dict[str, Dict[str, float]] = {}
        self._slow_query_threshold = slow_query_threshold_ms / 1000.0

    def track(self, query_name: str, duration: float) -> None:
        """
        Track a query execution.

        Args:
            query_name: Name/identifier of the query
            duration: Execution time in seconds
        """
        stats = self._query_stats.setdefault(query_name, {
            "count": 0,
            "total_time": 0.0,
            "min_time": float("inf"),
            "max_time": 0.0,
        })
        stats["count"] += 1
        stats["total_time"] += duration
        stats["min_time"] = min(stats["min_time"], duration)
        stats["max_time"] = max(stats["max_time"], duration)

        if duration > self._slow_query_threshold:
            logger.warning("[PERFORMANCE] Slow query: %s took %.2fms", query_name, duration * 1000)

    @asynccontextmanager
    async def timed(self, query_name: str) -> AsyncIterator[None]:
        """``async with monitor.timed("name"):`` tracks the enclosed block."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.track(query_name, time.perf_counter() - start)

    def get_statistics(self) -> Dict[str, Dict[str, float]]:
        result = {}
        for query_name, stats in self._query_stats.items():
            result[query_name] = {
                "count": stats["count"],
                "total_time": stats["total_time"],
                "avg_time": stats["total_time"] / stats["count"] if stats["count"] > 0 else 0,
                "min_time": stats["min_time"] if stats["min_time"] != float("inf") else 0,
                "max_time": stats["max_time"],
            }
        return result

    def reset(self) -> None:
        """Reset all performance statistics."""
        self._query_stats.clear()
        logger.info("[PERFORMANCE] Statistics reset")
