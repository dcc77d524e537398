"""Periodic sweep marking decayed infractions inactive.

Reads already ignore decayed rows, so the sweep only keeps the table's
active set small. One pass covers every guild with decay enabled.
"""

from __future__ import annotations

import asyncio

from rulecord.moderation.infraction_ledger import InfractionLedger
from rulecord.util.logger import get_logger

logger = get_logger("decay_scheduler")


class DecaySweepScheduler:
    """
    Background task running ``InfractionLedger.sweep_decayed`` on an interval.

    Args:
        ledger: Ledger whose decayed rows are swept.
        interval: Seconds between passes.
    """

    def __init__(self, ledger: InfractionLedger, interval: float = 3600.0) -> None:
        self._ledger = ledger
        self._interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> int:
        swept = await self._ledger.sweep_decayed()
        if swept:
            logger.info("[DECAY] Deactivated %d decayed infraction(s)", swept)
        return swept

    async def _run_loop(self) -> None:
        logger.info("[DECAY] Starting periodic sweep (interval=%.1fs)", self._interval)
        try:
            while True:
                try:
                    await self.sweep_once()
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.error("[DECAY] Unexpected error during sweep: %s", exc)
                await asyncio.sleep(self._interval)
        except asyncio.CancelledError:
            logger.info("[DECAY] Periodic sweep cancelled")
            raise

    def start(self) -> None:
        """Start the background task if not already running."""
        if self.running:
            logger.warning("[DECAY] Sweep task already running")
            return
        self._task = asyncio.create_task(self._run_loop())

    async def shutdown(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("[DECAY] Scheduler shutdown complete")
