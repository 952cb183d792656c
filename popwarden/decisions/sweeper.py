"""
Periodic expiry sweeper for pending decisions.
"""

import asyncio
import logging
from typing import Optional

from popwarden.decisions.coordinator import DecisionCoordinator

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """Runs DecisionCoordinator.expire() on a fixed interval."""

    def __init__(self, coordinator: DecisionCoordinator, interval_seconds: Optional[float] = None):
        """
        Args:
            coordinator: Coordinator whose stale decisions are expired
            interval_seconds: Sweep interval (None = coordinator config)
        """
        self._coordinator = coordinator
        self.interval = interval_seconds or coordinator.config.sweep_interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.sweep_count = 0
        self.total_expired = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start the sweep loop."""
        if self._running:
            logger.warning("Expiry sweeper already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info("Expiry sweeper started (every %ss)", self.interval)

    async def stop(self):
        """Stop the sweep loop."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Expiry sweeper stopped")

    async def sweep_now(self) -> int:
        """Perform an immediate sweep and return the number expired."""
        expired = await self._coordinator.expire()
        self.sweep_count += 1
        self.total_expired += expired
        return expired

    async def _sweep_loop(self):
        while self._running:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep_now()
            except Exception as e:
                logger.error("Expiry sweep failed: %s", e)
