# discount_engine/services/sweeper.py
import asyncio
import logging
from typing import Optional
from .ledger import RedemptionLedger
from ..config import Config

class ReservationSweeper:
    """Background task returning abandoned reservations to their codes"""

    def __init__(self, ledger: RedemptionLedger, interval: Optional[float] = None):
        self.ledger = ledger
        self.interval = interval if interval is not None else Config.SWEEP_INTERVAL_SECONDS
        self._task: Optional[asyncio.Task] = None
        self.logger = logging.getLogger(__name__)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        """One sweep cycle; failures are logged and left for the next cycle"""
        try:
            return await self.ledger.sweep_expired_reservations()
        except Exception as e:
            self.logger.error(f"Reservation sweep failed: {e}", exc_info=True)
            return 0

    async def _loop(self):
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval)

    def start(self):
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())
        self.logger.info(f"Reservation sweeper started, every {self.interval}s")

    async def stop(self):
        if not self._task:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self.logger.info("Reservation sweeper stopped")
