"""Periodic expiry sweep, owned and stopped by the embedding application."""
import asyncio
import time
from typing import Optional

from stockhold.app.core.logging import get_logger
from stockhold.app.core.metrics import sweep_duration_seconds, sweep_failures_total
from stockhold.app.services.reservations import ReservationService

logger = get_logger(__name__)

DEFAULT_SWEEP_INTERVAL_SECONDS = 60.0


class ReservationSweeper:
    def __init__(self, service: ReservationService, interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.service = service
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        started = time.perf_counter()
        try:
            return await self.service.release_expired_reservations()
        finally:
            sweep_duration_seconds.observe(time.perf_counter() - started)

    async def _run(self) -> None:
        logger.info("Expiry sweeper started", interval_seconds=self.interval_seconds)
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.run_once()
            except Exception as e:
                # no caller to propagate to; keep sweeping on the next tick
                sweep_failures_total.inc()
                logger.error("Expiry sweep failed", error=str(e), error_type=type(e).__name__)

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="stockhold-expiry-sweeper")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Expiry sweeper stopped")

    async def __aenter__(self) -> "ReservationSweeper":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
