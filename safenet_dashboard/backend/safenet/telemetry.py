# ==============================================================================
# == backend/safenet/telemetry.py - Simulated network throughput             ==
# ==============================================================================

import asyncio
import logging
import math
import random

from . import crud, events, models
from .database import InMemoryDatabase
from .websocket import ConnectionManager

logger = logging.getLogger(__name__)

UPLOAD_RANGE = (10.0, 60.0)
DOWNLOAD_RANGE = (100.0, 300.0)


def sample_speed(rng: random.Random, low: float, high: float) -> str:
    """Uniform sample in [low, high) formatted as "12.3 Mbps"."""
    value = rng.uniform(low, high)
    # truncate, rounding could land on the excluded upper bound
    value = math.floor(value * 10) / 10
    value = min(max(value, low), high - 0.1)
    return f"{value:.1f} Mbps"


class TelemetrySimulator:
    """Periodically rewrites upload/download speeds and pushes stats_updated."""

    def __init__(
        self,
        db: InMemoryDatabase,
        manager: ConnectionManager,
        interval: float = 5.0,
        rng: random.Random | None = None,
        sleep=asyncio.sleep,
    ):
        self.db = db
        self.manager = manager
        self.interval = interval
        self.rng = rng or random.Random()
        self._sleep = sleep
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> models.NetworkStats:
        stats = await crud.update_network_stats(self.db, {
            "upload_speed": sample_speed(self.rng, *UPLOAD_RANGE),
            "download_speed": sample_speed(self.rng, *DOWNLOAD_RANGE),
        })
        await self.manager.publish(events.stats_updated(stats))
        return stats

    async def _run(self):
        while True:
            await self._sleep(self.interval)
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Telemetry tick failed: {e}", exc_info=True)

    def start(self):
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"Telemetry simulator started (every {self.interval}s)")

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        logger.info("Telemetry simulator stopped")
