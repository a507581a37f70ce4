"""Bounded per-stream input channels feeding the data processor.

Sensor and location callbacks arrive from independent producer contexts.
Rather than letting each callback touch the processor directly, they
``offer`` readings to a bounded :class:`asyncio.Queue` (one per stream) and a
single consumer task per stream drains it into the
:class:`~nearow.processing.DataProcessor`.  A full queue drops the reading
with a rate-limited warning; offering never blocks.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence

from .config import IngestConfig
from .domain_models import GpsFix
from .processing import DataProcessor

LOGGER = logging.getLogger(__name__)

_QUEUE_DROP_LOG_INTERVAL_S: float = 10.0


class _BoundedChannel:
    def __init__(self, name: str, maxsize: int, drop_log_interval_s: float):
        self.name = name
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, maxsize))
        self.dropped = 0
        self._drop_log_interval_s = max(0.0, float(drop_log_interval_s))
        self._last_drop_log_ts = 0.0
        self._suppressed_drop_warnings = 0

    def offer(self, item: object) -> bool:
        try:
            self.queue.put_nowait(item)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            now = time.monotonic()
            if (now - self._last_drop_log_ts) >= self._drop_log_interval_s:
                suppressed = self._suppressed_drop_warnings
                self._suppressed_drop_warnings = 0
                self._last_drop_log_ts = now
                if suppressed > 0:
                    LOGGER.warning(
                        "%s ingest queue full; dropping reading; "
                        "suppressed %d additional drop warnings",
                        self.name,
                        suppressed,
                    )
                else:
                    LOGGER.warning("%s ingest queue full; dropping reading", self.name)
            else:
                self._suppressed_drop_warnings += 1
            return False


class IngestChannels:
    """Accelerometer and GPS channels with their consumer tasks.

    Must be created and offered to from within a running event loop; use the
    ``*_threadsafe`` variants from foreign threads.
    """

    def __init__(
        self,
        processor: DataProcessor,
        accel_queue_maxsize: int = 512,
        gps_queue_maxsize: int = 64,
        queue_drop_log_interval_s: float = _QUEUE_DROP_LOG_INTERVAL_S,
    ):
        self.processor = processor
        self._loop = asyncio.get_running_loop()
        self._accel = _BoundedChannel("accelerometer", accel_queue_maxsize, queue_drop_log_interval_s)
        self._gps = _BoundedChannel("gps", gps_queue_maxsize, queue_drop_log_interval_s)
        self._tasks: list[asyncio.Task[None]] = []

    @classmethod
    def from_config(
        cls,
        processor: DataProcessor,
        config: IngestConfig,
        queue_drop_log_interval_s: float = _QUEUE_DROP_LOG_INTERVAL_S,
    ) -> IngestChannels:
        return cls(
            processor,
            accel_queue_maxsize=config.accel_queue_maxsize,
            gps_queue_maxsize=config.gps_queue_maxsize,
            queue_drop_log_interval_s=queue_drop_log_interval_s,
        )

    # -- producer side --------------------------------------------------------

    def offer_accelerometer(self, vector: Sequence[float], timestamp: float | None = None) -> bool:
        # Stamp on arrival so queueing delay does not skew stroke timing.
        ts = self.processor.clock() if timestamp is None else timestamp
        return self._accel.offer((tuple(vector), ts))

    def offer_gps(self, fix: GpsFix | None) -> bool:
        if fix is None:
            return False
        return self._gps.offer(fix)

    def offer_accelerometer_threadsafe(
        self, vector: Sequence[float], timestamp: float | None = None
    ) -> None:
        ts = self.processor.clock() if timestamp is None else timestamp
        self._loop.call_soon_threadsafe(self.offer_accelerometer, tuple(vector), ts)

    def offer_gps_threadsafe(self, fix: GpsFix | None) -> None:
        if fix is None:
            return
        self._loop.call_soon_threadsafe(self.offer_gps, fix)

    # -- consumer side --------------------------------------------------------

    async def process_accelerometer_queue(self) -> None:
        queue = self._accel.queue
        while True:
            vector, ts = await queue.get()
            try:
                self.processor.add_accelerometer_reading(vector, ts)
            except Exception:
                LOGGER.warning("Error processing accelerometer reading", exc_info=True)
            finally:
                queue.task_done()

    async def process_gps_queue(self) -> None:
        queue = self._gps.queue
        while True:
            fix = await queue.get()
            try:
                self.processor.add_gps_reading(fix)
            except Exception:
                LOGGER.warning("Error processing GPS fix", exc_info=True)
            finally:
                queue.task_done()

    def start(self) -> list[asyncio.Task[None]]:
        if not self._tasks:
            self._tasks = [
                asyncio.create_task(self.process_accelerometer_queue(), name="accel-consumer"),
                asyncio.create_task(self.process_gps_queue(), name="gps-consumer"),
            ]
        return list(self._tasks)

    async def join(self) -> None:
        """Wait until every offered reading has been handed to the processor."""
        await self._accel.queue.join()
        await self._gps.queue.join()

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def stats(self) -> dict[str, int]:
        return {
            "accel_capacity": self._accel.queue.maxsize,
            "accel_pending": self._accel.queue.qsize(),
            "accel_dropped": self._accel.dropped,
            "gps_capacity": self._gps.queue.maxsize,
            "gps_pending": self._gps.queue.qsize(),
            "gps_dropped": self._gps.dropped,
        }
