"""Data processor — recording session, sample intake and analysis ticks.

``DataProcessor`` is the stateful coordinator between the input streams and
the :class:`~nearow.publisher.ResultPublisher`.  It owns the signal window and
all session counters, and gates every input on the recording state.

Each recording session gets a fresh :class:`_SessionPipeline` (smoother,
periodicity analyzer, stroke detector).  An analysis tick carries the pipeline
it was started for and only publishes if that pipeline is still the current
one and the processor is still recording; work left over from a stopped
session therefore finishes silently and never leaks into the next one.

Thread-safety is maintained through an internal :class:`threading.RLock`;
the ``@_synchronized`` decorator is applied to methods that read or mutate
session state.  Analysis itself runs outside the lock on an immutable window
snapshot.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from functools import wraps
from threading import RLock
from typing import Any
from uuid import uuid4

from ..config import AppConfig, GPSConfig, ProcessingConfig
from ..domain_models import GpsFix, SessionState, StrokeEvent, WindowSnapshot
from ..gps_fusion import GPSDistanceTracker, split_seconds
from ..publisher import ResultPublisher, SubscriptionHandle
from ..worker_pool import WorkerPool
from .autocorrelation import PeriodicityAnalyzer
from .buffers import SignalWindow
from .smoothing import SampleSmoother
from .stroke_detector import StrokeEventDetector

LOGGER = logging.getLogger(__name__)

_POOL_WARNING_INTERVAL_S: float = 10.0
"""Minimum interval between logged "worker pool unavailable" warnings."""


def _synchronized(method):
    @wraps(method)
    def _wrapped(self: DataProcessor, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)

    return _wrapped


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


@dataclass(slots=True)
class _SessionPipeline:
    epoch: int
    smoother: SampleSmoother
    analyzer: PeriodicityAnalyzer
    detector: StrokeEventDetector


class DataProcessor:
    def __init__(
        self,
        config: ProcessingConfig | None = None,
        gps_config: GPSConfig | None = None,
        publisher: ResultPublisher | None = None,
        worker_pool: WorkerPool | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or ProcessingConfig()
        gps_config = gps_config or GPSConfig()
        self.publisher = publisher or ResultPublisher()
        if worker_pool is not None and worker_pool.max_workers != 1:
            raise ValueError("DataProcessor needs a single-worker pool to keep ticks ordered")
        # Owned externally when injected; ticks run inline otherwise.
        self._worker_pool = worker_pool
        self.clock = clock
        self._lock = RLock()
        self._window = SignalWindow(self.config.window_capacity)
        self._gps = GPSDistanceTracker(
            gps_enabled=gps_config.enabled,
            accuracy_threshold_m=gps_config.accuracy_threshold_m,
        )
        self._state = SessionState.IDLE
        self._epoch = 0
        self._pipeline: _SessionPipeline | None = None
        self._samples_since_tick = 0
        self._session_id: str | None = None
        self._session_start_ts: float | None = None
        self._session_start_utc: str | None = None
        self._stroke_count = 0
        self._stroke_rate: float | None = None
        self._last_stroke: StrokeEvent | None = None
        # Lightweight intake/analysis metrics for observability.
        self._total_ingested_samples: int = 0
        self._dropped_samples: int = 0
        self._total_ticks: int = 0
        self._published_ticks: int = 0
        self._stale_ticks: int = 0
        self._last_tick_duration_s: float = 0.0
        self._unavailable_pool_ticks: int = 0
        self._last_pool_warning_ts: float = -math.inf

    @classmethod
    def from_config(
        cls,
        app_config: AppConfig,
        *,
        worker_pool: WorkerPool | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> DataProcessor:
        """Build a processor whose publisher follows the ``publisher`` section."""
        return cls(
            config=app_config.processing,
            gps_config=app_config.gps,
            publisher=ResultPublisher.from_config(app_config.publisher),
            worker_pool=worker_pool,
            clock=clock,
        )

    # -- subscription ---------------------------------------------------------

    def subscribe(self, listener: Any) -> SubscriptionHandle:
        return self.publisher.subscribe(listener)

    # -- session lifecycle ----------------------------------------------------

    def _new_pipeline(self) -> _SessionPipeline:
        cfg = self.config
        min_lag, max_lag = cfg.lag_range()
        return _SessionPipeline(
            epoch=self._epoch,
            smoother=SampleSmoother(cfg.smoothing_factor),
            analyzer=PeriodicityAnalyzer(
                cfg.sampling_rate_hz,
                min_lag,
                max_lag,
                min_confidence=cfg.min_correlation_confidence,
                tie_tolerance=cfg.lag_tie_tolerance,
                min_overlap=cfg.min_overlap_samples,
            ),
            detector=StrokeEventDetector(
                threshold_multiplier=cfg.peak_threshold_multiplier,
                refractory_s=cfg.refractory_s,
            ),
        )

    @_synchronized
    def start(self) -> str:
        """Begin a new recording session and return its id.

        Raises :class:`~nearow.config.ConfigurationError` when the processing
        configuration is unusable; the processor then stays idle.
        """
        self.config.validate()
        if self._state is SessionState.RECORDING:
            LOGGER.info("Restarting recording session %s", self._session_id)
        self._epoch += 1
        self._window.reset()
        self._gps.reset()
        self._pipeline = self._new_pipeline()
        self._samples_since_tick = 0
        self._stroke_count = 0
        self._stroke_rate = None
        self._last_stroke = None
        self._session_id = uuid4().hex
        self._session_start_ts = self.clock()
        self._session_start_utc = utc_now_iso()
        self._state = SessionState.RECORDING
        LOGGER.info(
            "Recording session %s started (window=%d samples, band=%g-%g spm)",
            self._session_id,
            self._window.capacity,
            self.config.min_stroke_rate,
            self.config.max_stroke_rate,
        )
        slowest = self.config.resolvable_min_rate()
        if slowest > self.config.min_stroke_rate:
            LOGGER.info(
                "Rates below %.1f spm exceed the %d-sample window and will be suppressed",
                slowest,
                self._window.capacity,
            )
        return self._session_id

    @_synchronized
    def stop(self) -> None:
        """End the session; last metrics stay readable until the next start."""
        if self._state is SessionState.IDLE:
            return
        self._state = SessionState.IDLE
        LOGGER.info(
            "Recording session %s stopped: strokes=%d distance=%.1fm",
            self._session_id,
            self._stroke_count,
            self._gps.total_distance_m,
        )

    def is_recording(self) -> bool:
        return self._state is SessionState.RECORDING

    @property
    def state(self) -> SessionState:
        return self._state

    # -- input streams --------------------------------------------------------

    def add_accelerometer_reading(
        self, vector: Sequence[float], timestamp: float | None = None
    ) -> None:
        with self._lock:
            pipeline = self._pipeline
            if self._state is not SessionState.RECORDING or pipeline is None:
                return
            ts = self.clock() if timestamp is None else timestamp
            sample = pipeline.smoother.process(vector, ts)
            if sample is None:
                self._dropped_samples += 1
                return
            self._window.append(sample)
            self._total_ingested_samples += 1
            self.publisher.publish_acceleration(sample.magnitude)
            self._samples_since_tick += 1
            if (
                self._samples_since_tick < self.config.analysis_interval_samples
                or not self._window.is_full
            ):
                return
            self._samples_since_tick = 0
            snapshot = self._window.snapshot()
        self._dispatch_tick(pipeline, snapshot)

    def add_gps_reading(self, fix: GpsFix | None) -> None:
        if fix is None:
            return
        with self._lock:
            if self._state is not SessionState.RECORDING:
                return
            update = self._gps.add_fix(fix)
            if update is not None:
                self.publisher.publish_distance(update)

    @_synchronized
    def enable_gps(self) -> None:
        self._gps.gps_enabled = True

    @_synchronized
    def disable_gps(self) -> None:
        self._gps.gps_enabled = False

    # -- analysis -------------------------------------------------------------

    def _dispatch_tick(self, pipeline: _SessionPipeline, snapshot: WindowSnapshot) -> None:
        pool = self._worker_pool
        if pool is None:
            self._run_tick(pipeline, snapshot)
            return
        try:
            pool.try_submit(self._run_tick, pipeline, snapshot)
        except RuntimeError:
            # Pool shut down underneath a running session; the producer must not see it.
            self._unavailable_pool_ticks += 1
            now = time.monotonic()
            if (now - self._last_pool_warning_ts) >= _POOL_WARNING_INTERVAL_S:
                self._last_pool_warning_ts = now
                LOGGER.warning(
                    "Analysis worker pool unavailable; skipping tick "
                    "(%d skipped so far)",
                    self._unavailable_pool_ticks,
                )

    def _run_tick(self, pipeline: _SessionPipeline, snapshot: WindowSnapshot) -> None:
        t_start = time.monotonic()
        result = pipeline.analyzer.analyze(snapshot)
        strokes = pipeline.detector.detect(snapshot)
        with self._lock:
            self._total_ticks += 1
            self._last_tick_duration_s = time.monotonic() - t_start
            if self._state is not SessionState.RECORDING or self._pipeline is not pipeline:
                self._stale_ticks += 1
                LOGGER.debug("Discarding analysis tick from session epoch %d", pipeline.epoch)
                return
            if result is not None:
                self._stroke_rate = result.stroke_rate
                self._published_ticks += 1
                self.publisher.publish_autocorrelation(result.table)
                self.publisher.publish_stroke_rate(result.stroke_rate)
            for stroke in strokes:
                self._stroke_count = stroke.index
                self._last_stroke = stroke
                self.publisher.publish_stroke(stroke)

    def wait_idle(self, timeout_s: float | None = None) -> bool:
        """Wait for queued analysis ticks and publisher dispatches to finish."""
        if self._worker_pool is not None and not self._worker_pool.wait_idle(timeout_s):
            return False
        return self.publisher.wait_idle(timeout_s)

    # -- metrics --------------------------------------------------------------

    @property
    def stroke_count(self) -> int:
        return self._stroke_count

    @property
    def stroke_rate(self) -> float | None:
        return self._stroke_rate

    @property
    def last_stroke(self) -> StrokeEvent | None:
        return self._last_stroke

    @property
    def total_distance_m(self) -> float:
        return self._gps.total_distance_m

    @property
    def speed_mps(self) -> float | None:
        return self._gps.speed_mps

    @property
    def window(self) -> SignalWindow:
        return self._window

    @_synchronized
    def session_status(self) -> dict[str, Any]:
        """Return a JSON-serializable session summary — **no side effects**."""
        elapsed_s: float | None = None
        if self._session_start_ts is not None and self._state is SessionState.RECORDING:
            elapsed_s = round(self.clock() - self._session_start_ts, 3)
        return {
            "state": str(self._state),
            "recording": self._state is SessionState.RECORDING,
            "session_id": self._session_id,
            "started_at": self._session_start_utc,
            "elapsed_s": elapsed_s,
            "stroke_count": self._stroke_count,
            "stroke_rate": self._stroke_rate,
            "total_distance_m": round(self._gps.total_distance_m, 2),
            "speed_mps": self._gps.speed_mps,
            "split_s_per_500m": split_seconds(self._gps.speed_mps),
            "gps": self._gps.status_dict(),
        }

    def intake_stats(self) -> dict[str, Any]:
        stats: dict[str, Any] = {
            "total_ingested_samples": self._total_ingested_samples,
            "dropped_samples": self._dropped_samples,
            "total_ticks": self._total_ticks,
            "published_ticks": self._published_ticks,
            "stale_ticks": self._stale_ticks,
            "unavailable_pool_ticks": self._unavailable_pool_ticks,
            "last_tick_duration_s": round(self._last_tick_duration_s, 6),
            "window_fill": len(self._window),
            "window_capacity": self._window.capacity,
            "publisher": self.publisher.stats(),
        }
        if self._worker_pool is not None:
            stats["worker_pool"] = self._worker_pool.stats()
        return stats
