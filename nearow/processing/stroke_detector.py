"""Discrete stroke detection — adaptive threshold peaks with refractory debouncing."""

from __future__ import annotations

import logging
import math

import numpy as np

from ..constants import SECONDS_PER_MINUTE, VARIANCE_EPSILON
from ..domain_models import StrokeEvent, WindowSnapshot

LOGGER = logging.getLogger(__name__)


def candidate_peaks(values: np.ndarray, threshold: float) -> np.ndarray:
    """Indices of samples above *threshold* that are local maxima.

    A plateau counts once, at its first sample.  The first and last sample
    have only one neighbour and are never candidates.
    """
    if values.size < 3:
        return np.empty(0, dtype=np.intp)
    mid = values[1:-1]
    mask = (mid > threshold) & (mid > values[:-2]) & (mid >= values[2:])
    return np.flatnonzero(mask) + 1


class StrokeEventDetector:
    """Turns successive window snapshots into :class:`StrokeEvent` objects.

    Snapshots overlap from tick to tick, so every sample is judged once: only
    samples newer than the last fully examined timestamp are considered.  The
    first accepted peak of a session only establishes the baseline.
    """

    def __init__(self, threshold_multiplier: float = 1.5, refractory_s: float = 1.2):
        self.threshold_multiplier = float(threshold_multiplier)
        self.refractory_s = float(refractory_s)
        self.last_peak_ts: float | None = None
        self.stroke_count = 0
        self.last_event: StrokeEvent | None = None
        self._examined_until_ts = -math.inf

    def reset(self) -> None:
        self.last_peak_ts = None
        self.stroke_count = 0
        self.last_event = None
        self._examined_until_ts = -math.inf

    def detect(self, snapshot: WindowSnapshot) -> list[StrokeEvent]:
        if not snapshot.is_full:
            return []
        values = snapshot.values
        timestamps = snapshot.timestamps
        mean = float(np.mean(values))
        std = float(np.std(values))
        # The last sample has no right-hand neighbour yet; it is judged next tick.
        horizon_ts = float(timestamps[-2])
        if not math.isfinite(std) or std * std <= VARIANCE_EPSILON:
            self._examined_until_ts = max(self._examined_until_ts, horizon_ts)
            return []
        threshold = mean + self.threshold_multiplier * std
        events: list[StrokeEvent] = []
        for idx in candidate_peaks(values, threshold):
            ts = float(timestamps[idx])
            if ts <= self._examined_until_ts:
                continue
            event = self._accept(ts)
            if event is not None:
                events.append(event)
        self._examined_until_ts = max(self._examined_until_ts, horizon_ts)
        return events

    def _accept(self, ts: float) -> StrokeEvent | None:
        previous = self.last_peak_ts
        if previous is not None:
            interval = ts - previous
            if interval < self.refractory_s:
                LOGGER.debug("Discarding peak at %.3f inside refractory period", ts)
                return None
        self.last_peak_ts = ts
        if previous is None:
            return None
        self.stroke_count += 1
        event = StrokeEvent(
            timestamp=ts,
            stroke_rate=SECONDS_PER_MINUTE / (ts - previous),
            index=self.stroke_count,
        )
        self.last_event = event
        return event
