"""Domain model objects shared by the processing pipeline and its subscribers.

Everything handed to a subscriber is immutable: frozen dataclasses, tuples and
read-only numpy arrays, so a consumer can keep a reference without the
producer mutating it later.
"""

from __future__ import annotations

import enum
import math
from collections.abc import Iterator
from dataclasses import dataclass

import numpy as np


class SessionState(enum.StrEnum):
    IDLE = "idle"
    RECORDING = "recording"


@dataclass(frozen=True, slots=True)
class Sample:
    """One smoothed acceleration magnitude."""

    timestamp: float
    magnitude: float


@dataclass(frozen=True, slots=True)
class StrokeEvent:
    timestamp: float
    stroke_rate: float
    index: int


@dataclass(frozen=True, slots=True)
class GpsFix:
    timestamp: float
    latitude: float
    longitude: float
    speed: float | None = None
    accuracy: float | None = None

    def is_well_formed(self) -> bool:
        if not all(
            isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)
            for v in (self.timestamp, self.latitude, self.longitude)
        ):
            return False
        return -90.0 <= self.latitude <= 90.0 and -180.0 <= self.longitude <= 180.0


@dataclass(frozen=True, slots=True)
class GpsUpdate:
    """Distance/speed published for each accepted GPS segment."""

    timestamp: float
    distance_m: float
    total_distance_m: float
    speed_mps: float
    split_s_per_500m: float | None


@dataclass(frozen=True, slots=True, eq=False)
class WindowSnapshot:
    """Immutable copy of the signal window taken at the start of an analysis tick."""

    timestamps: np.ndarray
    values: np.ndarray
    capacity: int

    def __post_init__(self) -> None:
        self.timestamps.flags.writeable = False
        self.values.flags.writeable = False

    def __len__(self) -> int:
        return int(self.values.shape[0])

    @property
    def is_full(self) -> bool:
        return len(self) >= self.capacity


@dataclass(frozen=True, slots=True)
class AutocorrelationTable:
    """Normalized correlation per lag, for ``lag`` in ``[min_lag, max_lag]``.

    ``values[i]`` is the correlation at lag ``min_lag + i``.
    """

    min_lag: int
    values: tuple[float, ...]
    best_lag: int
    sampling_rate_hz: int

    @property
    def max_lag(self) -> int:
        return self.min_lag + len(self.values) - 1

    @property
    def lags(self) -> range:
        return range(self.min_lag, self.max_lag + 1)

    @property
    def best_correlation(self) -> float:
        return self.value_at(self.best_lag)

    def value_at(self, lag: int) -> float:
        if not self.min_lag <= lag <= self.max_lag:
            raise KeyError(lag)
        return self.values[lag - self.min_lag]

    def __len__(self) -> int:
        return len(self.values)

    def __iter__(self) -> Iterator[tuple[int, float]]:
        return iter(zip(self.lags, self.values))
