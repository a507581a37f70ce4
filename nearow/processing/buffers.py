"""Signal window — bounded circular storage of smoothed magnitude samples.

``SignalWindow`` keeps the most recent ``capacity`` samples in two
preallocated numpy arrays (timestamps and magnitudes).  ``append`` overwrites
the oldest sample once the window is full; ``snapshot`` hands analysis code an
immutable, chronologically ordered copy.  Both are serialized by an internal
lock so a snapshot never observes a half-written sample.
"""

from __future__ import annotations

from threading import Lock

import numpy as np

from ..domain_models import Sample, WindowSnapshot


class SignalWindow:
    __slots__ = ("_timestamps", "_values", "_capacity", "_write_idx", "_count", "_generation", "_lock")

    def __init__(self, capacity: int):
        capacity = int(capacity)
        if capacity < 1:
            raise ValueError(f"SignalWindow capacity must be ≥1, got {capacity!r}")
        self._capacity = capacity
        self._timestamps = np.zeros(capacity, dtype=np.float64)
        self._values = np.zeros(capacity, dtype=np.float64)
        self._write_idx = 0
        self._count = 0
        # Incremented on every append/reset; lets callers tell snapshots apart.
        self._generation = 0
        self._lock = Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def generation(self) -> int:
        return self._generation

    def __len__(self) -> int:
        return self._count

    @property
    def is_full(self) -> bool:
        return self._count >= self._capacity

    def append(self, sample: Sample) -> None:
        with self._lock:
            self._timestamps[self._write_idx] = sample.timestamp
            self._values[self._write_idx] = sample.magnitude
            self._write_idx = (self._write_idx + 1) % self._capacity
            self._count = min(self._capacity, self._count + 1)
            self._generation += 1

    def reset(self) -> None:
        """Discard all stored samples."""
        with self._lock:
            self._timestamps[:] = 0.0
            self._values[:] = 0.0
            self._write_idx = 0
            self._count = 0
            self._generation += 1

    def _ordered(self, data: np.ndarray) -> np.ndarray:
        n = self._count
        if n == 0:
            return np.empty(0, dtype=np.float64)
        start = (self._write_idx - n) % self._capacity
        if start + n <= self._capacity:
            return data[start : start + n].copy()
        first = self._capacity - start
        return np.concatenate((data[start:], data[: n - first]))

    def snapshot(self) -> WindowSnapshot:
        with self._lock:
            return WindowSnapshot(
                timestamps=self._ordered(self._timestamps),
                values=self._ordered(self._values),
                capacity=self._capacity,
            )

    def latest(self) -> Sample | None:
        with self._lock:
            if self._count == 0:
                return None
            idx = (self._write_idx - 1) % self._capacity
            return Sample(
                timestamp=float(self._timestamps[idx]),
                magnitude=float(self._values[idx]),
            )
