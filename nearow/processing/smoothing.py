"""Raw accelerometer vector → smoothed scalar magnitude."""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence

from ..domain_models import Sample

LOGGER = logging.getLogger(__name__)


def vector_magnitude(vector: Sequence[float]) -> float | None:
    """Euclidean norm of a 3-axis vector, or ``None`` if it is malformed."""
    try:
        if len(vector) != 3:
            return None
        x, y, z = (float(v) for v in vector)
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(x) and math.isfinite(y) and math.isfinite(z)):
        return None
    return math.sqrt(x * x + y * y + z * z)


class ExponentialSmoother:
    """Single-pole low-pass filter: ``y += alpha * (x - y)``.

    ``alpha == 1`` disables smoothing.  The first value seeds the filter.
    """

    __slots__ = ("alpha", "_state")

    def __init__(self, alpha: float):
        if not 0.0 < alpha <= 1.0:
            raise ValueError(f"smoothing factor must be in (0, 1], got {alpha!r}")
        self.alpha = float(alpha)
        self._state: float | None = None

    @property
    def value(self) -> float | None:
        return self._state

    def update(self, value: float) -> float:
        if self._state is None:
            self._state = value
        else:
            self._state += self.alpha * (value - self._state)
        return self._state

    def reset(self) -> None:
        self._state = None


class SampleSmoother:
    """Turns raw vectors into :class:`Sample` objects."""

    def __init__(self, smoothing_factor: float):
        self._filter = ExponentialSmoother(smoothing_factor)

    def reset(self) -> None:
        self._filter.reset()

    def process(self, vector: Sequence[float], timestamp: float) -> Sample | None:
        try:
            ts = float(timestamp)
        except (TypeError, ValueError):
            ts = math.nan
        magnitude = vector_magnitude(vector)
        if magnitude is None or not math.isfinite(ts):
            LOGGER.debug("Dropping malformed accelerometer reading %r at %r", vector, timestamp)
            return None
        return Sample(timestamp=ts, magnitude=self._filter.update(magnitude))
