"""Signal processing package.

- :mod:`~nearow.processing.buffers` — bounded signal window.
- :mod:`~nearow.processing.smoothing` — vector magnitude and exponential smoothing.
- :mod:`~nearow.processing.autocorrelation` — pure autocorrelation functions and
  the per-session stroke-rate estimator.
- :mod:`~nearow.processing.stroke_detector` — discrete stroke events.
- :mod:`~nearow.processing.processor` — the stateful :class:`DataProcessor`
  that ties everything together.
"""

from .autocorrelation import PeriodicityAnalyzer, PeriodicityResult  # noqa: F401
from .buffers import SignalWindow  # noqa: F401
from .processor import DataProcessor  # noqa: F401
from .smoothing import ExponentialSmoother, SampleSmoother, vector_magnitude  # noqa: F401
from .stroke_detector import StrokeEventDetector  # noqa: F401

__all__ = [
    "DataProcessor",
    "ExponentialSmoother",
    "PeriodicityAnalyzer",
    "PeriodicityResult",
    "SampleSmoother",
    "SignalWindow",
    "StrokeEventDetector",
    "vector_magnitude",
]
