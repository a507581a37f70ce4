"""Autocorrelation-based stroke-rate estimation.

The module-level functions are pure: they take arrays and scalar parameters
and return results without touching shared state.  :class:`PeriodicityAnalyzer`
wraps them with the per-session state (the last accepted rate).

Normalization
-------------
For each lag the mean-removed window ``c`` is compared with itself shifted by
``lag``::

    R(lag) = Σ c[i]·c[i+lag] / sqrt(Σ c[i]² · Σ c[i+lag]²)

with both sums over the ``n - lag`` overlapping samples.  Dividing by the
energy of the overlapping segments (instead of the full-window energy) keeps
R in [-1, 1] and does not penalise long lags for their shorter overlap, so an
exactly periodic signal scores 1.0 at its period.  Lags whose overlap is
shorter than ``min_overlap`` samples report 0.0 and never qualify.

A window of ``n`` samples can only score lags up to ``n - min_overlap``.  When
the best lag sits on that limit the true period may lie beyond it, so the
analyzer suppresses the tick instead of reporting the clamped lag.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np

from ..constants import SECONDS_PER_MINUTE, VARIANCE_EPSILON
from ..domain_models import AutocorrelationTable, WindowSnapshot

LOGGER = logging.getLogger(__name__)


def lag_to_rate(lag: int, sampling_rate_hz: float) -> float:
    """Convert a period in samples to strokes per minute."""
    return SECONDS_PER_MINUTE * float(sampling_rate_hz) / float(lag)


def rate_to_lag(rate_spm: float, sampling_rate_hz: float) -> int:
    return int(round(SECONDS_PER_MINUTE * float(sampling_rate_hz) / float(rate_spm)))


def scorable_lag_limit(n: int, max_lag: int, min_overlap: int) -> int:
    """Largest lag in the band that still leaves ``min_overlap`` overlapping samples."""
    return min(int(max_lag), int(n) - max(2, int(min_overlap)))


def has_variance(values: np.ndarray) -> bool:
    if values.size < 2:
        return False
    var = float(np.var(values))
    return math.isfinite(var) and var > VARIANCE_EPSILON


def normalized_autocorrelation(
    values: np.ndarray,
    min_lag: int,
    max_lag: int,
    *,
    min_overlap: int = 2,
) -> np.ndarray:
    """Return R(lag) for every lag in ``[min_lag, max_lag]`` (inclusive).

    The caller is responsible for rejecting zero-variance input; a degenerate
    overlap yields 0.0 rather than NaN.
    """
    if min_lag < 1 or max_lag < min_lag:
        raise ValueError(f"invalid lag range [{min_lag}, {max_lag}]")
    x = np.asarray(values, dtype=np.float64)
    n = int(x.size)
    out = np.zeros(max_lag - min_lag + 1, dtype=np.float64)
    if n < 2:
        return out
    centered = x - float(np.mean(x))
    # full[n - 1 + lag] == Σ c[i] · c[i + lag]
    full = np.correlate(centered, centered, mode="full")
    energy_prefix = np.concatenate(([0.0], np.cumsum(centered * centered)))
    total_energy = energy_prefix[-1]
    floor = max(2, int(min_overlap))
    for lag in range(min_lag, min(max_lag, n - 1) + 1):
        overlap = n - lag
        if overlap < floor:
            break
        head_energy = energy_prefix[overlap]
        tail_energy = total_energy - energy_prefix[lag]
        denom = math.sqrt(head_energy * tail_energy)
        if denom <= VARIANCE_EPSILON:
            continue
        out[lag - min_lag] = float(full[n - 1 + lag]) / denom
    return out


def select_lag(
    correlations: np.ndarray,
    min_lag: int,
    *,
    min_confidence: float,
    tie_tolerance: float = 0.0,
) -> int | None:
    """Pick the lag with the highest correlation, or ``None`` if unconvincing.

    Correlations within ``tie_tolerance`` of the maximum count as ties and the
    smallest such lag wins: the fastest plausible periodicity is preferred
    over its slower harmonics.
    """
    if correlations.size == 0:
        return None
    best = float(np.max(correlations))
    if not math.isfinite(best) or best < min_confidence:
        return None
    qualifying = np.flatnonzero(correlations >= best - tie_tolerance)
    return min_lag + int(qualifying[0])


@dataclass(frozen=True, slots=True)
class PeriodicityResult:
    table: AutocorrelationTable
    lag: int
    stroke_rate: float


class PeriodicityAnalyzer:
    """Per-session stroke-rate estimator.

    ``analyze`` returns ``None`` for ticks that must not publish anything
    (window not yet full, stationary signal, low confidence, or a best lag
    pinned at the overlap limit); the previous rate stays available as
    :attr:`stroke_rate`.
    """

    def __init__(
        self,
        sampling_rate_hz: int,
        min_lag: int,
        max_lag: int,
        *,
        min_confidence: float = 0.3,
        tie_tolerance: float = 1e-6,
        min_overlap: int = 10,
    ):
        self.sampling_rate_hz = int(sampling_rate_hz)
        self.min_lag = int(min_lag)
        self.max_lag = int(max_lag)
        self.min_confidence = float(min_confidence)
        self.tie_tolerance = float(tie_tolerance)
        self.min_overlap = max(2, int(min_overlap))
        self.stroke_rate: float | None = None
        self.suppressed_ticks = 0

    def analyze(self, snapshot: WindowSnapshot) -> PeriodicityResult | None:
        if not snapshot.is_full:
            return None
        values = snapshot.values
        if not has_variance(values):
            LOGGER.debug("Skipping autocorrelation tick: stationary signal")
            return None
        correlations = normalized_autocorrelation(
            values,
            self.min_lag,
            self.max_lag,
            min_overlap=self.min_overlap,
        )
        lag = select_lag(
            correlations,
            self.min_lag,
            min_confidence=self.min_confidence,
            tie_tolerance=self.tie_tolerance,
        )
        if lag is None:
            self.suppressed_ticks += 1
            LOGGER.debug(
                "Suppressing autocorrelation tick: peak %.3f below confidence %.3f",
                float(np.max(correlations)) if correlations.size else float("nan"),
                self.min_confidence,
            )
            return None
        limit = scorable_lag_limit(len(values), self.max_lag, self.min_overlap)
        if lag >= limit and limit < self.max_lag:
            self.suppressed_ticks += 1
            LOGGER.debug(
                "Suppressing autocorrelation tick: best lag %d at the %d-sample overlap limit",
                lag,
                self.min_overlap,
            )
            return None
        rate = lag_to_rate(lag, self.sampling_rate_hz)
        self.stroke_rate = rate
        table = AutocorrelationTable(
            min_lag=self.min_lag,
            values=tuple(correlations.tolist()),
            best_lag=lag,
            sampling_rate_hz=self.sampling_rate_hz,
        )
        return PeriodicityResult(table=table, lag=lag, stroke_rate=rate)
