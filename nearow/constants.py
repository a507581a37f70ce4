"""Shared physical and analysis constants — single source of truth.

Every numeric literal that appears in more than one module should live here
so that a change only needs to happen in one place.
"""

from __future__ import annotations

from typing import Final

# ---------------------------------------------------------------------------
# Unit conversion
# ---------------------------------------------------------------------------
SECONDS_PER_MINUTE: Final[float] = 60.0
"""Strokes-per-minute ↔ Hz conversion factor (spm = Hz × 60)."""

MPS_TO_KMH: Final[float] = 3.6
"""Multiply metres-per-second by this to get kilometres-per-hour."""

SPLIT_DISTANCE_M: Final[float] = 500.0
"""Reference distance for rowing splits (time per 500 m)."""

# ---------------------------------------------------------------------------
# Geodesy
# ---------------------------------------------------------------------------
EARTH_RADIUS_M: Final[float] = 6_371_008.8
"""Mean Earth radius (IUGG) used for great-circle distances."""

# ---------------------------------------------------------------------------
# Numerical guards
# ---------------------------------------------------------------------------
VARIANCE_EPSILON: Final[float] = 1e-12
"""Signal variance at or below this is treated as a stationary signal."""

MIN_SPEED_MPS: Final[float] = 1e-3
"""Speeds below this have no meaningful split and report ``None``."""
