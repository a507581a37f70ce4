from __future__ import annotations

import logging
import math
from typing import Any

from .constants import EARTH_RADIUS_M, MIN_SPEED_MPS, MPS_TO_KMH, SPLIT_DISTANCE_M
from .domain_models import GpsFix, GpsUpdate

LOGGER = logging.getLogger(__name__)


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in metres between two WGS84 coordinates."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = phi2 - phi1
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2.0) ** 2
    return 2.0 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


def split_seconds(speed_mps: float | None) -> float | None:
    """Time to cover 500 m at *speed_mps*, or ``None`` when not moving."""
    if not isinstance(speed_mps, (int, float)) or not math.isfinite(speed_mps):
        return None
    if speed_mps < MIN_SPEED_MPS:
        return None
    return SPLIT_DISTANCE_M / float(speed_mps)


class GPSDistanceTracker:
    """Accumulates distance and speed from successive position fixes.

    Fixes that are too inaccurate, out of order, or malformed are dropped and
    counted; the last known distance and speed are kept.
    """

    def __init__(self, gps_enabled: bool, accuracy_threshold_m: float = 20.0):
        self.gps_enabled = bool(gps_enabled)
        self.accuracy_threshold_m = float(accuracy_threshold_m)
        self.total_distance_m: float = 0.0
        self.speed_mps: float | None = None
        self.last_fix: GpsFix | None = None
        self.accepted_fixes = 0
        self.rejected_fixes = 0
        self.last_reject_reason: str | None = None

    def reset(self) -> None:
        self.total_distance_m = 0.0
        self.speed_mps = None
        self.last_fix = None
        self.accepted_fixes = 0
        self.rejected_fixes = 0
        self.last_reject_reason = None

    def _reject(self, reason: str, fix: GpsFix) -> None:
        self.rejected_fixes += 1
        self.last_reject_reason = reason
        LOGGER.debug("Dropping GPS fix at %r: %s", fix.timestamp, reason)

    def _accuracy_ok(self, fix: GpsFix) -> bool:
        accuracy = fix.accuracy
        if accuracy is None:
            return True
        if isinstance(accuracy, bool) or not isinstance(accuracy, (int, float)):
            return False
        return math.isfinite(accuracy) and 0 <= accuracy <= self.accuracy_threshold_m

    def add_fix(self, fix: GpsFix | None) -> GpsUpdate | None:
        """Accept or drop *fix*; return the segment update when one is produced.

        The first accepted fix only establishes the starting point.
        """
        if fix is None or not self.gps_enabled:
            return None
        if not fix.is_well_formed():
            self._reject("malformed", fix)
            return None
        if not self._accuracy_ok(fix):
            self._reject("inaccurate", fix)
            return None
        previous = self.last_fix
        if previous is not None and fix.timestamp <= previous.timestamp:
            self._reject("not_monotonic", fix)
            return None

        self.last_fix = fix
        self.accepted_fixes += 1
        if previous is None:
            return None
        distance_m = haversine_m(
            previous.latitude, previous.longitude, fix.latitude, fix.longitude
        )
        elapsed_s = fix.timestamp - previous.timestamp
        speed_mps = distance_m / elapsed_s
        self.total_distance_m += distance_m
        self.speed_mps = speed_mps
        return GpsUpdate(
            timestamp=float(fix.timestamp),
            distance_m=distance_m,
            total_distance_m=self.total_distance_m,
            speed_mps=speed_mps,
            split_s_per_500m=split_seconds(speed_mps),
        )

    def status_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable status snapshot — **no side effects**."""
        speed_kmh: float | None = None
        if isinstance(self.speed_mps, (int, float)):
            speed_kmh = round(float(self.speed_mps) * MPS_TO_KMH, 2)
        return {
            "gps_enabled": self.gps_enabled,
            "total_distance_m": round(self.total_distance_m, 2),
            "speed_mps": self.speed_mps,
            "speed_kmh": speed_kmh,
            "split_s_per_500m": split_seconds(self.speed_mps),
            "accepted_fixes": self.accepted_fixes,
            "rejected_fixes": self.rejected_fixes,
            "last_reject_reason": self.last_reject_reason,
            "accuracy_threshold_m": self.accuracy_threshold_m,
        }
