from __future__ import annotations

import logging
import math
from copy import deepcopy
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .constants import SECONDS_PER_MINUTE

LOGGER = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    """Raised when a configuration cannot be used to start a session."""


DEFAULT_CONFIG: dict[str, Any] = {
    "processing": {
        "sampling_rate_hz": 50,
        "window_seconds": 4,
        "min_stroke_rate": 15.0,
        "max_stroke_rate": 50.0,
        "smoothing_factor": 0.5,
        "peak_threshold_multiplier": 1.5,
        "min_correlation_confidence": 0.3,
        "analysis_interval_samples": 10,
        "lag_tie_tolerance": 1e-6,
        "min_overlap_samples": 10,
    },
    "gps": {
        "enabled": True,
        "accuracy_threshold_m": 20.0,
    },
    "publisher": {
        "threaded": False,
        "queue_maxsize": 256,
        "drop_log_interval_s": 10.0,
    },
    "ingest": {
        "accel_queue_maxsize": 512,
        "gps_queue_maxsize": 64,
    },
}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


@dataclass(slots=True)
class ProcessingConfig:
    sampling_rate_hz: int = 50
    window_seconds: int = 4
    min_stroke_rate: float = 15.0
    max_stroke_rate: float = 50.0
    smoothing_factor: float = 0.5
    peak_threshold_multiplier: float = 1.5
    min_correlation_confidence: float = 0.3
    analysis_interval_samples: int = 10
    lag_tie_tolerance: float = 1e-6
    min_overlap_samples: int = 10

    def __post_init__(self) -> None:
        # --- positive-integer guards ------------------------------------------------
        for field_name in ("sampling_rate_hz", "window_seconds", "analysis_interval_samples"):
            val = getattr(self, field_name)
            if val < 1:
                LOGGER.warning(
                    "processing.%s=%s is below minimum 1 — clamped to 1",
                    field_name,
                    val,
                )
                object.__setattr__(self, field_name, 1)

        # --- smoothing_factor must lie in (0, 1] ------------------------------------
        if not (0.0 < self.smoothing_factor <= 1.0):
            clamped = min(1.0, max(0.01, self.smoothing_factor))
            LOGGER.warning(
                "processing.smoothing_factor=%s is outside (0, 1] — clamped to %s",
                self.smoothing_factor,
                clamped,
            )
            object.__setattr__(self, "smoothing_factor", clamped)

        if self.peak_threshold_multiplier < 0:
            LOGGER.warning(
                "processing.peak_threshold_multiplier=%s is negative — clamped to 0",
                self.peak_threshold_multiplier,
            )
            object.__setattr__(self, "peak_threshold_multiplier", 0.0)

        if self.lag_tie_tolerance < 0:
            object.__setattr__(self, "lag_tie_tolerance", 0.0)

        if self.min_overlap_samples < 2:
            LOGGER.warning(
                "processing.min_overlap_samples=%s is below minimum 2 — clamped to 2",
                self.min_overlap_samples,
            )
            object.__setattr__(self, "min_overlap_samples", 2)

    @property
    def window_capacity(self) -> int:
        return self.sampling_rate_hz * self.window_seconds

    @property
    def refractory_s(self) -> float:
        """Minimum spacing between accepted stroke peaks."""
        return SECONDS_PER_MINUTE / self.max_stroke_rate

    def lag_range(self) -> tuple[int, int]:
        """Return ``(min_lag, max_lag)`` in samples for the stroke-rate band."""
        samples_per_minute = SECONDS_PER_MINUTE * self.sampling_rate_hz
        min_lag = max(1, int(round(samples_per_minute / self.max_stroke_rate)))
        max_lag = max(min_lag, int(round(samples_per_minute / self.min_stroke_rate)))
        return min_lag, max_lag

    def resolvable_min_rate(self) -> float:
        """Slowest rate whose period still leaves ``min_overlap_samples`` of overlap."""
        longest_lag = min(self.lag_range()[1], self.window_capacity - self.min_overlap_samples)
        return SECONDS_PER_MINUTE * self.sampling_rate_hz / max(1, longest_lag)

    def validate(self) -> None:
        """Reject settings no session can run with.

        Called when a recording session starts, never mid-stream.
        """
        for name in ("min_stroke_rate", "max_stroke_rate"):
            val = getattr(self, name)
            if not isinstance(val, (int, float)) or not math.isfinite(val) or val <= 0:
                raise ConfigurationError(f"processing.{name} must be a positive number, got {val!r}")
        if self.min_stroke_rate >= self.max_stroke_rate:
            raise ConfigurationError(
                "processing.min_stroke_rate must be below max_stroke_rate, got "
                f"{self.min_stroke_rate!r} >= {self.max_stroke_rate!r}"
            )
        if not (0.0 <= self.min_correlation_confidence <= 1.0):
            raise ConfigurationError(
                "processing.min_correlation_confidence must be within [0, 1], got "
                f"{self.min_correlation_confidence!r}"
            )
        min_lag, _ = self.lag_range()
        if min_lag + self.min_overlap_samples > self.window_capacity:
            raise ConfigurationError(
                f"window of {self.window_capacity} samples cannot score lag {min_lag} "
                f"(max_stroke_rate={self.max_stroke_rate!r}) with "
                f"min_overlap_samples={self.min_overlap_samples}"
            )


@dataclass(slots=True)
class GPSConfig:
    enabled: bool = True
    accuracy_threshold_m: float = 20.0

    def __post_init__(self) -> None:
        if not isinstance(self.accuracy_threshold_m, (int, float)) or self.accuracy_threshold_m <= 0:
            LOGGER.warning(
                "gps.accuracy_threshold_m=%s is not positive — using 20.0",
                self.accuracy_threshold_m,
            )
            object.__setattr__(self, "accuracy_threshold_m", 20.0)


@dataclass(slots=True)
class PublisherConfig:
    threaded: bool = False
    queue_maxsize: int = 256
    drop_log_interval_s: float = 10.0

    def __post_init__(self) -> None:
        if not isinstance(self.queue_maxsize, int) or self.queue_maxsize < 1:
            raise ValueError(f"PublisherConfig.queue_maxsize must be ≥1, got {self.queue_maxsize!r}")
        if self.drop_log_interval_s < 0:
            object.__setattr__(self, "drop_log_interval_s", 0.0)


@dataclass(slots=True)
class IngestConfig:
    accel_queue_maxsize: int = 512
    gps_queue_maxsize: int = 64

    def __post_init__(self) -> None:
        for name in ("accel_queue_maxsize", "gps_queue_maxsize"):
            val = getattr(self, name)
            if not isinstance(val, int) or val < 1:
                raise ValueError(f"IngestConfig.{name} must be ≥1, got {val!r}")


@dataclass(slots=True)
class AppConfig:
    processing: ProcessingConfig
    gps: GPSConfig
    publisher: PublisherConfig
    ingest: IngestConfig
    config_path: Path | None = None


def documented_default_config() -> dict[str, Any]:
    """Return runtime defaults in the shape documented by config.example.yaml."""
    return deepcopy(DEFAULT_CONFIG)


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a YAML object at the top level.")
        return data


def build_config(overrides: dict[str, Any] | None = None, config_path: Path | None = None) -> AppConfig:
    merged = _deep_merge(DEFAULT_CONFIG, overrides or {})
    proc = merged["processing"]
    gps = merged["gps"]
    pub = merged["publisher"]
    ingest = merged["ingest"]
    return AppConfig(
        processing=ProcessingConfig(
            sampling_rate_hz=int(proc["sampling_rate_hz"]),
            window_seconds=int(proc["window_seconds"]),
            min_stroke_rate=float(proc["min_stroke_rate"]),
            max_stroke_rate=float(proc["max_stroke_rate"]),
            smoothing_factor=float(proc["smoothing_factor"]),
            peak_threshold_multiplier=float(proc["peak_threshold_multiplier"]),
            min_correlation_confidence=float(proc["min_correlation_confidence"]),
            analysis_interval_samples=int(proc["analysis_interval_samples"]),
            lag_tie_tolerance=float(proc.get("lag_tie_tolerance", 1e-6)),
            min_overlap_samples=int(proc.get("min_overlap_samples", 10)),
        ),  # NOTE: ProcessingConfig.__post_init__ clamps; validate() runs at session start
        gps=GPSConfig(
            enabled=bool(gps["enabled"]),
            accuracy_threshold_m=float(gps["accuracy_threshold_m"]),
        ),
        publisher=PublisherConfig(
            threaded=bool(pub.get("threaded", False)),
            queue_maxsize=max(1, int(pub["queue_maxsize"])),
            drop_log_interval_s=float(pub.get("drop_log_interval_s", 10.0)),
        ),
        ingest=IngestConfig(
            accel_queue_maxsize=max(1, int(ingest["accel_queue_maxsize"])),
            gps_queue_maxsize=max(1, int(ingest["gps_queue_maxsize"])),
        ),
        config_path=config_path,
    )


def load_config(config_path: Path | None = None) -> AppConfig:
    if config_path is None:
        return build_config()
    path = config_path.resolve()
    app_config = build_config(_read_config_file(path), config_path=path)
    LOGGER.info(
        "Loaded config=%s sampling_rate_hz=%d window_seconds=%d band=%g-%g spm",
        app_config.config_path,
        app_config.processing.sampling_rate_hz,
        app_config.processing.window_seconds,
        app_config.processing.min_stroke_rate,
        app_config.processing.max_stroke_rate,
    )
    return app_config
