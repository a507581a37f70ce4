"""Pydantic models for recorded input and published output.

Input records are the lines of a JSONL recording replayed by
:mod:`nearow.replay_cli`; output events are the JSON form of every subscriber
callback.  The ``schema_version`` field lets recordings and tooling evolve
independently.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .domain_models import AutocorrelationTable, GpsFix, GpsUpdate, StrokeEvent

# Bump this when the event shape changes in a backwards-incompatible way.
SCHEMA_VERSION: str = "1"


# ---------------------------------------------------------------------------
# Recorded input
# ---------------------------------------------------------------------------


class AccelRecord(BaseModel):
    """One raw linear-acceleration sample (m/s², gravity removed)."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["accel"]
    t: float
    x: float
    y: float
    z: float

    @property
    def vector(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)


class GpsRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["gps"]
    t: float
    lat: float
    lon: float
    speed: float | None = None
    accuracy: float | None = None

    def to_fix(self) -> GpsFix:
        return GpsFix(
            timestamp=self.t,
            latitude=self.lat,
            longitude=self.lon,
            speed=self.speed,
            accuracy=self.accuracy,
        )


RecordingLine = Annotated[AccelRecord | GpsRecord, Field(discriminator="type")]
RECORDING_LINE_ADAPTER: TypeAdapter[AccelRecord | GpsRecord] = TypeAdapter(RecordingLine)


# ---------------------------------------------------------------------------
# Published output
# ---------------------------------------------------------------------------


class _Event(BaseModel):
    schema_version: str = SCHEMA_VERSION


class AccelerationReadingEvent(_Event):
    event: Literal["acceleration"] = "acceleration"
    value: float


class AutocorrelationTableEvent(_Event):
    """Correlation per lag; ``values[i]`` belongs to lag ``min_lag + i``."""

    event: Literal["autocorrelation"] = "autocorrelation"
    min_lag: int
    max_lag: int
    best_lag: int
    values: list[float]

    @classmethod
    def from_table(cls, table: AutocorrelationTable) -> AutocorrelationTableEvent:
        return cls(
            min_lag=table.min_lag,
            max_lag=table.max_lag,
            best_lag=table.best_lag,
            values=list(table.values),
        )


class StrokeRateEvent(_Event):
    event: Literal["stroke_rate"] = "stroke_rate"
    stroke_rate: float


class StrokeTakenEvent(_Event):
    event: Literal["stroke"] = "stroke"
    index: int
    timestamp: float
    stroke_rate: float

    @classmethod
    def from_stroke(cls, stroke: StrokeEvent) -> StrokeTakenEvent:
        return cls(index=stroke.index, timestamp=stroke.timestamp, stroke_rate=stroke.stroke_rate)


class DistanceEvent(_Event):
    event: Literal["distance"] = "distance"
    timestamp: float
    distance_m: float
    total_distance_m: float
    speed_mps: float
    split_s_per_500m: float | None = None

    @classmethod
    def from_update(cls, update: GpsUpdate) -> DistanceEvent:
        return cls(
            timestamp=update.timestamp,
            distance_m=update.distance_m,
            total_distance_m=update.total_distance_m,
            speed_mps=update.speed_mps,
            split_s_per_500m=update.split_s_per_500m,
        )


class SessionSummary(BaseModel):
    model_config = ConfigDict(extra="allow")

    schema_version: str = SCHEMA_VERSION
    stroke_count: int
    stroke_rate: float | None = None
    mean_stroke_rate: float | None = None
    total_distance_m: float = 0.0
    accel_records: int = 0
    gps_records: int = 0
    invalid_lines: int = 0
