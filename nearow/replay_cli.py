"""Replay a JSONL sensor recording through the stroke engine.

Each input line is either an accelerometer record::

    {"type": "accel", "t": 12.34, "x": 0.1, "y": -0.2, "z": 1.5}

or a GPS record::

    {"type": "gps", "t": 12.0, "lat": 51.5, "lon": -0.12, "accuracy": 5.0}

Published events are written as JSONL (``--output``) and a session summary is
printed, which makes it easy to check configured thresholds against reference
recordings.
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import TextIO

from pydantic import ValidationError

from .config import ConfigurationError, build_config, load_config
from .domain_models import AutocorrelationTable, GpsUpdate, StrokeEvent
from .events import (
    RECORDING_LINE_ADAPTER,
    AccelerationReadingEvent,
    AccelRecord,
    AutocorrelationTableEvent,
    DistanceEvent,
    SessionSummary,
    StrokeRateEvent,
    StrokeTakenEvent,
)
from .json_utils import safe_json_dumps
from .processing import DataProcessor
from .publisher import DataUpdateListener

LOGGER = logging.getLogger(__name__)


class EventRecorder(DataUpdateListener):
    """Subscriber that serialises every callback it receives."""

    def __init__(self, out: TextIO | None = None, include_acceleration: bool = False):
        self.out = out
        self.include_acceleration = include_acceleration
        self.strokes: list[StrokeEvent] = []
        self.rate_updates: list[float] = []
        self.tables = 0
        self.distance_m = 0.0

    def _write(self, event) -> None:
        if self.out is not None:
            self.out.write(safe_json_dumps(event.model_dump()) + "\n")

    def on_new_acceleration_reading(self, reading: float) -> None:
        if self.include_acceleration:
            self._write(AccelerationReadingEvent(value=reading))

    def on_new_autocorrelation_table(self, table: AutocorrelationTable) -> None:
        self.tables += 1
        self._write(AutocorrelationTableEvent.from_table(table))

    def on_stroke_rate_update(self, stroke_rate: float) -> None:
        self.rate_updates.append(stroke_rate)
        self._write(StrokeRateEvent(stroke_rate=stroke_rate))

    def on_stroke_taken(self, stroke: StrokeEvent) -> None:
        self.strokes.append(stroke)
        self._write(StrokeTakenEvent.from_stroke(stroke))

    def on_distance_update(self, update: GpsUpdate) -> None:
        self.distance_m = update.total_distance_m
        self._write(DistanceEvent.from_update(update))


def replay_lines(
    lines: Iterable[str],
    processor: DataProcessor,
    recorder: EventRecorder,
) -> SessionSummary:
    processor.subscribe(recorder)
    processor.start()
    accel_records = 0
    gps_records = 0
    invalid_lines = 0
    for line_no, line in enumerate(lines, start=1):
        text = line.strip()
        if not text:
            continue
        try:
            record = RECORDING_LINE_ADAPTER.validate_json(text)
        except ValidationError as exc:
            invalid_lines += 1
            LOGGER.debug("Skipping invalid recording line %d: %s", line_no, exc)
            continue
        if isinstance(record, AccelRecord):
            accel_records += 1
            processor.add_accelerometer_reading(record.vector, record.t)
        else:
            gps_records += 1
            processor.add_gps_reading(record.to_fix())
    processor.wait_idle(timeout_s=5.0)
    processor.stop()
    if invalid_lines:
        LOGGER.warning("Skipped %d invalid recording line(s)", invalid_lines)

    mean_rate: float | None = None
    if recorder.strokes:
        mean_rate = sum(s.stroke_rate for s in recorder.strokes) / len(recorder.strokes)
    return SessionSummary(
        stroke_count=processor.stroke_count,
        stroke_rate=processor.stroke_rate,
        mean_stroke_rate=mean_rate,
        total_distance_m=processor.total_distance_m,
        accel_records=accel_records,
        gps_records=gps_records,
        invalid_lines=invalid_lines,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replay a rowing sensor recording")
    parser.add_argument("input", type=Path, help="Input recording (.jsonl)")
    parser.add_argument("--config", type=Path, default=None, help="Path to config YAML")
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write published events as JSONL to this path",
    )
    parser.add_argument(
        "--include-acceleration",
        action="store_true",
        help="Also write every smoothed acceleration reading",
    )
    parser.add_argument("--no-gps", action="store_true", help="Ignore GPS records")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s: %(message)s")
    if not args.input.exists():
        print(f"Error: input file not found: {args.input}", file=sys.stderr)
        return 1
    try:
        config = load_config(args.config) if args.config is not None else build_config()
    except (ValueError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    if args.no_gps:
        config.gps.enabled = False

    processor = DataProcessor.from_config(config)
    out: TextIO | None = None
    try:
        if args.output is not None:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            out = args.output.open("w", encoding="utf-8")
        recorder = EventRecorder(out=out, include_acceleration=args.include_acceleration)
        with args.input.open("r", encoding="utf-8") as f:
            summary = replay_lines(f, processor, recorder)
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        processor.publisher.close()
        if out is not None:
            out.close()

    print(summary.model_dump_json(indent=2))
    if args.output is not None:
        print(f"wrote events: {args.output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
