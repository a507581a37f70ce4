from __future__ import annotations

import dataclasses
import math

import numpy as np
import pytest

from nearow.domain_models import (
    AutocorrelationTable,
    GpsFix,
    SessionState,
    StrokeEvent,
    WindowSnapshot,
)


def test_session_state_values() -> None:
    assert str(SessionState.IDLE) == "idle"
    assert SessionState("recording") is SessionState.RECORDING


def test_stroke_event_is_frozen() -> None:
    event = StrokeEvent(timestamp=1.0, stroke_rate=30.0, index=1)
    with pytest.raises(dataclasses.FrozenInstanceError):
        event.index = 2  # type: ignore[misc]


def test_snapshot_arrays_are_read_only() -> None:
    snapshot = WindowSnapshot(timestamps=np.arange(4.0), values=np.ones(4), capacity=4)
    assert snapshot.is_full
    assert len(snapshot) == 4
    with pytest.raises(ValueError):
        snapshot.values[0] = 5.0


@pytest.mark.parametrize(
    "fix, ok",
    [
        (GpsFix(timestamp=1.0, latitude=51.5, longitude=-0.1), True),
        (GpsFix(timestamp=1.0, latitude=-90.0, longitude=180.0), True),
        (GpsFix(timestamp=1.0, latitude=90.5, longitude=0.0), False),
        (GpsFix(timestamp=math.nan, latitude=0.0, longitude=0.0), False),
        (GpsFix(timestamp=1.0, latitude=True, longitude=0.0), False),
    ],
)
def test_gps_fix_well_formed(fix: GpsFix, ok: bool) -> None:
    assert fix.is_well_formed() is ok


def test_autocorrelation_table_lookup() -> None:
    table = AutocorrelationTable(min_lag=60, values=(0.1, 0.9, 0.4), best_lag=61, sampling_rate_hz=50)
    assert table.max_lag == 62
    assert list(table.lags) == [60, 61, 62]
    assert table.best_correlation == 0.9
    assert table.value_at(62) == 0.4
    assert list(table) == [(60, 0.1), (61, 0.9), (62, 0.4)]
    with pytest.raises(KeyError):
        table.value_at(63)
