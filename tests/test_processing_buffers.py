"""Unit tests for nearow.processing.buffers.SignalWindow."""

from __future__ import annotations

import threading

import numpy as np
import pytest

from nearow.domain_models import Sample
from nearow.processing.buffers import SignalWindow


def _fill(window: SignalWindow, n: int, start: int = 0) -> None:
    for i in range(start, start + n):
        window.append(Sample(timestamp=float(i), magnitude=float(i) * 10.0))


class TestSignalWindow:
    def test_create_window(self) -> None:
        window = SignalWindow(200)
        assert window.capacity == 200
        assert len(window) == 0
        assert not window.is_full
        assert window.latest() is None
        assert len(window.snapshot()) == 0

    def test_invalid_capacity(self) -> None:
        with pytest.raises(ValueError):
            SignalWindow(0)

    def test_append_below_capacity_keeps_order(self) -> None:
        window = SignalWindow(5)
        _fill(window, 3)
        snap = window.snapshot()
        assert len(window) == 3
        assert snap.timestamps.tolist() == [0.0, 1.0, 2.0]
        assert snap.values.tolist() == [0.0, 10.0, 20.0]
        assert not snap.is_full

    def test_overflow_overwrites_oldest(self) -> None:
        window = SignalWindow(5)
        _fill(window, 12)
        snap = window.snapshot()
        assert len(window) == 5
        assert snap.timestamps.tolist() == [7.0, 8.0, 9.0, 10.0, 11.0]
        assert snap.is_full
        assert window.latest() == Sample(timestamp=11.0, magnitude=110.0)

    def test_once_full_stays_full(self) -> None:
        window = SignalWindow(4)
        _fill(window, 4)
        for i in range(20):
            _fill(window, 1, start=100 + i)
            assert window.is_full
            assert len(window) == 4

    def test_snapshot_is_read_only_and_detached(self) -> None:
        window = SignalWindow(4)
        _fill(window, 4)
        snap = window.snapshot()
        with pytest.raises(ValueError):
            snap.values[0] = 99.0
        _fill(window, 2, start=50)
        # Later appends never show through an earlier snapshot.
        assert snap.timestamps.tolist() == [0.0, 1.0, 2.0, 3.0]

    def test_reset_clears(self) -> None:
        window = SignalWindow(4)
        _fill(window, 6)
        generation = window.generation
        window.reset()
        assert len(window) == 0
        assert not window.is_full
        assert window.generation > generation
        _fill(window, 1, start=40)
        assert window.snapshot().timestamps.tolist() == [40.0]

    def test_concurrent_append_and_snapshot_never_tear(self) -> None:
        window = SignalWindow(64)
        stop = threading.Event()
        problems: list[str] = []

        def _writer() -> None:
            i = 0
            while not stop.is_set():
                window.append(Sample(timestamp=float(i), magnitude=float(i) * 10.0))
                i += 1

        def _reader() -> None:
            for _ in range(2000):
                snap = window.snapshot()
                if len(snap) < 2:
                    continue
                if not np.all(np.diff(snap.timestamps) == 1.0):
                    problems.append("non-contiguous timestamps")
                if not np.array_equal(snap.values, snap.timestamps * 10.0):
                    problems.append("value/timestamp mismatch")

        writer = threading.Thread(target=_writer)
        writer.start()
        try:
            _reader()
        finally:
            stop.set()
            writer.join()
        assert problems == []
