from __future__ import annotations

import asyncio
import threading

import pytest
from builders import CallRecorder, sinusoid_vectors
from conftest import FIXED_NOW_S, async_wait_until

from nearow.config import IngestConfig
from nearow.domain_models import GpsFix
from nearow.ingest_channel import IngestChannels
from nearow.processing import DataProcessor


@pytest.mark.asyncio
async def test_offered_readings_reach_processor_in_order(
    recording_processor: DataProcessor, recorder: CallRecorder
) -> None:
    channels = IngestChannels(recording_processor)
    channels.start()
    try:
        for i, vec in enumerate(sinusoid_vectors(100, 200)):
            assert channels.offer_accelerometer(vec, i / 50)
        await channels.join()
    finally:
        await channels.stop()
    assert len(recorder.of("acceleration")) == 200
    assert [t.best_lag for t in recorder.of("table")] == [100]


@pytest.mark.asyncio
async def test_missing_timestamp_is_stamped_on_offer(recording_processor: DataProcessor) -> None:
    channels = IngestChannels(recording_processor)
    channels.start()
    try:
        channels.offer_accelerometer((0.0, 0.0, 1.0))
        await channels.join()
    finally:
        await channels.stop()
    assert recording_processor.window.latest().timestamp == FIXED_NOW_S


@pytest.mark.asyncio
async def test_full_queue_drops_without_blocking(
    recording_processor: DataProcessor,
    recorder: CallRecorder,
    caplog: pytest.LogCaptureFixture,
) -> None:
    channels = IngestChannels(recording_processor, accel_queue_maxsize=3)
    # No consumer yet, so the queue fills up.
    with caplog.at_level("WARNING", logger="nearow.ingest_channel"):
        results = [channels.offer_accelerometer((0.0, 0.0, 1.0), i / 50) for i in range(5)]
    assert results == [True, True, True, False, False]
    assert channels.stats()["accel_dropped"] == 2
    assert channels.stats()["accel_pending"] == 3
    assert "queue full" in caplog.text

    channels.start()
    try:
        await channels.join()
    finally:
        await channels.stop()
    assert len(recorder.of("acceleration")) == 3


@pytest.mark.asyncio
async def test_gps_channel_feeds_distance_updates(
    recording_processor: DataProcessor, recorder: CallRecorder
) -> None:
    channels = IngestChannels(recording_processor)
    channels.start()
    try:
        assert channels.offer_gps(None) is False
        channels.offer_gps(GpsFix(timestamp=0.0, latitude=0.0, longitude=0.0))
        channels.offer_gps(GpsFix(timestamp=10.0, latitude=0.001, longitude=0.0))
        await channels.join()
    finally:
        await channels.stop()
    assert len(recorder.of("distance")) == 1
    assert channels.stats()["gps_dropped"] == 0


@pytest.mark.asyncio
async def test_threadsafe_offers_from_foreign_thread(
    recording_processor: DataProcessor, recorder: CallRecorder
) -> None:
    channels = IngestChannels(recording_processor)
    channels.start()

    def produce() -> None:
        for i in range(20):
            channels.offer_accelerometer_threadsafe((0.0, 0.0, 1.0), i / 50)
        channels.offer_gps_threadsafe(GpsFix(timestamp=0.0, latitude=0.0, longitude=0.0))

    try:
        thread = threading.Thread(target=produce)
        thread.start()
        await asyncio.to_thread(thread.join)
        assert await async_wait_until(lambda: len(recorder.of("acceleration")) == 20)
        await channels.join()
    finally:
        await channels.stop()
    assert recording_processor.intake_stats()["total_ingested_samples"] == 20


@pytest.mark.asyncio
async def test_consumer_survives_processor_errors(
    recording_processor: DataProcessor,
    recorder: CallRecorder,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    original = recording_processor.add_accelerometer_reading
    calls = {"n": 0}

    def flaky(vector, timestamp=None):
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("boom")
        original(vector, timestamp)

    monkeypatch.setattr(recording_processor, "add_accelerometer_reading", flaky)
    channels = IngestChannels(recording_processor)
    channels.start()
    try:
        channels.offer_accelerometer((0.0, 0.0, 1.0), 0.0)
        channels.offer_accelerometer((0.0, 0.0, 2.0), 0.02)
        await channels.join()
    finally:
        await channels.stop()
    assert recorder.of("acceleration") == [pytest.approx(2.0)]


@pytest.mark.asyncio
async def test_from_config_sizes_both_queues(recording_processor: DataProcessor) -> None:
    config = IngestConfig(accel_queue_maxsize=2, gps_queue_maxsize=1)
    channels = IngestChannels.from_config(recording_processor, config)
    stats = channels.stats()
    assert (stats["accel_capacity"], stats["gps_capacity"]) == (2, 1)
    assert [channels.offer_accelerometer((0.0, 0.0, 1.0), i / 50) for i in range(3)] == [True, True, False]
    fix = GpsFix(timestamp=0.0, latitude=0.0, longitude=0.0)
    assert channels.offer_gps(fix) is True
    assert channels.offer_gps(fix) is False
    await channels.stop()
