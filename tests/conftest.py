"""Shared fixtures and polling helpers for the nearow test suite."""

from __future__ import annotations

import asyncio
import time

import pytest
from builders import CallRecorder

from nearow.processing import DataProcessor

FIXED_NOW_S = 7.0
"""Clock value seen by ``recording_processor`` for unstamped readings."""


def wait_until(predicate, timeout_s: float = 2.0, step_s: float = 0.01) -> bool:
    """Poll *predicate* until it returns truthy, or *timeout_s* expires."""
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(step_s)
    return False


async def async_wait_until(predicate, timeout_s: float = 2.0, step_s: float = 0.01) -> bool:
    """Async version of :func:`wait_until`; yields to the event loop between polls."""
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(step_s)
    return False


@pytest.fixture
def recorder() -> CallRecorder:
    return CallRecorder()


@pytest.fixture
def recording_processor(recorder: CallRecorder) -> DataProcessor:
    """Processor with default config, ``recorder`` subscribed, session started."""
    processor = DataProcessor(clock=lambda: FIXED_NOW_S)
    processor.subscribe(recorder)
    processor.start()
    return processor
