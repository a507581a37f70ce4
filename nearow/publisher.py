"""Single-subscriber result dispatch.

``ResultPublisher`` delivers pipeline outputs to at most one subscriber, in the
order they were produced.  Subscribing returns a :class:`SubscriptionHandle`;
a newer subscription atomically replaces the older one, and every queued
dispatch is stamped with the subscription generation that was current when it
was produced, so a replacement never receives history and the replaced
subscriber never receives anything after the swap.

Two delivery modes:

- inline (default): callbacks run on the producing thread.  Used by the replay
  CLI and by tests.
- threaded: producers only enqueue; a dedicated dispatch thread runs the
  callbacks.  Acceleration readings and autocorrelation tables are dropped
  when the queue is full; rate updates, stroke events and distance updates are
  always enqueued.  After :meth:`close` nothing is enqueued any more; refused
  rate, stroke and distance dispatches are counted and logged.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any

from .config import PublisherConfig
from .domain_models import AutocorrelationTable, GpsUpdate, StrokeEvent

LOGGER = logging.getLogger(__name__)

_DROP_LOG_INTERVAL_S: float = 10.0
"""Minimum interval between logged queue-drop warnings."""

_FAILURE_LOG_INTERVAL_S: float = 10.0
"""Minimum interval between logged subscriber-failure warnings."""

ON_ACCELERATION = "on_new_acceleration_reading"
ON_AUTOCORRELATION = "on_new_autocorrelation_table"
ON_RATE = "on_stroke_rate_update"
ON_STROKE = "on_stroke_taken"
ON_DISTANCE = "on_distance_update"

DROPPABLE_CALLBACKS: frozenset[str] = frozenset({ON_ACCELERATION, ON_AUTOCORRELATION})


class DataUpdateListener:
    """Subscriber interface.  Override the callbacks you care about."""

    def on_new_acceleration_reading(self, reading: float) -> None:
        pass

    def on_new_autocorrelation_table(self, table: AutocorrelationTable) -> None:
        pass

    def on_stroke_rate_update(self, stroke_rate: float) -> None:
        pass

    def on_stroke_taken(self, stroke: StrokeEvent) -> None:
        pass

    def on_distance_update(self, update: GpsUpdate) -> None:
        pass


@dataclass(frozen=True, slots=True, eq=False)
class SubscriptionHandle:
    listener: Any
    generation: int


@dataclass(slots=True)
class _Dispatch:
    callback: str
    payload: Any
    generation: int


class ResultPublisher:
    def __init__(
        self,
        *,
        threaded: bool = False,
        queue_maxsize: int = 256,
        drop_log_interval_s: float = _DROP_LOG_INTERVAL_S,
    ):
        self._threaded = bool(threaded)
        self._queue_maxsize = max(1, int(queue_maxsize))
        self._drop_log_interval_s = max(0.0, float(drop_log_interval_s))
        self._handle: SubscriptionHandle | None = None
        self._generation = 0
        # Held for the whole of one delivery; subscribe() takes it too, so a
        # swap can never land in the middle of a callback.
        self._deliver_lock = threading.RLock()
        self._cond = threading.Condition()
        self._queue: deque[_Dispatch] = deque()
        self._in_flight = 0
        self._closing = False
        self._thread: threading.Thread | None = None
        self._last_drop_log_ts = 0.0
        self._suppressed_drop_warnings = 0
        self._last_failure_log_ts = 0.0
        self._delivered = 0
        self._dropped = 0
        self._failed = 0
        self._refused = 0
        self._last_refusal_log_ts = 0.0
        if self._threaded:
            self._thread = threading.Thread(
                target=self._run,
                name="nearow-publisher",
                daemon=True,
            )
            self._thread.start()

    @classmethod
    def from_config(cls, config: PublisherConfig) -> ResultPublisher:
        return cls(
            threaded=config.threaded,
            queue_maxsize=config.queue_maxsize,
            drop_log_interval_s=config.drop_log_interval_s,
        )

    @property
    def threaded(self) -> bool:
        return self._threaded

    @property
    def queue_maxsize(self) -> int:
        return self._queue_maxsize

    # -- subscription ---------------------------------------------------------

    def subscribe(self, listener: Any) -> SubscriptionHandle:
        """Make *listener* the only subscriber and return its handle."""
        with self._deliver_lock:
            self._generation += 1
            handle = SubscriptionHandle(listener=listener, generation=self._generation)
            self._handle = handle
        LOGGER.debug("Subscriber replaced (generation %d)", handle.generation)
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> bool:
        """Drop *handle* if it is still the active subscription."""
        with self._deliver_lock:
            if self._handle is not handle:
                return False
            self._generation += 1
            self._handle = None
            return True

    def is_active(self, handle: SubscriptionHandle) -> bool:
        with self._deliver_lock:
            return self._handle is handle

    @property
    def has_subscriber(self) -> bool:
        return self._handle is not None

    # -- producer side --------------------------------------------------------

    def publish_acceleration(self, reading: float) -> None:
        self._publish(ON_ACCELERATION, float(reading))

    def publish_autocorrelation(self, table: AutocorrelationTable) -> None:
        self._publish(ON_AUTOCORRELATION, table)

    def publish_stroke_rate(self, stroke_rate: float) -> None:
        self._publish(ON_RATE, float(stroke_rate))

    def publish_stroke(self, stroke: StrokeEvent) -> None:
        self._publish(ON_STROKE, stroke)

    def publish_distance(self, update: GpsUpdate) -> None:
        self._publish(ON_DISTANCE, update)

    def _publish(self, callback: str, payload: Any) -> None:
        handle = self._handle
        if handle is None:
            return
        item = _Dispatch(callback=callback, payload=payload, generation=handle.generation)
        if not self._threaded:
            self._deliver(item)
            return
        with self._cond:
            if self._closing:
                self._note_refusal(callback)
                return
            if callback in DROPPABLE_CALLBACKS and len(self._queue) >= self._queue_maxsize:
                self._dropped += 1
                self._note_drop(callback)
                return
            self._queue.append(item)
            self._cond.notify_all()

    def _note_refusal(self, callback: str) -> None:
        if callback in DROPPABLE_CALLBACKS:
            self._dropped += 1
            return
        self._refused += 1
        now = time.monotonic()
        if (now - self._last_refusal_log_ts) >= self._drop_log_interval_s or self._refused == 1:
            self._last_refusal_log_ts = now
            LOGGER.warning(
                "Publisher closed; refusing %s (%d refused so far)",
                callback,
                self._refused,
            )

    def _note_drop(self, callback: str) -> None:
        now = time.monotonic()
        if (now - self._last_drop_log_ts) >= self._drop_log_interval_s:
            suppressed = self._suppressed_drop_warnings
            self._suppressed_drop_warnings = 0
            self._last_drop_log_ts = now
            LOGGER.warning(
                "Publisher queue full; dropping %s (suppressed %d additional drop warnings)",
                callback,
                suppressed,
            )
        else:
            self._suppressed_drop_warnings += 1

    # -- delivery -------------------------------------------------------------

    def _deliver(self, item: _Dispatch) -> None:
        with self._deliver_lock:
            handle = self._handle
            if handle is None or handle.generation != item.generation:
                return
            method = getattr(handle.listener, item.callback, None)
            if method is None:
                return
            try:
                method(item.payload)
                self._delivered += 1
            except Exception:
                self._failed += 1
                now = time.monotonic()
                if (now - self._last_failure_log_ts) >= _FAILURE_LOG_INTERVAL_S:
                    self._last_failure_log_ts = now
                    LOGGER.warning(
                        "Subscriber callback %s failed; continuing.",
                        item.callback,
                        exc_info=True,
                    )

    def _run(self) -> None:
        while True:
            with self._cond:
                while not self._queue and not self._closing:
                    self._cond.wait()
                if not self._queue:
                    return
                item = self._queue.popleft()
                self._in_flight += 1
            try:
                self._deliver(item)
            finally:
                with self._cond:
                    self._in_flight -= 1
                    self._cond.notify_all()

    def wait_idle(self, timeout_s: float | None = None) -> bool:
        """Block until every queued dispatch has been delivered."""
        if not self._threaded:
            return True
        deadline = None if timeout_s is None else time.monotonic() + timeout_s
        with self._cond:
            while self._queue or self._in_flight:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._cond.wait(remaining)
        return True

    def close(self, timeout_s: float = 2.0) -> None:
        """Deliver what is queued, then stop the dispatch thread.  Idempotent."""
        with self._cond:
            self._closing = True
            self._cond.notify_all()
        if self._thread is not None:
            self._thread.join(timeout=timeout_s)
            if self._thread.is_alive():
                LOGGER.warning("Publisher dispatch thread did not stop within %.1fs", timeout_s)

    # -- observability --------------------------------------------------------

    def stats(self) -> dict[str, Any]:
        with self._cond:
            pending = len(self._queue)
        return {
            "threaded": self._threaded,
            "pending": pending,
            "delivered": self._delivered,
            "dropped": self._dropped,
            "failed": self._failed,
            "refused": self._refused,
            "has_subscriber": self._handle is not None,
        }
