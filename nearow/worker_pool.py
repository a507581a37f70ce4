"""Thread-pool wrapper that takes analysis ticks off the ingestion path.

Ingestion only ever *offers* work: when the backlog is already at
``max_pending`` the tick is skipped instead of queued, so a slow analysis
never builds an unbounded queue or stalls the sensor callback.  With the
default single worker, ticks run one at a time in submission order.

Usage::

    pool = WorkerPool()
    pool.try_submit(run_tick, snapshot, epoch)
    pool.shutdown()
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, TypeVar

LOGGER = logging.getLogger(__name__)

R = TypeVar("R")

DEFAULT_MAX_WORKERS = 1
DEFAULT_MAX_PENDING = 2


class WorkerPool:
    """Fixed-size thread pool with bounded backlog and lightweight metrics.

    Parameters
    ----------
    max_workers:
        Number of worker threads.  Keep at 1 to serialize analysis ticks.
    max_pending:
        Submitted-but-unfinished tasks allowed before :meth:`try_submit`
        starts skipping.
    thread_name_prefix:
        Prefix for worker-thread names (aids debugging / profiling).
    """

    def __init__(
        self,
        max_workers: int = DEFAULT_MAX_WORKERS,
        max_pending: int = DEFAULT_MAX_PENDING,
        thread_name_prefix: str = "nearow-analysis",
    ) -> None:
        self._max_workers = max(1, int(max_workers))
        self._max_pending = max(1, int(max_pending))
        self._executor = ThreadPoolExecutor(
            max_workers=self._max_workers,
            thread_name_prefix=thread_name_prefix,
        )
        self._pending = 0
        self._total_tasks: int = 0
        self._skipped_tasks: int = 0
        self._failed_tasks: int = 0
        self._total_run_s: float = 0.0
        self._metrics_lock = threading.Lock()
        self._idle = threading.Condition(self._metrics_lock)
        self._alive = True

    # -- Public API -----------------------------------------------------------

    def try_submit(self, fn: Callable[..., R], *args: Any) -> Future[R] | None:
        """Submit *fn* unless the backlog is full; returns ``None`` when skipped."""
        if not self._alive:
            raise RuntimeError("WorkerPool is shut down")
        with self._metrics_lock:
            if self._pending >= self._max_pending:
                self._skipped_tasks += 1
                LOGGER.debug("Analysis backlog full (%d pending); skipping tick", self._pending)
                return None
            self._pending += 1
            self._total_tasks += 1
        try:
            return self._executor.submit(self._run, fn, *args)
        except RuntimeError:
            with self._idle:
                self._pending -= 1
                self._total_tasks -= 1
                self._idle.notify_all()
            raise

    def _run(self, fn: Callable[..., R], *args: Any) -> R | None:
        t0 = time.monotonic()
        try:
            return fn(*args)
        except Exception:
            with self._metrics_lock:
                self._failed_tasks += 1
            LOGGER.warning("WorkerPool task %r failed; skipping.", fn, exc_info=True)
            return None
        finally:
            elapsed = time.monotonic() - t0
            with self._idle:
                self._pending -= 1
                self._total_run_s += elapsed
                self._idle.notify_all()

    def wait_idle(self, timeout_s: float | None = None) -> bool:
        """Block until no task is pending or running."""
        deadline = None if timeout_s is None else time.monotonic() + timeout_s
        with self._idle:
            while self._pending:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._idle.wait(remaining)
        return True

    def shutdown(self, wait: bool = True) -> None:
        """Shut down the pool.  Safe to call multiple times."""
        self._alive = False
        self._executor.shutdown(wait=wait)

    # -- Observability --------------------------------------------------------

    @property
    def max_workers(self) -> int:
        return self._max_workers

    @property
    def alive(self) -> bool:
        return self._alive

    def stats(self) -> dict[str, Any]:
        with self._metrics_lock:
            return {
                "max_workers": self._max_workers,
                "max_pending": self._max_pending,
                "pending": self._pending,
                "total_tasks": self._total_tasks,
                "skipped_tasks": self._skipped_tasks,
                "failed_tasks": self._failed_tasks,
                "total_run_s": round(self._total_run_s, 4),
                "alive": self._alive,
            }
