"""Per-category serialized executor with a fixed-delay timer.

┌──────────────────────────────────────────────────────────────────────────────┐
│  CATEGORY EXECUTOR                                                            │
│                                                                               │
│   schedule_with_fixed_delay(fn, initial, interval)                            │
│      │                                                                        │
│      ▼                                                                        │
│   ┌───────────────────────────────────────────────┐                           │
│   │  Daemon timer thread                          │                           │
│   │                                               │                           │
│   │   delay = initial                             │                           │
│   │   while not stop_event.wait(delay):           │                           │
│   │       tick_count += 1                         │                           │
│   │       submit(fn).result()   ◄── fixed delay:  │                           │
│   │       delay = interval()        waits for the │                           │
│   │                                 cycle to end  │                           │
│   └──────────────────────┬────────────────────────┘                           │
│                          │ submit()                                           │
│   repair_async() ────────┤                                                    │
│                          ▼                                                    │
│   ┌───────────────────────────────────────────────┐                           │
│   │  ThreadPoolExecutor(max_workers=1)            │  one cycle at a time;     │
│   │  "autorepair-<category>"                      │  later submissions queue  │
│   └───────────────────────────────────────────────┘                           │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import UTC, datetime
from typing import Any

from autorepair.config.models import RepairCategory
from autorepair.core.logging import get_logger

from .protocol import BackendHealth

logger = get_logger(__name__)

IntervalSource = float | Callable[[], float]


class CategoryExecutor:
    """Single-thread executor plus recurring timer for one repair category.

    Example:
        >>> executor = CategoryExecutor(RepairCategory.FULL)
        >>> executor.schedule_with_fixed_delay(run_cycle, 30.0, 300.0)
        >>> executor.submit(run_cycle)   # manual cycle, queued behind any running one
        >>> executor.stop()
    """

    name = "thread"

    def __init__(self, category: RepairCategory) -> None:
        self.category = category
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=f"autorepair-{category.value}"
        )
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._tick_count = 0
        self._last_tick: datetime | None = None
        self._interval: IntervalSource = 0.0
        self._started = False
        self._lock = threading.Lock()

    def submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        """Queue ``fn`` on the serialized executor."""
        return self._executor.submit(fn, *args)

    def schedule_with_fixed_delay(
        self,
        fn: Callable[[], Any],
        initial_delay_seconds: float,
        interval_seconds: IntervalSource,
    ) -> None:
        """Run ``fn`` after ``initial_delay_seconds``, then ``interval_seconds``
        after each run finishes.

        ``interval_seconds`` may be a callable; it is re-read after every
        run so management-surface changes apply to the next delay.
        """
        if self._started:
            logger.warning("category_executor_already_started", repair_category=self.category.value)
            return

        self._interval = interval_seconds
        self._stop_event.clear()

        def _next_interval() -> float:
            return interval_seconds() if callable(interval_seconds) else interval_seconds

        def _loop() -> None:
            logger.info(
                "category_executor_started",
                repair_category=self.category.value,
                initial_delay_seconds=initial_delay_seconds,
            )
            delay = initial_delay_seconds
            while not self._stop_event.wait(delay):
                with self._lock:
                    self._tick_count += 1
                    self._last_tick = datetime.now(UTC)
                try:
                    future = self.submit(fn)
                except RuntimeError:
                    # executor shut down underneath us
                    break
                try:
                    future.result()
                except Exception:
                    logger.exception("scheduled_repair_failed", repair_category=self.category.value)
                delay = _next_interval()
            logger.info("category_executor_stopped", repair_category=self.category.value)

        self._thread = threading.Thread(
            target=_loop, daemon=True, name=f"autorepair-timer-{self.category.value}"
        )
        self._thread.start()
        self._started = True

    def stop(self, wait: bool = True) -> None:
        """Stop the timer and drain (or cancel) queued cycles."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5.0)
            if self._thread.is_alive():
                logger.warning("category_timer_did_not_stop", repair_category=self.category.value)
        self._executor.shutdown(wait=wait, cancel_futures=not wait)
        self._started = False

    def health(self) -> dict[str, Any]:
        return self.get_health().to_dict()

    def get_health(self) -> BackendHealth:
        interval = self._interval() if callable(self._interval) else self._interval
        return BackendHealth(
            healthy=self.is_running,
            backend=self.name,
            tick_count=self._tick_count,
            last_tick=self._last_tick,
            extra={"repair_category": self.category.value, "interval_seconds": interval},
        )

    @property
    def is_running(self) -> bool:
        return self._started and self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def last_tick(self) -> datetime | None:
        return self._last_tick
