"""Thread-pool repair task dispatcher.

Adapts a blocking repair function onto worker threads so the scheduler's
cycle thread only ever waits on a ``Future``.

ARCHITECTURE
────────────
::

    ThreadRepairDispatcher(repair_fn, max_workers=2)
      ├── .dispatch(keyspace, tables, ranges, pr)  ─ submit to ThreadPool -> Future[bool]
      ├── .outstanding                              ─ groups not yet finished
      └── .shutdown()                               ─ drain pool

``repair_fn(keyspace, tables, ranges, primary_range_only) -> bool`` is the
seam to the real anti-entropy protocol.  It runs entirely off the cycle
thread; whatever it raises is delivered through the future.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor

from autorepair.config.models import RepairCategory
from autorepair.core.logging import get_logger
from autorepair.ring.tokens import TokenRange

logger = get_logger(__name__)

RepairFn = Callable[[str, Sequence[str], Sequence[TokenRange], bool], bool]


class ThreadRepairDispatcher:
    """ThreadPoolExecutor-backed :class:`RepairTaskDispatcher`.

    Each category has at most one group outstanding, so one worker per
    category is enough for categories to run in parallel.

    Example:
        >>> def run_repair(keyspace, tables, ranges, primary_range_only):
        ...     return nodetool_repair(keyspace, tables, ranges, pr=primary_range_only)
        >>>
        >>> dispatcher = ThreadRepairDispatcher(run_repair)
        >>> future = dispatcher.dispatch("ks", ["users"], ranges, True)
        >>> future.result()
        True
    """

    def __init__(self, repair_fn: RepairFn, max_workers: int | None = None) -> None:
        self.repair_fn = repair_fn
        self.pool = ThreadPoolExecutor(
            max_workers=max_workers or len(RepairCategory),
            thread_name_prefix="autorepair-task",
        )
        self._outstanding = 0
        self._lock = threading.Lock()

    def dispatch(
        self,
        keyspace: str,
        tables: Sequence[str],
        ranges: Sequence[TokenRange],
        primary_range_only: bool,
    ) -> Future[bool]:
        tables = tuple(tables)
        ranges = tuple(ranges)

        def _run() -> bool:
            try:
                return bool(self.repair_fn(keyspace, tables, ranges, primary_range_only))
            finally:
                with self._lock:
                    self._outstanding -= 1

        with self._lock:
            self._outstanding += 1
        logger.debug("repair_group_dispatched", keyspace=keyspace, tables=list(tables), ranges=len(ranges))
        return self.pool.submit(_run)

    @property
    def outstanding(self) -> int:
        return self._outstanding

    def shutdown(self, wait: bool = True) -> None:
        self.pool.shutdown(wait=wait)
