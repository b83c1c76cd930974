"""Per-category repair execution state.

Manifesto:
    A repair cycle is long-running and its progress is interesting to
    monitoring while it runs.  The state object is written by exactly
    one thread (the category's cycle thread) and read by any number of
    monitoring threads.  Instead of locking every counter, each mutation
    republishes an immutable :class:`RepairStateSnapshot`; readers grab
    the current snapshot reference, which is an atomic operation.

::

    cycle thread                              monitoring threads
    ────────────                              ──────────────────
    state.increment(table_skipped_count=1)
        └── _publish() ──► self._snapshot ──► state.snapshot()
                             (frozen)          (no lock)

The state also owns the wait on the single outstanding task group: the
cycle thread hands it the dispatcher's future and blocks until the group
completes.

Tags:
    autorepair, state, metrics, snapshot, single-writer
"""

from __future__ import annotations

from concurrent.futures import CancelledError, Future
from dataclasses import asdict, dataclass, fields
from typing import Any

from autorepair.config.models import RepairCategory
from autorepair.core.errors import UnitFailed

from .protocol import RepairTurn

_COUNTERS = (
    "keyspace_count",
    "table_success_count",
    "table_failed_count",
    "table_skipped_count",
    "table_disabled_count",
    "tables_considered",
    "mv_tables_considered",
)


@dataclass(frozen=True)
class RepairStateSnapshot:
    """Point-in-time, read-only view of one category's repair state."""

    category: RepairCategory
    repair_in_progress: bool = False
    keyspace_count: int = 0
    table_success_count: int = 0
    table_failed_count: int = 0
    table_skipped_count: int = 0
    table_disabled_count: int = 0
    tables_considered: int = 0
    mv_tables_considered: int = 0
    last_cycle_start_ms: int = 0
    last_repair_time_ms: int = 0
    node_repair_time_seconds: int = 0
    cluster_repair_time_seconds: int = 0
    last_turn: RepairTurn | None = None
    longest_unrepaired_host: str | None = None
    group_outstanding: bool = False

    def to_dict(self) -> dict[str, Any]:
        result = asdict(self)
        result["category"] = self.category.value
        result["last_turn"] = self.last_turn.value if self.last_turn else None
        return result


_SNAPSHOT_FIELDS = tuple(f.name for f in fields(RepairStateSnapshot) if f.name != "category")


class RepairExecutionState:
    """Mutable bookkeeping for one repair category.

    Only the category's cycle thread calls the mutating methods.
    """

    def __init__(self, category: RepairCategory) -> None:
        self.category = category
        self.repair_in_progress = False
        self.keyspace_count = 0
        self.table_success_count = 0
        self.table_failed_count = 0
        self.table_skipped_count = 0
        self.table_disabled_count = 0
        self.tables_considered = 0
        self.mv_tables_considered = 0
        self.last_cycle_start_ms = 0
        self.last_repair_time_ms = 0
        self.node_repair_time_seconds = 0
        self.cluster_repair_time_seconds = 0
        self.last_turn: RepairTurn | None = None
        self.longest_unrepaired_host: str | None = None
        self._outstanding: Future[bool] | None = None
        self._snapshot = RepairStateSnapshot(category=category)

    # === Publication ===

    def _publish(self) -> None:
        values = {name: getattr(self, name) for name in _SNAPSHOT_FIELDS if name != "group_outstanding"}
        self._snapshot = RepairStateSnapshot(
            category=self.category,
            group_outstanding=self._outstanding is not None,
            **values,
        )

    def snapshot(self) -> RepairStateSnapshot:
        """Latest published snapshot; safe from any thread."""
        return self._snapshot

    # === Mutation (cycle thread only) ===

    def update(self, **values: Any) -> None:
        """Set fields and republish."""
        for name, value in values.items():
            if name not in _SNAPSHOT_FIELDS or name == "group_outstanding":
                raise AttributeError(f"Unknown repair state field: {name}")
            setattr(self, name, value)
        self._publish()

    def increment(self, **deltas: int) -> None:
        """Add to counters and republish."""
        for name, delta in deltas.items():
            if name not in _COUNTERS:
                raise AttributeError(f"Unknown repair state counter: {name}")
            setattr(self, name, getattr(self, name) + delta)
        self._publish()

    def reset_cycle_counters(self) -> None:
        for name in _COUNTERS:
            setattr(self, name, 0)
        self._publish()

    # === Task group completion ===

    def wait_for_group(self, future: Future[bool]) -> bool:
        """Block until the dispatched group completes.

        Returns:
            True if the group reported success, False if it reported failure.

        Raises:
            UnitFailed: if the group raised or the wait was interrupted.
        """
        self._outstanding = future
        self._publish()
        try:
            return bool(future.result())
        except CancelledError as e:
            raise UnitFailed("Interrupted while waiting for repair task group", cause=e) from e
        except Exception as e:
            raise UnitFailed(f"Repair task group raised: {e}", cause=e) from e
        finally:
            self._outstanding = None
            self._publish()

    @property
    def group_outstanding(self) -> bool:
        return self._outstanding is not None
