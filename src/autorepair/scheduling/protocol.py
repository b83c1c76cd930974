"""Collaborator protocols for the repair scheduler.

┌──────────────────────────────────────────────────────────────────────────────┐
│  REPAIR SCHEDULER COLLABORATORS                                               │
│                                                                               │
│   ┌─────────────────┐   decide_turn()    ┌──────────────────────────────┐    │
│   │ TurnCoordinator │ ◄───────────────── │                              │    │
│   │ (history,       │   record_cycle_*() │       RepairScheduler        │    │
│   │  budgets)       │ ◄───────────────── │                              │    │
│   └─────────────────┘                    │                              │    │
│                                          │                              │    │
│   ┌─────────────────┐   keyspaces()      │                              │    │
│   │ ClusterView     │ ◄───────────────── │                              │    │
│   │ (schema, ring,  │   primary_ranges() │                              │    │
│   │  fragments)     │                    │                              │    │
│   └─────────────────┘                    │                              │    │
│                                          │                              │    │
│   ┌─────────────────┐   dispatch()       │                              │    │
│   │ RepairTask      │ ◄───────────────── │                              │    │
│   │ Dispatcher      │ ──── Future ─────► │                              │    │
│   └─────────────────┘                    └──────────────────────────────┘    │
│                                                                               │
│  The scheduler owns WHEN and HOW MUCH; collaborators own cluster-wide        │
│  ordering, schema knowledge and the repair protocol itself.                  │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Sequence, Set
from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from autorepair.config.models import RepairCategory
from autorepair.ring.splitter import RingView
from autorepair.ring.tokens import TokenRange


class RepairTurn(str, Enum):
    """Outcome of the per-cycle turn decision."""

    NOT_MY_TURN = "not_my_turn"
    MY_TURN = "my_turn"
    MY_TURN_DUE_TO_PRIORITY = "my_turn_due_to_priority"
    MY_TURN_FORCE_REPAIR = "my_turn_force_repair"

    @property
    def granted(self) -> bool:
        return self is not RepairTurn.NOT_MY_TURN

    @property
    def is_override(self) -> bool:
        """Priority and force grants bypass the minimum-interval rate limit."""
        return self in (RepairTurn.MY_TURN_DUE_TO_PRIORITY, RepairTurn.MY_TURN_FORCE_REPAIR)


@runtime_checkable
class TurnCoordinator(Protocol):
    """Cluster-wide turn oracle backed by shared repair history.

    Timestamps are epoch milliseconds.
    """

    def decide_turn(self, category: RepairCategory, local_host_id: str) -> RepairTurn: ...

    def record_cycle_start(
        self, category: RepairCategory, local_host_id: str, timestamp_ms: int, turn: RepairTurn
    ) -> None: ...

    def record_cycle_finish(
        self, category: RepairCategory, local_host_id: str, timestamp_ms: int
    ) -> None: ...

    def clear_priority_marker(self, category: RepairCategory, local_host_id: str) -> None: ...

    def longest_unrepaired_host(self, category: RepairCategory) -> str | None: ...

    def keyspace_budget_exceeded(
        self, category: RepairCategory, unit_start_ms: int, table_count: int
    ) -> bool: ...

    def table_budget_exceeded(self, category: RepairCategory, unit_start_ms: int) -> bool: ...

    def node_replicates_keyspace(self, keyspace: str) -> bool: ...

    def materialized_views_of(
        self, category: RepairCategory, keyspace: str, table: str
    ) -> list[str]: ...

    def filter_hosts_in_local_group(
        self, category: RepairCategory, hosts: Set[str]
    ) -> set[str]: ...


@runtime_checkable
class RepairTaskDispatcher(Protocol):
    """Runs one task group as an actual repair.

    The returned future resolves to ``True`` on success and ``False`` on
    a reported failure; raising or cancellation also count as failure.
    """

    def dispatch(
        self,
        keyspace: str,
        tables: Sequence[str],
        ranges: Sequence[TokenRange],
        primary_range_only: bool,
    ) -> Future[bool]: ...


@runtime_checkable
class ClusterView(RingView, Protocol):
    """Node-local view of schema, ring ownership and storage."""

    def local_host_id(self) -> str: ...

    def local_datacenter(self) -> str: ...

    def keyspaces(self) -> Sequence[str]: ...

    def tables(self, keyspace: str) -> Sequence[str]: ...

    def is_repair_disabled(self, keyspace: str, table: str) -> bool: ...

    def live_fragment_count(self, keyspace: str, table: str) -> int: ...


@dataclass
class BackendHealth:
    """Structured health of a per-category executor."""

    healthy: bool
    backend: str
    tick_count: int = 0
    last_tick: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "backend": self.backend,
            "tick_count": self.tick_count,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            **self.extra,
        }
