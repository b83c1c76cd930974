"""In-memory collaborators for tests, local simulation and the CLI.

Dict-backed implementations of :class:`ClusterView`,
:class:`TurnCoordinator` and :class:`RepairTaskDispatcher`.  They run
entirely in-process and keep everything in plain dictionaries, so they
are suitable for unit tests and ``autorepair simulate`` but NOT for a
real cluster: the turn decision here is a local rule, not consensus.

ARCHITECTURE
────────────
::

    InMemoryCluster            schema + ring + fragment counts
      ├── .add_table(ks, table, fragments=, repair_disabled=)
      └── .set_ranges(ks, primary, local=)

    InMemoryTurnCoordinator    repair history keyed by (category, host)
      ├── .decide_turn()       force > priority > ordinary
      ├── .record_cycle_*()    open / close history entries
      └── .*_budget_exceeded() table_max_repair_seconds × tables

    RecordingDispatcher        already-completed futures
      ├── .dispatch()          pops the next scripted outcome
      └── .calls               what was dispatched, in order
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Sequence, Set
from concurrent.futures import CancelledError, Future
from dataclasses import dataclass, field

from autorepair.config.models import RepairCategory
from autorepair.config.service import RepairConfigService
from autorepair.core.logging import get_logger
from autorepair.ring.tokens import MIN_TOKEN, TokenRange

from .protocol import RepairTurn

logger = get_logger(__name__)

FULL_RING = TokenRange(MIN_TOKEN, MIN_TOKEN)

# Open history entries older than this are treated as abandoned.
DEFAULT_OPEN_CYCLE_TIMEOUT_MS = 24 * 3600 * 1000


# =============================================================================
# CLUSTER VIEW
# =============================================================================


@dataclass
class TableState:
    fragments: int = 0
    repair_disabled: bool = False


class InMemoryCluster:
    """Dict-backed :class:`ClusterView`.

    Keyspaces without explicit ranges own the whole ring as primary
    replica, i.e. a single-node cluster.

    Example:
        >>> cluster = InMemoryCluster(host_id="host-1", datacenter="dc1")
        >>> cluster.add_table("ks", "users")
        >>> cluster.add_table("ks", "events", fragments=150)
        >>> cluster.tables("ks")
        ['users', 'events']
    """

    def __init__(self, host_id: str = "host-1", datacenter: str = "dc1") -> None:
        self.host_id = host_id
        self.datacenter = datacenter
        self._schema: dict[str, dict[str, TableState]] = {}
        self._primary: dict[str, list[TokenRange]] = {}
        self._local: dict[str, list[TokenRange]] = {}

    def add_keyspace(self, keyspace: str) -> None:
        self._schema.setdefault(keyspace, {})

    def add_table(
        self, keyspace: str, table: str, *, fragments: int = 0, repair_disabled: bool = False
    ) -> None:
        self.add_keyspace(keyspace)
        self._schema[keyspace][table] = TableState(fragments=fragments, repair_disabled=repair_disabled)

    def set_fragments(self, keyspace: str, table: str, fragments: int) -> None:
        self._schema[keyspace][table].fragments = fragments

    def set_ranges(
        self,
        keyspace: str,
        primary: Sequence[TokenRange],
        local: Sequence[TokenRange] | None = None,
    ) -> None:
        """Set ring ownership; ``local`` defaults to the primary ranges."""
        self._primary[keyspace] = list(primary)
        self._local[keyspace] = list(local if local is not None else primary)

    # ClusterView

    def local_host_id(self) -> str:
        return self.host_id

    def local_datacenter(self) -> str:
        return self.datacenter

    def keyspaces(self) -> list[str]:
        return list(self._schema)

    def tables(self, keyspace: str) -> list[str]:
        return list(self._schema.get(keyspace, {}))

    def is_repair_disabled(self, keyspace: str, table: str) -> bool:
        return self._schema[keyspace][table].repair_disabled

    def live_fragment_count(self, keyspace: str, table: str) -> int:
        return self._schema[keyspace][table].fragments

    def primary_ranges(self, keyspace: str) -> list[TokenRange]:
        return list(self._primary.get(keyspace, [FULL_RING]))

    def local_ranges(self, keyspace: str) -> list[TokenRange]:
        return list(self._local.get(keyspace, [FULL_RING]))


# =============================================================================
# TURN COORDINATOR
# =============================================================================


@dataclass
class RepairHistoryEntry:
    """Last known cycle of one host for one category."""

    host_id: str
    start_ms: int = 0
    finish_ms: int = 0
    turn: RepairTurn | None = None

    @property
    def is_open(self) -> bool:
        return self.start_ms > self.finish_ms


class InMemoryTurnCoordinator:
    """Local-rule :class:`TurnCoordinator`.

    Turn precedence: a host listed in ``force_repair_hosts`` always
    repairs; a host listed in ``priority_hosts`` repairs next and has its
    marker removed once the cycle completes; otherwise the host repairs
    when its coordination group has a free parallel slot and it is among
    the longest-unrepaired idle hosts of that group.

    Parallel slots per group are ``max(parallel_repair_count,
    parallel_repair_percentage% of the group)``, never fewer than one.
    A cycle left open for longer than ``open_cycle_timeout_ms`` (a halted
    or crashed host) no longer occupies a slot.
    """

    def __init__(
        self,
        config_service: RepairConfigService,
        hosts: Iterable[str] = (),
        *,
        local_host_id: str | None = None,
        groups: dict[str, str] | None = None,
        views: dict[tuple[str, str], list[str]] | None = None,
        replicated_keyspaces: Set[str] | None = None,
        clock: Callable[[], int] | None = None,
        open_cycle_timeout_ms: int = DEFAULT_OPEN_CYCLE_TIMEOUT_MS,
    ) -> None:
        self.config_service = config_service
        self.hosts = list(hosts)
        if local_host_id is not None and local_host_id not in self.hosts:
            self.hosts.append(local_host_id)
        self.local_host_id = local_host_id
        self.groups = groups or {}
        self.views = views or {}
        self.replicated_keyspaces = replicated_keyspaces
        self.open_cycle_timeout_ms = open_cycle_timeout_ms
        self._clock = clock
        self.history: dict[tuple[RepairCategory, str], RepairHistoryEntry] = {}

    def _now(self) -> int:
        if self._clock is None:
            return int(time.time() * 1000)
        return self._clock()

    def _entry(self, category: RepairCategory, host_id: str) -> RepairHistoryEntry:
        if host_id not in self.hosts:
            self.hosts.append(host_id)
        return self.history.setdefault((category, host_id), RepairHistoryEntry(host_id=host_id))

    def _finish_ms(self, category: RepairCategory, host_id: str) -> int:
        entry = self.history.get((category, host_id))
        return entry.finish_ms if entry else 0

    def _is_running(self, category: RepairCategory, host_id: str, now_ms: int) -> bool:
        entry = self.history.get((category, host_id))
        return (
            entry is not None
            and entry.is_open
            and now_ms - entry.start_ms < self.open_cycle_timeout_ms
        )

    def _group_members(self, host_id: str) -> list[str]:
        hosts = self.hosts if host_id in self.hosts else [*self.hosts, host_id]
        group = self.groups.get(host_id)
        if group is None:
            return list(hosts)
        return [host for host in hosts if self.groups.get(host) == group]

    def parallel_slots(self, category: RepairCategory, group_size: int) -> int:
        """Hosts of one group allowed to repair ``category`` at once."""
        options = self.config_service.options(category)
        by_share = options.parallel_repair_percentage * group_size // 100
        return max(1, options.parallel_repair_count, by_share)

    # TurnCoordinator

    def decide_turn(self, category: RepairCategory, local_host_id: str) -> RepairTurn:
        options = self.config_service.options(category)
        if local_host_id in options.force_repair_hosts:
            return RepairTurn.MY_TURN_FORCE_REPAIR
        if local_host_id in options.priority_hosts:
            return RepairTurn.MY_TURN_DUE_TO_PRIORITY

        now = self._now()
        members = self._group_members(local_host_id)
        running = {
            host for host in members if host != local_host_id and self._is_running(category, host, now)
        }
        free = self.parallel_slots(category, len(members)) - len(running)
        if free <= 0:
            return RepairTurn.NOT_MY_TURN

        idle = sorted(
            (host for host in members if host not in running),
            key=lambda host: (self._finish_ms(category, host), host),
        )
        if local_host_id in idle[:free]:
            return RepairTurn.MY_TURN
        return RepairTurn.NOT_MY_TURN

    def record_cycle_start(
        self, category: RepairCategory, local_host_id: str, timestamp_ms: int, turn: RepairTurn
    ) -> None:
        entry = self._entry(category, local_host_id)
        entry.start_ms = timestamp_ms
        entry.turn = turn

    def record_cycle_finish(
        self, category: RepairCategory, local_host_id: str, timestamp_ms: int
    ) -> None:
        self._entry(category, local_host_id).finish_ms = timestamp_ms

    def clear_priority_marker(self, category: RepairCategory, local_host_id: str) -> None:
        remaining = self.config_service.get_repair_host_priority(category) - {local_host_id}
        self.config_service.set_repair_priority_for_hosts(category, remaining)

    def longest_unrepaired_host(self, category: RepairCategory) -> str | None:
        if not self.hosts:
            return None
        return min(self.hosts, key=lambda host: (self._finish_ms(category, host), host))

    def keyspace_budget_exceeded(
        self, category: RepairCategory, unit_start_ms: int, table_count: int
    ) -> bool:
        budget_ms = self.config_service.options(category).table_max_repair_seconds * 1000 * table_count
        return self._now() - unit_start_ms > budget_ms

    def table_budget_exceeded(self, category: RepairCategory, unit_start_ms: int) -> bool:
        return self.keyspace_budget_exceeded(category, unit_start_ms, 1)

    def node_replicates_keyspace(self, keyspace: str) -> bool:
        return self.replicated_keyspaces is None or keyspace in self.replicated_keyspaces

    def materialized_views_of(
        self, category: RepairCategory, keyspace: str, table: str
    ) -> list[str]:
        if not self.config_service.options(category).mv_repair_enabled:
            return []
        return list(self.views.get((keyspace, table), []))

    def filter_hosts_in_local_group(
        self, category: RepairCategory, hosts: Set[str]
    ) -> set[str]:
        local_group = self.groups.get(self.local_host_id) if self.local_host_id else None
        if local_group is None:
            return set(hosts)
        return {host for host in hosts if self.groups.get(host) == local_group}


# =============================================================================
# DISPATCHER
# =============================================================================


@dataclass(frozen=True)
class DispatchCall:
    keyspace: str
    tables: tuple[str, ...]
    ranges: tuple[TokenRange, ...]
    primary_range_only: bool


@dataclass
class RecordingDispatcher:
    """:class:`RepairTaskDispatcher` returning already-completed futures.

    ``outcomes`` scripts each dispatch in order: ``True``/``False`` become
    the future's result, an exception instance is set on the future, and a
    :class:`CancelledError` instance cancels it.  Once exhausted every
    dispatch resolves to ``default``.

    Example:
        >>> dispatcher = RecordingDispatcher(outcomes=[True, False])
        >>> dispatcher.dispatch("ks", ["t"], ranges, True).result()
        True
        >>> len(dispatcher.calls)
        1
    """

    outcomes: list[bool | BaseException] = field(default_factory=list)
    default: bool = True
    calls: list[DispatchCall] = field(default_factory=list)

    def dispatch(
        self,
        keyspace: str,
        tables: Sequence[str],
        ranges: Sequence[TokenRange],
        primary_range_only: bool,
    ) -> Future[bool]:
        self.calls.append(DispatchCall(keyspace, tuple(tables), tuple(ranges), primary_range_only))
        outcome = self.outcomes.pop(0) if self.outcomes else self.default

        future: Future[bool] = Future()
        if isinstance(outcome, CancelledError):
            future.cancel()
        elif isinstance(outcome, BaseException):
            future.set_exception(outcome)
        else:
            future.set_result(outcome)
        logger.debug("recorded_dispatch", keyspace=keyspace, tables=list(tables), ranges=len(ranges))
        return future

    @property
    def dispatch_count(self) -> int:
        return len(self.calls)
