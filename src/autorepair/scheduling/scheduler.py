"""Repair scheduler - main orchestrator.

Manifesto:
    Automated repair has to run continuously without ever turning into a
    repair storm.  The scheduler combines an external turn oracle (only
    some nodes repair at a time), local backpressure (skip tables with
    too many fragments), wall-clock budgets per unit, and bounded task
    dispatch (one group of ``repair_threads`` sub-ranges outstanding at
    a time).  A single bad cycle is logged and forgotten; the timer keeps
    firing.

Tags:
    autorepair, scheduling, orchestrator, anti-entropy, repair

Doc-Types:
    api-reference, architecture-diagram


┌──────────────────────────────────────────────────────────────────────────────┐
│  REPAIR SCHEDULER                                                             │
│                                                                               │
│   CategoryExecutor[full]         CategoryExecutor[incremental]                │
│   (timer + 1 thread)             (timer + 1 thread)                           │
│          │                                │                                   │
│          └──────────────┬─────────────────┘                                   │
│                         ▼                                                     │
│   repair(category, wait_millis)                                               │
│     1. enabled? local DC ignored?                                             │
│     2. coordinator.decide_turn()  ── NOT_MY_TURN ──► return                   │
│     3. min interval (ordinary turns only)                                     │
│     4. record_cycle_start, reset counters, in_progress = True                 │
│     5. for keyspace the node replicates:                                      │
│          tables (+ materialized views)                                        │
│          for unit (table, or whole keyspace):                                 │
│            skip disabled / over fragment threshold                            │
│            splitter ──► sub-ranges ──► groups of repair_threads               │
│            for group:                                                         │
│              still enabled?  budget left?                                     │
│              dispatcher.dispatch() ──► Future ──► wait                        │
│            count success / failure                                            │
│     6. clear priority marker, timings, quick-cycle stall                      │
│     7. in_progress = False, record_cycle_finish                               │
│                                                                               │
│   Cycle states:  Idle ─► TurnCheck ─► (Idle | Running) ─► Idle                │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any

from autorepair.config.models import RepairCategory
from autorepair.config.service import RepairConfigService
from autorepair.core.errors import (
    ConfigurationError,
    CoordinationError,
    CycleError,
    RepairError,
    SkipReason,
    UnitFailed,
    UnitSkipped,
)
from autorepair.core.logging import LogContext, get_logger
from autorepair.core.settings import AutoRepairSettings, get_settings
from autorepair.ring.splitter import TokenRangeSplitter
from autorepair.ring.tokens import RepairAssignment

from .protocol import ClusterView, RepairTaskDispatcher, RepairTurn, TurnCoordinator
from .state import RepairExecutionState, RepairStateSnapshot
from .thread_backend import CategoryExecutor

logger = get_logger(__name__)

# Cycles shorter than this are stalled for wait_millis so monitoring can
# observe repair_in_progress.
QUICK_CYCLE_THRESHOLD_SECONDS = 60

MILLIS_PER_SECOND = 1000
MILLIS_PER_HOUR = 3600 * MILLIS_PER_SECOND
SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 24 * SECONDS_PER_HOUR


def _now_millis() -> int:
    return int(time.time() * MILLIS_PER_SECOND)


def check_incremental_repair_allowed(settings: AutoRepairSettings, incremental_enabled: bool) -> None:
    """Reject incremental repair alongside materialized views or CDC.

    Raises:
        ConfigurationError: incremental repair enabled together with
            materialized views or CDC.
    """
    if incremental_enabled and (settings.materialized_views_enabled or settings.cdc_enabled):
        raise ConfigurationError(
            "Cannot enable incremental repair with materialized views or CDC enabled"
        ).with_context(
            repair_category=RepairCategory.INCREMENTAL.value,
            materialized_views_enabled=settings.materialized_views_enabled,
            cdc_enabled=settings.cdc_enabled,
        )


class UnitResult(str, Enum):
    """How a single repair unit ended."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    HALTED = "halted"


@dataclass
class SchedulerHealth:
    """Health status for the repair scheduler."""

    healthy: bool
    armed: bool
    states: dict[RepairCategory, RepairStateSnapshot] = field(default_factory=dict)
    backends: dict[RepairCategory, dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "armed": self.armed,
            "categories": {
                category.value: {
                    "state": self.states[category].to_dict(),
                    "backend": self.backends.get(category, {}),
                }
                for category in self.states
            },
        }


class RepairScheduler:
    """Periodic per-category repair orchestrator.

    Example:
        >>> config = RepairConfigService()
        >>> config.set_auto_repair_enabled(RepairCategory.FULL, True)
        >>> scheduler = RepairScheduler(
        ...     config_service=config,
        ...     cluster=cluster_view,
        ...     coordinator=turn_coordinator,
        ...     dispatcher=ThreadRepairDispatcher(run_repair),
        ... )
        >>> scheduler.setup()                       # arms one timer per category
        >>> scheduler.repair_async(RepairCategory.FULL, 0)
        >>> scheduler.get_repair_state(RepairCategory.FULL).snapshot()
    """

    def __init__(
        self,
        config_service: RepairConfigService,
        cluster: ClusterView,
        coordinator: TurnCoordinator,
        dispatcher: RepairTaskDispatcher,
        settings: AutoRepairSettings | None = None,
        splitter: TokenRangeSplitter | None = None,
        clock: Callable[[], int] | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            config_service: Management surface / live repair configuration
            cluster: Node-local schema, ring and storage view
            coordinator: Cluster-wide turn oracle and history
            dispatcher: Runs task groups as actual repairs
            settings: Process settings (defaults to ``get_settings()``)
            splitter: Token range splitter (defaults to the even splitter)
            clock: Epoch-millisecond clock (injectable for tests)
            sleep: Sleep function in seconds (injectable for tests)
        """
        self.config_service = config_service
        self.cluster = cluster
        self.coordinator = coordinator
        self.dispatcher = dispatcher
        self.settings = settings or get_settings()
        self.splitter = splitter or TokenRangeSplitter(config_service, cluster)
        self._clock = clock or _now_millis
        self._sleep = sleep or time.sleep

        self.config_service.attach_coordinator(coordinator)

        self._states = {category: RepairExecutionState(category) for category in RepairCategory}
        self._executors = {category: CategoryExecutor(category) for category in RepairCategory}
        self._armed = False
        self._stopped = False

    # === Lifecycle ===

    def verify_is_safe_to_enable(self) -> None:
        """Reject feature combinations incremental repair cannot run with."""
        check_incremental_repair_allowed(
            self.settings, self.config_service.is_enabled(RepairCategory.INCREMENTAL)
        )

    def setup(self) -> None:
        """Validate configuration and arm one recurring timer per category."""
        self.verify_is_safe_to_enable()

        if self._armed:
            logger.warning("repair_scheduler_already_armed")
            return

        if self._stopped:
            # stopped executors cannot take new work
            self._executors = {category: CategoryExecutor(category) for category in RepairCategory}
            self._stopped = False

        for category, executor in self._executors.items():
            executor.schedule_with_fixed_delay(
                partial(self.repair, category, self.settings.quick_cycle_wait_ms),
                self.settings.initial_delay_seconds,
                lambda: self.config_service.check_interval_seconds,
            )
        self._armed = True
        logger.info(
            "repair_scheduler_armed",
            categories=[c.value for c in RepairCategory],
            initial_delay_seconds=self.settings.initial_delay_seconds,
            check_interval_seconds=self.config_service.check_interval_seconds,
        )

    def shutdown(self, wait: bool = True) -> None:
        """Stop all timers and category executors."""
        for executor in self._executors.values():
            executor.stop(wait=wait)
        self._armed = False
        self._stopped = True
        logger.info("repair_scheduler_stopped")

    @property
    def is_armed(self) -> bool:
        return self._armed

    # === Entry points ===

    def repair_async(self, category: RepairCategory, wait_millis: int) -> Future:
        """Queue one cycle on the category's serialized executor."""
        return self._executors[category].submit(self.repair, category, wait_millis)

    def repair(self, category: RepairCategory, wait_millis: int) -> None:
        """Run one repair cycle for ``category`` on the calling thread.

        Never raises: anything escaping the cycle is logged and swallowed
        so the periodic timer keeps its schedule.
        """
        if not self.config_service.is_enabled(category):
            logger.debug("auto_repair_disabled", repair_category=category.value)
            return

        state = self._states[category]
        with LogContext(repair_category=category.value):
            try:
                self._run_cycle(category, state, wait_millis)
            except Exception as e:
                if isinstance(e, RepairError):
                    error = e
                else:
                    error = CycleError(f"Exception in auto repair: {e}", cause=e)
                logger.exception("repair_cycle_failed", **error.to_dict())
                if state.repair_in_progress:
                    state.update(repair_in_progress=False)
                    self._record_finish_after_error(category)

    def get_repair_state(self, category: RepairCategory) -> RepairExecutionState:
        return self._states[category]

    def health(self) -> SchedulerHealth:
        backends = {category: executor.health() for category, executor in self._executors.items()}
        return SchedulerHealth(
            healthy=self._armed and all(b["healthy"] for b in backends.values()),
            armed=self._armed,
            states={category: state.snapshot() for category, state in self._states.items()},
            backends=backends,
        )

    # === Cycle ===

    def _run_cycle(
        self, category: RepairCategory, state: RepairExecutionState, wait_millis: int
    ) -> None:
        options = self.config_service.options(category)

        local_dc = self.cluster.local_datacenter()
        if local_dc in options.ignored_datacenters:
            logger.info("repair_skipped_ignored_datacenter", datacenter=local_dc)
            return

        host_id = self.cluster.local_host_id()
        try:
            longest_unrepaired = self.coordinator.longest_unrepaired_host(category)
            turn = self.coordinator.decide_turn(category, host_id)
        except Exception as e:
            raise CoordinationError(f"Could not decide repair turn: {e}", cause=e).with_context(
                repair_category=category.value, host_id=host_id
            ) from e
        state.update(longest_unrepaired_host=longest_unrepaired)
        if not turn.granted:
            logger.info("waiting_for_turn", host_id=host_id)
            return
        state.update(last_turn=turn)

        # Force repairs cover all local data, not just primary ranges.
        primary_range_only = options.primary_range_only and turn is not RepairTurn.MY_TURN_FORCE_REPAIR

        if state.last_repair_time_ms != 0 and not turn.is_override:
            hours_since = (self._clock() - state.last_repair_time_ms) // MILLIS_PER_HOUR
            if hours_since < options.min_interval_hours:
                logger.info(
                    "repair_too_soon",
                    hours_since_last_repair=hours_since,
                    min_interval_hours=options.min_interval_hours,
                )
                return

        start_ms = self._clock()
        logger.info(
            "repair_cycle_started",
            host_id=host_id,
            turn=turn.value,
            primary_range_only=primary_range_only,
        )
        self.coordinator.record_cycle_start(category, host_id, start_ms, turn)

        state.reset_cycle_counters()
        state.update(repair_in_progress=True, last_cycle_start_ms=start_ms)

        for keyspace in self.cluster.keyspaces():
            if not self.coordinator.node_replicates_keyspace(keyspace):
                continue
            state.increment(keyspace_count=1)
            tables = self._collect_tables(category, keyspace, state)
            if self._repair_keyspace(category, keyspace, tables, primary_range_only, state) is UnitResult.HALTED:
                return

        if turn is RepairTurn.MY_TURN_DUE_TO_PRIORITY:
            logger.info("priority_marker_cleared", host_id=host_id)
            self.coordinator.clear_priority_marker(category, host_id)

        self._finish_cycle(category, state, host_id, start_ms, wait_millis)

    def _collect_tables(
        self, category: RepairCategory, keyspace: str, state: RepairExecutionState
    ) -> list[str]:
        """Tables of ``keyspace`` plus, if enabled, their materialized views."""
        mv_enabled = self.config_service.options(category).mv_repair_enabled
        tables: list[str] = []
        for table in self.cluster.tables(keyspace):
            state.increment(tables_considered=1)
            tables.append(table)
            if mv_enabled:
                views = self.coordinator.materialized_views_of(category, keyspace, table)
                if views:
                    tables.extend(views)
                    state.increment(mv_tables_considered=len(views))
        return tables

    def _check_table(self, category: RepairCategory, keyspace: str, table: str) -> None:
        """Raise :class:`UnitSkipped` if ``table`` must not be repaired now."""
        if self.cluster.is_repair_disabled(keyspace, table):
            raise UnitSkipped(
                "Automated repair disabled for table", reason=SkipReason.DISABLED
            ).with_context(keyspace=keyspace, table=table)

        threshold = self.config_service.options(category).fragment_count_threshold
        fragments = self.cluster.live_fragment_count(keyspace, table)
        if fragments > threshold:
            raise UnitSkipped(
                "Too many live fragments for repair", reason=SkipReason.FRAGMENT_THRESHOLD
            ).with_context(keyspace=keyspace, table=table, live_fragments=fragments, threshold=threshold)

    def _repair_keyspace(
        self,
        category: RepairCategory,
        keyspace: str,
        tables: Sequence[str],
        primary_range_only: bool,
        state: RepairExecutionState,
    ) -> UnitResult | None:
        by_keyspace = self.config_service.options(category).repair_by_keyspace
        eligible: list[str] = []

        for table in tables:
            try:
                self._check_table(category, keyspace, table)
            except UnitSkipped as skipped:
                if skipped.reason is SkipReason.DISABLED:
                    state.increment(table_disabled_count=1)
                else:
                    state.increment(table_skipped_count=1)
                logger.info("repair_table_skipped", **skipped.to_dict())
                continue
            except Exception:
                logger.exception("repair_table_error", keyspace=keyspace, table=table)
                state.increment(table_failed_count=1)
                continue

            if by_keyspace:
                eligible.append(table)
                continue

            result = self._guarded_unit(category, keyspace, [table], primary_range_only, False, state)
            if result is UnitResult.HALTED:
                return result

        if by_keyspace and eligible:
            return self._guarded_unit(category, keyspace, eligible, primary_range_only, True, state)
        return None

    def _guarded_unit(
        self,
        category: RepairCategory,
        keyspace: str,
        tables: list[str],
        primary_range_only: bool,
        by_keyspace: bool,
        state: RepairExecutionState,
    ) -> UnitResult:
        """Repair one unit; an unexpected error fails the unit, not the cycle."""
        try:
            return self._repair_unit(category, keyspace, tables, primary_range_only, by_keyspace, state)
        except Exception:
            logger.exception("repair_unit_error", keyspace=keyspace, tables=tables)
            state.increment(table_failed_count=len(tables))
            return UnitResult.FAILED

    def _repair_unit(
        self,
        category: RepairCategory,
        keyspace: str,
        tables: list[str],
        primary_range_only: bool,
        by_keyspace: bool,
        state: RepairExecutionState,
    ) -> UnitResult:
        table_count = len(tables)
        logger.info("repair_unit_started", keyspace=keyspace, tables=tables, by_keyspace=by_keyspace)

        unit_start_ms = self._clock()
        assignments = self.splitter.get_repair_assignments(
            category, primary_range_only, keyspace, tables, by_keyspace=by_keyspace
        )
        group_size = self.config_service.options(category).repair_threads
        groups = _batch(assignments, group_size)
        total = len(assignments)
        processed = 0
        success = True

        for group in groups:
            if not self.config_service.is_enabled(category):
                logger.error("auto_repair_disabled_mid_cycle", keyspace=keyspace)
                state.update(repair_in_progress=False)
                return UnitResult.HALTED

            if self._budget_exceeded(category, by_keyspace, unit_start_ms, table_count):
                skipped = UnitSkipped(
                    "Unit exceeded its repair time budget",
                    reason=SkipReason.BUDGET_EXCEEDED,
                    table_count=table_count,
                ).with_context(keyspace=keyspace, tables=tables, processed_sub_ranges=processed)
                state.increment(table_skipped_count=table_count)
                logger.info("repair_unit_budget_exceeded", **skipped.to_dict())
                return UnitResult.SKIPPED

            ranges = [assignment.token_range for assignment in group]
            future = self.dispatcher.dispatch(keyspace, group[0].tables, ranges, primary_range_only)
            try:
                group_ok = state.wait_for_group(future)
            except UnitFailed as failed:
                group_ok = False
                logger.error("repair_group_interrupted", **failed.with_context(keyspace=keyspace).to_dict())
            processed += len(group)

            fields = {
                "keyspace": keyspace,
                "tables": list(group[0].tables),
                "first_range": str(ranges[0]),
                "last_range": str(ranges[-1]),
                "total_sub_ranges": total,
                "processed_sub_ranges": processed,
            }
            if group_ok:
                logger.info("repair_group_completed", **fields)
            else:
                success = False
                logger.warning("repair_group_failed", **fields)

        if success:
            state.increment(table_success_count=table_count)
            logger.info("repair_unit_completed", keyspace=keyspace, tables=tables)
            return UnitResult.SUCCEEDED

        state.increment(table_failed_count=table_count)
        logger.warning("repair_unit_failed", keyspace=keyspace, tables=tables)
        return UnitResult.FAILED

    def _budget_exceeded(
        self, category: RepairCategory, by_keyspace: bool, unit_start_ms: int, table_count: int
    ) -> bool:
        if by_keyspace:
            return self.coordinator.keyspace_budget_exceeded(category, unit_start_ms, table_count)
        return self.coordinator.table_budget_exceeded(category, unit_start_ms)

    def _finish_cycle(
        self,
        category: RepairCategory,
        state: RepairExecutionState,
        host_id: str,
        start_ms: int,
        wait_millis: int,
    ) -> None:
        now = self._clock()
        node_seconds = (now - start_ms) // MILLIS_PER_SECOND
        state.update(node_repair_time_seconds=node_seconds)
        logger.info(
            "local_repair_time",
            hours=node_seconds // SECONDS_PER_HOUR,
            keyspace_count=state.keyspace_count,
            table_success_count=state.table_success_count,
            table_failed_count=state.table_failed_count,
            table_skipped_count=state.table_skipped_count,
            table_disabled_count=state.table_disabled_count,
        )

        if state.last_repair_time_ms != 0:
            cluster_seconds = (now - state.last_repair_time_ms) // MILLIS_PER_SECOND
            state.update(cluster_repair_time_seconds=cluster_seconds)
            logger.info("cluster_repair_time", days=cluster_seconds // SECONDS_PER_DAY)
        state.update(last_repair_time_ms=now)

        if node_seconds < QUICK_CYCLE_THRESHOLD_SECONDS and wait_millis > 0:
            logger.info("quick_cycle_wait", wait_millis=wait_millis)
            self._sleep(wait_millis / MILLIS_PER_SECOND)

        state.update(repair_in_progress=False)
        self.coordinator.record_cycle_finish(category, host_id, self._clock())

    def _record_finish_after_error(self, category: RepairCategory) -> None:
        try:
            self.coordinator.record_cycle_finish(category, self.cluster.local_host_id(), self._clock())
        except Exception:
            logger.exception("record_cycle_finish_failed")


def _batch(assignments: list[RepairAssignment], size: int) -> list[list[RepairAssignment]]:
    """Consecutive groups of ``size`` (the last may be smaller)."""
    return [assignments[i : i + size] for i in range(0, len(assignments), size)]
