"""Tests for RepairScheduler - the repair cycle, timers and health."""

from __future__ import annotations

import threading
from concurrent.futures import CancelledError
from unittest.mock import MagicMock

import pytest

import autorepair.scheduling.scheduler as scheduler_module
from autorepair.config.models import RepairCategory, RepairConfig
from autorepair.config.service import RepairConfigService
from autorepair.core.errors import ConfigurationError
from autorepair.core.settings import AutoRepairSettings
from autorepair.ring.splitter import TokenRangeSplitter
from autorepair.ring.tokens import TokenRange
from autorepair.scheduling.memory import InMemoryTurnCoordinator, RecordingDispatcher
from autorepair.scheduling.protocol import RepairTurn
from autorepair.scheduling.scheduler import RepairScheduler, check_incremental_repair_allowed
from autorepair.scheduling.state import RepairStateSnapshot

FULL = RepairCategory.FULL
INCREMENTAL = RepairCategory.INCREMENTAL
HOUR_MS = 3600 * 1000


def _counters(snapshot: RepairStateSnapshot) -> dict[str, int]:
    return {
        "keyspaces": snapshot.keyspace_count,
        "success": snapshot.table_success_count,
        "failed": snapshot.table_failed_count,
        "skipped": snapshot.table_skipped_count,
        "disabled": snapshot.table_disabled_count,
    }


# ── Cycle preconditions ─────────────────────────────────────────────────


class TestCyclePreconditions:
    def test_disabled_category_mutates_nothing(self, make_scheduler, cluster, coordinator, dispatcher):
        cluster.add_table("ks", "t1")
        scheduler = make_scheduler()

        scheduler.repair(INCREMENTAL, 0)

        assert scheduler.get_repair_state(INCREMENTAL).snapshot() == RepairStateSnapshot(category=INCREMENTAL)
        assert dispatcher.calls == []
        assert coordinator.history == {}

    def test_ignored_datacenter_skips_cycle(self, make_scheduler, config_service, cluster, coordinator, dispatcher):
        cluster.add_table("ks", "t1")
        config_service.set_ignored_datacenters(FULL, {"dc1"})
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)

        assert dispatcher.calls == []
        assert coordinator.history == {}
        assert scheduler.get_repair_state(FULL).last_repair_time_ms == 0

    def test_not_my_turn_writes_no_history(self, make_scheduler, cluster, dispatcher):
        cluster.add_table("ks", "t1")
        coordinator = MagicMock()
        coordinator.decide_turn.return_value = RepairTurn.NOT_MY_TURN
        coordinator.longest_unrepaired_host.return_value = "host-0"
        scheduler = make_scheduler(coordinator=coordinator)

        scheduler.repair(FULL, 0)

        state = scheduler.get_repair_state(FULL)
        coordinator.record_cycle_start.assert_not_called()
        coordinator.record_cycle_finish.assert_not_called()
        assert dispatcher.calls == []
        assert state.repair_in_progress is False
        assert _counters(state.snapshot()) == dict.fromkeys(_counters(state.snapshot()), 0)
        assert state.longest_unrepaired_host == "host-0"

    def test_waits_for_longest_unrepaired_peer(self, make_scheduler, config_service, cluster, clock, dispatcher):
        cluster.add_table("ks", "t1")
        config_service.set_parallel_repair_count(FULL, 1)
        config_service.set_parallel_repair_percentage(FULL, 0)
        coordinator = InMemoryTurnCoordinator(
            config_service, ["host-0"], local_host_id="host-1", clock=clock
        )
        scheduler = make_scheduler(coordinator=coordinator)

        scheduler.repair(FULL, 0)

        assert dispatcher.calls == []
        assert coordinator.history == {}
        assert scheduler.get_repair_state(FULL).longest_unrepaired_host == "host-0"

    def test_too_soon_keeps_last_repair_time(self, make_scheduler, config_service, cluster, clock, dispatcher):
        cluster.add_table("ks", "t1")
        config_service.set_repair_min_interval_hours(FULL, 24)
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)
        first_finish = scheduler.get_repair_state(FULL).last_repair_time_ms
        assert dispatcher.dispatch_count == 1

        clock.advance(HOUR_MS)
        scheduler.repair(FULL, 0)

        assert dispatcher.dispatch_count == 1
        assert scheduler.get_repair_state(FULL).last_repair_time_ms == first_finish

    def test_min_interval_elapsed_runs_again(self, make_scheduler, config_service, cluster, clock, dispatcher):
        cluster.add_table("ks", "t1")
        config_service.set_repair_min_interval_hours(FULL, 24)
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)
        clock.advance(25 * HOUR_MS)
        scheduler.repair(FULL, 0)

        assert dispatcher.dispatch_count == 2


# ── Turns ───────────────────────────────────────────────────────────────


class TestTurns:
    def test_priority_turn_clears_marker(self, make_scheduler, config_service, cluster, coordinator):
        cluster.add_table("ks", "t1")
        config_service.set_repair_priority_for_hosts(FULL, {"host-1", "host-2"})
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)

        assert config_service.get_repair_host_priority(FULL) == {"host-2"}
        assert scheduler.get_repair_state(FULL).last_turn is RepairTurn.MY_TURN_DUE_TO_PRIORITY
        assert coordinator.history[(FULL, "host-1")].turn is RepairTurn.MY_TURN_DUE_TO_PRIORITY

    def test_priority_turn_bypasses_min_interval(self, make_scheduler, config_service, cluster, clock, dispatcher):
        cluster.add_table("ks", "t1")
        config_service.set_repair_min_interval_hours(FULL, 24)
        scheduler = make_scheduler()
        scheduler.repair(FULL, 0)

        clock.advance(HOUR_MS)
        config_service.set_repair_priority_for_hosts(FULL, {"host-1"})
        scheduler.repair(FULL, 0)

        assert dispatcher.dispatch_count == 2

    def test_force_turn_repairs_all_local_ranges(self, make_scheduler, config_service, cluster, dispatcher):
        cluster.add_table("ks", "t1")
        primary = [TokenRange(0, 100)]
        local = [TokenRange(0, 100), TokenRange(100, 200)]
        cluster.set_ranges("ks", primary, local)
        config_service.set_force_repair_for_hosts(FULL, {"host-1"})
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)

        assert scheduler.get_repair_state(FULL).last_turn is RepairTurn.MY_TURN_FORCE_REPAIR
        assert [call.ranges[0] for call in dispatcher.calls] == local
        assert all(call.primary_range_only is False for call in dispatcher.calls)

    def test_ordinary_turn_uses_primary_ranges(self, make_scheduler, cluster, dispatcher):
        cluster.add_table("ks", "t1")
        cluster.set_ranges("ks", [TokenRange(0, 100)], [TokenRange(0, 100), TokenRange(100, 200)])
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)

        assert [call.ranges for call in dispatcher.calls] == [(TokenRange(0, 100),)]
        assert dispatcher.calls[0].primary_range_only is True


# ── Units and groups ────────────────────────────────────────────────────


class TestRepairUnits:
    def test_two_tables_four_sub_ranges_two_threads(self, make_scheduler, config_service, cluster, dispatcher):
        cluster.add_table("ks", "t1")
        cluster.add_table("ks", "t2")
        config_service.set_repair_sub_range_count(FULL, 4)
        config_service.set_repair_threads(FULL, 2)
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)

        assert dispatcher.dispatch_count == 4
        assert [call.tables for call in dispatcher.calls] == [("t1",), ("t1",), ("t2",), ("t2",)]
        assert all(len(call.ranges) == 2 for call in dispatcher.calls)
        assert _counters(scheduler.get_repair_state(FULL).snapshot()) == {
            "keyspaces": 1,
            "success": 2,
            "failed": 0,
            "skipped": 0,
            "disabled": 0,
        }

    def test_last_group_may_be_smaller(self, make_scheduler, config_service, cluster, dispatcher):
        cluster.add_table("ks", "t1")
        config_service.set_repair_sub_range_count(FULL, 5)
        config_service.set_repair_threads(FULL, 2)
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)

        assert [len(call.ranges) for call in dispatcher.calls] == [2, 2, 1]

    def test_fragment_threshold_skips_table(self, make_scheduler, config_service, cluster, dispatcher):
        cluster.add_table("ks", "t1", fragments=150)
        config_service.set_fragment_count_threshold(FULL, 100)
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)

        assert dispatcher.calls == []
        counters = _counters(scheduler.get_repair_state(FULL).snapshot())
        assert counters["skipped"] == 1
        assert counters["success"] == 0
        assert counters["failed"] == 0

    def test_fragment_count_at_threshold_is_repaired(self, make_scheduler, config_service, cluster, dispatcher):
        cluster.add_table("ks", "t1", fragments=100)
        config_service.set_fragment_count_threshold(FULL, 100)
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)

        assert dispatcher.dispatch_count == 1

    def test_repair_disabled_table(self, make_scheduler, cluster, dispatcher):
        cluster.add_table("ks", "t1", repair_disabled=True)
        cluster.add_table("ks", "t2")
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)

        counters = _counters(scheduler.get_repair_state(FULL).snapshot())
        assert counters["disabled"] == 1
        assert counters["success"] == 1
        assert [call.tables for call in dispatcher.calls] == [("t2",)]

    def test_failed_group_fails_unit_and_cycle_continues(self, make_scheduler, config_service, cluster, dispatcher):
        cluster.add_table("ks", "t1")
        cluster.add_table("ks", "t2")
        config_service.set_repair_sub_range_count(FULL, 2)
        dispatcher.outcomes = [False, True, True, True]
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)

        # no retry, remaining groups of the unit still dispatched
        assert dispatcher.dispatch_count == 4
        counters = _counters(scheduler.get_repair_state(FULL).snapshot())
        assert counters["failed"] == 1
        assert counters["success"] == 1

    @pytest.mark.parametrize("outcome", [RuntimeError("repair session died"), CancelledError()])
    def test_raising_or_cancelled_group_counts_as_failure(
        self, make_scheduler, cluster, dispatcher, outcome
    ):
        cluster.add_table("ks", "t1")
        cluster.add_table("ks", "t2")
        dispatcher.outcomes = [outcome]
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)

        counters = _counters(scheduler.get_repair_state(FULL).snapshot())
        assert counters["failed"] == 1
        assert counters["success"] == 1
        assert scheduler.get_repair_state(FULL).group_outstanding is False

    def test_table_error_moves_on_to_next_table(self, make_scheduler, config_service, cluster, dispatcher):
        cluster.add_table("ks", "t1")
        cluster.add_table("ks", "t2")
        splitter = MagicMock()
        splitter.get_repair_assignments.side_effect = [
            RuntimeError("ring changed"),
            TokenRangeSplitter(config_service, cluster).get_repair_assignments(FULL, True, "ks", ["t2"]),
        ]
        scheduler = make_scheduler(splitter=splitter)

        scheduler.repair(FULL, 0)

        counters = _counters(scheduler.get_repair_state(FULL).snapshot())
        assert counters["failed"] == 1
        assert counters["success"] == 1
        assert [call.tables for call in dispatcher.calls] == [("t2",)]

    def test_table_budget_exceeded_skips_table(self, make_scheduler, cluster, coordinator, dispatcher):
        cluster.add_table("ks", "t1")
        cluster.add_table("ks", "t2")
        coordinator.table_budget_exceeded = MagicMock(side_effect=[True, False])
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)

        counters = _counters(scheduler.get_repair_state(FULL).snapshot())
        assert counters["skipped"] == 1
        assert counters["success"] == 1
        assert [call.tables for call in dispatcher.calls] == [("t2",)]

    def test_non_replicated_keyspace_is_ignored(self, make_scheduler, cluster, coordinator, dispatcher):
        cluster.add_table("ks", "t1")
        cluster.add_table("system_local", "peers")
        coordinator.replicated_keyspaces = {"ks"}
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)

        assert scheduler.get_repair_state(FULL).keyspace_count == 1
        assert {call.keyspace for call in dispatcher.calls} == {"ks"}

    def test_materialized_views_are_repaired_with_base_table(
        self, make_scheduler, config_service, cluster, coordinator, dispatcher
    ):
        cluster.add_table("ks", "t1")
        coordinator.views = {("ks", "t1"): ["t1_by_email"]}
        config_service.set_mv_repair_enabled(FULL, True)
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)

        snapshot = scheduler.get_repair_state(FULL).snapshot()
        assert snapshot.tables_considered == 1
        assert snapshot.mv_tables_considered == 1
        assert [call.tables for call in dispatcher.calls] == [("t1",), ("t1_by_email",)]

    def test_materialized_views_ignored_when_disabled(self, make_scheduler, cluster, coordinator, dispatcher):
        cluster.add_table("ks", "t1")
        coordinator.views = {("ks", "t1"): ["t1_by_email"]}
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)

        assert scheduler.get_repair_state(FULL).mv_tables_considered == 0
        assert dispatcher.dispatch_count == 1


# ── Repair by keyspace ──────────────────────────────────────────────────


class TestRepairByKeyspace:
    @pytest.fixture(autouse=True)
    def _by_keyspace(self, config_service):
        config_service.set_repair_by_keyspace(FULL, True)
        config_service.set_repair_sub_range_count(FULL, 4)
        config_service.set_repair_threads(FULL, 2)

    def test_keyspace_repaired_as_single_unit(self, make_scheduler, cluster, dispatcher):
        for table in ("t1", "t2", "t3"):
            cluster.add_table("ks", table)
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)

        assert dispatcher.dispatch_count == 2
        assert all(call.tables == ("t1", "t2", "t3") for call in dispatcher.calls)
        assert scheduler.get_repair_state(FULL).table_success_count == 3

    def test_skipped_tables_are_left_out_of_the_unit(self, make_scheduler, config_service, cluster, dispatcher):
        cluster.add_table("ks", "t1")
        cluster.add_table("ks", "t2", fragments=500)
        config_service.set_fragment_count_threshold(FULL, 100)
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)

        assert all(call.tables == ("t1",) for call in dispatcher.calls)
        counters = _counters(scheduler.get_repair_state(FULL).snapshot())
        assert counters["skipped"] == 1
        assert counters["success"] == 1

    def test_budget_exceeded_after_first_group(self, make_scheduler, cluster, coordinator, dispatcher):
        for table in ("t1", "t2", "t3"):
            cluster.add_table("ks1", table)
        cluster.add_table("ks2", "events")
        coordinator.keyspace_budget_exceeded = MagicMock(side_effect=[False, True, False, False])
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)

        counters = _counters(scheduler.get_repair_state(FULL).snapshot())
        assert counters["keyspaces"] == 2
        # the abandoned unit counts every table as skipped, including the
        # ones its first group already covered (see DESIGN.md)
        assert counters["skipped"] == 3
        assert counters["success"] == 1
        assert counters["failed"] == 0
        assert [call.keyspace for call in dispatcher.calls] == ["ks1", "ks2", "ks2"]
        _, unit_start_ms, table_count = coordinator.keyspace_budget_exceeded.call_args_list[0].args
        assert table_count == 3

    def test_grouping_change_during_table_checks_keeps_unit_shape(
        self, make_scheduler, config_service, cluster, dispatcher
    ):
        for table in ("t1", "t2", "t3"):
            cluster.add_table("ks", table)
        count_fragments = cluster.live_fragment_count

        def flip_grouping(keyspace, table):
            if table == "t3":
                config_service.set_repair_by_keyspace(FULL, False)
            return count_fragments(keyspace, table)

        cluster.live_fragment_count = flip_grouping
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)

        assert dispatcher.dispatch_count == 2
        assert all(call.tables == ("t1", "t2", "t3") for call in dispatcher.calls)
        assert all(len(call.ranges) == 2 for call in dispatcher.calls)
        assert scheduler.get_repair_state(FULL).table_success_count == 3


# ── Mid-cycle disable ───────────────────────────────────────────────────


class TestMidCycleDisable:
    def test_disabling_halts_cycle_before_next_group(self, make_scheduler, config_service, cluster, coordinator, dispatcher):
        cluster.add_table("ks", "t1")
        cluster.add_table("ks", "t2")
        record = dispatcher.dispatch

        def dispatch_then_disable(*args):
            future = record(*args)
            config_service.set_auto_repair_enabled(FULL, False)
            return future

        dispatcher.dispatch = dispatch_then_disable
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)

        state = scheduler.get_repair_state(FULL)
        assert dispatcher.dispatch_count == 1
        assert state.repair_in_progress is False
        assert state.table_success_count == 1
        assert state.last_repair_time_ms == 0
        entry = coordinator.history[(FULL, "host-1")]
        assert entry.start_ms > 0
        assert entry.finish_ms == 0


# ── Cycle completion ────────────────────────────────────────────────────


class TestCycleCompletion:
    def test_history_start_and_finish_recorded(self, make_scheduler, cluster, coordinator, clock):
        cluster.add_table("ks", "t1")
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)

        entry = coordinator.history[(FULL, "host-1")]
        assert entry.start_ms == clock()
        assert entry.finish_ms == clock()
        assert entry.turn is RepairTurn.MY_TURN
        assert scheduler.get_repair_state(FULL).repair_in_progress is False

    def test_repair_in_progress_visible_during_dispatch(self, make_scheduler, cluster, dispatcher):
        cluster.add_table("ks", "t1")
        seen = []
        record = dispatcher.dispatch

        def observe(*args):
            seen.append(scheduler.get_repair_state(FULL).snapshot().repair_in_progress)
            return record(*args)

        dispatcher.dispatch = observe
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)

        assert seen == [True]

    def test_node_and_cluster_repair_time(self, make_scheduler, cluster, dispatcher, clock):
        cluster.add_table("ks", "t1")
        record = dispatcher.dispatch

        def slow_dispatch(*args):
            clock.advance(90_000)
            return record(*args)

        dispatcher.dispatch = slow_dispatch
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)
        state = scheduler.get_repair_state(FULL)
        first_finish = state.last_repair_time_ms
        assert state.node_repair_time_seconds == 90
        assert state.cluster_repair_time_seconds == 0

        clock.advance(2 * HOUR_MS)
        scheduler.repair(FULL, 0)

        assert state.cluster_repair_time_seconds == (clock() - first_finish) // 1000
        assert state.last_repair_time_ms == clock()

    def test_quick_cycle_stalls_for_wait_millis(self, make_scheduler, cluster, sleep):
        cluster.add_table("ks", "t1")
        scheduler = make_scheduler()

        scheduler.repair(FULL, 1500)

        sleep.assert_called_once_with(1.5)

    def test_no_stall_without_wait_millis(self, make_scheduler, cluster, sleep):
        cluster.add_table("ks", "t1")
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)

        sleep.assert_not_called()

    def test_no_stall_after_long_cycle(self, make_scheduler, cluster, dispatcher, clock, sleep):
        cluster.add_table("ks", "t1")
        record = dispatcher.dispatch

        def slow_dispatch(*args):
            clock.advance(61_000)
            return record(*args)

        dispatcher.dispatch = slow_dispatch
        scheduler = make_scheduler()

        scheduler.repair(FULL, 60_000)

        sleep.assert_not_called()

    def test_counters_reset_each_cycle(self, make_scheduler, cluster):
        cluster.add_table("ks", "t1")
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)
        scheduler.repair(FULL, 0)

        assert scheduler.get_repair_state(FULL).table_success_count == 1

    def test_unexpected_error_is_swallowed(self, make_scheduler, cluster, coordinator, clock):
        cluster.add_table("ks", "t1")
        cluster.keyspaces = MagicMock(side_effect=RuntimeError("schema unavailable"))
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)

        assert scheduler.get_repair_state(FULL).repair_in_progress is False
        assert coordinator.history[(FULL, "host-1")].finish_ms == clock()

    def test_turn_decision_failure_is_logged_as_coordination_error(
        self, make_scheduler, cluster, dispatcher, monkeypatch
    ):
        cluster.add_table("ks", "t1")
        coordinator = MagicMock()
        coordinator.longest_unrepaired_host.return_value = None
        coordinator.decide_turn.side_effect = RuntimeError("history table unavailable")
        log = MagicMock()
        monkeypatch.setattr(scheduler_module, "logger", log)
        scheduler = make_scheduler(coordinator=coordinator)

        scheduler.repair(FULL, 0)

        assert log.exception.call_args.args == ("repair_cycle_failed",)
        fields = log.exception.call_args.kwargs
        assert fields["error_type"] == "CoordinationError"
        assert fields["category"] == "COORDINATION"
        assert fields["context"]["host_id"] == "host-1"
        assert fields["cause"] == "history table unavailable"
        assert dispatcher.calls == []
        coordinator.record_cycle_start.assert_not_called()
        coordinator.record_cycle_finish.assert_not_called()

    def test_escaped_error_is_logged_as_cycle_error(self, make_scheduler, cluster, monkeypatch):
        cluster.add_table("ks", "t1")
        cluster.keyspaces = MagicMock(side_effect=RuntimeError("schema unavailable"))
        log = MagicMock()
        monkeypatch.setattr(scheduler_module, "logger", log)
        scheduler = make_scheduler()

        scheduler.repair(FULL, 0)

        fields = log.exception.call_args.kwargs
        assert fields["error_type"] == "CycleError"
        assert fields["category"] == "CYCLE"


# ── Lifecycle ───────────────────────────────────────────────────────────


class TestLifecycle:
    def test_incremental_with_materialized_views_is_rejected(self, make_scheduler, config_service):
        config_service.set_auto_repair_enabled(INCREMENTAL, True)
        scheduler = make_scheduler(settings=AutoRepairSettings(materialized_views_enabled=True))

        with pytest.raises(ConfigurationError):
            scheduler.setup()
        assert scheduler.is_armed is False

    def test_incremental_with_cdc_is_rejected(self, make_scheduler, config_service):
        config_service.set_auto_repair_enabled(INCREMENTAL, True)
        scheduler = make_scheduler(settings=AutoRepairSettings(cdc_enabled=True))

        with pytest.raises(ConfigurationError):
            scheduler.verify_is_safe_to_enable()

    def test_full_repair_allowed_with_cdc(self, make_scheduler):
        scheduler = make_scheduler(settings=AutoRepairSettings(cdc_enabled=True))

        scheduler.verify_is_safe_to_enable()

    @pytest.mark.parametrize(
        "features", [{"cdc_enabled": True}, {"materialized_views_enabled": True}]
    )
    def test_incremental_check_helper(self, features):
        settings = AutoRepairSettings(**features)

        check_incremental_repair_allowed(settings, incremental_enabled=False)
        with pytest.raises(ConfigurationError) as exc_info:
            check_incremental_repair_allowed(settings, incremental_enabled=True)
        assert exc_info.value.context.repair_category == "incremental"

    def test_setup_arms_timers_once(self, make_scheduler):
        scheduler = make_scheduler(settings=AutoRepairSettings(initial_delay_seconds=3600))

        scheduler.setup()
        scheduler.setup()

        assert scheduler.is_armed
        health = scheduler.health()
        assert health.healthy is True
        assert set(health.backends) == set(RepairCategory)

        scheduler.shutdown()
        assert scheduler.is_armed is False
        assert scheduler.health().healthy is False

    def test_setup_after_shutdown_rearms_fresh_executors(self, make_scheduler, cluster, dispatcher):
        cluster.add_table("ks", "t1")
        scheduler = make_scheduler(settings=AutoRepairSettings(initial_delay_seconds=3600))
        scheduler.setup()
        scheduler.shutdown()

        scheduler.setup()

        assert scheduler.is_armed
        assert scheduler.health().healthy is True
        scheduler.repair_async(FULL, 0).result(timeout=5.0)
        assert dispatcher.dispatch_count == 1

    def test_timer_runs_cycles(self, cluster, clock):
        cluster.add_table("ks", "t1")
        config = RepairConfigService(RepairConfig(check_interval_seconds=0.05))
        config.set_auto_repair_enabled(FULL, True)
        config.set_repair_min_interval_hours(FULL, 0)
        coordinator = InMemoryTurnCoordinator(config, local_host_id="host-1", clock=clock)
        dispatched = threading.Event()
        dispatcher = RecordingDispatcher()
        record = dispatcher.dispatch

        def signal(*args):
            future = record(*args)
            if dispatcher.dispatch_count >= 2:
                dispatched.set()
            return future

        dispatcher.dispatch = signal

        scheduler = RepairScheduler(
            config,
            cluster,
            coordinator,
            dispatcher,
            settings=AutoRepairSettings(initial_delay_seconds=0.0, quick_cycle_wait_ms=0),
            clock=clock,
        )
        try:
            scheduler.setup()
            assert dispatched.wait(timeout=5.0)
        finally:
            scheduler.shutdown()

    def test_repair_async_runs_on_category_executor(self, make_scheduler, cluster, dispatcher):
        cluster.add_table("ks", "t1")
        scheduler = make_scheduler()

        scheduler.repair_async(FULL, 0).result(timeout=5.0)

        assert dispatcher.dispatch_count == 1

    def test_health_to_dict(self, make_scheduler, cluster):
        cluster.add_table("ks", "t1")
        scheduler = make_scheduler()
        scheduler.repair(FULL, 0)

        payload = scheduler.health().to_dict()

        assert payload["armed"] is False
        assert payload["categories"]["full"]["state"]["table_success_count"] == 1
        assert payload["categories"]["incremental"]["backend"]["backend"] == "thread"
