"""Tests for CategoryExecutor."""

from __future__ import annotations

import threading
import time

from autorepair.config.models import RepairCategory
from autorepair.scheduling.thread_backend import CategoryExecutor


class TestCategoryExecutor:
    def test_health_before_start(self):
        executor = CategoryExecutor(RepairCategory.FULL)
        try:
            health = executor.health()

            assert health["healthy"] is False
            assert health["backend"] == "thread"
            assert health["tick_count"] == 0
            assert health["last_tick"] is None
            assert health["repair_category"] == "full"
        finally:
            executor.stop()

    def test_fixed_delay_runs_repeatedly(self):
        executor = CategoryExecutor(RepairCategory.FULL)
        ran = threading.Event()
        runs = []

        def cycle():
            runs.append(threading.current_thread().name)
            if len(runs) >= 3:
                ran.set()

        executor.schedule_with_fixed_delay(cycle, 0.0, 0.01)
        try:
            assert ran.wait(timeout=5.0)
            assert executor.is_running
            assert executor.tick_count >= 3
            assert executor.last_tick is not None
        finally:
            executor.stop()

        assert not executor.is_running
        assert all(name.startswith("autorepair-full") for name in runs)

    def test_next_delay_waits_for_cycle_to_finish(self):
        executor = CategoryExecutor(RepairCategory.INCREMENTAL)
        active = []
        overlaps = []
        done = threading.Event()

        def slow_cycle():
            overlaps.append(len(active))
            active.append(1)
            time.sleep(0.05)
            active.pop()
            if len(overlaps) >= 3:
                done.set()

        executor.schedule_with_fixed_delay(slow_cycle, 0.0, 0.0)
        try:
            assert done.wait(timeout=5.0)
        finally:
            executor.stop()

        assert set(overlaps) == {0}

    def test_interval_callable_is_reread(self):
        executor = CategoryExecutor(RepairCategory.FULL)
        intervals = iter([0.01, 0.01, 3600.0])
        reads = []
        third = threading.Event()

        def interval():
            value = next(intervals, 3600.0)
            reads.append(value)
            return value

        def cycle():
            if len(reads) >= 2:
                third.set()

        executor.schedule_with_fixed_delay(cycle, 0.0, interval)
        try:
            assert third.wait(timeout=5.0)
        finally:
            executor.stop()

        assert reads[:2] == [0.01, 0.01]

    def test_cycle_exception_does_not_stop_timer(self):
        executor = CategoryExecutor(RepairCategory.FULL)
        calls = []
        recovered = threading.Event()

        def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise ValueError("first cycle fails")
            recovered.set()

        executor.schedule_with_fixed_delay(flaky, 0.0, 0.01)
        try:
            assert recovered.wait(timeout=5.0)
        finally:
            executor.stop()

    def test_double_schedule_ignored(self):
        executor = CategoryExecutor(RepairCategory.FULL)
        executor.schedule_with_fixed_delay(lambda: None, 3600.0, 3600.0)
        first_thread = executor._thread
        try:
            executor.schedule_with_fixed_delay(lambda: None, 3600.0, 3600.0)

            assert executor._thread is first_thread
            assert executor.get_health().extra["interval_seconds"] == 3600.0
        finally:
            executor.stop()

    def test_submit_queues_behind_running_cycle(self):
        executor = CategoryExecutor(RepairCategory.FULL)
        order = []
        release = threading.Event()
        try:
            first = executor.submit(lambda: (release.wait(5.0), order.append("first")))
            second = executor.submit(order.append, "second")
            release.set()
            first.result(timeout=5.0)
            second.result(timeout=5.0)
        finally:
            executor.stop()

        assert order == ["first", "second"]
