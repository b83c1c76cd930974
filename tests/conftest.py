"""
Shared pytest fixtures and configuration for autorepair tests.

This module provides:
- Marker auto-application based on test location
- Settings cache isolation
- A controllable millisecond clock
- In-memory collaborators and a scheduler factory wired to them

Usage:
    def test_something(make_scheduler, cluster):
        cluster.add_table("ks", "users")
        scheduler = make_scheduler()
        scheduler.repair(RepairCategory.FULL, 0)
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from autorepair.config.models import RepairCategory
from autorepair.config.service import RepairConfigService
from autorepair.core.settings import AutoRepairSettings, clear_settings_cache
from autorepair.scheduling.memory import InMemoryCluster, InMemoryTurnCoordinator, RecordingDispatcher
from autorepair.scheduling.scheduler import RepairScheduler

# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.path).relative_to(Path(__file__).parent)

        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def clean_settings_cache() -> Generator[None, None, None]:
    """Drop cached settings before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


# =============================================================================
# Clock
# =============================================================================

class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def settings() -> AutoRepairSettings:
    return AutoRepairSettings(initial_delay_seconds=0.0, quick_cycle_wait_ms=0)


@pytest.fixture
def config_service() -> RepairConfigService:
    """Config with FULL enabled: one sub-range per range, one range per group."""
    service = RepairConfigService()
    service.set_auto_repair_enabled(RepairCategory.FULL, True)
    service.set_repair_sub_range_count(RepairCategory.FULL, 1)
    service.set_repair_min_interval_hours(RepairCategory.FULL, 0)
    return service


@pytest.fixture
def cluster() -> InMemoryCluster:
    return InMemoryCluster(host_id="host-1", datacenter="dc1")


@pytest.fixture
def coordinator(config_service: RepairConfigService, clock: FakeClock) -> InMemoryTurnCoordinator:
    return InMemoryTurnCoordinator(config_service, local_host_id="host-1", clock=clock)


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def sleep() -> MagicMock:
    return MagicMock()


@pytest.fixture
def make_scheduler(
    config_service: RepairConfigService,
    cluster: InMemoryCluster,
    coordinator: InMemoryTurnCoordinator,
    dispatcher: RecordingDispatcher,
    settings: AutoRepairSettings,
    clock: FakeClock,
    sleep: MagicMock,
) -> Generator[Callable[..., RepairScheduler], None, None]:
    """Factory building schedulers on the shared fixtures; shuts them down afterwards."""
    created: list[RepairScheduler] = []

    def _make(**overrides) -> RepairScheduler:
        kwargs = {
            "config_service": config_service,
            "cluster": cluster,
            "coordinator": coordinator,
            "dispatcher": dispatcher,
            "settings": settings,
            "clock": clock,
            "sleep": sleep,
        }
        kwargs.update(overrides)
        scheduler = RepairScheduler(**kwargs)
        created.append(scheduler)
        return scheduler

    yield _make

    for scheduler in created:
        scheduler.shutdown(wait=False)
