"""Repair scheduling: collaborator protocols, execution state, executors
and the :class:`RepairScheduler` orchestrator."""

from .dispatch import ThreadRepairDispatcher
from .memory import InMemoryCluster, InMemoryTurnCoordinator, RecordingDispatcher
from .protocol import BackendHealth, ClusterView, RepairTaskDispatcher, RepairTurn, TurnCoordinator
from .scheduler import (
    QUICK_CYCLE_THRESHOLD_SECONDS,
    RepairScheduler,
    SchedulerHealth,
    check_incremental_repair_allowed,
)
from .state import RepairExecutionState, RepairStateSnapshot
from .thread_backend import CategoryExecutor

__all__ = [
    "QUICK_CYCLE_THRESHOLD_SECONDS",
    "BackendHealth",
    "CategoryExecutor",
    "ClusterView",
    "InMemoryCluster",
    "InMemoryTurnCoordinator",
    "RecordingDispatcher",
    "RepairExecutionState",
    "RepairScheduler",
    "RepairStateSnapshot",
    "RepairTaskDispatcher",
    "RepairTurn",
    "SchedulerHealth",
    "ThreadRepairDispatcher",
    "TurnCoordinator",
    "check_incremental_repair_allowed",
]
