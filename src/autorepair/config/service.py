"""Management surface for repair configuration.

A flat set of getters and setters over :class:`RepairConfig`, the way an
operator (or an admin API) changes repair behaviour on a running node.

┌──────────────────────────────────────────────────────────────────────────┐
│  RepairConfigService                                                     │
│                                                                          │
│   operator ──► set_*() ──► lock ──► validated assignment ──► RepairConfig │
│                                                                │         │
│   RepairScheduler ◄──────── options(category)  (no lock) ◄─────┘         │
│                                                                          │
│  Writes are serialized against each other; reads are not.  A write       │
│  lands on the scheduler's next checkpoint (start of cycle, or before     │
│  the next task group for the ``enabled`` flag).                          │
└──────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from autorepair.core.errors import InvalidConfigError
from autorepair.core.logging import get_logger

from .models import CategoryOptions, RepairCategory, RepairConfig

if TYPE_CHECKING:
    from autorepair.scheduling.protocol import TurnCoordinator

logger = get_logger(__name__)


class RepairConfigService:
    """Read/write access to the process-wide :class:`RepairConfig`.

    Example:
        >>> service = RepairConfigService()
        >>> service.set_auto_repair_enabled(RepairCategory.FULL, True)
        >>> service.set_repair_threads(RepairCategory.FULL, 4)
        >>> service.options(RepairCategory.FULL).repair_threads
        4
    """

    def __init__(
        self,
        config: RepairConfig | None = None,
        coordinator: TurnCoordinator | None = None,
    ) -> None:
        self._config = config or RepairConfig()
        self._coordinator = coordinator
        self._write_lock = threading.Lock()

    def attach_coordinator(self, coordinator: TurnCoordinator) -> None:
        """Wire the coordinator used by ``filter_hosts_in_local_group``."""
        self._coordinator = coordinator

    # === Reads ===

    def options(self, category: RepairCategory) -> CategoryOptions:
        """Live options for ``category`` (not a copy)."""
        return self._config.options(category)

    def is_enabled(self, category: RepairCategory) -> bool:
        return self._config.is_enabled(category)

    @property
    def check_interval_seconds(self) -> float:
        return self._config.check_interval_seconds

    def get_auto_repair_config(self) -> RepairConfig:
        """Deep-copied snapshot of the whole configuration."""
        with self._write_lock:
            return self._config.model_copy(deep=True)

    def get_repair_host_priority(self, category: RepairCategory) -> set[str]:
        return set(self.options(category).priority_hosts)

    def filter_hosts_in_local_group(
        self, category: RepairCategory, hosts: Iterable[str]
    ) -> set[str]:
        """Hosts from ``hosts`` that share the local node's coordination group."""
        if self._coordinator is None:
            raise RuntimeError("No turn coordinator attached to RepairConfigService")
        return set(self._coordinator.filter_hosts_in_local_group(category, set(hosts)))

    # === Writes ===

    def _set(self, category: RepairCategory, field: str, value: Any) -> None:
        with self._write_lock:
            try:
                setattr(self._config.options(category), field, value)
            except ValidationError as e:
                raise InvalidConfigError(f"{category.value}.{field}", value) from e
        logger.info("repair_config_updated", repair_category=category.value, field=field, value=value)

    def set_auto_repair_enabled(self, category: RepairCategory, enabled: bool) -> None:
        self._set(category, "enabled", enabled)

    def set_repair_threads(self, category: RepairCategory, repair_threads: int) -> None:
        self._set(category, "repair_threads", repair_threads)

    def set_repair_priority_for_hosts(self, category: RepairCategory, hosts: Iterable[str]) -> None:
        self._set(category, "priority_hosts", set(hosts))

    def set_force_repair_for_hosts(self, category: RepairCategory, hosts: Iterable[str]) -> None:
        self._set(category, "force_repair_hosts", set(hosts))

    def set_repair_sub_range_count(self, category: RepairCategory, sub_range_count: int) -> None:
        self._set(category, "sub_range_count", sub_range_count)

    def set_repair_min_interval_hours(self, category: RepairCategory, hours: int) -> None:
        self._set(category, "min_interval_hours", hours)

    def set_fragment_count_threshold(self, category: RepairCategory, threshold: int) -> None:
        self._set(category, "fragment_count_threshold", threshold)

    def set_table_max_repair_seconds(self, category: RepairCategory, seconds: int) -> None:
        self._set(category, "table_max_repair_seconds", seconds)

    def set_ignored_datacenters(self, category: RepairCategory, datacenters: Iterable[str]) -> None:
        self._set(category, "ignored_datacenters", set(datacenters))

    def set_primary_range_only(self, category: RepairCategory, primary_range_only: bool) -> None:
        self._set(category, "primary_range_only", primary_range_only)

    def set_repair_by_keyspace(self, category: RepairCategory, by_keyspace: bool) -> None:
        self._set(category, "repair_by_keyspace", by_keyspace)

    def set_parallel_repair_percentage(self, category: RepairCategory, percentage: int) -> None:
        self._set(category, "parallel_repair_percentage", percentage)

    def set_parallel_repair_count(self, category: RepairCategory, count: int) -> None:
        self._set(category, "parallel_repair_count", count)

    def set_mv_repair_enabled(self, category: RepairCategory, enabled: bool) -> None:
        self._set(category, "mv_repair_enabled", enabled)

    def set_history_clear_delete_hosts_buffer_seconds(self, seconds: int) -> None:
        with self._write_lock:
            try:
                self._config.history_clear_delete_hosts_buffer_seconds = seconds
            except ValidationError as e:
                raise InvalidConfigError("history_clear_delete_hosts_buffer_seconds", seconds) from e
        logger.info("repair_config_updated", field="history_clear_delete_hosts_buffer_seconds", value=seconds)
