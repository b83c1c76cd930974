"""Repair categories and per-category repair options.

``RepairConfig`` is the process-wide, externally mutable configuration
the scheduler reads on every checkpoint.  It is deliberately a plain
mutable pydantic model: the management surface assigns fields in place
(validated by ``validate_assignment``) and the next read of the
scheduler sees the new value.  Nothing here is locked on the read side.

Tags:
    autorepair, configuration, pydantic, repair-category
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class RepairCategory(str, Enum):
    """Independently configured kinds of repair."""

    FULL = "full"
    INCREMENTAL = "incremental"


class CategoryOptions(BaseModel):
    """Options for a single repair category."""

    model_config = ConfigDict(validate_assignment=True)

    enabled: bool = False
    repair_threads: int = Field(default=1, ge=1, description="Sub-ranges per dispatched task group")
    sub_range_count: int = Field(default=16, ge=1, description="Sub-ranges per source token range")
    min_interval_hours: int = Field(default=24, ge=0)
    fragment_count_threshold: int = Field(
        default=10_000, ge=0, description="Skip tables with more live fragments than this"
    )
    table_max_repair_seconds: int = Field(default=6 * 3600, ge=0)
    ignored_datacenters: set[str] = Field(default_factory=set)
    primary_range_only: bool = True
    repair_by_keyspace: bool = False
    parallel_repair_percentage: int = Field(default=3, ge=0, le=100)
    parallel_repair_count: int = Field(default=3, ge=0)
    mv_repair_enabled: bool = False
    priority_hosts: set[str] = Field(default_factory=set)
    force_repair_hosts: set[str] = Field(default_factory=set)


class RepairConfig(BaseModel):
    """Process-wide repair configuration, one ``CategoryOptions`` per category."""

    model_config = ConfigDict(validate_assignment=True)

    categories: dict[RepairCategory, CategoryOptions] = Field(default_factory=dict)
    history_clear_delete_hosts_buffer_seconds: int = Field(default=2 * 3600, ge=0)
    check_interval_seconds: float = Field(default=300.0, gt=0)

    @model_validator(mode="after")
    def _fill_categories(self) -> RepairConfig:
        """Every category always has options."""
        for category in RepairCategory:
            if category not in self.categories:
                self.categories[category] = CategoryOptions()
        return self

    def options(self, category: RepairCategory) -> CategoryOptions:
        return self.categories[category]

    def is_enabled(self, category: RepairCategory) -> bool:
        return self.categories[category].enabled
