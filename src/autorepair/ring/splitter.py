"""Token range splitter.

Turns a keyspace's ring ranges into an ordered list of
:class:`RepairAssignment` objects.  Pure with respect to its inputs: the
same ring state and configuration always produce the same list, which
keeps batching in the scheduler reproducible.

::

    source ranges (primary or all local)      sub_range_count = 3
    ┌──────────────┐┌────────────┐
    │      r0      ││     r1     │
    └──────────────┘└────────────┘
            │               │
            ▼               ▼
    [r0.0][r0.1][r0.2][r1.0][r1.1][r1.2]

    by keyspace:  one assignment per sub-range, all tables
    by table:     one assignment per (table, sub-range), table-major
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from autorepair.config.models import RepairCategory
from autorepair.config.service import RepairConfigService
from autorepair.core.logging import get_logger

from .tokens import RepairAssignment, TokenRange, split_evenly

logger = get_logger(__name__)


@runtime_checkable
class RingView(Protocol):
    """Ring ownership as seen from the local node."""

    def primary_ranges(self, keyspace: str) -> Sequence[TokenRange]:
        """Ranges the local node owns as primary replica."""
        ...

    def local_ranges(self, keyspace: str) -> Sequence[TokenRange]:
        """All ranges the local node replicates."""
        ...


class TokenRangeSplitter:
    """Default splitter: even split of every source range.

    Example:
        >>> splitter = TokenRangeSplitter(config_service, ring)
        >>> splitter.get_repair_assignments(
        ...     RepairCategory.FULL, True, "ks", ["users", "events"]
        ... )
        [RepairAssignment(token_range=TokenRange(...), keyspace='ks', tables=('users',)), ...]
    """

    def __init__(self, config_service: RepairConfigService, ring: RingView) -> None:
        self.config_service = config_service
        self.ring = ring

    def get_repair_assignments(
        self,
        category: RepairCategory,
        primary_range_only: bool,
        keyspace: str,
        table_names: Sequence[str],
        by_keyspace: bool | None = None,
    ) -> list[RepairAssignment]:
        """Sub-range assignments for ``table_names`` in ``keyspace``.

        ``by_keyspace`` overrides the configured grouping; callers that
        already decided the unit shape pass it so a concurrent config write
        cannot change the shape under them.
        """
        options = self.config_service.options(category)
        if by_keyspace is None:
            by_keyspace = options.repair_by_keyspace

        if primary_range_only:
            source_ranges = self.ring.primary_ranges(keyspace)
        else:
            source_ranges = self.ring.local_ranges(keyspace)

        sub_ranges: list[TokenRange] = []
        for token_range in source_ranges:
            sub_ranges.extend(split_evenly(token_range, options.sub_range_count))

        tables = tuple(table_names)
        if by_keyspace:
            assignments = [RepairAssignment(r, keyspace, tables) for r in sub_ranges]
        else:
            assignments = [
                RepairAssignment(r, keyspace, (table,)) for table in tables for r in sub_ranges
            ]

        logger.debug(
            "repair_assignments_computed",
            repair_category=category.value,
            keyspace=keyspace,
            source_ranges=len(source_ranges),
            sub_ranges=len(sub_ranges),
            assignments=len(assignments),
        )
        return assignments
