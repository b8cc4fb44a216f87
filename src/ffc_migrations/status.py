"""Migration status: eligible vs. migrated row counts across tables.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from .conditions import Condition, all_of
from .introspection import ColumnIntrospector
from .storage import Storage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TableCounts:
    """Row counts of one physical table."""

    table: str
    total: int = 0
    migrated: int = 0

    @property
    def pending(self) -> int:
        return self.total - self.migrated


@dataclass(frozen=True)
class MigrationStatus:
    """Aggregate progress of one migration.

    ``percent`` is rounded to two decimals and defined as 100 for an empty
    dataset, so a migration with nothing to do reports complete.
    """

    total: int = 0
    migrated: int = 0

    @classmethod
    def from_counts(cls, counts: Iterable[TableCounts]) -> MigrationStatus:
        """Sum per-table counts before deriving any ratio."""
        total = 0
        migrated = 0
        for table_counts in counts:
            total += table_counts.total
            migrated += table_counts.migrated
        return cls(total=total, migrated=migrated)

    @property
    def pending(self) -> int:
        return self.total - self.migrated

    @property
    def percent(self) -> float:
        if self.total == 0:
            return 100.0
        return round(self.migrated / self.total * 100, 2)

    @property
    def is_complete(self) -> bool:
        return self.pending == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "migrated": self.migrated,
            "pending": self.pending,
            "percent": self.percent,
            "is_complete": self.is_complete,
        }

    def get_summary(self) -> str:
        return (
            f"{self.migrated}/{self.total} migrated ({self.percent:.2f}%), "
            f"{self.pending} pending"
        )

    def __str__(self) -> str:
        return self.get_summary()


class StatusCalculator:
    """Counts eligible and migrated rows per table.

    A table that does not exist, or whose feature columns are missing (the
    caller passes ``None`` conditions), contributes zero to every count.
    """

    def __init__(self, storage: Storage, introspector: ColumnIntrospector):
        self.storage = storage
        self.introspector = introspector

    def count_table(
        self,
        table: str,
        eligible: Condition | None,
        migrated: Condition | None,
    ) -> TableCounts:
        """Count rows matching ``eligible`` and, among them, ``migrated``.

        Args:
            table: Physical table name
            eligible: Source-of-truth condition (None: table is a no-op)
            migrated: Destination marker condition (None: nothing migrated yet)
        """
        if eligible is None or not self.introspector.exists(table):
            return TableCounts(table)

        total = self.storage.count(table, eligible)
        done = 0
        if migrated is not None and total:
            done = self.storage.count(table, all_of([eligible, migrated]))

        logger.debug(f"Status of {table}: total={total}, migrated={done}")
        return TableCounts(table, total=total, migrated=done)

    def count_pending(self, table: str, pending: Condition | None) -> int:
        if pending is None or not self.introspector.exists(table):
            return 0
        return self.storage.count(table, pending)

    def aggregate(self, counts: Iterable[TableCounts]) -> MigrationStatus:
        return MigrationStatus.from_counts(counts)
