"""Bounded, resumable batch processing of pending rows.

A batch selects at most ``batch_size`` rows matching the pending condition,
without OFFSET: every successfully written row stops matching, so the next
call picks up the next slice. A row that fails stays pending and is retried
on a later call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Sequence

from .activity import LEVEL_INFO, ActivityLogger
from .conditions import Condition
from .schema import RowUpdate
from .storage import Storage

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


@dataclass(frozen=True)
class RowResult:
    """Outcome of transforming one row: an update to write, or an error."""

    row_id: Any
    update: RowUpdate | None = None
    error: str | None = None

    @classmethod
    def ok(cls, row_id: Any, update: RowUpdate) -> RowResult:
        return cls(row_id=row_id, update=update)

    @classmethod
    def failure(cls, row_id: Any, message: str) -> RowResult:
        return cls(row_id=row_id, error=message)

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.update is not None


RowTransform = Callable[[Row], RowResult]


@dataclass
class BatchOutcome:
    """Rows written and per-row error messages of one or more batches."""

    processed: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def merge(self, other: BatchOutcome) -> BatchOutcome:
        self.processed += other.processed
        self.errors.extend(other.errors)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {"processed": self.processed, "errors": list(self.errors)}


class BatchProcessor:
    """Selects pending rows, transforms them one by one and writes them back."""

    def __init__(self, storage: Storage, activity: ActivityLogger | None = None):
        self.storage = storage
        self.activity = activity or ActivityLogger()

    def process(
        self,
        table: str,
        batch_size: int,
        columns: Sequence[str],
        pending: Condition,
        transform: RowTransform,
        primary_key: str = "id",
        event: str = "migration_batch",
    ) -> BatchOutcome:
        """Process one batch of a table.

        Args:
            table: Physical table name
            batch_size: Maximum number of rows to select
            columns: Columns to read (the primary key is always included)
            pending: Selection condition; written rows must stop matching it
            transform: Builds the update for a row
            primary_key: Primary key column used for the single-row UPDATE
            event: Activity event name logged when the batch completes

        Returns:
            BatchOutcome with the count of written rows and error messages
        """
        select_columns = [primary_key, *[c for c in columns if c != primary_key]]
        rows = self.storage.select(
            table, select_columns, where=pending, limit=batch_size, order_by=primary_key
        )

        outcome = BatchOutcome()
        if not rows:
            logger.debug(f"No pending rows in {table}")
            return outcome

        for row in rows:
            row_id = row.get(primary_key)
            error = self._process_row(table, row, row_id, transform, primary_key)
            if error is None:
                outcome.processed += 1
            else:
                outcome.errors.append(error)

        logger.info(
            f"Batch on {table}: {outcome.processed} processed, {len(outcome.errors)} errors"
        )
        self.activity.log(
            event,
            LEVEL_INFO,
            {"table": table, "processed": outcome.processed, "errors": len(outcome.errors)},
        )
        return outcome

    def _process_row(
        self,
        table: str,
        row: Row,
        row_id: Any,
        transform: RowTransform,
        primary_key: str,
    ) -> str | None:
        """Transform and write one row; returns an error message or None."""
        try:
            result = transform(row)
        except Exception as e:
            logger.debug(f"Transform failed for ID {row_id} in {table}", exc_info=True)
            return f"Error processing ID {row_id} in {table}: {e}"

        if not result.succeeded:
            return f"Error processing ID {row_id} in {table}: {result.error}"

        try:
            self.storage.update(table, result.update.to_params(), primary_key, row_id)
        except Exception as e:
            logger.debug(f"Update failed for ID {row_id} in {table}", exc_info=True)
            return f"Failed to update ID {row_id} in {table}: {e}"

        return None
