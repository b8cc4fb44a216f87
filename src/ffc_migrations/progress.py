"""Progress of a multi-batch run, separate from migration logic.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from .strategies.base import ExecuteResult


@dataclass
class RunProgress:
    """Accumulates the results of successive ``execute`` calls.

    ``stopped_reason`` is one of ``complete``, ``max_batches`` or
    ``no_progress`` once the run has finished.
    """

    key: str = ""
    batches: int = 0
    processed: int = 0
    errors: list[str] = field(default_factory=list)
    has_more: bool = True
    stopped_reason: str | None = None
    start_time: float | None = None
    end_time: float | None = None

    def start(self) -> RunProgress:
        self.start_time = time.time()
        return self

    def finish(self, reason: str) -> RunProgress:
        self.stopped_reason = reason
        self.end_time = time.time()
        return self

    @property
    def duration(self) -> float:
        """Run duration in seconds, or 0 if not started."""
        if self.start_time is None:
            return 0.0
        end = self.end_time if self.end_time else time.time()
        return end - self.start_time

    @property
    def is_complete(self) -> bool:
        return not self.has_more

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def record_batch(self, result: ExecuteResult) -> RunProgress:
        self.batches += 1
        self.processed += result.processed
        self.errors.extend(result.errors)
        self.has_more = result.has_more
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "batches": self.batches,
            "processed": self.processed,
            "errors": list(self.errors),
            "has_more": self.has_more,
            "stopped_reason": self.stopped_reason,
            "duration": self.duration,
        }

    def get_summary(self) -> str:
        return (
            f"{self.key}: {self.processed} rows in {self.batches} batches, "
            f"{len(self.errors)} errors ({self.stopped_reason or 'running'})"
        )
