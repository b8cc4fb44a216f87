"""Fire-and-forget activity log for migration events."""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List

logger = logging.getLogger(__name__)

LEVEL_INFO = "info"
LEVEL_WARNING = "warning"
LEVEL_ERROR = "error"
LEVEL_DEBUG = "debug"

_LOGGING_LEVELS = {
    LEVEL_DEBUG: logging.DEBUG,
    LEVEL_INFO: logging.INFO,
    LEVEL_WARNING: logging.WARNING,
    LEVEL_ERROR: logging.ERROR,
}


@dataclass
class ActivityEntry:
    """One logged event."""

    event: str
    level: str
    context: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event,
            "level": self.level,
            "context": self.context,
            "timestamp": self.timestamp,
        }


class ActivityLogger:
    """Writes activity events to Python logging and optional sinks.

    ``log`` never raises: a failing sink is reported at debug level and
    otherwise ignored, so observability problems cannot break a batch.

    Args:
        sink: Optional callable receiving every :class:`ActivityEntry`
        keep_entries: How many recent entries to keep in memory (0 disables)
    """

    def __init__(
        self,
        sink: Callable[[ActivityEntry], None] | None = None,
        keep_entries: int = 0,
    ):
        self._sink = sink
        self._entries: Deque[ActivityEntry] | None = (
            deque(maxlen=keep_entries) if keep_entries > 0 else None
        )

    def log(self, event: str, level: str = LEVEL_INFO, context: Dict[str, Any] | None = None) -> bool:
        """Record an event.

        Returns:
            True if the event was recorded everywhere, False if a sink failed
        """
        entry = ActivityEntry(event=event, level=level, context=dict(context or {}))
        try:
            logger.log(
                _LOGGING_LEVELS.get(level, logging.INFO),
                f"{event}: {entry.context}",
                extra={"activity_event": event, "activity_context": entry.context},
            )
            if self._entries is not None:
                self._entries.append(entry)
            if self._sink is not None:
                self._sink(entry)
            return True
        except Exception:
            logger.debug(f"Activity log sink failed for {event}", exc_info=True)
            return False

    @property
    def entries(self) -> List[ActivityEntry]:
        return list(self._entries) if self._entries is not None else []

    def find(self, event: str) -> List[ActivityEntry]:
        """Recent entries with the given event name."""
        return [e for e in self.entries if e.event == event]
