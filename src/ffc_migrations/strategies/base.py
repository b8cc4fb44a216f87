"""Uniform contract implemented by every migration strategy.

A driver only ever calls the four operations below, so any number of
strategies can be scheduled the same way:

- ``get_name()``: human label
- ``can_run(key, config)``: ``True`` or a :class:`PreconditionError`
- ``calculate_status(key, config)``: :class:`MigrationStatus`
- ``execute(key, config, batch_number)``: :class:`ExecuteResult`
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Mapping

from ..activity import ActivityLogger
from ..batch import BatchProcessor
from ..crypto import CryptoProvider
from ..exceptions import ConfigurationError, PreconditionError
from ..i18n import _
from ..introspection import ColumnIntrospector
from ..status import MigrationStatus, StatusCalculator
from ..storage import Storage

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50


def batch_size_from(config: Mapping[str, Any] | None, default: int = DEFAULT_BATCH_SIZE) -> int:
    """Read ``batch_size`` from a migration config.

    Raises:
        ConfigurationError: If the value is not a positive integer
    """
    if not config or config.get("batch_size") is None:
        return default
    raw = config["batch_size"]
    try:
        size = int(raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            "batch_size must be a positive integer", context={"batch_size": raw}
        ) from e
    if size < 1:
        raise ConfigurationError(
            "batch_size must be a positive integer", context={"batch_size": raw}
        )
    return size


@dataclass
class ExecuteResult:
    """Result of one ``execute`` call.

    ``success`` is True iff no row failed in this batch; ``has_more`` only
    reflects the pending count measured after the batch was written.
    """

    success: bool
    processed: int
    has_more: bool
    message: str
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "processed": self.processed,
            "has_more": self.has_more,
            "message": self.message,
            "errors": list(self.errors),
        }


class MigrationStrategy(ABC):
    """Base class for migration strategies.

    Subclasses receive their collaborators through the constructor; the same
    introspector (and its column cache) should be shared by every strategy of
    a run.
    """

    def __init__(
        self,
        storage: Storage,
        crypto: CryptoProvider | None,
        introspector: ColumnIntrospector | None = None,
        activity: ActivityLogger | None = None,
    ):
        self.storage = storage
        self.crypto = crypto
        self.introspector = introspector or ColumnIntrospector(storage)
        self.activity = activity or ActivityLogger()
        self.status_calculator = StatusCalculator(storage, self.introspector)
        self.processor = BatchProcessor(storage, self.activity)

    @abstractmethod
    def get_name(self) -> str:
        pass

    @abstractmethod
    def can_run(self, key: str, config: Mapping[str, Any]) -> bool | PreconditionError:
        pass

    @abstractmethod
    def calculate_status(self, key: str, config: Mapping[str, Any]) -> MigrationStatus:
        pass

    @abstractmethod
    def execute(
        self, key: str, config: Mapping[str, Any], batch_number: int = 0
    ) -> ExecuteResult:
        pass

    def check_crypto(self, purpose: str) -> PreconditionError | None:
        """Precondition shared by strategies that encrypt or decrypt."""
        if self.crypto is None:
            return PreconditionError(
                "encryption_unavailable",
                _("Encryption provider not available. Required for %s.") % purpose,
            )
        if not self.crypto.is_configured():
            return PreconditionError(
                "encryption_not_configured",
                _("Encryption keys not configured. Required for %s.") % purpose,
            )
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.get_name()!r})"
