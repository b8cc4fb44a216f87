"""Migration strategies.

Each strategy implements one migration behind the uniform contract of
:class:`MigrationStrategy`.
"""

from .base import DEFAULT_BATCH_SIZE, ExecuteResult, MigrationStrategy, batch_size_from
from .encryption import COMPLETED_OPTION, EncryptionMigrationStrategy, EncryptionState
from .identifier_split import IdentifierSplitMigrationStrategy

__all__ = [
    "DEFAULT_BATCH_SIZE",
    "ExecuteResult",
    "MigrationStrategy",
    "batch_size_from",
    "COMPLETED_OPTION",
    "EncryptionMigrationStrategy",
    "EncryptionState",
    "IdentifierSplitMigrationStrategy",
]
