"""Batch-resumable migrations for encrypted certificate submission data.

This package moves sensitive fields of form submissions from plaintext to
encrypted + keyed-hash columns, and splits the combined CPF/RF identifier
into typed columns:

- **Strategies**: one class per migration behind a uniform contract
- **Manager**: registry-backed facade that checks preconditions and runs batches
- **Storage**: parameterized SQLite access with cached column introspection
- **Crypto**: Fernet encryption and HMAC-SHA256 keyed hashing

Example:
    ```python
    from ffc_migrations import FernetCryptoProvider, SQLiteStorage, build_manager

    with SQLiteStorage({"path": "ffcertificate.db"}) as storage:
        manager = build_manager(storage, FernetCryptoProvider(secret), table_prefix="wp_")
        progress = manager.run_until_complete("encrypt_sensitive_data")
        print(progress.get_summary())
    ```
"""

__version__ = "0.1.0"

from .activity import ActivityLogger
from .config import MigrationSettings
from .crypto import CryptoProvider, FernetCryptoProvider
from .exceptions import (
    ConfigurationError,
    CryptoError,
    DecryptionError,
    InvalidIdentifierError,
    MigrationError,
    MigrationNotFoundError,
    PreconditionError,
    StorageError,
)
from .identifiers import IdentifierType, classify
from .introspection import ColumnCache, ColumnIntrospector
from .manager import ENCRYPTION_KEY, SPLIT_KEY, MigrationManager, build_manager
from .options import MemoryOptionStore, OptionStore, SQLiteOptionStore
from .progress import RunProgress
from .registry import MigrationDefinition, MigrationRegistry, Registry, StrategyRegistry
from .status import MigrationStatus, StatusCalculator, TableCounts
from .storage import SQLiteStorage, Storage
from .strategies import (
    EncryptionMigrationStrategy,
    EncryptionState,
    ExecuteResult,
    IdentifierSplitMigrationStrategy,
    MigrationStrategy,
)

__all__ = [
    "__version__",
    # Errors
    "MigrationError",
    "ConfigurationError",
    "PreconditionError",
    "MigrationNotFoundError",
    "CryptoError",
    "DecryptionError",
    "StorageError",
    "InvalidIdentifierError",
    # Infrastructure
    "ActivityLogger",
    "MigrationSettings",
    "CryptoProvider",
    "FernetCryptoProvider",
    "Storage",
    "SQLiteStorage",
    "ColumnCache",
    "ColumnIntrospector",
    "OptionStore",
    "MemoryOptionStore",
    "SQLiteOptionStore",
    # Domain
    "IdentifierType",
    "classify",
    "MigrationStatus",
    "StatusCalculator",
    "TableCounts",
    # Strategies
    "MigrationStrategy",
    "ExecuteResult",
    "EncryptionMigrationStrategy",
    "EncryptionState",
    "IdentifierSplitMigrationStrategy",
    # Management
    "Registry",
    "MigrationDefinition",
    "MigrationRegistry",
    "StrategyRegistry",
    "MigrationManager",
    "RunProgress",
    "build_manager",
    "ENCRYPTION_KEY",
    "SPLIT_KEY",
]
