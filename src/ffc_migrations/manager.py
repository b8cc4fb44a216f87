"""Migration manager: the facade drivers (CLI, admin screens) talk to.

The manager looks migrations up in the registries, checks preconditions and
forwards single batches to the strategies. :meth:`MigrationManager.run_until_complete`
adds the loop a driver needs to run a migration to the end.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

from .activity import ActivityLogger
from .crypto import CryptoProvider
from .exceptions import PreconditionError
from .introspection import ColumnIntrospector
from .options import MemoryOptionStore, OptionStore
from .progress import RunProgress
from .registry import MigrationDefinition, MigrationRegistry, StrategyRegistry
from .schema import appointments_layout, submissions_layout
from .status import MigrationStatus
from .storage import Storage
from .strategies.base import ExecuteResult
from .strategies.encryption import COMPLETED_OPTION, EncryptionMigrationStrategy
from .strategies.identifier_split import IdentifierSplitMigrationStrategy

logger = logging.getLogger(__name__)

ENCRYPTION_KEY = "encrypt_sensitive_data"
SPLIT_KEY = "split_cpf_rf"

# Days to wait after encryption completes before plaintext columns may go.
DROP_GRACE_DAYS = 30

BatchCallback = Callable[[int, ExecuteResult], None]


class MigrationManager:
    """Facade over the migration and strategy registries.

    Args:
        migrations: Registered migration definitions
        strategies: Strategy per migration key
        introspector: Shared column introspector
        primary_table: Table checked for ``requires_column``
        options: Option store holding the encryption completion date
    """

    def __init__(
        self,
        migrations: MigrationRegistry,
        strategies: StrategyRegistry,
        introspector: ColumnIntrospector,
        primary_table: str,
        options: OptionStore | None = None,
    ):
        self.migrations = migrations
        self.strategies = strategies
        self.introspector = introspector
        self.primary_table = primary_table
        self.options = options or MemoryOptionStore()

    def get_migrations(self) -> List[MigrationDefinition]:
        return self.migrations.get_all()

    def get_migration(self, key: str) -> MigrationDefinition:
        return self.migrations.get(key)

    def is_migration_available(self, key: str) -> bool:
        """Registered, has a strategy, and its required column exists."""
        definition = self.migrations.get_optional(key)
        if definition is None or not self.strategies.has(key):
            return False
        if definition.requires_column is None:
            return True
        return self.introspector.column_exists(self.primary_table, definition.requires_column)

    def _config(self, definition: MigrationDefinition, overrides: Dict[str, Any] | None) -> Dict[str, Any]:
        config: Dict[str, Any] = {"batch_size": definition.batch_size, **definition.extra}
        if overrides:
            config.update({k: v for k, v in overrides.items() if v is not None})
        return config

    def get_migration_status(self, key: str) -> MigrationStatus:
        definition = self.get_migration(key)
        return self.strategies.get(key).calculate_status(key, self._config(definition, None))

    def can_run_migration(self, key: str) -> bool | PreconditionError:
        definition = self.get_migration(key)
        return self.strategies.get(key).can_run(key, self._config(definition, None))

    def run_migration(
        self,
        key: str,
        batch_number: int = 0,
        config: Dict[str, Any] | None = None,
    ) -> ExecuteResult:
        """Run one batch of a migration.

        Raises:
            MigrationNotFoundError: If the key is not registered
            PreconditionError: If the strategy refuses to run
        """
        definition = self.get_migration(key)
        strategy = self.strategies.get(key)
        effective = self._config(definition, config)

        allowed = strategy.can_run(key, effective)
        if isinstance(allowed, PreconditionError):
            logger.warning(f"Migration {key} cannot run: [{allowed.code}] {allowed}")
            raise allowed

        logger.info(f"Running migration {key}, batch {batch_number}")
        return strategy.execute(key, effective, batch_number)

    def run_until_complete(
        self,
        key: str,
        max_batches: int | None = None,
        on_batch: BatchCallback | None = None,
        config: Dict[str, Any] | None = None,
    ) -> RunProgress:
        """Run batches until nothing is pending.

        Stops early after ``max_batches`` or when a batch writes nothing while
        rows are still pending (rows that keep failing).
        """
        progress = RunProgress(key=key).start()
        batch_number = 1
        while True:
            result = self.run_migration(key, batch_number, config)
            progress.record_batch(result)
            if on_batch is not None:
                on_batch(batch_number, result)

            if not result.has_more:
                progress.finish("complete")
                break
            if result.processed == 0:
                logger.warning(f"Migration {key} made no progress in batch {batch_number}")
                progress.finish("no_progress")
                break
            if max_batches is not None and batch_number >= max_batches:
                progress.finish("max_batches")
                break
            batch_number += 1

        logger.info(progress.get_summary())
        return progress

    def migrate_encryption(self, offset: int = 0, limit: int = 0) -> ExecuteResult:
        """Offset/limit entry point kept for paginated drivers."""
        batch_number = offset // limit + 1 if limit > 0 else 1
        config = {"batch_size": limit} if limit > 0 else None
        return self.run_migration(ENCRYPTION_KEY, batch_number, config)

    def encryption_completed_at(self) -> datetime | None:
        raw = self.options.get(COMPLETED_OPTION)
        if not raw:
            return None
        return datetime.strptime(raw, "%Y-%m-%d %H:%M:%S").replace(tzinfo=timezone.utc)

    def get_drop_days_remaining(self, now: datetime | None = None) -> int:
        """Days left in the grace period before legacy columns may be dropped."""
        completed = self.encryption_completed_at()
        if completed is None:
            return DROP_GRACE_DAYS
        now = now or datetime.now(timezone.utc)
        elapsed = (now - completed).days
        return max(0, DROP_GRACE_DAYS - elapsed)

    def can_drop_columns(self, now: datetime | None = None) -> bool | PreconditionError:
        status = self.get_migration_status(ENCRYPTION_KEY)
        if not status.is_complete:
            return PreconditionError(
                "encryption_not_complete",
                f"Encryption migration is {status.percent:.2f}% complete",
            )
        if self.encryption_completed_at() is None:
            return PreconditionError(
                "no_completion_date", "Encryption completion date not recorded"
            )
        remaining = self.get_drop_days_remaining(now)
        if remaining > 0:
            return PreconditionError(
                "grace_period_not_met",
                f"Wait {remaining} more days before dropping plaintext columns",
                context={"days_remaining": remaining},
            )
        return True


def build_manager(
    storage: Storage,
    crypto: CryptoProvider | None = None,
    *,
    table_prefix: str = "",
    batch_size: int | None = None,
    drop_legacy_columns: bool = False,
    activity: ActivityLogger | None = None,
    options: OptionStore | None = None,
) -> MigrationManager:
    """Wire the two built-in migrations over one storage and one column cache."""
    introspector = ColumnIntrospector(storage)
    activity = activity or ActivityLogger()
    options = options or MemoryOptionStore()
    submissions = submissions_layout(table_prefix)
    appointments = appointments_layout(table_prefix)

    migrations = MigrationRegistry()
    size: Dict[str, Any] = {"batch_size": batch_size} if batch_size else {}
    migrations.register_migration(
        MigrationDefinition(
            key=ENCRYPTION_KEY,
            name="Encrypt Sensitive Data",
            description="Encrypt e-mail, IP address, form data and CPF/RF of submissions",
            order=1,
            requires_column="email_encrypted",
            **size,
        )
    )
    migrations.register_migration(
        MigrationDefinition(
            key=SPLIT_KEY,
            name="Split CPF/RF",
            description="Move the combined CPF/RF identifier into separate CPF and RF columns",
            order=2,
            requires_column="cpf_hash",
            extra={"drop_legacy_columns": drop_legacy_columns},
            **size,
        )
    )

    strategies = StrategyRegistry()
    strategies.register_strategy(
        ENCRYPTION_KEY,
        EncryptionMigrationStrategy(
            storage, crypto, [submissions],
            introspector=introspector, activity=activity, options=options,
        ),
    )
    strategies.register_strategy(
        SPLIT_KEY,
        IdentifierSplitMigrationStrategy(
            storage, crypto, submissions, appointments,
            introspector=introspector, activity=activity,
            drop_legacy_columns=drop_legacy_columns,
        ),
    )

    return MigrationManager(migrations, strategies, introspector, submissions.name, options)


__all__ = [
    "DROP_GRACE_DAYS",
    "ENCRYPTION_KEY",
    "SPLIT_KEY",
    "MigrationManager",
    "build_manager",
]
