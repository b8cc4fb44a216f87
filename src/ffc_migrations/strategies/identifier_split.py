"""Split the combined CPF/RF identifier into typed CPF and RF columns.

The combined triple (``cpf_rf``, ``cpf_rf_encrypted``, ``cpf_rf_hash``) is
resolved to plaintext, classified by digit count and written to the typed
columns of its class. The combined columns are retired in the same UPDATE, so
a migrated row no longer matches the pending condition.

The submissions table is always processed; the appointments table only when
it exists and still carries ``cpf_rf_hash``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Mapping

from ..activity import LEVEL_INFO, LEVEL_WARNING, ActivityLogger
from ..batch import BatchOutcome, Row, RowResult
from ..conditions import Condition, Populated, all_empty, all_of, any_of, any_populated, is_populated
from ..crypto import CryptoProvider
from ..exceptions import DecryptionError, PreconditionError
from ..i18n import _
from ..identifiers import classify
from ..introspection import ColumnIntrospector
from ..schema import IdentifierColumns, RowUpdate, TableLayout, appointments_layout, submissions_layout
from ..status import MigrationStatus, TableCounts
from ..storage import Storage
from .base import ExecuteResult, MigrationStrategy, batch_size_from

logger = logging.getLogger(__name__)

# Plaintext columns removed by drop_legacy_columns once their ciphertext exists.
LEGACY_PLAINTEXT = ("email", "user_ip")


@dataclass(frozen=True)
class _SplitPlan:
    table: str
    primary_key: str
    ident: IdentifierColumns
    columns: frozenset[str]

    def has(self, column: str | None) -> bool:
        return bool(column) and column in self.columns

    @property
    def typed_hashes(self) -> List[str]:
        return [c for c in self.ident.typed_hashes if self.has(c)]

    @property
    def pending(self) -> Condition | None:
        combined_hash = self.ident.combined.hash
        no_typed = all_empty(self.typed_hashes)
        if not self.has(combined_hash) or no_typed is None:
            return None
        return all_of([Populated(combined_hash), no_typed])

    @property
    def migrated(self) -> Condition | None:
        return any_populated(self.typed_hashes)

    @property
    def eligible(self) -> Condition | None:
        migrated = self.migrated
        pending = self.pending
        if migrated is None:
            return None
        if pending is None:
            return migrated
        return any_of([pending, migrated])

    @property
    def read_columns(self) -> List[str]:
        combined = self.ident.combined
        return [c for c in (combined.source, combined.encrypted, combined.hash) if self.has(c)]


class IdentifierSplitMigrationStrategy(MigrationStrategy):
    """Moves combined identifiers into CPF or RF columns.

    Args:
        storage: Storage accessor
        crypto: Crypto provider used to decrypt, encrypt and hash
        primary: Layout of the table that must carry the typed columns
        secondary: Optional layout processed when present
        introspector: Shared column introspector
        activity: Activity logger
        drop_legacy_columns: Drop legacy plaintext and combined columns once
            nothing is pending
    """

    def __init__(
        self,
        storage: Storage,
        crypto: CryptoProvider | None,
        primary: TableLayout | None = None,
        secondary: TableLayout | None = None,
        introspector: ColumnIntrospector | None = None,
        activity: ActivityLogger | None = None,
        drop_legacy_columns: bool = False,
    ):
        super().__init__(storage, crypto, introspector, activity)
        self.primary = primary or submissions_layout()
        self.secondary = secondary if secondary is not None else appointments_layout()
        self.drop_legacy_columns = drop_legacy_columns

    def get_name(self) -> str:
        return _("CPF/RF Split Migration Strategy")

    def can_run(self, key: str, config: Mapping[str, Any]) -> bool | PreconditionError:
        error = self.check_crypto(_("CPF/RF split"))
        if error is not None:
            return error

        ident = self.primary.identifier or IdentifierColumns()
        missing = [
            c for c in ident.typed_hashes
            if not self.introspector.column_exists(self.primary.name, c)
        ]
        if missing:
            return PreconditionError(
                "columns_missing",
                _("Required columns %s are missing from %s.")
                % (", ".join(missing), self.primary.name),
                context={"table": self.primary.name, "columns": missing},
            )
        return True

    def _plan(self, layout: TableLayout) -> _SplitPlan | None:
        table = layout.name
        if layout.identifier is None or not self.introspector.exists(table):
            return None
        ident = layout.identifier
        candidates = [
            *ident.combined.columns,
            *ident.cpf.columns,
            *ident.rf.columns,
        ]
        columns = frozenset(self.introspector.existing_columns(table, candidates))
        return _SplitPlan(table, layout.primary_key, ident, columns)

    def _tables(self) -> List[_SplitPlan]:
        """Primary plan always; secondary only while it still has the combined hash."""
        plans = []
        primary = self._plan(self.primary)
        if primary is not None:
            plans.append(primary)
        if self.secondary is not None:
            secondary = self._plan(self.secondary)
            if secondary is not None and secondary.has(secondary.ident.combined.hash):
                plans.append(secondary)
        return plans

    def count_table_status(self, layout: TableLayout) -> TableCounts:
        """Eligible and migrated counts of one table (zero when it is missing)."""
        plan = self._plan(layout)
        if plan is None:
            return TableCounts(layout.name)
        return self.status_calculator.count_table(plan.table, plan.eligible, plan.migrated)

    def calculate_status(self, key: str, config: Mapping[str, Any]) -> MigrationStatus:
        layouts = [self.primary] if self.secondary is None else [self.primary, self.secondary]
        return self.status_calculator.aggregate(
            self.count_table_status(layout) for layout in layouts
        )

    def count_pending(self) -> int:
        return sum(
            self.status_calculator.count_pending(plan.table, plan.pending)
            for plan in self._tables()
        )

    def execute(
        self, key: str, config: Mapping[str, Any], batch_number: int = 0
    ) -> ExecuteResult:
        batch_size = batch_size_from(config)
        outcome = BatchOutcome()

        for plan in self._tables():
            pending = plan.pending
            if pending is None:
                logger.debug(f"Skipping {plan.table}: identifier columns incomplete")
                continue
            outcome.merge(
                self.processor.process(
                    plan.table,
                    batch_size,
                    plan.read_columns,
                    pending,
                    lambda row, plan=plan: self._split_row(plan, row),
                    primary_key=plan.primary_key,
                    event="cpf_rf_split_migration_batch",
                )
            )

        status = self.calculate_status(key, config)
        has_more = status.pending > 0

        if not has_more and not outcome.has_errors and self._drop_requested(config):
            self._drop_legacy_columns()

        return ExecuteResult(
            success=not outcome.has_errors,
            processed=outcome.processed,
            has_more=has_more,
            message=_("Split CPF/RF for %d records") % outcome.processed,
            errors=outcome.errors,
        )

    def _drop_requested(self, config: Mapping[str, Any]) -> bool:
        if config and config.get("drop_legacy_columns") is not None:
            return bool(config["drop_legacy_columns"])
        return self.drop_legacy_columns

    def _resolve_plain(self, plan: _SplitPlan, row: Row) -> tuple[str | None, str | None]:
        """Plaintext of the combined identifier and the ciphertext it came from.

        Legacy plaintext wins over the ciphertext; the ciphertext is returned
        only when the plaintext was decrypted from it.
        """
        combined = plan.ident.combined
        legacy = row.get(combined.source) if plan.has(combined.source) else None
        if is_populated(legacy):
            return str(legacy), None
        encrypted = row.get(combined.encrypted) if plan.has(combined.encrypted) else None
        if is_populated(encrypted):
            return self.crypto.decrypt(str(encrypted)), str(encrypted)
        return None, None

    def _split_row(self, plan: _SplitPlan, row: Row) -> RowResult:
        row_id = row.get(plan.primary_key)
        try:
            plain, source_ciphertext = self._resolve_plain(plan, row)
        except DecryptionError as e:
            return RowResult.failure(row_id, f"Could not decrypt value: {e}")
        if not plain:
            return RowResult.failure(
                row_id, f"Could not resolve plain value for ID {row_id} in {plan.table}"
            )

        classification = classify(plain)
        if not classification.known_length:
            self.activity.log(
                "cpf_rf_split_unknown_length",
                LEVEL_WARNING,
                {"id": row_id, "table": plan.table, "length": classification.length},
            )

        value = classification.digits or plain
        # Typed ciphertext and hash must describe the same digits.
        if source_ciphertext and plain == value:
            encrypted = source_ciphertext
        else:
            encrypted = self.crypto.encrypt(value)

        typed = plan.ident.typed(classification.type)
        if not plan.has(typed.hash):
            return RowResult.failure(row_id, f"Column {typed.hash} missing from {plan.table}")

        update = RowUpdate()
        if plan.has(typed.encrypted):
            update.set(typed.encrypted, encrypted)
        if plan.has(typed.hash):
            update.set(typed.hash, self.crypto.hash(value))
        if plan.has(typed.source):
            update.set(typed.source, None)

        combined = plan.ident.combined
        update.retire(*[c for c in combined.columns if plan.has(c)])
        return RowResult.ok(row_id, update)

    def _drop_legacy_columns(self) -> None:
        dropped: dict[str, list[str]] = {}
        layouts = [self.primary] if self.secondary is None else [self.primary, self.secondary]
        for layout in layouts:
            table = layout.name
            if not self.introspector.exists(table):
                continue
            candidates = []
            if layout.identifier and self._combined_drained(table, layout.identifier):
                candidates.extend(layout.identifier.combined.columns)
            for f in layout.fields:
                if f.source in LEGACY_PLAINTEXT and self._plaintext_drained(table, f.source, f.encrypted):
                    candidates.append(f.source)
            columns = self.introspector.existing_columns(table, candidates)
            for column in columns:
                self.storage.drop_column(table, column)
            if columns:
                dropped[table] = columns
                self.introspector.invalidate(table)

        if dropped:
            logger.info(f"Dropped legacy columns: {dropped}")
            self.activity.log("legacy_columns_dropped", LEVEL_INFO, {"columns": dropped})

    def _combined_drained(self, table: str, ident: IdentifierColumns) -> bool:
        """True when every combined value has moved to the typed columns.

        Requires both typed hash columns on the table and no row still holding
        any column of the combined triple.
        """
        typed = self.introspector.existing_columns(table, ident.typed_hashes)
        if len(typed) != len(ident.typed_hashes):
            return False
        combined = any_populated(self.introspector.existing_columns(table, ident.combined.columns))
        return combined is None or self.storage.count(table, combined) == 0

    def _plaintext_drained(self, table: str, source: str, encrypted: str) -> bool:
        """True when no row still holds plaintext without its ciphertext."""
        if not self.introspector.column_exists(table, source):
            return False
        if not self.introspector.column_exists(table, encrypted):
            return False
        return self.storage.count(table, all_of([Populated(source), all_empty([encrypted])])) == 0
