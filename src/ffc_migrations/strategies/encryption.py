"""Encrypt plaintext sensitive fields into ciphertext + keyed-hash columns.

For every pending row the strategy encrypts (and, where the field has a hash
column, hashes) e-mail, IP address and serialized form data, and stores the
combined identifier twice: in the combined columns and, classified by digit
count, in the typed CPF or RF columns. The typed columns receive the same
ciphertext and hash as the combined ones.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Mapping, Sequence

from ..activity import LEVEL_WARNING, ActivityLogger
from ..batch import BatchOutcome, Row, RowResult
from ..conditions import Condition, all_empty, all_of, any_populated, is_populated
from ..crypto import CryptoProvider
from ..exceptions import PreconditionError
from ..i18n import _
from ..identifiers import IdentifierType, classify
from ..introspection import ColumnIntrospector
from ..options import MemoryOptionStore, OptionStore
from ..schema import IdentifierColumns, RowUpdate, SensitiveField, TableLayout
from ..status import MigrationStatus
from ..storage import Storage
from .base import ExecuteResult, MigrationStrategy, batch_size_from

logger = logging.getLogger(__name__)

COMPLETED_OPTION = "ffc_encryption_migration_completed_date"


class EncryptionState(Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


@dataclass(frozen=True)
class _TablePlan:
    """Columns of one layout that exist on the physical table."""

    table: str
    primary_key: str
    fields: tuple[SensitiveField, ...]
    identifier: IdentifierColumns | None
    markers: tuple[str, ...]

    @property
    def sources(self) -> list[str]:
        sources = [f.source for f in self.fields]
        if self.identifier:
            sources.append(self.identifier.combined.source)
        return sources

    @property
    def read_columns(self) -> list[str]:
        return self.sources

    @property
    def pending(self) -> Condition | None:
        has_source = any_populated(self.sources)
        no_marker = all_empty(self.markers)
        if has_source is None or no_marker is None:
            return None
        return all_of([has_source, no_marker])

    @property
    def eligible(self) -> Condition | None:
        return any_populated([*self.sources, *self.markers])

    @property
    def migrated(self) -> Condition | None:
        return any_populated(self.markers)


class EncryptionMigrationStrategy(MigrationStrategy):
    """Plaintext → encrypted + hash, one bounded batch per ``execute`` call.

    Args:
        storage: Storage accessor
        crypto: Crypto provider (None makes ``can_run`` fail)
        layouts: Tables to migrate, in processing order
        introspector: Shared column introspector
        activity: Activity logger
        options: Where the completion date is recorded
    """

    def __init__(
        self,
        storage: Storage,
        crypto: CryptoProvider | None,
        layouts: Sequence[TableLayout],
        introspector: ColumnIntrospector | None = None,
        activity: ActivityLogger | None = None,
        options: OptionStore | None = None,
    ):
        super().__init__(storage, crypto, introspector, activity)
        self.layouts = tuple(layouts)
        self.options = options or MemoryOptionStore()

    def get_name(self) -> str:
        return _("Encryption Migration Strategy")

    def can_run(self, key: str, config: Mapping[str, Any]) -> bool | PreconditionError:
        error = self.check_crypto(_("sensitive data encryption"))
        return error if error is not None else True

    def _plan(self, layout: TableLayout) -> _TablePlan | None:
        table = layout.name
        if not self.introspector.exists(table):
            return None

        exists = self.introspector.column_exists
        fields = []
        for f in layout.fields:
            if exists(table, f.source) and exists(table, f.encrypted):
                hash_column = f.hash if f.hash and exists(table, f.hash) else None
                fields.append(SensitiveField(f.source, f.encrypted, hash_column))

        identifier = None
        if layout.identifier is not None:
            combined = layout.identifier.combined
            if exists(table, combined.source) and exists(table, combined.encrypted):
                identifier = IdentifierColumns(
                    combined=self._existing(table, combined),
                    cpf=self._existing(table, layout.identifier.cpf),
                    rf=self._existing(table, layout.identifier.rf),
                )

        markers = tuple(self.introspector.existing_columns(table, layout.encrypted_columns))
        if not (fields or identifier) or not markers:
            return None
        return _TablePlan(table, layout.primary_key, tuple(fields), identifier, markers)

    def _existing(self, table: str, f: SensitiveField) -> SensitiveField:
        """Copy of ``f`` keeping only the encrypted/hash columns that exist."""
        exists = self.introspector.column_exists
        return SensitiveField(
            f.source,
            f.encrypted if exists(table, f.encrypted) else "",
            f.hash if f.hash and exists(table, f.hash) else None,
        )

    def _plans(self) -> List[_TablePlan]:
        return [p for p in (self._plan(layout) for layout in self.layouts) if p is not None]

    def calculate_status(self, key: str, config: Mapping[str, Any]) -> MigrationStatus:
        counts = [
            self.status_calculator.count_table(plan.table, plan.eligible, plan.migrated)
            for plan in self._plans()
        ]
        return self.status_calculator.aggregate(counts)

    def count_pending(self) -> int:
        return sum(
            self.status_calculator.count_pending(plan.table, plan.pending)
            for plan in self._plans()
        )

    def get_state(self) -> EncryptionState:
        status = self.calculate_status("", {})
        if status.is_complete or (self.completed_at() and status.pending == 0):
            return EncryptionState.COMPLETE
        if status.migrated == 0:
            return EncryptionState.NOT_STARTED
        return EncryptionState.IN_PROGRESS

    def completed_at(self) -> str | None:
        return self.options.get(COMPLETED_OPTION)

    def execute(
        self, key: str, config: Mapping[str, Any], batch_number: int = 0
    ) -> ExecuteResult:
        batch_size = batch_size_from(config)
        outcome = BatchOutcome()

        for plan in self._plans():
            pending = plan.pending
            if pending is None:
                continue
            outcome.merge(
                self.processor.process(
                    plan.table,
                    batch_size,
                    plan.read_columns,
                    pending,
                    lambda row, plan=plan: self._encrypt_row(plan, row),
                    primary_key=plan.primary_key,
                    event="encryption_migration_batch",
                )
            )

        remaining = self.count_pending()
        has_more = remaining > 0
        if not has_more:
            self._mark_complete()

        if outcome.processed == 0 and not outcome.errors and not has_more:
            message = _("No submissions to encrypt")
        else:
            message = _("Encrypted %d submissions") % outcome.processed

        return ExecuteResult(
            success=not outcome.has_errors,
            processed=outcome.processed,
            has_more=has_more,
            message=message,
            errors=outcome.errors,
        )

    def _mark_complete(self) -> None:
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        if self.options.add(COMPLETED_OPTION, stamp):
            logger.info(f"Encryption migration complete at {stamp}")

    def _encrypt_row(self, plan: _TablePlan, row: Row) -> RowResult:
        row_id = row.get(plan.primary_key)
        crypto = self.crypto
        update = RowUpdate()

        for f in plan.fields:
            value = row.get(f.source)
            if is_populated(value):
                update.set(f.encrypted, crypto.encrypt(str(value)))
                update.set(f.hash, crypto.hash(str(value)))
            else:
                update.set(f.encrypted, None)
                update.set(f.hash, None)

        if plan.identifier is not None:
            self._encrypt_identifier(plan, row, row_id, update)

        if not update.populated & set(plan.markers):
            return RowResult.failure(row_id, "no sensitive value could be encrypted")
        return RowResult.ok(row_id, update)

    def _encrypt_identifier(
        self, plan: _TablePlan, row: Row, row_id: Any, update: RowUpdate
    ) -> None:
        ident = plan.identifier
        combined = ident.combined
        digits_value = None
        classification = None

        raw = row.get(combined.source)
        if is_populated(raw):
            classification = classify(str(raw))
            digits_value = classification.digits or None

        encrypted = self.crypto.encrypt(digits_value) if digits_value else None
        digest = self.crypto.hash(digits_value) if digits_value else None
        update.set(combined.encrypted, encrypted)
        update.set(combined.hash, digest)

        target = None
        if classification is not None and digits_value:
            target = classification.type
            if not classification.known_length:
                self.activity.log(
                    "cpf_rf_unknown_length",
                    LEVEL_WARNING,
                    {"id": row_id, "table": plan.table, "length": classification.length},
                )

        for identifier_type in IdentifierType:
            typed = ident.typed(identifier_type)
            if identifier_type is target:
                update.set(typed.encrypted, encrypted)
                update.set(typed.hash, digest)
            else:
                update.set(typed.encrypted, None)
                update.set(typed.hash, None)
