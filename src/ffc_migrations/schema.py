"""Physical column layout of migrated tables and per-row column updates.

During a migration each sensitive field may exist as up to three columns:
legacy plaintext, ciphertext and keyed hash. :class:`TableLayout` names them
for one table; the introspector decides which of them actually exist.

SQL NULL is overloaded in these tables. :class:`RowUpdate` keeps the reason
for every NULL it writes:

- ``ColumnState.NOT_PRESENT``: the source was empty, there was nothing to
  compute for this row.
- ``ColumnState.RETIRED``: a value existed and was cleared on purpose after
  it moved elsewhere.

Columns missing from the table are never part of an update.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Tuple, Union

from .identifiers import IdentifierType

SUBMISSIONS_TABLE = "ffc_submissions"
APPOINTMENTS_TABLE = "ffc_self_scheduling_appointments"


class ColumnState(Enum):
    NOT_PRESENT = "not_present"
    RETIRED = "retired"


ColumnValue = Union[str, ColumnState]


@dataclass(frozen=True)
class SensitiveField:
    """Plaintext, encrypted and (optionally) hash column names of a field."""

    source: str
    encrypted: str
    hash: str | None = None

    @classmethod
    def named(cls, name: str, hashed: bool = False) -> SensitiveField:
        """Build the conventional ``name``/``name_encrypted``/``name_hash`` triple."""
        return cls(name, f"{name}_encrypted", f"{name}_hash" if hashed else None)

    @property
    def columns(self) -> Tuple[str, ...]:
        return tuple(c for c in (self.source, self.encrypted, self.hash) if c)


@dataclass(frozen=True)
class IdentifierColumns:
    """The combined identifier triple and its two typed counterparts."""

    combined: SensitiveField = SensitiveField.named("cpf_rf", hashed=True)
    cpf: SensitiveField = SensitiveField.named("cpf", hashed=True)
    rf: SensitiveField = SensitiveField.named("rf", hashed=True)

    def typed(self, identifier_type: IdentifierType) -> SensitiveField:
        return self.cpf if identifier_type is IdentifierType.CPF else self.rf

    @property
    def typed_hashes(self) -> Tuple[str, ...]:
        return tuple(c for c in (self.cpf.hash, self.rf.hash) if c)

    @property
    def typed_encrypted(self) -> Tuple[str, ...]:
        return (self.cpf.encrypted, self.rf.encrypted)


@dataclass(frozen=True)
class TableLayout:
    """Sensitive columns of one physical table."""

    name: str
    fields: Tuple[SensitiveField, ...] = ()
    identifier: IdentifierColumns | None = None
    primary_key: str = "id"

    @property
    def encrypted_columns(self) -> Tuple[str, ...]:
        """Every ciphertext column a finished row may carry."""
        columns = [f.encrypted for f in self.fields]
        if self.identifier:
            columns.append(self.identifier.combined.encrypted)
            columns.extend(self.identifier.typed_encrypted)
        return tuple(columns)


def submissions_layout(prefix: str = "") -> TableLayout:
    return TableLayout(
        name=f"{prefix}{SUBMISSIONS_TABLE}",
        fields=(
            SensitiveField.named("email", hashed=True),
            SensitiveField.named("user_ip"),
            SensitiveField.named("data"),
        ),
        identifier=IdentifierColumns(),
    )


def appointments_layout(prefix: str = "") -> TableLayout:
    return TableLayout(
        name=f"{prefix}{APPOINTMENTS_TABLE}",
        fields=(
            SensitiveField.named("email", hashed=True),
            SensitiveField.named("phone"),
            SensitiveField.named("user_ip"),
            SensitiveField.named("custom_data"),
        ),
        identifier=IdentifierColumns(),
    )


@dataclass
class RowUpdate:
    """Column values computed for one row, with explicit NULL reasons."""

    values: Dict[str, ColumnValue] = field(default_factory=dict)

    def set(self, column: str | None, value: str | None) -> RowUpdate:
        """Write a computed value; None or empty means NOT_PRESENT."""
        if column:
            self.values[column] = value if value else ColumnState.NOT_PRESENT
        return self

    def retire(self, *columns: str | None) -> RowUpdate:
        for column in columns:
            if column:
                self.values[column] = ColumnState.RETIRED
        return self

    @property
    def populated(self) -> FrozenSet[str]:
        return frozenset(c for c, v in self.values.items() if isinstance(v, str))

    def to_params(self) -> Dict[str, str | None]:
        """SQL parameters; both NULL reasons are written as NULL."""
        return {
            column: (value if isinstance(value, str) else None)
            for column, value in self.values.items()
        }
