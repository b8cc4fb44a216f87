"""Boolean conditions over table columns, rendered to SQL.

Migrations select and count rows by whether marker columns are populated.
The conditions below express those predicates without any user-provided
values: column names are validated and quoted, and the only literal used is
the empty string.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from .exceptions import InvalidIdentifierError

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def quote_identifier(identifier: str) -> str:
    """Validate and double-quote a table or column name.

    Args:
        identifier: Table or column name

    Returns:
        The quoted identifier

    Raises:
        InvalidIdentifierError: If the name is not a plain SQL identifier
    """
    if not isinstance(identifier, str) or not IDENTIFIER_PATTERN.match(identifier):
        raise InvalidIdentifierError(str(identifier))
    return f'"{identifier}"'


def is_populated(value: Any) -> bool:
    """Python-side twin of :class:`Populated` (non-NULL and non-empty)."""
    return value is not None and value != ""


class LogicOperator(Enum):
    """Logical operators for combining conditions."""
    AND = "and"
    OR = "or"
    NOT = "not"


class Condition(ABC):
    """Abstract base class for column conditions."""

    @abstractmethod
    def to_sql(self) -> str:
        """Render the condition as a SQL boolean expression."""
        pass

    def __and__(self, other: Condition) -> Condition:
        return all_of([self, other])

    def __or__(self, other: Condition) -> Condition:
        return any_of([self, other])

    def __invert__(self) -> Condition:
        return LogicCondition(LogicOperator.NOT, (self,))


@dataclass(frozen=True)
class Populated(Condition):
    """Column holds a non-NULL, non-empty value."""
    column: str

    def to_sql(self) -> str:
        col = quote_identifier(self.column)
        return f"({col} IS NOT NULL AND {col} != '')"


@dataclass(frozen=True)
class Empty(Condition):
    """Column is NULL or holds the empty string."""
    column: str

    def to_sql(self) -> str:
        col = quote_identifier(self.column)
        return f"({col} IS NULL OR {col} = '')"


@dataclass(frozen=True)
class LogicCondition(Condition):
    """Conditions combined with AND, OR or NOT."""
    operator: LogicOperator
    conditions: tuple[Condition, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.conditions:
            raise ValueError("LogicCondition requires at least one condition")
        if self.operator == LogicOperator.NOT and len(self.conditions) != 1:
            raise ValueError("NOT takes exactly one condition")

    def to_sql(self) -> str:
        if self.operator == LogicOperator.NOT:
            return f"(NOT {self.conditions[0].to_sql()})"
        joiner = " AND " if self.operator == LogicOperator.AND else " OR "
        return "(" + joiner.join(c.to_sql() for c in self.conditions) + ")"


def all_of(conditions: Iterable[Condition]) -> Condition:
    """AND of the given conditions (a single condition is returned as-is)."""
    items = tuple(conditions)
    if len(items) == 1:
        return items[0]
    return LogicCondition(LogicOperator.AND, items)


def any_of(conditions: Iterable[Condition]) -> Condition:
    """OR of the given conditions (a single condition is returned as-is)."""
    items = tuple(conditions)
    if len(items) == 1:
        return items[0]
    return LogicCondition(LogicOperator.OR, items)


def any_populated(columns: Iterable[str]) -> Condition | None:
    """At least one column populated, or None when there are no columns."""
    items = [Populated(c) for c in columns]
    return any_of(items) if items else None


def all_empty(columns: Iterable[str]) -> Condition | None:
    """Every column empty, or None when there are no columns."""
    items = [Empty(c) for c in columns]
    return all_of(items) if items else None
