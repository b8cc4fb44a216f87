"""Classification of combined national identifiers by digit count.

The legacy ``cpf_rf`` column holds either a CPF (11 digits) or an RF
(7 digits), told apart only by length. Values of any other length are
treated as CPF so they still migrate; callers flag them with a warning since
that fallback is a guess about malformed data, not a rule of the domain.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

CPF_LENGTH = 11
RF_LENGTH = 7

_NON_DIGITS = re.compile(r"[^0-9]")


class IdentifierType(Enum):
    CPF = "cpf"
    RF = "rf"


def clean_digits(value: str | None) -> str:
    """Strip every non-digit character."""
    if not value:
        return ""
    return _NON_DIGITS.sub("", value)


@dataclass(frozen=True)
class Classification:
    """Outcome of classifying one identifier value."""

    digits: str
    type: IdentifierType
    known_length: bool

    @property
    def length(self) -> int:
        return len(self.digits)


def classify(value: str | None) -> Classification:
    """Classify an identifier, falling back to CPF for unknown lengths.

    Example:
        >>> classify("123.456.789-01").type
        <IdentifierType.CPF: 'cpf'>
        >>> classify("1234567").type
        <IdentifierType.RF: 'rf'>
    """
    digits = clean_digits(value)
    if len(digits) == RF_LENGTH:
        return Classification(digits, IdentifierType.RF, True)
    if len(digits) == CPF_LENGTH:
        return Classification(digits, IdentifierType.CPF, True)
    return Classification(digits, IdentifierType.CPF, False)
