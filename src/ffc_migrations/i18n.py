"""Translation hook for user-facing messages.

Messages pass through unchanged unless a host application installs a
translator with :func:`set_translator`.
"""

from __future__ import annotations

from typing import Callable

_translator: Callable[[str], str] | None = None


def set_translator(translator: Callable[[str], str] | None) -> None:
    global _translator
    _translator = translator


def _(message: str) -> str:
    if _translator is None:
        return message
    return _translator(message)
