"""Small key/value store for migration bookkeeping (completion dates)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict

from .conditions import quote_identifier
from .storage import SQLiteStorage


class OptionStore(ABC):
    """Named string options."""

    @abstractmethod
    def get(self, name: str) -> str | None:
        pass

    @abstractmethod
    def set(self, name: str, value: str) -> None:
        pass

    def add(self, name: str, value: str) -> bool:
        """Set an option only if it is not set yet.

        Returns:
            True if the value was written
        """
        if self.get(name) is not None:
            return False
        self.set(name, value)
        return True


class MemoryOptionStore(OptionStore):
    def __init__(self) -> None:
        self._values: Dict[str, str] = {}

    def get(self, name: str) -> str | None:
        return self._values.get(name)

    def set(self, name: str, value: str) -> None:
        self._values[name] = value


class SQLiteOptionStore(OptionStore):
    """Options kept in a two-column table next to the migrated data."""

    def __init__(self, storage: SQLiteStorage, table: str = "ffc_options"):
        self.storage = storage
        self.table = table
        self._ensured = False

    def _ensure_table(self) -> None:
        if self._ensured:
            return
        self.storage.execute(
            f"CREATE TABLE IF NOT EXISTS {quote_identifier(self.table)} "
            "(option_name TEXT PRIMARY KEY, option_value TEXT)"
        )
        self._ensured = True

    def get(self, name: str) -> str | None:
        self._ensure_table()
        rows = self.storage.execute(
            f"SELECT option_value FROM {quote_identifier(self.table)} WHERE option_name = ?",
            [name],
        )
        return rows[0]["option_value"] if rows else None

    def set(self, name: str, value: str) -> None:
        self._ensure_table()
        self.storage.execute(
            f"INSERT INTO {quote_identifier(self.table)} (option_name, option_value) "
            "VALUES (?, ?) ON CONFLICT(option_name) DO UPDATE SET option_value = excluded.option_value",
            [name, value],
        )
