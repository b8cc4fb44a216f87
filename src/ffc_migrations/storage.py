"""Storage accessor used by the migrations.

Only the operations the migrations need are exposed: catalog lookups, counts,
bounded selects, single-row updates and column drops. Table and column names
always go through :func:`quote_identifier`; values are always bound
parameters.
"""

from __future__ import annotations

import logging
import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Mapping, Sequence

from .conditions import Condition, quote_identifier
from .exceptions import StorageError

logger = logging.getLogger(__name__)


class Storage(ABC):
    """Parameterized access to named tables."""

    @abstractmethod
    def table_exists(self, table: str) -> bool:
        pass

    @abstractmethod
    def column_exists(self, table: str, column: str) -> bool:
        pass

    @abstractmethod
    def count(self, table: str, where: Condition | None = None) -> int:
        pass

    @abstractmethod
    def select(
        self,
        table: str,
        columns: Sequence[str],
        where: Condition | None = None,
        limit: int | None = None,
        order_by: str | None = None,
    ) -> list[dict[str, Any]]:
        pass

    @abstractmethod
    def update(
        self, table: str, values: Mapping[str, Any], key_column: str, key: Any
    ) -> int:
        pass

    @abstractmethod
    def drop_column(self, table: str, column: str) -> None:
        pass


class SQLiteStorage(Storage):
    """SQLite implementation of :class:`Storage`."""

    def __init__(self, config: dict[str, Any] | None = None):
        """Initialize SQLite storage.

        Args:
            config: Configuration with the following optional keys:
                - path: Database file path (default: ":memory:")
                - timeout: Connection timeout in seconds (default: 5.0)
                - check_same_thread: Allow sharing across threads (default: False)
        """
        self.config = config or {}
        self.db_path = str(self.config.get("path", ":memory:"))
        self.timeout = float(self.config.get("timeout", 5.0))
        self.check_same_thread = self.config.get("check_same_thread", False)

        self.conn: sqlite3.Connection | None = None
        self._connected = False

    @classmethod
    def from_config(cls, config: dict) -> SQLiteStorage:
        """Create from config dictionary."""
        return cls(config)

    def connect(self) -> None:
        """Connect to the SQLite database."""
        if self._connected:
            return

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self.conn = sqlite3.connect(
                self.db_path,
                timeout=self.timeout,
                check_same_thread=self.check_same_thread,
            )
        except sqlite3.Error as e:
            raise StorageError(
                f"Failed to open SQLite database: {e}", context={"path": self.db_path}
            ) from e

        self.conn.row_factory = sqlite3.Row
        self._connected = True
        logger.info(f"Connected to SQLite database: {self.db_path}")

    def close(self) -> None:
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
            self._connected = False
            logger.info(f"Disconnected from SQLite database: {self.db_path}")

    def __enter__(self) -> SQLiteStorage:
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _check_connection(self) -> sqlite3.Connection:
        if not self._connected or not self.conn:
            raise StorageError("Database not connected. Call connect() first.")
        return self.conn

    def execute(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Execute a statement with bound parameters and return any rows."""
        conn = self._check_connection()
        cursor = conn.cursor()
        try:
            cursor.execute(sql, params)
            rows = [dict(row) for row in cursor.fetchall()]
            conn.commit()
            return rows
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(str(e), context={"sql": sql}) from e
        finally:
            cursor.close()

    def executescript(self, script: str) -> None:
        """Run a trusted multi-statement script (schema setup)."""
        conn = self._check_connection()
        try:
            conn.executescript(script)
            conn.commit()
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e

    def table_exists(self, table: str) -> bool:
        rows = self.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", [table]
        )
        return bool(rows)

    def column_exists(self, table: str, column: str) -> bool:
        rows = self.execute(
            "SELECT 1 FROM pragma_table_info(?) WHERE name = ?", [table, column]
        )
        return bool(rows)

    def count(self, table: str, where: Condition | None = None) -> int:
        sql = f"SELECT COUNT(*) AS n FROM {quote_identifier(table)}"
        if where is not None:
            sql += f" WHERE {where.to_sql()}"
        rows = self.execute(sql)
        return int(rows[0]["n"]) if rows else 0

    def select(
        self,
        table: str,
        columns: Sequence[str],
        where: Condition | None = None,
        limit: int | None = None,
        order_by: str | None = None,
    ) -> list[dict[str, Any]]:
        column_sql = ", ".join(quote_identifier(c) for c in columns) if columns else "*"
        sql = f"SELECT {column_sql} FROM {quote_identifier(table)}"
        params: list[Any] = []
        if where is not None:
            sql += f" WHERE {where.to_sql()}"
        if order_by is not None:
            sql += f" ORDER BY {quote_identifier(order_by)}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        return self.execute(sql, params)

    def update(
        self, table: str, values: Mapping[str, Any], key_column: str, key: Any
    ) -> int:
        """Update a single row by primary key.

        Returns:
            Number of rows changed
        """
        if not values:
            return 0

        conn = self._check_connection()
        assignments = ", ".join(f"{quote_identifier(c)} = ?" for c in values)
        sql = (
            f"UPDATE {quote_identifier(table)} SET {assignments} "
            f"WHERE {quote_identifier(key_column)} = ?"
        )
        params = [*values.values(), key]

        cursor = conn.cursor()
        try:
            cursor.execute(sql, params)
            conn.commit()
            return cursor.rowcount
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(
                str(e), context={"table": table, "key_column": key_column, "key": key}
            ) from e
        finally:
            cursor.close()

    def drop_column(self, table: str, column: str) -> None:
        """Drop a column, removing the indexes that reference it first."""
        for index in self._indexes_on(table, column):
            logger.debug(f"Dropping index {index} on {table}.{column}")
            self.execute(f"DROP INDEX {quote_identifier(index)}")
        self.execute(
            f"ALTER TABLE {quote_identifier(table)} DROP COLUMN {quote_identifier(column)}"
        )

    def _indexes_on(self, table: str, column: str) -> list[str]:
        indexes = self.execute(
            "SELECT name FROM pragma_index_list(?) WHERE origin = 'c'", [table]
        )
        names = []
        for index in indexes:
            info = self.execute(
                "SELECT 1 FROM pragma_index_info(?) WHERE name = ?", [index["name"], column]
            )
            if info:
                names.append(index["name"])
        return names
