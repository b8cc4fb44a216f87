"""Registries of migration definitions and their strategies.

:class:`MigrationRegistry` holds the static description of each migration
(what the CLI lists); :class:`StrategyRegistry` maps the same keys to the
strategy instances that run them. Both build on the thread-safe
:class:`Registry`.

Example:
    ```python
    migrations = MigrationRegistry()
    migrations.register_migration(
        MigrationDefinition("split_cpf_rf", "Split CPF/RF", order=20)
    )
    strategies = StrategyRegistry()
    strategies.register_strategy("split_cpf_rf", strategy)
    ```
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Iterator, List, Tuple, TypeVar

from .exceptions import ConfigurationError, MigrationNotFoundError
from .strategies.base import DEFAULT_BATCH_SIZE, MigrationStrategy

T = TypeVar("T")


class Registry(Generic[T]):
    """Thread-safe mapping of unique keys to items.

    Args:
        name: Registry name used in error context
    """

    def __init__(self, name: str):
        self._name = name
        self._items: Dict[str, T] = {}
        self._lock = threading.RLock()

    @property
    def name(self) -> str:
        return self._name

    def register(self, key: str, item: T, allow_overwrite: bool = False) -> None:
        """Register an item by key.

        Raises:
            ConfigurationError: If the key exists and allow_overwrite is False
        """
        with self._lock:
            if not allow_overwrite and key in self._items:
                raise ConfigurationError(
                    f"Item '{key}' already registered in {self._name}",
                    context={"key": key, "registry": self._name},
                )
            self._items[key] = item

    def unregister(self, key: str) -> T:
        with self._lock:
            if key not in self._items:
                raise MigrationNotFoundError(key, detail=f"not in {self._name}")
            return self._items.pop(key)

    def get(self, key: str) -> T:
        """Get an item by key.

        Raises:
            MigrationNotFoundError: If the key is not registered
        """
        with self._lock:
            if key not in self._items:
                raise MigrationNotFoundError(key, detail=f"not in {self._name}")
            return self._items[key]

    def get_optional(self, key: str) -> T | None:
        with self._lock:
            return self._items.get(key)

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._items

    def list_keys(self) -> List[str]:
        with self._lock:
            return list(self._items.keys())

    def list_items(self) -> List[T]:
        with self._lock:
            return list(self._items.values())

    def items(self) -> List[Tuple[str, T]]:
        with self._lock:
            return list(self._items.items())

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def __iter__(self) -> Iterator[T]:
        return iter(self.list_items())


@dataclass(frozen=True)
class MigrationDefinition:
    """Static description of a registered migration.

    ``requires_column`` names a column whose presence on the primary table
    makes the migration available; None means always available.
    """

    key: str
    name: str
    description: str = ""
    batch_size: int = DEFAULT_BATCH_SIZE
    order: int = 0
    requires_column: str | None = None
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "batch_size": self.batch_size,
            "order": self.order,
            "requires_column": self.requires_column,
        }


class MigrationRegistry(Registry[MigrationDefinition]):
    """Migration definitions, listed by ``order`` then key."""

    def __init__(self) -> None:
        super().__init__("migrations")

    def register_migration(self, definition: MigrationDefinition) -> None:
        if definition.batch_size < 1:
            raise ConfigurationError(
                "batch_size must be a positive integer",
                context={"key": definition.key, "batch_size": definition.batch_size},
            )
        self.register(definition.key, definition)

    def get_all(self) -> List[MigrationDefinition]:
        return sorted(self.list_items(), key=lambda d: (d.order, d.key))


class StrategyRegistry(Registry[MigrationStrategy]):
    """Strategy instances keyed by migration key."""

    def __init__(self) -> None:
        super().__init__("strategies")

    def register_strategy(self, key: str, strategy: MigrationStrategy) -> None:
        self.register(key, strategy)
