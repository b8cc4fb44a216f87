"""Settings for migration runs.

Settings come from a YAML file whose string values may reference environment
variables:

- ``${VAR_NAME}``: required, raises :class:`ConfigurationError` when unset
- ``${VAR_NAME:default}``: optional with default

Example:
    ```yaml
    database:
      path: ${FFC_DB_PATH:ffcertificate.db}
      timeout: 5.0
    tables:
      prefix: wp_
    encryption:
      secret_key: ${FFC_ENCRYPTION_KEY:}
      hash_salt: ${FFC_HASH_SALT:}
    migrations:
      batch_size: 50
      drop_legacy_columns: false
    logging:
      level: INFO
    ```
"""

from __future__ import annotations

import copy
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

import yaml

from .exceptions import ConfigurationError
from .schema import APPOINTMENTS_TABLE, SUBMISSIONS_TABLE
from .strategies.base import DEFAULT_BATCH_SIZE

logger = logging.getLogger(__name__)

ENV_PATTERN = re.compile(r"\$\{([^}:]+)(?::([^}]*))?\}")

DEFAULT_CONFIG: Dict[str, Any] = {
    "database": {"path": "${FFC_DB_PATH:ffcertificate.db}", "timeout": 5.0},
    "tables": {"prefix": "${FFC_TABLE_PREFIX:wp_}"},
    "encryption": {
        "secret_key": "${FFC_ENCRYPTION_KEY:}",
        "hash_salt": "${FFC_HASH_SALT:}",
    },
    "migrations": {"batch_size": DEFAULT_BATCH_SIZE, "drop_legacy_columns": False},
    "logging": {"level": "${FFC_LOG_LEVEL:INFO}"},
}


def substitute_env_vars(data: Any) -> Any:
    """Recursively substitute environment variables in configuration.

    Raises:
        ConfigurationError: If a required environment variable is not set

    Example:
        >>> os.environ["FFC_DOC_VAR"] = "hello"
        >>> substitute_env_vars({"key": "${FFC_DOC_VAR}", "default": "${FFC_MISSING:world}"})
        {'key': 'hello', 'default': 'world'}
    """
    if isinstance(data, dict):
        return {k: substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [substitute_env_vars(item) for item in data]
    elif isinstance(data, str):
        return _substitute_string(data)
    else:
        return data


def _substitute_string(value: str) -> str:
    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        default_value = match.group(2)

        env_value = os.environ.get(var_name)
        if env_value is not None:
            return env_value
        elif default_value is not None:
            return default_value
        raise ConfigurationError(
            f"Required environment variable not set: {var_name}",
            context={"variable": var_name},
        )

    return ENV_PATTERN.sub(replacer, value)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Section '{name}' must be a mapping", context={"section": name})
    return section


@dataclass
class MigrationSettings:
    """Resolved settings of a migration run."""

    database_path: str = "ffcertificate.db"
    database_timeout: float = 5.0
    table_prefix: str = "wp_"
    secret_key: str = ""
    hash_salt: str = ""
    batch_size: int = DEFAULT_BATCH_SIZE
    drop_legacy_columns: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> MigrationSettings:
        """Build settings from a (possibly partial) configuration mapping.

        Missing sections fall back to :data:`DEFAULT_CONFIG`; environment
        references are substituted after merging.

        Raises:
            ConfigurationError: On malformed sections or values
        """
        merged = substitute_env_vars(_deep_merge(DEFAULT_CONFIG, data or {}))
        database = _section(merged, "database")
        tables = _section(merged, "tables")
        encryption = _section(merged, "encryption")
        migrations = _section(merged, "migrations")
        logging_section = _section(merged, "logging")

        try:
            batch_size = int(migrations.get("batch_size", DEFAULT_BATCH_SIZE))
            timeout = float(database.get("timeout", 5.0))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid numeric setting: {e}") from e
        if batch_size < 1:
            raise ConfigurationError(
                "batch_size must be a positive integer", context={"batch_size": batch_size}
            )

        path = str(database.get("path") or "ffcertificate.db")
        if path != ":memory:":
            path = str(Path(path).expanduser())

        return cls(
            database_path=path,
            database_timeout=timeout,
            table_prefix=str(tables.get("prefix") or ""),
            secret_key=str(encryption.get("secret_key") or ""),
            hash_salt=str(encryption.get("hash_salt") or ""),
            batch_size=batch_size,
            drop_legacy_columns=_as_bool(migrations.get("drop_legacy_columns", False)),
            log_level=str(logging_section.get("level") or "INFO").upper(),
        )

    @classmethod
    def load(cls, path: str | Path) -> MigrationSettings:
        """Load settings from a YAML file.

        Raises:
            ConfigurationError: If the file is missing or not valid YAML
        """
        path = Path(path).expanduser()
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {path}", context={"path": str(path)})
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}", context={"path": str(path)}) from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {path}")
        logger.debug(f"Loaded configuration from {path}")
        return cls.from_dict(data)

    @classmethod
    def from_env(cls) -> MigrationSettings:
        """Settings from the ``FFC_*`` environment variables alone."""
        return cls.from_dict({})

    @property
    def submissions_table(self) -> str:
        return f"{self.table_prefix}{SUBMISSIONS_TABLE}"

    @property
    def appointments_table(self) -> str:
        return f"{self.table_prefix}{APPOINTMENTS_TABLE}"

    def database_config(self) -> Dict[str, Any]:
        return {"path": self.database_path, "timeout": self.database_timeout}

    def encryption_config(self) -> Dict[str, Any]:
        return {"secret_key": self.secret_key, "hash_salt": self.hash_salt}

    def to_dict(self) -> Dict[str, Any]:
        """Settings as a configuration mapping, with secrets masked."""
        return {
            "database": self.database_config(),
            "tables": {"prefix": self.table_prefix},
            "encryption": {
                "secret_key": "***" if self.secret_key else "",
                "hash_salt": "***" if self.hash_salt else "",
            },
            "migrations": {
                "batch_size": self.batch_size,
                "drop_legacy_columns": self.drop_legacy_columns,
            },
            "logging": {"level": self.log_level},
        }


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)
