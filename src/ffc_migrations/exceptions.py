"""Exception hierarchy for the ffc_migrations package.

All errors raised by this package derive from :class:`MigrationError`, which
carries an optional context dictionary with structured information about the
failure (table names, row ids, codes, ...).

Only precondition failures are meant to stop a driver. Row-level failures are
collected into batch results and never escape the batch processor.

Example:
    ```python
    from ffc_migrations.exceptions import MigrationError, PreconditionError

    try:
        manager.run_migration("split_cpf_rf")
    except PreconditionError as e:
        print(e.code, e)
    except MigrationError as e:
        logger.error(f"Error: {e}")
        if e.context:
            logger.error(f"Context: {e.context}")
    ```
"""

from __future__ import annotations

from typing import Any, Dict


class MigrationError(Exception):
    """Base exception for the migration subsystem.

    Attributes:
        context: Dictionary containing contextual information about the error
        details: Alias for context

    Args:
        message: Human-readable error message
        context: Optional dictionary with error context (table, row id, ...)
    """

    def __init__(self, message: str, context: Dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}
        self.details = self.context


class ConfigurationError(MigrationError):
    """Raised when settings are invalid or missing.

    Example:
        ```python
        raise ConfigurationError(
            "batch_size must be a positive integer",
            context={"batch_size": 0}
        )
        ```
    """

    pass


class PreconditionError(MigrationError):
    """A migration cannot run in the current environment.

    Strategies return (not raise) instances of this class from ``can_run`` so
    a driver can show the message and stop. The manager raises it when asked
    to execute a migration whose preconditions fail.

    Attributes:
        code: Machine-readable error code (e.g. ``encryption_not_configured``)
    """

    def __init__(self, code: str, message: str, context: Dict[str, Any] | None = None):
        self.code = code
        super().__init__(message, context={"code": code, **(context or {})})

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": str(self)}

    def __repr__(self) -> str:
        return f"PreconditionError(code={self.code!r}, message={str(self)!r})"


class MigrationNotFoundError(MigrationError):
    """Raised when a migration or strategy key is not registered."""

    def __init__(self, key: str, detail: str | None = None):
        self.key = key
        message = f"No migration registered for key: {key}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, context={"key": key})


class CryptoError(MigrationError):
    """Raised when the crypto provider cannot encrypt or hash a value."""

    pass


class DecryptionError(CryptoError):
    """Raised when a ciphertext cannot be decrypted."""

    pass


class StorageError(MigrationError):
    """Raised when a storage operation fails."""

    pass


class InvalidIdentifierError(StorageError):
    """Raised when a table or column name is not a safe SQL identifier."""

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(
            f"Invalid SQL identifier: {identifier!r}",
            context={"identifier": identifier},
        )


__all__ = [
    "MigrationError",
    "ConfigurationError",
    "PreconditionError",
    "MigrationNotFoundError",
    "CryptoError",
    "DecryptionError",
    "StorageError",
    "InvalidIdentifierError",
]
