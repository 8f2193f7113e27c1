# jsonstore/exceptions.py
"""
Exception hierarchy for jsonstore.

Argument errors are raised synchronously by the facade. Everything that
happens while talking to the backend is captured into ``Result.error``
using the classes below.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class JSONStoreError(Exception):
    """Base error for all jsonstore failures."""

    pass


class InvalidArgumentError(JSONStoreError, ValueError):
    """Raised when caller input is missing or malformed."""

    pass


class StoreNotFoundError(JSONStoreError):
    """Raised when the catalog has no entry for a store."""

    def __init__(self, store: str):
        self.store = store
        super().__init__(f"Store not found: {store!r}")


class MalformedStoredDocumentError(JSONStoreError):
    """Raised when a stored document column does not parse as JSON."""

    def __init__(self, store: str, detail: str):
        self.store = store
        super().__init__(f"Malformed document in store {store!r}: {detail}")


class MissingIdentifierError(JSONStoreError):
    """Raised when an insert produced no usable primary key."""

    pass


class BackendError(JSONStoreError):
    """Raised when the database engine rejects a statement."""

    def __init__(self, message: str, statement: Optional[str] = None):
        self.statement = statement
        super().__init__(message)


class StoreClosedError(JSONStoreError):
    """Raised when an operation is submitted to a closed store."""

    pass


class ConfigError(JSONStoreError):
    """Base error for configuration issues."""

    def __init__(self, message: str, path: Optional[Path] = None):
        self.path = path
        if path:
            message = f"{message} (file: {path})"
        super().__init__(message)


class ConfigNotFoundError(ConfigError):
    """Raised when a config file doesn't exist."""

    pass


class ConfigParseError(ConfigError):
    """Raised when YAML parsing fails."""

    pass


class ConfigValidationError(ConfigError):
    """Raised when config doesn't match schema."""

    pass
