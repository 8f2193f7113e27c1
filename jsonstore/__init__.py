# jsonstore/__init__.py
"""
jsonstore - JSON documents in named stores on top of SQLite or PostgreSQL.

Declared keys are promoted to indexed columns; the whole document is kept
as JSON alongside them. All operations on one JSONStore are serialized
through its operation queue and return Futures resolving to Results.
"""

from jsonstore.config import BackendType, JSONStoreConfig, load_config
from jsonstore.criteria import And, Leaf, Or, compile_criteria, parse_criteria
from jsonstore.exceptions import (
    BackendError,
    ConfigError,
    ConfigNotFoundError,
    ConfigParseError,
    ConfigValidationError,
    InvalidArgumentError,
    JSONStoreError,
    MalformedStoredDocumentError,
    MissingIdentifierError,
    StoreClosedError,
    StoreNotFoundError,
)
from jsonstore.logging.logger import configure_logging
from jsonstore.result import Result
from jsonstore.store import JSONStore

__version__ = "0.1.0"

__all__ = [
    "JSONStore",
    "JSONStoreConfig",
    "BackendType",
    "load_config",
    "Result",
    "Leaf",
    "And",
    "Or",
    "parse_criteria",
    "compile_criteria",
    "configure_logging",
    "JSONStoreError",
    "InvalidArgumentError",
    "StoreNotFoundError",
    "MalformedStoredDocumentError",
    "MissingIdentifierError",
    "BackendError",
    "StoreClosedError",
    "ConfigError",
    "ConfigNotFoundError",
    "ConfigParseError",
    "ConfigValidationError",
]
