# jsonstore/drivers/__init__.py
"""Relational backends behind JSONStore."""

from __future__ import annotations

from typing import TYPE_CHECKING

from jsonstore.config import BackendType
from jsonstore.drivers.base import Driver, ExecResult, RowCallback, SQLDriver
from jsonstore.drivers.postgres import PostgresDriver
from jsonstore.drivers.sqlite import SqliteDriver

if TYPE_CHECKING:
    from jsonstore.config import JSONStoreConfig

__all__ = [
    "Driver",
    "ExecResult",
    "RowCallback",
    "SQLDriver",
    "SqliteDriver",
    "PostgresDriver",
    "get_driver",
]


def get_driver(config: JSONStoreConfig) -> Driver:
    """
    Get an unopened driver for the configured backend.

    Returns:
        PostgresDriver for the postgres backend, SqliteDriver otherwise.
    """
    if config.backend == BackendType.POSTGRES:
        return PostgresDriver()

    return SqliteDriver()
