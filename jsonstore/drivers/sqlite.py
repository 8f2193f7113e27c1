# jsonstore/drivers/sqlite.py
"""SQLite driver built on the standard library sqlite3 module."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterator, Optional, Sequence

from jsonstore.criteria import quote_identifier
from jsonstore.drivers.base import ExecResult, SQLDriver
from jsonstore.exceptions import BackendError
from jsonstore.logging.logger import get_logger
from jsonstore.logging.tags import DRIVER
from jsonstore.schema import ID_KEY

if TYPE_CHECKING:
    from jsonstore.config import JSONStoreConfig

logger = get_logger(__name__)


class SqliteDriver(SQLDriver):
    """
    Document storage in a SQLite database.

    The connection runs in autocommit mode so transactions are controlled
    only by the explicit BEGIN/COMMIT/ROLLBACK statements the store issues.
    It is used from the store's queue worker thread, never concurrently.
    """

    name = "sqlite"
    placeholder = "?"
    autoincrement = "AUTOINCREMENT"

    def __init__(self) -> None:
        super().__init__()
        self._conn: sqlite3.Connection | None = None

    @property
    def conn(self) -> sqlite3.Connection:
        """Open database connection."""
        if self._conn is None:
            raise BackendError("SQLite connection is not open")
        return self._conn

    def _connect(self, config: JSONStoreConfig) -> None:
        if self._conn is not None:
            self._disconnect()

        database = config.database
        if database != ":memory:" and not database.startswith("file:"):
            Path(database).parent.mkdir(parents=True, exist_ok=True)

        try:
            self._conn = sqlite3.connect(
                database,
                timeout=config.connect_timeout,
                isolation_level=None,
                check_same_thread=False,
                uri=database.startswith("file:"),
            )
        except sqlite3.Error as e:
            raise BackendError(f"Could not open SQLite database {database!r}: {e}") from e

        self._conn.row_factory = sqlite3.Row
        logger.debug(f"{DRIVER} SQLite database opened: {database}")

    def _disconnect(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    def _run(self, sql: str, params: Optional[Sequence[Any]] = None) -> ExecResult:
        self._log_statement(sql, params)
        try:
            cursor = self.conn.execute(sql, tuple(params or ()))
        except sqlite3.Error as e:
            raise BackendError(f"SQLite error: {e}", statement=sql) from e

        try:
            return ExecResult(rowcount=cursor.rowcount, last_id=cursor.lastrowid)
        finally:
            cursor.close()

    def _fetch(self, sql: str, params: Optional[Sequence[Any]] = None) -> list[dict[str, Any]]:
        self._log_statement(sql, params)
        try:
            cursor = self.conn.execute(sql, tuple(params or ()))
            rows = cursor.fetchall()
        except sqlite3.Error as e:
            raise BackendError(f"SQLite error: {e}", statement=sql) from e

        cursor.close()
        return [dict(row) for row in rows]

    def _iterate(self, sql: str, params: Optional[Sequence[Any]] = None) -> Iterator[tuple]:
        self._log_statement(sql, params)
        try:
            cursor = self.conn.execute(sql, tuple(params or ()))
        except sqlite3.Error as e:
            raise BackendError(f"SQLite error: {e}", statement=sql) from e

        try:
            while True:
                try:
                    row = cursor.fetchone()
                except sqlite3.Error as e:
                    raise BackendError(f"SQLite error: {e}", statement=sql) from e
                if row is None:
                    return
                yield tuple(row)
        finally:
            cursor.close()

    def _upsert_sql(self, store: str, columns: Sequence[str]) -> str:
        # Updating in place keeps "__created" from the first insert
        column_list = ", ".join(quote_identifier(c) for c in columns)
        placeholders = ", ".join(self.placeholder for _ in columns)
        updates = ", ".join(
            f"{quote_identifier(c)} = excluded.{quote_identifier(c)}"
            for c in columns
            if c != ID_KEY
        )
        return (
            f"INSERT INTO {quote_identifier(store)} ({column_list}) VALUES ({placeholders}) "
            f"ON CONFLICT ({quote_identifier(ID_KEY)}) DO UPDATE SET {updates}"
        )
