# jsonstore/drivers/postgres.py
"""
PostgreSQL driver built on psycopg 3.

Handles:
- One autocommit connection per store instance, transactions driven by
  explicit BEGIN/COMMIT/ROLLBACK statements
- Upserts via INSERT ... ON CONFLICT ("id") DO UPDATE ... RETURNING "id"
- Identity sequence catch-up after explicit integer ids are written
- Server-side row streaming via cursor.stream()
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterator, Mapping, Optional, Sequence

from jsonstore.criteria import quote_identifier
from jsonstore.drivers.base import ExecResult, SQLDriver
from jsonstore.exceptions import BackendError
from jsonstore.logging.logger import get_logger
from jsonstore.logging.tags import DRIVER
from jsonstore.schema import ID_KEY

if TYPE_CHECKING:
    from psycopg import Connection

    from jsonstore.config import JSONStoreConfig

logger = get_logger(__name__)

# Lazy import for psycopg (done once at module level when first needed)
_psycopg = None


def _get_psycopg():
    """Lazy import psycopg once."""
    global _psycopg
    if _psycopg is None:
        try:
            import psycopg
        except ImportError as e:
            raise ImportError(
                "psycopg not installed. Install with: pip install 'jsonstore[postgres]'"
            ) from e
        _psycopg = psycopg
    return _psycopg


class PostgresDriver(SQLDriver):
    """
    Document storage in a PostgreSQL database.

    Each store is a native table; the `id` column is an identity column
    when declared as a number.
    """

    name = "postgres"
    placeholder = "%s"
    autoincrement = "GENERATED BY DEFAULT AS IDENTITY"

    def __init__(self) -> None:
        super().__init__()
        self._conn: Optional["Connection"] = None

    @property
    def conn(self) -> "Connection":
        """Open database connection."""
        if self._conn is None:
            raise BackendError("PostgreSQL connection is not open")
        return self._conn

    def _connect(self, config: JSONStoreConfig) -> None:
        psycopg = _get_psycopg()
        from psycopg.rows import dict_row

        if self._conn is not None:
            self._disconnect()

        if not config.connection_string:
            raise BackendError("connection_string required for postgres backend")

        try:
            self._conn = psycopg.connect(
                config.connection_string,
                autocommit=True,
                connect_timeout=config.connect_timeout,
                row_factory=dict_row,
            )
        except psycopg.Error as e:
            raise BackendError(f"Could not connect to PostgreSQL: {e}") from e

        logger.debug(f"{DRIVER} PostgreSQL connection opened")

    def _disconnect(self) -> None:
        if self._conn is not None:
            try:
                self._conn.close()
            finally:
                self._conn = None

    @staticmethod
    def _params(params: Optional[Sequence[Any]]) -> Optional[tuple]:
        # No parameters means no placeholder processing of the SQL text
        return tuple(params) if params else None

    def _run(self, sql: str, params: Optional[Sequence[Any]] = None) -> ExecResult:
        psycopg = _get_psycopg()
        self._log_statement(sql, params)
        try:
            cursor = self.conn.execute(sql, self._params(params))
            last_id = None
            if cursor.description is not None:
                row = cursor.fetchone()
                if row is not None:
                    last_id = row.get(ID_KEY)
            return ExecResult(rowcount=cursor.rowcount, last_id=last_id)
        except psycopg.Error as e:
            raise BackendError(f"PostgreSQL error: {e}", statement=sql) from e

    def _fetch(self, sql: str, params: Optional[Sequence[Any]] = None) -> list[dict[str, Any]]:
        psycopg = _get_psycopg()
        self._log_statement(sql, params)
        try:
            return list(self.conn.execute(sql, self._params(params)).fetchall())
        except psycopg.Error as e:
            raise BackendError(f"PostgreSQL error: {e}", statement=sql) from e

    def _iterate(self, sql: str, params: Optional[Sequence[Any]] = None) -> Iterator[tuple]:
        psycopg = _get_psycopg()
        self._log_statement(sql, params)
        try:
            with self.conn.cursor() as cursor:
                for row in cursor.stream(sql, self._params(params)):
                    yield tuple(row.values())
        except psycopg.Error as e:
            raise BackendError(f"PostgreSQL error: {e}", statement=sql) from e

    def _upsert_sql(self, store: str, columns: Sequence[str]) -> str:
        table = quote_identifier(store)
        column_list = ", ".join(quote_identifier(c) for c in columns)
        placeholders = ", ".join(self.placeholder for _ in columns)
        updates = ", ".join(
            f"{quote_identifier(c)} = EXCLUDED.{quote_identifier(c)}"
            for c in columns
            if c != ID_KEY
        )
        return (
            f"INSERT INTO {table} ({column_list}) VALUES ({placeholders}) "
            f"ON CONFLICT ({quote_identifier(ID_KEY)}) DO UPDATE SET {updates} "
            f"RETURNING {quote_identifier(ID_KEY)}"
        )

    def _after_upsert(self, store: str, key_data: Mapping[str, Any]) -> None:
        """Keep the identity sequence ahead of explicitly written ids."""
        identifier = key_data.get(ID_KEY)
        if not isinstance(identifier, int) or isinstance(identifier, bool):
            return

        table = quote_identifier(store)
        column = quote_identifier(ID_KEY)
        # setval() on a NULL sequence (non-identity id column) is a no-op
        self._run(
            f"SELECT setval(pg_get_serial_sequence(%s, %s), "
            f"GREATEST((SELECT MAX({column}) FROM {table}), 1))",
            [table, ID_KEY],
        )
