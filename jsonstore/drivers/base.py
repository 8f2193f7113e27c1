# jsonstore/drivers/base.py
"""
Driver protocol and the shared SQL document logic.

A driver owns one backend connection and implements the document
operations on top of it. SQLDriver holds everything that is the same for
every relational engine (catalog lookup, save/upsert with identifier
back-fill, filtered reads and deletes, streaming); concrete drivers only
supply the dialect primitives:

- _connect / _disconnect
- _run      execute one statement, return ExecResult
- _fetch    execute one query, return rows as dicts
- _iterate  execute one query, yield rows lazily
- _upsert_sql
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Iterator,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

from jsonstore.criteria import Criteria, expand_criteria, quote_identifier, sanitize
from jsonstore.exceptions import (
    BackendError,
    InvalidArgumentError,
    JSONStoreError,
    MalformedStoredDocumentError,
    MissingIdentifierError,
    StoreNotFoundError,
)
from jsonstore.logging.logger import get_logger
from jsonstore.logging.tags import DRIVER, QUERY, SCHEMA, STORE
from jsonstore.result import Result
from jsonstore.schema import (
    BEGIN,
    COMMIT,
    DOCUMENT_COLUMN,
    ID_KEY,
    META_TABLE,
    ROLLBACK,
    meta_table_sql,
    plan_create_store,
    plan_delete_store,
)

if TYPE_CHECKING:
    from jsonstore.config import JSONStoreConfig

logger = get_logger(__name__)

RowCallback = Callable[[Result, bool, int], None]


@dataclass
class ExecResult:
    """Effect of a non-query statement."""

    rowcount: int = 0
    last_id: Any = None  # identifier generated by the insert, if any


@runtime_checkable
class Driver(Protocol):
    """Capabilities every backend provides to JSONStore."""

    def open(self, config: Optional[JSONStoreConfig] = None) -> None:
        """Open the backend connection (reusing the last config if None)."""
        ...

    def close(self) -> None:
        """Close the backend connection."""
        ...

    def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> Result:
        """Run one query; data is a list of row dicts."""
        ...

    def exec(self, sql: str, params: Optional[Sequence[Any]] = None) -> Result:
        """Run one statement; data is an ExecResult."""
        ...

    def transaction_begin(self) -> Result: ...

    def transaction_commit(self) -> Result: ...

    def transaction_rollback(self) -> Result: ...

    def get_metadata(self, store: str) -> Result:
        """Catalog entry of a store; data is {"keys": [...]}."""
        ...

    def create_store(self, name: str, keys: Mapping[str, str]) -> Result: ...

    def delete_store(self, name: str) -> Result: ...

    def save(self, store: str, obj: dict, keys: Mapping[str, Any]) -> Result: ...

    def save_many(self, store: str, objects: Sequence[dict], keys: Mapping[str, Any]) -> Result: ...

    def get(self, store: str, criteria: Optional[Sequence[Criteria]]) -> Result: ...

    def stream(
        self,
        store: str,
        criteria: Optional[Sequence[Criteria]],
        on_row: RowCallback,
    ) -> Result: ...

    def delete(self, store: str, criteria: Optional[Sequence[Criteria]]) -> Result: ...


class SQLDriver:
    """
    Document operations shared by all relational drivers.

    Every public operation returns a Result; backend and data errors are
    captured, never raised. Transactions opened here are always closed with
    COMMIT or ROLLBACK before the operation returns.
    """

    name = "sql"
    placeholder = "?"
    autoincrement: Optional[str] = None

    def __init__(self) -> None:
        self.config: Optional[JSONStoreConfig] = None

    # -------------------------------------------------------------------------
    # Dialect primitives
    # -------------------------------------------------------------------------

    def _connect(self, config: JSONStoreConfig) -> None:
        raise NotImplementedError

    def _disconnect(self) -> None:
        raise NotImplementedError

    def _run(self, sql: str, params: Optional[Sequence[Any]] = None) -> ExecResult:
        raise NotImplementedError

    def _fetch(self, sql: str, params: Optional[Sequence[Any]] = None) -> list[dict[str, Any]]:
        raise NotImplementedError

    def _iterate(self, sql: str, params: Optional[Sequence[Any]] = None) -> Iterator[tuple]:
        raise NotImplementedError

    def _upsert_sql(self, store: str, columns: Sequence[str]) -> str:
        raise NotImplementedError

    def _after_upsert(self, store: str, key_data: Mapping[str, Any]) -> None:
        """Hook run after each upsert inside the save transaction."""
        pass

    @staticmethod
    def sanitize(value: Any) -> str:
        return sanitize(value)

    def _log_statement(self, sql: str, params: Optional[Sequence[Any]]) -> None:
        if self.config is not None and self.config.log_statements:
            logger.debug(f"{DRIVER} {self.name}: {sql} {list(params or [])}")

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    def open(self, config: Optional[JSONStoreConfig] = None) -> None:
        """
        Open the backend connection and ensure the catalog table exists.

        Raises:
            InvalidArgumentError: If no config was given now or before.
            BackendError: If the connection cannot be established.
        """
        config = config or self.config
        if config is None:
            raise InvalidArgumentError("Missing parameter: config")

        self.config = config
        self._connect(config)
        self._run(meta_table_sql(self.autoincrement))
        logger.info(f"{DRIVER} {self.name} driver opened")

    def close(self) -> None:
        self._disconnect()
        logger.debug(f"{DRIVER} {self.name} driver closed")

    # -------------------------------------------------------------------------
    # Statement execution
    # -------------------------------------------------------------------------

    def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> Result:
        """General query that wraps rows in a Result."""
        try:
            return Result.ok(self._fetch(sql, params))
        except JSONStoreError as e:
            return Result.fail(e)

    def exec(self, sql: str, params: Optional[Sequence[Any]] = None) -> Result:
        """Execute a non-query statement."""
        try:
            return Result.ok(self._run(sql, params))
        except JSONStoreError as e:
            return Result.fail(e)

    def transaction_begin(self) -> Result:
        return self.exec(BEGIN)

    def transaction_commit(self) -> Result:
        return self.exec(COMMIT)

    def transaction_rollback(self) -> Result:
        return self.exec(ROLLBACK)

    def _rollback_quietly(self) -> None:
        try:
            self._run(ROLLBACK)
        except BackendError as e:
            logger.warning(f"{DRIVER} Rollback failed: {e}")

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        """Bracket a block with BEGIN and COMMIT, rolling back on any error."""
        self._run(BEGIN)
        try:
            yield
            self._run(COMMIT)
        except BaseException:
            self._rollback_quietly()
            raise

    def _run_statements(self, statements: Sequence[str]) -> None:
        """Run planned statements, rolling back an open transaction on failure."""
        in_transaction = False
        try:
            for statement in statements:
                self._run(statement)
                if statement == BEGIN:
                    in_transaction = True
                elif statement in (COMMIT, ROLLBACK):
                    in_transaction = False
        except BackendError:
            if in_transaction:
                self._rollback_quietly()
            raise

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    def _metadata(self, store: str) -> dict[str, Any]:
        sql = (
            f"SELECT {quote_identifier('data')} FROM {quote_identifier(META_TABLE)} "
            f"WHERE {quote_identifier('store')} = {self.placeholder}"
        )
        rows = self._fetch(sql, [store])
        if not rows:
            raise StoreNotFoundError(store)

        try:
            meta = json.loads(rows[0]["data"])
        except (TypeError, ValueError) as e:
            raise MalformedStoredDocumentError(META_TABLE, f"catalog row for {store!r}: {e}") from e

        if not isinstance(meta, dict) or not isinstance(meta.get("keys"), list):
            raise MalformedStoredDocumentError(META_TABLE, f"catalog row for {store!r} has no key list")

        return meta

    def get_metadata(self, store: str) -> Result:
        """Get an individual store's catalog entry."""
        try:
            return Result.ok(self._metadata(store))
        except JSONStoreError as e:
            return Result.fail(e)

    def create_store(self, name: str, keys: Mapping[str, str]) -> Result:
        """Create the backing table, its indexes and its catalog row atomically."""
        statements = plan_create_store(name, keys, self.sanitize, self.autoincrement)
        try:
            self._run_statements(statements)
        except JSONStoreError as e:
            logger.warning(f"{SCHEMA} Could not create store '{name}': {e}")
            return Result.fail(e)

        logger.info(f"{SCHEMA} Created store '{name}' with keys {list(keys)}")
        return Result.ok(dict(keys))

    def delete_store(self, name: str) -> Result:
        """Remove the catalog row and drop the table atomically."""
        try:
            self._run_statements(plan_delete_store(name, self.sanitize))
        except JSONStoreError as e:
            logger.warning(f"{SCHEMA} Could not delete store '{name}': {e}")
            return Result.fail(e)

        logger.info(f"{SCHEMA} Deleted store '{name}'")
        return Result.ok()

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    def _save_document(
        self,
        store: str,
        obj: dict,
        keys: Mapping[str, Any],
        declared: Sequence[str],
        backfilled: bool = False,
    ) -> dict:
        """
        Upsert one document; must run inside a transaction.

        When neither the object nor the overrides carry an id, the id
        generated by the insert is written back into the object and the
        document is saved once more so the stored JSON includes it.
        """
        # Declared keys missing from the object are written as NULL
        key_data: dict[str, Any] = {key: None for key in declared if key != ID_KEY}

        # Skim the object for top-level keys
        for key, value in obj.items():
            if key in declared:
                key_data[key] = value

        # Overrides win over object values
        for key, value in keys.items():
            if key in declared:
                key_data[key] = value

        if keys.get(ID_KEY) is not None:
            obj[ID_KEY] = keys[ID_KEY]

        if key_data.get(ID_KEY) is None:
            key_data.pop(ID_KEY, None)

        columns = list(key_data) + [DOCUMENT_COLUMN]
        values = [key_data[key] for key in key_data] + [json.dumps(obj)]

        result = self._run(self._upsert_sql(store, columns), values)

        if ID_KEY not in key_data:
            if result.last_id is None or backfilled:
                raise MissingIdentifierError(
                    f"No id in object and none generated by {self.name} for store {store!r}"
                )

            obj[ID_KEY] = result.last_id
            return self._save_document(store, obj, keys, declared, backfilled=True)

        self._after_upsert(store, key_data)
        return obj

    @staticmethod
    def _snapshot_ids(objects: Sequence[dict]) -> list[tuple[dict, bool, Any]]:
        return [(obj, ID_KEY in obj, obj.get(ID_KEY)) for obj in objects]

    @staticmethod
    def _restore_ids(snapshots: Sequence[tuple[dict, bool, Any]]) -> None:
        """Undo id writes on objects whose save was rolled back."""
        for obj, present, value in snapshots:
            if present:
                obj[ID_KEY] = value
            else:
                obj.pop(ID_KEY, None)

    def save(self, store: str, obj: dict, keys: Mapping[str, Any]) -> Result:
        """Insert or replace one document, keyed by its id."""
        snapshots = self._snapshot_ids([obj])
        try:
            with self._transaction():
                declared = self._metadata(store)["keys"]
                saved = self._save_document(store, obj, keys, declared)
        except JSONStoreError as e:
            self._restore_ids(snapshots)
            logger.debug(f"{STORE} Save into '{store}' failed: {e}")
            return Result.fail(e)

        return Result.ok(saved)

    def save_many(self, store: str, objects: Sequence[dict], keys: Mapping[str, Any]) -> Result:
        """Save several documents in one transaction; all or none persist."""
        snapshots = self._snapshot_ids(objects)
        try:
            with self._transaction():
                declared = self._metadata(store)["keys"]
                saved = [self._save_document(store, obj, keys, declared) for obj in objects]
        except JSONStoreError as e:
            self._restore_ids(snapshots)
            logger.debug(f"{STORE} Batch save into '{store}' failed: {e}")
            return Result.fail(e)

        return Result.ok(saved)

    def _select_sql(
        self,
        store: str,
        criteria: Optional[Sequence[Criteria]],
        params: list,
    ) -> str:
        return (
            f"SELECT {quote_identifier(DOCUMENT_COLUMN)} FROM {quote_identifier(store)}"
            + expand_criteria(criteria, self.sanitize, params, self.placeholder)
        )

    @staticmethod
    def _parse_document(store: str, text: Any) -> Any:
        try:
            return json.loads(text)
        except (TypeError, ValueError) as e:
            raise MalformedStoredDocumentError(store, str(e)) from e

    def get(self, store: str, criteria: Optional[Sequence[Criteria]]) -> Result:
        """Fetch every document matching the criteria."""
        params: list = []
        try:
            rows = self._fetch(self._select_sql(store, criteria, params), params)
            documents = [self._parse_document(store, row[DOCUMENT_COLUMN]) for row in rows]
        except JSONStoreError as e:
            logger.debug(f"{QUERY} Get from '{store}' failed: {e}")
            return Result.fail(e)

        logger.debug(f"{QUERY} Fetched {len(documents)} document(s) from '{store}'")
        return Result.ok(documents)

    def stream(
        self,
        store: str,
        criteria: Optional[Sequence[Criteria]],
        on_row: RowCallback,
    ) -> Result:
        """
        Deliver matching documents one row at a time.

        ``on_row(result, is_last, index)`` is called once per row, and exactly
        once with ``is_last=True``: for the final row, for an empty result
        (with ``data=None``), or for the first error, after which no further
        rows are delivered.

        Returns:
            Result whose data is the number of rows delivered.
        """
        params: list = []
        index = 0
        rows = self._iterate(self._select_sql(store, criteria, params), params)
        try:
            row = next(rows, None)
            if row is None:
                on_row(Result.ok(None), True, 0)
                return Result.ok(0)

            while row is not None:
                following = next(rows, None)
                document = self._parse_document(store, row[0])
                on_row(Result.ok(document), following is None, index)
                row = following
                index += 1
        except JSONStoreError as e:
            logger.debug(f"{QUERY} Stream from '{store}' stopped at row {index}: {e}")
            on_row(Result.fail(e), True, index)
            return Result.fail(e)
        finally:
            rows.close()

        return Result.ok(index)

    def delete(self, store: str, criteria: Optional[Sequence[Criteria]]) -> Result:
        """Delete matching documents; no criteria deletes them all."""
        params: list = []
        sql = f"DELETE FROM {quote_identifier(store)}" + expand_criteria(
            criteria, self.sanitize, params, self.placeholder
        )
        try:
            result = self._run(sql, params)
        except JSONStoreError as e:
            return Result.fail(e)

        logger.debug(f"{STORE} Deleted {result.rowcount} row(s) from '{store}'")
        return Result.ok(result.rowcount)
