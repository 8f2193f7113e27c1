# jsonstore/store.py
"""
JSONStore - JSON documents in named stores on top of a SQL database.

Usage:
    from jsonstore import JSONStore

    with JSONStore("people.sqlite") as db:
        db.create_store("people", {"name": "string", "age": "number"}).result()

        saved = db.save("people", {"name": "Mario", "age": 26}).result()
        print(saved.data["id"])  # id generated by the database

        people = db.get("people", {"where": "age", ">": 20}).result().data

Every operation checks its arguments immediately (raising
InvalidArgumentError) and then runs on the store's operation queue,
returning a Future that resolves to a Result.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Callable, Optional, Sequence, Union

from jsonstore.config import JSONStoreConfig, build_config
from jsonstore.criteria import normalize_criteria
from jsonstore.drivers import Driver, RowCallback, get_driver
from jsonstore.exceptions import InvalidArgumentError
from jsonstore.logging.logger import get_logger
from jsonstore.logging.tags import STORE
from jsonstore.queue import OperationQueue
from jsonstore.result import Result
from jsonstore.schema import normalize_key_types

logger = get_logger(__name__)

ConfigLike = Union[JSONStoreConfig, Mapping[str, Any], str, Path]


def _coerce_config(config: ConfigLike) -> JSONStoreConfig:
    """A string or path means a SQLite database file."""
    if isinstance(config, JSONStoreConfig):
        config.validate_backend()
        return config

    if isinstance(config, (str, Path)):
        return JSONStoreConfig(database=str(config))

    if isinstance(config, Mapping):
        return build_config(dict(config))

    raise InvalidArgumentError(
        f"config must be a JSONStoreConfig, mapping or database path, got {type(config).__name__}"
    )


def _require_store(store: Any) -> None:
    if not isinstance(store, str) or not store:
        raise InvalidArgumentError("Missing parameter: store (expected a string)")


def _check_json_value(value: Any, path: str) -> None:
    """Reject values that would not read back equal after a JSON round trip."""
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise InvalidArgumentError(f"object key {path}[{key!r}] must be a string")
            _check_json_value(item, f"{path}[{key!r}]")
    elif isinstance(value, list):
        for index, item in enumerate(value):
            _check_json_value(item, f"{path}[{index}]")
    elif value is not None and not isinstance(value, (str, int, float)):
        raise InvalidArgumentError(
            f"object value at {path} has no JSON form: {type(value).__name__}"
        )


def _require_object(obj: Any) -> None:
    if obj is None:
        raise InvalidArgumentError("Missing parameter: object")

    if not isinstance(obj, dict):
        raise InvalidArgumentError(f"object must be a dict, got {type(obj).__name__}")

    _check_json_value(obj, "object")

    try:
        json.dumps(obj, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError(f"object is not JSON serializable: {e}") from e


def _require_keys(keys: Any, name: str = "keys") -> dict:
    if keys is None:
        return {}

    if not isinstance(keys, Mapping):
        raise InvalidArgumentError(f"{name} must be a mapping, got {type(keys).__name__}")

    return dict(keys)


class JSONStore:
    """
    Facade over one backend connection and its operation queue.

    Args:
        config: JSONStoreConfig, a mapping of config values, or a SQLite
            database path (":memory:" for an in-memory database).
        driver: Optional driver instance to use instead of the one
            selected by ``config.backend``.

    Raises:
        InvalidArgumentError: If config is missing or of the wrong type.
        ConfigValidationError: If config values are invalid.
        BackendError: If the backend connection cannot be opened.
    """

    def __init__(self, config: Optional[ConfigLike] = None, driver: Optional[Driver] = None):
        if config is None or config == "":
            raise InvalidArgumentError("Missing parameter: config")

        self.config = _coerce_config(config)
        self.driver = driver or get_driver(self.config)
        self.driver.open(self.config)

        self._queue = OperationQueue(
            name=self.config.backend.value,
            warn_size=self.config.queue_warn_size,
        )
        logger.info(f"{STORE} JSONStore opened (backend={self.config.backend.value})")

    def __enter__(self) -> JSONStore:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _submit(self, task: Callable[[], Result]) -> Future[Result]:
        return self._queue.enqueue(task)

    def _criteria(self, criteria: Any):
        return normalize_criteria(criteria, strict=self.config.strict_criteria)

    @property
    def pending(self) -> int:
        """Operations submitted but not yet settled."""
        return self._queue.pending

    # -------------------------------------------------------------------------
    # Stores
    # -------------------------------------------------------------------------

    def create_store(self, name: str, keys: Mapping[str, Any]) -> Future[Result]:
        """
        Create a store with the given indexed keys.

        Key types are coerced to "string" or "number" (anything else becomes
        "string") and `id` is added as "number" when missing. The resulting
        key map is the Result data; the caller's mapping is not modified.
        """
        if not name:
            raise InvalidArgumentError("Missing parameter: name")

        if keys is None:
            raise InvalidArgumentError("Missing parameter: keys")

        normalized = normalize_key_types(_require_keys(keys))
        name = str(name)
        return self._submit(lambda: self.driver.create_store(name, normalized))

    def delete_store(self, name: str) -> Future[Result]:
        """Drop a store's table and catalog entry."""
        if not name:
            raise InvalidArgumentError("Missing parameter: name")

        name = str(name)
        return self._submit(lambda: self.driver.delete_store(name))

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    def save(
        self,
        store: str,
        obj: dict,
        keys: Optional[Mapping[str, Any]] = None,
    ) -> Future[Result]:
        """
        Insert or replace a document.

        ``keys`` overrides the column values taken from the object's own
        fields; an overriding `id` is also written into the object. When no
        id is known, the one generated by the database is added to the
        object. The saved object is the Result data.
        """
        _require_store(store)
        _require_object(obj)
        overrides = _require_keys(keys)
        return self._submit(lambda: self.driver.save(store, obj, overrides))

    def save_many(
        self,
        store: str,
        objects: Sequence[dict],
        keys: Optional[Mapping[str, Any]] = None,
    ) -> Future[Result]:
        """Save several documents in a single transaction."""
        _require_store(store)
        if objects is None or isinstance(objects, (dict, str, bytes)):
            raise InvalidArgumentError("Missing parameter: objects (expected a list of dicts)")

        objects = list(objects)
        for obj in objects:
            _require_object(obj)

        overrides = _require_keys(keys)
        return self._submit(lambda: self.driver.save_many(store, objects, overrides))

    def get(self, store: str, criteria: Any = None) -> Future[Result]:
        """
        Fetch documents matching the criteria.

        Omitted criteria match every document; a bare string or number
        matches by id.
        """
        _require_store(store)
        criteria = self._criteria(criteria)
        return self._submit(lambda: self.driver.get(store, criteria))

    def stream(
        self,
        store: str,
        criteria: Any = None,
        on_row: Optional[RowCallback] = None,
    ) -> Future[Result]:
        """
        Same as get(), but rows are handed to ``on_row(result, is_last, index)``
        one at a time instead of being held in memory.

        The criteria may be omitted: ``stream(store, on_row)``. Callbacks run
        on the store's queue worker thread.
        """
        _require_store(store)

        if callable(criteria) and on_row is None:
            on_row, criteria = criteria, None

        if not callable(on_row):
            raise InvalidArgumentError("Missing parameter: on_row (expected a callable)")

        criteria = self._criteria(criteria)
        return self._submit(lambda: self.driver.stream(store, criteria, on_row))

    def delete(self, store: str, criteria: Any = None) -> Future[Result]:
        """Delete documents matching the criteria; none given deletes all."""
        _require_store(store)

        if callable(criteria):
            criteria = None

        criteria = self._criteria(criteria)
        return self._submit(lambda: self.driver.delete(store, criteria))

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Finish queued operations, then close the backend connection."""
        if self._queue.closed:
            return

        self._queue.close(wait=True)
        self.driver.close()
        logger.info(f"{STORE} JSONStore closed")
