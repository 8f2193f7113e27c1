# jsonstore/schema.py
"""
Relational layout of a store.

Each store is backed by:
- a table named after the store, with one column per declared key plus
  two reserved columns (`__created`, `__jsondata`)
- one row in the shared `__meta` catalog recording the declared key order

The catalog, not the table schema, is the source of truth for which
top-level document fields are promoted to columns.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Mapping, Optional

from jsonstore.criteria import quote_identifier
from jsonstore.exceptions import InvalidArgumentError

DOCUMENT_COLUMN = "__jsondata"
CREATED_COLUMN = "__created"
META_TABLE = "__meta"
ID_KEY = "id"

KEY_TYPES = ("string", "number")
RESERVED_COLUMNS = (DOCUMENT_COLUMN, CREATED_COLUMN)

BEGIN = "BEGIN"
COMMIT = "COMMIT"
ROLLBACK = "ROLLBACK"


def normalize_key_types(keys: Mapping[str, Any]) -> dict[str, str]:
    """
    Coerce a declared key map to "string"/"number" types.

    Unknown types become "string"; `id` defaults to "number".
    Returns a new dict; the input is left untouched.

    Raises:
        InvalidArgumentError: If a key collides with a reserved column.
    """
    normalized: dict[str, str] = {}
    for key, key_type in keys.items():
        if key in RESERVED_COLUMNS:
            raise InvalidArgumentError(f"Key name is reserved: {key!r}")
        key_type = str(key_type).lower()
        normalized[str(key)] = key_type if key_type in KEY_TYPES else "string"

    normalized.setdefault(ID_KEY, "number")
    return normalized


def meta_table_sql(autoincrement: Optional[str] = None) -> str:
    """DDL that ensures the shared catalog table exists."""
    id_clause = f" {autoincrement}" if autoincrement else ""
    return (
        f"CREATE TABLE IF NOT EXISTS {quote_identifier(META_TABLE)} ("
        f"{quote_identifier('id')} INTEGER PRIMARY KEY{id_clause}, "
        f"{quote_identifier('store')} VARCHAR(255) NOT NULL, "
        f"{quote_identifier('data')} TEXT NOT NULL)"
    )


def _column_sql(key: str, key_type: str, autoincrement: Optional[str]) -> str:
    column = quote_identifier(key) + " "

    if key == DOCUMENT_COLUMN:
        column += "TEXT"
    elif key == CREATED_COLUMN:
        column += "TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP"
    elif key_type == "number":
        column += "INTEGER"
    else:
        column += "VARCHAR(255)"

    if key == ID_KEY:
        column += " PRIMARY KEY"
        # Identity clauses only apply to integer keys
        if autoincrement and key_type == "number":
            column += " " + autoincrement
        column += " NOT NULL"

    return column


def plan_create_store(
    name: str,
    keys: Mapping[str, str],
    sanitize_fn: Callable[[Any], str],
    autoincrement: Optional[str] = None,
) -> list[str]:
    """
    Plan the statements that create a store.

    Args:
        name: Store name (also the table name).
        keys: Normalized key -> type map, `id` included.
        sanitize_fn: Escapes inline string literals.
        autoincrement: Dialect identity clause for a numeric `id`
            (e.g. "AUTOINCREMENT"), or None.

    Returns:
        Statements to run in order, bracketed by BEGIN/COMMIT.
    """
    table = quote_identifier(name)
    meta = {"keys": list(keys)}

    columns = [_column_sql(key, key_type, autoincrement) for key, key_type in keys.items()]
    columns.append(_column_sql(CREATED_COLUMN, "timestamp", None))
    columns.append(_column_sql(DOCUMENT_COLUMN, "string", None))

    statements = [BEGIN, f"CREATE TABLE {table} ({', '.join(columns)})"]

    for key in keys:
        unique = "UNIQUE " if key == ID_KEY else ""
        index = quote_identifier(f"idx-{name}-{key}")
        statements.append(
            f"CREATE {unique}INDEX {index} ON {table} ({quote_identifier(key)})"
        )

    statements.append(meta_table_sql(autoincrement))
    statements.append(
        f"INSERT INTO {quote_identifier(META_TABLE)} "
        f"({quote_identifier('store')}, {quote_identifier('data')}) "
        f"VALUES ('{sanitize_fn(name)}', '{sanitize_fn(json.dumps(meta))}')"
    )
    statements.append(COMMIT)

    return statements


def plan_delete_store(name: str, sanitize_fn: Callable[[Any], str]) -> list[str]:
    """Plan the statements that remove a store's catalog row and table."""
    return [
        BEGIN,
        f"DELETE FROM {quote_identifier(META_TABLE)} "
        f"WHERE {quote_identifier('store')} = '{sanitize_fn(name)}'",
        f"DROP TABLE {quote_identifier(name)}",
        COMMIT,
    ]
