# tests/test_schema.py
"""Tests for store table planning."""

from __future__ import annotations

import pytest

from jsonstore.criteria import sanitize
from jsonstore.exceptions import InvalidArgumentError
from jsonstore.schema import (
    meta_table_sql,
    normalize_key_types,
    plan_create_store,
    plan_delete_store,
)

pytestmark = pytest.mark.tier1


class TestNormalizeKeyTypes:
    """Tests for declared key coercion."""

    def test_types_coerced(self):
        keys = {"name": "String", "age": "NUMBER", "born": "date"}
        assert normalize_key_types(keys) == {
            "name": "string",
            "age": "number",
            "born": "string",
            "id": "number",
        }

    def test_input_untouched(self):
        keys = {"name": "string"}
        normalize_key_types(keys)
        assert keys == {"name": "string"}

    def test_declared_id_type_kept(self):
        assert normalize_key_types({"id": "string"}) == {"id": "string"}

    def test_declaration_order_kept(self):
        assert list(normalize_key_types({"b": "string", "a": "number"})) == ["b", "a", "id"]

    def test_reserved_names_rejected(self):
        with pytest.raises(InvalidArgumentError):
            normalize_key_types({"__jsondata": "string"})
        with pytest.raises(InvalidArgumentError):
            normalize_key_types({"__created": "string"})


class TestPlanCreateStore:
    """Tests for the create-store statement plan."""

    def test_full_plan(self):
        statements = plan_create_store(
            "test", {"id": "number", "name": "string"}, sanitize, "AUTOINCREMENT"
        )

        assert statements == [
            "BEGIN",
            'CREATE TABLE "test" ('
            '"id" INTEGER PRIMARY KEY AUTOINCREMENT NOT NULL, '
            '"name" VARCHAR(255), '
            '"__created" TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP, '
            '"__jsondata" TEXT)',
            'CREATE UNIQUE INDEX "idx-test-id" ON "test" ("id")',
            'CREATE INDEX "idx-test-name" ON "test" ("name")',
            meta_table_sql("AUTOINCREMENT"),
            'INSERT INTO "__meta" ("store", "data") '
            "VALUES ('test', '{\"keys\": [\"id\", \"name\"]}')",
            "COMMIT",
        ]

    def test_string_id_has_no_identity_clause(self):
        statements = plan_create_store("s", {"id": "string"}, sanitize, "AUTOINCREMENT")
        assert '"id" VARCHAR(255) PRIMARY KEY NOT NULL' in statements[1]
        assert "AUTOINCREMENT NOT NULL" not in statements[1]

    def test_no_autoincrement(self):
        statements = plan_create_store("s", {"id": "number"}, sanitize)
        assert '"id" INTEGER PRIMARY KEY NOT NULL' in statements[1]

    def test_name_sanitized_in_catalog_row(self):
        statements = plan_create_store("o'brien", {"id": "number"}, sanitize)
        assert "VALUES ('o''brien'," in statements[-2]

    def test_identity_dialect_clause(self):
        statements = plan_create_store(
            "s", {"id": "number"}, sanitize, "GENERATED BY DEFAULT AS IDENTITY"
        )
        assert '"id" INTEGER PRIMARY KEY GENERATED BY DEFAULT AS IDENTITY NOT NULL' in statements[1]


class TestPlanDeleteStore:
    """Tests for the delete-store statement plan."""

    def test_full_plan(self):
        assert plan_delete_store("test", sanitize) == [
            "BEGIN",
            "DELETE FROM \"__meta\" WHERE \"store\" = 'test'",
            'DROP TABLE "test"',
            "COMMIT",
        ]


def test_meta_table_sql():
    assert meta_table_sql() == (
        'CREATE TABLE IF NOT EXISTS "__meta" ('
        '"id" INTEGER PRIMARY KEY, "store" VARCHAR(255) NOT NULL, "data" TEXT NOT NULL)'
    )
