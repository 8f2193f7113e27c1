# tests/test_postgres_driver.py
"""
Tests for PostgresDriver.

Tests cover:
1. Upsert statement generation
2. Identity sequence catch-up
3. Statement execution against a mocked connection
4. End-to-end round trip against a real server (JSONSTORE_TEST_POSTGRES_URL)
"""

from __future__ import annotations

import uuid
from unittest.mock import MagicMock, patch

import pytest

from jsonstore import JSONStore
from jsonstore.drivers.base import ExecResult
from jsonstore.drivers.postgres import PostgresDriver
from jsonstore.exceptions import BackendError, StoreNotFoundError

from tests.conftest import (
    POSTGRES_DEPS_AVAILABLE,
    POSTGRES_URL,
    SKIP_POSTGRES_REASON,
    SKIP_POSTGRES_SERVER_REASON,
)

# Mark all tests in this module as postgres
pytestmark = pytest.mark.postgres


# =============================================================================
# SQL Generation Tests
# =============================================================================


@pytest.mark.tier1
class TestUpsertSql:
    """Tests for the INSERT ... ON CONFLICT statement."""

    def test_with_id(self):
        sql = PostgresDriver()._upsert_sql("test", ["id", "name", "__jsondata"])
        assert sql == (
            'INSERT INTO "test" ("id", "name", "__jsondata") VALUES (%s, %s, %s) '
            'ON CONFLICT ("id") DO UPDATE SET "name" = EXCLUDED."name", '
            '"__jsondata" = EXCLUDED."__jsondata" '
            'RETURNING "id"'
        )

    def test_without_id(self):
        sql = PostgresDriver()._upsert_sql("test", ["__jsondata"])
        assert sql.startswith('INSERT INTO "test" ("__jsondata") VALUES (%s) ')
        assert sql.endswith('RETURNING "id"')

    def test_quoted_store_name(self):
        sql = PostgresDriver()._upsert_sql('we"ird', ["__jsondata"])
        assert sql.startswith('INSERT INTO "we""ird"')


@pytest.mark.tier1
class TestParams:
    """Tests for parameter passing."""

    def test_empty_params_disable_placeholders(self):
        assert PostgresDriver._params(None) is None
        assert PostgresDriver._params([]) is None

    def test_params_as_tuple(self):
        assert PostgresDriver._params([1, "a"]) == (1, "a")


@pytest.mark.tier2
class TestSequenceCatchUp:
    """Tests for keeping the identity sequence ahead of explicit ids."""

    def test_integer_id_advances_sequence(self):
        driver = PostgresDriver()
        with patch.object(driver, "_run") as run:
            driver._after_upsert("test", {"id": 42, "name": "Peach"})

        run.assert_called_once()
        sql, params = run.call_args.args
        assert "setval(pg_get_serial_sequence(%s, %s)" in sql
        assert 'SELECT MAX("id") FROM "test"' in sql
        assert params == ['"test"', "id"]

    def test_string_id_skipped(self):
        driver = PostgresDriver()
        with patch.object(driver, "_run") as run:
            driver._after_upsert("test", {"id": "abc"})
        run.assert_not_called()

    def test_bool_id_skipped(self):
        driver = PostgresDriver()
        with patch.object(driver, "_run") as run:
            driver._after_upsert("test", {"id": True})
        run.assert_not_called()


@pytest.mark.tier2
class TestConnectionState:
    """Tests that need no psycopg import."""

    def test_conn_requires_open(self):
        with pytest.raises(BackendError, match="not open"):
            PostgresDriver().conn

    def test_close_without_open(self):
        PostgresDriver().close()


# =============================================================================
# Mocked Connection Tests
# =============================================================================


@pytest.mark.tier2
@pytest.mark.skipif(not POSTGRES_DEPS_AVAILABLE, reason=SKIP_POSTGRES_REASON)
class TestMockedConnection:
    """Statement execution against a mocked psycopg connection."""

    @pytest.fixture
    def driver(self):
        driver = PostgresDriver()
        driver._conn = MagicMock()
        return driver

    def test_run_reads_returned_id(self, driver):
        cursor = driver._conn.execute.return_value
        cursor.description = [("id",)]
        cursor.fetchone.return_value = {"id": 3}
        cursor.rowcount = 1

        result = driver._run('INSERT INTO "t" ("__jsondata") VALUES (%s) RETURNING "id"', ["{}"])

        assert result == ExecResult(rowcount=1, last_id=3)
        driver._conn.execute.assert_called_once_with(
            'INSERT INTO "t" ("__jsondata") VALUES (%s) RETURNING "id"', ("{}",)
        )

    def test_run_without_rows(self, driver):
        cursor = driver._conn.execute.return_value
        cursor.description = None
        cursor.rowcount = -1

        result = driver._run("BEGIN")

        assert result.last_id is None
        driver._conn.execute.assert_called_once_with("BEGIN", None)

    def test_run_wraps_psycopg_errors(self, driver):
        import psycopg

        driver._conn.execute.side_effect = psycopg.Error("boom")

        with pytest.raises(BackendError) as exc_info:
            driver._run('DROP TABLE "t"')
        assert exc_info.value.statement == 'DROP TABLE "t"'

    def test_fetch_returns_rows(self, driver):
        driver._conn.execute.return_value.fetchall.return_value = [{"data": '{"keys": ["id"]}'}]

        rows = driver._fetch('SELECT "data" FROM "__meta"')

        assert rows == [{"data": '{"keys": ["id"]}'}]

    def test_metadata_missing(self, driver):
        driver._conn.execute.return_value.fetchall.return_value = []

        result = driver.get_metadata("ghost")

        assert isinstance(result.error, StoreNotFoundError)
        sql, params = driver._conn.execute.call_args.args
        assert sql.endswith('WHERE "store" = %s')
        assert params == ("ghost",)

    def test_connect_failure(self):
        import psycopg

        from jsonstore.config import JSONStoreConfig

        config = JSONStoreConfig(backend="postgres", connection_string="postgresql://nowhere/db")
        with patch.object(psycopg, "connect", side_effect=psycopg.OperationalError("refused")):
            with pytest.raises(BackendError, match="Could not connect"):
                PostgresDriver().open(config)


# =============================================================================
# Live Server Tests
# =============================================================================


@pytest.mark.integration
@pytest.mark.skipif(not POSTGRES_DEPS_AVAILABLE, reason=SKIP_POSTGRES_REASON)
@pytest.mark.skipif(not POSTGRES_URL, reason=SKIP_POSTGRES_SERVER_REASON)
class TestLiveServer:
    """Round trips against a real PostgreSQL server."""

    @pytest.fixture
    def pg(self):
        name = f"test_{uuid.uuid4().hex[:8]}"
        store = JSONStore({"backend": "postgres", "connection_string": POSTGRES_URL})
        store.create_store(name, {"name": "string", "age": "number"}).result().unwrap()
        yield store, name
        store.delete_store(name).result()
        store.close()

    def test_round_trip(self, pg):
        store, name = pg
        saved = store.save(name, {"name": "Mario", "age": 26}).result().unwrap()

        assert isinstance(saved["id"], int)
        assert store.get(name, saved["id"]).result().unwrap() == [saved]

    def test_explicit_then_generated_ids(self, pg):
        store, name = pg
        store.save(name, {"id": 10, "name": "Peach"}).result().unwrap()
        generated = store.save(name, {"name": "Toad"}).result().unwrap()

        assert generated["id"] > 10

    def test_upsert_and_criteria(self, pg):
        store, name = pg
        store.save(name, {"id": 1, "name": "Luigi", "age": 24}).result().unwrap()
        store.save(name, {"id": 1, "name": "Luigi", "age": 25}).result().unwrap()

        found = store.get(name, {"where": "age", ">": 24}).result().unwrap()
        assert found == [{"id": 1, "name": "Luigi", "age": 25}]

    def test_stream_and_delete(self, pg):
        store, name = pg
        store.save_many(name, [{"name": "Mario"}, {"name": "Bowser"}]).result().unwrap()

        flags = []
        count = store.stream(name, lambda r, last, i: flags.append(last)).result().unwrap()

        assert count == 2
        assert flags == [False, True]
        assert store.delete(name).result().unwrap() == 2
