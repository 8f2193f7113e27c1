# tests/conftest.py
"""
Shared fixtures for jsonstore tests.

Test Tiers:
===========
- tier1: Pure logic tests - criteria compilation, schema planning (<5s)
         Run: pytest -m tier1
- tier2: Real SQLite databases and mocked PostgreSQL connections
         Run: pytest -m "tier1 or tier2"

Feature Markers:
- postgres: PostgreSQL-specific tests
- integration: Tests requiring a running PostgreSQL server, enabled by
  setting JSONSTORE_TEST_POSTGRES_URL
"""

from __future__ import annotations

import os

import pytest

from jsonstore import JSONStore

# =============================================================================
# Dependency Availability Checks
# =============================================================================


def postgres_deps_available() -> bool:
    """Check if the PostgreSQL driver dependency (psycopg) is available."""
    try:
        import psycopg  # noqa: F401

        return True
    except ImportError:
        return False


# Export for use in test files
POSTGRES_DEPS_AVAILABLE = postgres_deps_available()
SKIP_POSTGRES_REASON = "PostgreSQL dependencies (psycopg) not installed"

POSTGRES_URL = os.environ.get("JSONSTORE_TEST_POSTGRES_URL")
SKIP_POSTGRES_SERVER_REASON = "JSONSTORE_TEST_POSTGRES_URL not set"


# =============================================================================
# Store Fixtures
# =============================================================================

CHARACTERS = [
    {"name": "Mario", "age": 26, "job": "plumber"},
    {"name": "Luigi", "age": 24, "job": "plumber"},
    {"name": "Peach", "age": 22, "job": "princess"},
    {"name": "Toad", "age": 30, "job": "retainer"},
    {"name": "Bowser", "job": "king"},
]


@pytest.fixture
def db():
    """Fresh in-memory SQLite JSONStore, closed after the test."""
    store = JSONStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def people(db):
    """JSONStore with an empty "test" store keyed by id and name."""
    db.create_store("test", {"id": "number", "name": "string"}).result().unwrap()
    return db


@pytest.fixture
def characters(db):
    """JSONStore with a "chars" store holding the CHARACTERS documents."""
    db.create_store("chars", {"name": "string", "age": "number"}).result().unwrap()
    documents = [dict(c) for c in CHARACTERS]
    db.save_many("chars", documents).result().unwrap()
    return db
