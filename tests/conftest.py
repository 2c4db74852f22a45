"""Shared test fixtures for relmeta."""

import os
from collections.abc import Generator

import pytest
from bookstore import ALL_RECORDS, SCHEMA
from sqlalchemy import Engine, create_engine

from relmeta import (
    EntityRegistry,
    JoinTableSynchronizer,
    QueryBuilder,
    StatementExecutor,
    close_default_registry,
    get_dialect,
)


def _psycopg_available() -> bool:
    """Check if psycopg is installed."""
    try:
        import psycopg  # noqa: F401

        return True
    except ImportError:
        return False


@pytest.fixture
def registry() -> EntityRegistry:
    """Registry with every bookstore record parsed."""
    reg = EntityRegistry()
    reg.parse_all(*ALL_RECORDS)
    return reg


@pytest.fixture
def builder(registry: EntityRegistry) -> QueryBuilder:
    return QueryBuilder(registry, get_dialect("sqlite"))


@pytest.fixture
def synchronizer(registry: EntityRegistry) -> JoinTableSynchronizer:
    return JoinTableSynchronizer(registry, get_dialect("sqlite"))


@pytest.fixture
def memory_engine() -> Generator[Engine, None, None]:
    """In-memory SQLite engine with the bookstore tables created."""
    engine = create_engine("sqlite:///:memory:")
    with engine.begin() as conn:
        for ddl in SCHEMA:
            conn.exec_driver_sql(ddl)
    yield engine
    engine.dispose()


@pytest.fixture
def executor(registry: EntityRegistry, memory_engine: Engine) -> StatementExecutor:
    return StatementExecutor(registry, memory_engine, get_dialect("sqlite"))


@pytest.fixture(autouse=True)
def _reset_default_registry() -> Generator[None, None, None]:
    """Keep the process wide registry from leaking between tests."""
    yield
    close_default_registry()


@pytest.fixture
def postgresql_url() -> str:
    """PostgreSQL URL from TEST_DATABASE_URL; skips when unset or psycopg is missing."""
    url = os.environ.get("TEST_DATABASE_URL")
    if not url:
        pytest.skip("TEST_DATABASE_URL not set")
    if not _psycopg_available():
        pytest.skip("psycopg not installed")
    return url
