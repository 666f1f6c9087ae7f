"""
Pytest configuration for changeset_history.

Provides fixtures for:
- Settings and DSN for integration tests
- Database availability probing
- A manual clock and in-memory store wiring for unit tests
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Generator

import psycopg
import pytest

from changeset_history.capture import ChangeCapture
from changeset_history.config import Settings
from changeset_history.reconstructor import Reconstructor
from changeset_history.registry import ChangesetRegistry
from changeset_history.store.memory import InMemoryChangeStore
from changeset_history.tables import TableRegistry

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "changeset_history"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return (
        f"postgresql://{test_settings.db_user}:{test_settings.db_password}"
        f"@{test_settings.db_host}:{test_settings.db_port}/{test_settings.db_name}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped autocommit connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn, autocommit=True)
    try:
        yield conn
    finally:
        conn.close()


class ManualClock:
    """Clock returning a fixed time until moved explicitly."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@dataclass
class MemoryWiring:
    clock: ManualClock
    store: InMemoryChangeStore
    tables: TableRegistry
    registry: ChangesetRegistry
    capture: ChangeCapture
    reconstructor: Reconstructor


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def wiring(clock: ManualClock) -> MemoryWiring:
    """In-memory store, registries, capture hook and reconstructor sharing one clock."""
    store = InMemoryChangeStore(clock=clock)
    tables = TableRegistry()
    return MemoryWiring(
        clock=clock,
        store=store,
        tables=tables,
        registry=ChangesetRegistry(store),
        capture=ChangeCapture(store, tables),
        reconstructor=Reconstructor(store, tables),
    )
