"""
Pytest configuration for the batch ingestor.

Provides fixtures for:
- In-memory fake connections/factories used by the unit tests
- Settings override and database availability for integration tests
"""

from __future__ import annotations

import asyncio
import os
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, AsyncIterator, Callable, Optional, Sequence

import psycopg
import pytest

from batch_ingestor.config import Settings, build_dsn


class FakeTransaction(AbstractAsyncContextManager["FakeTransaction"]):
    """Buffers statements and commits them to the factory on clean exit."""

    def __init__(self, conn: "FakeConnection") -> None:
        self._conn = conn

    async def __aenter__(self) -> "FakeTransaction":
        self._conn.in_transaction = True
        self._conn.factory.transactions += 1
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        del tb
        self._conn.in_transaction = False
        if exc_type is None:
            self._conn.factory.committed.extend(self._conn.pending)
        else:
            self._conn.factory.rollbacks += 1
        self._conn.pending = []
        return False


class FakeConnection:
    def __init__(self, factory: "FakeConnectionFactory") -> None:
        self.factory = factory
        self.in_transaction = False
        self.pending: list[tuple[str, tuple[Any, ...]]] = []

    def transaction(self) -> FakeTransaction:
        return FakeTransaction(self)

    async def execute(self, sql: str, params: Sequence[Any]) -> str:
        factory = self.factory
        factory.execute_calls += 1
        if factory.delay:
            await asyncio.sleep(factory.delay)
        if factory.fail is not None:
            error = factory.fail(sql, tuple(params))
            if error is not None:
                raise error
        statement = (sql, tuple(params))
        if self.in_transaction:
            self.pending.append(statement)
        else:
            self.factory.committed.append(statement)
        return "INSERT"


class FakeConnectionFactory:
    """
    Connection factory recording every statement that reached "the database".

    Parameters
    ----------
    delay : float
        Seconds each ``execute`` takes.
    fail : callable, optional
        Called with ``(sql, params)`` on every execute; a returned exception is raised.
    """

    def __init__(
        self,
        delay: float = 0.0,
        fail: Optional[Callable[[str, tuple[Any, ...]], Optional[BaseException]]] = None,
    ) -> None:
        self.delay = delay
        self.fail = fail
        self.committed: list[tuple[str, tuple[Any, ...]]] = []
        self.transactions = 0
        self.rollbacks = 0
        self.connections_opened = 0
        self.active = 0
        self.max_active = 0
        self.execute_calls = 0

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[FakeConnection]:
        self.connections_opened += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            yield FakeConnection(self)
        finally:
            self.active -= 1

    def committed_ids(self) -> list[Any]:
        """First column of every committed row, for two-column ``id, name`` records."""
        return [value for _, params in self.committed for value in params[0::2]]


@pytest.fixture
def fake_factory() -> Callable[..., FakeConnectionFactory]:
    """Build ``FakeConnectionFactory`` instances with per-test behaviour."""

    def _make(**kwargs: Any) -> FakeConnectionFactory:
        return FakeConnectionFactory(**kwargs)

    return _make


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
        db_name=os.getenv("DB_NAME", "ingest"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return build_dsn(test_settings)


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            conn.execute("SELECT 1;").fetchone()
        return True
    except psycopg.Error:
        return False
