"""
Connection factories for the batch ingestor.

The pipeline opens one connection per batch attempt through a
``ConnectionFactory``: ``factory.connection()`` is an async context manager that
yields a ``TargetConnection`` and releases it on exit. Three factories are
provided:

- ``PsycopgConnectionFactory``: a dedicated ``psycopg.AsyncConnection`` per batch
- ``PooledConnectionFactory``: connections borrowed from a
  ``psycopg_pool.AsyncConnectionPool`` owned by the factory
- ``AsyncpgConnectionFactory``: a dedicated asyncpg connection per batch,
  adapted to the ``TargetConnection`` interface

All psycopg connections run in autocommit mode; per-batch atomicity comes from
``connection.transaction()`` blocks opened by the pipeline.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import (
    Any,
    AsyncContextManager,
    AsyncIterator,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

import asyncpg
import psycopg
from psycopg_pool import AsyncConnectionPool

from batch_ingestor.config import build_dsn
from batch_ingestor.utils.logging import get_logger

log = get_logger(__name__)


@runtime_checkable
class TargetConnection(Protocol):
    """What the pipeline needs from an open connection."""

    async def execute(self, sql: str, params: Sequence[Any]) -> Any: ...

    def transaction(self) -> AsyncContextManager[Any]: ...


@runtime_checkable
class ConnectionFactory(Protocol):
    """Source of connections; one ``connection()`` context per batch attempt."""

    def connection(self) -> AsyncContextManager[TargetConnection]: ...


def _timeout_options(statement_timeout_ms: int) -> Optional[str]:
    if statement_timeout_ms and statement_timeout_ms > 0:
        return f"-c statement_timeout={int(statement_timeout_ms)}"
    return None


class PsycopgConnectionFactory:
    """
    Open a dedicated psycopg async connection per batch.

    Parameters
    ----------
    dsn : str, optional
        Connection string. Defaults to the DSN composed from settings.
    statement_timeout_ms : int
        Server-side ``statement_timeout`` applied at connect time; 0 disables it.
    """

    def __init__(self, dsn: Optional[str] = None, statement_timeout_ms: int = 0) -> None:
        self._dsn = dsn or build_dsn()
        self.statement_timeout_ms = statement_timeout_ms

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[psycopg.AsyncConnection]:
        kwargs: dict[str, Any] = {"autocommit": True}
        options = _timeout_options(self.statement_timeout_ms)
        if options:
            kwargs["options"] = options
        conn = await psycopg.AsyncConnection.connect(self._dsn, **kwargs)
        try:
            yield conn
        finally:
            await conn.close()


class PooledConnectionFactory:
    """
    Borrow connections from a psycopg async pool.

    The pool is created lazily on first use and must be closed with ``close()``
    (or by using the factory as an async context manager).
    """

    def __init__(
        self,
        dsn: Optional[str] = None,
        min_size: int = 1,
        max_size: int = 10,
        statement_timeout_ms: int = 0,
    ) -> None:
        self._dsn = dsn or build_dsn()
        self.min_size = min_size
        self.max_size = max_size
        self.statement_timeout_ms = statement_timeout_ms
        self._pool: Optional[AsyncConnectionPool] = None
        # Concurrent first callers must not each open a pool
        self._pool_lock = asyncio.Lock()

    async def _get_pool(self) -> AsyncConnectionPool:
        if self._pool is not None:
            return self._pool
        async with self._pool_lock:
            if self._pool is None:
                kwargs: dict[str, Any] = {"autocommit": True}
                options = _timeout_options(self.statement_timeout_ms)
                if options:
                    kwargs["options"] = options
                pool = AsyncConnectionPool(
                    conninfo=self._dsn,
                    min_size=self.min_size,
                    max_size=self.max_size,
                    kwargs=kwargs,
                    open=False,
                )
                await pool.open()
                self._pool = pool
                log.debug(
                    "Connection pool opened",
                    extra={"min_size": self.min_size, "max_size": self.max_size},
                )
        return self._pool

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[psycopg.AsyncConnection]:
        pool = await self._get_pool()
        async with pool.connection() as conn:
            yield conn

    async def close(self) -> None:
        if self._pool is not None:
            pool, self._pool = self._pool, None
            await pool.close()

    async def __aenter__(self) -> "PooledConnectionFactory":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class _AsyncpgConnection:
    """Adapts an asyncpg connection to ``TargetConnection``."""

    def __init__(self, conn: asyncpg.Connection) -> None:
        self._conn = conn

    async def execute(self, sql: str, params: Sequence[Any]) -> str:
        return await self._conn.execute(sql, *params)

    def transaction(self) -> AsyncContextManager[Any]:
        return self._conn.transaction()


class AsyncpgConnectionFactory:
    """
    Open a dedicated asyncpg connection per batch.

    Pair with ``AsyncpgDialect`` so statements use ``$n`` placeholders.
    """

    def __init__(self, dsn: Optional[str] = None, command_timeout: Optional[float] = None) -> None:
        self._dsn = dsn or build_dsn()
        self.command_timeout = command_timeout

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[_AsyncpgConnection]:
        conn = await asyncpg.connect(self._dsn, command_timeout=self.command_timeout)
        try:
            yield _AsyncpgConnection(conn)
        finally:
            await conn.close()


__all__ = [
    "AsyncpgConnectionFactory",
    "ConnectionFactory",
    "PooledConnectionFactory",
    "PsycopgConnectionFactory",
    "TargetConnection",
]
