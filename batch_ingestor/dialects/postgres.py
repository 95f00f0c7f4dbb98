"""
PostgreSQL dialects.

``PostgresDialect`` targets psycopg (``%s`` placeholders); ``AsyncpgDialect``
targets asyncpg, which only understands numbered ``$n`` placeholders.
"""

from __future__ import annotations

from batch_ingestor.dialects.abstract import SqlDialect


class PostgresDialect(SqlDialect):
    """psycopg / libpq positional placeholders."""

    name = "postgres"
    max_parameters = 32767
    escape_percent = True

    def parameter_name(self, index: int) -> str:
        return "%s"


class AsyncpgDialect(SqlDialect):
    """asyncpg numbered placeholders (``$1`` for index 0)."""

    name = "asyncpg"
    max_parameters = 32767

    def parameter_name(self, index: int) -> str:
        return f"${index + 1}"


__all__ = ["AsyncpgDialect", "PostgresDialect"]
