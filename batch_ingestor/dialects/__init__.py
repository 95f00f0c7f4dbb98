"""
Dialects package for the batch ingestor.

Re-exports the abstract interface, the built-in dialects and a small name-based
registry so callers (and the CLI) can resolve a dialect from configuration.
"""

from __future__ import annotations

from typing import Callable, Dict, List

from batch_ingestor.dialects.abstract import Dialect, SqlDialect
from batch_ingestor.dialects.others import (
    AzureSqlDialect,
    GenericSqlDialect,
    MySqlDialect,
    SqliteDialect,
    SqlServerDialect,
)
from batch_ingestor.dialects.postgres import AsyncpgDialect, PostgresDialect


def _dialect_factories() -> Dict[str, Callable[[], SqlDialect]]:
    """Registry of built-in dialects."""
    return {
        "generic": GenericSqlDialect,
        "postgres": PostgresDialect,
        "asyncpg": AsyncpgDialect,
        "mysql": MySqlDialect,
        "sqlserver": SqlServerDialect,
        "azuresql": AzureSqlDialect,
        "sqlite": SqliteDialect,
    }


def available_dialects() -> List[str]:
    """List available dialect names."""
    return sorted(_dialect_factories().keys())


def get_dialect(name: str) -> SqlDialect:
    factories = _dialect_factories()
    key = name.strip().lower()
    if key not in factories:
        raise ValueError(f"Unknown dialect '{name}'. Available: {', '.join(sorted(factories))}")
    return factories[key]()


__all__ = [
    # Abstracts
    "Dialect",
    "SqlDialect",
    # Concrete dialects
    "AsyncpgDialect",
    "AzureSqlDialect",
    "GenericSqlDialect",
    "MySqlDialect",
    "PostgresDialect",
    "SqlServerDialect",
    "SqliteDialect",
    # Registry
    "available_dialects",
    "get_dialect",
]
