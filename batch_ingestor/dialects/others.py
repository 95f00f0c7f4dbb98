"""
Dialects for the remaining database families.

They only differ in identifier quoting, placeholder syntax and the bound
parameter ceiling.
"""

from __future__ import annotations

from batch_ingestor.dialects.abstract import SqlDialect


class GenericSqlDialect(SqlDialect):
    """ANSI quoting with named ``:pN`` placeholders."""

    name = "generic"
    max_parameters = 32767

    def parameter_name(self, index: int) -> str:
        return f":p{index}"


class MySqlDialect(SqlDialect):
    name = "mysql"
    quote_chars = ("`", "`")
    max_parameters = 32767
    escape_percent = True

    def parameter_name(self, index: int) -> str:
        return "%s"


class SqlServerDialect(SqlDialect):
    """SQL Server through ODBC (``?`` markers); hard limit of 2100 parameters."""

    name = "sqlserver"
    quote_chars = ("[", "]")
    max_parameters = 2100

    def parameter_name(self, index: int) -> str:
        return "?"


class AzureSqlDialect(SqlServerDialect):
    name = "azuresql"


class SqliteDialect(SqlDialect):
    # SQLITE_MAX_VARIABLE_NUMBER default since 3.32
    name = "sqlite"
    max_parameters = 32766

    def parameter_name(self, index: int) -> str:
        return "?"


__all__ = [
    "AzureSqlDialect",
    "GenericSqlDialect",
    "MySqlDialect",
    "SqlServerDialect",
    "SqliteDialect",
]
