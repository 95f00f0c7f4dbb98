from __future__ import annotations

import pytest

from batch_ingestor.dialects import (
    AsyncpgDialect,
    AzureSqlDialect,
    Dialect,
    GenericSqlDialect,
    MySqlDialect,
    PostgresDialect,
    SqliteDialect,
    SqlServerDialect,
    available_dialects,
    get_dialect,
)

EXPECTED_DIALECTS = ["asyncpg", "azuresql", "generic", "mysql", "postgres", "sqlite", "sqlserver"]


def test_registry_lists_builtin_dialects_sorted() -> None:
    assert available_dialects() == EXPECTED_DIALECTS


@pytest.mark.parametrize("name", EXPECTED_DIALECTS)
def test_every_registered_dialect_satisfies_protocol(name: str) -> None:
    dialect = get_dialect(name)

    assert isinstance(dialect, Dialect)
    assert dialect.name == name
    assert dialect.max_parameters > 0


def test_get_dialect_normalizes_name() -> None:
    assert isinstance(get_dialect("  Postgres "), PostgresDialect)


def test_get_dialect_rejects_unknown_names() -> None:
    with pytest.raises(ValueError, match="Unknown dialect 'oracle'"):
        get_dialect("oracle")


@pytest.mark.parametrize(
    ("dialect", "expected"),
    [
        (PostgresDialect(), '"public"."orders"'),
        (GenericSqlDialect(), '"public"."orders"'),
        (MySqlDialect(), "`public`.`orders`"),
        (SqlServerDialect(), "[public].[orders]"),
    ],
)
def test_schema_qualified_identifiers_are_quoted_per_part(dialect, expected: str) -> None:
    assert dialect.quote_identifier("public.orders") == expected


def test_embedded_quote_characters_are_doubled() -> None:
    assert PostgresDialect().quote_identifier('we"ird') == '"we""ird"'
    assert SqlServerDialect().quote_identifier("a]b") == "[a]]b]"
    assert MySqlDialect().quote_identifier("a`b") == "`a``b`"


@pytest.mark.parametrize(
    ("dialect", "expected_values"),
    [
        (PostgresDialect(), "(%s, %s), (%s, %s)"),
        (AsyncpgDialect(), "($1, $2), ($3, $4)"),
        (GenericSqlDialect(), "(:p0, :p1), (:p2, :p3)"),
        (SqliteDialect(), "(?, ?), (?, ?)"),
    ],
)
def test_multi_row_insert_numbers_placeholders_row_major(dialect, expected_values: str) -> None:
    sql = dialect.render_multi_row_insert("t", ["a", "b"], 2)

    assert sql.endswith(f"VALUES {expected_values}")


def test_parameter_limits() -> None:
    assert PostgresDialect().max_parameters == 32767
    assert SqlServerDialect().max_parameters == 2100
    assert AzureSqlDialect().max_parameters == 2100
    assert AzureSqlDialect().quote_identifier("x") == "[x]"


@pytest.mark.parametrize(
    ("table", "columns", "row_count"),
    [("", ["a"], 1), ("  ", ["a"], 1), ("t", [], 1), ("t", ["a"], 0)],
)
def test_render_rejects_invalid_arguments(table: str, columns: list[str], row_count: int) -> None:
    with pytest.raises(ValueError):
        PostgresDialect().render_multi_row_insert(table, columns, row_count)


def test_percent_in_identifiers_is_escaped_for_percent_placeholder_dialects() -> None:
    sql = PostgresDialect().render_multi_row_insert("stats", ["rate%"], 1)

    assert sql == 'INSERT INTO "stats" ("rate%%") VALUES (%s)'
    assert MySqlDialect().quote_identifier("pct%.v") == "`pct%%`.`v`"


@pytest.mark.parametrize("dialect", [AsyncpgDialect(), SqlServerDialect(), SqliteDialect()])
def test_percent_in_identifiers_is_kept_for_other_dialects(dialect) -> None:
    assert "%%" not in dialect.quote_identifier("rate%")
