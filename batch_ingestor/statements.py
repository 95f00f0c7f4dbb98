"""
Statement builder: sizes and renders parameterised INSERT statements.

A batch is split into consecutive chunks so that no statement binds more
parameters than the dialect allows. Parameters are laid out row-major to match
the placeholder order produced by ``render_multi_row_insert``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping, Sequence, Tuple

from batch_ingestor.dialects.abstract import Dialect
from batch_ingestor.exceptions import ColumnLimitError


@dataclass(frozen=True)
class Statement:
    """One rendered write command and the values bound to it."""

    sql: str
    params: Tuple[Any, ...]
    row_count: int


def max_rows_per_statement(dialect: Dialect, column_count: int) -> int:
    """
    Largest number of rows one statement can carry for ``column_count`` columns.

    Raises
    ------
    ColumnLimitError
        If there are no columns, or a single row already exceeds the ceiling.
    """
    if column_count <= 0 or column_count > dialect.max_parameters:
        raise ColumnLimitError(column_count, dialect.max_parameters)
    return max(1, dialect.max_parameters // column_count)


def build_statements(
    dialect: Dialect,
    table: str,
    columns: Sequence[str],
    rows: Sequence[Mapping[str, Any]],
) -> List[Statement]:
    """
    Render the statements needed to insert ``rows`` into ``table``.

    Values missing from a row's mapping are bound as ``None`` (SQL NULL).
    Returns an empty list for an empty ``rows`` sequence.
    """
    if not rows:
        return []

    per_statement = min(len(rows), max_rows_per_statement(dialect, len(columns)))
    statements: List[Statement] = []
    for start in range(0, len(rows), per_statement):
        chunk = rows[start : start + per_statement]
        sql = dialect.render_multi_row_insert(table, columns, len(chunk))
        params = tuple(row.get(column) for row in chunk for column in columns)
        statements.append(Statement(sql=sql, params=params, row_count=len(chunk)))
    return statements


__all__ = ["Statement", "build_statements", "max_rows_per_statement"]
