"""
Abstract SQL dialect interface for the batch ingestor.

A dialect is a stateless strategy that answers four questions for one database
family: how to quote an identifier, what parameter N is called, how many bound
parameters one statement may carry, and how an N-row multi-value INSERT is
written. Concrete dialects usually only set the three class attributes below.
"""

from __future__ import annotations

import abc
from typing import Protocol, Sequence, runtime_checkable


@runtime_checkable
class Dialect(Protocol):
    """
    Structural interface consumed by the statement builder.

    Attributes
    ----------
    name : str
        A short machine-friendly identifier.
    max_parameters : int
        Maximum number of bound parameters per statement.
    """

    name: str
    max_parameters: int

    def quote_identifier(self, identifier: str) -> str: ...

    def parameter_name(self, index: int) -> str: ...

    def render_multi_row_insert(
        self, table: str, columns: Sequence[str], row_count: int
    ) -> str: ...


class SqlDialect(abc.ABC):
    """
    Base class implementing quoting and INSERT rendering from a few attributes.

    Subclasses set ``name``, ``quote_chars`` (opening and closing quote),
    ``max_parameters`` and implement ``parameter_name``. Dialects whose driver
    uses ``%s`` placeholders set ``escape_percent`` so a literal ``%`` in an
    identifier is doubled.
    """

    name: str
    quote_chars: tuple[str, str] = ('"', '"')
    max_parameters: int = 32767
    escape_percent: bool = False

    def quote_identifier(self, identifier: str) -> str:
        """
        Quote an identifier, treating dots as schema separators.

        Embedded closing-quote characters are doubled, as is ``%`` when
        ``escape_percent`` is set.
        """
        opening, closing = self.quote_chars
        quoted = []
        for part in identifier.split("."):
            part = part.replace(closing, closing * 2)
            if self.escape_percent:
                part = part.replace("%", "%%")
            quoted.append(f"{opening}{part}{closing}")
        return ".".join(quoted)

    @abc.abstractmethod
    def parameter_name(self, index: int) -> str:
        """Placeholder for the zero-based parameter ``index``."""
        raise NotImplementedError

    def render_multi_row_insert(self, table: str, columns: Sequence[str], row_count: int) -> str:
        if not table or not table.strip():
            raise ValueError("Table name cannot be empty.")
        if not columns:
            raise ValueError("Columns list cannot be empty.")
        if row_count <= 0:
            raise ValueError("Row count must be greater than 0.")

        quoted_table = self.quote_identifier(table)
        quoted_columns = ", ".join(self.quote_identifier(column) for column in columns)
        width = len(columns)
        values = ", ".join(
            "(" + ", ".join(self.parameter_name(row * width + col) for col in range(width)) + ")"
            for row in range(row_count)
        )
        return f"INSERT INTO {quoted_table} ({quoted_columns}) VALUES {values}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(max_parameters={self.max_parameters})"


__all__ = ["Dialect", "SqlDialect"]
