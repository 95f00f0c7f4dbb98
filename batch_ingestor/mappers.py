"""
Row mappers: turn application records into ordered column/value mappings.

The pipeline takes the column order from the first mapped row of each batch, so
a mapper must produce the same keys, in the same order, for every record of a
run.
"""

from __future__ import annotations

from typing import Any, Callable, Generic, List, Mapping, Optional, Protocol, Sequence, TypeVar

from pydantic import BaseModel

T = TypeVar("T")
T_contra = TypeVar("T_contra", contravariant=True)
M = TypeVar("M", bound=BaseModel)


class RowMapper(Protocol[T_contra]):
    """Interface the pipeline uses to map records."""

    def map(self, record: T_contra) -> Mapping[str, Any]: ...

    def columns(self) -> Sequence[str]: ...


class DefaultRowMapper(Generic[T]):
    """
    Mapper backed by a plain function.

    ``columns()`` is empty until the first record has been mapped, then returns
    the keys of that first mapping.
    """

    def __init__(self, map_func: Callable[[T], Mapping[str, Any]]) -> None:
        if map_func is None:
            raise ValueError("map_func is required")
        self._map_func = map_func
        self._columns: Optional[List[str]] = None

    def map(self, record: T) -> Mapping[str, Any]:
        row = self._map_func(record)
        if self._columns is None:
            self._columns = list(row.keys())
        return row

    def columns(self) -> Sequence[str]:
        return list(self._columns or [])


class ModelRowMapper(Generic[M]):
    """
    Mapper for pydantic models: one column per model field, in declaration order.

    Parameters
    ----------
    model : type[BaseModel]
        Model class of the records.
    exclude : sequence of str, optional
        Fields left out of the INSERT (e.g. database-generated keys).
    by_alias : bool
        Use field aliases as column names.
    """

    def __init__(
        self,
        model: type[M],
        exclude: Sequence[str] = (),
        by_alias: bool = False,
    ) -> None:
        self._exclude = set(exclude)
        self._by_alias = by_alias
        self._columns = [
            (info.alias if by_alias and info.alias else name)
            for name, info in model.model_fields.items()
            if name not in self._exclude
        ]

    def map(self, record: M) -> Mapping[str, Any]:
        return record.model_dump(exclude=self._exclude, by_alias=self._by_alias)

    def columns(self) -> Sequence[str]:
        return list(self._columns)


__all__ = ["DefaultRowMapper", "ModelRowMapper", "RowMapper"]
