"""A small wide-column store interface with an in-memory implementation."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass

Families = Mapping[str, "Iterable[str] | None"]
Values = Mapping[str, Mapping[str, "bytes | str"]]


class StoreError(Exception):
    """Raised when a store request cannot be carried out."""


@dataclass(frozen=True)
class Cell:
    """One stored value: row key, column family, qualifier and bytes."""

    row: str
    family: str
    qualifier: str
    value: bytes


@dataclass(frozen=True)
class Result:
    """The cells of one row, ordered by family and qualifier."""

    cells: tuple[Cell, ...] = ()

    @property
    def row(self) -> str:
        """The row key, or an empty string for an empty result."""
        return self.cells[0].row if self.cells else ""

    def family_map(self) -> dict[str, dict[str, bytes]]:
        """The cells as ``{family: {qualifier: value}}``."""
        mapping: dict[str, dict[str, bytes]] = {}
        for cell in self.cells:
            mapping.setdefault(cell.family, {})[cell.qualifier] = cell.value
        return mapping


class HBaseClient(ABC):
    """Row-level access to tables of column families."""

    @abstractmethod
    def get(self, table: str, row: str, families: Families | None = None) -> Result:
        """Fetch one row; an absent row gives an empty result."""

    @abstractmethod
    def scan(
        self,
        table: str,
        start_row: str | None = None,
        stop_row: str | None = None,
        families: Families | None = None,
        limit: int | None = None,
    ) -> Iterator[Result]:
        """Iterate rows in key order from ``start_row`` up to, not including, ``stop_row``."""

    @abstractmethod
    def put(self, table: str, row: str, values: Values) -> None:
        """Write ``{family: {qualifier: value}}`` into ``row``."""


def _key(row: str) -> bytes:
    return row.encode("utf-8")


def _to_bytes(value: bytes | str) -> bytes:
    if isinstance(value, bytes):
        return value
    if isinstance(value, str):
        return value.encode("utf-8")
    raise TypeError(f"cell value must be bytes or str, not {type(value).__name__}")


class MemoryHBaseClient(HBaseClient):
    """An in-memory client over a fixed set of tables."""

    def __init__(self, tables: Iterable[str] = ()) -> None:
        self._tables: dict[str, dict[str, dict[str, dict[str, bytes]]]] = {
            name: {} for name in tables
        }
        self._lock = threading.RLock()

    def _table(self, name: str) -> dict[str, dict[str, dict[str, bytes]]]:
        try:
            return self._tables[name]
        except KeyError:
            raise StoreError(f"table not found: {name}") from None

    @staticmethod
    def _cells(
        row: str, data: Mapping[str, Mapping[str, bytes]], families: Families | None
    ) -> tuple[Cell, ...]:
        cells = []
        for family in sorted(data):
            if families is not None and family not in families:
                continue
            wanted = None if families is None else families[family]
            allowed = None if wanted is None else set(wanted)
            for qualifier in sorted(data[family]):
                if allowed is None or qualifier in allowed:
                    cells.append(Cell(row, family, qualifier, data[family][qualifier]))
        return tuple(cells)

    def get(self, table: str, row: str, families: Families | None = None) -> Result:
        with self._lock:
            data = self._table(table).get(row)
            if not data:
                return Result()
            return Result(self._cells(row, data, families))

    def scan(
        self,
        table: str,
        start_row: str | None = None,
        stop_row: str | None = None,
        families: Families | None = None,
        limit: int | None = None,
    ) -> Iterator[Result]:
        if limit is not None and limit <= 0:
            raise ValueError("limit must be positive")
        start = _key(start_row) if start_row else None
        stop = _key(stop_row) if stop_row else None
        results: list[Result] = []
        with self._lock:
            rows = self._table(table)
            for row in sorted(rows, key=_key):
                key = _key(row)
                if start is not None and key < start:
                    continue
                if stop is not None and key >= stop:
                    break
                cells = self._cells(row, rows[row], families)
                if not cells:
                    continue
                results.append(Result(cells))
                if limit is not None and len(results) >= limit:
                    break
        return iter(results)

    def put(self, table: str, row: str, values: Values) -> None:
        if not any(values.values()):
            raise StoreError("put carries no values")
        converted = {
            family: {qualifier: _to_bytes(value) for qualifier, value in columns.items()}
            for family, columns in values.items()
            if columns
        }
        with self._lock:
            stored = self._table(table).setdefault(row, {})
            for family, columns in converted.items():
                stored.setdefault(family, {}).update(columns)