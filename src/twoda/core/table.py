"""
Parsed single-file table model.

A Table is the Parser's output for one CSV file: ordered columns and ordered rows of typed
cells, each row keyed by its integer row id. Tables are immutable values; the Merger folds
several of them into a ResolvedTable (see twoda.io.merger).

Notes:
    - Zero-IO; stdlib only.
    - Row identity is by row id, never by position.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field

from .cells import EMPTY, CellValue
from .errors import UnknownColumn, UnknownRow

__all__ = [
    "Column",
    "Row",
    "Table",
]


@dataclass(frozen=True, slots=True)
class Column:
    """
    A named column at an ordinal position.

    Attributes:
        name (str): Header text, used as the column identity.
        index (int): 0-based position within its table.
    """

    name: str
    index: int


@dataclass(frozen=True, slots=True)
class Row:
    """
    One data row.

    Attributes:
        row_id (int): Value of the identity column.
        cells (tuple[CellValue, ...]): One cell per column, aligned with Table.columns.
    """

    row_id: int
    cells: tuple[CellValue, ...]

    def get(self, index: int) -> CellValue:
        if 0 <= index < len(self.cells):
            return self.cells[index]
        return EMPTY


@dataclass(frozen=True)
class Table:
    """
    Typed table parsed from one file.

    Attributes:
        source (str): Path (or label) the table was parsed from.
        columns (tuple[Column, ...]): Header columns in file order.
        rows (tuple[Row, ...]): Data rows in file order.

    Examples:
        >>> from twoda.core.cells import Integer
        >>> t = Table("t.csv", (Column("id", 0),), (Row(7, (Integer(7),)),))
        >>> t.find_row(7).row_id, t.column_names
        (7, ['id'])
    """

    source: str
    columns: tuple[Column, ...]
    rows: tuple[Row, ...]
    _by_id: dict[int, Row] = field(init=False, repr=False, compare=False)
    _by_name: dict[str, Column] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_by_id", {r.row_id: r for r in self.rows})
        object.__setattr__(self, "_by_name", {c.name: c for c in self.columns})

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    @property
    def column_count(self) -> int:
        return len(self.columns)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def has_column(self, name: str) -> bool:
        return name in self._by_name

    def column(self, name: str) -> Column:
        try:
            return self._by_name[name]
        except KeyError:
            raise UnknownColumn(name) from None

    def find_row(self, row_id: int) -> Row | None:
        return self._by_id.get(row_id)

    def row(self, row_id: int) -> Row:
        found = self._by_id.get(row_id)
        if found is None:
            raise UnknownRow(row_id)
        return found

    def value(self, row_id: int, column: str) -> CellValue:
        return self.row(row_id).get(self.column(column).index)

    def __iter__(self) -> Iterator[Row]:
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)
