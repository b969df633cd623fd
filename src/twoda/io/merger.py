"""
Family merger with per-cell provenance.

Overview
- merge(scan, family) parses a family's members and folds them into one ResolvedTable.
- merge_tables(name, base, variants) is the pure fold over already-parsed tables.

Algorithm
1. The base table seeds columns and rows; every base cell (Empty included) is attributed to
   the base file.
2. Variants are folded in alphabetical suffix order:
   a. Columns not yet present are appended. Rows that predate a new column get Empty,
      attributed to the file that introduced the row.
   b. A new row id is appended; its non-empty cells (and the empty cells it spells out) are
      attributed to the variant, columns it lacks are Empty attributed to the base file.
   c. For an existing row id, a non-empty variant cell overrides value and provenance; an
      empty variant cell leaves the prior value and provenance untouched.
3. Rows keep first-appearance order: base rows in file order, then new rows in fold order.

Notes
- ResolvedTable is immutable. Merging again produces a new, independent value.
- Provenance always names a member of the merged family.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

import polars as pl

from twoda.core.cells import EMPTY, CellValue, Empty, Float, Integer, String, is_empty
from twoda.core.errors import MissingBaseFile, UnknownColumn, UnknownRow
from twoda.core.hashing import fingerprint
from twoda.core.table import Table

from .logging import get_logger
from .scanner import ScanResult

__all__ = [
    "ResolvedCell",
    "Explanation",
    "ResolvedTable",
    "merge_tables",
    "merge",
    "PROVENANCE_PREFIX",
]

log = get_logger(__name__)

# Column-name prefix of the provenance columns in frame/parquet views.
PROVENANCE_PREFIX = "__source__"


@dataclass(frozen=True, slots=True)
class ResolvedCell:
    """
    A merged cell value and the file supplying it.

    Attributes:
        value (CellValue): Effective value.
        source (str): Path of the member file the value comes from.
    """

    value: CellValue
    source: str

    @property
    def text(self) -> str:
        return self.value.to_text()

    def __iter__(self) -> Iterator[Any]:
        yield self.value
        yield self.source


@dataclass(frozen=True)
class Explanation:
    """
    Why a cell has its value.

    Attributes:
        row_id (int): Row id.
        column (str): Column name.
        value (CellValue): Effective value.
        source (str): Winning file.
        sources (tuple[str, ...]): Every contributing file of the family, in merge order.
    """

    row_id: int
    column: str
    value: CellValue
    source: str
    sources: tuple[str, ...]

    def ranked(self) -> list[tuple[str, bool]]:
        """(path, is_winner) per contributing file, in merge order."""
        return [(s, s == self.source) for s in self.sources]


def _cell_json(value: CellValue) -> Any:
    if isinstance(value, Empty):
        return None
    return value.value


def _cell_type(value: CellValue) -> str:
    if isinstance(value, Integer):
        return "integer"
    if isinstance(value, Float):
        return "float"
    if isinstance(value, String):
        return "string"
    return "empty"


@dataclass(frozen=True)
class ResolvedTable:
    """
    Merged view of one family.

    Attributes:
        family (str): Family name.
        columns (tuple[str, ...]): Column union in insertion order.
        row_ids (tuple[int, ...]): Row ids in first-appearance order.
        cells (tuple[tuple[ResolvedCell, ...], ...]): One tuple per row, aligned with columns.
        sources (tuple[str, ...]): Contributing files in merge order (base, then variants).

    Examples:
        >>> from twoda.io.parser import parse
        >>> base = parse(b"id,name\\n0,A\\n", "t.csv")
        >>> rt = merge_tables("t", base, [])
        >>> rt.value_at(0, "name").to_text(), rt.provenance(0, "name")
        ('A', 't.csv')
    """

    family: str
    columns: tuple[str, ...]
    row_ids: tuple[int, ...]
    cells: tuple[tuple[ResolvedCell, ...], ...]
    sources: tuple[str, ...]
    _row_pos: dict[int, int] = field(init=False, repr=False, compare=False)
    _col_pos: dict[str, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_row_pos", {rid: i for i, rid in enumerate(self.row_ids)})
        object.__setattr__(self, "_col_pos", {name: i for i, name in enumerate(self.columns)})

    # ---------------------------------------------------------------------
    # Shape and positional access
    # ---------------------------------------------------------------------
    @property
    def column_count(self) -> int:
        return len(self.columns)

    @property
    def row_count(self) -> int:
        return len(self.row_ids)

    def row_id(self, row_index: int) -> int:
        """Row id at a position. Raises IndexError when out of range."""
        if not 0 <= row_index < len(self.row_ids):
            raise IndexError(f"row index {row_index} out of range (0..{len(self.row_ids) - 1})")
        return self.row_ids[row_index]

    def cell(self, row_index: int, col_index: int) -> ResolvedCell:
        """Resolved cell at a position. Raises IndexError when out of range."""
        if not 0 <= col_index < len(self.columns):
            raise IndexError(f"column index {col_index} out of range (0..{len(self.columns) - 1})")
        self.row_id(row_index)
        return self.cells[row_index][col_index]

    # ---------------------------------------------------------------------
    # Keyed access
    # ---------------------------------------------------------------------
    def has_row(self, row_id: int) -> bool:
        return row_id in self._row_pos

    def has_column(self, name: str) -> bool:
        return name in self._col_pos

    def find_row_index(self, row_id: int) -> int | None:
        return self._row_pos.get(row_id)

    def column_index(self, name: str) -> int:
        try:
            return self._col_pos[name]
        except KeyError:
            raise UnknownColumn(name) from None

    def resolved(self, row_id: int, column: str) -> ResolvedCell:
        """
        Resolved cell by row id and column name.

        Raises:
            UnknownRow: If row_id is not in the table.
            UnknownColumn: If column is not in the table.
        """
        col = self.column_index(column)
        pos = self._row_pos.get(row_id)
        if pos is None:
            raise UnknownRow(row_id)
        return self.cells[pos][col]

    def value_at(self, row_id: int, column: str) -> CellValue:
        return self.resolved(row_id, column).value

    def provenance(self, row_id: int, column: str) -> str:
        return self.resolved(row_id, column).source

    def explain(self, row_id: int, column: str) -> Explanation:
        cell = self.resolved(row_id, column)
        return Explanation(row_id, column, cell.value, cell.source, self.sources)

    # ---------------------------------------------------------------------
    # Views
    # ---------------------------------------------------------------------
    def filter_rows(self, column: str, pattern: str) -> list[int]:
        """
        Row indices whose cell text in column contains pattern (case-insensitive).

        Raises:
            UnknownColumn: If column is not in the table.
        """
        col = self.column_index(column)
        needle = pattern.lower()
        return [i for i, row in enumerate(self.cells) if needle in row[col].text.lower()]

    def head(self, limit: int | None = None, columns: Sequence[str] | None = None) -> list[list[str]]:
        """
        Cell text for display: the first `limit` rows restricted to `columns`.

        Raises:
            UnknownColumn: If a requested column is not in the table.
        """
        idx = [self.column_index(c) for c in columns] if columns else list(range(len(self.columns)))
        rows = self.cells if limit is None else self.cells[: max(limit, 0)]
        return [[row[i].text for i in idx] for row in rows]

    def to_frame(self, *, with_provenance: bool = False) -> pl.DataFrame:
        """
        Polars view of the merged values as text (Empty → null).

        Args:
            with_provenance (bool): Append a `__source__<column>` column per data column.

        Returns:
            pl.DataFrame: One Utf8 column per merged column, in order.
        """
        data: dict[str, list[str | None]] = {}
        for j, name in enumerate(self.columns):
            data[name] = [None if is_empty(row[j].value) else row[j].text for row in self.cells]
        if with_provenance:
            for j, name in enumerate(self.columns):
                data[PROVENANCE_PREFIX + name] = [row[j].source for row in self.cells]
        schema = {name: pl.Utf8 for name in data}
        return pl.DataFrame(data, schema=schema)

    def to_json_obj(self) -> dict[str, Any]:
        """JSON-ready dict: family, columns, sources, and rows of {value, type, source} cells."""
        return {
            "family": self.family,
            "columns": list(self.columns),
            "sources": list(self.sources),
            "rows": [
                {
                    "row_id": rid,
                    "cells": {
                        name: {
                            "value": _cell_json(cell.value),
                            "type": _cell_type(cell.value),
                            "source": cell.source,
                        }
                        for name, cell in zip(self.columns, row, strict=True)
                    },
                }
                for rid, row in zip(self.row_ids, self.cells, strict=True)
            ],
        }

    def fingerprint(self) -> str:
        """SHA-256 over canonical JSON of the full content and provenance."""
        return fingerprint(self.to_json_obj())


def merge_tables(family: str, base: Table, variants: Iterable[Table]) -> ResolvedTable:
    """
    Fold variant tables over a base table.

    Args:
        family (str): Family name recorded on the result.
        base (Table): Parsed base file.
        variants (Iterable[Table]): Parsed variants, already in merge order.

    Returns:
        ResolvedTable: Merged values with provenance.
    """
    columns: list[str] = list(base.column_names)
    col_pos: dict[str, int] = {name: i for i, name in enumerate(columns)}
    order: list[int] = []
    rows: dict[int, list[ResolvedCell]] = {}
    introduced_by: dict[int, str] = {}
    sources: list[str] = [base.source]

    for row in base.rows:
        order.append(row.row_id)
        introduced_by[row.row_id] = base.source
        rows[row.row_id] = [ResolvedCell(row.get(i), base.source) for i in range(len(columns))]

    for table in variants:
        sources.append(table.source)
        for name in table.column_names:
            if name in col_pos:
                continue
            col_pos[name] = len(columns)
            columns.append(name)
            for rid in order:
                rows[rid].append(ResolvedCell(EMPTY, introduced_by[rid]))

        mapping = [(c.index, col_pos[c.name]) for c in table.columns]
        for row in table.rows:
            existing = rows.get(row.row_id)
            if existing is None:
                fresh = [ResolvedCell(EMPTY, base.source) for _ in columns]
                for src_idx, dst_idx in mapping:
                    fresh[dst_idx] = ResolvedCell(row.get(src_idx), table.source)
                order.append(row.row_id)
                introduced_by[row.row_id] = table.source
                rows[row.row_id] = fresh
                continue
            for src_idx, dst_idx in mapping:
                value = row.get(src_idx)
                if not is_empty(value):
                    existing[dst_idx] = ResolvedCell(value, table.source)

    return ResolvedTable(
        family=family,
        columns=tuple(columns),
        row_ids=tuple(order),
        cells=tuple(tuple(rows[rid]) for rid in order),
        sources=tuple(sources),
    )


def merge(scan: ScanResult, family: str) -> ResolvedTable:
    """
    Merge one family from a scan result.

    Args:
        scan (ScanResult): Result of twoda.io.scanner.scan.
        family (str): Family name.

    Returns:
        ResolvedTable

    Raises:
        UnknownFamily: If the family is not in the scan.
        MissingBaseFile: If the family has variants but no base file.
        ParseError: If any member file is malformed.
        IoError: If any member file cannot be read.
    """
    fam = scan.family(family)
    base = fam.base
    if base is None:
        raise MissingBaseFile(family)
    base_table = scan.table_for(base)
    variant_tables = [scan.table_for(v) for v in fam.variants]
    result = merge_tables(fam.name, base_table, variant_tables)
    log.debug(
        "merge_finished",
        family=fam.name,
        rows=result.row_count,
        columns=result.column_count,
        sources=len(result.sources),
    )
    return result
