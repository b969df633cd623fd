"""
CSV parser for 2DA table files.

Overview
- parse(): bytes → typed Table (header columns, rows of CellValue keyed by row id).
- read_raw(): bytes → RawTable (header and field text exactly as stored), used by the patch
  engine to rewrite individual cells without touching any other field.
- parse_file(): read a path and parse it.

Format
- UTF-8 (BOM tolerated) with a configurable fallback encoding; first record is the header.
- Standard CSV quoting: quoted fields may contain the delimiter, doubled quotes, and line
  breaks spanning physical lines. Fully blank lines are skipped.
- Every data record must have exactly as many fields as the header (ColumnCountMismatch).
- The identity column (first by default) must hold an integer, unique within the file.

Notes
- parse() and read_raw() are pure; only parse_file() touches the filesystem.
"""

from __future__ import annotations

import csv
import io
from collections.abc import Mapping
from dataclasses import dataclass, field

from twoda.core.cells import Integer, classify
from twoda.core.errors import (
    ColumnCountMismatch,
    DuplicateRowId,
    EmptyTable,
    InvalidRowId,
    MalformedCsv,
)
from twoda.core.table import Column, Row, Table

from .config import EngineSettings
from .errors import IoError
from .fs import read_bytes

__all__ = [
    "RawTable",
    "decode",
    "read_raw",
    "parse",
    "parse_file",
]

_BOM = b"\xef\xbb\xbf"


@dataclass
class RawTable:
    """
    Field text of one file exactly as stored, plus what is needed to write it back.

    Attributes:
        source (str): Path (or label) the bytes came from.
        header (list[str]): Header field text.
        records (list[list[str]]): Data records (blank lines dropped).
        encoding (str): Encoding the bytes were decoded with.
        bom (bool): Whether the original bytes started with a UTF-8 BOM.
        line_terminator (str): "\\r\\n" or "\\n", as detected in the source.
        trailing_newline (bool): Whether the source ended with a line terminator.
    """

    source: str
    header: list[str]
    records: list[list[str]]
    encoding: str
    bom: bool = False
    line_terminator: str = "\n"
    trailing_newline: bool = True
    _id_index: int = field(default=0, repr=False)

    def record_index(self) -> dict[int, int]:
        """Map row id → position in records. Assumes the table parsed cleanly."""
        out: dict[int, int] = {}
        for pos, rec in enumerate(self.records):
            cell = classify(rec[self._id_index])
            if isinstance(cell, Integer):
                out.setdefault(cell.value, pos)
        return out

    def set_cells(self, edits: Mapping[tuple[int, str], str]) -> int:
        """
        Overwrite cell text in place.

        Args:
            edits: (row_id, column name) → new text.

        Returns:
            int: Number of cells written.

        Notes:
            A column missing from this file is appended to the header (existing records get
            an empty field); a row missing from this file is appended as a new record with
            only its id and the edited cells filled in. Every other field keeps its text.
        """
        rows = self.record_index()
        cols = {name: i for i, name in enumerate(self.header)}
        n = 0
        for (row_id, column), text in edits.items():
            idx = cols.get(column)
            if idx is None:
                idx = len(self.header)
                self.header.append(column)
                for rec in self.records:
                    rec.append("")
                cols[column] = idx
            pos = rows.get(row_id)
            if pos is None:
                rec = [""] * len(self.header)
                rec[self._id_index] = str(row_id)
                self.records.append(rec)
                pos = len(self.records) - 1
                rows[row_id] = pos
            self.records[pos][idx] = text
            n += 1
        return n

    def to_bytes(self, delimiter: str = ",") -> bytes:
        """Serialize back to bytes with minimal quoting, the source's line terminator and encoding."""
        buf = io.StringIO(newline="")
        writer = csv.writer(
            buf,
            delimiter=delimiter,
            lineterminator=self.line_terminator,
            quoting=csv.QUOTE_MINIMAL,
        )
        writer.writerow(self.header)
        writer.writerows(self.records)
        text = buf.getvalue()
        if not self.trailing_newline and text.endswith(self.line_terminator):
            text = text[: -len(self.line_terminator)]
        payload = text.encode(self.encoding)
        return _BOM + payload if self.bom else payload


def decode(data: bytes, source: str, settings: EngineSettings) -> tuple[str, str, bool]:
    """
    Decode file bytes, trying the primary then the fallback encoding.

    Returns:
        tuple[str, str, bool]: (text, encoding used, had UTF-8 BOM)

    Raises:
        MalformedCsv: If neither encoding can decode the bytes.
    """
    bom = data.startswith(_BOM)
    if bom:
        data = data[len(_BOM) :]
    for enc in (settings.encoding, settings.fallback_encoding):
        try:
            return data.decode(enc), enc, bom
        except (UnicodeDecodeError, LookupError):
            continue
    raise MalformedCsv(
        source, f"cannot decode as {settings.encoding} or {settings.fallback_encoding}"
    )


def _line_terminator(text: str) -> str:
    """Terminator ending the first record; line breaks inside quoted fields are skipped."""
    quoted = False
    for i, ch in enumerate(text):
        if ch == '"':
            quoted = not quoted
        elif ch == "\n" and not quoted:
            return "\r\n" if i and text[i - 1] == "\r" else "\n"
    return "\n"


def read_raw(data: bytes, source: str = "<memory>", settings: EngineSettings | None = None) -> RawTable:
    """
    Split file bytes into header and data records without interpreting cell values.

    Args:
        data (bytes): File contents.
        source (str): Label used in error messages (normally the file path).
        settings (EngineSettings | None): Encoding/delimiter/id-column settings.

    Returns:
        RawTable: Header and records.

    Raises:
        MalformedCsv: Undecodable bytes, bad quoting, or duplicate/invalid header.
        EmptyTable: No header row.
        ColumnCountMismatch: A record's field count differs from the header's.
    """
    settings = settings or EngineSettings()
    text, encoding, bom = decode(data, source, settings)

    reader = csv.reader(io.StringIO(text, newline=""), delimiter=settings.delimiter, strict=True)
    header: list[str] | None = None
    records: list[list[str]] = []
    try:
        for rec in reader:
            if not rec or (len(rec) == 1 and rec[0] == "" and header is not None):
                continue
            if header is None:
                header = rec
                continue
            if len(rec) != len(header):
                raise ColumnCountMismatch(
                    source, row=len(records) + 1, expected=len(header), actual=len(rec)
                )
            records.append(rec)
    except csv.Error as exc:
        raise MalformedCsv(source, f"line {reader.line_num}: {exc}") from exc

    if header is None:
        raise EmptyTable(source)
    seen: set[str] = set()
    for name in header:
        if name in seen:
            raise MalformedCsv(source, f"duplicate column name {name!r}")
        seen.add(name)
    if settings.id_column >= len(header):
        raise MalformedCsv(
            source, f"identity column {settings.id_column} out of range for {len(header)} columns"
        )

    return RawTable(
        source=source,
        header=header,
        records=records,
        encoding=encoding,
        bom=bom,
        line_terminator=_line_terminator(text),
        trailing_newline=text.endswith(("\n", "\r")),
        _id_index=settings.id_column,
    )


def parse(data: bytes, source: str = "<memory>", settings: EngineSettings | None = None) -> Table:
    """
    Parse one CSV file's bytes into a typed Table.

    Args:
        data (bytes): File contents.
        source (str): Label recorded on the table and used in error messages.
        settings (EngineSettings | None): Encoding/delimiter/id-column settings.

    Returns:
        Table: Ordered columns and rows of typed cells.

    Raises:
        ParseError: MalformedCsv, EmptyTable, ColumnCountMismatch, InvalidRowId, or DuplicateRowId.

    Examples:
        >>> t = parse(b"id,name,points\\n0,A,10\\n", "achievements.csv")
        >>> t.column_names, t.rows[0].row_id
        (['id', 'name', 'points'], 0)
    """
    settings = settings or EngineSettings()
    raw = read_raw(data, source, settings)
    id_idx = settings.id_column

    columns = tuple(Column(name, i) for i, name in enumerate(raw.header))
    rows: list[Row] = []
    seen: set[int] = set()
    for n, rec in enumerate(raw.records, start=1):
        cells = tuple(classify(f) for f in rec)
        ident = cells[id_idx]
        if not isinstance(ident, Integer):
            raise InvalidRowId(source, row=n, value=rec[id_idx])
        if ident.value in seen:
            raise DuplicateRowId(source, row=n, row_id=ident.value)
        seen.add(ident.value)
        rows.append(Row(ident.value, cells))

    return Table(source=source, columns=columns, rows=tuple(rows))


def parse_file(path: str, settings: EngineSettings | None = None) -> Table:
    """
    Read and parse a table file.

    Raises:
        IoError: If the file cannot be read.
        ParseError: If its contents are malformed.
    """
    try:
        data = read_bytes(path)
    except OSError as exc:
        raise IoError(f"failed to read {path!r}: {exc}") from exc
    return parse(data, str(path), settings)
