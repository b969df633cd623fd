"""
Export of merged (resolved) tables.

Formats
- csv: merged cell text only, header = merged columns.
- json: columns, sources, and rows of {value, type, source} cells (ResolvedTable.to_json_obj).
- parquet: one Utf8 column per merged column plus a parallel "__source__<column>" provenance
  column; the family name and source list are embedded as Parquet key-value metadata.

Notes
- Every export is written atomically (tmp → fsync → rename).
- Exports are views; they are not patch outputs and are never read back by the engine.
"""

from __future__ import annotations

import csv
import io
import json
import os
from typing import Literal, get_args

import pyarrow.parquet as pq

from .errors import IoWriteError
from .fs import discard, fsync_path, makedirs, rename_atomic, tmp_path_for, write_bytes_atomic
from .merger import ResolvedTable

__all__ = [
    "ExportFormat",
    "EXPORT_FORMATS",
    "to_csv_bytes",
    "to_json_bytes",
    "export_table",
]

ExportFormat = Literal["csv", "json", "parquet"]
EXPORT_FORMATS: tuple[str, ...] = get_args(ExportFormat)


def to_csv_bytes(table: ResolvedTable, delimiter: str = ",") -> bytes:
    buf = io.StringIO(newline="")
    writer = csv.writer(buf, delimiter=delimiter, lineterminator="\n")
    writer.writerow(table.columns)
    writer.writerows(table.head())
    return buf.getvalue().encode("utf-8")


def to_json_bytes(table: ResolvedTable) -> bytes:
    return (json.dumps(table.to_json_obj(), indent=2, ensure_ascii=False) + "\n").encode("utf-8")


def _write_parquet(table: ResolvedTable, path: str) -> None:
    arrow_table = table.to_frame(with_provenance=True).to_arrow()
    meta = dict(arrow_table.schema.metadata or {})
    meta.update(
        {
            b"twoda_family": table.family.encode("utf-8"),
            b"twoda_sources": json.dumps(list(table.sources)).encode("utf-8"),
        }
    )
    arrow_table = arrow_table.replace_schema_metadata(meta)
    makedirs(os.path.dirname(path) or ".", exist_ok=True)
    tmp = tmp_path_for(path)
    try:
        pq.write_table(arrow_table, tmp)
        fsync_path(tmp)
        rename_atomic(tmp, path)
    except OSError:
        discard(tmp)
        raise


def export_table(
    table: ResolvedTable,
    path: str | os.PathLike[str],
    fmt: ExportFormat = "csv",
    *,
    delimiter: str = ",",
) -> str:
    """
    Write a merged table to a file.

    Args:
        table (ResolvedTable): Result of twoda.io.merger.merge.
        path: Destination file.
        fmt (ExportFormat): "csv", "json", or "parquet".
        delimiter (str): Field delimiter for csv output (normally EngineSettings.delimiter).

    Returns:
        str: The written path.

    Raises:
        ValueError: If fmt is not a supported format.
        IoWriteError: If the file cannot be written.
    """
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"unsupported export format {fmt!r}; expected one of {', '.join(EXPORT_FORMATS)}")
    dest = os.fspath(path)
    try:
        if fmt == "parquet":
            _write_parquet(table, dest)
        elif fmt == "json":
            write_bytes_atomic(dest, to_json_bytes(table))
        else:
            write_bytes_atomic(dest, to_csv_bytes(table, delimiter))
    except OSError as exc:
        raise IoWriteError(f"failed to export {table.family!r} to {dest!r}: {exc}") from exc
    return dest
