"""
Engine operations as plain functions, for UI and CLI callers.

Every function takes and returns explicit values (ScanResult, ResolvedTable, Patch, ...);
nothing is kept between calls. Errors are raised as typed exceptions from twoda.core.errors
and twoda.io.errors.
"""

from __future__ import annotations

import os
from collections.abc import Iterable

from twoda.core.cells import CellValue
from twoda.core.schema import HistoryEntry, ValidationIssue
from twoda.io.config import EngineSettings
from twoda.io.history import load_history as _load_history
from twoda.io.merger import ResolvedTable
from twoda.io.merger import merge as _merge
from twoda.io.patch import PatchDocument, create_patch_template
from twoda.io.patch import apply_patch as _apply_patch
from twoda.io.patch import validate_patch as _validate_patch
from twoda.io.scanner import ScanResult
from twoda.io.scanner import scan as _scan

__all__ = [
    "scan",
    "list_families",
    "members",
    "search_families",
    "merge",
    "columns",
    "row_count",
    "row_id",
    "cell",
    "filter_rows",
    "create_patch",
    "validate_patch",
    "apply_patch",
    "load_history",
]


def scan(
    root: str | os.PathLike[str] | Iterable[str | os.PathLike[str]],
    settings: EngineSettings | None = None,
) -> ScanResult:
    return _scan(root, settings)


def list_families(scan_result: ScanResult) -> list[tuple[str, int]]:
    return scan_result.list_families()


def members(scan_result: ScanResult, family: str) -> list[tuple[str, str | None, bool]]:
    return scan_result.members(family)


def search_families(scan_result: ScanResult, pattern: str) -> list[str]:
    return scan_result.search(pattern)


def merge(scan_result: ScanResult, family: str) -> ResolvedTable:
    return _merge(scan_result, family)


def columns(table: ResolvedTable) -> list[str]:
    return list(table.columns)


def row_count(table: ResolvedTable) -> int:
    return table.row_count


def row_id(table: ResolvedTable, row_index: int) -> int:
    return table.row_id(row_index)


def cell(table: ResolvedTable, row_index: int, col_index: int) -> tuple[CellValue, str]:
    """(value, source path) of a cell by position."""
    resolved = table.cell(row_index, col_index)
    return resolved.value, resolved.source


def filter_rows(table: ResolvedTable, column: str, pattern: str) -> list[int]:
    return table.filter_rows(column, pattern)


def create_patch(family: str) -> str:
    """JSON skeleton of an empty patch for a family."""
    return create_patch_template(family).model_dump_json(indent=2)


def validate_patch(scan_result: ScanResult, patch: PatchDocument) -> list[ValidationIssue]:
    return _validate_patch(scan_result, patch)


def apply_patch(
    scan_result: ScanResult,
    patch: PatchDocument,
    output_dir: str | os.PathLike[str],
    history_path: str | os.PathLike[str] | None = None,
) -> list[str]:
    """Apply a patch; returns the exported file paths."""
    return _apply_patch(scan_result, patch, output_dir, history_path).exported


def load_history(path: str | os.PathLike[str]) -> list[HistoryEntry]:
    return _load_history(path)
