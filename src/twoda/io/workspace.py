"""
Workspace facade for twoda.io.

Binds EngineSettings to a set of root directories and exposes the engine operations
(scan, merge, validate, apply, export, history) as methods. The scan is taken lazily on
first use and reused until refresh() is called.

Source of truth
- Scanning/grouping: twoda.io.scanner
- Merge semantics: twoda.io.merger
- Patch validation/apply: twoda.io.patch
- History: twoda.io.history

Import DAG discipline
- Depends only on stdlib, polars/pyarrow/pydantic, twoda.core.*, and sibling twoda.io modules.
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Sequence

from twoda.core.schema import HistoryEntry, Patch, ValidationIssue

from .config import EngineSettings
from .export import ExportFormat, export_table
from .history import HistoryFile, restore_entry
from .merger import ResolvedTable, merge
from .patch import (
    FilePlan,
    PatchDocument,
    PatchResult,
    apply_patch,
    create_patch_template,
    plan_patch,
    validate_patch,
)
from .scanner import ScanResult, scan

__all__ = ["Workspace"]


class Workspace:
    """
    Facade bound to EngineSettings and one or more root directories.

    Notes:
        - Construction performs no I/O.
        - Merged tables are not cached here; ScanResult caches parsed files when
          EngineSettings.cache_tables is set.
    """

    def __init__(
        self,
        roots: str | os.PathLike[str] | Iterable[str | os.PathLike[str]],
        settings: EngineSettings | None = None,
    ) -> None:
        """
        Args:
            roots: Root directory or directories to scan.
            settings (EngineSettings | None): Defaults to EngineSettings.load().
        """
        if isinstance(roots, (str, os.PathLike)):
            self.roots: tuple[str, ...] = (os.fspath(roots),)
        else:
            self.roots = tuple(os.fspath(r) for r in roots)
        self.settings = settings or EngineSettings.load()
        self._scan: ScanResult | None = None

    # ---------------------------------------------------------------------
    # Scan
    # ---------------------------------------------------------------------
    @property
    def scan_result(self) -> ScanResult:
        if self._scan is None:
            self._scan = scan(self.roots, self.settings)
        return self._scan

    def refresh(self) -> ScanResult:
        """Rescan the roots, dropping cached tables."""
        self._scan = None
        return self.scan_result

    def families(self) -> list[tuple[str, int]]:
        return self.scan_result.list_families()

    def search(self, pattern: str) -> list[str]:
        return self.scan_result.search(pattern)

    def members(self, family: str) -> list[tuple[str, str | None, bool]]:
        return self.scan_result.members(family)

    # ---------------------------------------------------------------------
    # Merge and export
    # ---------------------------------------------------------------------
    def merge(self, family: str) -> ResolvedTable:
        return merge(self.scan_result, family)

    def export(self, family: str, path: str, fmt: ExportFormat = "csv") -> str:
        return export_table(self.merge(family), path, fmt, delimiter=self.settings.delimiter)

    # ---------------------------------------------------------------------
    # Patches
    # ---------------------------------------------------------------------
    def create_patch(self, family: str, examples: Sequence[str] | None = None) -> Patch:
        return create_patch_template(family, examples)

    def validate(self, patch: PatchDocument) -> list[ValidationIssue]:
        return validate_patch(self.scan_result, patch)

    def plan(self, patch: PatchDocument) -> list[FilePlan]:
        return plan_patch(self.scan_result, patch)

    def apply(
        self,
        patch: PatchDocument,
        output_dir: str,
        *,
        record_history: bool = True,
        patch_file: str | None = None,
    ) -> PatchResult:
        """
        Apply a patch; records a history entry in settings.history_file unless disabled.

        Raises:
            PatchValidationError: If the patch does not validate.
            IoWriteError: If outputs cannot be written.
        """
        history_path = self.settings.history_file if record_history else None
        return apply_patch(self.scan_result, patch, output_dir, history_path, patch_file=patch_file)

    # ---------------------------------------------------------------------
    # History
    # ---------------------------------------------------------------------
    def history(self) -> HistoryFile:
        return HistoryFile.load(self.settings.history_file)

    def restore(self, entry: HistoryEntry, output_dir: str) -> list[str]:
        return restore_entry(self.scan_result, entry, output_dir)
