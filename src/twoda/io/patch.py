"""
Patch engine: validate edits against a merged family and write patched copies of its files.

Responsibilities
- Load/parse patch documents (twoda.core.schema.Patch), build templates.
- Validate a patch against the family's ResolvedTable without touching the filesystem.
- Plan: assign each (collapsed) edit to its owning file, the cell's provenance before the edit.
- Apply: rewrite only the targeted cells of each owning file and write the copy to output_dir
  under the same file name. Originals are never modified.
- Batch runs: several patch files applied against one scan.

Write path
- Every output is staged (tmp → fsync) before any is renamed into place; any failure
  removes the staged files and raises IoWriteError.
- A history entry is appended only after every output has been renamed.

Notes
- Edits to the same cell collapse: the last occurrence in list order wins.
- When a cell's owning file lacks its row or column (cells the merge filled in as Empty),
  the row or column is added to that file.
"""

from __future__ import annotations

import json
import os
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from twoda.core.errors import (
    MergeError,
    ParseError,
    PatchValidationError,
    SerializationError,
)
from twoda.core.schema import BatchFile, Edit, HistoryEntry, Patch, ValidationIssue

from .config import EngineSettings
from .errors import IoError, IoWriteError
from .fs import commit_staged, discard, makedirs, stage_bytes, write_bytes_atomic
from .history import append_entry, new_entry
from .logging import get_logger
from .merger import ResolvedTable, merge
from .scanner import ScanResult, scan

__all__ = [
    "PatchDocument",
    "parse_patch",
    "load_patch",
    "save_patch",
    "parse_example",
    "create_patch_template",
    "check_edits",
    "validate_patch",
    "FilePlan",
    "plan_patch",
    "PatchResult",
    "apply_patch",
    "create_batch_template",
    "load_batch",
    "save_batch",
    "BatchItem",
    "BatchReport",
    "run_batch",
]

log = get_logger(__name__)

PatchDocument = Patch | Mapping[str, Any] | str | bytes

_TEMPLATE_BATCH_PATCHES = ("patch1.json", "patch2.json")


# -----------------------------------------------------------------------------
# Documents
# -----------------------------------------------------------------------------


def _issues_from(exc: ValidationError) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    for err in exc.errors():
        loc = err.get("loc", ())
        edit_index = loc[1] if len(loc) > 1 and loc[0] == "edits" and isinstance(loc[1], int) else None
        where = ".".join(str(p) for p in loc) or "<document>"
        issues.append(
            ValidationIssue(kind="schema", message=f"{where}: {err.get('msg')}", edit_index=edit_index)
        )
    return issues


def _decode(doc: str | bytes) -> Any:
    try:
        return json.loads(doc)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise SerializationError(f"malformed patch JSON: {exc}") from exc


def _coerce(
    doc: PatchDocument, *, json_issues: bool = False
) -> tuple[Patch | None, list[ValidationIssue]]:
    if isinstance(doc, Patch):
        return doc, []
    if isinstance(doc, (str, bytes)):
        try:
            data = _decode(doc)
        except SerializationError as exc:
            if not json_issues:
                raise
            return None, [ValidationIssue(kind="schema", message=str(exc))]
    else:
        data = doc
    try:
        return Patch.model_validate(data), []
    except ValidationError as exc:
        return None, _issues_from(exc)


def parse_patch(doc: PatchDocument) -> Patch:
    """
    Parse a patch document (JSON text, a mapping, or a Patch).

    Raises:
        SerializationError: If the JSON is malformed or does not match the patch schema.
    """
    patch, issues = _coerce(doc)
    if patch is None:
        raise SerializationError("invalid patch: " + "; ".join(i.message for i in issues))
    return patch


def load_patch(path: str | os.PathLike[str]) -> Patch:
    """
    Read and parse a patch file.

    Raises:
        IoError: If the file cannot be read.
        SerializationError: If its contents are not a valid patch.
    """
    p = os.fspath(path)
    try:
        with open(p, "rb") as fh:
            raw = fh.read()
    except OSError as exc:
        raise IoError(f"failed to read patch {p!r}: {exc}") from exc
    try:
        return parse_patch(raw)
    except SerializationError as exc:
        raise SerializationError(f"{p}: {exc}") from exc


def _write_json(path: str, obj: Any) -> None:
    payload = (json.dumps(obj, indent=2) + "\n").encode("utf-8")
    try:
        write_bytes_atomic(path, payload)
    except OSError as exc:
        raise IoWriteError(f"failed to write {path!r}: {exc}") from exc


def save_patch(patch: Patch, path: str | os.PathLike[str]) -> None:
    _write_json(os.fspath(path), patch.model_dump())


def parse_example(text: str) -> Edit:
    """
    Parse a "row_id:column:value" example edit. The value may itself contain colons.

    Raises:
        SerializationError: On a missing field or a non-integer row id.

    Examples:
        >>> parse_example("0:points:999")
        Edit(row_id=0, column='points', value='999')
    """
    parts = text.split(":", 2)
    if len(parts) != 3 or not parts[1]:
        raise SerializationError(f"invalid example {text!r}, expected 'row_id:column:value'")
    try:
        row_id = int(parts[0].strip())
    except ValueError:
        raise SerializationError(f"invalid row id {parts[0]!r} in example {text!r}") from None
    return Edit(row_id=row_id, column=parts[1], value=parts[2])


def create_patch_template(family: str, examples: Iterable[str] | None = None) -> Patch:
    """
    Patch skeleton for a family: no edits, or the given "row_id:column:value" examples.

    Raises:
        SerializationError: If an example is malformed or the family name is empty.
    """
    edits = [parse_example(e) for e in examples or ()]
    try:
        return Patch(family=family, edits=edits)
    except ValidationError as exc:
        raise SerializationError(f"invalid patch template: {exc}") from exc


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------


def check_edits(table: ResolvedTable, patch: Patch) -> list[ValidationIssue]:
    """Reference checks of every edit against a merged table (rows and columns)."""
    issues: list[ValidationIssue] = []
    for i, edit in enumerate(patch.edits):
        if not table.has_row(edit.row_id):
            issues.append(
                ValidationIssue(
                    kind="unknown_row",
                    message=f"edit {i}: row id {edit.row_id} not found in family {table.family!r}",
                    edit_index=i,
                    row_id=edit.row_id,
                )
            )
        if not table.has_column(edit.column):
            issues.append(
                ValidationIssue(
                    kind="unknown_column",
                    message=f"edit {i}: column {edit.column!r} not found in family {table.family!r}",
                    edit_index=i,
                    column=edit.column,
                )
            )
    return issues


def _resolve(
    scan_result: ScanResult, doc: PatchDocument
) -> tuple[Patch | None, ResolvedTable | None, list[ValidationIssue]]:
    patch, issues = _coerce(doc, json_issues=True)
    if patch is None:
        return None, None, issues
    if not scan_result.has_family(patch.family):
        issue = ValidationIssue(kind="unknown_family", message=f"unknown family {patch.family!r}")
        return patch, None, [issue]
    try:
        table = merge(scan_result, patch.family)
    except (MergeError, ParseError, IoError) as exc:
        return patch, None, [ValidationIssue(kind="merge", message=str(exc))]
    return patch, table, check_edits(table, patch)


def validate_patch(scan_result: ScanResult, doc: PatchDocument) -> list[ValidationIssue]:
    """
    Validate a patch against a scan. Never writes anything.

    Args:
        scan_result (ScanResult): Scan containing the target family.
        doc (PatchDocument): Patch JSON text, mapping, or Patch.

    Returns:
        list[ValidationIssue]: Empty when the patch is valid. Malformed JSON text is
        reported as a "schema" issue.
    """
    _patch, _table, issues = _resolve(scan_result, doc)
    return issues


def _validated(scan_result: ScanResult, doc: PatchDocument) -> tuple[Patch, ResolvedTable]:
    patch, table, issues = _resolve(scan_result, doc)
    if issues or patch is None or table is None:
        log.warning(
            "patch_rejected",
            family=getattr(patch, "family", None),
            issues=len(issues),
        )
        raise PatchValidationError(issues)
    return patch, table


# -----------------------------------------------------------------------------
# Planning
# -----------------------------------------------------------------------------


@dataclass
class FilePlan:
    """
    Edits routed to one owning file.

    Attributes:
        source (str): Owning member file.
        edits (list[Edit]): Collapsed edits for this file, in patch order.
    """

    source: str
    edits: list[Edit] = field(default_factory=list)

    @property
    def filename(self) -> str:
        return os.path.basename(self.source)

    def as_mapping(self) -> dict[tuple[int, str], str]:
        return {e.cell_key: e.value for e in self.edits}


def _plan(scan_result: ScanResult, patch: Patch, table: ResolvedTable) -> list[FilePlan]:
    base = scan_result.family(patch.family).base
    fallback = base.path if base is not None else table.sources[0]
    members = set(table.sources)
    by_source: dict[str, FilePlan] = {}
    for edit in patch.collapsed():
        owner = table.provenance(edit.row_id, edit.column)
        if owner not in members:
            owner = fallback
        by_source.setdefault(owner, FilePlan(owner)).edits.append(edit)
    rank = {s: i for i, s in enumerate(table.sources)}
    return sorted(by_source.values(), key=lambda p: rank.get(p.source, len(rank)))


def plan_patch(scan_result: ScanResult, doc: PatchDocument) -> list[FilePlan]:
    """
    Preview which files a patch would modify, without writing anything.

    Returns:
        list[FilePlan]: One plan per owning file, in merge order of the files.

    Raises:
        PatchValidationError: If the patch does not validate.
    """
    patch, table = _validated(scan_result, doc)
    return _plan(scan_result, patch, table)


# -----------------------------------------------------------------------------
# Apply
# -----------------------------------------------------------------------------


@dataclass
class PatchResult:
    """
    Outcome of a successful apply.

    Attributes:
        family (str): Patched family.
        exported (list[str]): Written file paths, in merge order of their sources.
        edits_applied (int): Number of distinct cells written.
        history_entry (HistoryEntry | None): Entry appended to the history, if any.
    """

    family: str
    exported: list[str]
    edits_applied: int
    history_entry: HistoryEntry | None = None


def _same_file(a: str, b: str) -> bool:
    return os.path.normcase(os.path.realpath(a)) == os.path.normcase(os.path.realpath(b))


def apply_patch(
    scan_result: ScanResult,
    doc: PatchDocument,
    output_dir: str | os.PathLike[str],
    history_path: str | os.PathLike[str] | None = None,
    *,
    patch_file: str | None = None,
) -> PatchResult:
    """
    Validate, then write patched copies of the owning files into output_dir.

    Args:
        scan_result (ScanResult): Scan containing the target family.
        doc (PatchDocument): Patch JSON text, mapping, or Patch.
        output_dir: Directory receiving the patched copies (created if missing).
        history_path: Optional history file receiving one entry on success.
        patch_file (str | None): Patch path recorded on the history entry.

    Returns:
        PatchResult

    Raises:
        PatchValidationError: If validation reports any issue (nothing is written).
        IoError: If an owning file cannot be read (nothing is written).
        IoWriteError: If an output would replace its own original, an edit value cannot be
            encoded in its file's encoding, or staging/renaming fails (earlier outputs
            are rolled back).
    """
    patch, table = _validated(scan_result, doc)
    plans = _plan(scan_result, patch, table)
    out_dir = os.fspath(output_dir)
    delimiter = scan_result.settings.delimiter

    outputs: list[tuple[str, bytes]] = []
    for plan in plans:
        raw = scan_result.raw_for(plan.source)
        raw.set_cells(plan.as_mapping())
        dest = os.path.join(out_dir, plan.filename)
        if os.path.exists(dest) and _same_file(dest, plan.source):
            raise IoWriteError(f"refusing to overwrite original file {plan.source!r}")
        try:
            payload = raw.to_bytes(delimiter)
        except UnicodeEncodeError as exc:
            raise IoWriteError(
                f"cannot encode patched {plan.source!r} as {raw.encoding}: {exc.reason} "
                f"({exc.object[exc.start : exc.end]!r})"
            ) from exc
        outputs.append((dest, payload))

    staged: list[tuple[str, str]] = []
    try:
        makedirs(out_dir, exist_ok=True)
        for dest, payload in outputs:
            staged.append((stage_bytes(dest, payload), dest))
        commit_staged(staged)
    except OSError as exc:
        for tmp, _dest in staged:
            discard(tmp)
        raise IoWriteError(f"failed to write patched files into {out_dir!r}: {exc}") from exc

    exported = [dest for dest, _payload in outputs]
    edits_applied = sum(len(p.edits) for p in plans)
    log.info("patch_applied", family=patch.family, edits=edits_applied, files=len(exported))

    entry: HistoryEntry | None = None
    if history_path is not None:
        entry = new_entry(patch.family, len(patch.edits), exported, patch_file=patch_file)
        append_entry(history_path, entry)
    return PatchResult(patch.family, exported, edits_applied, entry)


# -----------------------------------------------------------------------------
# Batch
# -----------------------------------------------------------------------------


def create_batch_template(
    roots: Sequence[str],
    output_dir: str,
    patches: Sequence[str] | None = None,
    history_file: str | None = None,
) -> BatchFile:
    return BatchFile(
        roots=list(roots),
        output_dir=output_dir,
        patches=list(patches) if patches is not None else list(_TEMPLATE_BATCH_PATCHES),
        history_file=history_file,
    )


def load_batch(path: str | os.PathLike[str]) -> BatchFile:
    """
    Read and parse a batch file.

    Raises:
        IoError: If the file cannot be read.
        SerializationError: If its contents are not a valid batch document.
    """
    p = os.fspath(path)
    try:
        with open(p, "rb") as fh:
            raw = fh.read()
    except OSError as exc:
        raise IoError(f"failed to read batch {p!r}: {exc}") from exc
    try:
        return BatchFile.model_validate_json(raw)
    except ValidationError as exc:
        raise SerializationError(f"{p}: invalid batch file: {exc}") from exc


def save_batch(batch: BatchFile, path: str | os.PathLike[str]) -> None:
    _write_json(os.fspath(path), batch.model_dump(exclude_none=True))


@dataclass
class BatchItem:
    """Result of one patch within a batch: either a PatchResult or an error message."""

    patch_file: str
    result: PatchResult | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchReport:
    items: list[BatchItem] = field(default_factory=list)

    @property
    def total_edits(self) -> int:
        return sum(i.result.edits_applied for i in self.items if i.result is not None)

    @property
    def total_files(self) -> int:
        return sum(len(i.result.exported) for i in self.items if i.result is not None)

    @property
    def errors(self) -> list[tuple[str, str]]:
        return [(i.patch_file, i.error) for i in self.items if i.error is not None]

    @property
    def ok(self) -> bool:
        return all(i.ok for i in self.items)


def run_batch(
    batch: BatchFile | str | os.PathLike[str],
    settings: EngineSettings | None = None,
    *,
    base_dir: str | None = None,
) -> BatchReport:
    """
    Scan the batch roots once, then apply each patch in order.

    Each patch is all-or-nothing; a failing patch is recorded on the report and the batch
    continues with the next one.

    Args:
        batch: BatchFile, or a path to a batch JSON file.
        settings (EngineSettings | None): Scan/parse settings.
        base_dir (str | None): Directory relative patch paths resolve against. Defaults to
            the batch file's directory when a path is given, else the working directory.

    Returns:
        BatchReport

    Raises:
        IoScanError: If a root cannot be scanned.
        SerializationError: If a batch path is given and the file is malformed.
    """
    if not isinstance(batch, BatchFile):
        path = os.fspath(batch)
        base_dir = base_dir or os.path.dirname(os.path.abspath(path))
        batch = load_batch(path)
    base_dir = base_dir or os.getcwd()

    result = scan(batch.roots, settings)
    report = BatchReport()
    for rel in batch.patches:
        patch_path = rel if os.path.isabs(rel) else os.path.join(base_dir, rel)
        item = BatchItem(patch_file=patch_path)
        try:
            patch = load_patch(patch_path)
            item.result = apply_patch(
                result,
                patch,
                batch.output_dir,
                batch.history_file,
                patch_file=patch_path,
            )
        except (SerializationError, PatchValidationError, IoError) as exc:
            item.error = str(exc)
            log.warning("batch_patch_failed", patch=patch_path, error=item.error)
        report.items.append(item)
    return report
