from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Callable

from twoda.core.errors import (
    ConfigError,
    MergeError,
    ParseError,
    PatchValidationError,
    SerializationError,
    UnknownColumn,
    UnknownRow,
)
from twoda.io.config import EngineSettings
from twoda.io.errors import IoError
from twoda.io.export import EXPORT_FORMATS, export_table
from twoda.io.history import HistoryFile, restore_entry
from twoda.io.logging import configure_logging
from twoda.io.merger import merge
from twoda.io.parser import parse_file
from twoda.io.patch import (
    apply_patch,
    create_batch_template,
    create_patch_template,
    load_patch,
    plan_patch,
    run_batch,
    save_batch,
    save_patch,
    validate_patch,
)
from twoda.io.scanner import ScanResult, scan

_ENGINE_ERRORS = (
    ConfigError,
    IoError,
    MergeError,
    ParseError,
    PatchValidationError,
    SerializationError,
    UnknownColumn,
    UnknownRow,
)


def _engine_args(p: argparse.ArgumentParser, *, roots: bool = True) -> None:
    """Options shared by every command that scans or reads settings."""
    if roots:
        p.add_argument(
            "-r",
            "--root",
            dest="roots",
            action="append",
            required=True,
            help="Root directory to scan (repeatable).",
        )
    p.add_argument("--config", type=str, default=None, help="TOML settings file.")
    p.add_argument("-v", "--verbose", action="store_true", help="Log engine events at INFO.")


def _settings(args: argparse.Namespace) -> EngineSettings:
    settings = EngineSettings.load(args.config)
    level = "INFO" if args.verbose else settings.log_level
    configure_logging(level=level, json_format=settings.log_format == "json")
    return settings


def _scan(args: argparse.Namespace) -> tuple[EngineSettings, ScanResult]:
    settings = _settings(args)
    result = scan(args.roots, settings)
    for w in result.warnings:
        print(f"[WARN] Skipped {w.path}: {w.reason}")
    return settings, result


def _member_label(suffix: str | None) -> str:
    return "[base]" if suffix is None else f"[{suffix}]"


def _print_rows(header: list[str], rows: list[list[str]], total: int) -> None:
    print("\t".join(header))
    print("-" * (len(header) * 12))
    for row in rows:
        print("\t".join(row))
    if total > len(rows):
        print(f"... ({total - len(rows)} more rows)")


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------


def _cmd_scan(argv: list[str]) -> int:
    p = argparse.ArgumentParser(prog="scan", description="Scan roots and index table families.")
    _engine_args(p)
    args = p.parse_args(argv)
    _, result = _scan(args)

    print(f"Scanned {len(result.roots)} root(s):")
    for root in result.roots:
        print(f"  {root}")
    print()
    print(f"Found {result.total_files} files in {len(result)} families")
    return 0


def _cmd_list_families(argv: list[str]) -> int:
    p = argparse.ArgumentParser(prog="list-families", description="List discovered families.")
    _engine_args(p)
    p.add_argument("--members", action="store_true", help="Show member files of each family.")
    args = p.parse_args(argv)
    _, result = _scan(args)

    print(f"Families ({len(result)}):")
    print()
    for family in result:
        print(f"  {family.name} ({family.member_count} files)")
        if args.members:
            for m in family.members:
                print(f"    {m.path} {_member_label(m.suffix)}")
    return 0


def _cmd_search(argv: list[str]) -> int:
    p = argparse.ArgumentParser(prog="search", description="Find families by name.")
    _engine_args(p)
    p.add_argument("pattern", type=str, help="Case-insensitive substring of the family name.")
    args = p.parse_args(argv)
    _, result = _scan(args)

    names = result.search(args.pattern)
    if not names:
        print(f"No families found matching '{args.pattern}'")
        return 0
    print(f"Found {len(names)} families matching '{args.pattern}':")
    print()
    for name in names:
        family = result.family(name)
        print(f"{name} ({family.member_count} files)")
        for m in family.members:
            print(f"  {m.path} {_member_label(m.suffix)}")
    return 0


def _cmd_show(argv: list[str]) -> int:
    p = argparse.ArgumentParser(prog="show", description="Show a merged table.")
    _engine_args(p)
    p.add_argument("-f", "--family", type=str, required=True, help="Family name.")
    p.add_argument("-n", "--limit", type=int, default=None, help="Maximum rows to display.")
    p.add_argument("-c", "--columns", type=str, default=None, help="Comma-separated column names.")
    args = p.parse_args(argv)
    _, result = _scan(args)

    table = merge(result, args.family)
    cols = [c.strip() for c in args.columns.split(",") if c.strip()] if args.columns else None
    print(f"Family: {table.family}")
    print(f"Sources: {len(table.sources)}")
    for src in table.sources:
        print(f"  {src}")
    print(f"Rows: {table.row_count}, Columns: {table.column_count}")
    print()
    _print_rows(cols or list(table.columns), table.head(args.limit, cols), table.row_count)
    return 0


def _cmd_filter(argv: list[str]) -> int:
    p = argparse.ArgumentParser(prog="filter", description="Filter merged rows by column text.")
    _engine_args(p)
    p.add_argument("-f", "--family", type=str, required=True, help="Family name.")
    p.add_argument("--column", type=str, required=True, help="Column to match.")
    p.add_argument("--value", type=str, required=True, help="Case-insensitive substring.")
    p.add_argument("-n", "--limit", type=int, default=None, help="Maximum rows to display.")
    args = p.parse_args(argv)
    _, result = _scan(args)

    table = merge(result, args.family)
    hits = table.filter_rows(args.column, args.value)
    if not hits:
        print(f"No rows found where {args.column} contains '{args.value}'")
        return 0
    print(f"Found {len(hits)} rows where {args.column} contains '{args.value}':")
    print()
    shown = hits if args.limit is None else hits[: args.limit]
    rows = [[c.text for c in table.cells[i]] for i in shown]
    _print_rows(list(table.columns), rows, len(hits))
    return 0


def _cmd_export(argv: list[str]) -> int:
    p = argparse.ArgumentParser(prog="export", description="Export a merged table.")
    _engine_args(p)
    p.add_argument("-f", "--family", type=str, required=True, help="Family name.")
    p.add_argument("--format", dest="fmt", choices=EXPORT_FORMATS, default="csv", help="Output format.")
    p.add_argument("-o", "--output", type=str, required=True, help="Output file path.")
    args = p.parse_args(argv)
    settings, result = _scan(args)

    table = merge(result, args.family)
    path = export_table(table, args.output, args.fmt, delimiter=settings.delimiter)
    print(f"[INFO] Exported {table.row_count} rows to {path}")
    return 0


def _cmd_explain(argv: list[str]) -> int:
    p = argparse.ArgumentParser(prog="explain", description="Explain where a cell's value comes from.")
    _engine_args(p)
    p.add_argument("-f", "--family", type=str, required=True, help="Family name.")
    p.add_argument("--row", type=int, required=True, help="Row id.")
    p.add_argument("--col", type=str, required=True, help="Column name.")
    args = p.parse_args(argv)
    _, result = _scan(args)

    info = merge(result, args.family).explain(args.row, args.col)
    print(f"Family: {args.family}")
    print(f"Row ID: {info.row_id}")
    print(f"Column: {info.column}")
    print()
    print(f"Value: {info.value.to_text()}")
    print(f"Source: {info.source}")
    print()
    print("Contributing files (merge order):")
    for i, (src, winner) in enumerate(info.ranked(), start=1):
        marker = " <-- winner" if winner else ""
        print(f"  {i}. {src}{marker}")
    return 0


def _cmd_parse(argv: list[str]) -> int:
    p = argparse.ArgumentParser(prog="parse", description="Parse and summarize one CSV file.")
    _engine_args(p, roots=False)
    p.add_argument("file", type=str, help="Path to a table file.")
    p.add_argument("-n", "--limit", type=int, default=10, help="Rows to display.")
    args = p.parse_args(argv)
    settings = _settings(args)

    table = parse_file(args.file, settings)
    print(f"File: {table.source}")
    print(f"Columns ({table.column_count}): {', '.join(table.column_names)}")
    print(f"Rows: {table.row_count}")
    print()
    rows = [[c.to_text() for c in r.cells] for r in table.rows[: max(args.limit, 0)]]
    _print_rows(table.column_names, rows, table.row_count)
    return 0


def _cmd_create_patch(argv: list[str]) -> int:
    p = argparse.ArgumentParser(prog="create-patch", description="Write a patch file template.")
    p.add_argument("-f", "--family", type=str, required=True, help="Family name.")
    p.add_argument("-o", "--output", type=str, required=True, help="Patch file to write.")
    p.add_argument(
        "-e",
        "--example",
        dest="examples",
        action="append",
        default=[],
        help="Example edit 'row_id:column:value' (repeatable).",
    )
    args = p.parse_args(argv)

    patch = create_patch_template(args.family, args.examples)
    save_patch(patch, args.output)
    print(f"[INFO] Created patch file: {args.output}")
    print(f"Family: {patch.family}")
    print(f"Edits: {len(patch.edits)}")
    print()
    print("Edit the file to add your changes, then run:")
    print(f"  twoda patch --root <path> --patch {args.output} --output <dir>")
    return 0


def _cmd_validate(argv: list[str]) -> int:
    p = argparse.ArgumentParser(prog="validate", description="Validate a patch against the merged family.")
    _engine_args(p)
    p.add_argument("-p", "--patch", type=str, required=True, help="Patch file (JSON).")
    args = p.parse_args(argv)
    _, result = _scan(args)

    patch = load_patch(args.patch)
    print(f"Validating patch for family '{patch.family}' with {len(patch.edits)} edits")
    print()
    issues = validate_patch(result, patch)
    for issue in issues:
        print(f"INVALID: {issue.message}")
    if issues:
        print()
        print("Patch has errors and cannot be applied.", file=sys.stderr)
        return 1
    for plan in plan_patch(result, patch):
        for edit in plan.edits:
            print(f"OK: row {edit.row_id}, {edit.column} -> '{edit.value}' (source: {plan.filename})")
    print()
    print("Patch is valid and ready to apply.")
    return 0


def _cmd_patch(argv: list[str]) -> int:
    p = argparse.ArgumentParser(prog="patch", description="Apply a patch and write modified files.")
    _engine_args(p)
    p.add_argument("-p", "--patch", type=str, required=True, help="Patch file (JSON).")
    p.add_argument("-o", "--output", type=str, required=True, help="Output directory.")
    p.add_argument("--history", type=str, default=None, help="History file (default from settings).")
    p.add_argument("--no-history", action="store_true", help="Do not record a history entry.")
    p.add_argument("--dry-run", action="store_true", help="Show the files that would change.")
    args = p.parse_args(argv)
    settings, result = _scan(args)

    patch = load_patch(args.patch)
    print(f"Loaded patch for family '{patch.family}' with {len(patch.edits)} edits")
    plans = plan_patch(result, patch)
    print()
    print("Files to be modified:")
    for plan in plans:
        print(f"  {plan.source} ({len(plan.edits)} edits)")
    if args.dry_run:
        return 0

    history_path = None if args.no_history else (args.history or settings.history_file)
    outcome = apply_patch(result, patch, args.output, history_path, patch_file=args.patch)
    print()
    print(f"[INFO] {len(outcome.exported)} files written to {args.output}")
    print(f"[INFO] {outcome.edits_applied} edits applied")
    for path in outcome.exported:
        print(f"  - {path}")
    if history_path is not None:
        print(f"[INFO] Recorded in history: {history_path}")
    return 0


def _cmd_create_batch(argv: list[str]) -> int:
    p = argparse.ArgumentParser(prog="create-batch", description="Write a batch file template.")
    p.add_argument("-o", "--output", type=str, required=True, help="Batch file to write.")
    p.add_argument("-r", "--root", dest="roots", action="append", required=True, help="Root (repeatable).")
    p.add_argument("--export-dir", type=str, required=True, help="Output directory for patched files.")
    p.add_argument("--history", type=str, default=None, help="Optional history file for the batch.")
    args = p.parse_args(argv)

    batch = create_batch_template(args.roots, args.export_dir, history_file=args.history)
    save_batch(batch, args.output)
    print(f"[INFO] Created batch file: {args.output}")
    print()
    print("Edit the file to configure your batch, then run:")
    print(f"  twoda batch --batch {args.output}")
    return 0


def _cmd_batch(argv: list[str]) -> int:
    p = argparse.ArgumentParser(prog="batch", description="Run a batch of patch files.")
    _engine_args(p, roots=False)
    p.add_argument("-b", "--batch", type=str, required=True, help="Batch file (JSON).")
    args = p.parse_args(argv)
    settings = _settings(args)

    report = run_batch(args.batch, settings)
    for item in report.items:
        if item.result is not None:
            print(
                f"[INFO] {item.patch_file}: applied {item.result.edits_applied} edits, "
                f"wrote {len(item.result.exported)} files"
            )
        else:
            print(f"[WARN] {item.patch_file}: {item.error}")
    print()
    print("Batch complete:")
    print(f"  {report.total_edits} total edits applied")
    print(f"  {report.total_files} total files written")
    if not report.ok:
        print(f"{len(report.errors)} patch(es) failed", file=sys.stderr)
        return 1
    return 0


def _cmd_history(argv: list[str]) -> int:
    p = argparse.ArgumentParser(prog="history", description="Show applied-patch history.")
    _engine_args(p, roots=False)
    p.add_argument("--history", type=str, default=None, help="History file (default from settings).")
    p.add_argument("-f", "--family", type=str, default=None, help="Only this family.")
    p.add_argument("--json", action="store_true", help="Print entries as JSON.")
    args = p.parse_args(argv)
    settings = _settings(args)

    history = HistoryFile.load(args.history or settings.history_file)
    entries = history.for_family(args.family) if args.family else history.entries_newest_first()
    if args.json:
        print(json.dumps([e.model_dump(exclude_none=True) for e in entries], indent=2))
        return 0
    if not entries:
        print("No history recorded yet.")
        return 0
    if args.family:
        print(f"History for '{args.family}' ({len(entries)} entries):")
        print()
        for i, e in enumerate(entries, start=1):
            print(f"{i}. {e.applied_at:%Y-%m-%d %H:%M:%S}")
            print(f"   {e.edit_count} edits applied")
            for path in e.exported:
                print(f"   - {path}")
        return 0
    print(f"Patch history ({history.total_entries()} total entries):")
    print()
    for name in history.families():
        last = history.latest(name)
        count = len(history.for_family(name))
        print(f"{name}: {count} patches applied")
        if last is not None:
            print(f"  Last: {last.applied_at:%Y-%m-%d %H:%M:%S} ({last.edit_count} edits)")
    return 0


def _cmd_restore(argv: list[str]) -> int:
    p = argparse.ArgumentParser(
        prog="restore",
        description="Copy original files back over the outputs of the latest patch of a family.",
    )
    _engine_args(p)
    p.add_argument("-f", "--family", type=str, required=True, help="Family name.")
    p.add_argument("-o", "--output", type=str, required=True, help="Directory to restore into.")
    p.add_argument("--history", type=str, default=None, help="History file (default from settings).")
    args = p.parse_args(argv)
    settings, result = _scan(args)

    history = HistoryFile.load(args.history or settings.history_file)
    entry = history.latest(args.family)
    if entry is None:
        print(f"[WARN] No history to restore for family '{args.family}'")
        return 0
    print(f"Restoring originals for '{args.family}' (patch applied {entry.applied_at:%Y-%m-%d %H:%M:%S})")
    for path in restore_entry(result, entry, args.output):
        print(f"  Restored: {path}")
    return 0


_COMMANDS: dict[str, Callable[[list[str]], int]] = {
    "scan": _cmd_scan,
    "list-families": _cmd_list_families,
    "search": _cmd_search,
    "show": _cmd_show,
    "filter": _cmd_filter,
    "export": _cmd_export,
    "explain": _cmd_explain,
    "parse": _cmd_parse,
    "create-patch": _cmd_create_patch,
    "validate": _cmd_validate,
    "patch": _cmd_patch,
    "create-batch": _cmd_create_batch,
    "batch": _cmd_batch,
    "history": _cmd_history,
    "restore": _cmd_restore,
}


def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="twoda", description="2DA table family merge and patch tool.")
    sub = p.add_subparsers(dest="cmd", required=True)
    for name in _COMMANDS:
        sub.add_parser(name)
    return p


def _report(exc: Exception) -> None:
    print(f"error: {exc}", file=sys.stderr)
    if isinstance(exc, PatchValidationError):
        for issue in exc.issues:
            print(f"  - {issue.message}", file=sys.stderr)


def main(argv: list[str] | None = None) -> None:
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv:
        build_argparser().print_help()
        return
    cmd, rest = argv[0], argv[1:]
    handler = _COMMANDS.get(cmd)
    if handler is None:
        print(f"Unknown command: {cmd}", file=sys.stderr)
        raise SystemExit(2)
    try:
        code = handler(rest)
    except _ENGINE_ERRORS as exc:
        _report(exc)
        code = 1
    raise SystemExit(code)


if __name__ == "__main__":
    main()
