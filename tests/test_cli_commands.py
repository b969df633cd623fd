import json
import logging
from pathlib import Path

import pytest
import structlog

from twoda.cli import main


@pytest.fixture(autouse=True)
def _isolated(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def _run(*argv: str) -> int:
    with pytest.raises(SystemExit) as info:
        main(list(argv))
    return info.value.code


def _write_patch(path: Path, edits: list[dict]) -> Path:
    path.write_text(json.dumps({"family": "achievements", "edits": edits}))
    return path


def test_no_arguments_prints_help(capsys) -> None:
    main([])
    assert "usage: twoda" in capsys.readouterr().out


def test_unknown_command_exits_2(capsys) -> None:
    assert _run("frobnicate") == 2
    assert "Unknown command: frobnicate" in capsys.readouterr().err


def test_scan_list_and_search(achievements: Path, capsys) -> None:
    root = str(achievements)
    assert _run("scan", "-r", root) == 0
    assert "Found 2 files in 1 families" in capsys.readouterr().out

    assert _run("list-families", "-r", root, "--members") == 0
    out = capsys.readouterr().out
    assert "achievements (2 files)" in out
    assert "achievements_ep1.csv [ep1]" in out
    assert "achievements.csv [base]" in out

    assert _run("search", "-r", root, "ACH") == 0
    assert "Found 1 families matching 'ACH'" in capsys.readouterr().out
    assert _run("search", "-r", root, "zzz") == 0
    assert "No families found" in capsys.readouterr().out


def test_show_filter_and_explain(achievements: Path, capsys) -> None:
    root = str(achievements)
    assert _run("show", "-r", root, "-f", "achievements", "-n", "1") == 0
    out = capsys.readouterr().out
    assert "Rows: 2, Columns: 3" in out
    assert "0\tA\t20" in out
    assert "... (1 more rows)" in out

    assert _run("filter", "-r", root, "-f", "achievements", "--column", "name", "--value", "b") == 0
    assert "1\tB\t5" in capsys.readouterr().out

    assert _run("explain", "-r", root, "-f", "achievements", "--row", "0", "--col", "points") == 0
    out = capsys.readouterr().out
    assert "Value: 20" in out
    assert f"2. {achievements / 'achievements_ep1.csv'} <-- winner" in out
    assert f"1. {achievements / 'achievements.csv'}\n" in out


def test_engine_errors_exit_1(achievements: Path, capsys) -> None:
    assert _run("show", "-r", str(achievements), "-f", "spells") == 1
    assert "error:" in capsys.readouterr().err


def test_create_validate_patch_history_restore(achievements: Path, tmp_path: Path, capsys) -> None:
    root = str(achievements)
    patch = tmp_path / "points.json"
    assert _run("create-patch", "-f", "achievements", "-o", str(patch), "-e", "0:points:999") == 0
    assert json.loads(patch.read_text())["edits"][0]["value"] == "999"

    assert _run("validate", "-r", root, "-p", str(patch)) == 0
    out = capsys.readouterr().out
    assert "OK: row 0, points -> '999' (source: achievements_ep1.csv)" in out

    out_dir = tmp_path / "out"
    assert _run("patch", "-r", root, "-p", str(patch), "-o", str(out_dir)) == 0
    assert (out_dir / "achievements_ep1.csv").read_bytes() == b"id,name,points\n0,,999\n1,B,5\n"
    assert not (out_dir / "achievements.csv").exists()
    assert (tmp_path / ".twoda-history.json").exists()
    capsys.readouterr()

    assert _run("history") == 0
    assert "achievements: 1 patches applied" in capsys.readouterr().out
    assert _run("history", "--json") == 0
    entries = json.loads(capsys.readouterr().out)
    assert entries[0]["edit_count"] == 1

    assert _run("restore", "-r", root, "-f", "achievements", "-o", str(out_dir)) == 0
    assert (out_dir / "achievements_ep1.csv").read_bytes() == (
        achievements / "achievements_ep1.csv"
    ).read_bytes()


def test_invalid_patch_is_rejected(achievements: Path, tmp_path: Path, capsys) -> None:
    patch = _write_patch(tmp_path / "bad.json", [{"row_id": 99, "column": "points", "value": "1"}])
    assert _run("validate", "-r", str(achievements), "-p", str(patch)) == 1
    assert "INVALID: edit 0: row id 99 not found" in capsys.readouterr().out

    out_dir = tmp_path / "out"
    assert _run("patch", "-r", str(achievements), "-p", str(patch), "-o", str(out_dir)) == 1
    assert "row id 99 not found" in capsys.readouterr().err
    assert not out_dir.exists()


def test_dry_run_and_no_history(achievements: Path, tmp_path: Path, capsys) -> None:
    patch = _write_patch(tmp_path / "p.json", [{"row_id": 0, "column": "name", "value": "Z"}])
    out_dir = tmp_path / "out"
    assert _run("patch", "-r", str(achievements), "-p", str(patch), "-o", str(out_dir), "--dry-run") == 0
    assert "achievements.csv (1 edits)" in capsys.readouterr().out
    assert not out_dir.exists()

    assert _run("patch", "-r", str(achievements), "-p", str(patch), "-o", str(out_dir), "--no-history") == 0
    assert (out_dir / "achievements.csv").exists()
    assert not (tmp_path / ".twoda-history.json").exists()


def test_export_and_parse(achievements: Path, tmp_path: Path, capsys) -> None:
    dest = tmp_path / "merged.json"
    assert _run("export", "-r", str(achievements), "-f", "achievements", "--format", "json", "-o", str(dest)) == 0
    assert json.loads(dest.read_text())["family"] == "achievements"

    assert _run("parse", str(achievements / "achievements_ep1.csv")) == 0
    out = capsys.readouterr().out
    assert "Columns (3): id, name, points" in out
    assert "Rows: 2" in out


def test_batch_commands(achievements: Path, tmp_path: Path, capsys) -> None:
    batch = tmp_path / "batch.json"
    assert _run(
        "create-batch", "-o", str(batch), "-r", str(achievements), "--export-dir", str(tmp_path / "out")
    ) == 0
    doc = json.loads(batch.read_text())
    assert doc["patches"] == ["patch1.json", "patch2.json"]

    _write_patch(tmp_path / "patch1.json", [{"row_id": 1, "column": "points", "value": "6"}])
    assert _run("batch", "-b", str(batch)) == 1
    out = capsys.readouterr()
    assert "total edits applied" in out.out
    assert "patch2.json" in out.out
    assert "1 patch(es) failed" in out.err
    assert (tmp_path / "out" / "achievements_ep1.csv").exists()
