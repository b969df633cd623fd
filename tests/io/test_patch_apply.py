import json
import os
from pathlib import Path

import pytest

from twoda.core.errors import PatchValidationError, SerializationError
from twoda.core.schema import Edit, Patch
from twoda.io import fs
from twoda.io.errors import IoError, IoWriteError
from twoda.io.history import load_history
from twoda.io.patch import (
    apply_patch,
    create_patch_template,
    load_patch,
    parse_example,
    parse_patch,
    plan_patch,
    save_patch,
    validate_patch,
)
from twoda.io.scanner import scan

POINTS_999 = {"family": "achievements", "edits": [{"row_id": 0, "column": "points", "value": "999"}]}


def _snapshot(root: Path) -> dict[str, bytes]:
    return {p.name: p.read_bytes() for p in sorted(root.iterdir())}


def test_valid_patch_has_no_issues(achievements: Path) -> None:
    assert validate_patch(scan(achievements), POINTS_999) == []


def test_unknown_row_is_reported_and_nothing_is_written(achievements: Path, tmp_path: Path) -> None:
    result = scan(achievements)
    doc = {"family": "achievements", "edits": [{"row_id": 99, "column": "points", "value": "1"}]}

    issues = validate_patch(result, doc)
    assert [i.kind for i in issues] == ["unknown_row"]
    assert "row id 99 not found" in issues[0].message
    assert issues[0].edit_index == 0

    out = tmp_path / "out"
    with pytest.raises(PatchValidationError) as info:
        apply_patch(result, doc, out, tmp_path / "history.json")
    assert info.value.issues[0].row_id == 99
    assert not out.exists()
    assert not (tmp_path / "history.json").exists()


def test_unknown_column_family_and_schema_issues(achievements: Path) -> None:
    result = scan(achievements)
    bad_col = {"family": "achievements", "edits": [{"row_id": 0, "column": "nope", "value": "1"}]}
    assert [i.kind for i in validate_patch(result, bad_col)] == ["unknown_column"]

    bad_family = {"family": "spells", "edits": []}
    assert [i.kind for i in validate_patch(result, bad_family)] == ["unknown_family"]

    bad_shape = {"family": "achievements", "edits": [{"row_id": "0", "column": "points", "value": "1"}]}
    issues = validate_patch(result, bad_shape)
    assert issues and all(i.kind == "schema" for i in issues)
    assert issues[0].edit_index == 0


def test_apply_writes_owning_file_and_records_history(achievements: Path, tmp_path: Path) -> None:
    before = _snapshot(achievements)
    out = tmp_path / "out"
    history = tmp_path / "history.json"

    res = apply_patch(scan(achievements), POINTS_999, out, history, patch_file="points.json")

    assert res.exported == [str(out / "achievements_ep1.csv")]
    assert res.edits_applied == 1
    assert sorted(os.listdir(out)) == ["achievements_ep1.csv"]
    assert (out / "achievements_ep1.csv").read_bytes() == b"id,name,points\n0,,999\n1,B,5\n"
    # originals untouched
    assert _snapshot(achievements) == before

    entries = load_history(history)
    assert len(entries) == 1
    assert entries[0].family == "achievements"
    assert entries[0].edit_count == 1
    assert entries[0].patch_file == "points.json"
    assert entries[0].exported == res.exported
    assert res.history_entry == entries[0]


def test_reapplying_is_byte_identical(achievements: Path, tmp_path: Path) -> None:
    result = scan(achievements)
    apply_patch(result, POINTS_999, tmp_path / "one")
    apply_patch(result, POINTS_999, tmp_path / "two")
    apply_patch(scan(achievements), POINTS_999, tmp_path / "two")
    assert _snapshot(tmp_path / "one") == _snapshot(tmp_path / "two")


def test_edits_route_to_each_cells_owner(achievements: Path, tmp_path: Path) -> None:
    doc = {
        "family": "achievements",
        "edits": [
            {"row_id": 1, "column": "name", "value": "Bee"},
            {"row_id": 0, "column": "name", "value": "Ay"},
            {"row_id": 1, "column": "name", "value": "Bea"},
        ],
    }
    plans = plan_patch(scan(achievements), doc)
    assert [p.filename for p in plans] == ["achievements.csv", "achievements_ep1.csv"]
    assert plans[0].as_mapping() == {(0, "name"): "Ay"}
    # last occurrence wins
    assert plans[1].as_mapping() == {(1, "name"): "Bea"}

    out = tmp_path / "out"
    res = apply_patch(scan(achievements), doc, out)
    assert res.edits_applied == 2
    assert (out / "achievements.csv").read_bytes() == b"id,name,points\n0,Ay,10\n"
    assert (out / "achievements_ep1.csv").read_bytes() == b"id,name,points\n0,,20\n1,Bea,5\n"


def test_empty_cell_attributed_to_base_is_added_to_base(make_table, tmp_path: Path) -> None:
    make_table("b.csv", "id,name\n0,foo\n")
    make_table("b_ep1.csv", "id,bonus\n1,7\n")
    doc = {"family": "b", "edits": [{"row_id": 1, "column": "name", "value": "bar"}]}
    out = tmp_path / "out"
    res = apply_patch(scan(tmp_path / "data"), doc, out)
    assert [os.path.basename(p) for p in res.exported] == ["b.csv"]
    assert (out / "b.csv").read_bytes() == b"id,name\n0,foo\n1,bar\n"


def test_refuses_to_overwrite_originals(achievements: Path) -> None:
    before = _snapshot(achievements)
    with pytest.raises(IoWriteError):
        apply_patch(scan(achievements), POINTS_999, achievements)
    assert _snapshot(achievements) == before


def test_patch_documents_and_templates(tmp_path: Path) -> None:
    assert parse_example("3:label:a:b") == Edit(row_id=3, column="label", value="a:b")
    with pytest.raises(SerializationError):
        parse_example("x:label:1")
    with pytest.raises(SerializationError):
        parse_example("3:label")

    empty = create_patch_template("achievements")
    assert empty == Patch(family="achievements", edits=[])
    filled = create_patch_template("achievements", ["0:points:999"])
    assert filled.edits == [Edit(row_id=0, column="points", value="999")]

    path = tmp_path / "p.json"
    save_patch(filled, path)
    assert json.loads(path.read_text())["family"] == "achievements"
    assert load_patch(path) == filled

    with pytest.raises(SerializationError):
        parse_patch("{not json")
    with pytest.raises(SerializationError):
        parse_patch({"edits": []})
    with pytest.raises(IoError):
        load_patch(tmp_path / "missing.json")


def test_malformed_json_is_reported_as_an_issue(achievements: Path, tmp_path: Path) -> None:
    result = scan(achievements)
    issues = validate_patch(result, "{not json")
    assert [i.kind for i in issues] == ["schema"]
    assert "malformed patch JSON" in issues[0].message

    with pytest.raises(PatchValidationError):
        apply_patch(result, b"{not json", tmp_path / "out")
    assert not (tmp_path / "out").exists()


def test_unencodable_value_in_fallback_encoded_file(tmp_path: Path) -> None:
    root = tmp_path / "data"
    root.mkdir()
    (root / "items.csv").write_bytes("id,name\n0,café\n".encode("cp1252"))
    doc = {"family": "items", "edits": [{"row_id": 0, "column": "name", "value": "日本"}]}

    with pytest.raises(IoWriteError) as info:
        apply_patch(scan(root), doc, tmp_path / "out")
    assert "items.csv" in str(info.value) and "cp1252" in str(info.value)
    assert not (tmp_path / "out").exists()

    accented = {"family": "items", "edits": [{"row_id": 0, "column": "name", "value": "née"}]}
    apply_patch(scan(root), accented, tmp_path / "out")
    assert (tmp_path / "out" / "items.csv").read_bytes() == "id,name\n0,née\n".encode("cp1252")


def test_failed_rename_rolls_back_earlier_outputs(
    make_table, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    make_table("a.csv", "id,x,y\n0,1,2\n")
    make_table("a_ep1.csv", "id,x,y\n1,5,6\n")
    out = tmp_path / "out"
    out.mkdir()
    (out / "a.csv").write_text("OLD")
    doc = {
        "family": "a",
        "edits": [
            {"row_id": 0, "column": "x", "value": "9"},
            {"row_id": 1, "column": "y", "value": "7"},
        ],
    }

    real_rename = fs.rename_atomic
    calls = []

    def _second_rename_fails(src: str, dst: str) -> None:
        calls.append(dst)
        if len(calls) == 2:
            raise OSError("disk full")
        real_rename(src, dst)

    monkeypatch.setattr(fs, "rename_atomic", _second_rename_fails)
    with pytest.raises(IoWriteError):
        apply_patch(scan(tmp_path / "data"), doc, out, tmp_path / "history.json")

    assert len(calls) == 2
    assert sorted(os.listdir(out)) == ["a.csv"]
    assert (out / "a.csv").read_text() == "OLD"
    assert not (tmp_path / "history.json").exists()

    monkeypatch.setattr(fs, "rename_atomic", real_rename)
    apply_patch(scan(tmp_path / "data"), doc, out)
    assert (out / "a.csv").read_bytes() == b"id,x,y\n0,9,2\n"
    assert sorted(os.listdir(out)) == ["a.csv", "a_ep1.csv"]
