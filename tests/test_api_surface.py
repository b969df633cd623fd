import json
from pathlib import Path

import twoda
from twoda.core.cells import Integer, String
from twoda.io import EngineSettings, Workspace


def test_package_functions_end_to_end(achievements: Path, tmp_path: Path) -> None:
    result = twoda.scan(achievements)
    assert twoda.list_families(result) == [("achievements", 2)]
    assert twoda.search_families(result, "ach") == ["achievements"]
    assert [m[2] for m in twoda.members(result, "achievements")] == [True, False]

    table = twoda.merge(result, "achievements")
    assert twoda.columns(table) == ["id", "name", "points"]
    assert twoda.row_count(table) == 2
    assert twoda.row_id(table, 1) == 1
    value, source = twoda.cell(table, 1, 1)
    assert value == String("B") and source == str(achievements / "achievements_ep1.csv")
    assert twoda.filter_rows(table, "name", "A") == [0]

    skeleton = json.loads(twoda.create_patch("achievements"))
    assert skeleton == {"family": "achievements", "edits": []}

    doc = {"family": "achievements", "edits": [{"row_id": 0, "column": "points", "value": "999"}]}
    assert twoda.validate_patch(result, doc) == []
    history = tmp_path / "history.json"
    exported = twoda.apply_patch(result, doc, tmp_path / "out", history)
    assert exported == [str(tmp_path / "out" / "achievements_ep1.csv")]
    assert len(twoda.load_history(history)) == 1


def test_workspace_binds_settings_and_history(achievements: Path, tmp_path: Path) -> None:
    settings = EngineSettings(history_file=str(tmp_path / "h.json"))
    ws = Workspace(achievements, settings)
    assert ws.roots == (str(achievements),)
    assert ws.families() == [("achievements", 2)]
    assert ws.merge("achievements").value_at(0, "points") == Integer(20)

    patch = ws.create_patch("achievements", ["1:name:Bee"])
    assert [p.filename for p in ws.plan(patch)] == ["achievements_ep1.csv"]
    res = ws.apply(patch, str(tmp_path / "out"), patch_file="inline")
    assert res.history_entry is not None
    assert ws.history().latest("achievements").patch_file == "inline"

    restored = ws.restore(res.history_entry, str(tmp_path / "out"))
    assert Path(restored[0]).read_bytes() == (achievements / "achievements_ep1.csv").read_bytes()

    dest = ws.export("achievements", str(tmp_path / "m.csv"))
    assert Path(dest).read_text().startswith("id,name,points\n")
    assert ws.refresh() is ws.scan_result
