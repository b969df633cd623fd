import json
import os
from pathlib import Path

import pytest

from twoda.core.errors import SerializationError, UnknownFamily
from twoda.io import fs
from twoda.io.errors import IoError, IoWriteError
from twoda.io.history import HistoryFile, append_entry, load_history, new_entry, restore_entry
from twoda.io.patch import apply_patch
from twoda.io.scanner import scan


def _entry(family: str, ts: str, count: int = 1):
    return new_entry(family, count, [f"out/{family}.csv"], timestamp=ts)


def test_missing_or_blank_history_is_empty(tmp_path: Path) -> None:
    assert load_history(tmp_path / "none.json") == []
    blank = tmp_path / "blank.json"
    blank.write_text("  \n")
    assert HistoryFile.load(blank).entries == []


@pytest.mark.parametrize(
    "content",
    [
        b"{not json",
        b'{"family": "a"}',
        b'[{"family": "a", "timestamp": "soon", "edit_count": 1}]',
        b"[\xff]",
    ],
)
def test_malformed_history_raises(tmp_path: Path, content: bytes) -> None:
    path = tmp_path / "history.json"
    path.write_bytes(content)
    with pytest.raises(SerializationError):
        load_history(path)


def test_append_only_and_queries(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    append_entry(path, _entry("items", "2025-01-01T00:00:00+00:00"))
    append_entry(path, _entry("spells", "2025-01-02T00:00:00+00:00", 3))
    history = append_entry(path, _entry("items", "2025-01-03T00:00:00+00:00", 2))

    on_disk = json.loads(path.read_text())
    assert [e["family"] for e in on_disk] == ["items", "spells", "items"]
    assert "patch_file" not in on_disk[0]

    reloaded = HistoryFile.load(path)
    assert len(reloaded) == 3 and reloaded.total_entries() == 3
    assert [e.timestamp for e in reloaded.entries_newest_first()][0] == "2025-01-03T00:00:00+00:00"
    assert [e.edit_count for e in reloaded.for_family("items")] == [2, 1]
    assert reloaded.latest().family == "items"
    assert reloaded.latest("spells").edit_count == 3
    assert reloaded.latest("weapons") is None
    assert reloaded.families() == ["items", "spells"]
    assert history.entries == reloaded.entries


def test_new_entry_stamps_current_time() -> None:
    entry = new_entry("items", 0, [])
    assert entry.applied_at.tzinfo is not None


def test_restore_copies_originals_back(achievements: Path, tmp_path: Path) -> None:
    out = tmp_path / "out"
    result = scan(achievements)
    applied = apply_patch(
        result,
        {"family": "achievements", "edits": [{"row_id": 0, "column": "points", "value": "999"}]},
        out,
        tmp_path / "history.json",
    )
    assert b"999" in (out / "achievements_ep1.csv").read_bytes()

    restored = restore_entry(result, applied.history_entry, str(out))
    assert restored == [str(out / "achievements_ep1.csv")]
    assert (out / "achievements_ep1.csv").read_bytes() == (
        achievements / "achievements_ep1.csv"
    ).read_bytes()
    # history itself is untouched by a restore
    assert len(load_history(tmp_path / "history.json")) == 1


def test_restore_rejects_unknown_members(achievements: Path, tmp_path: Path) -> None:
    result = scan(achievements)
    with pytest.raises(IoError):
        restore_entry(result, new_entry("achievements", 1, ["out/other.csv"]), str(tmp_path))
    with pytest.raises(UnknownFamily):
        restore_entry(result, new_entry("spells", 1, []), str(tmp_path))


def test_restore_is_all_or_nothing(
    achievements: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    out = tmp_path / "out"
    out.mkdir()
    (out / "achievements.csv").write_text("PATCHED BASE")
    (out / "achievements_ep1.csv").write_text("PATCHED EP1")
    entry = new_entry("achievements", 2, ["out/achievements.csv", "out/achievements_ep1.csv"])

    real_rename = fs.rename_atomic
    calls = []

    def _second_rename_fails(src: str, dst: str) -> None:
        calls.append(dst)
        if len(calls) == 2:
            raise OSError("disk full")
        real_rename(src, dst)

    monkeypatch.setattr(fs, "rename_atomic", _second_rename_fails)
    with pytest.raises(IoWriteError):
        restore_entry(scan(achievements), entry, str(out))

    assert sorted(os.listdir(out)) == ["achievements.csv", "achievements_ep1.csv"]
    assert (out / "achievements.csv").read_text() == "PATCHED BASE"
    assert (out / "achievements_ep1.csv").read_text() == "PATCHED EP1"
