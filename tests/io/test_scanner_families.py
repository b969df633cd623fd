import os
from pathlib import Path

import pytest

from twoda.core.errors import UnknownFamily
from twoda.io.config import EngineSettings
from twoda.io.errors import IoScanError
from twoda.io.scanner import scan, split_suffix


@pytest.mark.parametrize(
    ("stem", "expected"),
    [
        ("achievements", ("achievements", None)),
        ("achievements_ep1", ("achievements", "ep1")),
        ("item_variations_vala", ("item_variations", "vala")),
        ("item_variations", ("item_variations", None)),
        ("spells_xyz", ("spells_xyz", None)),
        ("spells_EP1", ("spells", "ep1")),
        ("_ep1", ("_ep1", None)),
    ],
)
def test_split_suffix(stem: str, expected) -> None:
    assert split_suffix(stem) == expected


def test_scan_groups_members_base_first_then_by_suffix(make_table, tmp_path: Path) -> None:
    make_table("items_val.csv", "id\n0\n")
    make_table("items.csv", "id\n0\n")
    make_table("items_drk.csv", "id\n0\n")
    make_table("sub/spells.csv", "id\n0\n")
    make_table("notes.txt", "not a table")

    result = scan(tmp_path / "data")
    assert result.family_names() == ["items", "spells"]
    assert result.total_files == 4
    assert [(os.path.basename(p), s, b) for p, s, b in result.members("items")] == [
        ("items.csv", None, True),
        ("items_drk.csv", "drk", False),
        ("items_val.csv", "val", False),
    ]
    assert result.list_families() == [("items", 3), ("spells", 1)]


def test_scan_top_level_only_when_not_recursive(make_table, tmp_path: Path) -> None:
    make_table("items.csv", "id\n0\n")
    make_table("sub/spells.csv", "id\n0\n")
    result = scan(tmp_path / "data", EngineSettings(recursive=False))
    assert result.family_names() == ["items"]


def test_search_is_case_insensitive_substring(make_table, tmp_path: Path) -> None:
    make_table("Achievements.csv", "id\n0\n")
    make_table("item_props.csv", "id\n0\n")
    result = scan(tmp_path / "data")
    assert result.search("ACHIEVE") == ["Achievements"]
    assert result.search("e") == ["Achievements", "item_props"]
    assert result.search("zzz") == []


def test_unknown_family_and_missing_root(tmp_path: Path, achievements: Path) -> None:
    result = scan(achievements)
    with pytest.raises(UnknownFamily):
        result.family("nope")
    with pytest.raises(IoScanError):
        scan(tmp_path / "missing")
    with pytest.raises(IoScanError):
        scan([])


def test_multiple_roots_and_duplicate_members(make_table, tmp_path: Path) -> None:
    base_root = tmp_path / "base"
    dlc_root = tmp_path / "dlc"
    make_table("items.csv", "id\n0\n", root=base_root)
    make_table("items_ep1.csv", "id\n1\n", root=dlc_root)
    make_table("items.csv", "id\n9\n", root=dlc_root)

    result = scan([base_root, dlc_root])
    assert result.roots == (str(base_root), str(dlc_root))
    paths = [p for p, _s, _b in result.members("items")]
    assert paths == [str(base_root / "items.csv"), str(dlc_root / "items_ep1.csv")]
    assert len(result.warnings) == 1
    assert result.warnings[0].path == str(dlc_root / "items.csv")


def test_tables_are_parsed_lazily_and_cached(achievements: Path) -> None:
    result = scan(achievements)
    base = result.family("achievements").base
    assert base is not None
    t1 = result.table_for(base)
    t2 = result.table_for(base.path)
    assert t1 is t2

    uncached = scan(achievements, EngineSettings(cache_tables=False))
    b = uncached.family("achievements").base
    assert uncached.table_for(b) is not uncached.table_for(b)
