from __future__ import annotations

from pathlib import Path

import pytest

ACHIEVEMENTS_BASE = "id,name,points\n0,A,10\n"
ACHIEVEMENTS_EP1 = "id,name,points\n0,,20\n1,B,5\n"


def write_table(root: Path, name: str, text: str) -> Path:
    p = root / name
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(text.encode("utf-8"))
    return p


@pytest.fixture
def achievements(tmp_path: Path) -> Path:
    """Root directory holding the achievements family (base + ep1 variant)."""
    root = tmp_path / "data"
    write_table(root, "achievements.csv", ACHIEVEMENTS_BASE)
    write_table(root, "achievements_ep1.csv", ACHIEVEMENTS_EP1)
    return root


@pytest.fixture
def make_table(tmp_path: Path):
    """Factory writing a table file under tmp_path/data (or a given root)."""

    def _make(name: str, text: str, root: Path | None = None) -> Path:
        return write_table(root or tmp_path / "data", name, text)

    return _make
