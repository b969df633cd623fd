"""
twoda.io: Filesystem-facing layer: parse, scan, merge, patch, history, export.

## Responsibilities
- Parse CSV table files into twoda.core.table.Table values (parser).
- Discover table files under root directories and group them into families (scanner).
- Merge a family into a ResolvedTable with per-cell provenance (merger).
- Validate patches and write patched copies of the owning files, atomically (patch).
- Keep the append-only history of applied patches and restore original files (history).
- Export merged tables as csv/json/parquet (export).

## Public API
- EngineSettings: Configuration (env > TOML > defaults; defaults from twoda.core.constants).
- Workspace: Facade bound to settings and roots.

## Import DAG discipline
- Depends only on stdlib, polars/pyarrow, pydantic, structlog, and twoda.core.*.
- MUST NOT import twoda.cli.

## Examples
```python
from twoda.io import EngineSettings, Workspace

ws = Workspace(["data/base", "data/dlc"], EngineSettings())  # doctest: +SKIP
table = ws.merge("achievements")  # doctest: +SKIP
table.explain(0, "points").source  # doctest: +SKIP
```

## Notes
- Write path: tmp file → fsync → os.replace(tmp, final) on the same filesystem.
- Single-writer semantics: do not apply patches concurrently into the same output directory
  or history file.
"""

from __future__ import annotations

from .config import EngineSettings
from .workspace import Workspace

__all__ = [
    "EngineSettings",
    "Workspace",
]
