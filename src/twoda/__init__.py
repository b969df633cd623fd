"""
twoda: merge, provenance, and patch engine for 2DA CSV table families.

A family is a base table (``items.csv``) plus DLC/mod variants (``items_ep1.csv``, ...).
The engine merges a family into one ResolvedTable that records, per cell, which file supplies
the effective value, validates edits against that view, and writes patched copies of only the
files that own the edited cells.

## Layers
- twoda.core: zero-IO contracts: cells, tables, schemas, errors, hashing, edit log.
- twoda.io: parser, scanner, merger, patch engine, history, export, settings, logging.
- twoda.cli: argparse command surface (``twoda`` console script).

## Examples
```python
import twoda

result = twoda.scan("data/")  # doctest: +SKIP
table = twoda.merge(result, "achievements")  # doctest: +SKIP
twoda.cell(table, 0, 2)  # doctest: +SKIP
```
"""

from __future__ import annotations

from .api import (
    apply_patch,
    cell,
    columns,
    create_patch,
    filter_rows,
    list_families,
    load_history,
    members,
    merge,
    row_count,
    row_id,
    scan,
    search_families,
    validate_patch,
)

__version__ = "0.1.0"

__all__ = [
    "scan",
    "list_families",
    "members",
    "search_families",
    "merge",
    "columns",
    "row_count",
    "row_id",
    "cell",
    "filter_rows",
    "create_patch",
    "validate_patch",
    "apply_patch",
    "load_history",
    "__version__",
]
