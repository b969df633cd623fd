"""
Core package for twoda contracts (cells, tables, schemas, errors, hashing, edit log).

## Contracts (single source of truth)
- Cells: the CellValue sum type and text classification.
- Tables: the Table/Row/Column model produced by the parser.
- Schemas: pydantic models for patch, batch, and history documents.
- Errors: the domain error taxonomy shared by every layer.
- Hashing: canonical JSON and SHA-256 fingerprints.
- Edit log: undo/redo over pending, not-yet-applied edits.

## Notes
- Zero-IO policy: stdlib + pydantic only; no file/network IO.
- Downstream, twoda.io reads files into these models, merges them, and writes patched copies.

## Examples
```python
from twoda.core.cells import classify, Integer
classify("20") == Integer(20)  # True

from twoda.core.schema import Patch
Patch.model_validate({"family": "achievements", "edits": []}).family  # 'achievements'
```
"""
