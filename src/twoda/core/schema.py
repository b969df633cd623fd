"""
Pydantic v2 models for the JSON documents exchanged with the engine: patches, batch
files, validation issues, and history entries.

Responsibilities
- Define the canonical models for the patch file, batch file, and history file schemas.
- Reject malformed documents at the boundary (unknown keys, wrong scalar types).
- Normalize history timestamps to ISO-8601 strings.

Style
- Zero-IO (stdlib + pydantic only).
- Models are strict about scalar types: a row id given as a JSON string, or a value given
  as a JSON number, is a schema error rather than a silent coercion.

Patch file schema::

    {"family": "<name>", "edits": [{"row_id": 0, "column": "<name>", "value": "<text>"}]}

History file schema::

    [{"family": ..., "timestamp": "ISO-8601", "edit_count": 1,
      "patch_file": "optional", "exported": ["<path>", ...]}]
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, field_validator

__all__ = [
    "Edit",
    "Patch",
    "IssueKind",
    "ValidationIssue",
    "HistoryEntry",
    "BatchFile",
]


class Edit(BaseModel):
    """
    A single cell edit.

    Attributes:
        row_id (int): Row identity in the merged table.
        column (str): Column name in the merged table.
        value (str): New cell text, written verbatim into the owning file.

    Examples:
        >>> from twoda.core.schema import Edit
        >>> Edit(row_id=0, column="points", value="999").cell_key
        (0, 'points')
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    row_id: StrictInt
    column: StrictStr
    value: StrictStr

    @property
    def cell_key(self) -> tuple[int, str]:
        return (self.row_id, self.column)


class Patch(BaseModel):
    """
    A named set of edits for one family.

    Attributes:
        family (str): Family name the edits target.
        edits (list[Edit]): Edits in list order; later edits to the same cell win.
    """

    model_config = ConfigDict(extra="forbid")

    family: StrictStr = Field(..., min_length=1)
    edits: list[Edit] = Field(default_factory=list)

    def collapsed(self) -> list[Edit]:
        """
        Collapse repeated cells so the last occurrence in list order wins.

        Returns:
            list[Edit]: One edit per (row_id, column), ordered by first appearance of the cell.
        """
        latest: dict[tuple[int, str], Edit] = {}
        for edit in self.edits:
            latest[edit.cell_key] = edit
        return list(latest.values())


IssueKind = Literal["schema", "unknown_family", "unknown_row", "unknown_column", "merge"]


class ValidationIssue(BaseModel):
    """
    One problem found while validating a patch.

    Attributes:
        kind (IssueKind): Category of the problem.
        message (str): Human-readable description.
        edit_index (int | None): Position of the offending edit in the patch, if any.
        row_id (int | None): Offending row id, for unknown_row issues.
        column (str | None): Offending column, for unknown_column issues.
    """

    model_config = ConfigDict(frozen=True)

    kind: IssueKind
    message: str
    edit_index: int | None = None
    row_id: int | None = None
    column: str | None = None


class HistoryEntry(BaseModel):
    """
    Record of one applied patch.

    Attributes:
        family (str): Patched family.
        timestamp (str): ISO-8601 time the patch was applied.
        edit_count (int): Number of edits in the applied patch.
        patch_file (str | None): Path of the patch document, when applied from a file.
        exported (list[str]): Paths of the files written by the apply.

    Raises:
        pydantic.ValidationError: If timestamp is not ISO-8601 or edit_count is negative.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    family: StrictStr
    timestamp: str
    edit_count: StrictInt = Field(..., ge=0)
    patch_file: str | None = None
    exported: list[str] = Field(default_factory=list)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _iso_timestamp(cls, v: object) -> str:
        if isinstance(v, datetime):
            return v.isoformat()
        if not isinstance(v, str):
            raise ValueError("timestamp must be an ISO-8601 string")
        datetime.fromisoformat(v)
        return v

    @property
    def applied_at(self) -> datetime:
        return datetime.fromisoformat(self.timestamp)


class BatchFile(BaseModel):
    """
    A batch of patch files applied against one scan.

    Attributes:
        roots (list[str]): Root directories to scan.
        output_dir (str): Directory receiving every patched file.
        patches (list[str]): Patch file paths, applied in order.
        history_file (str | None): Optional history log receiving one entry per applied patch.
    """

    model_config = ConfigDict(extra="forbid")

    roots: list[StrictStr] = Field(..., min_length=1)
    output_dir: StrictStr
    patches: list[StrictStr] = Field(default_factory=list)
    history_file: StrictStr | None = None
