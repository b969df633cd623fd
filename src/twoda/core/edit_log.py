"""
In-memory command log for pending (not yet applied) cell edits.

The log is what a viewer's undo/redo operates on. It is independent of the History Store,
which records applied, file-level actions only; nothing here touches the filesystem.

Examples:
    >>> log = EditLog()
    >>> log.stage(0, "points", "999", previous="20")
    >>> log.stage(0, "points", "1000", previous="999")
    >>> log.undo().new_text
    '1000'
    >>> [e.value for e in log.pending()]
    ['999']
    >>> log.redo().new_text
    '1000'
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .schema import Edit, Patch

__all__ = [
    "StagedEdit",
    "EditLog",
]


@dataclass(frozen=True, slots=True)
class StagedEdit:
    """
    One staged edit together with the text it replaced, so it can be inverted.

    Attributes:
        row_id (int): Target row id.
        column (str): Target column name.
        new_text (str): Text staged for the cell.
        previous (str): Text the cell showed before this edit.
    """

    row_id: int
    column: str
    new_text: str
    previous: str

    def inverse(self) -> StagedEdit:
        return StagedEdit(self.row_id, self.column, self.previous, self.new_text)


@dataclass
class EditLog:
    """Ordered undo/redo stacks of staged edits."""

    _done: list[StagedEdit] = field(default_factory=list)
    _undone: list[StagedEdit] = field(default_factory=list)

    def stage(self, row_id: int, column: str, new_text: str, *, previous: str = "") -> None:
        """Record a new edit. Staging clears the redo stack."""
        self._done.append(StagedEdit(row_id, column, new_text, previous))
        self._undone.clear()

    def undo(self) -> StagedEdit | None:
        """Pop the most recent edit; returns it (use ``.previous`` to restore the display)."""
        if not self._done:
            return None
        cmd = self._done.pop()
        self._undone.append(cmd)
        return cmd

    def redo(self) -> StagedEdit | None:
        if not self._undone:
            return None
        cmd = self._undone.pop()
        self._done.append(cmd)
        return cmd

    @property
    def can_undo(self) -> bool:
        return bool(self._done)

    @property
    def can_redo(self) -> bool:
        return bool(self._undone)

    def __len__(self) -> int:
        return len(self._done)

    def current_text(self, row_id: int, column: str) -> str | None:
        """Latest staged text for a cell, or None when the cell has no pending edit."""
        for cmd in reversed(self._done):
            if cmd.row_id == row_id and cmd.column == column:
                return cmd.new_text
        return None

    def pending(self) -> list[Edit]:
        """Staged edits collapsed per cell (last wins), ordered by first staging of each cell."""
        latest: dict[tuple[int, str], str] = {}
        for cmd in self._done:
            latest[(cmd.row_id, cmd.column)] = cmd.new_text
        return [Edit(row_id=r, column=c, value=v) for (r, c), v in latest.items()]

    def to_patch(self, family: str) -> Patch:
        return Patch(family=family, edits=self.pending())

    def clear(self) -> None:
        self._done.clear()
        self._undone.clear()
