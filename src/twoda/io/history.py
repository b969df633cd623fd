"""
Append-only history of applied patches, and restoration of original files.

History file layout (JSON array, oldest first):
[
  {
    "family": "achievements",
    "timestamp": "ISO-8601",
    "edit_count": 1,
    "patch_file": "patches/points.json",
    "exported": ["out/achievements_ep1.csv"]
  }
]

Notes:
- Loading a missing file yields an empty history; a malformed file raises SerializationError.
- Entries are only ever appended. The file is rewritten wholesale (atomically) on append.
- Filesystem undo copies pristine member files back over exported copies (restore_entry);
  it never edits the history itself.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime

from pydantic import TypeAdapter, ValidationError

from twoda.core.errors import SerializationError
from twoda.core.schema import HistoryEntry

from .errors import IoError, IoWriteError
from .fs import commit_staged, discard, rename_atomic, stage_bytes
from .logging import get_logger
from .scanner import ScanResult

__all__ = [
    "HistoryFile",
    "load_history",
    "append_entry",
    "new_entry",
    "restore_entry",
]

log = get_logger(__name__)

_ENTRIES = TypeAdapter(list[HistoryEntry])


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


def new_entry(
    family: str,
    edit_count: int,
    exported: list[str],
    *,
    patch_file: str | None = None,
    timestamp: str | None = None,
) -> HistoryEntry:
    """Build a HistoryEntry stamped with the current UTC time unless a timestamp is given."""
    return HistoryEntry(
        family=family,
        timestamp=timestamp or _utc_now_iso(),
        edit_count=edit_count,
        patch_file=patch_file,
        exported=list(exported),
    )


@dataclass
class HistoryFile:
    """
    In-memory view of a history file.

    Attributes:
        path (str | None): Backing file; None for a detached, in-memory history.
        entries (list[HistoryEntry]): Entries in append (oldest-first) order.
    """

    path: str | None = None
    entries: list[HistoryEntry] = field(default_factory=list)

    @classmethod
    def load(cls, path: str | os.PathLike[str]) -> HistoryFile:
        """
        Load a history file.

        Returns:
            HistoryFile: Empty when the file does not exist.

        Raises:
            SerializationError: If the file is not UTF-8 JSON holding an array of valid entries.
            IoError: If the file exists but cannot be read.
        """
        p = os.fspath(path)
        if not os.path.exists(p):
            return cls(path=p)
        try:
            with open(p, encoding="utf-8") as fh:
                raw = fh.read()
        except OSError as exc:
            raise IoError(f"failed to read history {p!r}: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise SerializationError(f"{p}: history is not valid UTF-8: {exc}") from exc
        if not raw.strip():
            return cls(path=p)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise SerializationError(f"{p}: malformed history JSON: {exc}") from exc
        if not isinstance(data, list):
            raise SerializationError(f"{p}: history must be a JSON array")
        try:
            entries = _ENTRIES.validate_python(data)
        except ValidationError as exc:
            raise SerializationError(f"{p}: invalid history entry: {exc}") from exc
        return cls(path=p, entries=entries)

    def to_json_obj(self) -> list[dict]:
        return [e.model_dump(exclude_none=True) for e in self.entries]

    def save(self) -> None:
        """
        Persist atomically (tmp → fsync → rename).

        Raises:
            IoWriteError: If the history file cannot be written.
        """
        if self.path is None:
            return
        payload = json.dumps(self.to_json_obj(), indent=2).encode("utf-8")
        try:
            tmp = stage_bytes(self.path, payload)
        except OSError as exc:
            raise IoWriteError(f"failed to write history {self.path!r}: {exc}") from exc
        try:
            rename_atomic(tmp, self.path)
        except OSError as exc:
            discard(tmp)
            raise IoWriteError(f"failed to write history {self.path!r}: {exc}") from exc

    def append(self, entry: HistoryEntry) -> None:
        """Append one entry and persist the file when it has a backing path."""
        self.entries.append(entry)
        self.save()
        log.info(
            "history_appended",
            path=self.path,
            family=entry.family,
            edit_count=entry.edit_count,
            files=len(entry.exported),
        )

    # ---------------------------------------------------------------------
    # Queries
    # ---------------------------------------------------------------------
    def entries_newest_first(self) -> list[HistoryEntry]:
        return list(reversed(self.entries))

    def for_family(self, family: str) -> list[HistoryEntry]:
        """Entries for one family, newest first."""
        return [e for e in reversed(self.entries) if e.family == family]

    def latest(self, family: str | None = None) -> HistoryEntry | None:
        for e in reversed(self.entries):
            if family is None or e.family == family:
                return e
        return None

    def families(self) -> list[str]:
        """Distinct family names, sorted."""
        return sorted({e.family for e in self.entries})

    def total_entries(self) -> int:
        return len(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


def load_history(path: str | os.PathLike[str]) -> list[HistoryEntry]:
    """Entries of a history file, oldest first (empty if the file is missing)."""
    return HistoryFile.load(path).entries


def append_entry(path: str | os.PathLike[str], entry: HistoryEntry) -> HistoryFile:
    """Load, append one entry, and save. Returns the updated history."""
    history = HistoryFile.load(path)
    history.append(entry)
    return history


def restore_entry(scan: ScanResult, entry: HistoryEntry, output_dir: str) -> list[str]:
    """
    Copy the pristine member files behind an entry's exports back into output_dir.

    Each exported path is matched by file name to a member of the entry's family in the
    scan; the member's current bytes on disk (originals are never modified by apply) are
    written to output_dir under the same name. All copies are staged before any is renamed.

    Args:
        scan (ScanResult): Scan of the original roots.
        entry (HistoryEntry): Entry to undo.
        output_dir (str): Directory receiving the restored files.

    Returns:
        list[str]: Restored paths.

    Raises:
        UnknownFamily: If the entry's family is not in the scan.
        IoError: If an exported file has no matching member, or a member cannot be read.
        IoWriteError: If staging or renaming fails.
    """
    family = scan.family(entry.family)
    by_name = {m.filename: m for m in family.members}

    planned: list[tuple[str, bytes]] = []
    for exported in entry.exported:
        name = os.path.basename(exported)
        member = by_name.get(name)
        if member is None:
            raise IoError(f"no original member named {name!r} in family {entry.family!r}")
        planned.append((os.path.join(output_dir, name), scan.read_source(member.path)))

    staged: list[tuple[str, str]] = []
    try:
        for dest, payload in planned:
            staged.append((stage_bytes(dest, payload), dest))
        commit_staged(staged)
    except OSError as exc:
        for tmp, _dest in staged:
            discard(tmp)
        raise IoWriteError(f"failed to restore files into {output_dir!r}: {exc}") from exc

    restored = [dest for dest, _payload in planned]
    log.info("history_restored", family=entry.family, files=restored)
    return restored
