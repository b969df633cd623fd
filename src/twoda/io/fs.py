"""
Filesystem helpers for twoda.io (file protocol baseline).

Responsibilities
- Provide a minimal stdlib-only abstraction for the filesystem operations used by twoda.io:
  directory creation, safe write handles, fsync, atomic renames, and table-file walking.
- Establish clear semantics for the atomic write path: tmp write → fsync → atomic rename.

Notes
- Atomicity via os.replace is guaranteed only when src and dst reside on the same filesystem;
  staged files are therefore always created next to their final path.
- All helpers are synchronous; callers decide on concurrency/locking if/when needed.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import BinaryIO


def makedirs(path: str, exist_ok: bool = True) -> None:
    """
    Create directories recursively.

    Args:
        path (str): Directory path to create.
        exist_ok (bool): Do not error if the directory already exists.
    """
    os.makedirs(path, exist_ok=exist_ok)


@contextmanager
def open_write(path: str) -> Iterator[BinaryIO]:
    """
    Open a file for binary write as a context manager; the handle is fsynced before close.

    Args:
        path (str): Destination path to open in write-binary mode.

    Yields:
        BinaryIO: A writable file handle.

    Notes:
        Caller is responsible for the atomic os.replace of a temporary file to its final path.
    """
    fh = open(path, "wb")
    try:
        yield fh
        fsync_file(fh)
    finally:
        fh.close()


def fsync_file(fh: BinaryIO) -> None:
    """Flush and fsync an open file handle."""
    fh.flush()
    os.fsync(fh.fileno())


def fsync_path(path: str) -> None:
    """Open a file written by another library and fsync it."""
    with open(path, "rb") as fh:
        os.fsync(fh.fileno())


def rename_atomic(src: str, dst: str) -> None:
    """
    Atomically rename src -> dst on the same filesystem.

    Notes:
        Uses os.replace, which is atomic only if src and dst reside on the same filesystem.
    """
    os.replace(src, dst)


def read_bytes(path: str) -> bytes:
    with open(path, "rb") as fh:
        return fh.read()


def tmp_path_for(path: str) -> str:
    """Unique sibling temp path for a final destination (same directory, same filesystem)."""
    head, tail = os.path.split(path)
    return os.path.join(head, f".{tail}.{uuid.uuid4().hex}.tmp")


def stage_bytes(path: str, payload: bytes) -> str:
    """
    Write payload to a temporary sibling of path and fsync it.

    Args:
        path (str): Final destination the staged file is meant to replace.
        payload (bytes): File contents.

    Returns:
        str: The staged temporary path. Commit with rename_atomic(tmp, path) or
        commit_staged, or drop with discard(tmp).
    """
    makedirs(os.path.dirname(path) or ".", exist_ok=True)
    tmp = tmp_path_for(path)
    try:
        with open_write(tmp) as fh:
            fh.write(payload)
    except OSError:
        discard(tmp)
        raise
    return tmp


def discard(path: str) -> None:
    """Remove a staged file if it exists."""
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def write_bytes_atomic(path: str, payload: bytes) -> None:
    """Stage then atomically rename a payload into place."""
    tmp = stage_bytes(path, payload)
    try:
        rename_atomic(tmp, path)
    except OSError:
        discard(tmp)
        raise


def commit_staged(staged: list[tuple[str, str]]) -> None:
    """
    Rename several staged files into place as one unit.

    Existing destinations are first moved aside to sibling backups. If any rename fails,
    destinations already written are removed, the backups are moved back, and the staged
    files are discarded before the error propagates. Backups are deleted on success.

    Args:
        staged (list[tuple[str, str]]): (staged tmp path, final destination) pairs, as
            returned by stage_bytes.

    Raises:
        OSError: If moving aside or renaming fails (after rolling back).
    """
    backups: list[tuple[str, str]] = []
    committed: list[str] = []
    try:
        for _tmp, dest in staged:
            if os.path.exists(dest):
                backup = tmp_path_for(dest) + ".bak"
                os.replace(dest, backup)
                backups.append((backup, dest))
        for tmp, dest in staged:
            rename_atomic(tmp, dest)
            committed.append(dest)
    except OSError:
        for dest in committed:
            discard(dest)
        for backup, dest in backups:
            os.replace(backup, dest)
        for tmp, _dest in staged:
            discard(tmp)
        raise
    for backup, _dest in backups:
        discard(backup)


def has_extension(path: str, extension: str) -> bool:
    """Case-insensitive extension check (".csv" matches "ITEMS.CSV")."""
    return path.lower().endswith(extension.lower())


def walk_table_files(
    root: str,
    extension: str,
    *,
    recursive: bool = True,
    onerror: Callable[[OSError], None] | None = None,
) -> list[str]:
    """
    Collect table files beneath a root directory in deterministic (sorted) order.

    Args:
        root (str): Directory to walk.
        extension (str): File extension to keep (e.g., ".csv"), matched case-insensitively.
        recursive (bool): Descend into subdirectories when True.
        onerror (Callable[[OSError], None] | None): Called for unreadable subdirectories.

    Returns:
        list[str]: Full paths to matching files.

    Raises:
        NotADirectoryError: If root is not a directory.
        OSError: If root itself cannot be listed.

    Notes:
        Symlinked directories are not followed.
    """
    if not os.path.isdir(root):
        raise NotADirectoryError(root)
    if not recursive:
        names = sorted(os.listdir(root))
        return [
            os.path.join(root, n)
            for n in names
            if has_extension(n, extension) and os.path.isfile(os.path.join(root, n))
        ]
    out: list[str] = []
    # listdir first so an unreadable root raises instead of being reported via onerror
    os.listdir(root)
    for dirpath, dirnames, filenames in os.walk(root, onerror=onerror):
        dirnames.sort()
        for name in sorted(filenames):
            if has_extension(name, extension):
                out.append(os.path.join(dirpath, name))
    return out
