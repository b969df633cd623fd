"""
Directory scanner and family grouping.

Responsibilities
- Walk one or more root directories for table files (EngineSettings.table_extension).
- Split each file stem into (base name, suffix) against the recognized suffix vocabulary.
- Group files into Families (one base plus variants) and expose lookup/search helpers.
- Defer parsing: tables are parsed on first use and optionally cached on the ScanResult.

Grouping rules
- "<base>_<suffix>.csv" with <suffix> in twoda.core.constants.RECOGNIZED_SUFFIXES is a
  variant of family <base>; every other file is the base of the family named by its full stem.
- Members are ordered base first, then variants alphabetically by suffix (merge order).
- A second file claiming an already-taken (family, suffix) slot is excluded and recorded as
  a ScanWarning; the first one in traversal order (roots in the given order, sorted paths
  within each root) is kept.

Failure modes
- A missing or unreadable root raises IoScanError.
- Unreadable files or subdirectories are skipped and recorded as ScanWarning entries.
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from twoda.core.constants import RECOGNIZED_SUFFIXES
from twoda.core.errors import UnknownFamily
from twoda.core.table import Table

from .config import EngineSettings
from .errors import IoError, IoScanError
from .fs import read_bytes, walk_table_files
from .logging import get_logger
from .parser import RawTable, parse, read_raw

__all__ = [
    "split_suffix",
    "SourceFile",
    "Family",
    "ScanWarning",
    "ScanResult",
    "scan",
]

log = get_logger(__name__)


def split_suffix(stem: str) -> tuple[str, str | None]:
    """
    Split a file stem into its family name and recognized suffix.

    Args:
        stem (str): File name without extension.

    Returns:
        tuple[str, str | None]: (base name, suffix) where suffix is None for a base file.

    Examples:
        >>> split_suffix("achievements_ep1")
        ('achievements', 'ep1')
        >>> split_suffix("item_variations")
        ('item_variations', None)
        >>> split_suffix("_ep1")
        ('_ep1', None)
    """
    head, sep, tail = stem.rpartition("_")
    if sep and head and tail.lower() in RECOGNIZED_SUFFIXES:
        return head, tail.lower()
    return stem, None


@dataclass(frozen=True, slots=True)
class SourceFile:
    """
    One member file of a family.

    Attributes:
        path (str): Path to the file as discovered under its root.
        suffix (str | None): Variant suffix, or None for the base file.
    """

    path: str
    suffix: str | None = None

    @property
    def is_base(self) -> bool:
        return self.suffix is None

    @property
    def filename(self) -> str:
        return os.path.basename(self.path)


@dataclass(frozen=True)
class Family:
    """
    A base table plus its recognized variants.

    Attributes:
        name (str): Family name (base filename without extension or suffix).
        members (tuple[SourceFile, ...]): Base first (if present), then variants sorted by suffix.
    """

    name: str
    members: tuple[SourceFile, ...]

    @property
    def base(self) -> SourceFile | None:
        for m in self.members:
            if m.is_base:
                return m
        return None

    @property
    def variants(self) -> tuple[SourceFile, ...]:
        return tuple(m for m in self.members if not m.is_base)

    @property
    def member_count(self) -> int:
        return len(self.members)

    def has_member(self, path: str) -> bool:
        return any(m.path == path for m in self.members)


@dataclass(frozen=True, slots=True)
class ScanWarning:
    """A file or directory skipped during scanning, with the reason."""

    path: str
    reason: str


def _member_key(m: SourceFile) -> tuple[int, str]:
    return (0, "") if m.suffix is None else (1, m.suffix)


@dataclass
class ScanResult:
    """
    Families discovered under one or more roots.

    Attributes:
        roots (tuple[str, ...]): Scanned root directories, in the order given.
        families (dict[str, Family]): Families keyed by name, sorted by name.
        warnings (list[ScanWarning]): Skipped files/directories.
        total_files (int): Number of table files grouped into families.
        settings (EngineSettings): Settings used for scanning and later parsing.

    Notes:
        - The result owns its table cache; do not share one instance across concurrent
          callers that mutate it.
    """

    roots: tuple[str, ...]
    families: dict[str, Family]
    warnings: list[ScanWarning] = field(default_factory=list)
    total_files: int = 0
    settings: EngineSettings = field(default_factory=EngineSettings)
    _tables: dict[str, Table] = field(default_factory=dict, repr=False)

    # ---------------------------------------------------------------------
    # Lookup
    # ---------------------------------------------------------------------
    def family(self, name: str) -> Family:
        """
        Return a family by exact name.

        Raises:
            UnknownFamily: If no family has that name.
        """
        try:
            return self.families[name]
        except KeyError:
            raise UnknownFamily(name) from None

    def has_family(self, name: str) -> bool:
        return name in self.families

    def family_names(self) -> list[str]:
        return list(self.families)

    def search(self, pattern: str) -> list[str]:
        """Family names containing pattern (case-insensitive), sorted."""
        needle = pattern.lower()
        return [name for name in self.families if needle in name.lower()]

    def list_families(self) -> list[tuple[str, int]]:
        return [(f.name, f.member_count) for f in self.families.values()]

    def members(self, name: str) -> list[tuple[str, str | None, bool]]:
        """(path, suffix or None, is_base) for each member of a family, in merge order."""
        return [(m.path, m.suffix, m.is_base) for m in self.family(name).members]

    def __iter__(self) -> Iterator[Family]:
        return iter(self.families.values())

    def __len__(self) -> int:
        return len(self.families)

    # ---------------------------------------------------------------------
    # Parsing (lazy)
    # ---------------------------------------------------------------------
    def read_source(self, path: str) -> bytes:
        """
        Read a member file's current bytes.

        Raises:
            IoError: If the file cannot be read.
        """
        try:
            return read_bytes(path)
        except OSError as exc:
            raise IoError(f"failed to read {path!r}: {exc}") from exc

    def table_for(self, source: SourceFile | str) -> Table:
        """
        Parse (or fetch from cache) the table of a member file.

        Raises:
            IoError: If the file cannot be read.
            ParseError: If the file is malformed.
        """
        path = source.path if isinstance(source, SourceFile) else source
        cached = self._tables.get(path)
        if cached is not None:
            return cached
        table = parse(self.read_source(path), path, self.settings)
        if self.settings.cache_tables:
            self._tables[path] = table
        return table

    def raw_for(self, source: SourceFile | str) -> RawTable:
        """Field-level view of a member file, always read fresh from disk."""
        path = source.path if isinstance(source, SourceFile) else source
        return read_raw(self.read_source(path), path, self.settings)

    def clear_cache(self) -> None:
        self._tables.clear()


def _as_roots(root: str | os.PathLike[str] | Iterable[str | os.PathLike[str]]) -> tuple[str, ...]:
    if isinstance(root, (str, os.PathLike)):
        return (os.fspath(root),)
    return tuple(os.fspath(r) for r in root)


def scan(
    root: str | os.PathLike[str] | Iterable[str | os.PathLike[str]],
    settings: EngineSettings | None = None,
) -> ScanResult:
    """
    Scan one or more roots and group table files into families.

    Args:
        root: A root directory or an iterable of root directories.
        settings (EngineSettings | None): Extension, recursion and parse settings.

    Returns:
        ScanResult: Families sorted by name, plus any scan warnings.

    Raises:
        IoScanError: If no root is given, or a root is missing or cannot be listed.

    Examples:
        >>> result = scan("data/")  # doctest: +SKIP
        >>> result.members("achievements")  # doctest: +SKIP
        [('data/achievements.csv', None, True), ('data/achievements_ep1.csv', 'ep1', False)]
    """
    settings = settings or EngineSettings()
    roots = _as_roots(root)
    if not roots:
        raise IoScanError("no root directory given")
    log.debug("scan_started", roots=list(roots), recursive=settings.recursive)

    warnings: list[ScanWarning] = []

    def _on_walk_error(exc: OSError) -> None:
        path = exc.filename or "<unknown>"
        warnings.append(ScanWarning(str(path), f"unreadable directory: {exc.strerror or exc}"))
        log.warning("scan_file_skipped", path=str(path), reason="unreadable directory")

    slots: dict[tuple[str, str | None], SourceFile] = {}
    for r in roots:
        try:
            paths = walk_table_files(
                r, settings.table_extension, recursive=settings.recursive, onerror=_on_walk_error
            )
        except OSError as exc:
            raise IoScanError(f"cannot scan root {r!r}: {exc}") from exc

        for path in paths:
            if not os.access(path, os.R_OK):
                warnings.append(ScanWarning(path, "file is not readable"))
                log.warning("scan_file_skipped", path=path, reason="file is not readable")
                continue
            stem = os.path.basename(path)[: -len(settings.table_extension)]
            base, suffix = split_suffix(stem)
            key = (base, suffix)
            if key in slots:
                reason = f"duplicate member of family {base!r}; keeping {slots[key].path}"
                warnings.append(ScanWarning(path, reason))
                log.warning("scan_duplicate_member", path=path, kept=slots[key].path, family=base)
                continue
            slots[key] = SourceFile(path, suffix)

    grouped: dict[str, list[SourceFile]] = {}
    for (base, _suffix), member in slots.items():
        grouped.setdefault(base, []).append(member)
    families = {
        name: Family(name, tuple(sorted(grouped[name], key=_member_key)))
        for name in sorted(grouped)
    }

    result = ScanResult(
        roots=roots,
        families=families,
        warnings=warnings,
        total_files=len(slots),
        settings=settings,
    )
    log.info(
        "scan_finished",
        files=result.total_files,
        families=len(families),
        warnings=len(warnings),
    )
    return result
