"""
Core exception types raised by parsing, merging, table lookups, and patch validation.

Provides typed exceptions for core-domain failures:
- ParseError (and subclasses) for malformed table files.
- MergeError (UnknownFamily, MissingBaseFile) for family resolution failures.
- UnknownRow / UnknownColumn for lookups against a resolved table.
- PatchValidationError for patches rejected by validation (carries every issue).
- SerializationError for malformed patch, batch, or history JSON.
- ConfigError for invalid engine settings.

Notes:
    - This module uses only the Python standard library and has no side effects.
    - Filesystem failures live in twoda.io.errors (IoError and subclasses).

Examples:
    >>> from twoda.core.errors import ColumnCountMismatch, ParseError
    >>> err = ColumnCountMismatch("items.csv", row=3, expected=4, actual=2)
    >>> isinstance(err, ParseError), err.row
    (True, 3)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .schema import ValidationIssue

__all__ = [
    "ParseError",
    "MalformedCsv",
    "EmptyTable",
    "ColumnCountMismatch",
    "InvalidRowId",
    "DuplicateRowId",
    "MergeError",
    "UnknownFamily",
    "MissingBaseFile",
    "UnknownRow",
    "UnknownColumn",
    "PatchValidationError",
    "SerializationError",
    "ConfigError",
]


class ParseError(ValueError):
    """
    A table file could not be parsed.

    Attributes:
        source (str): Path (or label) of the offending file.
        row (int | None): 1-based data row number, when the failure is row-specific.
    """

    def __init__(self, source: str, message: str, *, row: int | None = None) -> None:
        self.source = str(source)
        self.row = row
        where = f"{self.source}, row {row}" if row is not None else self.source
        super().__init__(f"{where}: {message}")


class MalformedCsv(ParseError):
    """Bad quoting or another structural CSV error."""


class EmptyTable(ParseError):
    """The file has no header row."""

    def __init__(self, source: str) -> None:
        super().__init__(source, "no header row found")


class ColumnCountMismatch(ParseError):
    """A data row has a different field count than the header."""

    def __init__(self, source: str, *, row: int, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(source, f"expected {expected} fields, found {actual}", row=row)


class InvalidRowId(ParseError):
    """The identity column is missing or not an integer."""

    def __init__(self, source: str, *, row: int, value: str) -> None:
        self.value = value
        super().__init__(source, f"row id {value!r} is not an integer", row=row)


class DuplicateRowId(ParseError):
    """The same row id appears twice in one file."""

    def __init__(self, source: str, *, row: int, row_id: int) -> None:
        self.row_id = row_id
        super().__init__(source, f"duplicate row id {row_id}", row=row)


class MergeError(LookupError):
    """A family could not be resolved into a merged table."""


class UnknownFamily(MergeError):
    def __init__(self, family: str) -> None:
        self.family = family
        super().__init__(f"unknown family {family!r}")


class MissingBaseFile(MergeError):
    def __init__(self, family: str) -> None:
        self.family = family
        super().__init__(f"family {family!r} has no base file")


class UnknownRow(LookupError):
    def __init__(self, row_id: int) -> None:
        self.row_id = row_id
        super().__init__(f"row id {row_id} not found")


class UnknownColumn(LookupError):
    def __init__(self, column: str) -> None:
        self.column = column
        super().__init__(f"column {column!r} not found")


class PatchValidationError(ValueError):
    """
    A patch failed validation and was not applied.

    Attributes:
        issues (list[ValidationIssue]): Every problem found, in edit order.
    """

    def __init__(self, issues: list[ValidationIssue]) -> None:
        self.issues = list(issues)
        lines = "; ".join(issue.message for issue in self.issues)
        super().__init__(f"patch rejected with {len(self.issues)} issue(s): {lines}")


class SerializationError(ValueError):
    """Malformed patch, batch, or history JSON."""


class ConfigError(ValueError):
    """Invalid or unsupported engine configuration."""
