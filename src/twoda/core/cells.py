"""
Typed cell values for 2DA tables.

A cell is exactly one of four variants:

- ``Empty`` for blank (or whitespace-only) text,
- ``Integer`` for text matching the signed integer grammar and fitting in 64 bits,
- ``Float`` for text matching the decimal/exponent grammar,
- ``String`` for anything else.

Classification is total and re-derived from text on every call; nothing is cached.

Examples:
    >>> from twoda.core.cells import classify, Integer, Float, String, EMPTY
    >>> classify("42")
    Integer(value=42)
    >>> classify(" 3.5 ")
    Float(value=3.5)
    >>> classify("0xABCD")
    String(value='0xABCD')
    >>> classify("   ") is EMPTY
    True
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Final, TypeAlias

__all__ = [
    "Empty",
    "Integer",
    "Float",
    "String",
    "CellValue",
    "EMPTY",
    "classify",
    "is_empty",
    "to_text",
]

_INT_RE: Final[re.Pattern[str]] = re.compile(r"[+-]?[0-9]+")
_FLOAT_RE: Final[re.Pattern[str]] = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")

_I64_MIN: Final[int] = -(2**63)
_I64_MAX: Final[int] = 2**63 - 1


@dataclass(frozen=True, slots=True)
class Empty:
    """Blank cell. Carries no payload."""

    def to_text(self) -> str:
        return ""


@dataclass(frozen=True, slots=True)
class Integer:
    """Signed 64-bit integer cell."""

    value: int

    def to_text(self) -> str:
        return str(self.value)


@dataclass(frozen=True, slots=True)
class Float:
    """
    64-bit floating point cell.

    Attributes:
        value (float): Parsed value; equality and hashing use it alone.
        text (str): Trimmed source spelling ("1e3", "0.50"), kept for display and filtering.
    """

    value: float
    text: str = field(default="", compare=False, repr=False)

    def to_text(self) -> str:
        return self.text or repr(self.value)


@dataclass(frozen=True, slots=True)
class String:
    """Free text cell (trimmed)."""

    value: str

    def to_text(self) -> str:
        return self.value


CellValue: TypeAlias = Empty | Integer | Float | String

EMPTY: Final[Empty] = Empty()


def classify(text: str) -> CellValue:
    """
    Classify raw cell text into a CellValue variant.

    Args:
        text (str): Raw field text as read from the CSV file.

    Returns:
        CellValue: ``EMPTY`` for blank text, otherwise ``Integer``, ``Float`` or ``String``.

    Notes:
        - Surrounding whitespace is ignored.
        - Integers outside the signed 64-bit range fall through to ``Float``.
        - ``nan``/``inf`` spellings are not part of the float grammar and stay ``String``.
    """
    trimmed = text.strip()
    if not trimmed:
        return EMPTY
    if _INT_RE.fullmatch(trimmed):
        value = int(trimmed)
        if _I64_MIN <= value <= _I64_MAX:
            return Integer(value)
    if _FLOAT_RE.fullmatch(trimmed):
        return Float(float(trimmed), trimmed)
    return String(trimmed)


def is_empty(cell: CellValue) -> bool:
    return isinstance(cell, Empty)


def to_text(cell: CellValue) -> str:
    """Render a cell back to display text (``""`` for Empty)."""
    return cell.to_text()
