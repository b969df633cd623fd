"""
twoda core defaults and vocabularies.

Defines the recognized variant-suffix vocabulary and the file-layout defaults consumed by
the IO layer. This module is zero-IO and uses only the Python standard library.

Notes:
    - Suffix codes identify DLC/mod override files: ``<base>_<suffix>.csv``.
    - Changes to the vocabulary change family grouping for every scan; keep it in sync with
      the game data being browsed.
"""

from __future__ import annotations

from typing import Final

__all__ = [
    "RECOGNIZED_SUFFIXES",
    "TABLE_EXTENSION",
    "DEFAULT_ENCODING",
    "FALLBACK_ENCODING",
    "DEFAULT_DELIMITER",
    "ID_COLUMN_INDEX",
    "HISTORY_FILE_NAME",
]

# Recognized DLC/mod suffix codes, in no particular order. Merge order is alphabetical.
RECOGNIZED_SUFFIXES: Final[frozenset[str]] = frozenset(
    {
        "drk",
        "ep1",
        "gib",
        "kcc",
        "lel",
        "mem",
        "shale",
        "str",
        "val",
        "vala",
        "toe",
        "hrm",
        "ibmoobs",
        "gxa",
    }
)

TABLE_EXTENSION: Final[str] = ".csv"

DEFAULT_ENCODING: Final[str] = "utf-8"

# Used when a file is not valid UTF-8 (older exports are Windows-1252).
FALLBACK_ENCODING: Final[str] = "cp1252"

DEFAULT_DELIMITER: Final[str] = ","

# Identity column position; the first column carries the row id by convention.
ID_COLUMN_INDEX: Final[int] = 0

HISTORY_FILE_NAME: Final[str] = ".twoda-history.json"
