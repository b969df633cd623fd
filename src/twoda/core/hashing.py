"""
Fingerprints for merged tables.

A ResolvedTable is reduced to its JSON view, serialized canonically, and hashed with SHA-256,
so two merges of the same files can be compared by digest. Zero-IO, standard library only.

Notes:
    - Canonical JSON:
        - sort_keys=True
        - separators=(",", ":")
        - ensure_ascii=False
    - Hashing is performed over the UTF-8 encoded canonical JSON string.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

__all__ = [
    "json_dumps_canonical",
    "sha256_hex",
    "fingerprint",
]


def json_dumps_canonical(obj: Any) -> str:
    """Compact, key-sorted JSON text; non-ASCII characters are kept as is."""
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def fingerprint(obj: Any) -> str:
    """
    SHA-256 hex digest of an object's canonical JSON.

    Examples:
        >>> fingerprint({"a": 1, "b": 2}) == fingerprint({"b": 2, "a": 1})
        True
    """
    return sha256_hex(json_dumps_canonical(obj).encode("utf-8"))
