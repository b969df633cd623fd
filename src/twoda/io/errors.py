"""
Custom exceptions for the twoda.io module.

Purpose
- Provide IO-layer specific error types for filesystem concerns.
- Keep twoda.core.errors as the source of truth for parse/merge/validation errors.

Boundaries
- twoda.io raises Io* errors for filesystem failures:
  - IoScanError: a scan root is missing or unreadable.
  - IoWriteError: a staged write (tmp write/fsync/rename) failed.
- Errors on an individual file during scanning are not raised; they are recorded as
  ScanWarning entries on the ScanResult.
"""

from __future__ import annotations


class IoError(Exception):
    """
    Base class for IO-related errors in twoda.io.

    Notes:
        Use this as a catch-all for filesystem failures, distinct from twoda.core errors.
    """


class IoScanError(IoError):
    """
    Raised when a scan root cannot be enumerated.

    Examples:
        - Root path does not exist
        - Root path is a file, or permission denied on the directory
    """


class IoWriteError(IoError):
    """
    Raised when an export or patch write fails to complete atomically.

    Notes:
        The write path is tmp file → fsync → os.replace(tmp, final). Patch application
        stages every output before renaming any of them; on failure the staged files are
        removed and no final file is replaced.
    """
