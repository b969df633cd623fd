"""
Configuration for the twoda engine.

Defines EngineSettings, a frozen dataclass carrying runtime configuration for scanning,
parsing, logging, and history behavior. Defaults are sourced from twoda.core.constants
(the single source of truth).

Source of truth
- twoda.core.constants.TABLE_EXTENSION, DEFAULT_ENCODING, FALLBACK_ENCODING,
  DEFAULT_DELIMITER, ID_COLUMN_INDEX, HISTORY_FILE_NAME

Notes
- Precedence when loading: environment (TWODA_*) > TOML > defaults.
- TOML search: ./twoda.toml ([engine] table or top-level keys), then ./pyproject.toml
  under [tool.twoda].
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Literal

from twoda.core.constants import DEFAULT_DELIMITER as CORE_DELIMITER
from twoda.core.constants import DEFAULT_ENCODING as CORE_ENCODING
from twoda.core.constants import FALLBACK_ENCODING as CORE_FALLBACK_ENCODING
from twoda.core.constants import HISTORY_FILE_NAME as CORE_HISTORY_FILE
from twoda.core.constants import ID_COLUMN_INDEX as CORE_ID_COLUMN
from twoda.core.constants import TABLE_EXTENSION as CORE_EXTENSION
from twoda.core.errors import ConfigError

LogFormat = Literal["console", "json"]

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _bool(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)):
        return bool(v)
    if isinstance(v, str):
        return v.strip().lower() in {"1", "true", "t", "yes", "y", "on"}
    return False


@dataclass(frozen=True)
class EngineSettings:
    """
    Runtime settings for the twoda engine.

    Attributes:
        table_extension (str): Extension of table files to scan (default ".csv").
        encoding (str): Primary text encoding for table files.
        fallback_encoding (str): Encoding tried when the primary one fails to decode.
        delimiter (str): Single-character field delimiter.
        recursive (bool): Scan subdirectories of each root.
        id_column (int): Index of the identity column (first column by convention).
        history_file (str): Default history log path used by the CLI.
        cache_tables (bool): Cache parsed tables on the ScanResult across merges.
        log_level (str): Root log level for configure_logging.
        log_format (Literal["console","json"]): Log renderer.

    Examples:
        >>> from twoda.io.config import EngineSettings
        >>> EngineSettings(recursive=False).recursive
        False
    """

    table_extension: str = CORE_EXTENSION
    encoding: str = CORE_ENCODING
    fallback_encoding: str = CORE_FALLBACK_ENCODING
    delimiter: str = CORE_DELIMITER
    recursive: bool = True
    id_column: int = CORE_ID_COLUMN
    history_file: str = CORE_HISTORY_FILE
    cache_tables: bool = True
    log_level: str = "WARNING"
    log_format: LogFormat = "console"

    def validate(self) -> EngineSettings:
        """
        Check value ranges; returns self so calls can be chained.

        Raises:
            ConfigError: On an empty/multi-character delimiter, a negative id_column, or an
                extension without a leading dot.
        """
        if len(self.delimiter) != 1:
            raise ConfigError(f"delimiter must be a single character, got {self.delimiter!r}")
        if self.id_column < 0:
            raise ConfigError(f"id_column must be >= 0, got {self.id_column}")
        if not self.table_extension.startswith("."):
            raise ConfigError(f"table_extension must start with '.', got {self.table_extension!r}")
        return self

    # Configuration loaders (env/TOML) with precedence: env > TOML > defaults.

    @classmethod
    def _apply_mapping(cls, base: EngineSettings, cfg: dict[str, Any] | None) -> EngineSettings:
        """Apply a loose config mapping onto EngineSettings, returning a new instance."""
        if not isinstance(cfg, dict):
            return base

        s = base

        for key in ("table_extension", "encoding", "fallback_encoding", "delimiter", "history_file"):
            if key in cfg and isinstance(cfg[key], str) and cfg[key]:
                s = replace(s, **{key: cfg[key]})

        if "recursive" in cfg:
            s = replace(s, recursive=_bool(cfg["recursive"]))
        if "cache_tables" in cfg:
            s = replace(s, cache_tables=_bool(cfg["cache_tables"]))

        if "id_column" in cfg:
            try:
                s = replace(s, id_column=int(cfg["id_column"]))
            except (TypeError, ValueError):
                pass

        if "log_level" in cfg and isinstance(cfg["log_level"], str):
            level = cfg["log_level"].strip().upper()
            if level in _LOG_LEVELS:
                s = replace(s, log_level=level)

        if "log_format" in cfg and isinstance(cfg["log_format"], str):
            fmt = cfg["log_format"].strip().lower()
            if fmt in ("console", "json"):
                s = replace(s, log_format=fmt)  # type: ignore[arg-type]

        return s

    @classmethod
    def from_env(cls, base: EngineSettings | None = None, prefix: str = "TWODA_") -> EngineSettings:
        """
        Build EngineSettings from environment variables. Precedence is env > base > defaults.

        Recognized variables:
            - TWODA_TABLE_EXTENSION
            - TWODA_ENCODING / TWODA_FALLBACK_ENCODING
            - TWODA_DELIMITER
            - TWODA_RECURSIVE (1/0/true/false/yes/no/on/off)
            - TWODA_ID_COLUMN
            - TWODA_HISTORY_FILE
            - TWODA_CACHE_TABLES
            - TWODA_LOG_LEVEL / TWODA_LOG_FORMAT
        """
        s = base or cls()
        mapping: dict[str, Any] = {}
        for key in (
            "table_extension",
            "encoding",
            "fallback_encoding",
            "delimiter",
            "recursive",
            "id_column",
            "history_file",
            "cache_tables",
            "log_level",
            "log_format",
        ):
            v = os.getenv(prefix + key.upper())
            if v:
                mapping[key] = v
        return cls._apply_mapping(s, mapping)

    @classmethod
    def from_toml(cls, path: str | os.PathLike[str] | None = None) -> EngineSettings:
        """
        Build EngineSettings from a TOML file.

        Search order when `path` is None:
            1) ./twoda.toml (with either an [engine] table or direct keys)
            2) ./pyproject.toml under [tool.twoda]

        Returns defaults if no file is present or the file is not valid TOML.
        """
        s = cls()

        def _load_toml(p: Path) -> dict[str, Any] | None:
            try:
                with p.open("rb") as fh:
                    return tomllib.load(fh)
            except (OSError, tomllib.TOMLDecodeError):
                return None

        cand: list[Path] = []
        if path is not None:
            cand.append(Path(path))
        else:
            cand.append(Path.cwd() / "twoda.toml")
            cand.append(Path.cwd() / "pyproject.toml")

        cfg: dict[str, Any] | None = None
        for p in cand:
            if not p.exists():
                continue
            data = _load_toml(p)
            if not isinstance(data, dict):
                continue
            if p.name == "pyproject.toml":
                tool = data.get("tool", {})
                cfg = tool.get("twoda") if isinstance(tool, dict) else None
            elif isinstance(data.get("engine"), dict):
                cfg = data["engine"]
            else:
                cfg = data
            if cfg:
                break

        return cls._apply_mapping(s, cfg)

    @classmethod
    def load(cls, path: str | os.PathLike[str] | None = None) -> EngineSettings:
        """
        Load EngineSettings applying precedence: environment > TOML > defaults.

        Args:
            path: Optional explicit TOML path. If None, search defaults (twoda.toml, pyproject.toml).

        Returns:
            EngineSettings

        Raises:
            ConfigError: If the merged settings are out of range.
        """
        s = cls.from_toml(path)
        s = cls.from_env(base=s)
        return s.validate()
