from pathlib import Path

import pytest

from twoda.core.errors import ConfigError
from twoda.io.config import EngineSettings


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    for key in (
        "TABLE_EXTENSION",
        "ENCODING",
        "FALLBACK_ENCODING",
        "DELIMITER",
        "RECURSIVE",
        "ID_COLUMN",
        "HISTORY_FILE",
        "CACHE_TABLES",
        "LOG_LEVEL",
        "LOG_FORMAT",
    ):
        monkeypatch.delenv(f"TWODA_{key}", raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_defaults_without_any_config(clean_env: Path) -> None:
    s = EngineSettings.load()
    assert s == EngineSettings()
    assert s.table_extension == ".csv"
    assert s.delimiter == ","
    assert s.id_column == 0
    assert s.recursive is True


def test_twoda_toml_engine_table(clean_env: Path) -> None:
    (clean_env / "twoda.toml").write_text(
        '[engine]\ndelimiter = ";"\nrecursive = false\nlog_level = "debug"\n'
    )
    s = EngineSettings.load()
    assert s.delimiter == ";"
    assert s.recursive is False
    assert s.log_level == "DEBUG"


def test_pyproject_tool_table(clean_env: Path) -> None:
    (clean_env / "pyproject.toml").write_text(
        '[project]\nname = "mod"\n\n[tool.twoda]\nhistory_file = "logs/history.json"\nid_column = 1\n'
    )
    s = EngineSettings.load()
    assert s.history_file == "logs/history.json"
    assert s.id_column == 1


def test_env_overrides_toml(clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (clean_env / "twoda.toml").write_text('delimiter = ";"\nlog_format = "json"\n')
    monkeypatch.setenv("TWODA_DELIMITER", "|")
    monkeypatch.setenv("TWODA_RECURSIVE", "no")
    s = EngineSettings.load()
    assert s.delimiter == "|"
    assert s.recursive is False
    assert s.log_format == "json"


def test_explicit_path_and_invalid_toml(clean_env: Path) -> None:
    custom = clean_env / "custom.toml"
    custom.write_text("[engine]\ncache_tables = false\n")
    assert EngineSettings.load(custom).cache_tables is False

    broken = clean_env / "broken.toml"
    broken.write_text("delimiter = \n")
    assert EngineSettings.load(broken) == EngineSettings()


@pytest.mark.parametrize(
    "kwargs",
    [{"delimiter": ""}, {"delimiter": ";;"}, {"id_column": -1}, {"table_extension": "csv"}],
)
def test_validate_rejects_out_of_range(kwargs) -> None:
    with pytest.raises(ConfigError):
        EngineSettings(**kwargs).validate()


def test_load_validates_merged_settings(clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TWODA_ID_COLUMN", "-2")
    with pytest.raises(ConfigError):
        EngineSettings.load()
