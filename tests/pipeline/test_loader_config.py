from __future__ import annotations

from pathlib import Path

import pytest

from jmdictdb.pipeline.config import (
    DEFAULT_DOWNLOAD_URL,
    DEFAULT_INPUT_PATH,
    DEFAULT_OUTPUT_PATH,
    ConfigError,
    LoaderSettings,
)


def test_defaults_resolve_to_absolute_paths() -> None:
    settings = LoaderSettings.from_env({})

    assert settings.input_path == Path(DEFAULT_INPUT_PATH).resolve()
    assert settings.output_path == Path(DEFAULT_OUTPUT_PATH).resolve()
    assert settings.input_path.is_absolute()
    assert settings.download_url == DEFAULT_DOWNLOAD_URL
    assert settings.max_records is None
    assert settings.downloads_dir == settings.input_path.parent


def test_env_overrides_are_parsed(tmp_path: Path) -> None:
    settings = LoaderSettings.from_env(
        {
            "JMDICTDB_INPUT_PATH": str(tmp_path / "in.json"),
            "JMDICTDB_OUTPUT_PATH": str(tmp_path / "out.sqlite3"),
            "JMDICTDB_DOWNLOAD_URL": "https://example.org/jmdict.zip",
            "JMDICTDB_MAX_RECORDS": "1000",
            "JMDICTDB_HTTP_TIMEOUT_SECONDS": "5.5",
            "JMDICTDB_MAX_REDIRECTS": "2",
            "JMDICTDB_MAX_RETRIES": "1",
            "JMDICTDB_COMMIT_INTERVAL": "50",
        }
    )

    assert settings.input_path == (tmp_path / "in.json").resolve()
    assert settings.download_url == "https://example.org/jmdict.zip"
    assert settings.max_records == 1000
    assert settings.http_timeout_seconds == 5.5
    assert settings.max_redirects == 2
    assert settings.max_retries == 1
    assert settings.commit_interval == 50


def test_blank_download_url_disables_download() -> None:
    settings = LoaderSettings.from_env({"JMDICTDB_DOWNLOAD_URL": "  "})

    assert settings.download_url is None


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("JMDICTDB_MAX_RECORDS", "0"),
        ("JMDICTDB_MAX_RECORDS", "many"),
        ("JMDICTDB_MAX_RETRIES", "0"),
        ("JMDICTDB_HTTP_TIMEOUT_SECONDS", "fast"),
        ("JMDICTDB_COMMIT_INTERVAL", "-1"),
    ],
)
def test_invalid_values_fail_fast(name: str, value: str) -> None:
    with pytest.raises(ConfigError, match=name) as excinfo:
        LoaderSettings.from_env({name: value})

    assert excinfo.value.kind == "invalid_setting"


def test_empty_paths_are_rejected() -> None:
    with pytest.raises(ConfigError, match="JMDICTDB_OUTPUT_PATH"):
        LoaderSettings.from_env({"JMDICTDB_OUTPUT_PATH": " "})


def test_download_url_scheme_is_validated(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="http"):
        LoaderSettings(input_path=tmp_path / "a.json", output_path=tmp_path / "b.db", download_url="ftp://example/x")


def test_unknown_document_kind_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="kanjidic") as excinfo:
        LoaderSettings(
            input_path=tmp_path / "a.json",
            output_path=tmp_path / "b.db",
            document_kind="kanjidic",
        )

    assert excinfo.value.kind == "invalid_setting"
