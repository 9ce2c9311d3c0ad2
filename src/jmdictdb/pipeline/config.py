"""Runtime configuration for the dictionary build pipeline."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Mapping

from jmdictdb.acquisition.fetcher import DEFAULT_MAX_REDIRECTS, DEFAULT_MAX_RETRIES, DEFAULT_TIMEOUT_SECONDS
from jmdictdb.ingestion.stream import DEFAULT_DOCUMENT_KIND, DOCUMENT_KINDS
from jmdictdb.storage.repository import DEFAULT_COMMIT_INTERVAL


DEFAULT_INPUT_PATH = "downloads/jmdict-eng-3.5.0.json"
DEFAULT_OUTPUT_PATH = "output/jmdict.sqlite3"
DEFAULT_DOWNLOAD_URL = (
    "https://github.com/scriptin/jmdict-simplified/releases/download/"
    "3.5.0%2B20230710121913/jmdict-eng-3.5.0+20230710121913.json.zip"
)

CONFIG_NO_DOWNLOAD_URL = "no_download_url"
CONFIG_INVALID_SETTING = "invalid_setting"


@dataclass(slots=True)
class ConfigError(ValueError):
    """Domain error for missing or invalid pipeline settings."""

    kind: str
    message: str

    def __str__(self) -> str:
        return f"{self.message} (kind={self.kind})"


def _parse_int(*, name: str, raw_value: str, minimum: int) -> int:
    try:
        value = int(raw_value)
    except ValueError as exc:
        raise ConfigError(kind=CONFIG_INVALID_SETTING, message=f"{name} must be an integer") from exc
    if value < minimum:
        raise ConfigError(kind=CONFIG_INVALID_SETTING, message=f"{name} must be >= {minimum}")
    return value


def _parse_float(*, name: str, raw_value: str, minimum: float) -> float:
    try:
        value = float(raw_value)
    except ValueError as exc:
        raise ConfigError(kind=CONFIG_INVALID_SETTING, message=f"{name} must be a number") from exc
    if value < minimum:
        raise ConfigError(kind=CONFIG_INVALID_SETTING, message=f"{name} must be >= {minimum}")
    return value


@dataclass(frozen=True, slots=True)
class LoaderSettings:
    """Validated settings for one pipeline run. Paths are always absolute."""

    input_path: Path
    output_path: Path
    download_url: str | None = DEFAULT_DOWNLOAD_URL
    document_kind: str = DEFAULT_DOCUMENT_KIND
    max_records: int | None = None
    http_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    max_retries: int = DEFAULT_MAX_RETRIES
    commit_interval: int = DEFAULT_COMMIT_INTERVAL
    show_progress: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "input_path", Path(self.input_path).expanduser().resolve())
        object.__setattr__(self, "output_path", Path(self.output_path).expanduser().resolve())
        object.__setattr__(self, "download_url", (self.download_url or "").strip() or None)
        if self.document_kind not in DOCUMENT_KINDS:
            supported = ", ".join(sorted(DOCUMENT_KINDS))
            raise ConfigError(
                kind=CONFIG_INVALID_SETTING,
                message=f"document kind {self.document_kind!r} is not supported (supported: {supported})",
            )
        if self.max_records is not None and self.max_records < 1:
            raise ConfigError(kind=CONFIG_INVALID_SETTING, message="max_records must be >= 1")
        if self.download_url is not None and not self.download_url.startswith(("http://", "https://")):
            raise ConfigError(
                kind=CONFIG_INVALID_SETTING,
                message="download URL must start with http:// or https://",
            )

    @property
    def downloads_dir(self) -> Path:
        return self.input_path.parent

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "LoaderSettings":
        source: Mapping[str, str] = os.environ if environ is None else environ

        input_raw = source.get("JMDICTDB_INPUT_PATH", DEFAULT_INPUT_PATH).strip()
        output_raw = source.get("JMDICTDB_OUTPUT_PATH", DEFAULT_OUTPUT_PATH).strip()
        if not input_raw:
            raise ConfigError(kind=CONFIG_INVALID_SETTING, message="JMDICTDB_INPUT_PATH cannot be empty")
        if not output_raw:
            raise ConfigError(kind=CONFIG_INVALID_SETTING, message="JMDICTDB_OUTPUT_PATH cannot be empty")

        download_url = source.get("JMDICTDB_DOWNLOAD_URL", DEFAULT_DOWNLOAD_URL).strip() or None

        max_records_raw = source.get("JMDICTDB_MAX_RECORDS", "").strip()
        max_records = (
            _parse_int(name="JMDICTDB_MAX_RECORDS", raw_value=max_records_raw, minimum=1)
            if max_records_raw
            else None
        )

        return cls(
            input_path=Path(input_raw),
            output_path=Path(output_raw),
            download_url=download_url,
            max_records=max_records,
            http_timeout_seconds=_parse_float(
                name="JMDICTDB_HTTP_TIMEOUT_SECONDS",
                raw_value=source.get("JMDICTDB_HTTP_TIMEOUT_SECONDS", str(DEFAULT_TIMEOUT_SECONDS)).strip(),
                minimum=0.1,
            ),
            max_redirects=_parse_int(
                name="JMDICTDB_MAX_REDIRECTS",
                raw_value=source.get("JMDICTDB_MAX_REDIRECTS", str(DEFAULT_MAX_REDIRECTS)).strip(),
                minimum=0,
            ),
            max_retries=_parse_int(
                name="JMDICTDB_MAX_RETRIES",
                raw_value=source.get("JMDICTDB_MAX_RETRIES", str(DEFAULT_MAX_RETRIES)).strip(),
                minimum=1,
            ),
            commit_interval=_parse_int(
                name="JMDICTDB_COMMIT_INTERVAL",
                raw_value=source.get("JMDICTDB_COMMIT_INTERVAL", str(DEFAULT_COMMIT_INTERVAL)).strip(),
                minimum=1,
            ),
        )
