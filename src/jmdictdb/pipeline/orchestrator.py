"""End-to-end dictionary build: acquire, extract, stream, normalize, persist."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
import os
from pathlib import Path
import tempfile
import time
from typing import Any, Callable

from jmdictdb.acquisition.extractor import ArchiveExtractor, ExtractError, ZipArchiveExtractor
from jmdictdb.acquisition.fetcher import FetchError, HttpFetcher
from jmdictdb.ingestion.models import DictionaryMetadata, ParseIssue
from jmdictdb.ingestion.normalizer import normalize
from jmdictdb.ingestion.stream import ParseFault, RecordStream
from jmdictdb.pipeline.config import CONFIG_NO_DOWNLOAD_URL, ConfigError, LoaderSettings
from jmdictdb.storage.repository import SINK_BATCH_FAILED, SINK_WRITE_FAILED, SinkError, WordRepository


LOGGER = logging.getLogger(__name__)

PROGRESS_LOG_INTERVAL = 10_000
MAX_ERROR_DETAILS = 50


class PipelineStage(str, Enum):
    ACQUIRE_INPUT = "acquire_input"
    EXTRACT_INPUT = "extract_input"
    OPEN_SINK = "open_sink"
    ENSURE_SCHEMA = "ensure_schema"
    STREAM = "stream"
    FINALIZE = "finalize"
    DONE = "done"


@dataclass(slots=True)
class RunStats:
    records: int = 0
    written: int = 0
    parse_errors: int = 0
    write_errors: int = 0
    downloaded: bool = False
    duration_ms: int = 0
    error_details: list[dict[str, str]] = field(default_factory=list)

    def add_error(self, kind: str, detail: str) -> None:
        if len(self.error_details) < MAX_ERROR_DETAILS:
            self.error_details.append({"kind": kind, "error": detail})

    def to_dict(self) -> dict[str, int | bool | list[dict[str, str]]]:
        return {
            "records": self.records,
            "written": self.written,
            "parse_errors": self.parse_errors,
            "write_errors": self.write_errors,
            "downloaded": self.downloaded,
            "duration_ms": self.duration_ms,
            "error_details": self.error_details,
        }


@dataclass(slots=True)
class PipelineResult:
    success: bool
    stage: PipelineStage
    stats: RunStats
    error: str | None = None
    metadata: DictionaryMetadata | None = None

    def to_dict(self) -> dict[str, Any]:
        metadata = None
        if self.metadata is not None:
            metadata = {
                "version": self.metadata.version,
                "languages": self.metadata.languages,
                "dict_date": self.metadata.dict_date,
            }
        return {
            "success": self.success,
            "stage": self.stage.value,
            "error": self.error,
            "metadata": metadata,
            **self.stats.to_dict(),
        }


class _PipelineFailure(Exception):
    def __init__(self, stage: PipelineStage, error: Exception) -> None:
        super().__init__(str(error))
        self.stage = stage
        self.error = error


def _remove_download(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        LOGGER.warning("Could not remove temporary download %s: %s", path, exc)


class DictionaryPipeline:
    """Drive one build of the words table from a local or remote dataset."""

    def __init__(
        self,
        settings: LoaderSettings,
        *,
        fetcher: HttpFetcher | None = None,
        extractor: ArchiveExtractor | None = None,
        repository_opener: Callable[..., WordRepository] = WordRepository.open,
    ) -> None:
        self._settings = settings
        self._fetcher = fetcher
        self._extractor = extractor or ZipArchiveExtractor()
        self._repository_opener = repository_opener
        self._metadata: DictionaryMetadata | None = None

    def run(self) -> PipelineResult:
        started = time.perf_counter()
        stats = RunStats()
        self._metadata = None
        try:
            self._ensure_input(stats)
            self._load(stats)
        except _PipelineFailure as failure:
            stats.duration_ms = int((time.perf_counter() - started) * 1000)
            LOGGER.error("Pipeline failed at %s: %s", failure.stage.value, failure.error)
            return PipelineResult(
                success=False,
                stage=failure.stage,
                stats=stats,
                error=str(failure.error),
                metadata=self._metadata,
            )

        stats.duration_ms = int((time.perf_counter() - started) * 1000)
        LOGGER.info(
            "Build finished: %d records, %d written, %d parse errors, %d write errors in %d ms",
            stats.records,
            stats.written,
            stats.parse_errors,
            stats.write_errors,
            stats.duration_ms,
        )
        return PipelineResult(success=True, stage=PipelineStage.DONE, stats=stats, metadata=self._metadata)

    def _ensure_input(self, stats: RunStats) -> None:
        input_path = self._settings.input_path
        if input_path.is_file():
            LOGGER.info("Using existing input %s", input_path)
            return

        download_url = self._settings.download_url
        if not download_url:
            raise _PipelineFailure(
                PipelineStage.ACQUIRE_INPUT,
                ConfigError(
                    kind=CONFIG_NO_DOWNLOAD_URL,
                    message=f"Input {input_path} needs downloading, but no download URL is configured",
                ),
            )

        downloads_dir = self._settings.downloads_dir
        try:
            downloads_dir.mkdir(parents=True, exist_ok=True)
            fd, raw_path = tempfile.mkstemp(prefix=".download-", suffix=".zip", dir=downloads_dir)
            os.close(fd)
        except OSError as exc:
            raise _PipelineFailure(PipelineStage.ACQUIRE_INPUT, exc) from exc
        download_path = Path(raw_path)

        try:
            LOGGER.info("Downloading %s", download_url)
            try:
                self._get_fetcher().fetch(download_url, download_path)
            except (FetchError, OSError) as exc:
                raise _PipelineFailure(PipelineStage.ACQUIRE_INPUT, exc) from exc
            stats.downloaded = True

            try:
                self._extractor.extract(download_path, downloads_dir)
            except (ExtractError, OSError) as exc:
                raise _PipelineFailure(PipelineStage.EXTRACT_INPUT, exc) from exc
        finally:
            _remove_download(download_path)

        if not input_path.is_file():
            raise _PipelineFailure(
                PipelineStage.EXTRACT_INPUT,
                FileNotFoundError(f"Archive from {download_url} did not contain {input_path.name}"),
            )

    def _load(self, stats: RunStats) -> None:
        try:
            repository = self._repository_opener(
                self._settings.output_path,
                commit_interval=self._settings.commit_interval,
            )
        except SinkError as exc:
            raise _PipelineFailure(PipelineStage.OPEN_SINK, exc) from exc

        try:
            try:
                repository.ensure_schema()
            except SinkError as exc:
                raise _PipelineFailure(PipelineStage.ENSURE_SCHEMA, exc) from exc
            self._stream_into(repository, stats)
        finally:
            repository.close()

    def _stream_into(self, repository: WordRepository, stats: RunStats) -> None:
        stream = RecordStream(
            self._settings.input_path,
            self._settings.document_kind,
            on_metadata=self._remember_metadata,
        )
        max_records = self._settings.max_records
        items = iter(stream)
        try:
            for item in items:
                if isinstance(item, ParseIssue):
                    stats.parse_errors += 1
                    stats.add_error("parse", str(item))
                    LOGGER.warning("Skipping unreadable record: %s", item)
                    continue

                stats.records += 1
                try:
                    repository.upsert(normalize(item))
                except SinkError as exc:
                    if exc.kind == SINK_BATCH_FAILED:
                        # The batch includes this record, which was never counted as written.
                        stats.written -= exc.lost_rows - 1
                        stats.write_errors += exc.lost_rows
                        stats.add_error("write", str(exc))
                        LOGGER.warning("Lost uncommitted batch: %s", exc)
                    elif exc.kind == SINK_WRITE_FAILED:
                        stats.write_errors += 1
                        stats.add_error("write", str(exc))
                        LOGGER.warning("Skipping unwritable record: %s", exc)
                    else:
                        raise _PipelineFailure(PipelineStage.STREAM, exc) from exc
                else:
                    stats.written += 1

                if stats.records % PROGRESS_LOG_INTERVAL == 0:
                    LOGGER.info("Processed %d records", stats.records)
                if max_records is not None and stats.records >= max_records:
                    LOGGER.info("Record budget of %d reached; stopping early", max_records)
                    break
        except ParseFault as exc:
            raise _PipelineFailure(PipelineStage.STREAM, exc) from exc
        finally:
            items.close()

        try:
            repository.commit()
        except SinkError as exc:
            stats.written -= exc.lost_rows
            stats.write_errors += exc.lost_rows
            raise _PipelineFailure(PipelineStage.FINALIZE, exc) from exc

    def _remember_metadata(self, metadata: DictionaryMetadata) -> None:
        self._metadata = metadata

    def _get_fetcher(self) -> HttpFetcher:
        if self._fetcher is None:
            self._fetcher = HttpFetcher(
                timeout_seconds=self._settings.http_timeout_seconds,
                max_redirects=self._settings.max_redirects,
                max_retries=self._settings.max_retries,
                show_progress=self._settings.show_progress,
            )
        return self._fetcher


def build_dictionary_database(settings: LoaderSettings) -> PipelineResult:
    """Run the full build with default collaborators."""

    return DictionaryPipeline(settings).run()
