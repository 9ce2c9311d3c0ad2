"""Archive extraction backends for downloaded dataset artifacts."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging
import os
from pathlib import Path
import shutil
import subprocess
import tempfile
from typing import Protocol, runtime_checkable
from zipfile import BadZipFile, ZipFile
import zlib


LOGGER = logging.getLogger(__name__)

EXTRACT_TOOL_FAILURE = "tool_failure"
DEFAULT_UNZIP_TIMEOUT_SECONDS = 600.0


@dataclass(slots=True)
class ExtractError(RuntimeError):
    """Domain error raised when an archive cannot be unpacked."""

    archive_path: Path
    message: str
    kind: str = EXTRACT_TOOL_FAILURE
    returncode: int | None = None

    def __str__(self) -> str:
        if self.returncode is not None:
            return f"{self.message} (archive={self.archive_path}, returncode={self.returncode})"
        return f"{self.message} (archive={self.archive_path})"


@runtime_checkable
class ArchiveExtractor(Protocol):
    """Protocol for anything that can unpack an archive into a directory."""

    def extract(self, archive_path: Path, destination_dir: Path) -> list[Path]:
        """Unpack ``archive_path`` into ``destination_dir`` and return written files."""


class _StagedExtractor(ABC):
    """Unpack into a private staging directory, then move finished files into place."""

    def extract(self, archive_path: Path, destination_dir: Path) -> list[Path]:
        archive = Path(archive_path)
        destination = Path(destination_dir)
        destination.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=".extract-", dir=destination))
        try:
            self._extract_into(archive, staging)
            written = _promote_staged_files(staging, destination)
        except ExtractError:
            raise
        except OSError as exc:
            raise ExtractError(archive_path=archive, message=f"Extraction failed: {exc}") from exc
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        LOGGER.info("Extracted %d file(s) from %s into %s", len(written), archive, destination)
        return written

    @abstractmethod
    def _extract_into(self, archive_path: Path, staging_dir: Path) -> None:
        """Unpack ``archive_path`` into the empty ``staging_dir``."""


def _promote_staged_files(staging_dir: Path, destination_dir: Path) -> list[Path]:
    written: list[Path] = []
    for staged in sorted(path for path in staging_dir.rglob("*") if path.is_file()):
        target = destination_dir / staged.relative_to(staging_dir)
        target.parent.mkdir(parents=True, exist_ok=True)
        os.replace(staged, target)
        written.append(target)
    return written


class ZipArchiveExtractor(_StagedExtractor):
    """Extract zip archives with the standard library reader."""

    def _extract_into(self, archive_path: Path, staging_dir: Path) -> None:
        # Damaged member data surfaces from the decompressor, not as BadZipFile.
        try:
            with ZipFile(archive_path, "r") as archive:
                archive.extractall(staging_dir)
        except (BadZipFile, zlib.error, EOFError, RuntimeError, NotImplementedError) as exc:
            raise ExtractError(archive_path=archive_path, message=f"Not a readable zip archive: {exc}") from exc


class UnzipCommandExtractor(_StagedExtractor):
    """Extract archives by shelling out to the ``unzip`` command-line tool."""

    def __init__(self, executable: str = "unzip", *, timeout_seconds: float = DEFAULT_UNZIP_TIMEOUT_SECONDS) -> None:
        self._executable = executable
        self._timeout_seconds = timeout_seconds

    def _extract_into(self, archive_path: Path, staging_dir: Path) -> None:
        command = [self._executable, "-o", "-q", str(archive_path), "-d", str(staging_dir)]
        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                check=False,
                timeout=self._timeout_seconds,
            )
        except FileNotFoundError as exc:
            raise ExtractError(
                archive_path=archive_path,
                message=f"Extraction tool not found: {self._executable}",
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise ExtractError(
                archive_path=archive_path,
                message=f"Timed out after {int(self._timeout_seconds)}s: {' '.join(command)}",
            ) from exc

        if completed.returncode != 0:
            stderr_text = completed.stderr.decode("utf-8", errors="replace").strip()
            stdout_text = completed.stdout.decode("utf-8", errors="replace").strip()
            raise ExtractError(
                archive_path=archive_path,
                message=stderr_text or stdout_text or f"Command failed: {' '.join(command)}",
                returncode=completed.returncode,
            )
