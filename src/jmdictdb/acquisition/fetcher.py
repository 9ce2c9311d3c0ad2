"""HTTP artifact fetcher with explicit redirect handling and atomic writes."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import time
from typing import Any, Callable
from urllib.parse import urljoin

import requests
from tqdm import tqdm


LOGGER = logging.getLogger(__name__)

REDIRECT_STATUS_CODES = frozenset({301, 302, 303, 307, 308})
DEFAULT_TIMEOUT_SECONDS = 60.0
DEFAULT_MAX_REDIRECTS = 10
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_SLEEP_SECONDS = 2.0
DEFAULT_CHUNK_SIZE = 1024 * 1024

FETCH_MISSING_REDIRECT_TARGET = "missing_redirect_target"
FETCH_BAD_STATUS = "bad_status"
FETCH_TRANSPORT_FAULT = "transport_fault"
FETCH_TOO_MANY_REDIRECTS = "too_many_redirects"


@dataclass(slots=True)
class FetchError(RuntimeError):
    """Domain error for failed artifact downloads."""

    url: str
    kind: str
    message: str
    status_code: int | None = None

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (url={self.url}, kind={self.kind}, status={self.status_code})"
        return f"{self.message} (url={self.url}, kind={self.kind})"


@dataclass(frozen=True, slots=True)
class FetchResult:
    source_url: str
    final_url: str
    redirects: tuple[str, ...]
    bytes_written: int


def _part_path(destination: Path) -> Path:
    return destination.with_name(destination.name + ".part")


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        LOGGER.warning("Could not remove partial download %s: %s", path, exc)


class HttpFetcher:
    """Download one remote artifact to a local path.

    Redirects are followed by an explicit loop so every hop is validated and
    recorded; the HTTP client is never allowed to follow them itself. The body
    is streamed to ``<destination>.part`` and renamed into place only after the
    response was read completely.
    """

    def __init__(
        self,
        session: Any | None = None,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_sleep_seconds: float = DEFAULT_RETRY_SLEEP_SECONDS,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        sleep: Callable[[float], None] = time.sleep,
        show_progress: bool = False,
    ) -> None:
        if max_redirects < 0:
            raise ValueError("max_redirects cannot be negative")
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self._session = session if session is not None else requests.Session()
        self._timeout_seconds = timeout_seconds
        self._max_redirects = max_redirects
        self._max_retries = max_retries
        self._retry_sleep_seconds = retry_sleep_seconds
        self._chunk_size = chunk_size
        self._sleep = sleep
        self._show_progress = show_progress

    def fetch(self, source_url: str, destination: str | Path) -> FetchResult:
        """Download ``source_url`` into ``destination``, replacing any existing file."""

        target = Path(destination)
        current_url = source_url
        redirects: list[str] = []

        while True:
            response = self._get(current_url)
            try:
                status = int(response.status_code)
                if status in REDIRECT_STATUS_CODES:
                    location = response.headers.get("Location")
                    if not location:
                        raise FetchError(
                            url=current_url,
                            kind=FETCH_MISSING_REDIRECT_TARGET,
                            message=f"Got {status} redirect but no Location header",
                            status_code=status,
                        )
                    if len(redirects) >= self._max_redirects:
                        raise FetchError(
                            url=source_url,
                            kind=FETCH_TOO_MANY_REDIRECTS,
                            message=f"Exceeded {self._max_redirects} redirects",
                            status_code=status,
                        )
                    next_url = urljoin(current_url, location)
                    LOGGER.debug("Redirect %d: %s -> %s", status, current_url, next_url)
                    redirects.append(next_url)
                    current_url = next_url
                    continue

                if status != 200:
                    raise FetchError(
                        url=current_url,
                        kind=FETCH_BAD_STATUS,
                        message=f"Got status code {status}",
                        status_code=status,
                    )

                bytes_written = self._write_body(response, target, current_url)
            finally:
                response.close()

            LOGGER.info("Downloaded %s (%d bytes) to %s", current_url, bytes_written, target)
            return FetchResult(
                source_url=source_url,
                final_url=current_url,
                redirects=tuple(redirects),
                bytes_written=bytes_written,
            )

    def _get(self, url: str) -> Any:
        for attempt in range(1, self._max_retries + 1):
            try:
                return self._session.get(
                    url,
                    stream=True,
                    allow_redirects=False,
                    timeout=self._timeout_seconds,
                )
            except requests.RequestException as exc:
                if attempt >= self._max_retries:
                    raise FetchError(
                        url=url,
                        kind=FETCH_TRANSPORT_FAULT,
                        message=f"Request failed after {attempt} attempt(s): {exc}",
                    ) from exc
                delay = self._retry_sleep_seconds * attempt
                LOGGER.warning("Request to %s failed (%s); retrying in %.1fs", url, exc, delay)
                self._sleep(delay)
        raise RuntimeError("Retry loop exhausted unexpectedly")

    def _write_body(self, response: Any, target: Path, url: str) -> int:
        part_path = _part_path(target)
        total = _content_length(response)
        written = 0
        try:
            with open(part_path, "wb") as handle, tqdm(
                total=total,
                unit="B",
                unit_scale=True,
                desc=target.name,
                disable=not self._show_progress,
                leave=False,
            ) as progress:
                for chunk in response.iter_content(chunk_size=self._chunk_size):
                    if not chunk:
                        continue
                    handle.write(chunk)
                    written += len(chunk)
                    progress.update(len(chunk))
            part_path.replace(target)
        except requests.RequestException as exc:
            _remove_quietly(part_path)
            raise FetchError(
                url=url,
                kind=FETCH_TRANSPORT_FAULT,
                message=f"Response body interrupted after {written} bytes: {exc}",
            ) from exc
        except BaseException:
            _remove_quietly(part_path)
            raise
        return written


def _content_length(response: Any) -> int | None:
    raw = response.headers.get("Content-Length")
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None
