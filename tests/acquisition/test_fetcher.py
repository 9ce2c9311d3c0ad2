from __future__ import annotations

from pathlib import Path

import pytest
import requests

from jmdictdb.acquisition.fetcher import FetchError, HttpFetcher


class _FakeResponse:
    def __init__(
        self,
        status_code: int,
        *,
        headers: dict[str, str] | None = None,
        chunks: list[bytes] | None = None,
        fail_after: int | None = None,
    ) -> None:
        self.status_code = status_code
        self.headers = headers or {}
        self._chunks = chunks or []
        self._fail_after = fail_after
        self.closed = False

    def iter_content(self, chunk_size: int = 1):
        for index, chunk in enumerate(self._chunks):
            if self._fail_after is not None and index >= self._fail_after:
                raise requests.ConnectionError("connection reset")
            yield chunk

    def close(self) -> None:
        self.closed = True


class _FakeSession:
    def __init__(self, responses: list[object]) -> None:
        self._responses = list(responses)
        self.calls: list[tuple[str, dict[str, object]]] = []

    def get(self, url: str, **kwargs: object) -> object:
        self.calls.append((url, kwargs))
        if not self._responses:
            raise RuntimeError("No fake response configured")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _fetcher(session: _FakeSession, **kwargs: object) -> HttpFetcher:
    return HttpFetcher(session, sleep=lambda _: None, **kwargs)


def test_follows_302_and_writes_final_body(tmp_path: Path) -> None:
    session = _FakeSession(
        [
            _FakeResponse(302, headers={"Location": "https://example/x"}),
            _FakeResponse(200, chunks=[b"PK\x03\x04", b"payload"]),
        ]
    )
    destination = tmp_path / "artifact.zip"

    result = _fetcher(session).fetch("https://example/start", destination)

    assert destination.read_bytes() == b"PK\x03\x04payload"
    assert result.final_url == "https://example/x"
    assert result.redirects == ("https://example/x",)
    assert result.bytes_written == len(b"PK\x03\x04payload")
    assert [url for url, _ in session.calls] == ["https://example/start", "https://example/x"]
    assert all(kwargs["allow_redirects"] is False for _, kwargs in session.calls)
    assert not (tmp_path / "artifact.zip.part").exists()


def test_relative_redirect_is_resolved_against_current_url(tmp_path: Path) -> None:
    session = _FakeSession(
        [
            _FakeResponse(301, headers={"Location": "/releases/file.zip"}),
            _FakeResponse(200, chunks=[b"ok"]),
        ]
    )

    result = _fetcher(session).fetch("https://example.org/download/latest", tmp_path / "a.zip")

    assert result.final_url == "https://example.org/releases/file.zip"


def test_redirect_without_location_fails_and_writes_nothing(tmp_path: Path) -> None:
    session = _FakeSession([_FakeResponse(302)])
    destination = tmp_path / "artifact.zip"

    with pytest.raises(FetchError) as excinfo:
        _fetcher(session).fetch("https://example/start", destination)

    assert excinfo.value.kind == "missing_redirect_target"
    assert not destination.exists()
    assert not (tmp_path / "artifact.zip.part").exists()


def test_not_found_fails_with_bad_status(tmp_path: Path) -> None:
    response = _FakeResponse(404)
    session = _FakeSession([response])
    destination = tmp_path / "artifact.zip"

    with pytest.raises(FetchError) as excinfo:
        _fetcher(session).fetch("https://example/missing", destination)

    assert excinfo.value.kind == "bad_status"
    assert excinfo.value.status_code == 404
    assert "404" in str(excinfo.value)
    assert response.closed is True
    assert not destination.exists()


def test_bad_status_keeps_previous_destination_untouched(tmp_path: Path) -> None:
    destination = tmp_path / "artifact.zip"
    destination.write_bytes(b"previous")
    session = _FakeSession([_FakeResponse(500)])

    with pytest.raises(FetchError):
        _fetcher(session).fetch("https://example/broken", destination)

    assert destination.read_bytes() == b"previous"


def test_redirect_loop_hits_ceiling(tmp_path: Path) -> None:
    session = _FakeSession([_FakeResponse(302, headers={"Location": "https://example/loop"}) for _ in range(4)])

    with pytest.raises(FetchError) as excinfo:
        _fetcher(session, max_redirects=3).fetch("https://example/loop", tmp_path / "a.zip")

    assert excinfo.value.kind == "too_many_redirects"
    assert len(session.calls) == 4


def test_interrupted_body_is_transport_fault_without_partial_file(tmp_path: Path) -> None:
    session = _FakeSession([_FakeResponse(200, chunks=[b"first", b"second"], fail_after=1)])
    destination = tmp_path / "artifact.zip"

    with pytest.raises(FetchError) as excinfo:
        _fetcher(session).fetch("https://example/flaky", destination)

    assert excinfo.value.kind == "transport_fault"
    assert not destination.exists()
    assert not (tmp_path / "artifact.zip.part").exists()


def test_connection_errors_are_retried_then_succeed(tmp_path: Path) -> None:
    delays: list[float] = []
    session = _FakeSession(
        [
            requests.ConnectionError("refused"),
            _FakeResponse(200, chunks=[b"data"]),
        ]
    )
    fetcher = HttpFetcher(session, max_retries=3, retry_sleep_seconds=0.5, sleep=delays.append)

    fetcher.fetch("https://example/file", tmp_path / "a.zip")

    assert delays == [0.5]
    assert (tmp_path / "a.zip").read_bytes() == b"data"


def test_connection_errors_exhaust_retries(tmp_path: Path) -> None:
    session = _FakeSession([requests.Timeout("slow"), requests.Timeout("slow")])

    with pytest.raises(FetchError) as excinfo:
        _fetcher(session, max_retries=2).fetch("https://example/file", tmp_path / "a.zip")

    assert excinfo.value.kind == "transport_fault"
    assert len(session.calls) == 2
