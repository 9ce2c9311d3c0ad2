"""Repository primitives for the SQLite words table."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import sqlite3

from jmdictdb.ingestion.models import NormalizedRecord
from jmdictdb.storage.schema import apply_runtime_pragmas, ensure_schema


LOGGER = logging.getLogger(__name__)

DEFAULT_COMMIT_INTERVAL = 1000

SINK_OPEN_FAILED = "open_failed"
SINK_SCHEMA_FAILED = "schema_failed"
SINK_WRITE_FAILED = "write_failed"
SINK_BATCH_FAILED = "batch_failed"


@dataclass(slots=True)
class SinkError(RuntimeError):
    """Domain error for store open, schema and write failures."""

    db_path: Path
    kind: str
    message: str
    record_id: int | None = None
    lost_rows: int = 0

    def __str__(self) -> str:
        if self.lost_rows:
            return f"{self.message} (db={self.db_path}, kind={self.kind}, lost_rows={self.lost_rows})"
        if self.record_id is not None:
            return f"{self.message} (db={self.db_path}, kind={self.kind}, id={self.record_id})"
        return f"{self.message} (db={self.db_path}, kind={self.kind})"


@dataclass(slots=True)
class WordRow:
    id: int
    kanji: str | None
    kana: str | None
    sense: str | None


class WordRepository:
    """Thin transactional layer over the words table.

    Upserts are grouped into transactions of ``commit_interval`` rows. Each row
    is written by a single statement, so it either holds one complete record or
    is absent.
    """

    def __init__(
        self,
        connection: sqlite3.Connection,
        db_path: str | Path,
        *,
        commit_interval: int = DEFAULT_COMMIT_INTERVAL,
    ) -> None:
        if commit_interval < 1:
            raise ValueError("commit_interval must be >= 1")
        self._connection = connection
        self._db_path = Path(db_path)
        self._commit_interval = commit_interval
        self._pending = 0
        self._closed = False

    @classmethod
    def open(cls, db_path: str | Path, *, commit_interval: int = DEFAULT_COMMIT_INTERVAL) -> "WordRepository":
        if commit_interval < 1:
            raise ValueError("commit_interval must be >= 1")
        path = Path(db_path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            connection = sqlite3.connect(str(path))
        except (OSError, sqlite3.Error) as exc:
            raise SinkError(db_path=path, kind=SINK_OPEN_FAILED, message=f"Failed to open store: {exc}") from exc

        try:
            connection.row_factory = sqlite3.Row
            apply_runtime_pragmas(connection)
        except sqlite3.Error as exc:
            connection.close()
            raise SinkError(db_path=path, kind=SINK_OPEN_FAILED, message=f"Failed to open store: {exc}") from exc

        LOGGER.debug("Opened store %s", path)
        return cls(connection, path, commit_interval=commit_interval)

    @property
    def connection(self) -> sqlite3.Connection:
        return self._connection

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "WordRepository":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def ensure_schema(self) -> None:
        try:
            ensure_schema(self._connection)
        except sqlite3.Error as exc:
            raise SinkError(
                db_path=self._db_path,
                kind=SINK_SCHEMA_FAILED,
                message=f"Failed to create schema: {exc}",
            ) from exc

    def upsert(self, record: NormalizedRecord) -> None:
        """Insert the row for ``record.id`` or replace its content."""

        try:
            self._connection.execute(
                """
                INSERT INTO words(id, kanji, kana, sense)
                VALUES(?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    kanji=excluded.kanji,
                    kana=excluded.kana,
                    sense=excluded.sense
                """,
                (record.id, record.kanji, record.kana, record.sense),
            )
        except sqlite3.Error as exc:
            raise SinkError(
                db_path=self._db_path,
                kind=SINK_WRITE_FAILED,
                message=f"Failed to write row: {exc}",
                record_id=record.id,
            ) from exc

        self._pending += 1
        if self._pending >= self._commit_interval:
            self.commit()

    def commit(self) -> None:
        """Commit pending rows. On failure the whole batch is rolled back."""

        try:
            self._connection.commit()
        except sqlite3.Error as exc:
            lost_rows = self._pending
            self._pending = 0
            try:
                self._connection.rollback()
            except sqlite3.Error as rollback_exc:
                LOGGER.error("Rollback failed for %s: %s", self._db_path, rollback_exc)
            raise SinkError(
                db_path=self._db_path,
                kind=SINK_BATCH_FAILED,
                message=f"Failed to commit {lost_rows} pending row(s): {exc}",
                lost_rows=lost_rows,
            ) from exc
        self._pending = 0

    def count_words(self) -> int:
        row = self._connection.execute("SELECT COUNT(*) AS c FROM words").fetchone()
        return int(row["c"])

    def get_word(self, word_id: int) -> WordRow | None:
        row = self._connection.execute(
            "SELECT id, kanji, kana, sense FROM words WHERE id = ?",
            (word_id,),
        ).fetchone()
        if row is None:
            return None
        return WordRow(id=int(row["id"]), kanji=row["kanji"], kana=row["kana"], sense=row["sense"])

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            if self._pending:
                self._connection.commit()
        except sqlite3.Error as exc:
            LOGGER.error("Lost %d uncommitted row(s) while closing %s: %s", self._pending, self._db_path, exc)
        finally:
            self._pending = 0
            self._connection.close()
        LOGGER.debug("Closed store %s", self._db_path)
