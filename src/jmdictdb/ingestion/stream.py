"""Incremental record stream over a jmdict-simplified JSON document.

The document is a single JSON object whose record collection (``words`` for
JMdict) can hold hundreds of thousands of entries. Events from ``ijson`` are
folded into one record at a time, so memory stays bounded by the largest
single entry plus parser state. The top-level keys preceding the collection
are surfaced once as ``DictionaryMetadata`` when the collection array opens,
before the first record. Top-level keys after the collection are ignored.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from pathlib import Path
from typing import Any, BinaryIO, Callable, Iterator

import ijson
from ijson.common import JSONError, ObjectBuilder

from jmdictdb.ingestion.models import DictionaryMetadata, DictionaryRecord, Gloss, ParseIssue, Sense, TextForm


LOGGER = logging.getLogger(__name__)

DEFAULT_DOCUMENT_KIND = "jmdict"

# Document kind -> key of the top-level array holding the records.
DOCUMENT_KINDS: dict[str, str] = {
    "jmdict": "words",
}

_SENSE_POS_KEY = "partOfSpeech"
_SENSE_GLOSS_KEY = "gloss"

StreamItem = DictionaryRecord | ParseIssue


class StreamState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class ParseFault(Exception):
    """Unrecoverable stream failure: malformed document or I/O fault."""

    path: Path
    message: str

    def __str__(self) -> str:
        return f"{self.message} (path={self.path})"


class _RecordShapeError(ValueError):
    pass


class RecordStream:
    """Lazy, ordered, single-pass sequence of dictionary records.

    Iterating yields ``DictionaryRecord`` values and, for entries that do not
    have the expected shape, ``ParseIssue`` values. A ``ParseFault`` is raised
    when the document itself cannot be read any further.
    """

    def __init__(
        self,
        path: str | Path,
        kind: str = DEFAULT_DOCUMENT_KIND,
        *,
        on_metadata: Callable[[DictionaryMetadata], None] | None = None,
        on_complete: Callable[[], None] | None = None,
    ) -> None:
        if kind not in DOCUMENT_KINDS:
            supported = ", ".join(sorted(DOCUMENT_KINDS))
            raise ValueError(f"Unsupported document kind: {kind!r} (supported: {supported})")
        self._path = Path(path)
        self._kind = kind
        self._collection = DOCUMENT_KINDS[kind]
        self._on_metadata = on_metadata
        self._on_complete = on_complete
        self._state = StreamState.IDLE
        self._metadata: DictionaryMetadata | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def kind(self) -> str:
        return self._kind

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def metadata(self) -> DictionaryMetadata | None:
        return self._metadata

    def __iter__(self) -> Iterator[StreamItem]:
        if self._state is StreamState.STREAMING:
            raise RuntimeError("Record stream is already being consumed")
        if self._state is not StreamState.IDLE:
            return iter(())
        self._state = StreamState.STREAMING
        return self._stream()

    def _stream(self) -> Iterator[StreamItem]:
        try:
            with open(self._path, "rb") as handle:
                yield from self._iter_items(handle)
        except GeneratorExit:
            self._state = StreamState.CANCELLED
            raise
        except ParseFault:
            self._state = StreamState.FAILED
            raise
        except (JSONError, UnicodeDecodeError) as exc:
            self._state = StreamState.FAILED
            raise ParseFault(self._path, f"Malformed JSON document: {exc}") from exc
        except OSError as exc:
            self._state = StreamState.FAILED
            raise ParseFault(self._path, f"Failed to read document: {exc}") from exc
        except Exception:
            self._state = StreamState.FAILED
            raise

        if self._metadata is None:
            self._emit_metadata({})
        self._state = StreamState.COMPLETED
        LOGGER.debug("Record stream completed for %s", self._path)
        if self._on_complete is not None:
            self._on_complete()

    def _iter_items(self, handle: BinaryIO) -> Iterator[StreamItem]:
        collection = self._collection
        item_prefix = f"{collection}.item"
        nested_prefix = f"{collection}."

        metadata_builder = ObjectBuilder()
        record_builder: ObjectBuilder | None = None
        position = 0
        root_seen = False

        for prefix, event, value in ijson.parse(handle, use_float=True):
            if not root_seen:
                if event != "start_map":
                    raise ParseFault(self._path, "Document root must be a JSON object")
                root_seen = True

            if record_builder is not None:
                record_builder.event(event, value)
                if prefix == item_prefix and event in ("end_map", "end_array"):
                    yield self._build_item(record_builder.value, position)
                    record_builder = None
                    position += 1
                continue

            if prefix == item_prefix:
                if event in ("start_map", "start_array"):
                    record_builder = ObjectBuilder()
                    record_builder.event(event, value)
                else:
                    yield ParseIssue(position=position, message=f"Record is not an object (got {event})")
                    position += 1
                continue

            if prefix == collection:
                if event not in ("start_array", "end_array"):
                    raise ParseFault(self._path, f"Top-level '{collection}' must be an array")
                if event == "start_array" and self._metadata is None:
                    self._emit_metadata(dict(metadata_builder.value))
                continue

            if prefix.startswith(nested_prefix):
                continue
            if prefix == "" and event == "map_key" and value == collection:
                continue
            if self._metadata is not None:
                if prefix == "" and event == "map_key":
                    LOGGER.debug("Ignoring top-level key %r after '%s' in %s", value, collection, self._path)
                continue

            metadata_builder.event(event, value)
            if prefix == "" and event == "end_map":
                self._emit_metadata(metadata_builder.value)

    def _build_item(self, raw: Any, position: int) -> StreamItem:
        try:
            return build_record(raw)
        except (ValueError, TypeError) as exc:
            record_id = raw.get("id") if isinstance(raw, dict) else None
            return ParseIssue(
                position=position,
                message=str(exc),
                record_id=str(record_id) if record_id is not None else None,
            )

    def _emit_metadata(self, raw: dict[str, Any]) -> None:
        self._metadata = DictionaryMetadata(raw=raw)
        LOGGER.info(
            "Document metadata: version=%s languages=%s date=%s",
            self._metadata.version,
            ",".join(self._metadata.languages) or "-",
            self._metadata.dict_date,
        )
        if self._on_metadata is not None:
            self._on_metadata(self._metadata)


def build_record(raw: Any) -> DictionaryRecord:
    """Validate one raw entry object and convert it into a ``DictionaryRecord``."""

    if not isinstance(raw, dict):
        raise _RecordShapeError("Record is not an object")
    return DictionaryRecord(
        id=_parse_id(raw.get("id")),
        kanji=_parse_forms(raw.get("kanji"), "kanji"),
        kana=_parse_forms(raw.get("kana"), "kana"),
        sense=_parse_senses(raw.get("sense")),
    )


def _parse_id(value: Any) -> int:
    if isinstance(value, bool):
        raise _RecordShapeError("Record id must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdecimal():
        try:
            return int(value.strip())
        except ValueError as exc:
            raise _RecordShapeError(f"Record id must be an integer, got {value!r}") from exc
    if value is None:
        raise _RecordShapeError("Record is missing 'id'")
    raise _RecordShapeError(f"Record id must be an integer, got {value!r}")


def _list_field(value: Any, name: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise _RecordShapeError(f"Field '{name}' must be an array")
    return value


def _string_list(value: Any, name: str) -> list[str]:
    items = _list_field(value, name)
    if not all(isinstance(item, str) for item in items):
        raise _RecordShapeError(f"Field '{name}' must contain only strings")
    return list(items)


def _parse_forms(value: Any, name: str) -> list[TextForm]:
    forms: list[TextForm] = []
    for index, item in enumerate(_list_field(value, name)):
        if not isinstance(item, dict):
            raise _RecordShapeError(f"{name}[{index}] must be an object")
        text = item.get("text")
        if not isinstance(text, str):
            raise _RecordShapeError(f"{name}[{index}].text must be a string")
        common = item.get("common", False)
        if not isinstance(common, bool):
            raise _RecordShapeError(f"{name}[{index}].common must be a boolean")
        forms.append(TextForm(text=text, common=common, tags=_string_list(item.get("tags"), f"{name}[{index}].tags")))
    return forms


def _parse_senses(value: Any) -> list[Sense]:
    senses: list[Sense] = []
    for index, item in enumerate(_list_field(value, "sense")):
        if not isinstance(item, dict):
            raise _RecordShapeError(f"sense[{index}] must be an object")
        part_of_speech = _string_list(item.get(_SENSE_POS_KEY), f"sense[{index}].{_SENSE_POS_KEY}")
        glosses = _parse_glosses(item.get(_SENSE_GLOSS_KEY), index)
        fields = {key: field_value for key, field_value in item.items() if key not in (_SENSE_POS_KEY, _SENSE_GLOSS_KEY)}
        senses.append(Sense(part_of_speech=part_of_speech, glosses=glosses, fields=fields))
    return senses


def _parse_glosses(value: Any, sense_index: int) -> list[Gloss]:
    glosses: list[Gloss] = []
    for index, item in enumerate(_list_field(value, f"sense[{sense_index}].gloss")):
        if isinstance(item, str):
            glosses.append(Gloss(text=item))
            continue
        if not isinstance(item, dict) or not isinstance(item.get("text"), str):
            raise _RecordShapeError(f"sense[{sense_index}].gloss[{index}] must have a string 'text'")
        glosses.append(
            Gloss(
                text=item["text"],
                lang=item.get("lang"),
                gender=item.get("gender"),
                type=item.get("type"),
            )
        )
    return glosses
