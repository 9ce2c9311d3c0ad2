"""Canonical record structures emitted by the dictionary stream."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class TextForm:
    """One written form of a word: a kanji spelling or a kana reading."""

    text: str
    common: bool = False
    tags: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class Gloss:
    text: str
    lang: str | None = None
    gender: str | None = None
    type: str | None = None


@dataclass(frozen=True, slots=True)
class Sense:
    """One meaning of a word.

    ``fields`` carries every sense attribute other than part of speech and
    glosses under its source key name, in source order.
    """

    part_of_speech: list[str] = field(default_factory=list)
    glosses: list[Gloss] = field(default_factory=list)
    fields: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class DictionaryRecord:
    """A single dictionary entry as read from the source document."""

    id: int
    kanji: list[TextForm] = field(default_factory=list)
    kana: list[TextForm] = field(default_factory=list)
    sense: list[Sense] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class NormalizedRecord:
    """Persistence-ready entry; ``None`` marks an omitted empty collection."""

    id: int
    kanji: str | None
    kana: str | None
    sense: str | None


@dataclass(frozen=True, slots=True)
class ParseIssue:
    """A per-record parse error; the stream keeps going after one."""

    position: int
    message: str
    record_id: str | None = None

    def __str__(self) -> str:
        return f"{self.message} (position={self.position}, id={self.record_id})"


@dataclass(frozen=True, slots=True)
class DictionaryMetadata:
    """Document-level fields that surround the record collection."""

    raw: Mapping[str, Any] = field(default_factory=dict)

    @property
    def version(self) -> str | None:
        value = self.raw.get("version")
        return str(value) if value is not None else None

    @property
    def languages(self) -> list[str]:
        value = self.raw.get("languages")
        return [str(item) for item in value] if isinstance(value, list) else []

    @property
    def dict_date(self) -> str | None:
        value = self.raw.get("dictDate")
        return str(value) if value is not None else None

    @property
    def common_only(self) -> bool:
        return bool(self.raw.get("commonOnly", False))

    @property
    def tags(self) -> dict[str, str]:
        value = self.raw.get("tags")
        if not isinstance(value, Mapping):
            return {}
        return {str(key): str(description) for key, description in value.items()}
