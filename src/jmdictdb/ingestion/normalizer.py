"""Compact persistence encoding for dictionary records."""

from __future__ import annotations

import json
from typing import Any

from jmdictdb.ingestion.models import DictionaryRecord, NormalizedRecord, Sense, TextForm


def _drop_empty_arrays(value: Any) -> Any:
    """Recursively remove empty lists from mappings and sequences."""

    if isinstance(value, dict):
        cleaned_map: dict[str, Any] = {}
        for key, item in value.items():
            cleaned = _drop_empty_arrays(item)
            if cleaned == []:
                continue
            cleaned_map[key] = cleaned
        return cleaned_map
    if isinstance(value, list):
        cleaned_items: list[Any] = []
        for item in value:
            cleaned = _drop_empty_arrays(item)
            if cleaned == []:
                continue
            cleaned_items.append(cleaned)
        return cleaned_items
    return value


def compact_json(value: Any) -> str | None:
    """Serialize ``value`` without whitespace, omitting empty arrays.

    Returns ``None`` when the value itself collapses to an empty array.
    """

    cleaned = _drop_empty_arrays(value)
    if isinstance(cleaned, list) and not cleaned:
        return None
    return json.dumps(cleaned, ensure_ascii=False, separators=(",", ":"))


def _compact_form(form: TextForm) -> dict[str, Any]:
    return {"x": form.text, "c": 1 if form.common else 0, "t": list(form.tags)}


def _compact_sense(sense: Sense) -> dict[str, Any]:
    compact: dict[str, Any] = {"pos": list(sense.part_of_speech)}
    compact.update(sense.fields)
    compact["gloss"] = [gloss.text for gloss in sense.glosses]
    return compact


def normalize(record: DictionaryRecord) -> NormalizedRecord:
    """Map a source record to its persisted form. Pure and total."""

    return NormalizedRecord(
        id=record.id,
        kanji=compact_json([_compact_form(form) for form in record.kanji]),
        kana=compact_json([_compact_form(form) for form in record.kana]),
        sense=compact_json([_compact_sense(sense) for sense in record.sense]),
    )
