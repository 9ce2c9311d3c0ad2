from __future__ import annotations

import json

from jmdictdb.ingestion.models import DictionaryRecord, Gloss, Sense, TextForm
from jmdictdb.ingestion.normalizer import compact_json, normalize


def _record() -> DictionaryRecord:
    return DictionaryRecord(
        id=1000220,
        kanji=[
            TextForm(text="明白", common=True, tags=[]),
            TextForm(text="明々白々", common=False, tags=["iK"]),
        ],
        kana=[TextForm(text="めいはく", common=True, tags=[])],
        sense=[
            Sense(
                part_of_speech=["adj-na"],
                glosses=[Gloss(text="obvious", lang="eng"), Gloss(text="clear", lang="eng")],
                fields={"appliesToKanji": ["*"], "related": [], "misc": [], "info": ["formal"]},
            )
        ],
    )


def test_forms_use_short_keys_and_drop_empty_tags() -> None:
    normalized = normalize(_record())

    assert json.loads(normalized.kanji) == [{"x": "明白", "c": 1}, {"x": "明々白々", "c": 0, "t": ["iK"]}]
    assert json.loads(normalized.kana) == [{"x": "めいはく", "c": 1}]


def test_sense_renames_pos_and_flattens_glosses() -> None:
    normalized = normalize(_record())

    senses = json.loads(normalized.sense)
    assert senses == [
        {
            "pos": ["adj-na"],
            "appliesToKanji": ["*"],
            "info": ["formal"],
            "gloss": ["obvious", "clear"],
        }
    ]
    assert list(senses[0]) == ["pos", "appliesToKanji", "info", "gloss"]


def test_blobs_are_compact_and_keep_unicode() -> None:
    normalized = normalize(_record())

    assert normalized.kana == '[{"x":"めいはく","c":1}]'
    assert " " not in normalized.kanji


def test_no_blob_contains_an_empty_array() -> None:
    record = DictionaryRecord(
        id=3,
        kanji=[],
        kana=[TextForm(text="へ", common=False, tags=[])],
        sense=[
            Sense(
                part_of_speech=[],
                glosses=[],
                fields={"related": [[], ["x", 1]], "field": [], "dialect": []},
            )
        ],
    )

    normalized = normalize(record)

    assert normalized.kanji is None
    for blob in (normalized.kana, normalized.sense):
        assert blob is not None
        assert "[]" not in blob
    assert json.loads(normalized.sense) == [{"related": [["x", 1]]}]


def test_empty_record_collapses_every_blob() -> None:
    normalized = normalize(DictionaryRecord(id=9))

    assert (normalized.id, normalized.kanji, normalized.kana, normalized.sense) == (9, None, None, None)


def test_round_trip_matches_source_forms() -> None:
    record = _record()

    decoded = json.loads(normalize(record).kanji)

    expected = []
    for form in record.kanji:
        item = {"x": form.text, "c": int(form.common)}
        if form.tags:
            item["t"] = form.tags
        expected.append(item)
    assert decoded == expected


def test_compact_json_handles_nested_values() -> None:
    assert compact_json([]) is None
    assert compact_json([[], []]) is None
    assert compact_json({"a": [], "b": {"c": []}}) == '{"b":{}}'
    assert compact_json([1, [2, []]]) == "[1,[2]]"


def test_normalize_is_pure() -> None:
    record = _record()

    first = normalize(record)
    second = normalize(record)

    assert first == second
    assert record.sense[0].fields["related"] == []
