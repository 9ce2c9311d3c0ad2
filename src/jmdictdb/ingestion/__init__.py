"""Ingestion package interfaces."""

from .models import DictionaryMetadata, DictionaryRecord, Gloss, NormalizedRecord, ParseIssue, Sense, TextForm
from .normalizer import compact_json, normalize
from .stream import DOCUMENT_KINDS, ParseFault, RecordStream, StreamState, build_record

__all__ = [
    "DOCUMENT_KINDS",
    "DictionaryMetadata",
    "DictionaryRecord",
    "Gloss",
    "NormalizedRecord",
    "ParseFault",
    "ParseIssue",
    "RecordStream",
    "Sense",
    "StreamState",
    "TextForm",
    "build_record",
    "compact_json",
    "normalize",
]
