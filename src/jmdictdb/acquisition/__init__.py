"""Acquisition package interfaces."""

from .extractor import ArchiveExtractor, ExtractError, UnzipCommandExtractor, ZipArchiveExtractor
from .fetcher import FetchError, FetchResult, HttpFetcher

__all__ = [
    "ArchiveExtractor",
    "ExtractError",
    "FetchError",
    "FetchResult",
    "HttpFetcher",
    "UnzipCommandExtractor",
    "ZipArchiveExtractor",
]
