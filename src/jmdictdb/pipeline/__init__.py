"""Pipeline package interfaces."""

from .config import ConfigError, LoaderSettings
from .orchestrator import DictionaryPipeline, PipelineResult, PipelineStage, RunStats, build_dictionary_database

__all__ = [
    "ConfigError",
    "DictionaryPipeline",
    "LoaderSettings",
    "PipelineResult",
    "PipelineStage",
    "RunStats",
    "build_dictionary_database",
]
