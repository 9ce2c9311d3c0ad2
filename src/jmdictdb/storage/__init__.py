"""Storage package interfaces."""

from .repository import SinkError, WordRepository, WordRow

__all__ = ["SinkError", "WordRepository", "WordRow"]
