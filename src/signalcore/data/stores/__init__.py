"""Persistence stores."""

from .base import PatternStore
from .memory import InMemoryStore
from .sqlite import SQLiteStore

__all__ = [
    "PatternStore",
    "InMemoryStore",
    "SQLiteStore",
]
