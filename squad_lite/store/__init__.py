"""Persistent store adapter.

Backends:
- InMemoryCollection: dict-backed, for tests and single-process runs
- FileCollection: one JSON file per document
"""

from .base import DocumentCollection, RecordCollection, matches
from .file import FileCollection
from .memory import InMemoryCollection
from .store import PRIMARY_KEYS, Store

__all__ = [
    "DocumentCollection",
    "FileCollection",
    "InMemoryCollection",
    "PRIMARY_KEYS",
    "RecordCollection",
    "Store",
    "matches",
]
