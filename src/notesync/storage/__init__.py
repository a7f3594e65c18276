"""Storage layer for the notesync client."""

from notesync.storage.base import KeyValueStore
from notesync.storage.cache import NoteCache
from notesync.storage.memory_store import MemoryStore
from notesync.storage.sqlite_store import SqliteStore

__all__ = [
    "KeyValueStore",
    "NoteCache",
    "MemoryStore",
    "SqliteStore",
]
