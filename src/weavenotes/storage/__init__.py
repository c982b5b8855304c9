"""Key/value persistence for expositions and suggestions."""

from .store import JsonStore, MemoryJsonStore, SqliteJsonStore, StorageFailure, exposition_key, suggestions_key

__all__ = [
    "JsonStore",
    "MemoryJsonStore",
    "SqliteJsonStore",
    "StorageFailure",
    "exposition_key",
    "suggestions_key",
]
