"""Storage backends for ttlstore."""

from .base import StorageBackend
from .memory import MemoryBackend
from .sqlite import SQLiteBackend

__all__ = [
    "StorageBackend",
    "MemoryBackend",
    "SQLiteBackend",
]
