"""In-memory storage backend for testing."""

import fnmatch
from typing import Dict, Iterator, Optional

from ..exceptions import QuotaExceededError
from .base import StorageBackend


class MemoryBackend(StorageBackend):
    """In-memory storage backend.

    Useful for testing and temporary storage. Data is lost when the
    backend is closed or the process ends.

    An optional ``quota`` caps the characters held (keys plus values), the way
    browser storage caps its size. A write past the quota raises
    QuotaExceededError and keeps the previous value.

    Example:
        backend = MemoryBackend(quota=5_000_000)
        backend.connect()

        backend.set("settings", '{"theme": "dark"}')
        blob = backend.get("settings")
    """

    def __init__(self, quota: Optional[int] = None):
        self._data: Dict[str, str] = {}
        self._connected = False
        self.quota = quota

    def connect(self, **kwargs) -> None:
        """Initialize the in-memory store."""
        self._data = {}
        self._connected = True

    def close(self) -> None:
        """Clear the in-memory store."""
        self._data.clear()
        self._connected = False

    def get(self, key: str) -> Optional[str]:
        """Retrieve the snapshot under key."""
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        """Store or replace the snapshot under key."""
        if not isinstance(value, str):
            raise TypeError(f"Snapshots are strings, got {type(value).__name__}")
        if self.quota is not None:
            current = self._data.get(key)
            used = self.usage() - (len(key) + len(current) if current is not None else 0)
            needed = used + len(key) + len(value)
            if needed > self.quota:
                raise QuotaExceededError(key, f"{needed} of {self.quota} characters")
        self._data[key] = value

    def delete(self, key: str) -> bool:
        """Delete the snapshot under key."""
        if key in self._data:
            del self._data[key]
            return True
        return False

    def exists(self, key: str) -> bool:
        """Check if key exists."""
        return key in self._data

    def keys(self, pattern: str = "*") -> Iterator[str]:
        """Keys matching a glob pattern."""
        for key in sorted(self._data.keys()):
            if fnmatch.fnmatchcase(key, pattern):
                yield key

    def usage(self) -> int:
        """Characters currently held, keys included."""
        return sum(len(k) + len(v) for k, v in self._data.items())
