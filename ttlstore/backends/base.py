"""Abstract base class for storage backends."""

from abc import ABC, abstractmethod
from typing import Iterator, Optional


class StorageBackend(ABC):
    """Abstract base class for storage backends.

    A backend keeps one string snapshot per key. Records never inspect a
    backend's capacity: a write the backend cannot accept raises
    PersistenceRejected, or QuotaExceededError when it is out of space.
    """

    @abstractmethod
    def connect(self, **kwargs) -> None:
        """Establish connection to storage.

        Args:
            **kwargs: Backend-specific connection parameters
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Close connection and release resources."""
        pass

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Retrieve the snapshot stored under key.

        Args:
            key: The record key

        Returns:
            The stored string, or None if nothing is stored
        """
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store or replace the snapshot under key.

        Args:
            key: The record key
            value: Serialized snapshot

        Raises:
            PersistenceRejected: If the backend refuses the write
            QuotaExceededError: If the write would exceed capacity
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete the snapshot under key.

        Returns:
            True if it existed and was deleted, False if not found
        """
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check whether a snapshot is stored under key."""
        pass

    @abstractmethod
    def keys(self, pattern: str = "*") -> Iterator[str]:
        """Keys matching a glob pattern, in sorted order.

        Args:
            pattern: Glob pattern (e.g., "settings:*")
        """
        pass
