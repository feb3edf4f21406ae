"""
Abstract base class for storage backends.

This module defines the key-value interface the ledger persists blocks
through. Keys are block heights (non-negative integers); values are the
serialized block bytes. The ledger never relies on anything beyond
get-by-key, put-by-key and an ordered full scan.
"""

from abc import ABC, abstractmethod
from typing import Any

from errors import NotFoundError


class StorageError(Exception):
    """Base exception for storage-related errors."""
    pass


class StorageReadError(StorageError):
    """Raised when reading from storage fails."""
    pass


class StorageWriteError(StorageError):
    """Raised when writing to storage fails."""
    pass


class KeyNotFoundError(StorageError, NotFoundError):
    """Raised when a key is not present in the store."""

    def __init__(self, key: int):
        NotFoundError.__init__(self, f"Key not found: {key}", {"key": key})
        self.key = key


class KeyValueStore(ABC):
    """
    Abstract base class for block storage backends.

    All storage backends must implement these methods to provide
    a consistent interface for block persistence.
    """

    @abstractmethod
    def get(self, key: int) -> bytes:
        """
        Read the value stored under a key.

        Args:
            key: Block height

        Returns:
            Stored bytes

        Raises:
            KeyNotFoundError: If the key is absent
            StorageReadError: If reading fails
        """
        pass

    @abstractmethod
    def put(self, key: int, value: bytes) -> None:
        """
        Store a value under a key, replacing any previous value.

        Args:
            key: Block height
            value: Serialized block

        Raises:
            StorageWriteError: If writing fails
        """
        pass

    @abstractmethod
    def scan(self) -> list[tuple[int, bytes]]:
        """
        Return every (key, value) pair in ascending key order.

        The result is a snapshot; later writes do not affect it.

        Raises:
            StorageReadError: If reading fails
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """
        Check if the storage backend is available and ready.

        Returns:
            True if storage is accessible, False otherwise
        """
        pass

    def count(self) -> int:
        """
        Get the number of stored keys.

        Default implementation counts a full scan - backends should
        override for efficiency.
        """
        return len(self.scan())

    def get_info(self) -> dict[str, Any]:
        """
        Get information about the storage backend.

        Returns:
            Dictionary with backend type, status, and configuration
        """
        return {
            "backend_type": self.__class__.__name__,
            "available": self.is_available(),
        }

    def close(self) -> None:
        """
        Close the storage connection and release resources.

        Default implementation does nothing - backends with connections
        should override this.
        """
        pass

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - closes connection."""
        self.close()
        return False
