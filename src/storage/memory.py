"""
In-memory storage backend.

This backend keeps blocks in a dictionary, useful for:
- Unit testing
- Development
- Temporary/ephemeral ledgers
"""

import threading
from typing import Any

from storage.base import KeyNotFoundError, KeyValueStore, StorageWriteError


class MemoryStorage(KeyValueStore):
    """
    In-memory storage backend.

    All data is lost when the process exits. Thread-safe operations.
    """

    def __init__(self):
        """Initialize empty memory storage."""
        self._data: dict[int, bytes] = {}
        # RLock so get_info can call count() while holding the lock
        self._lock = threading.RLock()

    def get(self, key: int) -> bytes:
        with self._lock:
            try:
                return self._data[int(key)]
            except KeyError:
                raise KeyNotFoundError(key) from None

    def put(self, key: int, value: bytes) -> None:
        if not isinstance(value, bytes):
            raise StorageWriteError(f"Value must be bytes, got {type(value).__name__}")
        with self._lock:
            self._data[int(key)] = value

    def scan(self) -> list[tuple[int, bytes]]:
        with self._lock:
            return sorted(self._data.items())

    def count(self) -> int:
        with self._lock:
            return len(self._data)

    def is_available(self) -> bool:
        """Memory storage is always available."""
        return True

    def get_info(self) -> dict[str, Any]:
        """Get storage backend information."""
        info = super().get_info()
        with self._lock:
            info.update({
                "has_data": bool(self._data),
                "key_count": self.count(),
            })
        return info

    def clear(self) -> None:
        """Clear all stored data."""
        with self._lock:
            self._data.clear()
