"""
JSON file storage backend.

This is the default storage backend. It persists the key-value table to a
single JSON document mapping each height (as a string) to the serialized
block text. The whole table is cached in memory and rewritten atomically
on every put.
"""

import json
import os
import shutil
import threading
from datetime import datetime
from typing import Any

from storage.base import (
    KeyNotFoundError,
    KeyValueStore,
    StorageError,
    StorageReadError,
    StorageWriteError,
)


class JSONFileStorage(KeyValueStore):
    """
    JSON file storage backend.

    Thread-safe operations using a file lock.
    """

    def __init__(self, file_path: str = "chaindata.json"):
        """
        Initialize JSON file storage.

        Args:
            file_path: Path to the JSON file
        """
        self.file_path = file_path
        self._lock = threading.Lock()
        self._cache: dict[int, bytes] | None = None

    def _load(self) -> dict[int, bytes]:
        """
        Load the table from disk into the cache. Caller holds the lock.

        Raises:
            StorageReadError: If reading fails
        """
        if self._cache is not None:
            return self._cache

        try:
            if not os.path.exists(self.file_path):
                self._cache = {}
                return self._cache

            with open(self.file_path, 'r', encoding='utf-8') as f:
                raw_data = f.read()

            if not raw_data.strip():
                self._cache = {}
                return self._cache

            table = json.loads(raw_data)
            if not isinstance(table, dict):
                raise StorageReadError("Invalid store format: top level must be an object")

            self._cache = {int(k): v.encode('utf-8') for k, v in table.items()}
            return self._cache

        except StorageReadError:
            raise
        except PermissionError as e:
            raise StorageReadError(f"Permission denied: {self.file_path}") from e
        except json.JSONDecodeError as e:
            raise StorageReadError(f"Invalid JSON format: {e}") from e
        except (OSError, ValueError, AttributeError) as e:
            raise StorageReadError(f"Failed to load store: {e}") from e

    def _flush(self, table: dict[int, bytes]) -> None:
        """Write the table to disk atomically. Caller holds the lock."""
        try:
            data = json.dumps(
                {str(k): v.decode('utf-8') for k, v in sorted(table.items())},
                indent=2,
                ensure_ascii=False,
            )

            # Write to temp, then rename
            temp_path = f"{self.file_path}.tmp"
            with open(temp_path, 'w', encoding='utf-8') as f:
                f.write(data)

            os.replace(temp_path, self.file_path)

        except PermissionError as e:
            raise StorageWriteError(
                f"Permission denied: {self.file_path}"
            ) from e
        except OSError as e:
            raise StorageWriteError(f"OS error: {e}") from e
        except UnicodeDecodeError as e:
            raise StorageWriteError(f"Value is not valid UTF-8: {e}") from e

    def get(self, key: int) -> bytes:
        with self._lock:
            table = self._load()
            try:
                return table[int(key)]
            except KeyError:
                raise KeyNotFoundError(key) from None

    def put(self, key: int, value: bytes) -> None:
        if not isinstance(value, bytes):
            raise StorageWriteError(f"Value must be bytes, got {type(value).__name__}")
        with self._lock:
            table = self._load()
            updated = dict(table)
            updated[int(key)] = value
            self._flush(updated)
            self._cache = updated

    def scan(self) -> list[tuple[int, bytes]]:
        with self._lock:
            return sorted(self._load().items())

    def count(self) -> int:
        with self._lock:
            return len(self._load())

    def is_available(self) -> bool:
        """
        Check if file storage is available.

        Returns:
            True if the file path is writable
        """
        directory = os.path.dirname(self.file_path) or "."
        if not os.path.isdir(directory):
            return False
        return os.access(directory, os.W_OK)

    def get_info(self) -> dict[str, Any]:
        """Get storage backend information."""
        info = super().get_info()
        info.update({
            "file_path": self.file_path,
            "file_exists": os.path.exists(self.file_path),
        })

        if os.path.exists(self.file_path):
            try:
                stat = os.stat(self.file_path)
                info["file_size_bytes"] = stat.st_size
                info["last_modified"] = stat.st_mtime
            except OSError:
                pass

        return info

    def backup(self, backup_path: str | None = None) -> str:
        """
        Create a backup of the storage file.

        Args:
            backup_path: Path for backup file (default: adds .backup suffix)

        Returns:
            Path to the backup file

        Raises:
            StorageError: If backup fails
        """
        if backup_path is None:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            backup_path = f"{self.file_path}.{timestamp}.backup"

        with self._lock:
            if not os.path.exists(self.file_path):
                raise StorageError("No file to backup")
            try:
                shutil.copy2(self.file_path, backup_path)
            except OSError as e:
                raise StorageError(f"Backup failed: {e}") from e
        return backup_path
