"""
Storage abstraction layer for StarLedger.

This package provides a pluggable key-value backend that the ledger
persists blocks into, keyed by block height:

- JSON file (default)
- Memory (for testing)

Usage:
    from storage import get_storage_backend

    store = get_storage_backend()
    store.put(0, b'{"hash": "..."}')
    raw = store.get(0)
"""

import os

from storage.base import (
    KeyNotFoundError,
    KeyValueStore,
    StorageError,
    StorageReadError,
    StorageWriteError,
)
from storage.json_file import JSONFileStorage
from storage.memory import MemoryStorage

__all__ = [
    "JSONFileStorage",
    "KeyNotFoundError",
    "KeyValueStore",
    "MemoryStorage",
    "StorageError",
    "StorageReadError",
    "StorageWriteError",
    "get_storage_backend",
]


def get_storage_backend(
    backend_type: str | None = None,
    data_file: str | None = None,
) -> KeyValueStore:
    """
    Get the configured storage backend.

    Environment variables (used when arguments are omitted):
        STORAGE_BACKEND: Backend type ("json", "memory")
        CHAIN_DATA_FILE: Path for JSON file storage (default: chaindata.json)

    Returns:
        Configured KeyValueStore instance
    """
    backend_type = (backend_type or os.getenv("STORAGE_BACKEND", "json")).lower()

    if backend_type == "json":
        data_file = data_file or os.getenv("CHAIN_DATA_FILE", "chaindata.json")
        return JSONFileStorage(data_file)

    elif backend_type == "memory":
        return MemoryStorage()

    else:
        raise StorageError(f"Unknown storage backend: {backend_type}")
