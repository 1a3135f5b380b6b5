"""
Storage module for learned memories.

Provides the MemoryStore protocol and its in-memory, JSON-file and
SQLite backends, plus a process-wide store built from settings.
"""

from __future__ import annotations

import threading

from invoice_memory.config import get_logger, get_settings
from invoice_memory.config.settings import MemoryStoreSettings, StoreBackend
from invoice_memory.storage.base import MemoryStore, MemoryStoreError
from invoice_memory.storage.memory_store import InMemoryMemoryStore, JsonFileMemoryStore
from invoice_memory.storage.sqlite_store import SqliteMemoryStore


logger = get_logger(__name__)


def create_memory_store(settings: MemoryStoreSettings | None = None) -> MemoryStore:
    """
    Build the memory store configured in settings.

    Args:
        settings: Store settings. Defaults to the application settings.

    Returns:
        A new MemoryStore instance.
    """
    settings = settings or get_settings().memory_store

    if settings.backend == StoreBackend.MEMORY:
        store: MemoryStore = InMemoryMemoryStore()
    elif settings.backend == StoreBackend.JSON:
        store = JsonFileMemoryStore(settings.json_path)
    else:
        store = SqliteMemoryStore(settings.sqlite_path)

    logger.debug("memory_store_created", backend=settings.backend.value)
    return store


# Module-level singleton
_memory_store: MemoryStore | None = None
_store_lock = threading.Lock()


def get_memory_store() -> MemoryStore:
    """
    Get or create the memory store singleton.

    Returns:
        MemoryStore instance built from the application settings.
    """
    global _memory_store

    with _store_lock:
        if _memory_store is None:
            _memory_store = create_memory_store()

    return _memory_store


def reset_memory_store() -> None:
    """Drop the singleton so the next call rebuilds it from settings."""
    global _memory_store

    with _store_lock:
        _memory_store = None


__all__ = [
    "MemoryStore",
    "MemoryStoreError",
    "InMemoryMemoryStore",
    "JsonFileMemoryStore",
    "SqliteMemoryStore",
    "create_memory_store",
    "get_memory_store",
    "reset_memory_store",
]
