"""
In-process memory stores.

``InMemoryMemoryStore`` keeps records in a dict and is meant for tests and
one-off runs. ``JsonFileMemoryStore`` persists the same dict to a single
JSON file, rewritten atomically after every save.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

from invoice_memory.config import get_logger
from invoice_memory.models.memory import Memory
from invoice_memory.storage.base import MemoryStoreError, content_matches
from invoice_memory.utils.file_utils import FileOperationError, atomic_write, ensure_directory


logger = get_logger(__name__)


class InMemoryMemoryStore:
    """
    Dict-backed memory store.

    Search results come back in insertion order; an upsert keeps the
    original position of the record.
    """

    def __init__(self) -> None:
        self._memories: dict[str, Memory] = {}
        self._lock = threading.RLock()

    def save(self, memory: Memory) -> None:
        with self._lock:
            self._memories[memory.id] = memory

    def get_by_id(self, memory_id: str) -> Memory | None:
        with self._lock:
            return self._memories.get(memory_id)

    def search_by_text(self, query: str, limit: int = 10) -> list[Memory]:
        with self._lock:
            matches = [m for m in self._memories.values() if content_matches(m.content, query)]
        return matches[:limit]

    def __len__(self) -> int:
        return len(self._memories)


class JsonFileMemoryStore(InMemoryMemoryStore):
    """
    Memory store persisted to a single JSON file.

    The whole file is loaded on construction and rewritten with an atomic
    temp-file replace after each save, so a crash never leaves a partial
    document behind.
    """

    def __init__(self, file_path: Path | str) -> None:
        """
        Initialize the store.

        Args:
            file_path: Path of the JSON document.

        Raises:
            MemoryStoreError: If an existing file cannot be read or parsed.
        """
        super().__init__()
        self._file_path = Path(file_path)
        self._load()

        logger.info(
            "json_memory_store_initialized",
            path=str(self._file_path),
            memory_count=len(self._memories),
        )

    @property
    def file_path(self) -> Path:
        return self._file_path

    def _load(self) -> None:
        """Load memories from disk."""
        try:
            ensure_directory(self._file_path.parent)
        except FileOperationError as e:
            raise MemoryStoreError(str(e)) from e

        if not self._file_path.exists():
            return

        try:
            with self._file_path.open("r", encoding="utf-8") as f:
                data: list[dict[str, Any]] = json.load(f)
            with self._lock:
                self._memories = {item["id"]: Memory.from_dict(item) for item in data}
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise MemoryStoreError(f"Failed to load memory file {self._file_path}: {e}") from e

        logger.debug("memories_loaded", count=len(self._memories))

    def _flush(self) -> None:
        """Write all memories to disk atomically."""
        data = [m.to_dict() for m in self._memories.values()]
        try:
            with atomic_write(self._file_path) as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
        except FileOperationError as e:
            raise MemoryStoreError(f"Failed to persist memories: {e}") from e

        logger.debug("memories_saved", count=len(data))

    def save(self, memory: Memory) -> None:
        with self._lock:
            previous = self._memories.get(memory.id)
            self._memories[memory.id] = memory
            try:
                self._flush()
            except MemoryStoreError:
                # Keep the in-process view consistent with the file
                if previous is None:
                    del self._memories[memory.id]
                else:
                    self._memories[memory.id] = previous
                raise
