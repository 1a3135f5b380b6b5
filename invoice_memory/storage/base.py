"""
Memory store interface.

The engine depends only on this protocol: an idempotent upsert keyed by
id, a point lookup, and a case-insensitive substring search over the
content blob with no ranking guarantee.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from invoice_memory.models.memory import Memory


class MemoryStoreError(Exception):
    """Raised when the backing store cannot be read or written."""


@runtime_checkable
class MemoryStore(Protocol):
    """Durable key-to-memory storage with substring search."""

    def save(self, memory: Memory) -> None:
        """Insert or fully overwrite the memory with the same id."""
        ...

    def get_by_id(self, memory_id: str) -> Memory | None:
        """Return the memory with this id, or None."""
        ...

    def search_by_text(self, query: str, limit: int = 10) -> list[Memory]:
        """Return up to ``limit`` memories whose content contains ``query``."""
        ...


def content_matches(content: str, query: str) -> bool:
    """Case-insensitive substring test shared by the in-process backends."""
    return query.casefold() in content.casefold()
