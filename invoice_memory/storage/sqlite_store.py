"""
SQLite-backed memory store.

One ``memories`` table keyed by id. Each operation opens its own
connection, so the store can be shared between threads; the database
runs in WAL mode so readers do not block the writer.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from invoice_memory.config import get_logger
from invoice_memory.models.memory import Memory, MemoryKind
from invoice_memory.storage.base import MemoryStoreError
from invoice_memory.utils.date_utils import to_utc
from invoice_memory.utils.file_utils import FileOperationError, ensure_directory


logger = get_logger(__name__)


_SCHEMA = """
    CREATE TABLE IF NOT EXISTS memories (
        id TEXT PRIMARY KEY,
        kind TEXT NOT NULL,
        content TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        source TEXT
    )
"""

_UPSERT = """
    INSERT INTO memories (id, kind, content, created_at, updated_at, source)
    VALUES (:id, :kind, :content, :created_at, :updated_at, :source)
    ON CONFLICT(id) DO UPDATE SET
        kind = excluded.kind,
        content = excluded.content,
        created_at = excluded.created_at,
        updated_at = excluded.updated_at,
        source = excluded.source
"""

_COLUMNS = "id, kind, content, created_at, updated_at, source"


def escape_like(query: str, escape: str = "\\") -> str:
    """Escape LIKE wildcards so the query matches literally."""
    return (
        query.replace(escape, escape * 2)
        .replace("%", f"{escape}%")
        .replace("_", f"{escape}_")
    )


class SqliteMemoryStore:
    """
    Memory store persisted in a SQLite database file.

    Example:
        store = SqliteMemoryStore("./data/memory/memory.db")
        store.save(memory)
        store.search_by_text("Parts AG", limit=50)
    """

    def __init__(self, db_path: Path | str) -> None:
        """
        Initialize the store and ensure the schema exists.

        Args:
            db_path: Path of the database file.

        Raises:
            MemoryStoreError: If the database cannot be created or opened.
        """
        self._db_path = Path(db_path)
        try:
            ensure_directory(self._db_path.parent)
        except FileOperationError as e:
            raise MemoryStoreError(str(e)) from e

        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute(_SCHEMA)

        logger.info("sqlite_memory_store_initialized", path=str(self._db_path))

    @property
    def db_path(self) -> Path:
        return self._db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success, always close."""
        try:
            conn = sqlite3.connect(self._db_path)
        except sqlite3.Error as e:
            raise MemoryStoreError(f"Cannot open memory database {self._db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise MemoryStoreError(f"Memory database error: {e}") from e
        finally:
            conn.close()

    @staticmethod
    def _row_to_memory(row: sqlite3.Row) -> Memory:
        return Memory(
            id=row["id"],
            kind=MemoryKind(row["kind"]),
            content=row["content"],
            created_at=to_utc(datetime.fromisoformat(row["created_at"])),
            updated_at=to_utc(datetime.fromisoformat(row["updated_at"])),
            source=row["source"],
        )

    def save(self, memory: Memory) -> None:
        with self._connect() as conn:
            conn.execute(
                _UPSERT,
                {
                    "id": memory.id,
                    "kind": memory.kind.value,
                    "content": memory.content,
                    "created_at": memory.created_at.isoformat(),
                    "updated_at": memory.updated_at.isoformat(),
                    "source": memory.source,
                },
            )

    def get_by_id(self, memory_id: str) -> Memory | None:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM memories WHERE id = ?",
                (memory_id,),
            ).fetchone()
        return self._row_to_memory(row) if row else None

    def search_by_text(self, query: str, limit: int = 10) -> list[Memory]:
        """Substring search over content, most recently updated first."""
        pattern = f"%{escape_like(query)}%"
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM memories "
                "WHERE content LIKE ? ESCAPE '\\' ORDER BY updated_at DESC, rowid DESC LIMIT ?",
                (pattern, limit),
            ).fetchall()
        return [self._row_to_memory(row) for row in rows]

    def count(self) -> int:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM memories").fetchone()[0]
