"""
File utility functions for the file-backed memory store.

Provides directory creation and crash-safe writes with proper
error handling.
"""

import os
import time
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import IO

from invoice_memory.config import get_logger


logger = get_logger(__name__)


class FileOperationError(Exception):
    """Exception raised for file operation errors."""


def ensure_directory(path: Path | str) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path to ensure exists.

    Returns:
        Path object for the directory.

    Raises:
        FileOperationError: If directory cannot be created.
    """
    path = Path(path)

    try:
        path.mkdir(parents=True, exist_ok=True)
        logger.debug("directory_ensured", path=str(path))
        return path
    except PermissionError as e:
        raise FileOperationError(f"Permission denied creating directory: {path}") from e
    except OSError as e:
        raise FileOperationError(f"Failed to create directory: {path}") from e


@contextmanager
def atomic_write(
    file_path: Path | str,
    encoding: str = "utf-8",
) -> Generator[IO[str], None, None]:
    """
    Context manager for atomic text file writes.

    Writes to a temporary file next to the target, then replaces the
    target in a single rename so readers never observe a partial file.

    Args:
        file_path: Target file path.
        encoding: File encoding.

    Yields:
        File object for writing.

    Raises:
        FileOperationError: If the write or the rename fails.

    Example:
        with atomic_write("/path/to/memories.json") as f:
            f.write("{}")
    """
    file_path = Path(file_path)
    ensure_directory(file_path.parent)

    # Temp file in the same directory so the rename stays on one filesystem
    temp_path = file_path.with_suffix(f".tmp.{os.getpid()}.{int(time.time() * 1000)}")

    try:
        with open(temp_path, "w", encoding=encoding) as f:
            yield f
            f.flush()
            os.fsync(f.fileno())

        temp_path.replace(file_path)
        logger.debug("atomic_write_complete", path=str(file_path))

    except Exception as e:
        if temp_path.exists():
            try:
                temp_path.unlink()
            except OSError:
                logger.warning("atomic_write_cleanup_failed", path=str(temp_path))
        raise FileOperationError(f"Atomic write failed: {e}") from e
