"""
Utility modules for the invoice memory engine.

Provides date parsing and crash-safe file handling.
"""

from invoice_memory.utils.date_utils import (
    date_difference_days,
    format_date,
    get_current_timestamp,
    parse_date,
    to_utc,
)
from invoice_memory.utils.file_utils import (
    FileOperationError,
    atomic_write,
    ensure_directory,
)


__all__ = [
    # Date utilities
    "parse_date",
    "format_date",
    "to_utc",
    "date_difference_days",
    "get_current_timestamp",
    # File utilities
    "ensure_directory",
    "atomic_write",
    "FileOperationError",
]
