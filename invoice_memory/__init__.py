"""
Invoice Memory Engine.

Learns from human corrections on extracted invoices: recalls what was
learned about a vendor, re-applies confident corrections, decides whether
the invoice still needs human review, and adjusts its confidence in each
remembered pattern from reviewer feedback.

Usage:
    from invoice_memory import MemoryEngine, NormalizedInvoice, create_memory_store
    engine = MemoryEngine(create_memory_store())
    output = engine.process(NormalizedInvoice.from_extracted_record(record))
"""

from importlib.metadata import PackageNotFoundError, version

from invoice_memory.config import AuditLogger, configure_logging, get_logger, get_settings
from invoice_memory.engine import (
    LearningSignal,
    MemoryEngine,
    RecallQuery,
    ReviewSession,
    process_invoice,
)
from invoice_memory.models import (
    EngineOutputContract,
    HumanFeedback,
    InvoiceLineItem,
    Memory,
    NormalizedInvoice,
)
from invoice_memory.storage import (
    MemoryStore,
    MemoryStoreError,
    create_memory_store,
    get_memory_store,
)


try:
    __version__ = version("invoice-memory-engine")
except PackageNotFoundError:
    __version__ = "1.0.0"

__all__ = [
    # Package info
    "__version__",
    # Configuration
    "get_settings",
    "get_logger",
    "configure_logging",
    "AuditLogger",
    # Engine
    "MemoryEngine",
    "ReviewSession",
    "RecallQuery",
    "LearningSignal",
    "process_invoice",
    # Models
    "NormalizedInvoice",
    "InvoiceLineItem",
    "Memory",
    "HumanFeedback",
    "EngineOutputContract",
    # Storage
    "MemoryStore",
    "MemoryStoreError",
    "create_memory_store",
    "get_memory_store",
]
