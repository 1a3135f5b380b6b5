"""
Data model for the invoice memory engine.

Memory records and their learned payloads, the normalized invoice,
correction targets, and the pipeline output contract.
"""

from invoice_memory.models.fields import CorrectionTarget, InvoiceField, PatternField
from invoice_memory.models.invoice import InvoiceLineItem, NormalizedInvoice, coerce_value
from invoice_memory.models.memory import (
    CorrectionMemoryContent,
    DuplicateMemoryContent,
    LearnedMemoryContent,
    Memory,
    MemoryCategory,
    MemoryKind,
    ResolutionMemoryContent,
    ResolutionStatus,
    ScoredLearnedMemory,
    UnparseableMemory,
    VendorMemoryContent,
    build_learned_content,
    parse_learned_content,
)
from invoice_memory.models.pipeline import (
    AppliedMemoryRecord,
    AuditStep,
    AuditTrailEntry,
    EngineOutputContract,
    HumanFeedback,
    MemoryUpdate,
    MemoryUpdateAction,
    ProposedCorrection,
    to_json_value,
)


__all__ = [
    # Memory
    "Memory",
    "MemoryKind",
    "MemoryCategory",
    "ResolutionStatus",
    "LearnedMemoryContent",
    "VendorMemoryContent",
    "CorrectionMemoryContent",
    "ResolutionMemoryContent",
    "DuplicateMemoryContent",
    "UnparseableMemory",
    "ScoredLearnedMemory",
    "parse_learned_content",
    "build_learned_content",
    # Invoice
    "NormalizedInvoice",
    "InvoiceLineItem",
    "coerce_value",
    # Targets
    "InvoiceField",
    "PatternField",
    "CorrectionTarget",
    # Pipeline
    "ProposedCorrection",
    "AppliedMemoryRecord",
    "MemoryUpdate",
    "MemoryUpdateAction",
    "AuditStep",
    "AuditTrailEntry",
    "HumanFeedback",
    "EngineOutputContract",
    "to_json_value",
]
