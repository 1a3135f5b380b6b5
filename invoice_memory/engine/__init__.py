"""
Feedback-memory engine for extracted invoices.

Four stages, run in order for each invoice:

- recall: find and score memories for the vendor and invoice
- apply: turn them, plus text heuristics, into field corrections
- decide: choose between auto-approval and human review
- learn: reinforce or decay memories from reviewer feedback
"""

from invoice_memory.engine.apply import ApplyResult, CorrectionApplier, apply_memories
from invoice_memory.engine.confidence import ConfidenceBand, ConfidenceBands, clamp
from invoice_memory.engine.decide import Decision, decide
from invoice_memory.engine.learn import LearningSignal, MemoryLearner, learn_from_signal
from invoice_memory.engine.orchestrator import MemoryEngine, ReviewSession, process_invoice
from invoice_memory.engine.recall import MemoryRecall, RecallQuery, RecallSummary, recall_memories


__all__ = [
    # Recall
    "MemoryRecall",
    "RecallQuery",
    "RecallSummary",
    "recall_memories",
    # Apply
    "CorrectionApplier",
    "ApplyResult",
    "apply_memories",
    # Decide
    "Decision",
    "decide",
    # Learn
    "MemoryLearner",
    "LearningSignal",
    "learn_from_signal",
    # Orchestrator
    "MemoryEngine",
    "ReviewSession",
    "process_invoice",
    # Confidence
    "ConfidenceBand",
    "ConfidenceBands",
    "clamp",
]
