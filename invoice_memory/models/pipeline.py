"""
Pipeline result types.

These records describe what one engine run did: the corrections it
proposed or applied, the memories it touched, and the audit trail of
its four stages. Each has a ``to_dict`` producing the camelCase output
contract.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from invoice_memory.models.fields import CorrectionTarget
from invoice_memory.models.invoice import NormalizedInvoice
from invoice_memory.utils.date_utils import get_current_timestamp


def to_json_value(value: Any) -> Any:
    """Render dates and enums as JSON-compatible scalars."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass(slots=True)
class ProposedCorrection:
    """
    A field-level correction suggested by the apply stage.

    Attributes:
        target: Corrected attribute.
        proposed_value: Value to write.
        reason: Human-readable justification.
        confidence: Confidence backing the suggestion.
        applied: Whether the value was already written into the invoice.
        memory_id: Memory the suggestion came from, if any.
    """

    target: CorrectionTarget
    proposed_value: Any
    reason: str
    confidence: float
    applied: bool = False
    memory_id: str | None = None

    @property
    def field(self) -> str:
        """String key of the target, as used in reviewer feedback."""
        return self.target.key

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result: dict[str, Any] = {
            "field": self.field,
            "proposedValue": to_json_value(self.proposed_value),
            "reason": self.reason,
            "confidence": self.confidence,
            "applied": self.applied,
        }
        if self.memory_id is not None:
            result["memoryId"] = self.memory_id
        return result


@dataclass(frozen=True, slots=True)
class AppliedMemoryRecord:
    """Audit record linking a memory (or built-in rule) to a corrected field."""

    field: str
    memory_id: str
    confidence: float
    applied: bool
    reason: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "field": self.field,
            "memoryId": self.memory_id,
            "confidence": self.confidence,
            "applied": self.applied,
        }


class MemoryUpdateAction(str, Enum):
    """Kind of change a learning step made to a memory."""

    REINFORCE = "reinforce"
    DECAY = "decay"
    CREATE = "create"


@dataclass(frozen=True, slots=True)
class MemoryUpdate:
    """
    Confidence delta applied to one memory during a run.

    Attributes:
        memory_id: Updated memory.
        previous_confidence: Confidence before the update.
        new_confidence: Confidence after the update.
        usage_count: Usage count after the update.
        action: Kind of change.
    """

    memory_id: str
    previous_confidence: float
    new_confidence: float
    usage_count: int
    action: MemoryUpdateAction

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "memoryId": self.memory_id,
            "previousConfidence": self.previous_confidence,
            "newConfidence": self.new_confidence,
            "usageCount": self.usage_count,
            "action": self.action.value,
        }


class AuditStep(str, Enum):
    """Pipeline stages recorded in the audit trail."""

    RECALL = "recall"
    APPLY = "apply"
    DECIDE = "decide"
    LEARN = "learn"


@dataclass(slots=True)
class AuditTrailEntry:
    """One audit trail entry per pipeline stage."""

    step: AuditStep
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=get_current_timestamp)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "step": self.step.value,
            "timestamp": self.timestamp.isoformat(),
            "details": self.details,
        }


@dataclass(slots=True)
class HumanFeedback:
    """
    Reviewer verdicts for the corrections of one invoice.

    Attributes:
        approved_fields: Correction keys the reviewer accepted.
        rejected_fields: Correction keys the reviewer refused.
    """

    approved_fields: list[str] = field(default_factory=list)
    rejected_fields: list[str] = field(default_factory=list)

    def verdict(self, correction_key: str) -> bool | None:
        """
        Look up the verdict for a correction key.

        Returns:
            True if approved (approval wins when listed twice), False if
            rejected, None if the reviewer said nothing about it.
        """
        if correction_key in self.approved_fields:
            return True
        if correction_key in self.rejected_fields:
            return False
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HumanFeedback:
        """Create from a dict with ``approvedFields``/``rejectedFields`` keys."""
        return cls(
            approved_fields=list(data.get("approvedFields") or data.get("approvedCorrections") or []),
            rejected_fields=list(data.get("rejectedFields") or data.get("rejectedCorrections") or []),
        )


@dataclass(slots=True)
class EngineOutputContract:
    """
    Public result of processing one invoice.

    Attributes:
        normalized_invoice: Invoice with auto-applied corrections.
        proposed_corrections: Every correction emitted, applied or not.
        requires_human_review: Whether a reviewer must look at the invoice.
        reasoning: Human-readable decision reasoning.
        confidence_score: Aggregate confidence in [0, 1].
        memory_updates: Memory deltas applied by this run.
        audit_trail: One entry per pipeline stage, in order.
    """

    normalized_invoice: NormalizedInvoice
    proposed_corrections: list[ProposedCorrection]
    requires_human_review: bool
    reasoning: str
    confidence_score: float
    memory_updates: list[MemoryUpdate] = field(default_factory=list)
    audit_trail: list[AuditTrailEntry] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "normalizedInvoice": self.normalized_invoice.to_dict(),
            "proposedCorrections": [c.to_dict() for c in self.proposed_corrections],
            "requiresHumanReview": self.requires_human_review,
            "reasoning": self.reasoning,
            "confidenceScore": self.confidence_score,
            "memoryUpdates": [u.to_dict() for u in self.memory_updates],
            "auditTrail": [e.to_dict() for e in self.audit_trail],
        }
