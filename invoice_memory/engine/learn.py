"""
Learn stage: update memory confidence from human feedback.

Approval reinforces a memory, rejection decays it, both by a fixed step
scaled by the feedback magnitude:

    approved: confidence = min(confidence + step * |score|, ceiling)
    rejected: confidence = max(confidence - step * |score|, 0)

Unknown memory ids create a new memory (0.8 when approved, 0.5 when
rejected). Corrections to taxAmount/grossAmount become vendor memories for
the ``vatIncluded`` pattern and line item SKU corrections become vendor
memories for ``freightSku``; everything else is stored as a correction
memory. Feedback carrying a resolution status or duplicate flag also
writes a separate resolution memory used for duplicate detection.
"""

from __future__ import annotations

import dataclasses
import uuid
from dataclasses import dataclass
from typing import Any

from invoice_memory.config import get_logger, get_settings
from invoice_memory.config.settings import EngineSettings
from invoice_memory.engine.confidence import clamp
from invoice_memory.models.fields import CorrectionTarget, InvoiceField, PatternField
from invoice_memory.models.memory import (
    Memory,
    MemoryCategory,
    MemoryKind,
    ResolutionStatus,
    UnparseableMemory,
    build_learned_content,
    parse_learned_content,
)
from invoice_memory.models.pipeline import to_json_value
from invoice_memory.storage.base import MemoryStore
from invoice_memory.utils.date_utils import get_current_timestamp


logger = get_logger(__name__)

INITIAL_CONFIDENCE_APPROVED = 0.8
INITIAL_CONFIDENCE_REJECTED = 0.5
FALLBACK_CONFIDENCE = 0.7

SOURCE_LEARN = "learn"
SOURCE_RESOLUTION = "learn:resolution"

# Correction fields promoted to vendor-wide patterns
_VENDOR_PATTERNS: dict[InvoiceField, PatternField] = {
    InvoiceField.TAX_AMOUNT: PatternField.VAT_INCLUDED,
    InvoiceField.GROSS_AMOUNT: PatternField.VAT_INCLUDED,
    InvoiceField.SKU: PatternField.FREIGHT_SKU,
}


@dataclass(slots=True)
class LearningSignal:
    """
    Flattened human feedback for one correction.

    Attributes:
        approved: Reviewer verdict; None means no verdict and nothing is learned.
        memory_id: Memory to update; a new id is generated when absent.
        field: Correction key the verdict is about.
        value: Value the reviewer approved or rejected.
        vendor_name: Vendor of the invoice.
        invoice_number: Supplier's invoice number.
        invoice_date: Invoice date as ISO string.
        resolution_status: Disposition to record for duplicate detection.
        is_duplicate: Whether the invoice was flagged as a duplicate.
        feedback_score: Feedback magnitude scaling the confidence step.
    """

    approved: bool | None
    memory_id: str | None = None
    field: str | None = None
    value: Any = None
    vendor_name: str | None = None
    invoice_number: str | None = None
    invoice_date: str | None = None
    resolution_status: ResolutionStatus | None = None
    is_duplicate: bool | None = None
    feedback_score: float = 1.0

    @classmethod
    def from_details(cls, details: dict[str, Any], feedback_score: float | None = None) -> LearningSignal:
        """
        Build a signal from a camelCase event details mapping.

        Args:
            details: Mapping with ``memoryId``, ``approved``, ``field`` etc.
            feedback_score: Optional feedback magnitude (defaults to 1).

        Returns:
            The learning signal.
        """
        status = details.get("resolutionStatus")
        return cls(
            approved=details.get("approved"),
            memory_id=details.get("memoryId"),
            field=details.get("field"),
            value=details.get("value"),
            vendor_name=details.get("vendorName"),
            invoice_number=details.get("invoiceNumber"),
            invoice_date=details.get("invoiceDate"),
            resolution_status=ResolutionStatus(status) if status else None,
            is_duplicate=details.get("isDuplicate"),
            feedback_score=1.0 if feedback_score is None else feedback_score,
        )


def vendor_pattern_for(field: str | None) -> PatternField | None:
    """
    Vendor pattern a correction key is promoted to, if any.

    Only tax/gross amounts and line item SKUs are promoted.
    """
    if not field:
        return None
    try:
        target = CorrectionTarget.parse(field)
    except ValueError:
        return None
    return _VENDOR_PATTERNS.get(target.field)


class MemoryLearner:
    """
    Applies reinforcement and decay to stored memories.

    Example:
        learner = MemoryLearner(store)
        memory = learner.learn(LearningSignal(approved=True, field="taxAmount", ...))
    """

    def __init__(self, store: MemoryStore, settings: EngineSettings | None = None) -> None:
        """
        Initialize the learner.

        Args:
            store: Memory store to read and write.
            settings: Engine settings. Defaults to the application settings.
        """
        self._store = store
        self._settings = settings or get_settings().engine

    def learn(self, signal: LearningSignal) -> Memory | None:
        """
        Learn from one feedback signal.

        Args:
            signal: Flattened feedback.

        Returns:
            The created or updated memory, or None when the signal carries
            no verdict.

        Raises:
            MemoryStoreError: If the store cannot be read or written.
        """
        if signal.approved is None:
            logger.debug("learning_signal_ignored", field=signal.field, reason="no verdict")
            return None

        memory_id = signal.memory_id or str(uuid.uuid4())
        existing = self._store.get_by_id(memory_id)

        if existing is None:
            memory = self._create(memory_id, signal)
        else:
            memory = self._update(existing, signal)

        if signal.resolution_status is not None or signal.is_duplicate:
            self._record_resolution(signal)

        return memory

    def next_confidence(self, confidence: float, approved: bool, feedback_score: float = 1.0) -> float:
        """Reinforced or decayed confidence, kept within [0, ceiling]."""
        delta = self._settings.reinforcement_step * abs(feedback_score)
        ceiling = self._settings.reinforcement_ceiling
        if approved:
            return clamp(confidence + delta, upper=ceiling)
        return clamp(confidence - delta, upper=ceiling)

    def _create(self, memory_id: str, signal: LearningSignal) -> Memory:
        """Create a new memory for an unseen id."""
        pattern = vendor_pattern_for(signal.field)
        category = MemoryCategory.VENDOR if pattern else MemoryCategory.CORRECTION
        stored_field = pattern.value if pattern else signal.field

        metadata: dict[str, Any] = {"field": signal.field, "value": to_json_value(signal.value)}
        if pattern is PatternField.FREIGHT_SKU:
            metadata["proposedValue"] = to_json_value(signal.value)

        content = build_learned_content(
            category,
            vendor_name=signal.vendor_name,
            invoice_number=signal.invoice_number,
            invoice_date=signal.invoice_date,
            field=stored_field,
            confidence=INITIAL_CONFIDENCE_APPROVED if signal.approved else INITIAL_CONFIDENCE_REJECTED,
            usage_count=1,
            metadata=metadata,
        )

        now = get_current_timestamp()
        memory = Memory(
            id=memory_id,
            kind=MemoryKind.LONG_TERM,
            content=content.to_json(),
            created_at=now,
            updated_at=now,
            source=SOURCE_LEARN,
        )
        self._store.save(memory)

        logger.info(
            "memory_created",
            memory_id=memory_id,
            category=category.value,
            field=stored_field,
            confidence=content.confidence,
        )
        return memory

    def _update(self, existing: Memory, signal: LearningSignal) -> Memory:
        """Reinforce or decay an existing memory."""
        parsed = parse_learned_content(existing)
        if isinstance(parsed, UnparseableMemory):
            logger.warning(
                "legacy_memory_unparseable",
                memory_id=existing.id,
                reason=parsed.reason,
            )
            current_confidence = FALLBACK_CONFIDENCE
            current_usage = 0
            category = MemoryCategory.CORRECTION
            stored_field = signal.field
            stored_metadata: dict[str, Any] = {}
            vendor_name = signal.vendor_name
            invoice_number = signal.invoice_number
            invoice_date = signal.invoice_date
            pattern_tag = None
            resolution_status = None
        else:
            current_confidence = parsed.confidence
            current_usage = parsed.usage_count
            category = MemoryCategory(parsed.category)
            stored_field = parsed.field if parsed.field is not None else signal.field
            stored_metadata = dict(parsed.metadata)
            vendor_name = parsed.vendor_name if parsed.vendor_name is not None else signal.vendor_name
            invoice_number = (
                parsed.invoice_number if parsed.invoice_number is not None else signal.invoice_number
            )
            invoice_date = parsed.invoice_date if parsed.invoice_date is not None else signal.invoice_date
            pattern_tag = parsed.pattern
            resolution_status = parsed.resolution_status

        pattern = vendor_pattern_for(signal.field)
        if pattern is not None:
            category = MemoryCategory.VENDOR
            stored_field = pattern.value

        metadata = {**stored_metadata, "field": signal.field, "value": to_json_value(signal.value)}
        if stored_field == PatternField.FREIGHT_SKU.value:
            metadata["proposedValue"] = to_json_value(signal.value)

        new_confidence = self.next_confidence(current_confidence, signal.approved, signal.feedback_score)
        content = build_learned_content(
            category,
            vendor_name=vendor_name,
            invoice_number=invoice_number,
            invoice_date=invoice_date,
            field=stored_field,
            pattern=pattern_tag,
            resolution_status=resolution_status,
            confidence=new_confidence,
            usage_count=current_usage + 1,
            metadata=metadata,
        )

        updated = dataclasses.replace(
            existing,
            content=content.to_json(),
            updated_at=get_current_timestamp(),
        )
        self._store.save(updated)

        logger.info(
            "memory_reinforced" if signal.approved else "memory_decayed",
            memory_id=existing.id,
            field=stored_field,
            previous_confidence=current_confidence,
            new_confidence=content.confidence,
            usage_count=content.usage_count,
        )
        return updated

    def _record_resolution(self, signal: LearningSignal) -> Memory:
        """Write a resolution memory for future duplicate detection."""
        status = signal.resolution_status
        if status is None and signal.is_duplicate:
            status = ResolutionStatus.APPROVED

        content = build_learned_content(
            MemoryCategory.RESOLUTION,
            vendor_name=signal.vendor_name,
            invoice_number=signal.invoice_number,
            invoice_date=signal.invoice_date,
            resolution_status=status,
            confidence=INITIAL_CONFIDENCE_APPROVED if signal.approved else INITIAL_CONFIDENCE_REJECTED,
            usage_count=1,
            metadata={"isDuplicate": signal.is_duplicate is True},
        )

        now = get_current_timestamp()
        memory = Memory(
            id=str(uuid.uuid4()),
            kind=MemoryKind.LONG_TERM,
            content=content.to_json(),
            created_at=now,
            updated_at=now,
            source=SOURCE_RESOLUTION,
        )
        self._store.save(memory)

        logger.info(
            "resolution_memory_created",
            memory_id=memory.id,
            invoice_number=signal.invoice_number,
            resolution_status=status.value if status else None,
            is_duplicate=signal.is_duplicate is True,
        )
        return memory


def learn_from_signal(
    store: MemoryStore,
    signal: LearningSignal,
    settings: EngineSettings | None = None,
) -> Memory | None:
    """Convenience wrapper around MemoryLearner.learn."""
    return MemoryLearner(store, settings).learn(signal)
