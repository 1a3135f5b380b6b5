"""
Apply stage: turn recalled memories into field corrections.

Every heuristic below runs independently and may fire in the same pass:

- missing-field fill from vendor memories (configured fields)
- VAT-included detection and tax split
- currency inference
- freight SKU mapping per line item
- skonto (cash discount) terms

Each emits at most one correction per target and goes through the same
confidence band logic: HIGH auto-applies, MEDIUM proposes, LOW is dropped.
The input invoice is never modified; auto-applied values are collected as
patches and written into a copy at the end.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from invoice_memory.config import get_logger, get_settings
from invoice_memory.config.settings import EngineSettings
from invoice_memory.engine.confidence import ConfidenceBand, ConfidenceBands
from invoice_memory.engine.recall import RecallSummary
from invoice_memory.engine.text_signals import (
    detect_currency,
    detect_skonto_terms,
    detect_vat_included,
    looks_like_freight,
)
from invoice_memory.models.fields import CorrectionTarget, InvoiceField, PatternField
from invoice_memory.models.invoice import NormalizedInvoice, coerce_value
from invoice_memory.models.memory import Memory, ScoredLearnedMemory
from invoice_memory.models.pipeline import AppliedMemoryRecord, ProposedCorrection


logger = get_logger(__name__)

SYNTHETIC_VAT_RULE = "synthetic-vat-rule"
SYNTHETIC_FREIGHT_RULE = "synthetic-freight-rule"
SYNTHETIC_SKONTO_RULE = "synthetic-skonto-rule"
SYNTHETIC_CURRENCY_RULE = "synthetic-currency-rule"

VAT_REASON = 'VAT inclusion inferred from raw text phrases such as "MwSt. inkl." or "Prices incl. VAT".'
CURRENCY_REASON = "Currency inferred from raw text and vendor-specific memory."
FREIGHT_REASON = "Freight-related description mapped to freight SKU based on learned vendor memory."
SKONTO_REASON = "Skonto (cash discount) terms detected in raw text."


@dataclass(slots=True)
class ApplyResult:
    """
    Outcome of the apply stage.

    Attributes:
        invoice: The caller's invoice, untouched.
        raw_text: OCR text the heuristics ran on.
        recall: Recall summary the corrections were derived from.
        normalized_invoice: Copy of the invoice with auto-applied values.
        proposed_corrections: All corrections, applied or proposed.
        applied_memories: Memory-to-field audit records.
        aggregate_confidence: Maximum confidence of any emitted correction.
    """

    invoice: NormalizedInvoice
    raw_text: str
    recall: RecallSummary
    normalized_invoice: NormalizedInvoice
    proposed_corrections: list[ProposedCorrection] = field(default_factory=list)
    applied_memories: list[AppliedMemoryRecord] = field(default_factory=list)
    aggregate_confidence: float = 0.0

    @property
    def memories(self) -> list[Memory]:
        """Every memory considered by recall."""
        return [m.memory for m in self.recall.all_memories]

    @property
    def duplicate_detected(self) -> bool:
        return self.recall.duplicate_detected

    def to_audit_details(self) -> dict[str, Any]:
        """Applied memories and corrections for the audit trail."""
        return {
            "appliedMemories": [m.to_dict() for m in self.applied_memories],
            "proposedCorrections": [c.to_dict() for c in self.proposed_corrections],
        }


class _Pass:
    """Mutable accumulator for one apply pass."""

    def __init__(self, bands: ConfidenceBands) -> None:
        self.bands = bands
        self.patches: list[tuple[CorrectionTarget, Any]] = []
        self.corrections: list[ProposedCorrection] = []
        self.applied_memories: list[AppliedMemoryRecord] = []
        self.aggregate_confidence = 0.0

    def emit(
        self,
        target: CorrectionTarget,
        value: Any,
        reason: str,
        confidence: float,
        memory: ScoredLearnedMemory | None = None,
        synthetic_id: str | None = None,
    ) -> ProposedCorrection | None:
        """Register a correction according to its confidence band."""
        band = self.bands.classify(confidence)
        if band is ConfidenceBand.LOW:
            return None

        applied = band is ConfidenceBand.HIGH
        memory_id = memory.memory.id if memory is not None else None
        correction = ProposedCorrection(
            target=target,
            proposed_value=value,
            reason=reason,
            confidence=confidence,
            applied=applied,
            memory_id=memory_id,
        )
        self.corrections.append(correction)

        record_id = memory_id or (synthetic_id if applied else None)
        if record_id is not None:
            self.applied_memories.append(
                AppliedMemoryRecord(
                    field=target.key,
                    memory_id=record_id,
                    confidence=confidence,
                    applied=applied,
                    reason=reason,
                )
            )

        if applied:
            self.patches.append((target, value))

        self.aggregate_confidence = max(self.aggregate_confidence, confidence)
        return correction


class CorrectionApplier:
    """
    Applies recalled memories and text heuristics to an invoice.

    Example:
        applier = CorrectionApplier()
        result = applier.apply(invoice, raw_text, recall_summary)
        result.normalized_invoice.tax_amount
    """

    def __init__(self, settings: EngineSettings | None = None) -> None:
        """
        Initialize the applier.

        Args:
            settings: Engine settings. Defaults to the application settings.
        """
        self._settings = settings or get_settings().engine
        self._bands = ConfidenceBands.from_settings(self._settings)

    def apply(self, invoice: NormalizedInvoice, raw_text: str, recall: RecallSummary) -> ApplyResult:
        """
        Run every heuristic and build the corrected invoice copy.

        Args:
            invoice: Extracted invoice (not modified).
            raw_text: OCR text of the invoice.
            recall: Recall summary for this invoice.

        Returns:
            ApplyResult with the patched copy and all corrections.
        """
        text = raw_text or ""
        state = _Pass(self._bands)

        self._fill_missing_fields(state, invoice, recall)
        self._apply_vat_included(state, invoice, text, recall)
        self._infer_currency(state, invoice, text, recall)
        self._map_freight_skus(state, invoice, recall)
        self._detect_skonto(state, text, recall)

        result = ApplyResult(
            invoice=invoice,
            raw_text=text,
            recall=recall,
            normalized_invoice=invoice.with_patches(state.patches),
            proposed_corrections=state.corrections,
            applied_memories=state.applied_memories,
            aggregate_confidence=state.aggregate_confidence,
        )

        logger.info(
            "apply_completed",
            invoice_id=invoice.id,
            corrections=len(result.proposed_corrections),
            applied=sum(1 for c in result.proposed_corrections if c.applied),
            aggregate_confidence=result.aggregate_confidence,
        )
        return result

    def _fill_missing_fields(
        self,
        state: _Pass,
        invoice: NormalizedInvoice,
        recall: RecallSummary,
    ) -> None:
        """Fill absent invoice fields from vendor memories tagged with the field."""
        for name in self._settings.fillable_fields:
            try:
                target = CorrectionTarget.parse(name)
            except ValueError:
                logger.warning("unknown_fillable_field", field=name)
                continue

            current = invoice.get_value(target)
            if current is not None and current != "":
                continue

            candidate = recall.find_vendor_memory(name)
            if candidate is None or candidate.content.proposed_value is None:
                continue

            try:
                value = coerce_value(target.field, candidate.content.proposed_value)
            except ValueError as e:
                logger.debug(
                    "memory_value_uncoercible",
                    memory_id=candidate.memory.id,
                    field=name,
                    error=str(e),
                )
                continue

            vendor = candidate.content.vendor_name or "unknown vendor"
            state.emit(
                target,
                value,
                f"Field {name} inferred from learned vendor memory for {vendor}.",
                candidate.content.confidence,
                memory=candidate,
            )

    def _apply_vat_included(
        self,
        state: _Pass,
        invoice: NormalizedInvoice,
        text: str,
        recall: RecallSummary,
    ) -> None:
        """Split VAT out of the gross total when the text says prices include VAT."""
        if not detect_vat_included(text):
            return

        memory = recall.find_vendor_memory(PatternField.VAT_INCLUDED)
        confidence = memory.content.confidence if memory else self._settings.default_heuristic_confidence

        gross = invoice.total_amount
        tax_amount = round(gross - gross / (1 + self._settings.vat_rate), 2)

        correction = state.emit(
            CorrectionTarget.scalar(InvoiceField.TAX_AMOUNT),
            tax_amount,
            VAT_REASON,
            confidence,
            memory=memory,
            synthetic_id=SYNTHETIC_VAT_RULE,
        )
        if correction is not None and correction.applied:
            state.patches.append((CorrectionTarget.scalar(InvoiceField.GROSS_AMOUNT), round(gross, 2)))

    def _infer_currency(
        self,
        state: _Pass,
        invoice: NormalizedInvoice,
        text: str,
        recall: RecallSummary,
    ) -> None:
        """Infer a missing currency from the text, falling back to vendor memory."""
        if invoice.currency:
            return

        memory = recall.find_vendor_memory(PatternField.CURRENCY)
        confidence = memory.content.confidence if memory else self._settings.default_currency_confidence

        candidate = detect_currency(text)
        if candidate is None and memory is not None:
            candidate = memory.content.proposed_value
        if not candidate:
            return

        try:
            currency = coerce_value(InvoiceField.CURRENCY, candidate)
        except ValueError:
            return

        state.emit(
            CorrectionTarget.scalar(InvoiceField.CURRENCY),
            currency,
            CURRENCY_REASON,
            confidence,
            memory=memory,
            synthetic_id=SYNTHETIC_CURRENCY_RULE,
        )

    def _map_freight_skus(
        self,
        state: _Pass,
        invoice: NormalizedInvoice,
        recall: RecallSummary,
    ) -> None:
        """Map freight line items to the vendor's freight SKU."""
        memory = recall.find_vendor_memory(PatternField.FREIGHT_SKU)
        confidence = memory.content.confidence if memory else self._settings.default_heuristic_confidence

        sku = self._settings.default_freight_sku
        if memory is not None and memory.content.proposed_value is not None:
            try:
                sku = coerce_value(InvoiceField.SKU, memory.content.proposed_value)
            except ValueError:
                logger.debug("memory_value_uncoercible", memory_id=memory.memory.id, field="sku")

        for item in invoice.line_items:
            if not looks_like_freight(item.description):
                continue
            state.emit(
                CorrectionTarget.line_item(item.id),
                sku,
                FREIGHT_REASON,
                confidence,
                memory=memory,
                synthetic_id=SYNTHETIC_FREIGHT_RULE,
            )

    def _detect_skonto(self, state: _Pass, text: str, recall: RecallSummary) -> None:
        """Normalize payment terms when skonto terms appear in the text."""
        terms = detect_skonto_terms(text)
        if terms is None:
            return

        memory = recall.find_vendor_memory(PatternField.SKONTO)
        confidence = memory.content.confidence if memory else self._settings.default_heuristic_confidence

        state.emit(
            CorrectionTarget.scalar(InvoiceField.PAYMENT_TERMS),
            terms,
            SKONTO_REASON,
            confidence,
            memory=memory,
            synthetic_id=SYNTHETIC_SKONTO_RULE,
        )


def apply_memories(
    invoice: NormalizedInvoice,
    raw_text: str,
    recall: RecallSummary,
    settings: EngineSettings | None = None,
) -> ApplyResult:
    """Convenience wrapper around CorrectionApplier.apply."""
    return CorrectionApplier(settings).apply(invoice, raw_text, recall)
