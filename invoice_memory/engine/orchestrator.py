"""
Engine orchestrator: recall, apply, decide, learn for one invoice.

Stages run strictly in sequence. Store errors are not caught here; they
abort the run and propagate to the caller.
"""

from __future__ import annotations

from invoice_memory.config import AuditLogger, get_logger, get_settings
from invoice_memory.config.settings import EngineSettings
from invoice_memory.engine.apply import ApplyResult, CorrectionApplier
from invoice_memory.engine.decide import Decision, decide
from invoice_memory.engine.learn import FALLBACK_CONFIDENCE, LearningSignal, MemoryLearner
from invoice_memory.engine.recall import MemoryRecall, RecallQuery
from invoice_memory.models.fields import PatternField
from invoice_memory.models.invoice import NormalizedInvoice
from invoice_memory.models.memory import Memory, ResolutionStatus, UnparseableMemory, parse_learned_content
from invoice_memory.models.pipeline import (
    AuditStep,
    AuditTrailEntry,
    EngineOutputContract,
    HumanFeedback,
    MemoryUpdate,
    MemoryUpdateAction,
)
from invoice_memory.storage.base import MemoryStore
from invoice_memory.utils.date_utils import format_date


logger = get_logger(__name__)

NO_FEEDBACK_REASON = "No human feedback supplied; no learning performed for this invoice."
FIRST_ENCOUNTER_SUFFIX = "(First encounter for this vendor/pattern requires human review.)"


class ReviewSession:
    """
    Caller-owned record of vendor/pattern pairs already seen.

    When passed to ``MemoryEngine.process``, the first invoice that
    exercises a pattern for a vendor is always routed to review, even if
    it would otherwise be auto-approved. The session lives as long as the
    caller keeps it; nothing is shared between sessions.
    """

    def __init__(self) -> None:
        self._seen: set[tuple[str, str]] = set()

    def first_encounter(self, vendor_name: str, pattern: PatternField | str) -> bool:
        """Record the pair and report whether it was new."""
        tag = pattern.value if isinstance(pattern, PatternField) else pattern
        key = (vendor_name.casefold(), tag)
        if key in self._seen:
            return False
        self._seen.add(key)
        return True

    def __contains__(self, item: tuple[str, str]) -> bool:
        vendor_name, tag = item
        return (vendor_name.casefold(), tag) in self._seen

    def __len__(self) -> int:
        return len(self._seen)


def _confidence_and_usage(memory: Memory | None) -> tuple[float, int] | None:
    if memory is None:
        return None
    parsed = parse_learned_content(memory)
    if isinstance(parsed, UnparseableMemory):
        return FALLBACK_CONFIDENCE, 0
    return parsed.confidence, parsed.usage_count


class MemoryEngine:
    """
    Runs the memory pipeline for single invoices.

    Example:
        engine = MemoryEngine(store)
        output = engine.process(invoice, raw_text)
        if not output.requires_human_review:
            post(output.normalized_invoice)
    """

    def __init__(
        self,
        store: MemoryStore,
        settings: EngineSettings | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        """
        Initialize the engine.

        Args:
            store: Memory store shared by all stages.
            settings: Engine settings. Defaults to the application settings.
            audit_logger: Optional audit sink for decisions and memory updates.
        """
        self._store = store
        self._settings = settings or get_settings().engine
        self._recall = MemoryRecall(store, self._settings)
        self._applier = CorrectionApplier(self._settings)
        self._learner = MemoryLearner(store, self._settings)
        self._audit = audit_logger

    @property
    def store(self) -> MemoryStore:
        return self._store

    def process(
        self,
        invoice: NormalizedInvoice,
        raw_text: str | None = None,
        human_feedback: HumanFeedback | None = None,
        session: ReviewSession | None = None,
    ) -> EngineOutputContract:
        """
        Process one invoice through recall, apply, decide and learn.

        Args:
            invoice: Extracted invoice (not modified).
            raw_text: OCR text; defaults to ``invoice.raw_text``.
            human_feedback: Reviewer verdicts; learning only runs when given.
            session: Optional first-encounter review policy state.

        Returns:
            The engine output contract.

        Raises:
            MemoryStoreError: If the memory store fails.
        """
        text = raw_text if raw_text is not None else (invoice.raw_text or "")
        audit_trail: list[AuditTrailEntry] = []

        logger.info(
            "invoice_processing_started",
            invoice_id=invoice.id,
            vendor_name=invoice.vendor_name,
            invoice_number=invoice.invoice_number,
            feedback_supplied=human_feedback is not None,
        )

        recall = self._recall.recall(
            RecallQuery(
                vendor_name=invoice.vendor_name,
                invoice_number=invoice.invoice_number,
                invoice_date=invoice.issued_at,
                raw_text=text,
            )
        )
        audit_trail.append(AuditTrailEntry(step=AuditStep.RECALL, details=recall.to_audit_details()))

        result = self._applier.apply(invoice, text, recall)
        audit_trail.append(AuditTrailEntry(step=AuditStep.APPLY, details=result.to_audit_details()))

        decision = decide(result, self._settings)
        audit_trail.append(
            AuditTrailEntry(
                step=AuditStep.DECIDE,
                details={**decision.to_dict(), "duplicateDetected": recall.duplicate_detected},
            )
        )

        if human_feedback is not None:
            memory_updates = self._learn(invoice, result, human_feedback)
            audit_trail.append(
                AuditTrailEntry(
                    step=AuditStep.LEARN,
                    details={"updates": [u.to_dict() for u in memory_updates]},
                )
            )
        else:
            memory_updates = []
            audit_trail.append(
                AuditTrailEntry(
                    step=AuditStep.LEARN,
                    details={"updates": [], "reason": NO_FEEDBACK_REASON},
                )
            )

        requires_review, reasoning = self._final_review(invoice, result, decision, session)

        output = EngineOutputContract(
            normalized_invoice=result.normalized_invoice,
            proposed_corrections=result.proposed_corrections,
            requires_human_review=requires_review,
            reasoning=reasoning,
            confidence_score=decision.confidence_score,
            memory_updates=memory_updates,
            audit_trail=audit_trail,
        )

        if self._audit is not None:
            self._audit.log_decision(
                invoice_id=invoice.id,
                vendor_name=invoice.vendor_name,
                requires_human_review=output.requires_human_review,
                confidence_score=output.confidence_score,
                applied_fields=[c.field for c in output.proposed_corrections if c.applied],
                reasoning=output.reasoning,
            )

        logger.info(
            "invoice_processing_completed",
            invoice_id=invoice.id,
            requires_human_review=output.requires_human_review,
            confidence_score=output.confidence_score,
            corrections=len(output.proposed_corrections),
            memory_updates=len(memory_updates),
        )
        return output

    def _final_review(
        self,
        invoice: NormalizedInvoice,
        result: ApplyResult,
        decision: Decision,
        session: ReviewSession | None,
    ) -> tuple[bool, str]:
        """Combine the decision with the duplicate flag and the session policy."""
        requires_review = decision.requires_human_review or result.duplicate_detected
        reasoning = decision.reasoning

        if session is None:
            return requires_review, reasoning

        patterns = sorted({c.target.pattern for c in result.proposed_corrections}, key=lambda p: p.value)
        first_seen = False
        for pattern in patterns:
            if session.first_encounter(invoice.vendor_name, pattern):
                first_seen = True

        if first_seen and not requires_review:
            logger.info("first_encounter_review_forced", vendor_name=invoice.vendor_name)
            requires_review = True
            reasoning = f"{reasoning} {FIRST_ENCOUNTER_SUFFIX}".strip()

        return requires_review, reasoning

    def _learn(
        self,
        invoice: NormalizedInvoice,
        result: ApplyResult,
        feedback: HumanFeedback,
    ) -> list[MemoryUpdate]:
        """Feed reviewer verdicts for each proposed correction to the learner."""
        updates: list[MemoryUpdate] = []

        for correction in result.proposed_corrections:
            approved = feedback.verdict(correction.field)
            if approved is None:
                continue

            before = self._store.get_by_id(correction.memory_id) if correction.memory_id else None
            previous = _confidence_and_usage(before)

            updated = self._learner.learn(
                LearningSignal(
                    approved=approved,
                    memory_id=correction.memory_id,
                    field=correction.field,
                    value=correction.proposed_value,
                    vendor_name=invoice.vendor_name,
                    invoice_number=invoice.invoice_number,
                    invoice_date=format_date(invoice.issued_at),
                    resolution_status=ResolutionStatus.APPROVED if approved else ResolutionStatus.REJECTED,
                    is_duplicate=result.duplicate_detected,
                    feedback_score=1.0,
                )
            )
            if updated is None:
                continue

            after = _confidence_and_usage(updated)
            new_confidence, usage_count = after if after is not None else (FALLBACK_CONFIDENCE, 0)

            if previous is None:
                action = MemoryUpdateAction.CREATE
                previous_confidence = 0.0
            else:
                action = MemoryUpdateAction.REINFORCE if approved else MemoryUpdateAction.DECAY
                previous_confidence = previous[0]

            update = MemoryUpdate(
                memory_id=updated.id,
                previous_confidence=previous_confidence,
                new_confidence=new_confidence,
                usage_count=usage_count,
                action=action,
            )
            updates.append(update)

            if self._audit is not None:
                self._audit.log_memory_update(
                    invoice_id=invoice.id,
                    memory_id=update.memory_id,
                    action=update.action.value,
                    previous_confidence=update.previous_confidence,
                    new_confidence=update.new_confidence,
                    usage_count=update.usage_count,
                )

        return updates


def process_invoice(
    store: MemoryStore,
    invoice: NormalizedInvoice,
    raw_text: str | None = None,
    human_feedback: HumanFeedback | None = None,
) -> EngineOutputContract:
    """
    Process one invoice with a default engine.

    Args:
        store: Memory store.
        invoice: Extracted invoice.
        raw_text: OCR text; defaults to ``invoice.raw_text``.
        human_feedback: Optional reviewer verdicts.

    Returns:
        The engine output contract.
    """
    return MemoryEngine(store).process(invoice, raw_text, human_feedback)
