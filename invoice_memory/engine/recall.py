"""
Recall stage: fetch and score memories relevant to an invoice.

Recall is a best-effort lookup, not an index. It runs two substring
searches (vendor name and invoice number), scores every parseable learned
memory by its confidence plus small context bonuses, buckets the results
by category and flags likely duplicate submissions.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from invoice_memory.config import get_logger, get_settings
from invoice_memory.config.settings import EngineSettings
from invoice_memory.engine.confidence import clamp
from invoice_memory.models.fields import PatternField
from invoice_memory.models.memory import (
    LearnedMemoryContent,
    Memory,
    MemoryCategory,
    ScoredLearnedMemory,
    UnparseableMemory,
    parse_learned_content,
)
from invoice_memory.storage.base import MemoryStore
from invoice_memory.utils.date_utils import date_difference_days


logger = get_logger(__name__)

DUPLICATE_REASON = "Potential duplicate invoice based on vendor, invoice number and close invoice date."


@dataclass(slots=True)
class RecallQuery:
    """
    What to recall memories for.

    Attributes:
        vendor_name: Vendor of the invoice.
        invoice_number: Supplier's invoice number.
        invoice_date: Invoice date.
        raw_text: OCR text (currently unused for lookup).
        limit: Per-search result limit; defaults to the configured limit.
    """

    vendor_name: str
    invoice_number: str
    invoice_date: date
    raw_text: str | None = None
    limit: int | None = None


@dataclass(slots=True)
class RecallSummary:
    """
    Scored memories for one invoice, bucketed by category.

    Attributes:
        vendor_memories: Vendor rules, best score first.
        correction_memories: Correction rules, best score first.
        resolution_memories: Past dispositions, best score first.
        duplicate_detected: Whether a matching resolution exists.
        duplicate_score: Score of the best matching resolution.
        duplicate_reason: Explanation when a duplicate was detected.
        all_memories: Every scored memory, in retrieval order.
        skipped_memories: Retrieved memories whose content was not parseable.
    """

    vendor_memories: list[ScoredLearnedMemory] = field(default_factory=list)
    correction_memories: list[ScoredLearnedMemory] = field(default_factory=list)
    resolution_memories: list[ScoredLearnedMemory] = field(default_factory=list)
    duplicate_detected: bool = False
    duplicate_score: float = 0.0
    duplicate_reason: str | None = None
    all_memories: list[ScoredLearnedMemory] = field(default_factory=list)
    skipped_memories: list[UnparseableMemory] = field(default_factory=list)

    def find_vendor_memory(self, pattern: PatternField | str) -> ScoredLearnedMemory | None:
        """Best-scored vendor memory tagged with a pattern field."""
        tag = pattern.value if isinstance(pattern, PatternField) else pattern
        return next((m for m in self.vendor_memories if m.content.field == tag), None)

    def to_audit_details(self) -> dict[str, Any]:
        """Summary counts for the audit trail."""
        details: dict[str, Any] = {
            "duplicateDetected": self.duplicate_detected,
            "duplicateScore": self.duplicate_score,
            "vendorMemories": len(self.vendor_memories),
            "correctionMemories": len(self.correction_memories),
            "resolutionMemories": len(self.resolution_memories),
            "skippedMemories": len(self.skipped_memories),
        }
        if self.duplicate_reason:
            details["duplicateReason"] = self.duplicate_reason
        return details


class MemoryRecall:
    """
    Retrieves and scores memories from a memory store.

    Example:
        recall = MemoryRecall(store)
        summary = recall.recall(RecallQuery("Parts AG", "INV-1", date(2024, 3, 1)))
    """

    def __init__(self, store: MemoryStore, settings: EngineSettings | None = None) -> None:
        """
        Initialize the recall stage.

        Args:
            store: Memory store to search.
            settings: Engine settings. Defaults to the application settings.
        """
        self._store = store
        self._settings = settings or get_settings().engine

    def recall(self, query: RecallQuery) -> RecallSummary:
        """
        Recall memories relevant to an invoice.

        Args:
            query: Vendor, invoice number and date to recall for.

        Returns:
            RecallSummary with bucketed, scored memories.
        """
        limit = query.limit or self._settings.recall_limit
        candidates = self._search(query, limit)

        scored: list[ScoredLearnedMemory] = []
        skipped: list[UnparseableMemory] = []
        for memory in candidates:
            parsed = parse_learned_content(memory)
            if isinstance(parsed, UnparseableMemory):
                logger.debug(
                    "legacy_memory_unparseable",
                    memory_id=parsed.memory_id,
                    reason=parsed.reason,
                )
                skipped.append(parsed)
                continue
            scored.append(
                ScoredLearnedMemory(memory=memory, content=parsed, score=self.score(parsed, query))
            )

        summary = RecallSummary(
            vendor_memories=_by_category(scored, MemoryCategory.VENDOR),
            correction_memories=_by_category(scored, MemoryCategory.CORRECTION),
            resolution_memories=_by_category(scored, MemoryCategory.RESOLUTION),
            all_memories=scored,
            skipped_memories=skipped,
        )
        self._detect_duplicate(summary, query)

        logger.info(
            "recall_completed",
            vendor_name=query.vendor_name,
            invoice_number=query.invoice_number,
            candidates=len(candidates),
            scored=len(scored),
            skipped=len(skipped),
            duplicate_detected=summary.duplicate_detected,
        )
        return summary

    def _search(self, query: RecallQuery, limit: int) -> list[Memory]:
        """Union of vendor and invoice-number searches, de-duplicated by id."""
        combined: dict[str, Memory] = {}
        for term in (query.vendor_name, query.invoice_number):
            # An empty term would match every memory
            if not term or not term.strip():
                continue
            for memory in self._store.search_by_text(json_fragment(term), limit):
                combined.setdefault(memory.id, memory)
        return list(combined.values())

    def score(self, content: LearnedMemoryContent, query: RecallQuery) -> float:
        """
        Score a learned memory against the query.

        Confidence plus a bonus each for a matching vendor, an identical
        invoice number and an invoice date inside the configured window,
        capped at 1.
        """
        bonus = self._settings.recall_match_bonus
        score = content.confidence

        if content.matches_vendor(query.vendor_name):
            score += bonus

        if content.invoice_number and content.invoice_number == query.invoice_number:
            score += bonus

        if content.invoice_date:
            distance = date_difference_days(content.invoice_date, query.invoice_date)
            if distance is not None and abs(distance) <= self._settings.duplicate_date_window_days:
                score += bonus

        return clamp(score)

    def _detect_duplicate(self, summary: RecallSummary, query: RecallQuery) -> None:
        """Flag the invoice when a resolution matches vendor, number and has a date."""
        candidates = [
            m
            for m in summary.resolution_memories
            if m.content.matches_vendor(query.vendor_name)
            and m.content.invoice_number == query.invoice_number
            and m.content.invoice_date
        ]
        if not candidates:
            return

        best = candidates[0]
        summary.duplicate_detected = True
        summary.duplicate_score = best.score
        summary.duplicate_reason = DUPLICATE_REASON

        logger.info(
            "duplicate_invoice_suspected",
            vendor_name=query.vendor_name,
            invoice_number=query.invoice_number,
            memory_id=best.memory.id,
            score=best.score,
        )


def json_fragment(term: str) -> str:
    """
    Form a search term takes inside a serialized content blob.

    Quotes, backslashes and control characters are stored escaped, so the
    raw term would never match a vendor name containing them.
    """
    return json.dumps(term, ensure_ascii=False)[1:-1]


def _by_category(
    memories: list[ScoredLearnedMemory],
    category: MemoryCategory,
) -> list[ScoredLearnedMemory]:
    # sorted() is stable with reverse=True, so ties keep retrieval order
    return sorted(
        (m for m in memories if m.content.category == category.value),
        key=lambda m: m.score,
        reverse=True,
    )


def recall_memories(
    store: MemoryStore,
    query: RecallQuery,
    settings: EngineSettings | None = None,
) -> RecallSummary:
    """Convenience wrapper around MemoryRecall.recall."""
    return MemoryRecall(store, settings).recall(query)
