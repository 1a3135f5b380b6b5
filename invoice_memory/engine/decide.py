"""
Decide stage: reduce the apply result to a review decision.

Rules, in order (each triggered rule appends its explanation):

1. A suspected duplicate always requires review.
2. A high-confidence applied correction with no medium-confidence
   suggestion lets the invoice pass without review.
3. Any medium-confidence suggestion requires review, even if rule 2 held.
4. With neither a high-confidence correction nor a suggestion, escalate.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from invoice_memory.config import get_settings
from invoice_memory.config.settings import EngineSettings
from invoice_memory.engine.apply import ApplyResult
from invoice_memory.engine.confidence import ConfidenceBands, clamp


DUPLICATE_EXPLANATION = (
    "Potential duplicate detected based on vendor, invoice number, and invoice date proximity."
)
AUTO_APPROVE_EXPLANATION = (
    "High-confidence learned corrections applied without conflicting suggestions; "
    "auto-correction is allowed."
)
MEDIUM_EXPLANATION = (
    "Medium-confidence suggestions present; human review recommended before applying corrections."
)
ESCALATE_EXPLANATION = "No sufficiently confident learned memory found; escalate to human review."


@dataclass(frozen=True, slots=True)
class Decision:
    """
    Review decision for one invoice.

    Attributes:
        requires_human_review: Whether a reviewer must look at the invoice.
        confidence_score: Aggregate confidence in [0, 1].
        reasoning: Space-joined explanations of every triggered rule.
    """

    requires_human_review: bool
    confidence_score: float
    reasoning: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "requiresHumanReview": self.requires_human_review,
            "confidenceScore": self.confidence_score,
            "reasoning": self.reasoning,
        }


def decide(result: ApplyResult, settings: EngineSettings | None = None) -> Decision:
    """
    Decide whether an invoice needs human review.

    Args:
        result: Output of the apply stage.
        settings: Engine settings. Defaults to the application settings.

    Returns:
        The review decision.
    """
    bands = ConfidenceBands.from_settings(settings or get_settings().engine)

    has_duplicate = result.duplicate_detected
    high_confidence_applied = any(
        m.applied and m.confidence >= bands.high for m in result.applied_memories
    )
    medium_suggestions = [
        c for c in result.proposed_corrections if not c.applied and bands.is_medium(c.confidence)
    ]

    requires_review = True
    reasons: list[str] = []

    if has_duplicate:
        reasons.append(DUPLICATE_EXPLANATION)

    if not has_duplicate and high_confidence_applied and not medium_suggestions:
        requires_review = False
        reasons.append(AUTO_APPROVE_EXPLANATION)

    if medium_suggestions:
        requires_review = True
        reasons.append(MEDIUM_EXPLANATION)

    if not high_confidence_applied and not medium_suggestions and not has_duplicate:
        reasons.append(ESCALATE_EXPLANATION)

    return Decision(
        requires_human_review=requires_review,
        confidence_score=clamp(result.aggregate_confidence),
        reasoning=" ".join(reasons),
    )
