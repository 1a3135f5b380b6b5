"""
Confidence bands for learned corrections.

Bands:
    >= 0.80 (HIGH): Auto-apply the correction
    0.70 - 0.79 (MEDIUM): Propose only, human review recommended
    < 0.70 (LOW): No correction emitted, escalate
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from invoice_memory.config.settings import EngineSettings


class ConfidenceBand(str, Enum):
    """Classification of a correction's confidence."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def clamp(value: float, lower: float = 0.0, upper: float = 1.0) -> float:
    """Cap a value to [lower, upper]."""
    return min(max(value, lower), upper)


@dataclass(frozen=True, slots=True)
class ConfidenceBands:
    """
    Threshold pair splitting confidences into bands.

    Attributes:
        high: Lower bound of the HIGH band.
        medium: Lower bound of the MEDIUM band.
    """

    high: float = 0.8
    medium: float = 0.7

    def __post_init__(self) -> None:
        if not 0.0 <= self.medium <= self.high <= 1.0:
            raise ValueError(f"Invalid confidence bands: medium={self.medium}, high={self.high}")

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> ConfidenceBands:
        return cls(
            high=settings.high_confidence_threshold,
            medium=settings.medium_confidence_threshold,
        )

    def classify(self, confidence: float) -> ConfidenceBand:
        """
        Classify a confidence value.

        Args:
            confidence: Confidence in [0, 1].

        Returns:
            The band the value falls in.
        """
        if confidence >= self.high:
            return ConfidenceBand.HIGH
        if confidence >= self.medium:
            return ConfidenceBand.MEDIUM
        return ConfidenceBand.LOW

    def is_medium(self, confidence: float) -> bool:
        return self.classify(confidence) is ConfidenceBand.MEDIUM
