"""
Memory records and the learned content they carry.

A Memory is the durable row owned by the memory store; its ``content`` is a
JSON document. Content written by the engine is one of four closed payload
shapes, discriminated by ``category`` and validated once at the store
boundary. Anything else (legacy rows, foreign writers, corrupted JSON) is
reported as an ``UnparseableMemory`` instead of being treated as data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from invoice_memory.utils.date_utils import get_current_timestamp, to_utc


class MemoryKind(str, Enum):
    """Lifetime class of a stored memory."""

    EPHEMERAL = "ephemeral"
    LONG_TERM = "long_term"
    SYSTEM = "system"


class MemoryCategory(str, Enum):
    """Role a learned memory plays in the pipeline."""

    VENDOR = "vendor"
    CORRECTION = "correction"
    RESOLUTION = "resolution"
    DUPLICATE = "duplicate"


class ResolutionStatus(str, Enum):
    """Human disposition recorded on a resolution memory."""

    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(slots=True)
class Memory:
    """
    A durable memory record.

    Attributes:
        id: Stable identifier.
        kind: Lifetime class of the record.
        content: JSON document holding the learned payload.
        created_at: Creation timestamp (UTC).
        updated_at: Last update timestamp (UTC).
        source: Optional tag naming the writer.
    """

    id: str
    kind: MemoryKind
    content: str
    created_at: datetime = field(default_factory=get_current_timestamp)
    updated_at: datetime = field(default_factory=get_current_timestamp)
    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "content": self.content,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Memory:
        """Create from dictionary."""
        return cls(
            id=data["id"],
            kind=MemoryKind(data.get("kind", MemoryKind.LONG_TERM.value)),
            content=data["content"],
            created_at=to_utc(datetime.fromisoformat(data["createdAt"])),
            updated_at=to_utc(datetime.fromisoformat(data["updatedAt"])),
            source=data.get("source"),
        )


class _LearnedContentBase(BaseModel):
    """Fields shared by every learned payload, persisted with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    vendor_name: str | None = None
    invoice_number: str | None = None
    invoice_date: str | None = None
    field: str | None = None
    pattern: str | None = None
    resolution_status: ResolutionStatus | None = None
    confidence: Annotated[float, Field(strict=True)]
    usage_count: Annotated[int, Field(strict=True)]
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("confidence")
    @classmethod
    def clamp_confidence(cls, value: float) -> float:
        """Cap confidence to the unit interval."""
        return min(max(float(value), 0.0), 1.0)

    @field_validator("usage_count")
    @classmethod
    def clamp_usage(cls, value: int) -> int:
        """Usage counts never go negative."""
        return max(value, 0)

    @field_validator("metadata", mode="before")
    @classmethod
    def default_metadata(cls, value: Any) -> Any:
        """Treat an explicit null metadata as empty."""
        return {} if value is None else value

    @property
    def proposed_value(self) -> Any:
        """Replacement value this memory supplies, if any."""
        return self.metadata.get("proposedValue")

    def matches_vendor(self, vendor_name: str) -> bool:
        """Case-insensitive comparison against a vendor name."""
        return bool(self.vendor_name) and self.vendor_name.lower() == vendor_name.lower()

    def to_json(self) -> str:
        """Serialize with camelCase keys, omitting unset optionals."""
        return self.model_dump_json(by_alias=True, exclude_none=True)


class VendorMemoryContent(_LearnedContentBase):
    """Reusable rule scoped to one supplier, keyed by a pattern field."""

    category: Literal["vendor"] = "vendor"


class CorrectionMemoryContent(_LearnedContentBase):
    """Rule derived from a single approved or rejected field fix."""

    category: Literal["correction"] = "correction"


class ResolutionMemoryContent(_LearnedContentBase):
    """Historical human disposition, consulted only for duplicate detection."""

    category: Literal["resolution"] = "resolution"

    @property
    def is_duplicate(self) -> bool:
        return self.metadata.get("isDuplicate") is True


class DuplicateMemoryContent(_LearnedContentBase):
    """Explicit duplicate marker written by external tooling."""

    category: Literal["duplicate"] = "duplicate"


LearnedMemoryContent = Annotated[
    VendorMemoryContent | CorrectionMemoryContent | ResolutionMemoryContent | DuplicateMemoryContent,
    Field(discriminator="category"),
]

_content_adapter: TypeAdapter[LearnedMemoryContent] = TypeAdapter(LearnedMemoryContent)

_CONTENT_MODELS: dict[MemoryCategory, type[_LearnedContentBase]] = {
    MemoryCategory.VENDOR: VendorMemoryContent,
    MemoryCategory.CORRECTION: CorrectionMemoryContent,
    MemoryCategory.RESOLUTION: ResolutionMemoryContent,
    MemoryCategory.DUPLICATE: DuplicateMemoryContent,
}


def build_learned_content(category: MemoryCategory | str, **values: Any) -> LearnedMemoryContent:
    """
    Construct the payload variant for a category.

    Args:
        category: Memory category selecting the payload shape.
        **values: Field values by Python name.

    Returns:
        The typed payload (confidence and usage are clamped).
    """
    model = _CONTENT_MODELS[MemoryCategory(category)]
    return model(**values)


@dataclass(frozen=True, slots=True)
class UnparseableMemory:
    """
    A stored memory whose content is not a learned payload.

    Attributes:
        memory_id: Identifier of the offending record.
        reason: Short description of why parsing failed.
    """

    memory_id: str
    reason: str


def parse_learned_content(memory: Memory) -> LearnedMemoryContent | UnparseableMemory:
    """
    Parse a memory's content into a learned payload.

    Args:
        memory: Stored memory record.

    Returns:
        The typed payload, or an UnparseableMemory describing the failure.
    """
    try:
        return _content_adapter.validate_json(memory.content)
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        reason = f"{first.get('type', 'invalid')}: {location}" if location else first.get("type", "invalid")
        return UnparseableMemory(memory_id=memory.id, reason=reason)


@dataclass(slots=True)
class ScoredLearnedMemory:
    """
    Recall-time pairing of a memory, its parsed payload and a score.

    Attributes:
        memory: The stored record.
        content: Parsed learned payload.
        score: Relevance score in [0, 1].
    """

    memory: Memory
    content: LearnedMemoryContent
    score: float

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "memoryId": self.memory.id,
            "category": self.content.category,
            "field": self.content.field,
            "confidence": self.content.confidence,
            "score": self.score,
        }
