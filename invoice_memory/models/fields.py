"""
Correction targets and vendor pattern tags.

Invoice attributes the engine may write are an explicit enumeration rather
than free-form strings. A correction target is either an invoice scalar or
a field on one line item; its string key (``taxAmount``,
``lineItem:3:sku``) is what reviewers approve or reject.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class InvoiceField(str, Enum):
    """Invoice attributes that corrections can target."""

    SERVICE_DATE = "serviceDate"
    TAX_AMOUNT = "taxAmount"
    GROSS_AMOUNT = "grossAmount"
    CURRENCY = "currency"
    PAYMENT_TERMS = "paymentTermsNormalized"
    SKU = "sku"

    @property
    def attribute(self) -> str:
        """Python attribute name on the invoice or line item."""
        return _ATTRIBUTES[self]

    @property
    def is_line_item_field(self) -> bool:
        return self is InvoiceField.SKU


_ATTRIBUTES: dict[InvoiceField, str] = {
    InvoiceField.SERVICE_DATE: "service_date",
    InvoiceField.TAX_AMOUNT: "tax_amount",
    InvoiceField.GROSS_AMOUNT: "gross_amount",
    InvoiceField.CURRENCY: "currency",
    InvoiceField.PAYMENT_TERMS: "payment_terms_normalized",
    InvoiceField.SKU: "sku",
}


class PatternField(str, Enum):
    """Pattern tags carried by vendor memories."""

    SERVICE_DATE = "serviceDate"
    VAT_INCLUDED = "vatIncluded"
    CURRENCY = "currency"
    FREIGHT_SKU = "freightSku"
    SKONTO = "skonto"


LINE_ITEM_PREFIX = "lineItem"

# Pattern a correction on each invoice field is governed by
_PATTERNS: dict[InvoiceField, PatternField] = {
    InvoiceField.SERVICE_DATE: PatternField.SERVICE_DATE,
    InvoiceField.TAX_AMOUNT: PatternField.VAT_INCLUDED,
    InvoiceField.GROSS_AMOUNT: PatternField.VAT_INCLUDED,
    InvoiceField.CURRENCY: PatternField.CURRENCY,
    InvoiceField.PAYMENT_TERMS: PatternField.SKONTO,
    InvoiceField.SKU: PatternField.FREIGHT_SKU,
}


@dataclass(frozen=True, slots=True)
class CorrectionTarget:
    """
    Address of a correctable value.

    Attributes:
        field: Targeted attribute.
        line_item_id: Line item id for line-item fields, None for scalars.
    """

    field: InvoiceField
    line_item_id: str | None = None

    def __post_init__(self) -> None:
        if self.field.is_line_item_field and not self.line_item_id:
            raise ValueError(f"{self.field.value} requires a line item id")
        if not self.field.is_line_item_field and self.line_item_id is not None:
            raise ValueError(f"{self.field.value} is not a line item field")

    @property
    def key(self) -> str:
        """String key used in corrections and reviewer feedback."""
        if self.line_item_id is not None:
            return f"{LINE_ITEM_PREFIX}:{self.line_item_id}:{self.field.value}"
        return self.field.value

    def __str__(self) -> str:
        return self.key

    @property
    def pattern(self) -> PatternField:
        """Vendor pattern that governs corrections on this target."""
        return _PATTERNS[self.field]

    @classmethod
    def scalar(cls, field: InvoiceField) -> CorrectionTarget:
        return cls(field=field)

    @classmethod
    def line_item(cls, line_item_id: str, field: InvoiceField = InvoiceField.SKU) -> CorrectionTarget:
        return cls(field=field, line_item_id=line_item_id)

    @classmethod
    def parse(cls, key: str) -> CorrectionTarget:
        """
        Parse a correction key back into a target.

        Args:
            key: ``<field>`` or ``lineItem:<id>:<field>``.

        Returns:
            The parsed target.

        Raises:
            ValueError: If the key names no known correctable field.
        """
        if key.startswith(f"{LINE_ITEM_PREFIX}:"):
            parts = key.split(":")
            if len(parts) != 3 or not parts[1]:
                raise ValueError(f"Malformed line item key: {key!r}")
            return cls(field=InvoiceField(parts[2]), line_item_id=parts[1])
        return cls(field=InvoiceField(key))
