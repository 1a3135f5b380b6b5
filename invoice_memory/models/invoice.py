"""
Normalized invoice model.

The invoice is treated as an immutable value inside the pipeline: the apply
stage never writes into the caller's object, it builds a patched copy with
``with_patches`` and clones only the line items it touches.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from invoice_memory.models.fields import CorrectionTarget, InvoiceField
from invoice_memory.utils.date_utils import format_date, parse_date


@dataclass(slots=True)
class InvoiceLineItem:
    """
    A single invoice position.

    Attributes:
        id: Line item id (1-based position for extracted invoices).
        description: Free-text description.
        quantity: Ordered quantity.
        unit_price: Price per unit.
        sku: Article number, if known.
    """

    id: str
    description: str
    quantity: float = 1.0
    unit_price: float = 0.0
    sku: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "description": self.description,
            "quantity": self.quantity,
            "unitPrice": self.unit_price,
            "sku": self.sku,
        }


@dataclass(slots=True)
class NormalizedInvoice:
    """
    Working copy of an invoice under correction.

    Attributes:
        id: Internal invoice id.
        vendor_name: Supplier name as extracted.
        invoice_number: Supplier's invoice number.
        issued_at: Invoice date.
        total_amount: Gross total as extracted.
        currency: ISO currency code, empty when unknown.
        customer_name: Billed party.
        external_id: Id in the upstream extraction system.
        due_at: Payment due date.
        line_items: Invoice positions.
        raw_text: OCR text of the document.
        service_date: Date the service was rendered.
        tax_amount: VAT amount.
        gross_amount: Gross amount including VAT.
        payment_terms_normalized: Normalized payment terms description.
        metadata: Extractor-specific extras.
    """

    id: str
    vendor_name: str
    invoice_number: str
    issued_at: date
    total_amount: float
    currency: str = ""
    customer_name: str = ""
    external_id: str | None = None
    due_at: date | None = None
    line_items: list[InvoiceLineItem] = field(default_factory=list)
    raw_text: str | None = None
    service_date: date | None = None
    tax_amount: float | None = None
    gross_amount: float | None = None
    payment_terms_normalized: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def get_value(self, target: CorrectionTarget) -> Any:
        """Current value at a correction target (None if the line item is missing)."""
        if target.line_item_id is None:
            return getattr(self, target.field.attribute)
        item = self.find_line_item(target.line_item_id)
        return getattr(item, target.field.attribute) if item is not None else None

    def find_line_item(self, line_item_id: str) -> InvoiceLineItem | None:
        return next((item for item in self.line_items if item.id == line_item_id), None)

    def with_patches(self, patches: Iterable[tuple[CorrectionTarget, Any]]) -> NormalizedInvoice:
        """
        Build a copy of this invoice with field-level patches applied.

        Scalars are replaced on a shallow copy; a line item is cloned only
        when a patch targets it, so untouched items are shared and the
        original invoice is never modified.

        Args:
            patches: (target, value) pairs, applied in order.

        Returns:
            New invoice instance.

        Raises:
            KeyError: If a patch targets an unknown line item.
        """
        scalar_changes: dict[str, Any] = {}
        item_changes: dict[str, dict[str, Any]] = {}

        for target, value in patches:
            if target.line_item_id is None:
                scalar_changes[target.field.attribute] = value
            else:
                if self.find_line_item(target.line_item_id) is None:
                    raise KeyError(f"Unknown line item: {target.line_item_id}")
                item_changes.setdefault(target.line_item_id, {})[target.field.attribute] = value

        line_items = [
            dataclasses.replace(item, **item_changes[item.id]) if item.id in item_changes else item
            for item in self.line_items
        ]
        return dataclasses.replace(
            self,
            line_items=line_items,
            metadata=dict(self.metadata),
            **scalar_changes,
        )

    @classmethod
    def from_extracted_record(cls, record: dict[str, Any]) -> NormalizedInvoice:
        """
        Convert an extractor output record into a normalized invoice.

        Args:
            record: Record with ``invoiceId``, ``vendor``, ``fields``,
                ``confidence`` and ``rawText`` keys.

        Returns:
            Normalized invoice.

        Raises:
            ValueError: If required keys are missing or malformed.
        """
        try:
            fields = record["fields"]
            invoice_id = str(record["invoiceId"])
            vendor = str(record["vendor"])
            invoice_number = str(fields["invoiceNumber"])
            gross_total = float(fields["grossTotal"])
            tax_total = fields.get("taxTotal")
            tax_amount = float(tax_total) if tax_total is not None else None
            line_items = [
                InvoiceLineItem(
                    id=str(index + 1),
                    description=str(item.get("description") or ""),
                    quantity=float(item.get("qty") or 0),
                    unit_price=float(item.get("unitPrice") or 0),
                    sku=item.get("sku") or None,
                )
                for index, item in enumerate(fields.get("lineItems") or [])
            ]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid extracted invoice record: {e}") from e

        return cls(
            id=invoice_id,
            external_id=invoice_id,
            customer_name=vendor,
            vendor_name=vendor,
            invoice_number=invoice_number,
            currency=fields.get("currency") or "",
            total_amount=gross_total,
            issued_at=parse_date(fields.get("invoiceDate")) or date.today(),
            line_items=line_items,
            raw_text=record.get("rawText"),
            service_date=parse_date(fields.get("serviceDate")),
            tax_amount=tax_amount,
            gross_amount=gross_total,
            metadata={
                "poNumber": fields.get("poNumber"),
                "taxRate": fields.get("taxRate"),
                "netTotal": fields.get("netTotal"),
                "extractorConfidence": record.get("confidence"),
            },
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary with camelCase keys."""
        return {
            "id": self.id,
            "externalId": self.external_id,
            "customerName": self.customer_name,
            "vendorName": self.vendor_name,
            "invoiceNumber": self.invoice_number,
            "currency": self.currency,
            "totalAmount": self.total_amount,
            "issuedAt": format_date(self.issued_at),
            "dueAt": format_date(self.due_at) if self.due_at else None,
            "lineItems": [item.to_dict() for item in self.line_items],
            "rawText": self.raw_text,
            "serviceDate": format_date(self.service_date) if self.service_date else None,
            "taxAmount": self.tax_amount,
            "grossAmount": self.gross_amount,
            "paymentTermsNormalized": self.payment_terms_normalized,
            "metadata": self.metadata,
        }


def coerce_value(target_field: InvoiceField, value: Any) -> Any:
    """
    Coerce a proposed value to the type of the targeted attribute.

    Args:
        target_field: Attribute the value is written to.
        value: Raw value, typically read from memory metadata.

    Returns:
        The coerced value.

    Raises:
        ValueError: If the value cannot represent the attribute.
    """
    if value is None:
        raise ValueError(f"No value for {target_field.value}")

    if target_field is InvoiceField.SERVICE_DATE:
        parsed = parse_date(value) if isinstance(value, (str, date)) else None
        if parsed is None:
            raise ValueError(f"Not a date: {value!r}")
        return parsed

    if target_field in (InvoiceField.TAX_AMOUNT, InvoiceField.GROSS_AMOUNT):
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            raise ValueError(f"Not an amount: {value!r}")
        return round(float(value), 2)

    text = str(value).strip()
    if not text:
        raise ValueError(f"Empty value for {target_field.value}")
    if target_field is InvoiceField.CURRENCY:
        return text.upper()
    return text
