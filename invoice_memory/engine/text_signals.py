"""
Raw-text signals used by the apply stage.

Plain substring and regex checks over the OCR text of an invoice. A
missing signal is never an error; it just means the heuristic stays quiet.
"""

import re


# Phrases stating that prices include VAT (German and English)
VAT_INCLUDED_PHRASES: tuple[str, ...] = (
    "mwst. inkl",
    "mwst inkl",
    "inkl. mwst",
    "inkl mwst",
    "prices incl. vat",
    "price includes vat",
)

# Currency code -> markers, checked in order against upper-cased text
CURRENCY_MARKERS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("EUR", (" EUR", "€")),
    ("USD", (" USD", "$")),
    ("CHF", (" CHF",)),
    ("GBP", (" GBP", "£")),
)

FREIGHT_TOKENS: tuple[str, ...] = ("seefracht", "shipping", "fracht", "freight")

SKONTO_KEYWORD = "skonto"
SKONTO_WINDOW_BEFORE = 40
SKONTO_WINDOW_AFTER = 80
_PERCENT_PATTERN = re.compile(r"(\d{1,2})%")


def detect_vat_included(raw_text: str) -> bool:
    """Check whether the text states that prices include VAT."""
    text = raw_text.lower()
    return any(phrase in text for phrase in VAT_INCLUDED_PHRASES)


def detect_currency(raw_text: str) -> str | None:
    """
    Detect the invoice currency from codes or symbols in the text.

    Args:
        raw_text: OCR text of the invoice.

    Returns:
        ISO currency code, or None if no marker is present.
    """
    text = raw_text.upper()
    for code, markers in CURRENCY_MARKERS:
        if any(marker in text for marker in markers):
            return code
    return None


def looks_like_freight(description: str) -> bool:
    """Check whether a line item description refers to freight."""
    text = description.lower()
    return any(token in text for token in FREIGHT_TOKENS)


def detect_skonto_terms(raw_text: str) -> str | None:
    """
    Detect cash-discount (Skonto) terms.

    Looks for a 1-2 digit percentage in a window around the first
    occurrence of "skonto".

    Args:
        raw_text: OCR text of the invoice.

    Returns:
        A short description of the terms, or None if no skonto is mentioned.

    Example:
        detect_skonto_terms("2% Skonto bei Zahlung in 10 Tagen") -> "2% skonto detected"
    """
    text = raw_text.lower()
    index = text.find(SKONTO_KEYWORD)
    if index == -1:
        return None

    window = text[max(0, index - SKONTO_WINDOW_BEFORE) : index + SKONTO_WINDOW_AFTER]
    match = _PERCENT_PATTERN.search(window)
    if match:
        return f"{match.group(1)}% skonto detected"
    return "Skonto terms detected"
