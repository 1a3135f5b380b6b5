"""
Tests for invoice_memory/engine/text_signals.py and confidence.py.
"""

import pytest

from invoice_memory.config.settings import EngineSettings
from invoice_memory.engine.confidence import ConfidenceBand, ConfidenceBands, clamp
from invoice_memory.engine.text_signals import (
    detect_currency,
    detect_skonto_terms,
    detect_vat_included,
    looks_like_freight,
)


# ---------------------------------------------------------------------------
# VAT
# ---------------------------------------------------------------------------


class TestDetectVatIncluded:

    @pytest.mark.parametrize(
        "text",
        [
            "Gesamtbetrag 119,00 EUR inkl. MwSt.",
            "MwSt. inkl. 19%",
            "Betrag inkl MwSt",
            "All Prices incl. VAT",
            "The price includes VAT",
        ],
    )
    def test_detects_phrases(self, text):
        assert detect_vat_included(text)

    def test_no_phrase(self):
        assert not detect_vat_included("Netto 100,00 zzgl. 19% MwSt.")

    def test_empty_text(self):
        assert not detect_vat_included("")


# ---------------------------------------------------------------------------
# Currency
# ---------------------------------------------------------------------------


class TestDetectCurrency:

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("Total 119,00 EUR", "EUR"),
            ("Total 119,00 €", "EUR"),
            ("Amount due: $250.00", "USD"),
            ("Total 250.00 usd", "USD"),
            ("Betrag 80.00 CHF", "CHF"),
            ("Total £40", "GBP"),
        ],
    )
    def test_markers(self, text, expected):
        assert detect_currency(text) == expected

    def test_euro_checked_first(self):
        assert detect_currency("Total 10 EUR (approx $11)") == "EUR"

    def test_code_needs_leading_space(self):
        assert detect_currency("EURONICS Rechnung") is None

    def test_no_marker(self):
        assert detect_currency("Rechnung ohne Betrag") is None


# ---------------------------------------------------------------------------
# Freight
# ---------------------------------------------------------------------------


class TestLooksLikeFreight:

    @pytest.mark.parametrize(
        "description",
        ["Seefracht Hamburg–Rotterdam", "Shipping & handling", "FRACHTKOSTEN", "Freight charge"],
    )
    def test_freight_descriptions(self, description):
        assert looks_like_freight(description)

    def test_regular_item(self):
        assert not looks_like_freight("Bremsscheibe vorne")


# ---------------------------------------------------------------------------
# Skonto
# ---------------------------------------------------------------------------


class TestDetectSkontoTerms:

    def test_percentage_after_keyword(self):
        assert detect_skonto_terms("Zahlbar innerhalb 10 Tagen mit Skonto von 2%") == "2% skonto detected"

    def test_percentage_before_keyword(self):
        assert detect_skonto_terms("3% Skonto bei Zahlung binnen 14 Tagen") == "3% skonto detected"

    def test_keyword_without_percentage(self):
        assert detect_skonto_terms("Skonto nach Vereinbarung") == "Skonto terms detected"

    def test_percentage_outside_window(self):
        text = "5% Rabatt" + " " * 60 + "Skonto nach Vereinbarung"
        assert detect_skonto_terms(text) == "Skonto terms detected"

    def test_no_skonto(self):
        assert detect_skonto_terms("Zahlbar sofort ohne Abzug") is None


# ---------------------------------------------------------------------------
# Confidence bands
# ---------------------------------------------------------------------------


class TestConfidenceBands:

    @pytest.mark.parametrize(
        "confidence, band",
        [
            (0.95, ConfidenceBand.HIGH),
            (0.8, ConfidenceBand.HIGH),
            (0.79, ConfidenceBand.MEDIUM),
            (0.7, ConfidenceBand.MEDIUM),
            (0.69, ConfidenceBand.LOW),
            (0.0, ConfidenceBand.LOW),
        ],
    )
    def test_classify(self, confidence, band):
        assert ConfidenceBands().classify(confidence) is band

    def test_is_medium(self):
        bands = ConfidenceBands()
        assert bands.is_medium(0.75)
        assert not bands.is_medium(0.85)

    def test_from_settings(self):
        bands = ConfidenceBands.from_settings(
            EngineSettings(high_confidence_threshold=0.9, medium_confidence_threshold=0.6)
        )
        assert bands.classify(0.85) is ConfidenceBand.MEDIUM

    def test_invalid_order(self):
        with pytest.raises(ValueError):
            ConfidenceBands(high=0.6, medium=0.7)

    def test_clamp(self):
        assert clamp(1.3) == 1.0
        assert clamp(-0.2) == 0.0
        assert clamp(0.97, upper=0.95) == 0.95
        assert clamp(0.5) == 0.5
