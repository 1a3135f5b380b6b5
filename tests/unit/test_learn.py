"""
Tests for invoice_memory/engine/learn.py: reinforcement, decay and memory creation.
"""

import json
from datetime import date

import pytest

from invoice_memory.engine.learn import (
    FALLBACK_CONFIDENCE,
    SOURCE_LEARN,
    SOURCE_RESOLUTION,
    LearningSignal,
    MemoryLearner,
    learn_from_signal,
    vendor_pattern_for,
)
from invoice_memory.models import (
    CorrectionMemoryContent,
    Memory,
    MemoryKind,
    PatternField,
    ResolutionMemoryContent,
    ResolutionStatus,
    VendorMemoryContent,
    parse_learned_content,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def learner(memory_store, engine_settings):
    return MemoryLearner(memory_store, engine_settings)


def _signal(**overrides):
    values = {
        "approved": True,
        "field": "taxAmount",
        "value": 19.0,
        "vendor_name": "Parts AG",
        "invoice_number": "PA-1001",
        "invoice_date": "2024-03-01",
    }
    values.update(overrides)
    return LearningSignal(**values)


def _content(memory):
    return parse_learned_content(memory)


# ---------------------------------------------------------------------------
# Pattern promotion
# ---------------------------------------------------------------------------


class TestVendorPatternFor:

    @pytest.mark.parametrize(
        "field, pattern",
        [
            ("taxAmount", PatternField.VAT_INCLUDED),
            ("grossAmount", PatternField.VAT_INCLUDED),
            ("lineItem:7:sku", PatternField.FREIGHT_SKU),
            ("currency", None),
            ("serviceDate", None),
            ("paymentTermsNormalized", None),
            ("somethingElse", None),
            (None, None),
        ],
    )
    def test_mapping(self, field, pattern):
        assert vendor_pattern_for(field) is pattern


# ---------------------------------------------------------------------------
# No verdict
# ---------------------------------------------------------------------------


class TestNoVerdict:

    def test_returns_none(self, learner, memory_store):
        assert learner.learn(_signal(approved=None)) is None
        assert len(memory_store) == 0


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


class TestCreate:

    def test_approved_tax_becomes_vendor_memory(self, learner, memory_store):
        memory = learner.learn(_signal(memory_id="new-1"))

        content = _content(memory)
        assert memory.id == "new-1"
        assert memory.source == SOURCE_LEARN
        assert memory.kind is MemoryKind.LONG_TERM
        assert isinstance(content, VendorMemoryContent)
        assert content.field == "vatIncluded"
        assert content.confidence == 0.8
        assert content.usage_count == 1
        assert content.metadata == {"field": "taxAmount", "value": 19.0}
        assert memory_store.get_by_id("new-1") == memory

    def test_rejected_starts_at_half(self, learner):
        memory = learner.learn(_signal(approved=False, field="currency", value="USD"))

        content = _content(memory)
        assert isinstance(content, CorrectionMemoryContent)
        assert content.field == "currency"
        assert content.confidence == 0.5

    def test_generates_id(self, learner):
        first = learner.learn(_signal())
        second = learner.learn(_signal())
        assert first.id and second.id and first.id != second.id

    def test_freight_sku_records_proposed_value(self, learner):
        memory = learner.learn(_signal(field="lineItem:2:sku", value="FRT-SEA"))

        content = _content(memory)
        assert content.field == "freightSku"
        assert content.proposed_value == "FRT-SEA"

    def test_date_value_serialized(self, learner):
        memory = learner.learn(_signal(field="serviceDate", value=date(2024, 3, 1)))
        assert json.loads(memory.content)["metadata"]["value"] == "2024-03-01"


# ---------------------------------------------------------------------------
# Reinforcement and decay
# ---------------------------------------------------------------------------


class TestUpdate:

    def test_reinforce(self, learner, seed_memory):
        seed_memory("vendor", memory_id="m1", vendor_name="Parts AG", field="vatIncluded", confidence=0.8)

        updated = learner.learn(_signal(memory_id="m1"))

        content = _content(updated)
        assert content.confidence == pytest.approx(0.85)
        assert content.usage_count == 2

    def test_decay(self, learner, seed_memory):
        seed_memory("vendor", memory_id="m1", vendor_name="Parts AG", field="vatIncluded", confidence=0.8)

        updated = learner.learn(_signal(memory_id="m1", approved=False))
        assert _content(updated).confidence == pytest.approx(0.75)

    def test_feedback_score_scales_step(self, learner, seed_memory):
        seed_memory("correction", memory_id="m1", field="currency", confidence=0.5)

        updated = learner.learn(_signal(memory_id="m1", field="currency", feedback_score=2.0))
        assert _content(updated).confidence == pytest.approx(0.6)

    def test_negative_score_still_decays_on_rejection(self, learner, seed_memory):
        seed_memory("correction", memory_id="m1", field="currency", confidence=0.5)

        updated = learner.learn(
            _signal(memory_id="m1", field="currency", approved=False, feedback_score=-1.0)
        )
        assert _content(updated).confidence == pytest.approx(0.45)

    def test_ceiling(self, learner, seed_memory):
        seed_memory("vendor", memory_id="m1", field="vatIncluded", confidence=0.93)

        updated = learner.learn(_signal(memory_id="m1"))
        assert _content(updated).confidence == 0.95

    def test_floor(self, learner, seed_memory):
        seed_memory("vendor", memory_id="m1", field="vatIncluded", confidence=0.02)

        updated = learner.learn(_signal(memory_id="m1", approved=False))
        assert _content(updated).confidence == 0.0

    def test_above_ceiling_pulled_down(self, learner, seed_memory):
        seed_memory("vendor", memory_id="m1", field="vatIncluded", confidence=0.99)

        updated = learner.learn(_signal(memory_id="m1"))
        assert _content(updated).confidence == 0.95

    def test_keeps_existing_context(self, learner, seed_memory):
        original = seed_memory(
            "vendor",
            memory_id="m1",
            vendor_name="Parts AG",
            invoice_number="PA-0001",
            invoice_date="2024-01-01",
            field="serviceDate",
            pattern="leistungsdatum",
            metadata={"proposedValue": "2024-01-01"},
        )

        updated = learner.learn(_signal(memory_id="m1", field="serviceDate", value="2024-03-01"))

        content = _content(updated)
        assert content.invoice_number == "PA-0001"
        assert content.invoice_date == "2024-01-01"
        assert content.pattern == "leistungsdatum"
        assert content.proposed_value == "2024-01-01"
        assert content.metadata["value"] == "2024-03-01"
        assert updated.created_at == original.created_at
        assert updated.updated_at >= original.updated_at

    def test_promotes_correction_to_vendor_pattern(self, learner, seed_memory):
        seed_memory("correction", memory_id="m1", field="taxAmount", confidence=0.8)

        content = _content(learner.learn(_signal(memory_id="m1")))
        assert isinstance(content, VendorMemoryContent)
        assert content.field == "vatIncluded"

    def test_freight_update_refreshes_proposed_value(self, learner, seed_memory):
        seed_memory(
            "vendor",
            memory_id="m1",
            field="freightSku",
            metadata={"proposedValue": "FREIGHT"},
        )

        content = _content(learner.learn(_signal(memory_id="m1", field="lineItem:1:sku", value="FRT-AIR")))
        assert content.proposed_value == "FRT-AIR"

    def test_unparseable_memory_rebuilt(self, learner, memory_store):
        memory_store.save(Memory(id="legacy", kind=MemoryKind.LONG_TERM, content="{oops"))

        updated = learner.learn(_signal(memory_id="legacy", field="currency", value="EUR"))

        content = _content(updated)
        assert isinstance(content, CorrectionMemoryContent)
        assert content.confidence == pytest.approx(FALLBACK_CONFIDENCE + 0.05)
        assert content.usage_count == 1
        assert content.vendor_name == "Parts AG"


class TestConvergence:

    def test_repeated_approval_converges_to_ceiling(self, learner, seed_memory):
        seed_memory("vendor", memory_id="m1", field="vatIncluded", confidence=0.5)

        history = []
        for _ in range(20):
            history.append(_content(learner.learn(_signal(memory_id="m1"))).confidence)

        assert history == sorted(history)
        assert history[-1] == 0.95
        assert max(history) <= 0.95

    def test_repeated_rejection_converges_to_zero(self, learner, seed_memory):
        seed_memory("vendor", memory_id="m1", field="vatIncluded", confidence=0.5)

        history = []
        for _ in range(20):
            history.append(_content(learner.learn(_signal(memory_id="m1", approved=False))).confidence)

        assert history == sorted(history, reverse=True)
        assert history[-1] == 0.0
        assert min(history) >= 0.0


# ---------------------------------------------------------------------------
# Resolution memories
# ---------------------------------------------------------------------------


class TestResolution:

    def test_resolution_status_writes_resolution_memory(self, learner, memory_store):
        learner.learn(_signal(resolution_status=ResolutionStatus.APPROVED))

        resolutions = [
            (m, _content(m))
            for m in memory_store.search_by_text("resolution", limit=10)
            if isinstance(_content(m), ResolutionMemoryContent)
        ]
        assert len(resolutions) == 1
        memory, content = resolutions[0]
        assert memory.source == SOURCE_RESOLUTION
        assert content.invoice_number == "PA-1001"
        assert content.invoice_date == "2024-03-01"
        assert content.resolution_status is ResolutionStatus.APPROVED
        assert content.is_duplicate is False

    def test_duplicate_flag_defaults_status(self, learner, memory_store):
        learner.learn(_signal(is_duplicate=True))

        content = next(
            _content(m)
            for m in memory_store.search_by_text("resolution", limit=10)
            if isinstance(_content(m), ResolutionMemoryContent)
        )
        assert content.resolution_status is ResolutionStatus.APPROVED
        assert content.is_duplicate is True

    def test_rejected_resolution_confidence(self, learner, memory_store):
        learner.learn(_signal(approved=False, resolution_status=ResolutionStatus.REJECTED))

        content = next(
            _content(m)
            for m in memory_store.search_by_text("resolution", limit=10)
            if isinstance(_content(m), ResolutionMemoryContent)
        )
        assert content.confidence == 0.5
        assert content.resolution_status is ResolutionStatus.REJECTED

    def test_written_on_update_path(self, learner, memory_store, seed_memory):
        seed_memory("vendor", memory_id="m1", field="vatIncluded")
        learner.learn(_signal(memory_id="m1", resolution_status=ResolutionStatus.APPROVED))
        assert len(memory_store) == 2

    def test_no_status_no_resolution(self, learner, memory_store):
        learner.learn(_signal())
        assert len(memory_store) == 1


# ---------------------------------------------------------------------------
# Signal construction
# ---------------------------------------------------------------------------


class TestLearningSignal:

    def test_from_details(self):
        signal = LearningSignal.from_details(
            {
                "memoryId": "m1",
                "approved": False,
                "field": "currency",
                "value": "USD",
                "vendorName": "Parts AG",
                "invoiceNumber": "PA-1001",
                "invoiceDate": "2024-03-01",
                "resolutionStatus": "rejected",
                "isDuplicate": False,
            },
            feedback_score=0.5,
        )
        assert signal.memory_id == "m1"
        assert signal.approved is False
        assert signal.resolution_status is ResolutionStatus.REJECTED
        assert signal.feedback_score == 0.5

    def test_from_details_defaults(self):
        signal = LearningSignal.from_details({"approved": True})
        assert signal.feedback_score == 1.0
        assert signal.resolution_status is None

    def test_wrapper(self, memory_store, engine_settings):
        memory = learn_from_signal(memory_store, _signal(), engine_settings)
        assert memory_store.get_by_id(memory.id) is not None
