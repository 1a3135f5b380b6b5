"""
Pytest Configuration and Shared Fixtures for the invoice memory engine.

Provides common fixtures and configuration for all test files.
"""

import sys
import uuid
from collections.abc import Callable, Generator
from datetime import date
from pathlib import Path
from typing import Any

import pytest

# Add repository root to Python path
repo_root = Path(__file__).parent.parent
sys.path.insert(0, str(repo_root))

from invoice_memory.config.settings import EngineSettings, get_settings
from invoice_memory.models import (
    InvoiceLineItem,
    Memory,
    MemoryKind,
    NormalizedInvoice,
    build_learned_content,
)
from invoice_memory.storage import InMemoryMemoryStore, reset_memory_store


# =============================================================================
# Function-scoped Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch) -> Generator[None, None, None]:
    """Point every file-based path at tmp_path and reset cached singletons."""
    monkeypatch.setenv("MEMORY_STORE_DATA_DIR", str(tmp_path / "memory"))
    monkeypatch.setenv("LOG_AUDIT_LOG_PATH", str(tmp_path / "audit"))
    monkeypatch.delenv("MEMORY_STORE_BACKEND", raising=False)
    monkeypatch.delenv("APP_ENV", raising=False)
    get_settings.cache_clear()
    reset_memory_store()
    yield
    get_settings.cache_clear()
    reset_memory_store()


@pytest.fixture
def engine_settings() -> EngineSettings:
    """Engine settings with default thresholds."""
    return EngineSettings()


@pytest.fixture
def memory_store() -> InMemoryMemoryStore:
    """Fresh in-memory store."""
    return InMemoryMemoryStore()


@pytest.fixture
def make_invoice() -> Callable[..., NormalizedInvoice]:
    """Factory for normalized invoices with sensible defaults."""

    def _make(**overrides: Any) -> NormalizedInvoice:
        values: dict[str, Any] = {
            "id": "INV-A-001",
            "vendor_name": "Parts AG",
            "invoice_number": "PA-1001",
            "issued_at": date(2024, 3, 1),
            "total_amount": 119.0,
            "currency": "EUR",
            "customer_name": "Parts AG",
            "line_items": [
                InvoiceLineItem(id="1", description="Bremsscheibe", quantity=2, unit_price=50.0),
            ],
            "raw_text": "Rechnung PA-1001",
        }
        values.update(overrides)
        return NormalizedInvoice(**values)

    return _make


@pytest.fixture
def seed_memory(memory_store) -> Callable[..., Memory]:
    """Save a learned memory into the in-memory store and return it."""

    def _seed(category: str = "vendor", memory_id: str | None = None, store=None, **content: Any) -> Memory:
        content.setdefault("confidence", 0.85)
        content.setdefault("usage_count", 1)
        payload = build_learned_content(category, **content)
        memory = Memory(
            id=memory_id or str(uuid.uuid4()),
            kind=MemoryKind.LONG_TERM,
            content=payload.to_json(),
            source="test",
        )
        (store if store is not None else memory_store).save(memory)
        return memory

    return _seed


# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config):
    """Pytest configuration hook."""
    # Add custom markers
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")


def pytest_collection_modifyitems(config, items):
    """Modify test collection."""
    # Add markers based on test location
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
