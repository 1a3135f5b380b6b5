"""
Unit tests for Settings classes.

Tests cover:
- EngineSettings defaults, env loading and band validation
- MemoryStoreSettings paths
- Production settings validation
- Settings caching behavior
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from invoice_memory.config.settings import (
    EngineSettings,
    Environment,
    LogFormat,
    LoggingSettings,
    MemoryStoreSettings,
    Settings,
    StoreBackend,
    get_settings,
)


class TestEngineSettings:
    """Tests for EngineSettings class."""

    def test_default_values(self) -> None:
        """Test default confidence model values."""
        settings = EngineSettings()

        assert settings.high_confidence_threshold == 0.8
        assert settings.medium_confidence_threshold == 0.7
        assert settings.reinforcement_step == 0.05
        assert settings.reinforcement_ceiling == 0.95
        assert settings.recall_limit == 50
        assert settings.duplicate_date_window_days == 2
        assert settings.vat_rate == 0.19
        assert settings.default_heuristic_confidence == 0.75
        assert settings.default_currency_confidence == 0.7
        assert settings.default_freight_sku == "FREIGHT"
        assert settings.fillable_fields == ["serviceDate"]

    def test_env_prefix_loading(self, monkeypatch) -> None:
        """Test loading from environment variables with ENGINE_ prefix."""
        monkeypatch.setenv("ENGINE_RECALL_LIMIT", "20")
        monkeypatch.setenv("ENGINE_VAT_RATE", "0.077")
        monkeypatch.setenv("ENGINE_FILLABLE_FIELDS", '["serviceDate", "currency"]')

        settings = EngineSettings()

        assert settings.recall_limit == 20
        assert settings.vat_rate == pytest.approx(0.077)
        assert settings.fillable_fields == ["serviceDate", "currency"]

    def test_medium_above_high_rejected(self) -> None:
        """Test that the medium band must not exceed the high band."""
        with pytest.raises(ValidationError) as exc:
            EngineSettings(high_confidence_threshold=0.6, medium_confidence_threshold=0.7)
        assert "medium_confidence_threshold" in str(exc.value)

    def test_threshold_bounds(self) -> None:
        """Test thresholds are constrained to [0, 1]."""
        with pytest.raises(ValidationError):
            EngineSettings(high_confidence_threshold=1.5)
        with pytest.raises(ValidationError):
            EngineSettings(reinforcement_step=0)


class TestMemoryStoreSettings:
    """Tests for MemoryStoreSettings class."""

    def test_defaults(self, monkeypatch) -> None:
        monkeypatch.delenv("MEMORY_STORE_DATA_DIR", raising=False)
        settings = MemoryStoreSettings()

        assert settings.backend == StoreBackend.SQLITE
        assert settings.data_dir == Path("./data/memory")
        assert settings.sqlite_path == Path("./data/memory/memory.db")
        assert settings.json_path == Path("./data/memory/memories.json")

    def test_backend_from_env(self, monkeypatch) -> None:
        monkeypatch.setenv("MEMORY_STORE_BACKEND", "json")
        assert MemoryStoreSettings().backend == StoreBackend.JSON

    def test_invalid_backend(self) -> None:
        with pytest.raises(ValidationError):
            MemoryStoreSettings(backend="redis")


class TestLoggingSettings:
    """Tests for LoggingSettings class."""

    def test_defaults(self) -> None:
        settings = LoggingSettings()

        assert settings.format == LogFormat.JSON
        assert settings.file_path is None
        assert settings.mask_sensitive_data is True


class TestSettings:
    """Tests for the aggregate Settings class."""

    def test_sections_present(self) -> None:
        settings = Settings()

        assert isinstance(settings.engine, EngineSettings)
        assert isinstance(settings.memory_store, MemoryStoreSettings)
        assert settings.app_env == Environment.DEVELOPMENT
        assert settings.is_development

    def test_production_rejects_debug(self) -> None:
        with pytest.raises(ValidationError) as exc:
            Settings(app_env=Environment.PRODUCTION, debug=True)
        assert "DEBUG must be False" in str(exc.value)

    def test_production_rejects_in_memory_store(self) -> None:
        with pytest.raises(ValidationError):
            Settings(
                app_env=Environment.PRODUCTION,
                memory_store=MemoryStoreSettings(backend=StoreBackend.MEMORY),
            )

    def test_production_with_sqlite(self) -> None:
        settings = Settings(app_env=Environment.PRODUCTION)
        assert settings.is_production

    def test_get_settings_cached(self) -> None:
        assert get_settings() is get_settings()

    def test_cache_clear_reloads_env(self, monkeypatch) -> None:
        first = get_settings()
        monkeypatch.setenv("ENGINE_RECALL_LIMIT", "7")
        get_settings.cache_clear()
        second = get_settings()

        assert first is not second
        assert second.engine.recall_limit == 7
