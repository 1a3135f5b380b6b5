"""
Application settings using Pydantic Settings.

Provides type-safe, validated configuration from environment variables
with sensible defaults for the invoice memory engine.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment enumeration."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging level enumeration."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output format enumeration."""

    JSON = "json"
    CONSOLE = "console"


class StoreBackend(str, Enum):
    """Supported memory store backends."""

    MEMORY = "memory"
    JSON = "json"
    SQLITE = "sqlite"


class EngineSettings(BaseSettings):
    """Confidence model and heuristic configuration for the engine."""

    model_config = SettingsConfigDict(
        env_prefix="ENGINE_",
        extra="ignore",
    )

    high_confidence_threshold: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.8,
        description="Confidence at or above which a correction is auto-applied",
    )
    medium_confidence_threshold: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.7,
        description="Confidence at or above which a correction is proposed",
    )
    reinforcement_step: Annotated[float, Field(gt=0.0, le=0.5)] = Field(
        default=0.05,
        description="Confidence delta applied per unit of human feedback",
    )
    reinforcement_ceiling: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.95,
        description="Upper bound for reinforced memory confidence",
    )
    recall_limit: Annotated[int, Field(ge=1, le=1000)] = Field(
        default=50,
        description="Maximum memories fetched per recall search",
    )
    recall_match_bonus: Annotated[float, Field(ge=0.0, le=0.5)] = Field(
        default=0.05,
        description="Score bonus per matching vendor / invoice number / date",
    )
    duplicate_date_window_days: Annotated[int, Field(ge=0, le=365)] = Field(
        default=2,
        description="Invoice date distance (days) counted as a date match",
    )
    vat_rate: Annotated[float, Field(gt=0.0, le=1.0)] = Field(
        default=0.19,
        description="VAT rate used to split VAT out of gross totals",
    )
    default_heuristic_confidence: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.75,
        description="Confidence for VAT, freight and skonto signals without a vendor memory",
    )
    default_currency_confidence: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.7,
        description="Confidence for currency inference without a vendor memory",
    )
    default_freight_sku: str = Field(
        default="FREIGHT",
        description="SKU proposed for freight line items without a vendor memory",
    )
    fillable_fields: list[str] = Field(
        default_factory=lambda: ["serviceDate"],
        description="Invoice fields filled from vendor memories when absent",
    )

    @model_validator(mode="after")
    def validate_band_order(self) -> "EngineSettings":
        """Ensure the medium band sits below the high band."""
        if self.medium_confidence_threshold > self.high_confidence_threshold:
            raise ValueError(
                "medium_confidence_threshold must not exceed high_confidence_threshold"
            )
        return self


class MemoryStoreSettings(BaseSettings):
    """Memory store backend configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="MEMORY_STORE_",
        extra="ignore",
    )

    backend: StoreBackend = Field(
        default=StoreBackend.SQLITE,
        description="Backend used to persist learned memories",
    )
    data_dir: Path = Field(
        default=Path("./data/memory"),
        description="Directory for file-based memory stores",
    )
    sqlite_filename: str = Field(
        default="memory.db",
        description="SQLite database filename inside data_dir",
    )
    json_filename: str = Field(
        default="memories.json",
        description="JSON store filename inside data_dir",
    )
    search_limit_default: Annotated[int, Field(ge=1, le=1000)] = Field(
        default=10,
        description="Default result limit for text searches",
    )

    @property
    def sqlite_path(self) -> Path:
        """Get the full SQLite database path."""
        return self.data_dir / self.sqlite_filename

    @property
    def json_path(self) -> Path:
        """Get the full JSON store path."""
        return self.data_dir / self.json_filename


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        extra="ignore",
    )

    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Minimum log level",
    )
    format: LogFormat = Field(
        default=LogFormat.JSON,
        description="Log output format",
    )
    file_path: Path | None = Field(
        default=None,
        description="Rotating log file path (disabled when unset)",
    )
    file_max_size_mb: Annotated[int, Field(ge=1, le=1000)] = Field(
        default=50,
        description="Maximum log file size in megabytes",
    )
    file_backup_count: Annotated[int, Field(ge=1, le=20)] = Field(
        default=5,
        description="Number of rotated log files to keep",
    )
    mask_sensitive_data: bool = Field(
        default=True,
        description="Mask IBANs, card numbers and e-mail addresses in logs",
    )
    include_caller: bool = Field(
        default=False,
        description="Include caller information in log entries",
    )
    audit_log_path: Path = Field(
        default=Path("./logs/audit"),
        description="Directory for the pipeline audit log",
    )


class Settings(BaseSettings):
    """
    Main application settings aggregating all configuration sections.

    Settings are loaded from environment variables with optional .env file support.
    Each section has its own prefix for environment variable naming.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Application metadata
    app_name: str = Field(
        default="invoice-memory-engine",
        description="Application name",
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version",
    )
    app_env: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    # Component settings
    engine: EngineSettings = Field(default_factory=EngineSettings)
    memory_store: MemoryStoreSettings = Field(default_factory=MemoryStoreSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate critical settings for production environment."""
        if self.app_env == Environment.PRODUCTION:
            if self.debug:
                raise ValueError("DEBUG must be False in production")
            if self.memory_store.backend == StoreBackend.MEMORY:
                raise ValueError(
                    "The in-memory store loses learned memories on exit; "
                    "use the json or sqlite backend in production."
                )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == Environment.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.app_env == Environment.TESTING


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached application settings instance.

    Returns:
        Settings: Application settings singleton.
    """
    return Settings()
