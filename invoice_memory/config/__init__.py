"""
Configuration module for the invoice memory engine.

Provides centralized configuration management using Pydantic Settings,
environment variable loading, and structured logging setup.
"""

from invoice_memory.config.logging_config import AuditLogger, configure_logging, get_logger
from invoice_memory.config.settings import (
    EngineSettings,
    Environment,
    LoggingSettings,
    MemoryStoreSettings,
    Settings,
    StoreBackend,
    get_settings,
)


__all__ = [
    "Settings",
    "EngineSettings",
    "MemoryStoreSettings",
    "LoggingSettings",
    "StoreBackend",
    "get_settings",
    "Environment",
    "configure_logging",
    "get_logger",
    "AuditLogger",
]
