"""
Structured logging configuration using structlog.

Provides JSON-formatted logging with contextual information,
masking of financial identifiers, and integration with Python's
standard logging module.
"""

import logging
import logging.handlers
import os
import re
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TextIO

import structlog
from structlog.types import EventDict, Processor

from invoice_memory.config.settings import LogFormat, get_settings


# Patterns for identifiers that must not reach log sinks in clear text
SENSITIVE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    # IBAN (country code, check digits, up to 30 alphanumerics, optional spaces)
    (re.compile(r"\b[A-Z]{2}\d{2}(?:\s?[A-Z0-9]{4}){2,7}(?:\s?[A-Z0-9]{1,4})?\b"), "[IBAN-MASKED]"),
    # Credit card numbers
    (re.compile(r"\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b"), "[CC-MASKED]"),
    # Email addresses
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[EMAIL-MASKED]"),
]


def mask_text(value: str) -> str:
    """Apply every sensitive pattern to a string."""
    result = value
    for pattern, replacement in SENSITIVE_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


def _mask_value(value: Any) -> Any:
    if isinstance(value, str):
        return mask_text(value)
    if isinstance(value, dict):
        return {k: _mask_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(_mask_value(item) for item in value)
    return value


def mask_sensitive(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """
    Mask bank details and contact data in log entries.

    Args:
        logger: Logger instance.
        method_name: Name of the logging method.
        event_dict: The event dictionary to process.

    Returns:
        EventDict with sensitive values masked.
    """
    settings = get_settings()
    if not settings.logging.mask_sensitive_data:
        return event_dict

    return {key: _mask_value(val) for key, val in event_dict.items()}


def add_timestamp(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add ISO-8601 timestamp to log entries."""
    event_dict["timestamp"] = datetime.now(UTC).isoformat()
    return event_dict


def add_service_info(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add service metadata to log entries."""
    settings = get_settings()
    event_dict["service"] = settings.app_name
    event_dict["version"] = settings.app_version
    event_dict["environment"] = settings.app_env.value
    return event_dict


def add_caller_info(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add caller information to log entries when enabled."""
    settings = get_settings()
    if not settings.logging.include_caller:
        return event_dict

    record = event_dict.get("_record")
    if record:
        event_dict["caller"] = {
            "filename": record.filename,
            "function": record.funcName,
            "line": record.lineno,
            "module": record.module,
        }
    return event_dict


class SensitiveDataFilter(logging.Filter):
    """
    Logging filter that masks sensitive identifiers in stdlib log records.

    Covers records emitted by third-party libraries that bypass the
    structlog processor chain.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Apply masking to the log record.

        Args:
            record: The log record to filter.

        Returns:
            Always True to allow the record through after masking.
        """
        settings = get_settings()
        if not settings.logging.mask_sensitive_data:
            return True

        if isinstance(record.msg, str):
            record.msg = mask_text(record.msg)

        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                mask_text(arg) if isinstance(arg, str) else arg for arg in record.args
            )

        return True


def get_json_processors() -> list[Processor]:
    """
    Get processors for JSON log output.

    Returns:
        List of structlog processors for JSON formatting.
    """
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        add_timestamp,
        add_service_info,
        add_caller_info,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.processors.format_exc_info,
        mask_sensitive,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]


def get_console_processors() -> list[Processor]:
    """
    Get processors for console log output.

    Returns:
        List of structlog processors for console formatting.
    """
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        add_timestamp,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.processors.format_exc_info,
        mask_sensitive,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]


def configure_logging(stream: TextIO | None = None) -> None:
    """
    Configure the logging system with structlog.

    Sets up both structlog and standard library logging with:
    - JSON or console output based on settings
    - Masking of financial identifiers
    - Console handler and optional rotating file handler

    Args:
        stream: Console stream. Defaults to stdout.
    """
    settings = get_settings()

    log_level = getattr(logging, settings.logging.level.value)

    if settings.logging.format == LogFormat.JSON:
        processors = get_json_processors()
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        processors = get_console_processors()
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.ExtraAdder(),
            add_timestamp,
            structlog.processors.format_exc_info,
            mask_sensitive,
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(SensitiveDataFilter())
    root_logger.addHandler(console_handler)

    log_file = settings.logging.file_path
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename=str(log_file),
            maxBytes=settings.logging.file_max_size_mb * 1024 * 1024,
            backupCount=settings.logging.file_backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(SensitiveDataFilter())
        root_logger.addHandler(file_handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a configured structlog logger instance.

    Args:
        name: Logger name. If None, uses the calling module's name.

    Returns:
        Configured structlog BoundLogger instance.
    """
    return structlog.get_logger(name)


AUDIT_LOGGER_NAME = "audit"


class AuditLogger:
    """
    Audit logger for review decisions and memory updates.

    Writes one JSON line per event to a dedicated rotating file so that
    every auto-applied correction and every confidence change can be
    traced after the fact.
    """

    def __init__(self, audit_dir: Path | str | None = None) -> None:
        """
        Initialize the audit logger.

        Args:
            audit_dir: Directory for audit.log. Defaults to the configured path.
        """
        settings = get_settings()
        self._audit_dir = Path(audit_dir) if audit_dir else settings.logging.audit_log_path
        self._stdlib_logger = logging.getLogger(AUDIT_LOGGER_NAME)
        self._stdlib_logger.propagate = False
        self._handler = self._setup_audit_handler()
        self._logger = structlog.wrap_logger(
            self._stdlib_logger,
            processors=[
                structlog.stdlib.add_log_level,
                add_timestamp,
                add_service_info,
                structlog.processors.format_exc_info,
                mask_sensitive,
                structlog.processors.JSONRenderer(),
            ],
        )

    @property
    def log_path(self) -> Path:
        """Path of the audit log file."""
        return self._audit_dir / "audit.log"

    def _setup_audit_handler(self) -> logging.Handler:
        """Set up dedicated audit log file handler, once per file."""
        self._audit_dir.mkdir(parents=True, exist_ok=True)

        filename = os.path.abspath(self.log_path)
        for handler in self._stdlib_logger.handlers:
            if isinstance(handler, logging.FileHandler) and handler.baseFilename == filename:
                return handler

        audit_handler = logging.handlers.RotatingFileHandler(
            filename=str(self.log_path),
            maxBytes=100 * 1024 * 1024,  # 100 MB
            backupCount=10,
            encoding="utf-8",
        )
        audit_handler.setFormatter(logging.Formatter("%(message)s"))
        audit_handler.setLevel(logging.INFO)

        self._stdlib_logger.addHandler(audit_handler)
        self._stdlib_logger.setLevel(logging.INFO)
        return audit_handler

    def log_decision(
        self,
        invoice_id: str,
        vendor_name: str,
        requires_human_review: bool,
        confidence_score: float,
        applied_fields: list[str],
        reasoning: str,
    ) -> None:
        """
        Log the review decision taken for one invoice.

        Args:
            invoice_id: Identifier of the processed invoice.
            vendor_name: Vendor the invoice belongs to.
            requires_human_review: Whether the invoice was routed to review.
            confidence_score: Aggregate confidence of the run.
            applied_fields: Correction keys written into the invoice.
            reasoning: Human-readable decision reasoning.
        """
        self._logger.info(
            "review_decision",
            audit_type="decision",
            invoice_id=invoice_id,
            vendor_name=vendor_name,
            requires_human_review=requires_human_review,
            confidence_score=confidence_score,
            applied_fields=applied_fields,
            reasoning=reasoning,
        )

    def log_memory_update(
        self,
        invoice_id: str,
        memory_id: str,
        action: str,
        previous_confidence: float,
        new_confidence: float,
        usage_count: int,
    ) -> None:
        """
        Log a confidence change on a learned memory.

        Args:
            invoice_id: Invoice whose feedback triggered the update.
            memory_id: Identifier of the memory.
            action: One of reinforce, decay or create.
            previous_confidence: Confidence before the update.
            new_confidence: Confidence after the update.
            usage_count: Usage count after the update.
        """
        self._logger.info(
            "memory_update",
            audit_type="memory_update",
            invoice_id=invoice_id,
            memory_id=memory_id,
            action=action,
            previous_confidence=previous_confidence,
            new_confidence=new_confidence,
            usage_count=usage_count,
        )

    def close(self) -> None:
        """Flush and detach the audit file handler."""
        self._handler.close()
        self._stdlib_logger.removeHandler(self._handler)
