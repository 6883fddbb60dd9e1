"""
Structured Logging for the Data Access Engine

JSON structured logs with correlation ids, the acting user, OpenTelemetry
trace context and sensitive data masking.

Modules keep logging through ``logging.getLogger(__name__)``; this module only
configures handlers and enriches records, so nothing here is required for the
engine to run.
"""

# Standard library imports
import json
import logging
import re
import sys
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

# Third-party imports
from opentelemetry import trace

# Context variables for correlation tracking
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
actor_id_var: ContextVar[str | None] = ContextVar("actor_id", default=None)

_STANDARD_FIELDS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
        "correlation_id",
        "actor_id",
        "trace_id",
        "span_id",
    }
)


@dataclass
class SensitiveDataConfig:
    """Configuration for sensitive data masking."""

    key_patterns: list[str] = field(
        default_factory=lambda: [
            r"password",
            r"passwd",
            r"secret",
            r"token",
            r"api[_-]?key",
            r"authorization",
            r"dsn",
        ]
    )

    mask_replacement: str = "***MASKED***"


class SensitiveDataFilter(logging.Filter):
    """Masks ``key=value`` / ``key: value`` pairs and sensitive extra fields."""

    def __init__(self, config: SensitiveDataConfig | None = None) -> None:
        super().__init__()
        self.config = config or SensitiveDataConfig()
        self._key_regexes = [
            re.compile(pattern, re.IGNORECASE) for pattern in self.config.key_patterns
        ]
        self._pair_regexes = [
            re.compile(rf'("?\w*{pattern}\w*"?\s*[:=]\s*)("[^"]*"|\'[^\']*\'|\S+)', re.IGNORECASE)
            for pattern in self.config.key_patterns
        ]

    def mask_message(self, message: str) -> str:
        for regex in self._pair_regexes:
            message = regex.sub(lambda m: f"{m.group(1)}{self.config.mask_replacement}", message)
        return message

    def is_sensitive_key(self, key: str) -> bool:
        return any(regex.search(key) for regex in self._key_regexes)

    def mask_mapping(self, data: dict[str, Any]) -> dict[str, Any]:
        masked: dict[str, Any] = {}
        for key, value in data.items():
            if self.is_sensitive_key(key):
                masked[key] = self.config.mask_replacement
            elif isinstance(value, dict):
                masked[key] = self.mask_mapping(value)
            elif isinstance(value, str):
                masked[key] = self.mask_message(value)
            else:
                masked[key] = value
        return masked

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = self.mask_message(message)
        if masked != message:
            record.msg = masked
            record.args = None
        for key in list(record.__dict__):
            if key in _STANDARD_FIELDS or key.startswith("_"):
                continue
            if self.is_sensitive_key(key):
                setattr(record, key, self.config.mask_replacement)
        return True


class ContextFilter(logging.Filter):
    """Attaches correlation id, actor and trace context to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get()
        record.actor_id = actor_id_var.get()

        span = trace.get_current_span()
        if span.is_recording():
            span_context = span.get_span_context()
            trace_id, span_id = span_context.trace_id, span_context.span_id
            record.trace_id = format(trace_id, "032x") if trace_id else None
            record.span_id = format(span_id, "016x") if span_id else None
        else:
            record.trace_id = None
            record.span_id = None
        return True


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logs."""

    def __init__(self, include_extra: bool = True, sort_keys: bool = True) -> None:
        super().__init__()
        self.include_extra = include_extra
        self.sort_keys = sort_keys

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for name in ("correlation_id", "actor_id", "trace_id", "span_id"):
            value = getattr(record, name, None)
            if value:
                log_entry[name] = value

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        if self.include_extra:
            extra = {
                key: value
                for key, value in record.__dict__.items()
                if key not in _STANDARD_FIELDS and not key.startswith("_")
            }
            if extra:
                log_entry["extra"] = extra

        return json.dumps(log_entry, sort_keys=self.sort_keys, default=self._serialize_value)

    @staticmethod
    def _serialize_value(value: Any) -> Any:
        """Serialize complex values for JSON output."""
        if isinstance(value, Decimal):
            return float(value)
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if isinstance(value, (set, frozenset)):
            return list(value)
        return str(value)


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return str(uuid.uuid4())


def get_correlation_id() -> str | None:
    return correlation_id_var.get()


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Generator[str, None, None]:
    """Context manager for correlation ID scope."""
    if correlation_id is None:
        correlation_id = generate_correlation_id()

    token = correlation_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        correlation_id_var.reset(token)


@contextmanager
def actor_context(actor_id: str | None) -> Generator[None, None, None]:
    """Context manager attributing log records to ``actor_id``."""
    token = actor_id_var.set(actor_id)
    try:
        yield
    finally:
        actor_id_var.reset(token)


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: str | None = None,
    sensitive_data_config: SensitiveDataConfig | None = None,
) -> None:
    """
    Configure root logging for the engine.

    Args:
        level: Logging level name
        json_format: Emit JSON lines instead of plain text
        log_file: Optional log file path
        sensitive_data_config: Masking configuration
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter: logging.Formatter
    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] %(message)s"
        )

    filters: list[logging.Filter] = [ContextFilter(), SensitiveDataFilter(sensitive_data_config)]

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    for handler in handlers:
        handler.setFormatter(formatter)
        for log_filter in filters:
            handler.addFilter(log_filter)
        root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logging.getLogger("psycopg").setLevel(logging.WARNING)
    logging.getLogger("psycopg.pool").setLevel(logging.WARNING)

    root_logger.info(f"Logging configured: level={level.upper()} json={json_format}")
