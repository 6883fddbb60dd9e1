"""Logging configuration and context propagation."""

from .logging import (
    ContextFilter,
    SensitiveDataConfig,
    SensitiveDataFilter,
    StructuredFormatter,
    actor_context,
    correlation_context,
    get_correlation_id,
    setup_logging,
)

__all__ = [
    "ContextFilter",
    "SensitiveDataConfig",
    "SensitiveDataFilter",
    "StructuredFormatter",
    "actor_context",
    "correlation_context",
    "get_correlation_id",
    "setup_logging",
]
