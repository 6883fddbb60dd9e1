"""Payload validation."""

from .data_validator import DataValidator, ValidationResult

__all__ = ["DataValidator", "ValidationResult"]
