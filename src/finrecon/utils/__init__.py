"""Utility modules."""

from .exceptions import (
    ReconciliationError,
    ConfigurationError,
    ConversionUnavailable,
    PersistenceFailure,
    InvariantViolation,
    ValidationError,
    ReportGenerationError,
)
from .logging_config import setup_logging

__all__ = [
    "ReconciliationError",
    "ConfigurationError",
    "ConversionUnavailable",
    "PersistenceFailure",
    "InvariantViolation",
    "ValidationError",
    "ReportGenerationError",
    "setup_logging",
]
