"""Custom exceptions for the reconciliation engine."""

from typing import Optional


class ReconciliationError(Exception):
    """Base exception for reconciliation errors."""

    pass


class ConfigurationError(ReconciliationError):
    """Invalid tolerance profile or configuration file."""

    pass


class ConversionUnavailable(ReconciliationError):
    """A cross-currency amount could not be converted for comparison."""

    pass


class PersistenceFailure(ReconciliationError):
    """The transaction store rejected an update."""

    def __init__(self, message: str, transaction_id: Optional[str] = None):
        super().__init__(message)
        self.transaction_id = transaction_id


class InvariantViolation(ReconciliationError):
    """A transaction would take part in two active matches of one flavor."""

    pass


class ValidationError(ReconciliationError):
    """Data validation error."""

    pass


class ReportGenerationError(ReconciliationError):
    """Error generating Excel report."""

    pass
