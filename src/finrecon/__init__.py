"""Transaction reconciliation engine: reimbursements, transfers and duplicates."""

__version__ = "0.1.0"
