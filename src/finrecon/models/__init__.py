"""Data models for reconciliation."""

from .transaction import (
    Transaction,
    TransactionType,
    MatchFlavor,
    ReconciliationState,
    ReconciliationAnnotation,
)
from .match import (
    MatchStatus,
    MatchScore,
    MatchCandidate,
    Match,
    MatchResult,
    PairFailure,
    ApplyReport,
    MatchSummary,
)

__all__ = [
    "Transaction",
    "TransactionType",
    "MatchFlavor",
    "ReconciliationState",
    "ReconciliationAnnotation",
    "MatchStatus",
    "MatchScore",
    "MatchCandidate",
    "Match",
    "MatchResult",
    "PairFailure",
    "ApplyReport",
    "MatchSummary",
]
