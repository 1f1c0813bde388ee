"""Data models for match candidates, persisted matches and apply outcomes."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
import uuid

from .transaction import MatchFlavor, Transaction


class MatchStatus(Enum):
    """Lifecycle status of a persisted match."""

    APPLIED = "applied"
    UNMATCHED = "unmatched"


@dataclass(frozen=True)
class MatchScore:
    """Closeness of two transactions under a tolerance profile."""

    confidence: float
    date_difference_days: int
    amount_difference: Decimal
    relative_difference: float


@dataclass(frozen=True)
class MatchCandidate:
    """An unconfirmed, scored pairing. Source is the earlier transaction."""

    source_id: str
    target_id: str
    flavor: MatchFlavor
    confidence: float  # 0.0 to 1.0
    date_difference_days: int
    amount_difference: Decimal
    reasoning: str
    relative_difference: float = 0.0
    converted: bool = False

    @property
    def pair(self) -> frozenset[str]:
        return frozenset((self.source_id, self.target_id))

    @property
    def is_exact(self) -> bool:
        """Same-day, same-amount pairing."""
        return self.date_difference_days == 0 and self.amount_difference == Decimal("0")


def _new_match_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Match:
    """A confirmed pairing. Retired by flipping status, never deleted."""

    flavor: MatchFlavor
    source_id: str
    target_id: str
    confidence: float
    reasoning: str = ""
    manual: bool = False
    status: MatchStatus = MatchStatus.APPLIED
    id: str = field(default_factory=_new_match_id)
    created_at: datetime = field(default_factory=datetime.now)
    unmatched_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == MatchStatus.APPLIED

    def involves(self, transaction_id: str) -> bool:
        return transaction_id in (self.source_id, self.target_id)

    def counterpart(self, transaction_id: str) -> str:
        """Id of the other member of the pair."""
        return self.target_id if transaction_id == self.source_id else self.source_id


@dataclass
class MatchResult:
    """A ranked candidate with both transactions resolved, for review."""

    candidate: MatchCandidate
    source_transaction: Transaction
    target_transaction: Transaction

    @property
    def confidence(self) -> float:
        return self.candidate.confidence


@dataclass
class PairFailure:
    """A candidate that could not be applied and why."""

    candidate: MatchCandidate
    error: Exception

    @property
    def reason(self) -> str:
        return str(self.error)


@dataclass
class ApplyReport:
    """Outcome of applying a batch of independent pairs."""

    # Updated snapshot after every successful pair
    transactions: list[Transaction]

    applied: list[Match] = field(default_factory=list)
    already_applied: list[MatchCandidate] = field(default_factory=list)
    failed: list[PairFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failed


@dataclass
class MatchSummary:
    """Summary of a matching run for one flavor."""

    flavor: MatchFlavor
    total_transactions: int
    eligible_transactions: int
    candidate_count: int
    unmatched_count: int
    matched_count: int
    conversion_failures: int = 0
    average_confidence: float = 0.0
    exact_count: int = 0
    generated_at: datetime = field(default_factory=datetime.now)

    @property
    def match_rate(self) -> float:
        """Percentage of eligible transactions already reconciled."""
        if self.eligible_transactions == 0:
            return 0.0
        return (self.matched_count / self.eligible_transactions) * 100
