"""Data models for transactions and their reconciliation annotations."""

from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional


class TransactionType(Enum):
    """Classification of a transaction as recorded by the store."""

    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class MatchFlavor(Enum):
    """Reconciliation variant sharing the core matching algorithm."""

    REIMBURSEMENT = "reimbursement"
    TRANSFER = "transfer"
    DUPLICATE = "duplicate"

    @property
    def label(self) -> str:
        """Human-readable name used in notes and reports."""
        return self.value.capitalize()


class ReconciliationState(Enum):
    """Per-flavor reconciliation state of a transaction."""

    UNMATCHED = "unmatched"
    MATCHED = "matched"


@dataclass(frozen=True)
class ReconciliationAnnotation:
    """Match-state fields attached to a transaction for a single flavor."""

    matched_with: str
    match_id: str
    confidence: float = 0.0
    state: ReconciliationState = ReconciliationState.MATCHED


@dataclass
class Transaction:
    """
    A financial transaction as seen by the reconciliation engine.

    The engine never alters ``amount``, ``date`` or ``category``; it only
    adds or removes entries in ``reconciliation``, one per flavor. A flavor
    without an entry is unmatched for that flavor.
    """

    # Opaque identifier owned by the store
    id: str

    # Calendar date, no time-of-day semantics
    date: date

    # Signed amount: inflow positive, outflow negative
    amount: Decimal

    # Owning account identifier
    account: str

    description: str = ""
    category: str = ""
    type: TransactionType = TransactionType.EXPENSE

    # Currency the amount is stored in
    currency: str = "USD"

    # Set when the purchase currency differs from the account default
    original_currency: Optional[str] = None
    exchange_rate: Optional[float] = None
    notes: str = ""

    reconciliation: dict[MatchFlavor, ReconciliationAnnotation] = field(
        default_factory=dict
    )

    @property
    def abs_amount(self) -> Decimal:
        """Magnitude of the transaction amount."""
        return abs(self.amount)

    @property
    def is_outflow(self) -> bool:
        return self.amount < 0

    @property
    def is_inflow(self) -> bool:
        return self.amount > 0

    def state(self, flavor: MatchFlavor) -> ReconciliationState:
        """Reconciliation state for a flavor."""
        annotation = self.reconciliation.get(flavor)
        if annotation is None:
            return ReconciliationState.UNMATCHED
        return annotation.state

    def is_matched(self, flavor: MatchFlavor) -> bool:
        return self.state(flavor) == ReconciliationState.MATCHED

    def annotation(self, flavor: MatchFlavor) -> Optional[ReconciliationAnnotation]:
        return self.reconciliation.get(flavor)

    def with_annotation(
        self, flavor: MatchFlavor, annotation: ReconciliationAnnotation
    ) -> "Transaction":
        """Return a copy carrying ``annotation`` for ``flavor``."""
        reconciliation = dict(self.reconciliation)
        reconciliation[flavor] = annotation
        return replace(self, reconciliation=reconciliation)

    def without_annotation(self, flavor: MatchFlavor) -> "Transaction":
        """Return a copy with the ``flavor`` annotation cleared."""
        reconciliation = {
            key: value for key, value in self.reconciliation.items() if key != flavor
        }
        return replace(self, reconciliation=reconciliation)
