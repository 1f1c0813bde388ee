"""
Flavor strategies for transaction reconciliation.
Each strategy supplies the eligibility predicate and reasoning text for one
flavor; the generator, assigner and service are shared.
"""

from abc import ABC, abstractmethod
from typing import Optional
import re

from ..config import ToleranceProfile
from ..models.match import MatchScore
from ..models.transaction import MatchFlavor, Transaction, TransactionType


class FlavorStrategy(ABC):
    """Abstract base class for reconciliation flavors."""

    flavor: MatchFlavor

    def __init__(self, profile: ToleranceProfile):
        """
        Initialize with the flavor's tolerance profile.

        Args:
            profile: Tolerance profile in effect for this run
        """
        self.profile = profile

    def is_relevant(self, txn: Transaction) -> bool:
        """Whether the flavor applies to a transaction at all, matched or not."""
        return txn.amount != 0

    def is_candidate(self, txn: Transaction) -> bool:
        """
        Single-transaction prefilter applied before pairing.

        Args:
            txn: Transaction to check

        Returns:
            True if the transaction may take part in a new pair of this flavor
        """
        return self.is_relevant(txn) and not txn.is_matched(self.flavor)

    @abstractmethod
    def is_eligible_pair(self, a: Transaction, b: Transaction) -> bool:
        """
        Directional eligibility predicate.

        Args:
            a: First member of the pair
            b: Second member of the pair

        Returns:
            True if (a, b) may be paired in this orientation
        """
        pass

    def accepts(self, a: Transaction, b: Transaction) -> bool:
        """Eligibility in either orientation."""
        if a.id == b.id:
            return False
        return self.is_eligible_pair(a, b) or self.is_eligible_pair(b, a)

    @abstractmethod
    def describe(
        self,
        source: Transaction,
        target: Transaction,
        score: MatchScore,
    ) -> str:
        """
        Human-readable explanation for a candidate.

        Args:
            source: Earlier transaction of the pair
            target: Later transaction of the pair
            score: Tolerance score of the pair

        Returns:
            Reasoning string shown to the user
        """
        pass


class ReimbursementStrategy(FlavorStrategy):
    """
    Expense paired with the inflow that paid it back.
    Accounts may be the same or different.
    """

    flavor = MatchFlavor.REIMBURSEMENT

    def is_eligible_pair(self, a: Transaction, b: Transaction) -> bool:
        if not (a.is_outflow and b.is_inflow):
            return False
        if a.is_matched(self.flavor) or b.is_matched(self.flavor):
            return False
        return self._mentions_keyword(b.description)

    def _mentions_keyword(self, description: str) -> bool:
        keywords = self.profile.description_keywords
        if not keywords:
            return True
        lowered = description.lower()
        return any(keyword.lower() in lowered for keyword in keywords)

    def describe(
        self,
        source: Transaction,
        target: Transaction,
        score: MatchScore,
    ) -> str:
        expense, reimbursement = (source, target) if source.is_outflow else (target, source)
        if score.amount_difference == 0:
            amount_text = "exact amount match"
        else:
            amount_text = f"amount within {score.relative_difference:.1%} tolerance"
        return (
            f"Expense {expense.id} reimbursed by {reimbursement.id}: "
            f"{amount_text}, {score.date_difference_days} day(s) apart"
        )


class TransferStrategy(FlavorStrategy):
    """
    Outflow from one account paired with the inflow to another.
    Both sides must be recorded as transfers.
    """

    flavor = MatchFlavor.TRANSFER

    def is_relevant(self, txn: Transaction) -> bool:
        return txn.type == TransactionType.TRANSFER and super().is_relevant(txn)

    def is_eligible_pair(self, a: Transaction, b: Transaction) -> bool:
        if a.type != TransactionType.TRANSFER or b.type != TransactionType.TRANSFER:
            return False
        if a.account == b.account:
            return False
        # Opposite signs, neither zero
        if not ((a.is_outflow and b.is_inflow) or (b.is_outflow and a.is_inflow)):
            return False
        return not (a.is_matched(self.flavor) or b.is_matched(self.flavor))

    def describe(
        self,
        source: Transaction,
        target: Transaction,
        score: MatchScore,
    ) -> str:
        outflow, inflow = (source, target) if source.is_outflow else (target, source)
        return (
            f"Transfer match: {outflow.account} -> {inflow.account}, "
            f"{score.date_difference_days} day(s) apart, "
            f"{score.relative_difference:.2%} amount difference"
        )


class DuplicateStrategy(FlavorStrategy):
    """
    Two postings of the same real-world event in one account.
    Descriptions must agree ignoring case and surrounding whitespace.
    """

    flavor = MatchFlavor.DUPLICATE

    def is_eligible_pair(self, a: Transaction, b: Transaction) -> bool:
        if a.account != b.account:
            return False
        if a.is_inflow != b.is_inflow:
            return False
        if a.is_matched(self.flavor) or b.is_matched(self.flavor):
            return False
        return normalize_description(a.description) == normalize_description(b.description)

    def describe(
        self,
        source: Transaction,
        target: Transaction,
        score: MatchScore,
    ) -> str:
        exactness = "identical amount" if score.amount_difference == 0 else (
            f"amounts differ by {score.amount_difference}"
        )
        return (
            f"Possible duplicate in {source.account}: \"{source.description.strip()}\", "
            f"{exactness}, {score.date_difference_days} day(s) apart"
        )


def normalize_description(description: str) -> str:
    """Case-fold and collapse whitespace for description comparison."""
    return re.sub(r"\s+", " ", description.strip()).casefold()


_STRATEGIES: dict[MatchFlavor, type[FlavorStrategy]] = {
    MatchFlavor.REIMBURSEMENT: ReimbursementStrategy,
    MatchFlavor.TRANSFER: TransferStrategy,
    MatchFlavor.DUPLICATE: DuplicateStrategy,
}


def strategy_for(
    flavor: MatchFlavor, profile: Optional[ToleranceProfile] = None
) -> FlavorStrategy:
    """
    Build the strategy for a flavor.

    Args:
        flavor: Reconciliation flavor
        profile: Tolerance profile; the model defaults are used when omitted

    Returns:
        Strategy instance bound to the profile
    """
    return _STRATEGIES[flavor](profile or ToleranceProfile())
