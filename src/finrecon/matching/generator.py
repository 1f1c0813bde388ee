"""
Candidate generation: enumerate admissible transaction pairs for a flavor.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional
import logging

from ..config import ToleranceProfile
from ..models.match import MatchCandidate
from ..models.transaction import MatchFlavor, Transaction
from ..store import CurrencyConverter
from ..utils.exceptions import ConversionUnavailable
from . import tolerance
from .strategies import FlavorStrategy, strategy_for

logger = logging.getLogger(__name__)


@dataclass
class CandidateBatch:
    """Candidates produced by one generation run."""

    candidates: list[MatchCandidate] = field(default_factory=list)

    # Cross-currency pairs dropped because no rate was available
    conversion_failures: int = 0


class CandidateGenerator:
    """
    Scans transactions ordered by date and scores every eligible pair.

    The scan is quadratic with date pruning: the inner loop stops as soon as
    the date gap exceeds the profile's window. Each unordered pair is visited
    once, with the earlier transaction (by date, then id) as the source.
    """

    def __init__(self, converter: Optional[CurrencyConverter] = None):
        """
        Initialize the generator.

        Args:
            converter: Currency converter for cross-currency pairs; without
                one, such pairs are dropped
        """
        self.converter = converter

    def generate(
        self,
        transactions: list[Transaction],
        flavor: MatchFlavor,
        profile: ToleranceProfile,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[MatchCandidate]:
        """Produce the scored candidate pairs for a flavor, unsorted."""
        return self.generate_batch(transactions, flavor, profile, date_from, date_to).candidates

    def generate_batch(
        self,
        transactions: list[Transaction],
        flavor: MatchFlavor,
        profile: ToleranceProfile,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> CandidateBatch:
        """
        Produce the scored candidate pairs for a flavor with run statistics.

        Args:
            transactions: Snapshot of transactions
            flavor: Reconciliation flavor
            profile: Tolerance profile in effect
            date_from: Ignore transactions dated before this day
            date_to: Ignore transactions dated after this day

        Returns:
            Batch with one unsorted candidate per admissible pair
        """
        strategy = strategy_for(flavor, profile)

        pool = sorted(
            (
                txn
                for txn in transactions
                if strategy.is_candidate(txn) and _in_range(txn.date, date_from, date_to)
            ),
            key=lambda t: (t.date, t.id),
        )

        batch = CandidateBatch()
        for i, source in enumerate(pool):
            for j in range(i + 1, len(pool)):
                target = pool[j]
                if (target.date - source.date).days > profile.max_days_difference:
                    break
                if not strategy.accepts(source, target):
                    continue

                try:
                    candidate = self.score_pair(strategy, source, target, profile)
                except ConversionUnavailable as e:
                    batch.conversion_failures += 1
                    logger.debug(f"Skipping pair {source.id}/{target.id}: {e}")
                    continue
                if candidate is not None:
                    batch.candidates.append(candidate)

        logger.debug(
            f"{flavor.label} generation: {len(pool)} eligible transactions, "
            f"{len(batch.candidates)} candidates, {batch.conversion_failures} pairs "
            f"dropped for missing conversion"
        )
        return batch

    def score_pair(
        self,
        strategy: FlavorStrategy,
        source: Transaction,
        target: Transaction,
        profile: ToleranceProfile,
    ) -> Optional[MatchCandidate]:
        """
        Score one pair, converting the target into the source's currency.

        Returns:
            The candidate, or None when the pair falls outside tolerance

        Raises:
            ConversionUnavailable: If the currencies differ and no rate is known
        """
        comparable: Optional[tuple[Decimal, Decimal]] = None
        conversion_note = ""

        if source.currency.upper() != target.currency.upper():
            converted, rate = self._convert(target, source.currency)
            comparable = (source.abs_amount, converted)
            conversion_note = (
                f" (converted {target.currency} to {source.currency} at rate {rate})"
            )

        score = tolerance.score(source, target, profile, comparable)
        if score is None:
            return None

        return MatchCandidate(
            source_id=source.id,
            target_id=target.id,
            flavor=strategy.flavor,
            confidence=score.confidence,
            date_difference_days=score.date_difference_days,
            amount_difference=score.amount_difference,
            reasoning=strategy.describe(source, target, score) + conversion_note,
            relative_difference=score.relative_difference,
            converted=comparable is not None,
        )

    def _convert(self, txn: Transaction, to_currency: str) -> tuple[Decimal, Decimal]:
        """
        Convert a transaction's magnitude into another currency.

        Raises:
            ConversionUnavailable: If no converter is configured or it has no rate
        """
        if self.converter is None:
            raise ConversionUnavailable(
                f"No currency converter for {txn.currency} -> {to_currency}"
            )
        result = self.converter.convert_amount(txn.abs_amount, txn.currency, to_currency)
        if result is None:
            raise ConversionUnavailable(
                f"No conversion rate for {txn.currency} -> {to_currency}"
            )
        return abs(result.converted_amount), result.rate


def _in_range(day: date, date_from: Optional[date], date_to: Optional[date]) -> bool:
    if date_from and day < date_from:
        return False
    if date_to and day > date_to:
        return False
    return True
