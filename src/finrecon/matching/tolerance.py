"""
Tolerance model: amount and date closeness with a normalized confidence.

Confidence starts at 1.0 and loses two linear penalties:

    date_weight   * days / max_days_difference
    amount_weight * relative_difference / tolerance_percentage

Both penalties are zero for a same-day, exact-amount pair and positive
otherwise, so only such a pair scores 1.0, and a strictly closer date or
amount never lowers the score.
"""

from decimal import Decimal
from typing import Optional

from ..config import ToleranceProfile
from ..models.match import MatchScore
from ..models.transaction import Transaction

ZERO = Decimal("0")


def days_between(a: Transaction, b: Transaction) -> int:
    return abs((b.date - a.date).days)


def relative_difference(first: Decimal, second: Decimal) -> Optional[float]:
    """
    Relative difference of two magnitudes against their average.

    Returns:
        ``| |first| - |second| | / avg(|first|, |second|)``, or None when
        both magnitudes are zero (such a pair is not matchable)
    """
    first, second = abs(first), abs(second)
    average = (first + second) / 2
    if average == ZERO:
        return None
    return float(abs(first - second) / average)


def confidence_for(
    date_difference_days: int, relative: float, profile: ToleranceProfile
) -> float:
    """Confidence in [0, 1] for a pair already known to be within tolerance."""
    date_penalty = 0.0
    if profile.max_days_difference > 0:
        date_penalty = profile.date_weight * (
            date_difference_days / profile.max_days_difference
        )

    amount_penalty = 0.0
    if profile.tolerance_percentage > 0:
        amount_penalty = profile.amount_weight * (relative / profile.tolerance_percentage)

    return max(0.0, min(1.0, 1.0 - date_penalty - amount_penalty))


def score(
    a: Transaction,
    b: Transaction,
    profile: ToleranceProfile,
    comparable_amounts: Optional[tuple[Decimal, Decimal]] = None,
) -> Optional[MatchScore]:
    """
    Score how closely two transactions agree.

    Args:
        a: First transaction
        b: Second transaction
        profile: Tolerance profile of the flavor being matched
        comparable_amounts: Magnitudes to compare instead of the raw amounts,
            used when the caller has converted one side to a common currency

    Returns:
        MatchScore, or None when the dates or amounts fall outside tolerance
    """
    date_diff = days_between(a, b)
    if date_diff > profile.max_days_difference:
        return None

    if comparable_amounts is None:
        first, second = a.abs_amount, b.abs_amount
    else:
        first, second = abs(comparable_amounts[0]), abs(comparable_amounts[1])

    relative = relative_difference(first, second)
    if relative is None or relative > profile.tolerance_percentage:
        return None

    return MatchScore(
        confidence=confidence_for(date_diff, relative, profile),
        date_difference_days=date_diff,
        amount_difference=abs(first - second),
        relative_difference=relative,
    )
