"""
Conflict resolution: pick a disjoint, confidence-maximizing set of candidates.
"""

from typing import Iterable, Optional
import logging

from ..models.match import MatchCandidate

logger = logging.getLogger(__name__)


def ranking_key(candidate: MatchCandidate) -> tuple[float, int, str, str]:
    """Total order: confidence desc, date gap asc, then source and target id."""
    return (
        -candidate.confidence,
        candidate.date_difference_days,
        candidate.source_id,
        candidate.target_id,
    )


class Assigner:
    """
    Greedy maximum-weight matching.

    Candidates are visited in ranking order and accepted only if neither
    transaction has been consumed by an earlier acceptance, so every
    transaction appears in at most one accepted candidate.
    """

    def resolve(
        self,
        candidates: list[MatchCandidate],
        consumed: Optional[Iterable[str]] = None,
    ) -> list[MatchCandidate]:
        """
        Resolve overlapping candidates.

        Args:
            candidates: Scored candidates, in any order
            consumed: Transaction ids that are already taken

        Returns:
            Accepted candidates in ranking order
        """
        taken: set[str] = set(consumed or ())
        accepted: list[MatchCandidate] = []
        dropped = 0

        for candidate in sorted(candidates, key=ranking_key):
            if candidate.source_id in taken or candidate.target_id in taken:
                dropped += 1
                continue
            accepted.append(candidate)
            taken.add(candidate.source_id)
            taken.add(candidate.target_id)

        if dropped:
            logger.debug(
                f"Assigner accepted {len(accepted)} candidates, dropped {dropped} conflicting"
            )
        return accepted
