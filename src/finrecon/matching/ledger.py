"""Match ledger: persisted matches and their lifecycle."""

from datetime import datetime
from typing import Iterable, Optional
import logging

from ..models.match import Match, MatchStatus
from ..models.transaction import MatchFlavor
from ..utils.exceptions import InvariantViolation

logger = logging.getLogger(__name__)


class MatchLedger:
    """
    Registry of every match ever applied.

    Matches move from ``applied`` to ``unmatched`` and are never removed.
    At most one applied match per flavor may reference a transaction.
    """

    def __init__(self, matches: Optional[Iterable[Match]] = None):
        self._matches: dict[str, Match] = {}
        for match in matches or []:
            self._matches[match.id] = match

    def __len__(self) -> int:
        return len(self._matches)

    def __contains__(self, match_id: object) -> bool:
        return match_id in self._matches

    def get(self, match_id: str) -> Optional[Match]:
        return self._matches.get(match_id)

    def all(self) -> list[Match]:
        return list(self._matches.values())

    def active(self, flavor: Optional[MatchFlavor] = None) -> list[Match]:
        """Applied matches, optionally restricted to one flavor."""
        return [
            m
            for m in self._matches.values()
            if m.is_active and (flavor is None or m.flavor == flavor)
        ]

    def active_for(self, flavor: MatchFlavor, transaction_id: str) -> Optional[Match]:
        """The applied match of ``flavor`` involving a transaction, if any."""
        for match in self.active(flavor):
            if match.involves(transaction_id):
                return match
        return None

    def find_active_pair(
        self, flavor: MatchFlavor, first_id: str, second_id: str
    ) -> Optional[Match]:
        """The applied match pairing exactly these two transactions, if any."""
        pair = {first_id, second_id}
        for match in self.active(flavor):
            if {match.source_id, match.target_id} == pair:
                return match
        return None

    def record(self, match: Match) -> Match:
        """
        Add an applied match.

        Raises:
            InvariantViolation: If either transaction already has an applied
                match of the same flavor
        """
        for txn_id in (match.source_id, match.target_id):
            existing = self.active_for(match.flavor, txn_id)
            if existing is not None:
                raise InvariantViolation(
                    f"Transaction {txn_id} already in {match.flavor.value} match {existing.id}"
                )
        self._matches[match.id] = match
        logger.debug(
            f"Recorded {match.flavor.value} match {match.id}: "
            f"{match.source_id} <-> {match.target_id}"
        )
        return match

    def mark_unmatched(self, match_id: str) -> Optional[Match]:
        """
        Flip a match to ``unmatched``.

        Returns:
            The updated match, or None if it is unknown or already unmatched
        """
        match = self._matches.get(match_id)
        if match is None or not match.is_active:
            return None
        match.status = MatchStatus.UNMATCHED
        match.unmatched_at = datetime.now()
        return match
