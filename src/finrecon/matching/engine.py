"""
Reconciliation service: find, apply and reverse transaction pairings.

One engine serves every flavor; the flavor only selects the eligibility
strategy and the tolerance profile.
"""

from collections import defaultdict
from datetime import date, datetime
from typing import Optional, Union
import logging

from ..config import ReconConfig, ToleranceProfile
from ..models.match import (
    ApplyReport,
    Match,
    MatchCandidate,
    MatchResult,
    MatchSummary,
    PairFailure,
)
from ..models.transaction import (
    MatchFlavor,
    ReconciliationAnnotation,
    Transaction,
)
from ..store import CurrencyConverter, TransactionStore
from ..utils.exceptions import (
    ConversionUnavailable,
    InvariantViolation,
    PersistenceFailure,
    ReconciliationError,
    ValidationError,
)
from .assigner import Assigner, ranking_key
from .generator import CandidateGenerator
from .ledger import MatchLedger
from .strategies import strategy_for

logger = logging.getLogger(__name__)


class ReconciliationService:
    """
    Orchestrates candidate generation, assignment and match application.

    The service works on explicit transaction snapshots: every mutating
    operation takes a list and returns a new one, and persists annotation
    changes through the configured store. Callers serialize calls against
    the same snapshot.
    """

    def __init__(
        self,
        config: Optional[ReconConfig] = None,
        store: Optional[TransactionStore] = None,
        converter: Optional[CurrencyConverter] = None,
        ledger: Optional[MatchLedger] = None,
    ):
        """
        Initialize the reconciliation service.

        Args:
            config: Application configuration, defaults when omitted
            store: Transaction store used to persist annotations; without
                one, operations only transform the snapshot
            converter: Currency converter for cross-currency pairs
            ledger: Match ledger, a fresh one when omitted
        """
        self.config = config or ReconConfig()
        self.store = store
        self.ledger = ledger if ledger is not None else MatchLedger()
        self.generator = CandidateGenerator(converter)
        self.assigner = Assigner()

        # Pairs dropped for missing conversion in the latest find_matches run, per flavor
        self.conversion_failures: dict[MatchFlavor, int] = {}

    def profile_for(
        self, flavor: MatchFlavor, profile: Optional[ToleranceProfile] = None
    ) -> ToleranceProfile:
        """
        Resolve and validate the tolerance profile for a run.

        Raises:
            ConfigurationError: If the profile is out of range
        """
        return (profile or self.config.profile(flavor)).validate_ranges()

    def find_matches(
        self,
        flavor: MatchFlavor,
        transactions: list[Transaction],
        profile: Optional[ToleranceProfile] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[MatchResult]:
        """
        Find a conflict-free, ranked set of pairings. Does not mutate anything.

        Args:
            flavor: Reconciliation flavor
            transactions: Snapshot of transactions
            profile: Tolerance profile overriding the configured one
            date_from: Ignore transactions dated before this day
            date_to: Ignore transactions dated after this day

        Returns:
            Results ranked by confidence, then date gap, then ids

        Raises:
            ConfigurationError: If the profile is out of range
        """
        profile = self.profile_for(flavor, profile)
        start_time = datetime.now()

        batch = self.generator.generate_batch(
            transactions, flavor, profile, date_from=date_from, date_to=date_to
        )
        self.conversion_failures[flavor] = batch.conversion_failures
        candidates = [c for c in batch.candidates if c.confidence >= profile.min_confidence]
        accepted = self.assigner.resolve(candidates)

        by_id = {txn.id: txn for txn in transactions}
        results = [
            MatchResult(
                candidate=c,
                source_transaction=by_id[c.source_id],
                target_transaction=by_id[c.target_id],
            )
            for c in accepted
        ]

        elapsed = (datetime.now() - start_time).total_seconds()
        logger.info(
            f"{flavor.label} matching complete in {elapsed:.2f}s: "
            f"{len(candidates)} candidates, {len(results)} matches"
        )
        return results

    def find_manual_candidates(
        self,
        flavor: MatchFlavor,
        transactions: list[Transaction],
        transaction_id: Optional[str] = None,
        profile: Optional[ToleranceProfile] = None,
    ) -> list[MatchResult]:
        """
        List every plausible counterpart for a user to choose from.

        Uses the relaxed ``manual_search`` profile and skips conflict
        resolution, so one transaction may appear in several results.

        Args:
            flavor: Reconciliation flavor
            transactions: Snapshot of transactions
            transaction_id: Only return pairs involving this transaction
            profile: Tolerance profile overriding the manual search profile

        Returns:
            All candidate pairs in ranking order

        Raises:
            ConfigurationError: If the profile is out of range
            ValidationError: If ``transaction_id`` is not in the snapshot
        """
        profile = (profile or self.config.profiles.manual_search).validate_ranges()
        by_id = {txn.id: txn for txn in transactions}
        if transaction_id is not None and transaction_id not in by_id:
            raise ValidationError(f"Transaction not found: {transaction_id}")

        candidates = self.generator.generate(transactions, flavor, profile)
        if transaction_id is not None:
            candidates = [c for c in candidates if transaction_id in c.pair]
        candidates.sort(key=ranking_key)

        logger.info(
            f"Manual {flavor.value} search found {len(candidates)} candidates"
            + (f" for {transaction_id}" if transaction_id else "")
        )
        return [
            MatchResult(
                candidate=c,
                source_transaction=by_id[c.source_id],
                target_transaction=by_id[c.target_id],
            )
            for c in candidates
        ]

    def apply_matches(
        self,
        transactions: list[Transaction],
        matches: list[Union[MatchCandidate, MatchResult]],
        manual: bool = False,
    ) -> ApplyReport:
        """
        Apply accepted pairings, each pair independently.

        Re-applying a pair that is already applied is a no-op. A pair that
        would reuse a transaction is refused. A pair whose persistence fails
        is rolled back so neither side stays matched.

        Args:
            transactions: Snapshot of transactions
            matches: Candidates (or results wrapping them) to apply
            manual: Mark the created matches as user-made

        Returns:
            Report with the updated snapshot and per-pair outcomes
        """
        snapshot = list(transactions)
        index = {txn.id: i for i, txn in enumerate(snapshot)}
        report = ApplyReport(transactions=snapshot)
        used_in_batch: dict[MatchFlavor, set[str]] = defaultdict(set)

        for item in matches:
            candidate = item.candidate if isinstance(item, MatchResult) else item
            try:
                match = self._apply_pair(
                    snapshot, index, candidate, used_in_batch[candidate.flavor], manual
                )
            except InvariantViolation as e:
                logger.error(
                    f"Refusing {candidate.flavor.value} pair "
                    f"{candidate.source_id}/{candidate.target_id}: {e}"
                )
                report.failed.append(PairFailure(candidate, e))
                continue
            except ReconciliationError as e:
                logger.warning(
                    f"Could not apply {candidate.flavor.value} pair "
                    f"{candidate.source_id}/{candidate.target_id}: {e}"
                )
                report.failed.append(PairFailure(candidate, e))
                continue

            if match is None:
                report.already_applied.append(candidate)
            else:
                report.applied.append(match)

        logger.info(
            f"Applied {len(report.applied)} matches, {len(report.already_applied)} "
            f"already applied, {len(report.failed)} failed"
        )
        return report

    def _apply_pair(
        self,
        snapshot: list[Transaction],
        index: dict[str, int],
        candidate: MatchCandidate,
        used_in_batch: set[str],
        manual: bool,
    ) -> Optional[Match]:
        flavor = candidate.flavor
        if candidate.source_id == candidate.target_id:
            raise InvariantViolation(
                f"Transaction {candidate.source_id} cannot be paired with itself"
            )

        missing = [i for i in (candidate.source_id, candidate.target_id) if i not in index]
        if missing:
            raise ReconciliationError(f"Transaction not found: {', '.join(missing)}")

        source = snapshot[index[candidate.source_id]]
        target = snapshot[index[candidate.target_id]]

        existing = self.ledger.find_active_pair(flavor, source.id, target.id)
        if existing is not None:
            # The snapshot may predate the match; the ledger record wins
            for txn in (source, target):
                snapshot[index[txn.id]] = txn.with_annotation(
                    flavor, _ledger_annotation(existing, txn.id)
                )
            logger.debug(f"{flavor.label} pair {source.id}/{target.id} already applied")
            return None
        if _paired(source, target, flavor):
            logger.debug(f"{flavor.label} pair {source.id}/{target.id} already applied")
            return None

        for txn in (source, target):
            if txn.id in used_in_batch:
                raise InvariantViolation(
                    f"Transaction {txn.id} is used by another {flavor.value} pair in this batch"
                )
            annotation = txn.annotation(flavor)
            if annotation is not None:
                raise InvariantViolation(
                    f"Transaction {txn.id} is already in {flavor.value} match "
                    f"{annotation.match_id} with {annotation.matched_with}"
                )
            existing = self.ledger.active_for(flavor, txn.id)
            if existing is not None:
                raise InvariantViolation(
                    f"Transaction {txn.id} is already in {flavor.value} match {existing.id}"
                )

        match = Match(
            flavor=flavor,
            source_id=source.id,
            target_id=target.id,
            confidence=candidate.confidence,
            reasoning=candidate.reasoning,
            manual=manual,
        )
        new_source = source.with_annotation(flavor, _ledger_annotation(match, source.id))
        new_target = target.with_annotation(flavor, _ledger_annotation(match, target.id))

        self._persist_pair(
            (source, new_source),
            (target, new_target),
            note=f"{flavor.label} match applied: {candidate.reasoning}",
            rollback_note=f"{flavor.label} match rolled back",
        )

        self.ledger.record(match)
        snapshot[index[source.id]] = new_source
        snapshot[index[target.id]] = new_target
        used_in_batch.update((source.id, target.id))
        return match

    def unmatch(self, transactions: list[Transaction], match_id: str) -> list[Transaction]:
        """
        Reverse a match: clear both annotations and retire the match record.

        Unknown or already-unmatched ids leave the input untouched. For a
        match in the ledger, both members are cleared in the store even when
        the snapshot predates the match and carries no annotations.

        Args:
            transactions: Snapshot of transactions
            match_id: Id of the match to reverse

        Returns:
            Updated snapshot, or the input list itself when nothing changed

        Raises:
            ValidationError: If a member of a ledger match is not in the snapshot
            PersistenceFailure: If the store rejects the change; any side
                already written is restored first
        """
        match = self.ledger.get(match_id)
        if match is not None:
            if not match.is_active:
                logger.debug(f"Match {match_id} is already unmatched")
                return transactions
            flavor = match.flavor
            present = {txn.id for txn in transactions}
            missing = [i for i in (match.source_id, match.target_id) if i not in present]
            if missing:
                raise ValidationError(
                    f"Cannot unmatch {match_id}: transaction not in snapshot: {', '.join(missing)}"
                )
        else:
            flavor = _flavor_of_annotation(transactions, match_id)
            if flavor is None:
                logger.debug(f"Unknown match id {match_id}, nothing to unmatch")
                return transactions

        snapshot = list(transactions)
        changes: list[tuple[int, Transaction, Transaction]] = []
        for i, txn in enumerate(snapshot):
            annotation = txn.annotation(flavor)
            if match is None:
                if annotation is None or annotation.match_id != match_id:
                    continue
                before = txn
            else:
                # Members come from the ledger record, whatever the snapshot says
                if not match.involves(txn.id):
                    continue
                if annotation is not None and annotation.match_id != match_id:
                    logger.warning(
                        f"Transaction {txn.id} is annotated with {flavor.value} match "
                        f"{annotation.match_id}, not {match_id}; leaving it untouched"
                    )
                    continue
                before = txn.with_annotation(flavor, _ledger_annotation(match, txn.id))
            changes.append((i, before, txn.without_annotation(flavor)))

        note = f"{flavor.label} match removed"
        if len(changes) == 2:
            (_, first, cleared_first), (_, second, cleared_second) = changes
            self._persist_pair(
                (first, cleared_first),
                (second, cleared_second),
                note=note,
                rollback_note=f"{flavor.label} unmatch rolled back",
            )
        else:
            for _, _, cleared in changes:
                self._write(cleared, note)

        for i, _, cleared in changes:
            snapshot[i] = cleared

        self.ledger.mark_unmatched(match_id)
        logger.info(f"Unmatched {flavor.value} match {match_id}")
        return snapshot

    def _persist_pair(
        self,
        first: tuple[Transaction, Transaction],
        second: tuple[Transaction, Transaction],
        note: str,
        rollback_note: str,
    ) -> None:
        """Write both updated sides, restoring the first if the second fails."""
        if self.store is None:
            return

        first_before, first_after = first
        _, second_after = second

        self._write(first_after, note)
        try:
            self._write(second_after, note)
        except PersistenceFailure:
            try:
                self._write(first_before, rollback_note)
            except PersistenceFailure:
                logger.critical(
                    f"Rollback failed for transaction {first_before.id}; "
                    f"store annotations need manual repair"
                )
            raise

    def _write(self, txn: Transaction, note: str) -> None:
        if self.store is None:
            return
        try:
            self.store.update_transaction(
                txn.id, {"reconciliation": dict(txn.reconciliation)}, note
            )
        except PersistenceFailure:
            raise
        except Exception as e:
            raise PersistenceFailure(
                f"Store rejected update of {txn.id}: {e}", txn.id
            ) from e

    def auto_match(
        self,
        flavor: MatchFlavor,
        transactions: list[Transaction],
        profile: Optional[ToleranceProfile] = None,
    ) -> ApplyReport:
        """
        Find and apply high-confidence matches when the flavor allows it.

        Only results at or above the profile's ``auto_apply_threshold`` are
        applied; flavors without ``auto_apply`` return an empty report.
        """
        profile = self.profile_for(flavor, profile)
        if not profile.auto_apply:
            logger.debug(f"Auto-apply disabled for {flavor.value}")
            return ApplyReport(transactions=list(transactions))

        results = self.find_matches(flavor, transactions, profile)
        selected = [r for r in results if r.confidence >= profile.auto_apply_threshold]
        logger.info(
            f"Auto-matching {len(selected)} of {len(results)} {flavor.value} pairs "
            f"at >= {profile.auto_apply_threshold:.0%} confidence"
        )
        return self.apply_matches(transactions, selected)

    def manually_match(
        self,
        transactions: list[Transaction],
        flavor: MatchFlavor,
        source_id: str,
        target_id: str,
        profile: Optional[ToleranceProfile] = None,
    ) -> ApplyReport:
        """
        Pair two transactions chosen by the user.

        The pair must satisfy the flavor's eligibility rules but may fall
        outside tolerance, in which case it is applied with zero confidence.

        Raises:
            ValidationError: If a transaction is missing or the pair is not
                eligible for the flavor
        """
        profile = self.profile_for(flavor, profile)
        by_id = {txn.id: txn for txn in transactions}
        missing = [i for i in (source_id, target_id) if i not in by_id]
        if missing:
            raise ValidationError(f"Transaction not found: {', '.join(missing)}")

        source, target = sorted((by_id[source_id], by_id[target_id]), key=lambda t: (t.date, t.id))
        strategy = strategy_for(flavor, profile)

        if not _paired(source, target, flavor) and not strategy.accepts(source, target):
            raise ValidationError(
                f"Transactions {source.id} and {target.id} cannot form a {flavor.value} match"
            )

        try:
            candidate = self.generator.score_pair(strategy, source, target, profile)
        except ConversionUnavailable as e:
            logger.warning(f"Manual {flavor.value} pair {source.id}/{target.id} not scored: {e}")
            candidate = None
        if candidate is None:
            candidate = MatchCandidate(
                source_id=source.id,
                target_id=target.id,
                flavor=flavor,
                confidence=0.0,
                date_difference_days=abs((target.date - source.date).days),
                amount_difference=abs(source.abs_amount - target.abs_amount),
                reasoning=f"Manual {flavor.value} match outside tolerance",
            )
        else:
            candidate = MatchCandidate(
                source_id=candidate.source_id,
                target_id=candidate.target_id,
                flavor=flavor,
                confidence=candidate.confidence,
                date_difference_days=candidate.date_difference_days,
                amount_difference=candidate.amount_difference,
                reasoning=f"Manual match: {candidate.reasoning}",
                relative_difference=candidate.relative_difference,
                converted=candidate.converted,
            )

        return self.apply_matches(transactions, [candidate], manual=True)

    def get_unmatched(
        self, transactions: list[Transaction], flavor: MatchFlavor
    ) -> list[Transaction]:
        """Transactions the flavor applies to that carry no annotation for it."""
        strategy = strategy_for(flavor, self.config.profile(flavor))
        return [txn for txn in transactions if strategy.is_candidate(txn)]

    def count_unmatched(self, transactions: list[Transaction], flavor: MatchFlavor) -> int:
        return len(self.get_unmatched(transactions, flavor))

    def get_matched(
        self, transactions: list[Transaction], flavor: MatchFlavor
    ) -> list[MatchResult]:
        """
        Rebuild the current pairs of a flavor from transaction annotations.

        Only pairs whose annotations point at each other with the same match
        id are reported; each pair appears once.
        """
        by_id = {txn.id: txn for txn in transactions}
        processed: set[str] = set()
        results: list[MatchResult] = []

        for txn in sorted(transactions, key=lambda t: (t.date, t.id)):
            annotation = txn.annotation(flavor)
            if annotation is None or txn.id in processed:
                continue
            partner = by_id.get(annotation.matched_with)
            if partner is None or not _paired(txn, partner, flavor):
                continue

            source, target = sorted((txn, partner), key=lambda t: (t.date, t.id))
            candidate = MatchCandidate(
                source_id=source.id,
                target_id=target.id,
                flavor=flavor,
                confidence=annotation.confidence,
                date_difference_days=abs((target.date - source.date).days),
                amount_difference=abs(source.abs_amount - target.abs_amount),
                reasoning=f"Existing {flavor.value} match: {source.account} <-> {target.account}",
            )
            results.append(MatchResult(candidate, source, target))
            processed.update((source.id, target.id))

        return results

    def summarize(
        self,
        flavor: MatchFlavor,
        transactions: list[Transaction],
        results: list[MatchResult],
    ) -> MatchSummary:
        """
        Summarize a matching run.

        Args:
            flavor: Flavor that was matched
            transactions: Snapshot the run was computed on
            results: Results returned by ``find_matches``

        Returns:
            Summary with counts and average confidence; the conversion
            failure count is the one from the latest ``find_matches`` run for
            the flavor
        """
        strategy = strategy_for(flavor, self.config.profile(flavor))
        relevant = [txn for txn in transactions if strategy.is_relevant(txn)]
        matched = sum(1 for txn in relevant if txn.is_matched(flavor))

        average = 0.0
        if results:
            average = sum(r.confidence for r in results) / len(results)

        return MatchSummary(
            flavor=flavor,
            total_transactions=len(transactions),
            eligible_transactions=len(relevant),
            candidate_count=len(results),
            unmatched_count=len(relevant) - matched,
            matched_count=matched,
            conversion_failures=self.conversion_failures.get(flavor, 0),
            average_confidence=average,
            exact_count=sum(1 for r in results if r.candidate.is_exact),
        )


def _paired(a: Transaction, b: Transaction, flavor: MatchFlavor) -> bool:
    """Whether two transactions are annotated as matched with each other."""
    first = a.annotation(flavor)
    second = b.annotation(flavor)
    if first is None or second is None:
        return False
    return (
        first.matched_with == b.id
        and second.matched_with == a.id
        and first.match_id == second.match_id
    )


def _flavor_of_annotation(
    transactions: list[Transaction], match_id: str
) -> Optional[MatchFlavor]:
    for txn in transactions:
        for flavor, annotation in txn.reconciliation.items():
            if annotation.match_id == match_id:
                return flavor
    return None


def _ledger_annotation(match: Match, transaction_id: str) -> ReconciliationAnnotation:
    """Annotation a member of ``match`` carries while the match is applied."""
    return ReconciliationAnnotation(
        matched_with=match.counterpart(transaction_id),
        match_id=match.id,
        confidence=match.confidence,
    )
