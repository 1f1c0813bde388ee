"""
Contracts for the collaborators the engine depends on.

The engine persists reconciliation annotations only through a
``TransactionStore`` and compares cross-currency amounts only through a
``CurrencyConverter``. In-memory implementations are provided for tests and
for the command-line front end, which keeps snapshots as JSON files.
"""

from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional, Protocol
import logging

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .models.match import Match
from .models.transaction import Transaction
from .utils.exceptions import PersistenceFailure, ValidationError

logger = logging.getLogger(__name__)

# Financial fields a store update may never touch on behalf of the engine
PROTECTED_FIELDS = frozenset({"id", "amount", "date", "category"})


@dataclass
class TransactionUpdate:
    """A partial update for one transaction."""

    id: str
    fields: dict[str, Any]
    note: Optional[str] = None


@dataclass
class HistoryEntry:
    """Edit-history record kept by the in-memory store."""

    transaction_id: str
    note: Optional[str]
    previous: Transaction
    recorded_at: datetime = field(default_factory=datetime.now)


class TransactionStore(Protocol):
    """Persistence boundary for transactions."""

    def get_all_transactions(self) -> list[Transaction]: ...

    def update_transaction(
        self, transaction_id: str, fields: dict[str, Any], note: Optional[str] = None
    ) -> Transaction: ...

    def batch_update_transactions(
        self, updates: list[TransactionUpdate]
    ) -> list[Transaction]: ...


@dataclass(frozen=True)
class ConversionResult:
    """Amount converted into another currency."""

    converted_amount: Decimal
    rate: Decimal


class CurrencyConverter(Protocol):
    """Currency conversion boundary. None means the amount cannot be compared."""

    def convert_amount(
        self, amount: Decimal, from_currency: str, to_currency: str
    ) -> Optional[ConversionResult]: ...


class InMemoryTransactionStore:
    """
    Dict-backed ``TransactionStore``.

    Every update records the previous version with its note so callers can
    inspect or restore edit history.
    """

    _UPDATABLE = frozenset(f.name for f in fields(Transaction)) - PROTECTED_FIELDS

    def __init__(self, transactions: Optional[list[Transaction]] = None):
        self._transactions: dict[str, Transaction] = {}
        for txn in transactions or []:
            self._transactions[txn.id] = txn
        self.history: list[HistoryEntry] = []

    def get_all_transactions(self) -> list[Transaction]:
        return list(self._transactions.values())

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return self._transactions.get(transaction_id)

    def update_transaction(
        self, transaction_id: str, fields: dict[str, Any], note: Optional[str] = None
    ) -> Transaction:
        """
        Apply a partial update to one transaction.

        Raises:
            PersistenceFailure: If the transaction is unknown or a field
                cannot be updated
        """
        current = self._transactions.get(transaction_id)
        if current is None:
            raise PersistenceFailure(
                f"Transaction not found: {transaction_id}", transaction_id
            )
        self._check_fields(transaction_id, fields)

        updated = replace(current, **fields)
        self._transactions[transaction_id] = updated
        self.history.append(HistoryEntry(transaction_id, note, current))
        logger.debug(f"Updated transaction {transaction_id}: {note or 'no note'}")
        return updated

    def batch_update_transactions(
        self, updates: list[TransactionUpdate]
    ) -> list[Transaction]:
        """Apply several updates; nothing is written unless all are valid."""
        for update in updates:
            if update.id not in self._transactions:
                raise PersistenceFailure(f"Transaction not found: {update.id}", update.id)
            self._check_fields(update.id, update.fields)

        return [
            self.update_transaction(update.id, update.fields, update.note)
            for update in updates
        ]

    def history_for(self, transaction_id: str) -> list[HistoryEntry]:
        return [entry for entry in self.history if entry.transaction_id == transaction_id]

    def _check_fields(self, transaction_id: str, fields: dict[str, Any]) -> None:
        rejected = set(fields) - self._UPDATABLE
        if rejected:
            raise PersistenceFailure(
                f"Cannot update {sorted(rejected)} on transaction {transaction_id}",
                transaction_id,
            )


class StaticRateConverter:
    """
    ``CurrencyConverter`` backed by a fixed rate table.

    Rates are keyed by ``(from_currency, to_currency)``; the inverse of a
    known rate is used when only the opposite direction is configured.
    """

    def __init__(self, rates: Optional[dict[tuple[str, str], Decimal]] = None):
        self.rates: dict[tuple[str, str], Decimal] = {
            (src.upper(), dst.upper()): Decimal(str(rate))
            for (src, dst), rate in (rates or {}).items()
        }

    def rate(self, from_currency: str, to_currency: str) -> Optional[Decimal]:
        src, dst = from_currency.upper(), to_currency.upper()
        if src == dst:
            return Decimal("1")
        if (src, dst) in self.rates:
            return self.rates[(src, dst)]
        inverse = self.rates.get((dst, src))
        if inverse:
            return Decimal("1") / inverse
        return None

    def convert_amount(
        self, amount: Decimal, from_currency: str, to_currency: str
    ) -> Optional[ConversionResult]:
        rate = self.rate(from_currency, to_currency)
        if rate is None:
            return None
        return ConversionResult(converted_amount=amount * rate, rate=rate)


class Snapshot(BaseModel):
    """Transactions plus the match ledger, as stored in a JSON file."""

    transactions: list[Transaction] = Field(default_factory=list)
    matches: list[Match] = Field(default_factory=list)


def load_snapshot(path: Path) -> Snapshot:
    """
    Read a snapshot JSON file.

    Raises:
        ValidationError: If the file does not describe a valid snapshot
    """
    logger.info(f"Loading snapshot: {path}")
    try:
        return Snapshot.model_validate_json(path.read_text(encoding="utf-8"))
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid snapshot {path}: {e}") from e


def save_snapshot(snapshot: Snapshot, path: Path) -> Path:
    """Write a snapshot JSON file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(snapshot.model_dump_json(indent=2), encoding="utf-8")
    logger.info(
        f"Saved snapshot: {path} ({len(snapshot.transactions)} transactions, "
        f"{len(snapshot.matches)} matches)"
    )
    return path
