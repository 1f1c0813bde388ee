"""Shared fixtures for reconciliation tests."""

from datetime import date
from decimal import Decimal
from typing import Optional

import pytest

from finrecon.config import ReconConfig, ToleranceProfile
from finrecon.matching.engine import ReconciliationService
from finrecon.models.transaction import Transaction, TransactionType
from finrecon.store import InMemoryTransactionStore


def make_txn(
    txn_id: str,
    day: str,
    amount: str,
    account: str = "checking",
    description: str = "",
    type: TransactionType = TransactionType.EXPENSE,
    currency: str = "USD",
    category: str = "",
    reconciliation: Optional[dict] = None,
) -> Transaction:
    """Build a transaction from compact string arguments."""
    return Transaction(
        id=txn_id,
        date=date.fromisoformat(day),
        amount=Decimal(amount),
        account=account,
        description=description,
        type=type,
        currency=currency,
        category=category,
        reconciliation=reconciliation or {},
    )


def make_transfer(txn_id: str, day: str, amount: str, account: str, **kwargs) -> Transaction:
    return make_txn(txn_id, day, amount, account=account, type=TransactionType.TRANSFER, **kwargs)


@pytest.fixture
def profile():
    """Generic profile: one month window, 5% tolerance."""
    return ToleranceProfile(max_days_difference=30, tolerance_percentage=0.05)


@pytest.fixture
def reimbursement_txns():
    return [
        make_txn("e1", "2024-01-10", "-100.00", description="Conference hotel"),
        make_txn("r1", "2024-01-15", "98.50", description="Employer reimbursement"),
        make_txn("e2", "2024-02-01", "-42.00", description="Taxi"),
    ]


@pytest.fixture
def transfer_txns():
    return [
        make_transfer("t-out", "2024-08-26", "-500.00", "checking"),
        make_transfer("t-in", "2024-08-27", "500.00", "savings"),
        make_transfer("t-out2", "2024-09-10", "-75.00", "checking"),
        make_transfer("t-in2", "2024-09-10", "75.00", "brokerage"),
    ]


@pytest.fixture
def store(transfer_txns):
    return InMemoryTransactionStore(transfer_txns)


@pytest.fixture
def service(store):
    return ReconciliationService(config=ReconConfig(), store=store)
