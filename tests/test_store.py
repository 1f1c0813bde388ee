"""Tests for the in-memory store, rate converter and snapshot files."""

from decimal import Decimal

import pytest

from finrecon.models.match import Match, MatchStatus
from finrecon.models.transaction import (
    MatchFlavor,
    ReconciliationAnnotation,
    TransactionType,
)
from finrecon.store import (
    InMemoryTransactionStore,
    Snapshot,
    StaticRateConverter,
    TransactionUpdate,
    load_snapshot,
    save_snapshot,
)
from finrecon.utils.exceptions import PersistenceFailure, ValidationError

from conftest import make_transfer, make_txn


class TestInMemoryTransactionStore:
    """Tests for InMemoryTransactionStore."""

    def test_update_records_history(self):
        txn = make_txn("a", "2024-01-01", "-10")
        store = InMemoryTransactionStore([txn])

        updated = store.update_transaction("a", {"notes": "checked"}, "review")

        assert updated.notes == "checked"
        assert store.get_transaction("a").notes == "checked"
        assert store.history_for("a")[0].previous == txn
        assert store.history_for("a")[0].note == "review"

    @pytest.mark.parametrize("field", ["amount", "date", "category", "id"])
    def test_financial_fields_are_protected(self, field):
        store = InMemoryTransactionStore([make_txn("a", "2024-01-01", "-10")])

        with pytest.raises(PersistenceFailure):
            store.update_transaction("a", {field: "x"})

        assert store.history == []

    def test_unknown_transaction(self):
        store = InMemoryTransactionStore()

        with pytest.raises(PersistenceFailure) as exc_info:
            store.update_transaction("missing", {"notes": "x"})

        assert exc_info.value.transaction_id == "missing"

    def test_batch_is_all_or_nothing(self):
        store = InMemoryTransactionStore([make_txn("a", "2024-01-01", "-10")])

        with pytest.raises(PersistenceFailure):
            store.batch_update_transactions(
                [
                    TransactionUpdate("a", {"notes": "first"}),
                    TransactionUpdate("b", {"notes": "second"}),
                ]
            )

        assert store.get_transaction("a").notes == ""

    def test_batch_update(self):
        store = InMemoryTransactionStore(
            [make_txn("a", "2024-01-01", "-10"), make_txn("b", "2024-01-02", "10")]
        )

        updated = store.batch_update_transactions(
            [TransactionUpdate("a", {"notes": "x"}), TransactionUpdate("b", {"notes": "y"})]
        )

        assert [txn.notes for txn in updated] == ["x", "y"]
        assert len(store.get_all_transactions()) == 2


class TestStaticRateConverter:
    """Tests for StaticRateConverter."""

    def test_direct_rate(self):
        converter = StaticRateConverter({("EUR", "USD"): Decimal("1.08")})

        result = converter.convert_amount(Decimal("100"), "eur", "usd")

        assert result.converted_amount == Decimal("108.00")
        assert result.rate == Decimal("1.08")

    def test_inverse_rate(self):
        converter = StaticRateConverter({("USD", "EUR"): Decimal("0.5")})

        assert converter.rate("EUR", "USD") == Decimal("2")

    def test_same_currency(self):
        assert StaticRateConverter().rate("USD", "usd") == Decimal("1")

    def test_missing_rate(self):
        assert StaticRateConverter().convert_amount(Decimal("1"), "USD", "JPY") is None


class TestSnapshot:
    """Tests for snapshot persistence."""

    def test_save_and_load(self, tmp_path):
        annotation = ReconciliationAnnotation(matched_with="in", match_id="m1", confidence=0.95)
        transactions = [
            make_transfer(
                "out",
                "2024-08-26",
                "-500.25",
                "checking",
                reconciliation={MatchFlavor.TRANSFER: annotation},
            ),
            make_txn("lunch", "2024-08-27", "-12.50", description="Lunch", currency="EUR"),
        ]
        match = Match(
            flavor=MatchFlavor.TRANSFER,
            source_id="out",
            target_id="in",
            confidence=0.95,
            id="m1",
        )
        path = tmp_path / "snapshot.json"

        save_snapshot(Snapshot(transactions=transactions, matches=[match]), path)
        loaded = load_snapshot(path)

        out = loaded.transactions[0]
        assert out.amount == Decimal("-500.25")
        assert out.type == TransactionType.TRANSFER
        assert out.annotation(MatchFlavor.TRANSFER) == annotation
        assert loaded.transactions[1].currency == "EUR"
        assert loaded.matches[0].id == "m1"
        assert loaded.matches[0].status == MatchStatus.APPLIED

    def test_invalid_snapshot(self, tmp_path):
        path = tmp_path / "snapshot.json"
        path.write_text('{"transactions": [{"id": "x"}]}')

        with pytest.raises(ValidationError):
            load_snapshot(path)
