"""Tests for the command-line interface."""

import pytest
from click.testing import CliRunner

from finrecon.cli import main
from finrecon.models.transaction import MatchFlavor
from finrecon.store import Snapshot, load_snapshot, save_snapshot


@pytest.fixture
def snapshot_file(tmp_path, transfer_txns):
    path = tmp_path / "snapshot.json"
    save_snapshot(Snapshot(transactions=transfer_txns), path)
    return path


class TestFindCommand:
    """Tests for `finrecon find`."""

    def test_find_prints_proposals_without_writing(self, snapshot_file):
        before = snapshot_file.read_text()

        result = CliRunner().invoke(main, ["find", "transfer", str(snapshot_file)])

        assert result.exit_code == 0, result.output
        assert "Proposed Transfer Matches" in result.output
        assert "Reconciliation Summary" in result.output
        assert snapshot_file.read_text() == before

    def test_find_apply_writes_snapshot(self, snapshot_file):
        result = CliRunner().invoke(main, ["find", "transfer", str(snapshot_file), "--apply"])

        assert result.exit_code == 0, result.output
        assert "Applied 2 matches" in result.output
        snapshot = load_snapshot(snapshot_file)
        assert len(snapshot.matches) == 2
        assert all(txn.is_matched(MatchFlavor.TRANSFER) for txn in snapshot.transactions)

    def test_find_with_report(self, snapshot_file, tmp_path):
        report = tmp_path / "report.xlsx"

        result = CliRunner().invoke(
            main, ["find", "transfer", str(snapshot_file), "--report", str(report)]
        )

        assert result.exit_code == 0, result.output
        assert report.exists()

    def test_find_with_report_directory(self, snapshot_file, tmp_path):
        reports = tmp_path / "reports"
        reports.mkdir()

        result = CliRunner().invoke(
            main, ["find", "transfer", str(snapshot_file), "--report", str(reports)]
        )

        assert result.exit_code == 0, result.output
        assert len(list(reports.glob("reconciliation_transfer_*.xlsx"))) == 1

    def test_overrides_narrow_the_search(self, snapshot_file):
        result = CliRunner().invoke(
            main, ["find", "transfer", str(snapshot_file), "--max-days", "0", "--apply"]
        )

        assert result.exit_code == 0, result.output
        assert len(load_snapshot(snapshot_file).matches) == 1

    def test_invalid_tolerance_exits_with_error(self, snapshot_file):
        result = CliRunner().invoke(
            main, ["find", "transfer", str(snapshot_file), "--tolerance", "1.5"]
        )

        assert result.exit_code == 1
        assert "tolerance_percentage" in result.output

    def test_no_matches(self, snapshot_file):
        result = CliRunner().invoke(main, ["find", "duplicate", str(snapshot_file)])

        assert result.exit_code == 0, result.output
        assert "No duplicate matches found" in result.output

    def test_unknown_flavor_rejected(self, snapshot_file):
        result = CliRunner().invoke(main, ["find", "refund", str(snapshot_file)])

        assert result.exit_code == 2


class TestSearchCommand:
    """Tests for `finrecon search`."""

    def test_search_lists_candidates_without_writing(self, snapshot_file):
        before = snapshot_file.read_text()

        result = CliRunner().invoke(main, ["search", "transfer", str(snapshot_file)])

        assert result.exit_code == 0, result.output
        assert "Transfer Candidates" in result.output
        assert snapshot_file.read_text() == before

    def test_search_for_one_transaction(self, snapshot_file):
        result = CliRunner().invoke(
            main, ["search", "transfer", str(snapshot_file), "-t", "t-in"]
        )

        assert result.exit_code == 0, result.output
        assert "t-out2" not in result.output

    def test_search_unknown_transaction(self, snapshot_file):
        result = CliRunner().invoke(
            main, ["search", "transfer", str(snapshot_file), "--transaction", "missing"]
        )

        assert result.exit_code == 1
        assert "Transaction not found" in result.output


class TestUnmatchAndStatus:
    """Tests for `finrecon unmatch` and `finrecon status`."""

    def test_unmatch_round_trip(self, snapshot_file):
        runner = CliRunner()
        runner.invoke(main, ["find", "transfer", str(snapshot_file), "--apply"])
        match_id = load_snapshot(snapshot_file).matches[0].id

        result = runner.invoke(main, ["unmatch", str(snapshot_file), match_id])

        assert result.exit_code == 0, result.output
        snapshot = load_snapshot(snapshot_file)
        assert sum(txn.is_matched(MatchFlavor.TRANSFER) for txn in snapshot.transactions) == 2
        assert snapshot.matches[0].status.value == "unmatched"

    def test_unmatch_unknown_id(self, snapshot_file):
        result = CliRunner().invoke(main, ["unmatch", str(snapshot_file), "nope"])

        assert result.exit_code == 0
        assert "No active match" in result.output

    def test_status(self, snapshot_file):
        result = CliRunner().invoke(main, ["status", str(snapshot_file)])

        assert result.exit_code == 0, result.output
        assert "Total transactions: 4" in result.output
        assert "reimbursement" in result.output


def test_init_config(tmp_path):
    output = tmp_path / "config.yaml"

    result = CliRunner().invoke(main, ["init-config", "-o", str(output)])

    assert result.exit_code == 0, result.output
    assert output.exists()


def test_version():
    result = CliRunner().invoke(main, ["--version"])

    assert result.exit_code == 0
    assert "0.1.0" in result.output
