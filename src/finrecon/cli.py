"""
Command-line interface for the transaction reconciliation engine.

Transactions and the match ledger are read from and written back to a JSON
snapshot file.
"""

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional
import logging
import sys

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import ReconConfig, generate_default_config, load_config
from .matching.engine import ReconciliationService
from .matching.ledger import MatchLedger
from .models.match import ApplyReport, MatchResult, MatchSummary
from .models.transaction import MatchFlavor
from .reports.excel_generator import ExcelReportGenerator
from .store import (
    InMemoryTransactionStore,
    Snapshot,
    StaticRateConverter,
    load_snapshot,
    save_snapshot,
)
from .utils.logging_config import setup_logging

console = Console()

FLAVOR_CHOICE = click.Choice([flavor.value for flavor in MatchFlavor])


@click.group()
@click.version_option(version=__version__)
def main():
    """Reconcile reimbursements, transfers and duplicate transactions."""
    pass


@main.command()
@click.argument("flavor", type=FLAVOR_CHOICE)
@click.argument("snapshot_file", type=click.Path(exists=True, path_type=Path))
@click.option(
    "-c",
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (YAML)",
)
@click.option("--max-days", type=int, default=None, help="Override the date window in days")
@click.option(
    "--tolerance",
    type=float,
    default=None,
    help="Override the relative amount tolerance (0.05 = 5%)",
)
@click.option(
    "--from", "date_from", type=click.DateTime(formats=["%Y-%m-%d"]), default=None
)
@click.option("--to", "date_to", type=click.DateTime(formats=["%Y-%m-%d"]), default=None)
@click.option(
    "--rate",
    "rates",
    multiple=True,
    help="Exchange rate as FROM:TO=RATE, e.g. EUR:USD=1.08 (repeatable)",
)
@click.option("--apply", "apply_matches", is_flag=True, help="Apply all proposed matches")
@click.option(
    "--auto", "auto_apply", is_flag=True, help="Apply only matches above the auto-apply threshold"
)
@click.option("-r", "--report", type=click.Path(path_type=Path), help="Write an Excel report to a file or directory")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def find(
    flavor: str,
    snapshot_file: Path,
    config: Optional[Path],
    max_days: Optional[int],
    tolerance: Optional[float],
    date_from,
    date_to,
    rates: tuple[str, ...],
    apply_matches: bool,
    auto_apply: bool,
    report: Optional[Path],
    verbose: bool,
):
    """
    Find matches of FLAVOR in a transaction snapshot.

    FLAVOR: reimbursement, transfer or duplicate
    SNAPSHOT_FILE: JSON snapshot of transactions and matches
    """
    setup_logging(logging.DEBUG if verbose else logging.INFO)

    try:
        recon_config = load_config(config)
        setup_logging(
            logging.DEBUG if verbose else recon_config.logging.level,
            log_format=recon_config.logging.format,
        )
        match_flavor = MatchFlavor(flavor)

        overrides = {}
        if max_days is not None:
            overrides["max_days_difference"] = max_days
        if tolerance is not None:
            overrides["tolerance_percentage"] = tolerance
        profile = recon_config.profile(match_flavor).model_copy(update=overrides)

        snapshot = load_snapshot(snapshot_file)
        service = _build_service(recon_config, snapshot, rates)

        results = service.find_matches(
            match_flavor,
            snapshot.transactions,
            profile,
            date_from=date_from.date() if date_from else None,
            date_to=date_to.date() if date_to else None,
        )
        summary = service.summarize(match_flavor, snapshot.transactions, results)

        _display_results(match_flavor, results)
        _display_summary(summary)

        if apply_matches or auto_apply:
            if auto_apply:
                selected = [r for r in results if r.confidence >= profile.auto_apply_threshold]
            else:
                selected = results
            apply_report = service.apply_matches(snapshot.transactions, selected)
            _display_apply_report(apply_report)

            snapshot = Snapshot(
                transactions=apply_report.transactions, matches=service.ledger.all()
            )
            save_snapshot(snapshot, snapshot_file)

        if report:
            generator = ExcelReportGenerator(recon_config)
            if report.is_dir():
                report = report / generator.default_filename(summary)
            generator.generate_report(
                summary=summary,
                results=results,
                matches=service.ledger.all(),
                unmatched=service.get_unmatched(snapshot.transactions, match_flavor),
                output_path=report,
            )
            console.print(f"\n[green]Report generated: {report}[/green]")

    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        if verbose:
            console.print_exception()
        sys.exit(1)


@main.command()
@click.argument("flavor", type=FLAVOR_CHOICE)
@click.argument("snapshot_file", type=click.Path(exists=True, path_type=Path))
@click.option("-t", "--transaction", "transaction_id", help="Only show pairs with this transaction")
@click.option("-c", "--config", type=click.Path(exists=True, path_type=Path))
@click.option("--max-days", type=int, default=None, help="Override the date window in days")
@click.option("--tolerance", type=float, default=None, help="Override the relative amount tolerance")
@click.option("--rate", "rates", multiple=True, help="Exchange rate as FROM:TO=RATE (repeatable)")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def search(
    flavor: str,
    snapshot_file: Path,
    transaction_id: Optional[str],
    config: Optional[Path],
    max_days: Optional[int],
    tolerance: Optional[float],
    rates: tuple[str, ...],
    verbose: bool,
):
    """
    List every plausible FLAVOR counterpart for manual matching.

    Uses the relaxed manual search profile. Pairs are not made disjoint,
    so a transaction can appear more than once.
    """
    setup_logging(logging.DEBUG if verbose else logging.WARNING)

    try:
        recon_config = load_config(config)
        match_flavor = MatchFlavor(flavor)

        overrides = {}
        if max_days is not None:
            overrides["max_days_difference"] = max_days
        if tolerance is not None:
            overrides["tolerance_percentage"] = tolerance
        profile = recon_config.profiles.manual_search.model_copy(update=overrides)

        snapshot = load_snapshot(snapshot_file)
        service = _build_service(recon_config, snapshot, rates)

        results = service.find_manual_candidates(
            match_flavor, snapshot.transactions, transaction_id, profile
        )
        _display_results(match_flavor, results, title=f"{match_flavor.label} Candidates")

    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        if verbose:
            console.print_exception()
        sys.exit(1)


@main.command()
@click.argument("snapshot_file", type=click.Path(exists=True, path_type=Path))
@click.argument("match_id")
@click.option("-c", "--config", type=click.Path(exists=True, path_type=Path))
def unmatch(snapshot_file: Path, match_id: str, config: Optional[Path]):
    """
    Reverse the match MATCH_ID in a snapshot.

    SNAPSHOT_FILE: JSON snapshot of transactions and matches
    """
    try:
        recon_config = load_config(config)
        snapshot = load_snapshot(snapshot_file)
        service = _build_service(recon_config, snapshot)

        updated = service.unmatch(snapshot.transactions, match_id)
        if updated is snapshot.transactions:
            console.print(f"[yellow]No active match with id {match_id}[/yellow]")
            return

        save_snapshot(
            Snapshot(transactions=updated, matches=service.ledger.all()), snapshot_file
        )
        console.print(f"[green]Unmatched {match_id}[/green]")

    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@main.command()
@click.argument("snapshot_file", type=click.Path(exists=True, path_type=Path))
@click.option("-c", "--config", type=click.Path(exists=True, path_type=Path))
def status(snapshot_file: Path, config: Optional[Path]):
    """
    Show matched and unmatched counts per flavor.

    SNAPSHOT_FILE: JSON snapshot of transactions and matches
    """
    try:
        recon_config = load_config(config)
        snapshot = load_snapshot(snapshot_file)
        service = _build_service(recon_config, snapshot)

        table = Table(title=f"Reconciliation Status: {snapshot_file.name}")
        table.add_column("Flavor", style="cyan")
        table.add_column("Matched Pairs", justify="right")
        table.add_column("Unmatched", justify="right")

        for flavor in MatchFlavor:
            table.add_row(
                flavor.value,
                str(len(service.get_matched(snapshot.transactions, flavor))),
                str(service.count_unmatched(snapshot.transactions, flavor)),
            )

        console.print(table)
        console.print(f"\nTotal transactions: {len(snapshot.transactions)}")

    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@main.command("init-config")
@click.option(
    "-o", "--output", type=click.Path(path_type=Path), default=Path("config.yaml")
)
def init_config(output: Path):
    """Generate a sample configuration file."""
    generate_default_config(output)
    console.print(f"[green]Configuration file generated: {output}[/green]")


def _build_service(
    config: ReconConfig, snapshot: Snapshot, rates: tuple[str, ...] = ()
) -> ReconciliationService:
    return ReconciliationService(
        config=config,
        store=InMemoryTransactionStore(snapshot.transactions),
        converter=StaticRateConverter(_parse_rates(rates)) if rates else None,
        ledger=MatchLedger(snapshot.matches),
    )


def _parse_rates(rates: tuple[str, ...]) -> dict[tuple[str, str], Decimal]:
    """Parse FROM:TO=RATE options."""
    parsed: dict[tuple[str, str], Decimal] = {}
    for entry in rates:
        try:
            pair, value = entry.split("=", 1)
            src, dst = pair.split(":", 1)
            parsed[(src.strip(), dst.strip())] = Decimal(value.strip())
        except (ValueError, InvalidOperation):
            raise click.BadParameter(f"Expected FROM:TO=RATE, got {entry!r}", param_hint="--rate")
    return parsed


def _display_results(
    flavor: MatchFlavor, results: list[MatchResult], title: Optional[str] = None
) -> None:
    """Display ranked results in console."""
    if not results:
        console.print(f"[yellow]No {flavor.value} matches found[/yellow]")
        return

    table = Table(title=title or f"Proposed {flavor.label} Matches")
    table.add_column("#", justify="right")
    table.add_column("Source")
    table.add_column("Target")
    table.add_column("Confidence", justify="right")
    table.add_column("Days", justify="right")
    table.add_column("Amount Diff", justify="right")
    table.add_column("Reasoning")

    for rank, result in enumerate(results, start=1):
        candidate = result.candidate
        source = result.source_transaction
        target = result.target_transaction
        table.add_row(
            str(rank),
            f"{source.id} ({source.date}, {source.amount:,.2f})",
            f"{target.id} ({target.date}, {target.amount:,.2f})",
            f"{candidate.confidence:.2f}",
            str(candidate.date_difference_days),
            f"{candidate.amount_difference:,.2f}",
            (
                candidate.reasoning[:60] + "..."
                if len(candidate.reasoning) > 60
                else candidate.reasoning
            ),
        )

    console.print(table)


def _display_summary(summary: MatchSummary) -> None:
    """Display reconciliation summary in console."""
    table = Table(title="Reconciliation Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Total Transactions", str(summary.total_transactions))
    table.add_row("Eligible Transactions", str(summary.eligible_transactions))
    table.add_row("Already Matched", str(summary.matched_count))
    table.add_row("Unmatched", str(summary.unmatched_count))
    table.add_row("Proposed Matches", str(summary.candidate_count))
    table.add_row("Average Confidence", f"{summary.average_confidence:.2f}")
    table.add_row("Pairs Without Conversion", str(summary.conversion_failures))

    console.print(table)


def _display_apply_report(report: ApplyReport) -> None:
    console.print(
        f"\n[green]Applied {len(report.applied)} matches[/green] "
        f"({len(report.already_applied)} already applied)"
    )
    for failure in report.failed:
        console.print(
            f"[red]Failed {failure.candidate.source_id} <-> "
            f"{failure.candidate.target_id}: {failure.reason}[/red]"
        )


if __name__ == "__main__":
    main()
