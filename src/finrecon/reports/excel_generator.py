"""
Excel report generator for reconciliation results.
Creates multi-sheet workbooks for reviewing candidates and applied matches.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional
import logging

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.worksheet.worksheet import Worksheet

from ..config import ReconConfig
from ..models.match import Match, MatchResult, MatchSummary
from ..models.transaction import Transaction
from ..utils.exceptions import ReportGenerationError

logger = logging.getLogger(__name__)

# Style definitions
HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True)
EXACT_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
APPROXIMATE_FILL = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")
UNMATCHED_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)


class ExcelReportGenerator:
    """Generates Excel reconciliation reports with multiple sheets."""

    def __init__(self, config: Optional[ReconConfig] = None):
        """
        Initialize the report generator.

        Args:
            config: Application configuration
        """
        self.config = config or ReconConfig()
        self.sheet_config = self.config.output.sheets

    def generate_report(
        self,
        summary: MatchSummary,
        results: list[MatchResult],
        matches: list[Match],
        unmatched: list[Transaction],
        output_path: Path,
    ) -> Path:
        """
        Generate the complete reconciliation report.

        Args:
            summary: Summary of the matching run
            results: Ranked results awaiting review
            matches: Match records from the ledger
            unmatched: Transactions still unmatched for the flavor
            output_path: Path for output file

        Returns:
            Path to generated report

        Raises:
            ReportGenerationError: If the workbook cannot be written
        """
        logger.info(f"Generating Excel report: {output_path}")

        wb = Workbook()
        if wb.active:
            wb.remove(wb.active)

        if self.sheet_config.summary.enabled:
            self._create_summary_sheet(wb, summary)
        if self.sheet_config.candidates.enabled:
            self._create_candidates_sheet(wb, results)
        if self.sheet_config.applied.enabled:
            self._create_applied_sheet(wb, matches)
        if self.sheet_config.unmatched.enabled:
            self._create_unmatched_sheet(wb, unmatched)

        if not wb.sheetnames:
            raise ReportGenerationError("All report sheets are disabled")

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            wb.save(output_path)
        except OSError as e:
            raise ReportGenerationError(f"Could not write report {output_path}: {e}") from e

        logger.info(f"Report saved: {output_path}")
        return output_path

    def default_filename(self, summary: MatchSummary) -> str:
        """Report filename built from the configured template."""
        now = datetime.now()
        return self.config.output.excel.filename_template.format(
            flavor=summary.flavor.value,
            date=now.strftime("%Y%m%d"),
            time=now.strftime("%H%M%S"),
        )

    def _create_summary_sheet(self, wb: Workbook, summary: MatchSummary) -> None:
        """Create the summary sheet with key metrics."""
        ws = wb.create_sheet(self.sheet_config.summary.name)

        ws["A1"] = f"{summary.flavor.label} Reconciliation Summary"
        ws["A1"].font = Font(size=16, bold=True)
        ws.merge_cells("A1:D1")

        rows = [
            ("Generated At:", summary.generated_at.strftime("%Y-%m-%d %H:%M:%S")),
            ("Config File:", self.config.config_file_path or "Default"),
            ("Total Transactions:", summary.total_transactions),
            ("Eligible Transactions:", summary.eligible_transactions),
            ("Already Matched:", summary.matched_count),
            ("Unmatched:", summary.unmatched_count),
            ("Proposed Matches:", summary.candidate_count),
            ("Exact Proposals:", summary.exact_count),
            ("Average Confidence:", f"{summary.average_confidence:.2f}"),
            ("Pairs Without Conversion:", summary.conversion_failures),
            ("Match Rate:", f"{summary.match_rate:.1f}%"),
        ]

        for i, (label, value) in enumerate(rows, start=3):
            ws[f"A{i}"] = label
            ws[f"A{i}"].font = Font(bold=True)
            ws[f"B{i}"] = value
            ws[f"B{i}"].alignment = Alignment(horizontal="right")

        ws.column_dimensions["A"].width = 30
        ws.column_dimensions["B"].width = 30

    def _create_candidates_sheet(self, wb: Workbook, results: list[MatchResult]) -> None:
        """Create the proposed matches sheet in ranking order."""
        ws = wb.create_sheet(self.sheet_config.candidates.name)

        headers = [
            "Rank",
            "Source ID",
            "Source Date",
            "Source Account",
            "Source Amount",
            "Target ID",
            "Target Date",
            "Target Account",
            "Target Amount",
            "Confidence",
            "Date Difference (Days)",
            "Amount Difference",
            "Reasoning",
        ]
        self._write_headers(ws, headers)

        for rank, result in enumerate(results, start=1):
            source = result.source_transaction
            target = result.target_transaction
            candidate = result.candidate
            row_data = [
                rank,
                source.id,
                source.date,
                source.account,
                float(source.amount),
                target.id,
                target.date,
                target.account,
                float(target.amount),
                round(candidate.confidence, 4),
                candidate.date_difference_days,
                float(candidate.amount_difference),
                candidate.reasoning,
            ]
            fill = EXACT_FILL if candidate.is_exact else APPROXIMATE_FILL
            self._write_row(ws, rank + 1, row_data, fill)

        self._auto_fit_columns(ws)

    def _create_applied_sheet(self, wb: Workbook, matches: list[Match]) -> None:
        """Create the ledger sheet, including unmatched history."""
        ws = wb.create_sheet(self.sheet_config.applied.name)

        headers = [
            "Match ID",
            "Flavor",
            "Source ID",
            "Target ID",
            "Confidence",
            "Status",
            "Manual",
            "Created At",
            "Unmatched At",
            "Reasoning",
        ]
        self._write_headers(ws, headers)

        for row_num, match in enumerate(matches, start=2):
            row_data = [
                match.id,
                match.flavor.value,
                match.source_id,
                match.target_id,
                round(match.confidence, 4),
                match.status.value,
                "yes" if match.manual else "no",
                match.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                match.unmatched_at.strftime("%Y-%m-%d %H:%M:%S") if match.unmatched_at else "",
                match.reasoning,
            ]
            fill = None if match.is_active else UNMATCHED_FILL
            self._write_row(ws, row_num, row_data, fill)

        self._auto_fit_columns(ws)

    def _create_unmatched_sheet(self, wb: Workbook, unmatched: list[Transaction]) -> None:
        """Create the unmatched transactions sheet."""
        ws = wb.create_sheet(self.sheet_config.unmatched.name)

        headers = ["ID", "Date", "Account", "Amount", "Currency", "Type", "Description"]
        self._write_headers(ws, headers)

        for row_num, txn in enumerate(unmatched, start=2):
            row_data = [
                txn.id,
                txn.date,
                txn.account,
                float(txn.amount),
                txn.currency,
                txn.type.value,
                txn.description,
            ]
            self._write_row(ws, row_num, row_data, UNMATCHED_FILL)

        self._auto_fit_columns(ws)

    def _write_headers(self, ws: Worksheet, headers: list[str]) -> None:
        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.fill = HEADER_FILL
            cell.font = HEADER_FONT
            cell.border = THIN_BORDER

    def _write_row(
        self,
        ws: Worksheet,
        row_num: int,
        values: list,
        fill: Optional[PatternFill] = None,
    ) -> None:
        for col, value in enumerate(values, start=1):
            cell = ws.cell(row=row_num, column=col, value=value)
            cell.border = THIN_BORDER
            if fill is not None:
                cell.fill = fill

    def _auto_fit_columns(self, ws: Worksheet) -> None:
        """Auto-fit column widths based on content."""
        for column_cells in ws.columns:
            max_length = max(
                (len(str(cell.value)) for cell in column_cells if cell.value is not None),
                default=0,
            )
            column = column_cells[0].column_letter
            ws.column_dimensions[column].width = min(max_length + 2, 60)
