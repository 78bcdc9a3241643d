"""
Excel report generator for statement import reviews.
Creates multi-sheet workbooks listing candidates, dropped rows and apply results.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional
import logging
import re

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Border, Side
from openpyxl.worksheet.worksheet import Worksheet

from ..config import StatementReconConfig
from ..models.transaction import ApplyReport, ImportCandidate, MatchType
from ..reconciliation.coordinator import ImportSession, summarize
from ..utils.exceptions import ReportGenerationError

logger = logging.getLogger(__name__)

# Style definitions
HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True)
NEW_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
LIKELY_FILL = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")
EXACT_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

MATCH_FILLS = {
    MatchType.NEW: NEW_FILL,
    MatchType.LIKELY: LIKELY_FILL,
    MatchType.EXACT: EXACT_FILL,
}


class ExcelReportGenerator:
    """Generates Excel import review reports with multiple sheets."""

    def __init__(self, config: Optional[StatementReconConfig] = None):
        """
        Initialize the report generator.

        Args:
            config: Application configuration
        """
        self.config = config or StatementReconConfig()
        self.sheet_config = self.config.output.sheets

    def report_filename(self, now: Optional[datetime] = None) -> str:
        """
        File name for a report, built from ``output.excel.filename_template``.

        With ``include_timestamp`` off the ``{date}`` and ``{time}``
        placeholders are dropped along with their leading underscore.
        """
        excel_config = self.config.output.excel
        template = excel_config.filename_template
        if not excel_config.include_timestamp:
            return re.sub(r"_?\{(?:date|time)\}", "", template)

        now = now or datetime.now()
        return template.format(date=now.strftime("%Y%m%d"), time=now.strftime("%H%M%S"))

    def generate_report(
        self,
        session: ImportSession,
        output_path: Path,
        apply_report: Optional[ApplyReport] = None,
    ) -> Path:
        """
        Generate the import review report.

        Args:
            session: Classified import session
            output_path: Path for output file, or an existing directory to
                write a file named from the configured template into
            apply_report: Outcomes of applying the session, if it was applied

        Returns:
            Path to generated report

        Raises:
            ReportGenerationError: If the workbook cannot be written
        """
        output_path = Path(output_path)
        if output_path.is_dir():
            output_path = output_path / self.report_filename()

        logger.info(f"Generating Excel report: {output_path}")

        wb = Workbook()

        # Remove default sheet
        if wb.active:
            wb.remove(wb.active)

        if self.sheet_config.summary.enabled:
            self._create_summary_sheet(wb, session, apply_report)

        if self.sheet_config.candidates.enabled:
            self._create_candidates_sheet(wb, session.candidates)

        if self.sheet_config.row_errors.enabled:
            self._create_row_errors_sheet(wb, session.row_errors)

        if apply_report is not None and self.sheet_config.apply_results.enabled:
            self._create_apply_results_sheet(wb, apply_report)

        if not wb.sheetnames:
            wb.create_sheet("Summary")

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            wb.save(output_path)
        except OSError as e:
            raise ReportGenerationError(f"Failed to write report {output_path}: {e}") from e

        logger.info(f"Report saved: {output_path}")
        return output_path

    def _create_summary_sheet(
        self, wb: Workbook, session: ImportSession, apply_report: Optional[ApplyReport]
    ) -> None:
        """Create the summary sheet with key counts."""
        ws = wb.create_sheet(self.sheet_config.summary.name)
        summary = summarize(session.candidates)

        ws["A1"] = "Statement Import Review"
        ws["A1"].font = Font(size=16, bold=True)
        ws.merge_cells("A1:D1")

        ws["A3"] = "Statement"
        ws["A3"].font = Font(bold=True)
        info = [
            ("Source File:", session.source or ""),
            ("Format:", session.format_id or ""),
            ("Importer:", session.importer_id or ""),
            ("Generated At:", datetime.now().strftime("%Y-%m-%d %H:%M:%S")),
            ("Config File:", self.config.config_file_path or "Default"),
        ]
        row = 4
        for label, value in info:
            ws[f"A{row}"] = label
            ws[f"B{row}"] = value
            row += 1

        row += 1
        ws[f"A{row}"] = "Candidates"
        ws[f"A{row}"].font = Font(bold=True)
        row += 1
        counts = [
            ("Total Candidates:", summary.total_count),
            ("New:", summary.new_count),
            ("Likely Duplicates:", summary.likely_count),
            ("Exact Duplicates:", summary.exact_count),
            ("Rows Dropped:", len(session.row_errors)),
            ("To Import:", summary.import_count),
            ("Income To Import:", f"£{summary.total_income_to_import:,.2f}"),
            ("Expenses To Import:", f"£{summary.total_expenses_to_import:,.2f}"),
        ]
        for label, value in counts:
            ws[f"A{row}"] = label
            ws[f"B{row}"] = value
            row += 1

        if apply_report is not None:
            row += 1
            ws[f"A{row}"] = "Applied"
            ws[f"A{row}"].font = Font(bold=True)
            row += 1
            applied = [
                ("Created:", apply_report.created_count),
                ("Updated:", apply_report.updated_count),
                ("Skipped:", apply_report.skipped_count),
                ("Failed:", len(apply_report.failures)),
            ]
            for label, value in applied:
                ws[f"A{row}"] = label
                ws[f"B{row}"] = value
                row += 1

        ws.column_dimensions["A"].width = 30
        ws.column_dimensions["B"].width = 40

    def _create_candidates_sheet(self, wb: Workbook, candidates: list[ImportCandidate]) -> None:
        """Create the candidates sheet, one row per statement transaction."""
        ws = wb.create_sheet(self.sheet_config.candidates.name)

        headers = [
            "Date",
            "Description",
            "Amount",
            "Category",
            "Match",
            "Action",
            "Matched ID",
            "Matched Date",
            "Matched Description",
            "Matched Amount",
            "Matched Category",
        ]
        self._write_headers(ws, headers)

        for row_num, candidate in enumerate(candidates, start=2):
            txn = candidate.transaction
            record = candidate.matched_record
            row_data = [
                txn.date,
                txn.description,
                float(txn.amount),
                txn.category or "",
                candidate.match_type.value,
                candidate.action.display_text,
                str(record.id) if record else "",
                record.date if record else "",
                record.description if record else "",
                float(record.amount) if record else "",
                (record.category or "") if record else "",
            ]

            for col, value in enumerate(row_data, start=1):
                cell = ws.cell(row=row_num, column=col, value=value)
                cell.border = THIN_BORDER
                if col == 5:
                    cell.fill = MATCH_FILLS[candidate.match_type]

        self._auto_fit_columns(ws)

    def _create_row_errors_sheet(self, wb: Workbook, row_errors: list[str]) -> None:
        """Create the sheet listing rows the parser dropped."""
        ws = wb.create_sheet(self.sheet_config.row_errors.name)
        self._write_headers(ws, ["#", "Error"])

        for row_num, error in enumerate(row_errors, start=2):
            ws.cell(row=row_num, column=1, value=row_num - 1).border = THIN_BORDER
            cell = ws.cell(row=row_num, column=2, value=error)
            cell.border = THIN_BORDER
            cell.fill = EXACT_FILL

        self._auto_fit_columns(ws)

    def _create_apply_results_sheet(self, wb: Workbook, apply_report: ApplyReport) -> None:
        """Create the sheet with one outcome per applied candidate."""
        ws = wb.create_sheet(self.sheet_config.apply_results.name)
        self._write_headers(
            ws, ["Date", "Description", "Amount", "Action", "Result", "Record ID", "Error"]
        )

        for row_num, outcome in enumerate(apply_report.outcomes, start=2):
            txn = outcome.candidate.transaction
            row_data = [
                txn.date,
                txn.description,
                float(txn.amount),
                outcome.action.display_text,
                "OK" if outcome.success else "FAILED",
                str(outcome.record_id) if outcome.record_id is not None else "",
                outcome.error or "",
            ]
            for col, value in enumerate(row_data, start=1):
                cell = ws.cell(row=row_num, column=col, value=value)
                cell.border = THIN_BORDER
                if not outcome.success:
                    cell.fill = EXACT_FILL

        self._auto_fit_columns(ws)

    def _write_headers(self, ws: Worksheet, headers: list[str]) -> None:
        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.fill = HEADER_FILL
            cell.font = HEADER_FONT
            cell.border = THIN_BORDER

    def _auto_fit_columns(self, ws: Worksheet) -> None:
        """Auto-fit column widths based on content."""
        for column_cells in ws.columns:
            max_length = 0
            column = column_cells[0].column_letter

            for cell in column_cells:
                if cell.value is not None:
                    max_length = max(max_length, len(str(cell.value)))

            adjusted_width = min(max_length + 2, 50)
            ws.column_dimensions[column].width = adjusted_width
