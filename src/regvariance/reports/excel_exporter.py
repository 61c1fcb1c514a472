"""
Excel export of analysis results.

Writes a Summary sheet, one sheet of variances per form and, where a form
has failed validation rules, a matching validation errors sheet.
"""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from regvariance.config.settings import Settings
from regvariance.data.models import (
    CELL_DESCRIPTION_COLUMN,
    CELL_REFERENCE_COLUMN,
    DIFFERENCE_COLUMN,
    PERCENT_DIFFERENCE_COLUMN,
    AnalysisResult,
)
from regvariance.reports.formatter import ExcelFormatter, unique_sheet_name
from regvariance.utils.calculations import count_meaningful_differences

SUMMARY_SHEET = 'Summary'
VALIDATION_SUFFIX = '_ValidationErrors'
SUMMARY_COLUMNS = ['Form', 'Form Name', 'Base Date', 'Comparison Date',
                   '# Variances', '# Validation Errors', 'Notes']
VALIDATION_COLUMNS = ['Severity', 'Expression', 'Status', 'Message', 'Referenced Cells']

INTEGER_PATTERN = re.compile(r'^-?\d+$')
DECIMAL_PATTERN = re.compile(r'^-?\d+\.\d+$')


def parse_cell_value(value: Any) -> Any:
    """Numeric strings become numbers, blanks become None, anything else is kept."""
    if value is None or value == '':
        return None
    if isinstance(value, (int, float, bool)):
        return value
    text = str(value)
    if INTEGER_PATTERN.match(text):
        return int(text)
    if DECIMAL_PATTERN.match(text):
        return float(text)
    return text


class ExcelExporter:
    """Excel workbook writer for variance analysis results."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.formatter = ExcelFormatter()
        self.logger = logging.getLogger(__name__)

    def export(self, results: Sequence[AnalysisResult], output_file: str) -> Optional[str]:
        """
        Write results to an Excel workbook.

        Args:
            results: Analysis results, in any order
            output_file: Destination .xlsx path

        Returns:
            The output path, or None when there was nothing to export
        """
        if not results:
            self.logger.warning("No results to export")
            return None

        output_path = Path(output_file)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        ordered = sorted(results, key=lambda r: r.form_name)
        self.logger.info(f"Exporting {len(ordered)} forms to {output_path}")

        summary_rows = [self._summary_row(result) for result in ordered]
        summary_df = pd.DataFrame(summary_rows, columns=SUMMARY_COLUMNS)

        with pd.ExcelWriter(output_path, engine='xlsxwriter') as writer:
            workbook = writer.book
            props = self.settings.excel_properties
            workbook.set_properties({
                'author': props['author'],
                'title': props['title'],
                'category': props['category'],
                'created': datetime.now(),
            })
            self.formatter.add_formats(workbook)

            self._write_summary_sheet(writer, summary_df)

            used_names = {SUMMARY_SHEET}
            for result, summary in zip(ordered, summary_rows):
                try:
                    self._write_result_sheet(writer, result, summary['# Variances'], used_names)
                    if result.validation_errors:
                        self._write_validation_sheet(writer, result, used_names)
                except Exception as e:
                    self.logger.error(f"Error writing sheets for {result.form_name}: {e}")

        for summary in summary_rows:
            self.logger.info(f"  Summary - Form: {summary['Form Name']} ({summary['Form']}) | "
                             f"Variances: {summary['# Variances']} | "
                             f"Validation Errors: {summary['# Validation Errors']}")
        self.logger.info(f"Workbook saved: {output_path}")
        return str(output_path)

    def _summary_row(self, result: AnalysisResult) -> Dict[str, Any]:
        return {
            'Form': result.form_code,
            'Form Name': result.form_name,
            'Base Date': result.base_instance.reference_date,
            'Comparison Date': result.comparison_instance.reference_date,
            '# Variances': count_meaningful_differences(result.variances),
            '# Validation Errors': len(result.validation_errors),
            'Notes': '',
        }

    def _write_summary_sheet(self, writer: pd.ExcelWriter, summary_df: pd.DataFrame) -> None:
        summary_df.to_excel(writer, sheet_name=SUMMARY_SHEET, index=False)
        worksheet = writer.sheets[SUMMARY_SHEET]
        self.formatter.write_header(worksheet, summary_df.columns)
        self.formatter.apply_summary_formatting(worksheet, summary_df)
        self.formatter.adjust_column_widths(worksheet, summary_df)
        worksheet.freeze_panes(1, 0)

    def _variance_columns(self, result: AnalysisResult) -> List[str]:
        columns = list(dict.fromkeys([
            CELL_REFERENCE_COLUMN, CELL_DESCRIPTION_COLUMN,
            result.comparison_instance.reference_date, result.base_instance.reference_date,
            DIFFERENCE_COLUMN, PERCENT_DIFFERENCE_COLUMN,
        ]))
        # Keep any extra columns the API returned, after the standard ones
        for row in result.variances:
            for key in row:
                if key not in columns:
                    columns.append(key)
        return columns

    def _write_result_sheet(self, writer: pd.ExcelWriter, result: AnalysisResult,
                            variance_count: int, used_names: set) -> str:
        sheet_name = unique_sheet_name(result.form_name, used_names)
        self.logger.info(f"Processing: {result.form_name} ({result.form_code}) -> Sheet: {sheet_name}")

        columns = self._variance_columns(result)
        rows = [{col: parse_cell_value(row.get(col)) for col in columns} for row in result.variances]
        df = pd.DataFrame(rows, columns=columns)
        df.to_excel(writer, sheet_name=sheet_name, index=False)

        worksheet = writer.sheets[sheet_name]
        self.formatter.write_header(worksheet, columns)
        self.formatter.adjust_column_widths(worksheet, df)
        worksheet.freeze_panes(1, 0)
        if len(df):
            worksheet.autofilter(0, 0, len(df), len(columns) - 1)

        worksheet.set_tab_color(self._tab_color(result.confirmed, variance_count))
        self.logger.info(f"  ✓ Written {len(df)} rows to sheet '{sheet_name}'")
        return sheet_name

    def _tab_color(self, confirmed: bool, variance_count: int) -> str:
        if confirmed and variance_count > 0:
            return Settings.COLOR_RED
        if variance_count > 0:
            return Settings.COLOR_YELLOW
        return Settings.COLOR_GREEN

    def _write_validation_sheet(self, writer: pd.ExcelWriter, result: AnalysisResult,
                                used_names: set) -> str:
        sheet_name = unique_sheet_name(result.form_name[:31 - len(VALIDATION_SUFFIX)],
                                       used_names, suffix=VALIDATION_SUFFIX)
        self.logger.info(f"Processing Validation Errors: {result.form_name} ({result.form_code}) "
                         f"-> Sheet: {sheet_name}")

        rows = [{
            'Severity': v.severity,
            'Expression': v.expression,
            'Status': v.status,
            'Message': v.message or '',
            'Referenced Cells': '; '.join(f"{c.cell}={c.value}" for c in v.referenced_cells),
        } for v in result.validation_errors]
        df = pd.DataFrame(rows, columns=VALIDATION_COLUMNS)
        df.to_excel(writer, sheet_name=sheet_name, index=False)

        worksheet = writer.sheets[sheet_name]
        self.formatter.write_header(worksheet, VALIDATION_COLUMNS)
        self.formatter.adjust_column_widths(worksheet, df)
        worksheet.set_tab_color(Settings.COLOR_RED)
        self.logger.info(f"  ✓ Written {len(df)} rows to sheet '{sheet_name}'")
        return sheet_name
