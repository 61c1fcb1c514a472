"""
Excel formatting utilities and sheet naming rules.
"""

import logging
from typing import Iterable, Set

import pandas as pd
import xlsxwriter

MAX_SHEET_NAME_LENGTH = 31
INVALID_SHEET_CHARS = ('\\', '/', '*', '?', ':', '[', ']')
REPLACEMENT_CHAR = '_'

logger = logging.getLogger(__name__)


def sanitize_sheet_name(name: str, max_length: int = MAX_SHEET_NAME_LENGTH,
                        replacement: str = REPLACEMENT_CHAR) -> str:
    """
    Make a string usable as an Excel sheet name.

    Args:
        name: Proposed sheet name
        max_length: Maximum length, at most 31
        replacement: Substitute for characters Excel rejects

    Returns:
        Sanitised name

    Raises:
        ValueError: For an empty name or an out-of-range max_length
    """
    if not name or not name.strip():
        raise ValueError("Sheet name cannot be empty")
    if max_length < 1 or max_length > MAX_SHEET_NAME_LENGTH:
        raise ValueError(f"Invalid max length: {max_length}")

    sanitized = ''.join(replacement if ch in INVALID_SHEET_CHARS else ch for ch in name)
    if len(sanitized) > max_length:
        logger.debug(f"Sheet name truncated: {name!r} -> {sanitized[:max_length]!r}")
        sanitized = sanitized[:max_length]
    return sanitized


def unique_sheet_name(name: str, used: Set[str], suffix: str = '') -> str:
    """
    Sanitised sheet name that does not collide with `used` (case-insensitive).

    The chosen name is added to `used`.
    """
    base = sanitize_sheet_name(name)
    candidate = (base + suffix)[:MAX_SHEET_NAME_LENGTH]
    taken = {n.lower() for n in used}
    counter = 2
    while candidate.lower() in taken:
        tag = f"~{counter}{suffix}"
        candidate = base[:MAX_SHEET_NAME_LENGTH - len(tag)] + tag
        counter += 1
    used.add(candidate)
    return candidate


class ExcelFormatter:
    """Excel formatting utilities for variance reports."""

    def __init__(self):
        self.formats = {}

    def add_formats(self, workbook: xlsxwriter.Workbook) -> None:
        """Add standard formats to workbook."""
        self.formats = {
            'header': workbook.add_format({
                'bold': True,
                'bg_color': '#2F75B5',
                'font_color': 'white',
                'valign': 'vcenter',
                'bottom': 1
            }),
            'issues': workbook.add_format({
                'bg_color': '#FFC7CE',
            }),
            'issues_bold': workbook.add_format({
                'bg_color': '#FFC7CE',
                'bold': True
            }),
            'clean': workbook.add_format({
                'bg_color': '#C6EFCE',
            }),
            'clean_bold': workbook.add_format({
                'bg_color': '#C6EFCE',
                'bold': True
            }),
        }

    def write_header(self, worksheet: xlsxwriter.worksheet.Worksheet, columns: Iterable[str]) -> None:
        for col, name in enumerate(columns):
            worksheet.write(0, col, name, self.formats['header'])

    def apply_summary_formatting(self, worksheet: xlsxwriter.worksheet.Worksheet,
                                 df: pd.DataFrame, start_row: int = 1) -> None:
        """Colour summary rows red when a form has variances or validation errors, green otherwise."""
        for i, (_, row) in enumerate(df.iterrows()):
            has_issues = row['# Variances'] > 0 or row['# Validation Errors'] > 0
            fill = 'issues' if has_issues else 'clean'
            for col in range(len(df.columns)):
                value = row.iloc[col]
                style = self.formats[f"{fill}_bold"] if col == 0 else self.formats[fill]
                worksheet.write(start_row + i, col, '' if pd.isna(value) else value, style)

    def adjust_column_widths(self, worksheet: xlsxwriter.worksheet.Worksheet,
                             df: pd.DataFrame, max_width: int = 120) -> None:
        """Adjust column widths based on content."""
        for i, column in enumerate(df.columns):
            max_length = len(str(column))
            for value in df.iloc[:, i]:
                if pd.notna(value):
                    max_length = max(max_length, len(str(value)))
            worksheet.set_column(i, i, min(max_length + 2, max_width))
