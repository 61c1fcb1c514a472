"""
Excel reporting of analysis results.
"""

from .excel_exporter import ExcelExporter
from .formatter import ExcelFormatter, sanitize_sheet_name, unique_sheet_name

__all__ = ['ExcelExporter', 'ExcelFormatter', 'sanitize_sheet_name', 'unique_sheet_name']
