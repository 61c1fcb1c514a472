"""
Unit tests for ExcelExporter and sheet naming.
"""

import pytest
import pandas as pd
import sys
from pathlib import Path

from openpyxl import load_workbook

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from regvariance.data.models import AnalysisResult, Instance, ValidationCell, ValidationResult
from regvariance.reports.excel_exporter import ExcelExporter, parse_cell_value
from regvariance.reports.formatter import sanitize_sheet_name, unique_sheet_name


def make_result(code, name, variances=None, validation_errors=None, confirmed=False):
    return AnalysisResult(
        form_name=name,
        form_code=code,
        confirmed=confirmed,
        base_instance=Instance(f"{code}-b", '2025-06-30'),
        comparison_instance=Instance(f"{code}-c", '2025-03-31'),
        variances=variances or [],
        validation_errors=validation_errors or [],
    )


def variance_row(cell, before, after, diff):
    return {
        'Cell Reference': cell,
        'Cell Description': f"Description of {cell}",
        '2025-03-31': before,
        '2025-06-30': after,
        'Difference': diff,
        '% Difference': '',
    }


class TestSheetNames:
    """Test cases for sheet name rules."""

    def test_invalid_characters_replaced(self):
        assert sanitize_sheet_name('ARF 110.0 [Q/A]') == 'ARF 110.0 _Q_A_'

    def test_truncated_to_31(self):
        assert len(sanitize_sheet_name('x' * 40)) == 31

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            sanitize_sheet_name('   ')

    def test_invalid_max_length(self):
        with pytest.raises(ValueError):
            sanitize_sheet_name('Summary', max_length=40)

    def test_unique_names_case_insensitive(self):
        used = {'Summary'}

        first = unique_sheet_name('summary', used)
        second = unique_sheet_name('Summary', used)

        assert first == 'summary~2'
        assert second == 'Summary~3'
        assert len(used) == 3

    def test_unique_name_stays_within_limit(self):
        used = set()
        long_name = 'Capital Adequacy Standardised Approach'

        names = [unique_sheet_name(long_name, used) for _ in range(3)]

        assert len(set(names)) == 3
        assert all(len(n) <= 31 for n in names)


class TestParseCellValue:
    """Test cases for workbook cell conversion."""

    @pytest.mark.parametrize('value,expected', [
        ('42', 42),
        ('-3.5', -3.5),
        ('', None),
        (None, None),
        ('1,000', '1,000'),
        ('abc', 'abc'),
        (7.25, 7.25),
    ])
    def test_parse_cell_value(self, value, expected):
        assert parse_cell_value(value) == expected


class TestExcelExporter:
    """Test cases for workbook export."""

    @pytest.fixture
    def exporter(self):
        return ExcelExporter()

    @pytest.fixture
    def results(self):
        failed = ValidationResult(
            severity='Error', expression='A1 = B1', status='Fail', message='Totals differ',
            referenced_cells=[ValidationCell('A1', '5', 'ARF2-b', 'Main', 'ARF2', '2025-06-30')],
        )
        return [
            make_result('ARF2', 'Liquidity', [variance_row('B1', '10', '12', '2')],
                        validation_errors=[failed], confirmed=True),
            make_result('ARF1', 'Capital', [variance_row('A1', '5', '5', '0'),
                                            variance_row('A2 (Subtotal)', '1', '4', '3')]),
        ]

    def test_empty_results_write_nothing(self, exporter, tmp_path):
        output = tmp_path / 'out.xlsx'

        assert exporter.export([], str(output)) is None
        assert not output.exists()

    def test_summary_sheet(self, exporter, results, tmp_path):
        output = exporter.export(results, str(tmp_path / 'nested' / 'out.xlsx'))

        summary = pd.read_excel(output, sheet_name='Summary')

        assert list(summary['Form']) == ['ARF1', 'ARF2']
        assert list(summary['# Variances']) == [0, 1]
        assert list(summary['# Validation Errors']) == [0, 1]
        assert summary['Comparison Date'].astype(str).tolist() == ['2025-03-31', '2025-03-31']

    def test_sheet_order_and_names(self, exporter, results, tmp_path):
        output = exporter.export(results, str(tmp_path / 'out.xlsx'))

        workbook = load_workbook(output)

        assert workbook.sheetnames == ['Summary', 'Capital', 'Liquidity', 'Liquidity_ValidationErrors']

    def test_form_sheet_contents(self, exporter, results, tmp_path):
        output = exporter.export(results, str(tmp_path / 'out.xlsx'))

        sheet = pd.read_excel(output, sheet_name='Capital')

        assert list(sheet.columns) == ['Cell Reference', 'Cell Description', '2025-03-31',
                                       '2025-06-30', 'Difference', '% Difference']
        assert sheet['Difference'].tolist() == [0, 3]

    def test_validation_sheet_contents(self, exporter, results, tmp_path):
        output = exporter.export(results, str(tmp_path / 'out.xlsx'))

        sheet = pd.read_excel(output, sheet_name='Liquidity_ValidationErrors')

        assert sheet.loc[0, 'Expression'] == 'A1 = B1'
        assert sheet.loc[0, 'Referenced Cells'] == 'A1=5'

    def test_tab_colours(self, exporter, results, tmp_path):
        results.append(make_result('ARF3', 'Funding', [variance_row('C1', '1', '2', '1')]))
        output = exporter.export(results, str(tmp_path / 'out.xlsx'))

        workbook = load_workbook(output)
        colours = {name: workbook[name].sheet_properties.tabColor.rgb
                   for name in ('Capital', 'Funding', 'Liquidity')}

        assert colours['Capital'].endswith('00B050')
        assert colours['Funding'].endswith('FFFF00')
        assert colours['Liquidity'].endswith('FF0000')

    def test_duplicate_form_names_get_distinct_sheets(self, exporter, tmp_path):
        results = [make_result('ARF1', 'Capital'), make_result('ARF1A', 'Capital')]

        output = exporter.export(results, str(tmp_path / 'out.xlsx'))

        assert load_workbook(output).sheetnames == ['Summary', 'Capital', 'Capital~2']
