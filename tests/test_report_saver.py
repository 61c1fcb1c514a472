"""
Unit tests for ReportSaver.
"""

import pytest
import sys
from pathlib import Path

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from regvariance.data.models import AnalysisResult, Instance, ReturnConfig, RunConfig, ValidationResult
from regvariance.storage.report_saver import STATUS_FAILED, ReportSaver


class TestReportSaver:
    """Test cases for report persistence."""

    @pytest.fixture
    def saver(self, tmp_path):
        return ReportSaver(str(tmp_path / 'db' / 'reports.db'))

    @pytest.fixture
    def run_config(self):
        return RunConfig(
            base_date='2025-06-30',
            returns=[ReturnConfig('ARF1', 'Capital'), ReturnConfig('ARF2', 'Liquidity')],
            source='/configs/quarter.yaml',
        )

    @pytest.fixture
    def results(self):
        return [
            AnalysisResult(
                form_name='Capital',
                form_code='ARF1',
                confirmed=True,
                base_instance=Instance('b1', '2025-06-30'),
                comparison_instance=Instance('c1', '2025-03-31'),
                variances=[
                    {'Cell Reference': 'A1', 'Cell Description': 'Loans', '2025-03-31': '10',
                     '2025-06-30': '15', 'Difference': '5', '% Difference': '50'},
                    {'Cell Reference': 'A2', 'Cell Description': 'Deposits', '2025-03-31': '7',
                     '2025-06-30': '7', 'Difference': '0', '% Difference': '0'},
                ],
                validation_errors=[
                    ValidationResult(severity='Error', expression='A1 = B1', status='Fail', message='Mismatch'),
                ],
            ),
            AnalysisResult(
                form_name='Liquidity',
                form_code='ARF2',
                confirmed=False,
                base_instance=Instance('b2', '2025-06-30'),
                comparison_instance=Instance('c2', '2024-12-31'),
            ),
        ]

    def test_save_and_get_report(self, saver, results, run_config):
        report_id = saver.save_report(results, run_config, '/out/variances.xlsx', 12.3456)

        report = saver.get_report(report_id)

        assert report_id.startswith('report-')
        assert report['base_date'] == '2025-06-30'
        assert report['total_returns'] == 2
        assert report['total_variances'] == 1
        assert report['total_validation_errors'] == 1
        assert report['config_file'] == 'quarter.yaml'
        assert report['output_file'] == 'variances.xlsx'
        assert report['duration'] == pytest.approx(12.346)
        assert report['status'] == 'completed'
        assert [f['form_code'] for f in report['forms']] == ['ARF1', 'ARF2']
        assert report['forms'][0]['confirmed'] == 1
        assert report['forms'][1]['comparison_date'] == '2024-12-31'

    def test_only_meaningful_variances_stored(self, saver, results, run_config):
        report_id = saver.save_report(results, run_config, None, 1.0)

        variances = saver.get_variances(report_id, 'ARF1')

        assert len(variances) == 1
        assert variances[0]['cell_reference'] == 'A1'
        assert variances[0]['comparison_value'] == '10'
        assert variances[0]['base_value'] == '15'

    def test_validation_errors_stored(self, saver, results, run_config):
        report_id = saver.save_report(results, run_config, None, 1.0)

        errors = saver.get_validation_errors(report_id, 'ARF1')

        assert errors[0]['expression'] == 'A1 = B1'
        assert errors[0]['message'] == 'Mismatch'
        assert saver.get_validation_errors(report_id, 'ARF2') == []

    def test_failed_run_without_results(self, saver, run_config):
        report_id = saver.save_report([], run_config, None, 0.5, status=STATUS_FAILED)

        report = saver.get_report(report_id)

        assert report['status'] == 'failed'
        assert report['output_file'] == ''
        assert report['forms'] == []

    def test_list_reports(self, saver, results, run_config):
        first = saver.save_report(results, run_config, None, 1.0)
        second = saver.save_report(results, run_config, None, 1.0)

        reports = saver.list_reports()

        assert {r['id'] for r in reports} == {first, second}
        assert len(saver.list_reports(limit=1)) == 1

    def test_in_memory_database_keeps_reports(self, results, run_config):
        saver = ReportSaver(':memory:')

        report_id = saver.save_report(results, run_config, None, 1.0)

        assert saver.get_report(report_id)['total_returns'] == 2
        assert [r['id'] for r in saver.list_reports()] == [report_id]
        assert len(saver.get_variances(report_id, 'ARF1')) == 1
        saver.close()

    def test_unknown_report(self, saver):
        assert saver.get_report('report-missing') is None
