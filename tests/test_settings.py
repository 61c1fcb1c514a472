"""
Unit tests for settings and run configuration loading.
"""

import json
import pytest
import sys
from pathlib import Path

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from regvariance.config.settings import ConfigError, Settings, get_env, load_run_config, parse_run_config


class TestRunConfig:
    """Test cases for run configuration files."""

    @pytest.fixture
    def yaml_config(self, tmp_path):
        path = tmp_path / 'returns.yaml'
        path.write_text(
            "baseDate: 2025-06-30\n"
            "returns:\n"
            "  - code: ARF_110_0A\n"
            "    name: Capital Adequacy\n"
            "    confirmed: true\n"
            "  - code: ARF_210_0\n"
            "    name: Liquidity\n"
            "    expectedDate: '2025-03-31'\n"
            "excluded:\n"
            "  - code: ARF_720_0\n"
            "    name: Balance Sheet\n",
            encoding='utf-8'
        )
        return path

    def test_load_yaml(self, yaml_config):
        config = load_run_config(yaml_config)

        assert config.base_date == '2025-06-30'
        assert [rc.code for rc in config.returns] == ['ARF_110_0A', 'ARF_210_0']
        assert config.returns[0].confirmed is True
        assert config.returns[0].expected_date is None
        assert config.returns[1].expected_date == '2025-03-31'
        assert config.excluded[0].code == 'ARF_720_0'
        assert config.source == str(yaml_config)

    def test_load_json(self, tmp_path):
        path = tmp_path / 'returns.json'
        path.write_text(json.dumps({
            'baseDate': '2025-06-30',
            'returns': [{'code': 'ARF1', 'name': 'Capital'}],
        }), encoding='utf-8')

        config = load_run_config(path)

        assert config.returns[0].name == 'Capital'
        assert config.excluded == []

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_run_config(tmp_path / 'missing.yaml')

    def test_unparsable_file(self, tmp_path):
        path = tmp_path / 'broken.yaml'
        path.write_text("returns: [unclosed\n", encoding='utf-8')

        with pytest.raises(ConfigError):
            load_run_config(path)

    @pytest.mark.parametrize('data', [
        None,
        [],
        {'returns': [{'code': 'A', 'name': 'B'}]},
        {'baseDate': '30/06/2025', 'returns': [{'code': 'A', 'name': 'B'}]},
        {'baseDate': '2025-06-30', 'returns': []},
        {'baseDate': '2025-06-30', 'returns': [{'code': 'A'}]},
        {'baseDate': '2025-06-30', 'returns': [{'code': '', 'name': 'B'}]},
        {'baseDate': '2025-06-30', 'returns': ['ARF1']},
        {'baseDate': '2025-06-30', 'returns': [{'code': 'A', 'name': 'B', 'expectedDate': 'Q1'}]},
        {'baseDate': '2025-06-30', 'returns': [{'code': 'A', 'name': 'B'}], 'excluded': 'ARF2'},
    ])
    def test_invalid_configs(self, data):
        with pytest.raises(ConfigError):
            parse_run_config(data)


class TestSettings:
    """Test cases for environment-driven settings."""

    @pytest.fixture
    def settings(self):
        return Settings()

    def test_get_env_strips_quotes(self, monkeypatch):
        monkeypatch.setenv('REGVARIANCE_TEST_VALUE', '  "quoted"  ')

        assert get_env('REGVARIANCE_TEST_VALUE') == 'quoted'
        assert get_env('REGVARIANCE_TEST_UNSET', 'fallback') == 'fallback'

    def test_api_config(self, settings, monkeypatch):
        monkeypatch.setenv('API_BASE_URL', 'https://reporter.example.com')
        monkeypatch.setenv('ENTITY_CODE', 'XYZ')
        monkeypatch.setenv('VALIDATION_TIMEOUT_SECONDS', '90')

        api = settings.api_config

        assert api.base_url == 'https://reporter.example.com'
        assert api.entity_code == 'XYZ'
        assert api.validation_timeout == 90.0

    def test_concurrency_and_timeouts(self, settings, monkeypatch):
        monkeypatch.setenv('MAX_CONCURRENCY', '5')
        monkeypatch.delenv('CALL_TIMEOUT_SECONDS', raising=False)

        assert settings.max_concurrency == 5
        assert settings.call_timeout is None

    def test_missing_credentials(self, settings, monkeypatch):
        for key in ('APRA_USERNAME', 'PASSWORD', 'CLIENT_ID', 'CLIENT_SECRET'):
            monkeypatch.setenv(key, 'value')
        monkeypatch.delenv('CLIENT_SECRET')

        assert settings.missing_credentials() == ['CLIENT_SECRET']
