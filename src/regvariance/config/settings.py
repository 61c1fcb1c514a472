"""
Application settings and configuration management.
"""

import os
import re
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import yaml
from dotenv import load_dotenv

from regvariance.data.models import ReturnConfig, RunConfig

load_dotenv()

ISO_DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')


class ConfigError(Exception):
    """Raised when a run configuration file cannot be used."""


@dataclass(frozen=True)
class AuthConfig:
    """OAuth credentials for the reporting API."""
    url: str
    username: str
    password: str
    grant_type: str
    client_id: str
    client_secret: str


@dataclass(frozen=True)
class ApiConfig:
    """Reporting API endpoint settings."""
    base_url: str
    product_prefix: str = 'APRA'
    entity_code: str = 'PBL'
    request_timeout: float = 1200.0
    validation_timeout: float = 600.0


def get_env(key: str, default: str = '') -> str:
    """Read an environment variable, stripping whitespace and surrounding quotes."""
    value = os.getenv(key) or default
    return value.strip().strip('"\'')


class Settings:
    """Application settings and configuration."""

    # Excel constants
    EXCEL_SHEET_NAME_MAX_LENGTH = 31
    INVALID_SHEET_NAME_CHARS = ['\\', '/', '*', '?', ':', '[', ']']
    COLOR_YELLOW = '#FFFF00'
    COLOR_GREEN = '#00B050'
    COLOR_RED = '#FF0000'

    def __init__(self):
        self.project_root = Path(__file__).parent.parent.parent.parent
        self.data_dir = self.project_root / "data"
        self.output_dir = self.data_dir / "output"
        self.logger = logging.getLogger(__name__)

    @property
    def auth_config(self) -> AuthConfig:
        """Authentication configuration from environment variables."""
        return AuthConfig(
            url=get_env('AUTH_URL', 'https://example.com/token'),
            username=get_env('APRA_USERNAME'),
            password=get_env('PASSWORD'),
            grant_type=get_env('GRANT_TYPE', 'password'),
            client_id=get_env('CLIENT_ID'),
            client_secret=get_env('CLIENT_SECRET'),
        )

    @property
    def api_config(self) -> ApiConfig:
        """API configuration from environment variables."""
        return ApiConfig(
            base_url=get_env('API_BASE_URL', 'https://example.com'),
            product_prefix=get_env('PRODUCT_PREFIX', 'APRA'),
            entity_code=get_env('ENTITY_CODE', 'PBL'),
            request_timeout=float(get_env('REQUEST_TIMEOUT_SECONDS', '1200')),
            validation_timeout=float(get_env('VALIDATION_TIMEOUT_SECONDS', '600')),
        )

    @property
    def max_concurrency(self) -> int:
        """Number of forms analysed at the same time."""
        return int(get_env('MAX_CONCURRENCY', '3'))

    @property
    def call_timeout(self) -> Optional[float]:
        """Upper bound on a single gateway call as seen by the analyzer, if set."""
        value = get_env('CALL_TIMEOUT_SECONDS')
        return float(value) if value else None

    @property
    def max_retries(self) -> int:
        return int(get_env('MAX_RETRIES', '3'))

    @property
    def retry_initial_delay(self) -> float:
        return float(get_env('RETRY_INITIAL_DELAY_SECONDS', '1.0'))

    @property
    def retry_max_delay(self) -> float:
        return float(get_env('RETRY_MAX_DELAY_SECONDS', '30.0'))

    @property
    def default_output_file(self) -> str:
        """Default output file path."""
        return str(self.output_dir / "variance_results.xlsx")

    @property
    def database_path(self) -> str:
        """SQLite database holding saved reports."""
        return get_env('DATABASE_PATH', str(self.data_dir / "reports.db"))

    @property
    def log_level(self) -> str:
        """Logging level."""
        return get_env('LOG_LEVEL', 'INFO')

    @property
    def log_file(self) -> Optional[str]:
        return get_env('LOG_FILE') or None

    @property
    def excel_properties(self) -> Dict[str, str]:
        """Document properties written into exported workbooks."""
        return {
            'author': get_env('EXCEL_AUTHOR'),
            'title': get_env('EXCEL_TITLE'),
            'category': get_env('EXCEL_CATEGORY'),
        }

    def missing_credentials(self) -> List[str]:
        """Names of required credential variables that are not set."""
        required = ['APRA_USERNAME', 'PASSWORD', 'CLIENT_ID', 'CLIENT_SECRET']
        return [key for key in required if not get_env(key)]


def _parse_return(entry: Any, index: int, section: str) -> ReturnConfig:
    if not isinstance(entry, dict):
        raise ConfigError(f"{section}[{index}] must be a mapping")

    code = entry.get('code')
    name = entry.get('name')
    if not isinstance(code, str) or not code.strip():
        raise ConfigError(f"{section}[{index}]: form code is required")
    if not isinstance(name, str) or not name.strip():
        raise ConfigError(f"{section}[{index}]: form name is required")

    expected_date = entry.get('expectedDate')
    if expected_date is not None:
        expected_date = str(expected_date)
        if not ISO_DATE_PATTERN.match(expected_date):
            raise ConfigError(f"{section}[{index}] ({code}): invalid expectedDate {expected_date!r}, "
                              f"expected YYYY-MM-DD")

    return ReturnConfig(
        code=code.strip(),
        name=name.strip(),
        expected_date=expected_date,
        confirmed=bool(entry.get('confirmed', False)),
    )


def parse_run_config(data: Any, source: Optional[str] = None) -> RunConfig:
    """
    Validate a decoded run configuration.

    Args:
        data: Mapping with baseDate, returns and optional excluded lists
        source: Where the data came from, kept for reporting

    Returns:
        Validated run configuration

    Raises:
        ConfigError: If any required field is missing or malformed
    """
    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping")

    # YAML turns unquoted dates into date objects
    base_date = data.get('baseDate')
    base_date = str(base_date) if base_date is not None else None
    if not base_date or not ISO_DATE_PATTERN.match(base_date):
        raise ConfigError(f"Base date must be in YYYY-MM-DD format, got {base_date!r}")

    returns = data.get('returns')
    if not isinstance(returns, list) or not returns:
        raise ConfigError("At least one return must be configured")

    excluded = data.get('excluded') or []
    if not isinstance(excluded, list):
        raise ConfigError("excluded must be a list")

    return RunConfig(
        base_date=base_date,
        returns=[_parse_return(entry, i, 'returns') for i, entry in enumerate(returns)],
        excluded=[_parse_return(entry, i, 'excluded') for i, entry in enumerate(excluded)],
        source=source,
    )


def load_run_config(path: Union[str, Path]) -> RunConfig:
    """
    Load a run configuration from a YAML or JSON file.

    Raises:
        ConfigError: If the file is missing, unparsable or invalid
    """
    file_path = Path(path)
    logger = logging.getLogger(__name__)
    logger.info(f"Loading configuration from: {file_path}")

    if not file_path.exists():
        raise ConfigError(f"Configuration file not found: {file_path}")

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid configuration file {file_path}: {e}") from e

    config = parse_run_config(data, source=str(file_path))
    logger.info(f"Base date: {config.base_date}")
    logger.info(f"Number of returns: {len(config.returns)}")
    return config
