"""
Unit tests for logging configuration.
"""

import io
import logging
import pytest
import sys
from pathlib import Path

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from regvariance.utils.logging_config import ColoredFormatter, TqdmConsoleHandler, setup_logging


class TestLoggingConfig:
    """Test cases for setup_logging and its handlers."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        for handler in list(root.handlers):
            root.removeHandler(handler)
            if handler not in handlers:
                handler.close()
        for handler in handlers:
            root.addHandler(handler)
        root.setLevel(level)

    def test_file_log_has_plain_level_names(self, tmp_path):
        log_file = tmp_path / 'logs' / 'run.log'
        setup_logging('INFO', str(log_file))

        logging.getLogger('regvariance.test').warning('Skipping ARF1')
        for handler in logging.getLogger().handlers:
            handler.flush()

        content = log_file.read_text(encoding='utf-8')
        assert ' - WARNING - Skipping ARF1' in content
        assert '\x1b[' not in content

    def test_unknown_level_falls_back_to_info(self):
        setup_logging('chatty')

        assert logging.getLogger().level == logging.INFO

    def test_third_party_loggers_quietened(self):
        setup_logging('DEBUG')

        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger('httpx').level == logging.WARNING

    def test_colored_formatter_leaves_record_untouched(self):
        record = logging.LogRecord('x', logging.ERROR, __file__, 1, 'boom', None, None)

        output = ColoredFormatter('%(levelname)s %(message)s').format(record)

        assert 'boom' in output
        assert '\x1b[' in output
        assert record.levelname == 'ERROR'

    def test_console_handler_writes_to_stream(self):
        stream = io.StringIO()
        handler = TqdmConsoleHandler(stream)
        handler.setFormatter(logging.Formatter('%(message)s'))

        handler.emit(logging.LogRecord('x', logging.INFO, __file__, 1, 'Fetching ARF1', None, None))

        assert stream.getvalue().strip() == 'Fetching ARF1'
