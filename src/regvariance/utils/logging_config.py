"""
Logging configuration for regulatory variance runs.

Console output goes through tqdm so log lines printed while a progress bar
is on screen do not tear it.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import colorama
from colorama import Fore, Style
from tqdm import tqdm

colorama.init()

CONSOLE_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s - [%(filename)s:%(lineno)d]'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Request-level chatter from these would drown the per-form messages
QUIET_LOGGERS = ('httpx', 'httpcore', 'xlsxwriter', 'asyncio')


class ColoredFormatter(logging.Formatter):
    """Colours the level name of console records."""

    COLORS = {
        'DEBUG': Fore.CYAN,
        'INFO': Fore.GREEN,
        'WARNING': Fore.YELLOW,
        'ERROR': Fore.RED,
        'CRITICAL': Fore.RED + Style.BRIGHT,
    }

    def format(self, record):
        # Work on a copy so the file handler still sees the plain level name
        record = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelname)
        if color:
            record.levelname = f"{color}{record.levelname}{Style.RESET_ALL}"
        return super().format(record)


class TqdmConsoleHandler(logging.StreamHandler):
    """Writes records above any active tqdm progress bar."""

    def emit(self, record):
        try:
            tqdm.write(self.format(record), file=self.stream)
            self.flush()
        except Exception:
            self.handleError(record)


def _console_handler(level: int) -> logging.Handler:
    handler = TqdmConsoleHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(ColoredFormatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _file_handler(log_file: str, level: int) -> logging.Handler:
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Configure the root logger for a run.

    Args:
        log_level: Logging level name; unknown names fall back to INFO
        log_file: Optional file that receives every record without colours
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    if not isinstance(level, int):
        level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.addHandler(_console_handler(level))
    if log_file:
        root_logger.addHandler(_file_handler(log_file, level))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.debug(f"Logging configured - Level: {logging.getLevelName(level)}")
    if log_file:
        logger.info(f"Writing log file: {log_file}")
