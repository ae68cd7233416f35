"""
Logging setup for the API process and the seed scripts.
"""

import logging
import sys
from typing import Optional

import colorama
from colorama import Fore, Style

colorama.init()

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Libraries that flood INFO with per-query / per-request lines
QUIET_LOGGERS = ('sqlalchemy.engine', 'uvicorn.access', 'passlib')


class ColoredFormatter(logging.Formatter):
    LEVEL_COLORS = {
        'DEBUG': Fore.CYAN,
        'WARNING': Fore.YELLOW,
        'ERROR': Fore.RED,
        'CRITICAL': Fore.RED + Style.BRIGHT,
    }

    def format(self, record):
        color = self.LEVEL_COLORS.get(record.levelname)
        if not color:
            return super().format(record)
        # Copy so the file handler keeps the plain level name
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{color}{record.levelname}{Style.RESET_ALL}"
        return super().format(record)


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Send colored logs to stdout and, when ``log_file`` is set, plain logs to that file."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    handlers = [logging.StreamHandler(sys.stdout)]
    handlers[0].setFormatter(ColoredFormatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    if log_file:
        file_handler = logging.FileHandler(log_file, mode='a')
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    for handler in handlers:
        root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"Logging configured at {logging.getLevelName(level)}")
