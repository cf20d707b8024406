"""
Logging module for HLS Recorder.
Console output is colored and tagged with the recording session; the log file
gets one pipe-separated line per record and is rotated by size.
"""

import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


LOGGER_NAME = 'hls_recorder'

# Chatty third-party loggers, kept at WARNING
QUIET_LOGGERS = ('telethon', 'aiohttp')


class Colors:
    RESET = "\033[0m"
    BOLD_RED = "\033[1;91m"
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    CYAN = "\033[96m"
    GRAY = "\033[90m"


def _component(record: logging.LogRecord) -> str:
    """Child logger name without the application prefix ("poller", "fetcher", ...)."""
    if record.name.startswith(LOGGER_NAME + '.'):
        return record.name[len(LOGGER_NAME) + 1:]
    return record.name


class ColoredFormatter(logging.Formatter):
    """Console formatter: time, level, session tag, component and message."""

    LEVEL_COLORS = {
        logging.DEBUG: Colors.GRAY,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD_RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Colors.RESET)
        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')

        session = getattr(record, 'session', None)
        session_str = f"{Colors.CYAN}[{session}]{Colors.RESET} " if session else ""

        message = (
            f"{Colors.GRAY}{timestamp}{Colors.RESET} "
            f"{color}{record.levelname:8}{Colors.RESET} "
            f"{session_str}{Colors.GRAY}{_component(record)}:{Colors.RESET} "
            f"{record.getMessage()}"
        )

        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"

        return message


class FileFormatter(logging.Formatter):
    """Plain formatter for file output."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S')
        session = getattr(record, 'session', '-')

        message = (
            f"{timestamp} | {record.levelname:8} | {session:24} | "
            f"{_component(record):10} | {record.getMessage()}"
        )

        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"

        return message


class SessionLoggerAdapter(logging.LoggerAdapter):
    """Tags every record with the recording session it belongs to."""

    def __init__(self, logger: logging.Logger, session: str):
        super().__init__(logger, {'session': session})

    def process(self, msg, kwargs):
        kwargs['extra'] = {**kwargs.get('extra', {}), 'session': self.extra['session']}
        return msg, kwargs


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_size_mb: int = 10,
    backup_count: int = 5
) -> logging.Logger:
    """
    Set up the application logger.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR).
        log_file: Path to log file. If None, logs only to console.
        max_size_mb: Maximum log file size before rotation.
        backup_count: Number of rotated files to keep.

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ColoredFormatter())
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(FileFormatter())
        logger.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Application logger, or its child `name`."""
    if name:
        return logging.getLogger(f'{LOGGER_NAME}.{name}')
    return logging.getLogger(LOGGER_NAME)


def get_session_logger(session: str, name: Optional[str] = None) -> SessionLoggerAdapter:
    """
    Get a logger adapter for one recording session.

    Args:
        session: Session name, usually the requested output file name.
        name: Optional child logger name.
    """
    return SessionLoggerAdapter(get_logger(name), session)
