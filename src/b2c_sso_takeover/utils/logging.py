"""
Centralized Logging Configuration

Provides unified logging for the deployment tool with per-run correlation IDs,
so a console transcript can be matched against the rotating log file.
"""

import os
import sys
import uuid
import socket
import time
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def _env_level(name: str, default: str) -> str:
    """Level name from the environment, default when unset or unknown"""
    level = os.getenv(name, default).strip().upper()
    return level if isinstance(logging.getLevelName(level), int) else default


# Default log levels - Use standard LOG_LEVEL variable with fallbacks
LOG_LEVEL = _env_level("LOG_LEVEL", "INFO")
DEFAULT_CONSOLE_LEVEL = _env_level("B2C_CONSOLE_LOG_LEVEL", LOG_LEVEL)
# File logging always captures DEBUG unless explicitly overridden
DEFAULT_FILE_LEVEL = _env_level("B2C_FILE_LOG_LEVEL", "DEBUG")

LOG_FILENAME = "b2c_sso_takeover.log"

# Store correlation ID (simple global variable approach)
_CORRELATION_ID = None

# Track configured loggers to prevent duplicate handlers
_CONFIGURED_LOGGERS = set()

# Set by configure_run_logging, applied to loggers created afterwards
_RUN_CONSOLE_LEVEL = None
_RUN_LOG_DIR = None


class CorrelationFilter(logging.Filter):
    """Prefix records with the current correlation ID when one is set."""

    def filter(self, record: logging.LogRecord) -> bool:
        correlation_id = get_correlation_id()
        record.correlation = f"[{correlation_id}] " if correlation_id else ""
        return True


def generate_correlation_id(prefix: str = "deploy") -> str:
    """
    Generate a globally unique correlation ID.

    Args:
        prefix: Identifier prefix (default: 'deploy')

    Returns:
        Unique correlation ID string
    """
    # Last part of hostname keeps the ID short but machine specific
    hostname = socket.gethostname().split('.')[-1]
    timestamp = int(time.time())
    random_part = uuid.uuid4().hex[:6]
    return f"{prefix}-{hostname}-{timestamp}-{random_part}"


def set_correlation_id(correlation_id: Optional[str]) -> None:
    """Set a correlation ID for the current run."""
    global _CORRELATION_ID
    _CORRELATION_ID = correlation_id


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID."""
    return _CORRELATION_ID


def get_logger(name: str, log_dir: Optional[Path] = None) -> logging.Logger:
    """
    Get a properly configured logger.

    Args:
        name: Logger name (typically __name__)
        log_dir: Directory for the rotating log file, console only when None

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)

    if name in _CONFIGURED_LOGGERS:
        return logger
    _CONFIGURED_LOGGERS.add(name)

    # Capture everything; filtering happens at handlers
    logger.setLevel(logging.DEBUG)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(_RUN_CONSOLE_LEVEL or DEFAULT_CONSOLE_LEVEL)
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(correlation)s%(message)s',
        '%Y-%m-%d %H:%M:%S'
    ))
    console_handler.addFilter(CorrelationFilter())
    logger.addHandler(console_handler)

    log_dir = log_dir or _RUN_LOG_DIR
    if log_dir:
        add_file_handler(logger, log_dir)

    if name != "root":
        logger.propagate = False

    return logger


def add_file_handler(logger: logging.Logger, log_dir: Path) -> None:
    """Attach the shared rotating file handler to an already configured logger."""
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, LOG_FILENAME)
    for handler in logger.handlers:
        if isinstance(handler, RotatingFileHandler) and handler.baseFilename == os.path.abspath(log_file):
            return

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=10*1024*1024,
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(DEFAULT_FILE_LEVEL)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(pathname)s:%(lineno)d - %(correlation)s%(message)s',
        '%Y-%m-%d %H:%M:%S'
    ))
    file_handler.addFilter(CorrelationFilter())
    logger.addHandler(file_handler)


def configure_run_logging(level: str, log_dir: Optional[Path] = None) -> None:
    """
    Apply the run's log level and file destination to every package logger.

    Called once by the CLI after settings are loaded.
    """
    global _RUN_CONSOLE_LEVEL, _RUN_LOG_DIR
    _RUN_CONSOLE_LEVEL = level.upper()
    _RUN_LOG_DIR = log_dir

    for name in list(_CONFIGURED_LOGGERS):
        logger = logging.getLogger(name)
        for handler in logger.handlers:
            if not isinstance(handler, RotatingFileHandler):
                handler.setLevel(level.upper())
        if log_dir:
            add_file_handler(logger, log_dir)
