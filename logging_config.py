"""
Logging setup for PosterRotator.

One console handler for the operator and one rotating file handler that keeps
the per-item detail of every run. Modules only ever call get_logger(); the
entry point owns setup_logging().
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional

if "__compiled__" in globals() or getattr(sys, 'frozen', False):
    ROOT_DIR = Path(sys.argv[0]).parent
else:
    ROOT_DIR = Path(__file__).parent

# Can point next to the media server's own logs
LOGS_DIR = Path(os.getenv("POSTERROTATOR_LOGS_DIR", str(ROOT_DIR / "logs")))

CONSOLE_FORMAT = '%(levelname)s [%(name)s] %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'

# Third-party loggers that flood DEBUG output during downloads
NOISY_LOGGERS = ('PIL', 'urllib3', 'requests', 'asyncio')

# Rotate at 2MB, a large library run logs a few lines per item
MAX_LOG_BYTES = 2 * 1024 * 1024
LOG_BACKUPS = 5

_logging_initialized = False


def _level(name: str, default: int = logging.INFO) -> int:
    """Map a level name from settings to a logging constant, tolerating junk."""
    value = logging.getLevelName(str(name).strip().upper())
    return value if isinstance(value, int) else default


def setup_logging(
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    console: bool = True,
    log_file: Optional[str] = None,
    log_providers: bool = True
) -> Path:
    """
    Configure the root logger once per process.

    Args:
        console_level: Level for the console handler
        file_level: Level for the rotating file handler
        console: Disable to run quietly from a scheduled task
        log_file: File name inside LOGS_DIR (default: posterrotator.log)
        log_providers: When False, provider request chatter is cut to warnings

    Returns:
        Path of the active log file
    """
    global _logging_initialized
    log_path = LOGS_DIR / (log_file or "posterrotator.log")
    if _logging_initialized:
        return log_path

    LOGS_DIR.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers = []

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(_level(console_level))
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        root_logger.addHandler(console_handler)

    file_handler = logging.handlers.RotatingFileHandler(
        log_path,
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUPS,
        encoding='utf-8'
    )
    file_handler.setLevel(_level(file_level, logging.DEBUG))
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
    root_logger.addHandler(file_handler)

    logging.getLogger('providers').setLevel(
        _level(console_level) if log_providers else logging.WARNING
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    # Titles are often non-Latin
    if sys.platform.startswith('win'):
        sys.stdout.reconfigure(encoding='utf-8')
        sys.stderr.reconfigure(encoding='utf-8')

    _logging_initialized = True
    root_logger.debug(f"Logging to {log_path} (console={console_level}, file={file_level})")
    return log_path


def reset_logging() -> None:
    """Close handlers so setup_logging() can run again (tests, repeated CLI calls)."""
    global _logging_initialized
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        handler.close()
        root_logger.removeHandler(handler)
    _logging_initialized = False


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
