"""
Logging configuration for applications embedding gcs_oauth2.

The library itself only emits records; nothing is printed until an
application calls setup_logging(). Records go to a size-rotating JSON file
under a per-day folder and, in human-readable form, to stdout.
"""

import io
import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, Optional

from gcs_oauth2.logging.context import set_log_context
from gcs_oauth2.logging.formatters import ConsoleFormatter, JSONFormatter

DEFAULT_LOG_DIR = Path("logs")
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10MB
DEFAULT_BACKUP_COUNT = 5
DEFAULT_CONSOLE_LEVEL = logging.INFO
DEFAULT_FILE_LEVEL = logging.DEBUG

# HTTP client loggers that log every connection at DEBUG
NOISY_LOGGERS = (
    "urllib3",
    "urllib3.connectionpool",
    "requests",
)

PLAIN_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(filename)s:%(lineno)d] %(message)s"


def get_log_file_path(
    log_dir: Path,
    component: Optional[str] = None,
    instance_id: Optional[str] = None,
) -> Path:
    """
    Path of today's log file.

    Layout: {log_dir}/{YYYY-MM-DD}/{component}_{YYYYMMDD}[_{instance_id}].log

    Args:
        log_dir: Base log directory
        component: Filename prefix (default: "gcs_oauth2")
        instance_id: Suffix that keeps concurrent processes in separate files
    """
    today = datetime.now()
    stem = f"{component or 'gcs_oauth2'}_{today:%Y%m%d}"
    if instance_id:
        stem = f"{stem}_{instance_id}"
    return log_dir / f"{today:%Y-%m-%d}" / f"{stem}.log"


def _file_handler(
    log_file: Path, level: int, json_format: bool, max_bytes: int, backup_count: int
) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(
        JSONFormatter() if json_format else logging.Formatter(PLAIN_FILE_FORMAT)
    )
    return handler


def _console_handler(level: int) -> logging.Handler:
    stream = sys.stdout
    if sys.platform == "win32":
        # cp1252 consoles choke on non-ASCII principals and paths
        stream = io.TextIOWrapper(sys.stdout.buffer, encoding="utf-8", errors="replace")
    handler = logging.StreamHandler(stream)
    handler.setLevel(level)
    handler.setFormatter(ConsoleFormatter())
    return handler


def quiet_loggers(names: Iterable[str] = NOISY_LOGGERS, level: int = logging.WARNING) -> None:
    """Raise the threshold of chatty third-party loggers."""
    for name in names:
        logging.getLogger(name).setLevel(level)


def setup_logging(
    name: str = "gcs_oauth2",
    component: Optional[str] = None,
    log_dir: Optional[Path] = None,
    json_format: bool = True,
    console_level: int = DEFAULT_CONSOLE_LEVEL,
    file_level: int = DEFAULT_FILE_LEVEL,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    suppress_noisy: bool = True,
    use_instance_id: bool = True,
) -> logging.Logger:
    """
    Install console and rotating-file handlers on the root logger.

    Calling it again replaces the handlers installed by the previous call.

    Example file: logs/2025-01-15/gcs_oauth2_20250115_p12345.log

    Args:
        name: Logger to return
        component: Log context component and log file prefix
        log_dir: Base directory for log files (default: ./logs)
        json_format: JSON lines in the file (plain text otherwise)
        console_level: Threshold for stdout
        file_level: Threshold for the log file
        max_bytes: Rotate after this many bytes
        backup_count: Rotated files to keep
        suppress_noisy: Quiet urllib3/requests
        use_instance_id: Add the process ID to the file name

    Returns:
        The logger called ``name``
    """
    if component:
        set_log_context(component=component)

    log_file = get_log_file_path(
        log_dir or DEFAULT_LOG_DIR,
        component=component,
        instance_id=f"p{os.getpid()}" if use_instance_id else None,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()
    root_logger.addHandler(
        _file_handler(log_file, file_level, json_format, max_bytes, backup_count)
    )
    root_logger.addHandler(_console_handler(console_level))

    if suppress_noisy:
        quiet_loggers()

    logger = logging.getLogger(name)
    logger.debug("Logging initialized: file=%s, json=%s", log_file, json_format)
    return logger
