"""
Logging Configuration Module

Root logger setup for Cliptomic: rotating JSON-lines log file, optional
console output, and a privacy filter that keeps API credentials and home
directory paths out of the logs.
"""

import json
import logging
import logging.handlers
import re
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Optional

from .. import DEFAULT_LOG_DIR


class PrivacyFilter(logging.Filter):
    """Filter to sanitize sensitive information from log messages."""

    def __init__(self):
        super().__init__()
        self.sensitive_patterns = [
            # OpenRouter / OpenAI style keys
            (re.compile(r'sk-[A-Za-z0-9_\-]{8,}'), 'sk-[REDACTED]'),
            # Authorization headers
            (re.compile(r'Bearer\s+[A-Za-z0-9_\-\.]+'), 'Bearer [REDACTED]'),
            # User names in paths
            (re.compile(r'Users\\[^\\]+'), r'Users\\[USER]'),
            (re.compile(r'/home/[^/\s]+'), '/home/[USER]'),
        ]

    def sanitize(self, message: str) -> str:
        for pattern, replacement in self.sensitive_patterns:
            message = pattern.sub(replacement, message)
        return message

    def filter(self, record):
        """Filter log record to remove sensitive information."""
        if record.msg:
            # Merge args first so values passed as %-arguments are covered too
            message = record.getMessage()
            record.msg = self.sanitize(message)
            record.args = None

        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    RESERVED = frozenset([
        'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
        'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
        'thread', 'threadName', 'processName', 'process', 'getMessage',
        'exc_info', 'exc_text', 'stack_info', 'taskName', 'message',
    ])

    def __init__(self, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record):
        """Format log record as JSON."""
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if record.exc_info and record.exc_info[0]:
            log_data['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': traceback.format_exception(*record.exc_info)
            }

        if self.include_extra:
            for key, value in record.__dict__.items():
                if key not in self.RESERVED:
                    log_data[f'extra_{key}'] = value

        return json.dumps(log_data, default=str, ensure_ascii=False)


class ApplicationLogger:
    """
    Application logging manager.

    Owns the root logger's handlers; modules log through
    ``logging.getLogger(__name__)`` and inherit them.
    """

    def __init__(
        self,
        app_name: str = "cliptomic",
        log_dir: Optional[Path] = None,
        log_level: str = "INFO",
        max_file_size: int = 5 * 1024 * 1024,  # 5MB
        backup_count: int = 3,
        enable_console: bool = True,
        enable_json: bool = True,
        enable_privacy_filter: bool = True
    ):
        """
        Initialize application logger.

        Args:
            app_name: Application name for log file naming
            log_dir: Directory for log files (default: <app data>/logs)
            log_level: Minimum log level to capture
            max_file_size: Maximum size of each log file in bytes
            backup_count: Number of backup log files to keep
            enable_console: Whether to log to console
            enable_json: Whether to use JSON formatting for file logs
            enable_privacy_filter: Whether to apply privacy filtering
        """
        self.app_name = app_name
        self.log_dir = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
        self.log_level = getattr(logging, log_level.upper())
        self.max_file_size = max_file_size
        self.backup_count = backup_count
        self.enable_console = enable_console
        self.enable_json = enable_json
        self.enable_privacy_filter = enable_privacy_filter

        self.log_dir.mkdir(parents=True, exist_ok=True)

        self._configure_root_logger()

    @property
    def log_file(self) -> Path:
        return self.log_dir / f"{self.app_name}.log"

    def _configure_root_logger(self) -> None:
        """Configure the root logger with handlers."""
        root_logger = logging.getLogger()
        root_logger.setLevel(self.log_level)

        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()

        self._add_file_handler(root_logger)

        if self.enable_console:
            self._add_console_handler(root_logger)

        if self.enable_privacy_filter:
            privacy_filter = PrivacyFilter()
            for handler in root_logger.handlers:
                handler.addFilter(privacy_filter)

        # Keep per-request chatter from the HTTP stack out of INFO logs
        for noisy in ('httpx', 'httpcore', 'PIL'):
            logging.getLogger(noisy).setLevel(max(self.log_level, logging.WARNING))

    def _add_file_handler(self, logger: logging.Logger) -> None:
        """Add rotating file handler to logger."""
        file_handler = logging.handlers.RotatingFileHandler(
            self.log_file,
            maxBytes=self.max_file_size,
            backupCount=self.backup_count,
            encoding='utf-8'
        )

        if self.enable_json:
            file_handler.setFormatter(JSONFormatter())
        else:
            file_handler.setFormatter(
                logging.Formatter(
                    '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
                )
            )

        logger.addHandler(file_handler)

    def _add_console_handler(self, logger: logging.Logger) -> None:
        """Add console handler to logger."""
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(
            logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
        )
        logger.addHandler(console_handler)


def setup_logging(
    log_dir: Optional[Path] = None,
    log_level: str = "INFO",
    enable_console: bool = True,
    enable_json: bool = True
) -> ApplicationLogger:
    """
    Set up application logging.

    Args:
        log_dir: Directory for log files
        log_level: Minimum log level
        enable_console: Whether to log to console
        enable_json: Whether to use JSON formatting

    Returns:
        Configured ApplicationLogger instance
    """
    return ApplicationLogger(
        log_dir=log_dir,
        log_level=log_level,
        enable_console=enable_console,
        enable_json=enable_json
    )
