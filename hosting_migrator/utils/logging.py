"""
Logging setup for the Hosting Migrator.

This module provides structured JSON logging, rich console output,
log rotation and a per-migration logger that tags every record with
the migration it belongs to.
"""

import json
import logging
import logging.handlers
import sys
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler


class LogLevel(str, Enum):
    """Log levels for structured logging."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogCategory(str, Enum):
    """Categories for structured logging."""
    SYSTEM = "system"
    MIGRATION = "migration"
    TRANSFER = "transfer"
    PARSE = "parse"
    FILES = "files"
    DATABASE = "database"
    EMAIL = "email"
    DNS = "dns"
    STORE = "store"
    RETENTION = "retention"


# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED_RECORD_KEYS = frozenset([
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'getMessage',
    'exc_info', 'exc_text', 'stack_info', 'taskName', 'message', 'asctime',
])


@dataclass
class LogEntry:
    """Structured log entry with metadata."""
    timestamp: datetime = field(default_factory=datetime.now)
    level: LogLevel = LogLevel.INFO
    category: LogCategory = LogCategory.SYSTEM
    message: str = ""
    migration_id: Optional[str] = None
    user_id: Optional[str] = None
    step: Optional[str] = None
    duration: Optional[float] = None
    error_code: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert log entry to dictionary."""
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat()
        return data

    def to_json(self) -> str:
        """Convert log entry to JSON string."""
        return json.dumps(self.to_dict(), default=str)


class StructuredFormatter(logging.Formatter):
    """Formatter for structured JSON logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        log_entry = getattr(record, 'log_entry', None)

        if log_entry and isinstance(log_entry, LogEntry):
            return log_entry.to_json()

        log_entry = LogEntry(
            timestamp=datetime.fromtimestamp(record.created),
            level=LogLevel(record.levelname),
            message=record.getMessage(),
            metadata={
                'logger': record.name,
                'module': record.module,
                'function': record.funcName,
                'line': record.lineno,
            }
        )

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS:
                log_entry.metadata[key] = value

        if record.exc_info:
            log_entry.metadata['exception'] = self.formatException(record.exc_info)

        return log_entry.to_json()


def _plain_formatter() -> logging.Formatter:
    return logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    rich_console: bool = True,
    structured_logging: bool = False,
    log_rotation: bool = True,
    max_log_size: int = 50 * 1024 * 1024,  # 50MB
    backup_count: int = 5
) -> logging.Logger:
    """
    Set up logging for the Hosting Migrator.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        rich_console: Whether to use the Rich console handler
        structured_logging: Whether to emit structured JSON records
        log_rotation: Whether to enable log rotation
        max_log_size: Maximum log file size before rotation
        backup_count: Number of backup log files to keep

    Returns:
        The configured package logger
    """
    logger = logging.getLogger("hosting_migrator")
    logger.setLevel(getattr(logging, level.upper()))

    logger.handlers.clear()

    if rich_console and not structured_logging:
        console_handler = RichHandler(
            console=Console(stderr=True),
            show_time=True,
            show_path=False,
            rich_tracebacks=True
        )
    else:
        console_handler = logging.StreamHandler(sys.stdout)
        if structured_logging:
            console_handler.setFormatter(StructuredFormatter())
        else:
            console_handler.setFormatter(_plain_formatter())

    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        if log_rotation:
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=max_log_size,
                backupCount=backup_count
            )
        else:
            file_handler = logging.FileHandler(log_file)

        if structured_logging:
            file_handler.setFormatter(StructuredFormatter())
        else:
            file_handler.setFormatter(_plain_formatter())

        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance below the package logger."""
    return logging.getLogger(f"hosting_migrator.{name}")


class MigrationLogger:
    """Logger bound to one migration, emitting structured step events."""

    def __init__(
        self,
        migration_id: str,
        user_id: Optional[str] = None,
        structured: bool = False
    ):
        self.migration_id = migration_id
        self.user_id = user_id
        self.structured = structured
        self.logger = get_logger(f"migration.{migration_id}")

    def _log(
        self,
        level: LogLevel,
        message: str,
        category: LogCategory = LogCategory.MIGRATION,
        step: Optional[str] = None,
        duration: Optional[float] = None,
        error_code: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ):
        log_method = getattr(self.logger, level.value.lower())
        if self.structured:
            log_entry = LogEntry(
                level=level,
                category=category,
                message=message,
                migration_id=self.migration_id,
                user_id=self.user_id,
                step=step,
                duration=duration,
                error_code=error_code,
                metadata=metadata or {}
            )
            log_method(message, extra={'log_entry': log_entry})
        else:
            extra = {'migration_id': self.migration_id}
            extra.update(metadata or {})
            log_method(message, extra=extra)

    def debug(self, message: str, **kwargs):
        self._log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(LogLevel.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(LogLevel.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log(LogLevel.ERROR, message, **kwargs)

    def step_start(self, step_name: str, step_number: int):
        """Log step start."""
        self.info(
            f"Starting step {step_number}: {step_name}",
            step=step_name,
            metadata={'step_status': 'running', 'step_number': step_number}
        )

    def step_complete(self, step_name: str, duration: float, items: int = 0, errors: int = 0):
        """Log step completion."""
        self.info(
            f"Completed step: {step_name} (took {duration:.2f}s, {items} items, {errors} errors)",
            step=step_name,
            duration=duration,
            metadata={'step_status': 'completed', 'items': items, 'errors': errors}
        )

    def step_skipped(self, step_name: str, reason: str):
        """Log a step that had nothing to do."""
        self.info(
            f"Skipped step: {step_name} - {reason}",
            step=step_name,
            metadata={'step_status': 'skipped', 'reason': reason}
        )

    def step_failed(self, step_name: str, error: str, error_code: Optional[str] = None):
        """Log step failure."""
        self.error(
            f"Failed step: {step_name} - {error}",
            step=step_name,
            error_code=error_code,
            metadata={'step_status': 'failed', 'error_details': error}
        )

    def item_failed(self, step_name: str, item: str, error: str, category: LogCategory = LogCategory.MIGRATION):
        """Log a recoverable failure of one item."""
        self.warning(
            f"Item failed in {step_name}: {item} - {error}",
            category=category,
            step=step_name,
            metadata={'item': item, 'error_details': error}
        )
