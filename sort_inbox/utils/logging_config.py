"""
Logging Configuration
=====================

Provides structured JSON logging with correlation IDs for run tracing.
Supports both console and file output with configurable log levels.
"""

import contextvars
import logging
import logging.handlers
import json
import sys
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from dataclasses import dataclass, field


# Correlation IDs follow the asyncio task that set them
_correlation_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "sort_inbox_correlation_id", default=None
)


def new_correlation_id() -> str:
    """Generate a short correlation ID."""
    return str(uuid.uuid4())[:8]


def get_correlation_id() -> str:
    """Get the current correlation ID for the running context."""
    correlation_id = _correlation_id.get()
    if correlation_id is None:
        correlation_id = new_correlation_id()
        _correlation_id.set(correlation_id)
    return correlation_id


def set_correlation_id(correlation_id: str) -> None:
    """Set a correlation ID for the current context."""
    _correlation_id.set(correlation_id)


class JSONFormatter(logging.Formatter):
    """Formats log records as JSON for structured logging."""

    EXTRA_FIELDS = ("note_path", "folder", "operation", "duration_ms")

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key in self.EXTRA_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        return json.dumps(log_data, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """Human-readable colored console formatter."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        """Format with colors for console output."""
        color = self.COLORS.get(record.levelname, '')
        timestamp = datetime.now().strftime('%H:%M:%S')

        msg = f"{color}[{timestamp}] {record.levelname:8}{self.RESET} "
        msg += f"[{get_correlation_id()}] "
        msg += f"{record.name}: {record.getMessage()}"

        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)

        return msg


@dataclass
class LoggingConfig:
    """Configuration for the logging system."""
    level: str = "INFO"
    log_dir: Path = field(default_factory=lambda: Path.home() / ".sort_inbox" / "logs")
    console_output: bool = True
    file_output: bool = False
    json_format: bool = False  # Use JSON for console
    max_file_size: int = 5 * 1024 * 1024  # 5MB
    backup_count: int = 3


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """Set up the logging system.

    Args:
        config: Logging configuration. Uses defaults if not provided.
    """
    if config is None:
        config = LoggingConfig()

    root_logger = logging.getLogger("sort_inbox")
    root_logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    root_logger.handlers.clear()

    if config.console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        if config.json_format:
            console_handler.setFormatter(JSONFormatter())
        else:
            console_handler.setFormatter(ConsoleFormatter())
        root_logger.addHandler(console_handler)

    if config.file_output:
        config.log_dir.mkdir(parents=True, exist_ok=True)
        log_file = config.log_dir / "sort_inbox.log"

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=config.max_file_size,
            backupCount=config.backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    root_logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a specific module.

    Args:
        name: Name of the module (typically __name__).

    Returns:
        Logger instance under the ``sort_inbox`` hierarchy.
    """
    if name == "sort_inbox" or name.startswith("sort_inbox."):
        return logging.getLogger(name)
    return logging.getLogger(f"sort_inbox.{name}")


class Timer:
    """Context manager for timing operations and logging duration."""

    def __init__(self, logger: logging.Logger, operation: str, level: int = logging.INFO):
        """Initialize timer.

        Args:
            logger: Logger to log the duration to.
            operation: Name of the operation being timed.
            level: Level of the completion record.
        """
        self.logger = logger
        self.operation = operation
        self.level = level
        self.start_time: Optional[float] = None
        self.duration_ms: float = 0.0

    def __enter__(self) -> "Timer":
        """Start the timer."""
        self.start_time = time.perf_counter()
        return self

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since the timer was entered."""
        if self.start_time is None:
            return 0.0
        return (time.perf_counter() - self.start_time) * 1000

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Stop the timer and log the duration."""
        self.duration_ms = round(self.elapsed_ms, 2)
        self.logger.log(
            self.level,
            f"Operation completed: {self.operation}",
            extra={"operation": self.operation, "duration_ms": self.duration_ms},
        )
        return False
