"""
Structured logging configuration for the Sparx card storage layer.

This module provides:
- JSON-formatted logs for production
- Human-readable logs for development
- Operation ID tracking across logs
- Log level configuration per module

Usage:
    from utils.logging import setup_logging, get_logger, operation_context

    # Setup once at application startup
    setup_logging()

    # Get a logger for your module
    logger = get_logger(__name__)
    logger.info("Saving card", extra={"card_id": "card_123"})

    # Group the log lines of one logical operation
    with operation_context("switch-provider"):
        logger.info("Switching")  # Automatically includes operation_id
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar, Token
from typing import Any, Optional

from utils.time import get_utc_time

# Context variable for operation ID tracking
_operation_id_ctx: ContextVar[Optional[str]] = ContextVar("operation_id", default=None)

_RESERVED_ATTRS = frozenset((
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName", "operation_id",
))


def get_operation_id() -> Optional[str]:
    """Get the current operation ID from context."""
    return _operation_id_ctx.get()


def set_operation_id(operation_id: Optional[str] = None) -> Token:
    """
    Set the operation ID in context.

    Args:
        operation_id: Optional operation ID. If not provided, generates a new one.

    Returns:
        Context token that restores the previous ID when reset.
    """
    if operation_id is None:
        operation_id = uuid.uuid4().hex[:8]
    return _operation_id_ctx.set(operation_id)


class OperationContextManager:
    """Context manager for operation ID tracking. Nested contexts restore the outer ID."""

    def __init__(self, operation_id: Optional[str] = None):
        self.operation_id = operation_id
        self._token: Optional[Token] = None

    def __enter__(self) -> str:
        self._token = set_operation_id(self.operation_id)
        self.operation_id = _operation_id_ctx.get()
        return self.operation_id

    def __exit__(self, *args):
        if self._token is not None:
            _operation_id_ctx.reset(self._token)
            self._token = None


def operation_context(operation_id: Optional[str] = None) -> OperationContextManager:
    """
    Create a context manager for operation ID tracking.

    Usage:
        with operation_context() as operation_id:
            logger.info("Processing")  # Includes operation_id automatically
    """
    return OperationContextManager(operation_id)


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for production environments.

    Outputs one JSON object per line, suitable for log aggregation.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": get_utc_time().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        operation_id = get_operation_id()
        if operation_id:
            log_data["operation_id"] = operation_id

        log_data["location"] = {
            "file": record.filename,
            "line": record.lineno,
            "function": record.funcName,
        }

        # Add any extra fields
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter for development.

    Includes colors for different log levels.
    """

    COLORS = {
        "DEBUG": "\033[36m",    # Cyan
        "INFO": "\033[32m",     # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",    # Red
        "CRITICAL": "\033[35m", # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        level = f"{color}{record.levelname:8}{self.RESET}"

        operation_id = get_operation_id()
        op_str = f"[{operation_id}] " if operation_id else ""

        timestamp = get_utc_time().strftime("%H:%M:%S")

        msg = f"{timestamp} {level} {op_str}{record.name}: {record.getMessage()}"

        if record.exc_info:
            msg += f"\n{self.formatException(record.exc_info)}"

        return msg


class OperationIDFilter(logging.Filter):
    """Filter that adds operation_id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.operation_id = get_operation_id() or "-"
        return True


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    module_levels: Optional[dict[str, str]] = None,
) -> None:
    """
    Configure application logging.

    Args:
        level: Default log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON format (True for production, False for development)
        module_levels: Optional dict of module names to log levels
            Example: {"sqlalchemy.engine": "INFO", "db.backends": "DEBUG"}
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))
    handler.addFilter(OperationIDFilter())

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(ConsoleFormatter())

    root_logger.addHandler(handler)

    if module_levels:
        for module, mod_level in module_levels.items():
            logging.getLogger(module).setLevel(getattr(logging, mod_level.upper()))

    # Quiet down noisy third-party loggers by default
    default_quiet = {
        "httpx": "WARNING",
        "httpcore": "WARNING",
        "hpack": "WARNING",
        "urllib3": "WARNING",
        "asyncio": "WARNING",
        "google": "WARNING",  # firebase-admin / grpc chatter
        "grpc": "WARNING",
        "sqlalchemy.engine": "WARNING",
        "sqlalchemy.pool": "WARNING",
    }
    for module, mod_level in default_quiet.items():
        if module_levels is None or module not in module_levels:
            logging.getLogger(module).setLevel(getattr(logging, mod_level.upper()))


def setup_logging_from_settings() -> None:
    """
    Configure logging from application settings.

    DEBUG forces debug-level output; production always logs JSON.
    """
    from app_settings import settings

    setup_logging(
        level="DEBUG" if settings.debug else settings.log_level,
        json_format=settings.log_json or settings.is_production,
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: Logger name, typically __name__

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
