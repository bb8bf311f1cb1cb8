"""
Logging and error handling framework for state-upgrader.

This module provides:
- Structured logging configuration
- The upgrader exception hierarchy
- Context-aware logging utilities
- Performance logging for migration steps
"""

import functools
import json
import logging
import sys
import time
import traceback
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any


class LogLevel(str, Enum):
    """Log level enumeration for type safety."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogContext(str, Enum):
    """Log context categories for structured logging."""

    PLAN = "plan"
    EXECUTOR = "executor"
    UPGRADER = "upgrader"
    STATE_STORE = "state_store"
    DATABASE = "database"
    CLI = "cli"


class UpgraderException(Exception):
    """Base exception class for all state-upgrader errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.timestamp = datetime.utcnow()


class ConfigurationError(UpgraderException):
    """Errors related to configuration and setup."""

    pass


class PlanConfigurationError(ConfigurationError):
    """A plan is invalid, or does not match the persisted state.

    Raised before any migration runs; retrying will not help.
    """

    pass


class UnknownStateError(PlanConfigurationError):
    """A state is not recognized by the plan (renamed or removed node)."""

    def __init__(self, plan_name: str, state: str):
        super().__init__(
            f"Plan '{plan_name}' does not know state '{state}'",
            context={"plan": plan_name, "state": state},
        )
        self.plan_name = plan_name
        self.state = state


class AmbiguousTransitionError(PlanConfigurationError):
    """More than one outgoing transition was declared for a state."""

    pass


class MigrationExecutionError(UpgraderException):
    """A migration failed while walking the plan."""

    def __init__(
        self,
        message: str,
        migration: Any = None,
        source_state: str | None = None,
        target_state: str | None = None,
        original_error: BaseException | None = None,
    ):
        super().__init__(
            message,
            context={
                "migration": str(migration) if migration is not None else None,
                "source_state": source_state,
                "target_state": target_state,
            },
        )
        self.migration = migration
        self.source_state = source_state
        self.target_state = target_state
        self.original_error = original_error


class IndeterminateStateError(UpgraderException):
    """Plan execution produced a null, empty or whitespace state."""

    pass


class StateStoreError(UpgraderException):
    """Errors reading or writing persisted upgrade state."""

    pass


class StateConflictError(StateStoreError):
    """A conditional state update found a different previous value."""

    pass


class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured JSON logging."""

    standard_fields = {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "getMessage",
        "context",
        "plan_name",
    }

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if hasattr(record, "context"):
            log_data["context"] = record.context

        if getattr(record, "plan_name", None):
            log_data["plan_name"] = record.plan_name

        for key, value in record.__dict__.items():
            if key not in self.standard_fields and not key.startswith("_"):
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_data, default=str)


class ContextualLogger:
    """Logger with context management for structured logging."""

    def __init__(self, name: str, context: LogContext):
        self.logger = logging.getLogger(name)
        self.context = context.value
        self.plan_name: str | None = None

    def set_plan_name(self, plan_name: str | None) -> None:
        """Set the plan name for all subsequent log messages."""
        self.plan_name = plan_name

    def _log(
        self,
        level: int,
        message: str,
        extra_context: dict[str, Any] | None = None,
        exception: BaseException | None = None,
    ) -> None:
        """Internal logging method with context injection."""
        extra: dict[str, Any] = {"context": self.context}

        if self.plan_name:
            extra["plan_name"] = self.plan_name

        if extra_context:
            extra.update(extra_context)

        self.logger.log(level, message, exc_info=exception, extra=extra)

    def debug(self, message: str, **kwargs) -> None:
        """Log debug message with context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs) -> None:
        """Log info message with context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs) -> None:
        """Log warning message with context."""
        self._log(logging.WARNING, message, kwargs)

    def error(
        self, message: str, exception: BaseException | None = None, **kwargs
    ) -> None:
        """Log error message with context and optional exception."""
        self._log(logging.ERROR, message, kwargs, exception)

    def critical(
        self, message: str, exception: BaseException | None = None, **kwargs
    ) -> None:
        """Log critical message with context and optional exception."""
        self._log(logging.CRITICAL, message, kwargs, exception)


def get_logger(name: str, context: LogContext) -> ContextualLogger:
    """Get a contextual logger instance."""
    return ContextualLogger(name, context)


def setup_logging(
    log_level: str | LogLevel = LogLevel.INFO,
    log_file: Path | None = None,
    enable_structured: bool = True,
    enable_console: bool = True,
) -> None:
    """
    Setup logging configuration.

    Args:
        log_level: Minimum log level to capture
        log_file: Optional file path for log output
        enable_structured: Use JSON structured logging format
        enable_console: Enable console output
    """
    if isinstance(log_level, LogLevel):
        log_level = log_level.value

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

    if enable_structured:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    handlers: list[logging.Handler] = []

    if enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        handlers.append(logging.NullHandler())

    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    # SQLAlchemy logs every statement at INFO when echo is on
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def log_performance(log_context: LogContext = LogContext.EXECUTOR):
    """Decorator to log function performance metrics."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger(func.__module__, log_context)

            start_time = time.time()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.warning(
                    f"Performance: {func.__name__} failed",
                    function=func.__name__,
                    execution_time=time.time() - start_time,
                    status="error",
                    error=str(e),
                )
                raise

            logger.debug(
                f"Performance: {func.__name__} completed",
                function=func.__name__,
                execution_time=time.time() - start_time,
                status="success",
            )
            return result

        return wrapper

    return decorator
