"""
Structured logging utility for the paratransit client.

Provides JSON-formatted logging with identifier masking, context redaction,
and operation timing. Session tokens, credentials and addresses must never
reach a log line, so context values under sensitive keys are replaced before
serialisation.
"""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from functools import wraps

REDACTED = "***REDACTED***"

# Context keys whose values are always replaced, matched by substring
SENSITIVE_KEY_FRAGMENTS = (
    "password",
    "passcode",
    "cookie",
    "token",
    "secret",
    "address",
    "phone",
    "comments",
)

# Filters applied to every logger handed out by StructuredLogger
_shared_filters: List[logging.Filter] = []
_structured_loggers: Dict[str, logging.Logger] = {}


def register_log_filter(log_filter: logging.Filter) -> None:
    """
    Attach `log_filter` to every structured logger, existing and future.

    Filters on a parent logger do not see records from its children, so the
    filter is added to each named logger. Registering the same filter twice
    is a no-op.
    """
    if any(existing is log_filter for existing in _shared_filters):
        return
    _shared_filters.append(log_filter)
    for named_logger in _structured_loggers.values():
        named_logger.addFilter(log_filter)


def mask_identifier(value: Optional[str], visible: int = 4) -> str:
    """
    Mask an identifier (owner id, client id) for logs.

    Keeps the last `visible` characters so operators can correlate entries
    without exposing the full value.

    Example:
        >>> mask_identifier("user-1234567")
        "****4567"
        >>> mask_identifier("ab")
        "****"
    """
    if not value:
        return "unknown"

    text = str(value)
    if len(text) <= visible:
        return "****"

    return f"****{text[-visible:]}"


def redact_context(context: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Return a copy of `context` with sensitive values replaced."""
    if not context:
        return context

    cleaned: Dict[str, Any] = {}
    for key, value in context.items():
        lowered = str(key).lower()
        if any(fragment in lowered for fragment in SENSITIVE_KEY_FRAGMENTS):
            cleaned[key] = REDACTED
        elif isinstance(value, dict):
            cleaned[key] = redact_context(value)
        else:
            cleaned[key] = value
    return cleaned


class StructuredLogger:
    """
    JSON-formatted logger with context injection and operation timing.

    All log output is a single JSON object per line.
    """

    def __init__(self, name: str):
        """
        Initialize structured logger.

        Args:
            name: Logger name (typically __name__ from calling module)
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG)

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setLevel(logging.DEBUG)
            handler.setFormatter(logging.Formatter("%(message)s"))
            self.logger.addHandler(handler)

        _structured_loggers[name] = self.logger
        for log_filter in _shared_filters:
            self.logger.addFilter(log_filter)

    def _format_log(
        self,
        level: str,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[float] = None,
        error: Optional[str] = None,
    ) -> str:
        """
        Format log entry as JSON.

        Args:
            level: Log level (DEBUG, INFO, WARNING, ERROR)
            message: Human-readable message
            operation: Operation name (e.g., "login", "book_trip")
            context: Context dict; sensitive keys are redacted
            duration_ms: Operation duration in milliseconds
            error: Error message if applicable

        Returns:
            JSON-formatted log string
        """
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": level,
            "message": message,
        }

        if operation:
            log_entry["operation"] = operation

        if context:
            log_entry["context"] = redact_context(context)

        if duration_ms is not None:
            log_entry["duration_ms"] = round(duration_ms, 2)

        if error:
            log_entry["error"] = error

        return json.dumps(log_entry, ensure_ascii=False, default=str)

    def debug(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Log debug message."""
        self.logger.debug(self._format_log("DEBUG", message, operation, context))

    def info(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[float] = None,
    ):
        """Log info message."""
        self.logger.info(self._format_log("INFO", message, operation, context, duration_ms))

    def warning(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ):
        """Log warning message."""
        self.logger.warning(
            self._format_log("WARNING", message, operation, context, error=error)
        )

    def error(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        duration_ms: Optional[float] = None,
    ):
        """Log error message."""
        self.logger.error(
            self._format_log("ERROR", message, operation, context, duration_ms, error)
        )


def log_operation(operation_name: str):
    """
    Decorator to log operation start, duration, and completion.

    Arguments are never logged, only their count; an `owner_id` keyword is
    logged masked.

    Usage:
        @log_operation("get_trips")
        def get_trips(self, client_id, session):
            ...
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = StructuredLogger(func.__module__)

            context: Dict[str, Any] = {"function": func.__name__}
            if args:
                context["arg_count"] = len(args)
            if "owner_id" in kwargs:
                context["owner_masked"] = mask_identifier(kwargs["owner_id"])

            logger.debug(f"Starting {operation_name}", operation=operation_name, context=context)

            start_time = time.time()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                duration_ms = (time.time() - start_time) * 1000
                logger.error(
                    f"Failed {operation_name}",
                    operation=operation_name,
                    context=context,
                    error=type(e).__name__,
                    duration_ms=duration_ms,
                )
                raise

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                f"Completed {operation_name}",
                operation=operation_name,
                context=context,
                duration_ms=duration_ms,
            )
            return result

        return wrapper

    return decorator


def get_logger(name: str) -> StructuredLogger:
    """
    Factory function to get a structured logger instance.

    Args:
        name: Logger name (typically __name__ from calling module)

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(name)
