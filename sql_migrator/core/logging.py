"""Secure structured logging for SQL Migrator.

This module provides logging with credential masking and optional
operation context tracking.

Features:
    - Masks passwords embedded in database URLs and ``password=`` pairs
    - JSON structured logging format
    - Operation context integration ([op=xxx][run=yyy] prefixes)
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone

# Patterns to mask in logs
SENSITIVE_PATTERNS = [
    (re.compile(r"(\w+(?:\+\w+)?://[^:/@\s]+:)[^@\s]+(@)"), r"\1***MASKED***\2"),
    (re.compile(r'password["\']?\s*[:=]\s*["\']?[^\s"\']+', re.I), "password=***MASKED***"),
]


def mask_secrets(message: str) -> str:
    """Apply all masking patterns to ``message``."""
    for pattern, replacement in SENSITIVE_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


def _get_operation_context() -> tuple[str | None, str | None]:
    """Get (operation, run_id) without importing at module level."""
    try:
        from sql_migrator.core.tracing import get_current_context

        ctx = get_current_context()
        if ctx:
            return ctx.operation, ctx.run_id
    except ImportError:
        pass
    return None, None


class SecureFormatter(logging.Formatter):
    """Formatter that masks credentials and includes operation context."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        include_trace_context: bool = True,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.include_trace_context = include_trace_context

    def format(self, record: logging.LogRecord) -> str:
        """Format log record, masking credentials and adding the operation prefix.

        Args:
            record: The log record to format.

        Returns:
            Formatted log message.
        """
        message = super().format(record)

        if self.include_trace_context:
            operation, run_id = _get_operation_context()
            if operation:
                prefix = f"[op={operation}][run={run_id}] "
                # "2024-01-15 10:30:00 - logger - LEVEL - message"
                parts = message.split(" - ", 3)
                if len(parts) == 4:
                    message = f"{parts[0]} - {parts[1]} - {parts[2]} - {prefix}{parts[3]}"
                else:
                    message = prefix + message

        return mask_secrets(message)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging with operation context."""

    def __init__(self, include_trace_context: bool = True) -> None:
        super().__init__()
        self.include_trace_context = include_trace_context

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, str | None] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_trace_context:
            operation, run_id = _get_operation_context()
            if operation:
                log_data["operation"] = operation
                log_data["run_id"] = run_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return mask_secrets(json.dumps(log_data))


def configure_logging(
    level: str = "INFO",
    json_format: bool = False,
    mask_sensitive: bool = True,
    include_trace_context: bool = True,
) -> None:
    """Configure logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR).
        json_format: Use JSON format for structured logging.
        mask_sensitive: Mask credentials in logs.
        include_trace_context: Include [op=xxx][run=yyy] in log messages.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)

    if json_format:
        formatter: logging.Formatter = JSONFormatter(include_trace_context=include_trace_context)
    elif mask_sensitive:
        formatter = SecureFormatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            include_trace_context=include_trace_context,
        )
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)
