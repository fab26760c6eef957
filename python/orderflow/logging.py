"""Structured logging for orderflow.

Log calls take a message plus structured fields. Fields are rendered as
``key=value`` pairs after the message and attached to the record under
``extra["fields"]`` so handlers that format structured output can read
them without parsing.

Example:
    >>> from orderflow.logging import log_info, log_error
    >>>
    >>> log_info("Invoice created", {
    ...     "order_id": "1001",
    ...     "reference": "PRS 42",
    ... })
    >>>
    >>> try:
    ...     create_invoice()
    ... except Exception as e:
    ...     log_error(f"Invoice creation failed: {e}", {
    ...         "order_id": "1001",
    ...         "error_type": type(e).__name__,
    ...     })
"""

from __future__ import annotations

import logging
from typing import Any

from .types import LogContext

LOGGER_NAME = "orderflow"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_logger = logging.getLogger(LOGGER_NAME)


def setup_logging(level: str | int = "INFO") -> None:
    """Configure root logging for a process hosting orderflow.

    Args:
        level: Log level name or number.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    _logger.setLevel(level)


def log_error(message: str, fields: dict[str, Any] | LogContext | None = None) -> None:
    """Log an ERROR level message with structured fields.

    Use this for failures that need an operator to look at them.

    Args:
        message: The log message.
        fields: Optional structured fields for context. Can be a dict
                or a LogContext instance.
    """
    _emit(logging.ERROR, message, fields)


def log_warn(message: str, fields: dict[str, Any] | LogContext | None = None) -> None:
    """Log a WARN level message with structured fields.

    Use this for degraded operation or retryable failures.

    Args:
        message: The log message.
        fields: Optional structured fields for context.

    Example:
        >>> log_warn("Attempt 2 of 3 failed", {
        ...     "order_id": "1001",
        ...     "error_kind": "network",
        ... })
    """
    _emit(logging.WARNING, message, fields)


def log_info(message: str, fields: dict[str, Any] | LogContext | None = None) -> None:
    """Log an INFO level message with structured fields.

    Args:
        message: The log message.
        fields: Optional structured fields for context.
    """
    _emit(logging.INFO, message, fields)


def log_debug(message: str, fields: dict[str, Any] | LogContext | None = None) -> None:
    """Log a DEBUG level message with structured fields."""
    _emit(logging.DEBUG, message, fields)


def _emit(level: int, message: str, fields: dict[str, Any] | LogContext | None) -> None:
    if not _logger.isEnabledFor(level):
        return
    fields_dict = _normalize_fields(fields)
    if fields_dict:
        rendered = " ".join(f"{key}={value}" for key, value in fields_dict.items())
        message = f"{message} {rendered}"
    _logger.log(level, message, extra={"fields": fields_dict})


def _normalize_fields(fields: dict[str, Any] | LogContext | None) -> dict[str, str]:
    """Convert fields to a flat string dict, dropping None values.

    Args:
        fields: Fields as dict, LogContext, or None.

    Returns:
        Dictionary with string values.
    """
    if fields is None:
        return {}

    if isinstance(fields, LogContext):
        fields = fields.model_dump(exclude_none=True)

    return {str(k): str(v) for k, v in fields.items() if v is not None}


__all__ = [
    "LOGGER_NAME",
    "log_debug",
    "log_error",
    "log_info",
    "log_warn",
    "setup_logging",
]
