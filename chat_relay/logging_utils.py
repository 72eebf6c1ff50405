"""
Centralized logging and error handling utilities for the chat relay.

This module provides decorators and helper functions to standardize logging
and error reporting across route handlers and upstream calls.

Features:
- Structured logging with contextual information
- Error classification into HTTP status codes and categories
- Performance timing for upstream operations
"""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, ParamSpec, TypeVar

import httpx
import structlog
from pydantic import ValidationError

from .exceptions import (
    ConfigurationError,
    RelayError,
    StreamProtocolError,
    UpstreamConnectionError,
    UpstreamHTTPError,
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

# Type variables for generic decorators
P = ParamSpec("P")
T = TypeVar("T")
AsyncCallable = Callable[P, Awaitable[T]]

logger = structlog.get_logger(__name__)


def configure_logging(logging_config: dict[str, Any]) -> None:
    """Apply the ``logging`` section of config.yaml to the stdlib root logger."""
    level_name = str(logging_config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, None)
    if not isinstance(level, int):
        raise ValueError(f"Unknown logging level '{level_name}'")

    logging.basicConfig(
        level=level,
        format=logging_config.get("format", "%(message)s"),
    )
    logging.getLogger().setLevel(level)


class ErrorClassifier:
    """Maps exceptions to HTTP status codes and log categories."""

    @staticmethod
    def classify(error: Exception) -> tuple[int, str]:
        """
        Classify an error and return the response status and error category.

        Args:
            error: The exception to classify

        Returns:
            Tuple of (http_status, error_category)
        """
        if isinstance(error, ConfigurationError):
            return error.status_code or 500, "configuration_error"
        if isinstance(error, UpstreamHTTPError):
            return error.status_code, "upstream_http_error"
        if isinstance(error, UpstreamConnectionError):
            return error.status_code or 500, "upstream_connection_error"
        if isinstance(error, StreamProtocolError):
            return 502, "protocol_error"
        if isinstance(error, RelayError):
            return error.status_code or 500, "relay_error"
        if isinstance(error, ValidationError):
            return 422, "validation_error"
        if isinstance(error, TimeoutError | httpx.TimeoutException):
            return 500, "timeout_error"
        if isinstance(error, ConnectionError | OSError | httpx.TransportError):
            return 500, "connection_error"
        if isinstance(error, ValueError | TypeError):
            return 400, "parameter_error"
        return 500, "unknown_error"

    @staticmethod
    def to_payload(error: Exception, fallback: str = "Internal Server Error") -> dict:
        """Build the ``{code, message, data}`` payload for any exception."""
        if isinstance(error, RelayError):
            return error.to_payload()
        return {"code": -1, "message": str(error) or fallback, "data": None}


def log_operation(
    operation: str,
    *,
    log_args: bool = False,
    log_timing: bool = True,
    context: dict[str, Any] | None = None,
) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """
    Decorator for logging async operations with structured context.

    Args:
        operation: Description of the operation being performed
        log_args: Whether to log function arguments
        log_timing: Whether to log execution timing
        context: Additional context to include in logs

    Returns:
        Decorated function with logging
    """
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            operation_logger = logger.bind(
                operation=operation,
                function=func.__name__,
                **(context or {}),
            )

            log_data = {}
            if log_args:
                log_data.update({
                    "args": args[1:] if args else [],  # Skip 'self' if present
                    "kwargs": kwargs,
                })

            operation_logger.debug("Operation started", **log_data)

            start_time = time.perf_counter() if log_timing else None

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                error_log_data: dict[str, Any] = {
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                }
                if log_timing and start_time is not None:
                    duration = round((time.perf_counter() - start_time) * 1000, 2)
                    error_log_data["duration_ms"] = duration

                operation_logger.error("Operation failed", **error_log_data)
                raise

            end_log_data: dict[str, Any] = {}
            if log_timing and start_time is not None:
                duration = round((time.perf_counter() - start_time) * 1000, 2)
                end_log_data["duration_ms"] = duration

            operation_logger.info("Operation completed successfully", **end_log_data)
            return result

        return wrapper
    return decorator


@asynccontextmanager
async def operation_context(
    operation: str,
    *,
    context: dict[str, Any] | None = None,
    log_timing: bool = True,
):
    """
    Async context manager for operation logging.

    Args:
        operation: Description of the operation
        context: Additional context for logging
        log_timing: Whether to log operation timing

    Yields:
        Bound logger for the operation
    """
    operation_logger = logger.bind(
        operation=operation,
        **(context or {}),
    )

    operation_logger.debug("Operation started")
    start_time = time.perf_counter() if log_timing else None

    try:
        yield operation_logger
    except Exception as e:
        error_log_data: dict[str, Any] = {
            "error_type": type(e).__name__,
            "error_message": str(e),
        }
        if log_timing and start_time is not None:
            duration = round((time.perf_counter() - start_time) * 1000, 2)
            error_log_data["duration_ms"] = duration

        operation_logger.error("Operation failed", **error_log_data)
        raise

    log_data: dict[str, Any] = {}
    if log_timing and start_time is not None:
        duration = round((time.perf_counter() - start_time) * 1000, 2)
        log_data["duration_ms"] = duration

    operation_logger.info("Operation completed successfully", **log_data)
