"""
Structured logging configuration with request and caller correlation.

Configures structlog on top of the standard library so every module can
log events with keyword context. Request IDs and the acting user ID are
carried in context variables and attached to each event automatically.
"""

import logging
import sys
import time
from datetime import datetime, timezone
from contextvars import ContextVar
from typing import Any, Optional
from uuid import uuid4

import structlog
from structlog.types import EventDict, Processor

from order_portal.core.config import get_settings

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")
user_id_ctx: ContextVar[Optional[str]] = ContextVar("user_id", default=None)

# Operations slower than this are logged at WARNING.
SLOW_OPERATION_MS = 500


def add_correlation_ids(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """
    Attach request and user IDs from context to the log event.

    Args:
        logger: Logger instance
        method_name: Log method name
        event_dict: Event dictionary to modify

    Returns:
        Event dictionary with request_id and user_id when set
    """
    request_id = request_id_ctx.get()
    if request_id:
        event_dict["request_id"] = request_id
    user_id = user_id_ctx.get()
    if user_id:
        event_dict["user_id"] = user_id
    return event_dict


def add_timestamp(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add an ISO 8601 UTC timestamp to the log event."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def add_logger_name(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add the originating logger name to the log event."""
    event_dict["logger"] = logger.name
    return event_dict


def configure_logging() -> None:
    """
    Configure structured logging.

    Uses a colored console renderer in development and JSON lines in every
    other environment. Safe to call more than once.
    """
    settings = get_settings()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_timestamp,
        add_logger_name,
        add_correlation_ids,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_development:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            )
        )
    else:
        processors.append(structlog.processors.JSONRenderer(ensure_ascii=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance
    """
    return structlog.get_logger(name)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set request ID in context for correlation.

    Args:
        request_id: Optional request ID, generates UUID if not provided

    Returns:
        Request ID that was set
    """
    if not request_id:
        request_id = str(uuid4())
    request_id_ctx.set(request_id)
    return request_id


def get_request_id() -> str:
    return request_id_ctx.get()


def set_user_id(user_id: Optional[str]) -> None:
    """Set the acting user ID in context for correlation."""
    user_id_ctx.set(user_id)


def clear_context() -> None:
    """
    Clear all correlation context variables.

    Called at the end of request processing so context never leaks
    between requests served by the same worker.
    """
    request_id_ctx.set("")
    user_id_ctx.set(None)


class PerformanceLogger:
    """Context manager that logs the duration of a block."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger,
        operation: str,
        **context: Any,
    ):
        self.logger = logger
        self.operation = operation
        self.context = context
        self.start_time: Optional[float] = None

    def __enter__(self) -> "PerformanceLogger":
        self.start_time = time.perf_counter()
        self.logger.debug(
            "Operation started",
            operation=self.operation,
            **self.context,
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.start_time is None:
            return

        duration_ms = round((time.perf_counter() - self.start_time) * 1000, 2)

        if exc_type is not None:
            self.logger.error(
                "Operation failed",
                operation=self.operation,
                duration_ms=duration_ms,
                error_type=exc_type.__name__,
                **self.context,
            )
            return

        log_method = (
            self.logger.warning if duration_ms > SLOW_OPERATION_MS else self.logger.info
        )
        log_method(
            "Operation completed",
            operation=self.operation,
            duration_ms=duration_ms,
            **self.context,
        )


def log_performance(
    logger: structlog.stdlib.BoundLogger,
    operation: str,
    **context: Any,
) -> PerformanceLogger:
    """
    Create performance logger context manager.

    Args:
        logger: Logger instance to use
        operation: Operation name for logging
        **context: Additional context to include in logs

    Returns:
        PerformanceLogger context manager

    Example:
        >>> logger = get_logger(__name__)
        >>> with log_performance(logger, "build_report", days=7):
        ...     report = await service.build_report(date_range)
    """
    return PerformanceLogger(logger, operation, **context)
