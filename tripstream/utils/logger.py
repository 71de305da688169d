"""Logging configuration using structlog."""

import logging
import sys
from typing import Any, Optional, TextIO

import structlog
from structlog.types import EventDict, Processor


def add_log_level(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add log level to event dict."""
    if method_name == "warn":
        method_name = "warning"
    event_dict["level"] = method_name.upper()
    return event_dict


def configure_logging(log_level: str = "INFO", stream: Optional[TextIO] = None) -> None:
    """
    Configure structlog for structured logging.

    Records from stdlib loggers (used by the agent modules) are rendered by
    the same processors, so a Director or generator line written inside a
    stream session carries that session's ``trip_id`` and ``request_id``.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        stream: Output stream (default: stdout)
    """
    shared: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    # JSON lines for production, console for development
    if log_level.upper() == "DEBUG":
        renderer: Processor = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    ))

    root = logging.getLogger()
    # Reconfiguring replaces our handler, never the ones installed by others
    for existing in list(root.handlers):
        if isinstance(existing.formatter, structlog.stdlib.ProcessorFormatter):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, log_level.upper()))

    structlog.configure(
        processors=shared + [
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def bind_stream_context(trip_id: str, request_id: str) -> None:
    """Attach the trip and request ids to every log line of the current task."""
    structlog.contextvars.bind_contextvars(trip_id=trip_id, request_id=request_id)


def clear_stream_context() -> None:
    structlog.contextvars.unbind_contextvars("trip_id", "request_id")


# Initialize logging on module import
from .config import settings

configure_logging(settings.log_level)
