"""Structured logging for generation sessions.

Every event emitted while a session's lock is held carries the session id
(and the dispatched operation, if any) through context variables, so logs of
interleaved sessions can be told apart.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Mapping

import structlog

session_id_var: ContextVar[str] = ContextVar("session_id", default="")
operation_var: ContextVar[str] = ContextVar("operation", default="")

# Accepted level names (config and CLI) -> stdlib levels
LOG_LEVELS: Mapping[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def set_session_context(session_id: str, operation: str = "") -> None:
    """Tag subsequent events with a session (and optionally an operation)."""
    session_id_var.set(session_id)
    operation_var.set(operation)


def clear_session_context() -> None:
    session_id_var.set("")
    operation_var.set("")


def add_session_context(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Add the active session id and operation; an explicit session_id wins."""
    session_id = session_id_var.get()
    if session_id:
        event_dict.setdefault("session_id", session_id)

    operation = operation_var.get()
    if operation:
        event_dict["operation"] = operation

    return event_dict


def add_timestamp(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Add ISO format timestamp to log events."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def configure_logging(
    level: str = "info",
    format_type: str = "json",
    stream: Any = None,
) -> None:
    """
    Configure structured logging for the state machine and CLI.

    Args:
        level: One of LOG_LEVELS (unknown names fall back to info)
        format_type: 'json' for one JSON object per line, 'text' for console output
        stream: Output stream (default: sys.stderr at call time)
    """
    if stream is None:
        stream = sys.stderr

    log_level = LOG_LEVELS.get(level.lower(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=stream, level=log_level)

    processors: list[structlog.types.Processor] = [
        structlog.stdlib.add_log_level,
        add_timestamp,
        add_session_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if format_type == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(stream),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a logger for a module.

    Args:
        name: Logger name, added to every event as ``logger_name``

    Returns:
        Lazy structlog logger that follows later configure_logging calls
    """
    if name:
        return structlog.get_logger(logger_name=name)
    return structlog.get_logger()


# Initialize with defaults on import
configure_logging()
