"""Structured logging for pageflow.

Events are emitted with structlog and handed to the stdlib ``logging``
root handler, so records from uvicorn and other libraries are rendered
by the same formatter as pageflow's own events. The request ID and the
session ID are kept in structlog's context variables and appear on
every event logged while a request is being handled.
"""

from __future__ import annotations

import logging
import sys
import uuid
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog
from structlog.contextvars import (
    bind_contextvars,
    clear_contextvars,
    get_contextvars,
    merge_contextvars,
)


if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger, Processor


__all__ = [
    "LogFormat",
    "LogLevel",
    "bind_session_id",
    "clear_request_context",
    "configure_logging",
    "generate_request_id",
    "get_logger",
    "get_request_id",
    "set_request_id",
]


class LogLevel(StrEnum):
    """Supported log levels."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    def to_stdlib_level(self) -> int:
        """Return the matching stdlib ``logging`` level constant."""
        return logging.getLevelNamesMapping()[self.name]


class LogFormat(StrEnum):
    """Log output format.

    ``AUTO`` picks ``CONSOLE`` when stderr is a terminal and ``LOGFMT``
    otherwise.
    """

    AUTO = "auto"
    CONSOLE = "console"
    LOGFMT = "logfmt"
    JSON = "json"


# ---------------------------------------------------------------------------
# Request context
# ---------------------------------------------------------------------------


def generate_request_id() -> str:
    """Return a new request ID of 8 hex characters."""
    return uuid.uuid4().hex[:8]


def get_request_id() -> str | None:
    """Return the request ID bound to the current context, if any."""
    return get_contextvars().get("request_id")


def set_request_id(request_id: str | None = None) -> str:
    """Bind a request ID, generating one when ``request_id`` is None."""
    request_id = request_id or generate_request_id()
    bind_contextvars(request_id=request_id)
    return request_id


def bind_session_id(session_id: str) -> None:
    """Bind a session ID to every following event in this context."""
    bind_contextvars(session_id=session_id)


def clear_request_context() -> None:
    """Drop the request ID, session ID, and any other bound context."""
    clear_contextvars()


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

# Leading keys of logfmt lines; the rest follow in insertion order.
_LOGFMT_KEYS = ["timestamp", "level", "event", "request_id", "session_id"]

_SHARED_PROCESSORS: list[Processor] = [
    merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
    structlog.processors.StackInfoRenderer(),
]


def _resolve_format(log_format: LogFormat) -> LogFormat:
    if log_format is not LogFormat.AUTO:
        return log_format
    isatty = getattr(sys.stderr, "isatty", None)
    return LogFormat.CONSOLE if isatty and isatty() else LogFormat.LOGFMT


def _render_chain(log_format: LogFormat) -> list[Processor]:
    """Return the processors that finish and render one event."""
    chain: list[Processor] = [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
    ]
    if log_format is LogFormat.CONSOLE:
        chain.append(
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            )
        )
    elif log_format is LogFormat.JSON:
        chain += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        chain += [
            structlog.processors.format_exc_info,
            structlog.processors.LogfmtRenderer(
                key_order=_LOGFMT_KEYS,
                drop_missing=True,
            ),
        ]
    return chain


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    *,
    log_format: LogFormat | str = LogFormat.AUTO,
) -> None:
    """Configure structlog and the stdlib root logger.

    May be called again to change level or format; the previous root
    handlers are replaced.

    Args:
        level: Minimum log level, as enum or case-insensitive string.
        log_format: Output format, as enum or case-insensitive string.

    Raises:
        ValueError: If ``level`` or ``log_format`` is not recognised.

    Example:
        >>> from pageflow.observability import configure_logging
        >>> configure_logging(level="debug", log_format="json")
    """
    level = LogLevel(level.lower()) if isinstance(level, str) else level
    log_format = _resolve_format(
        LogFormat(log_format.lower()) if isinstance(log_format, str) else log_format
    )
    numeric_level = level.to_stdlib_level()

    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.dev.set_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_SHARED_PROCESSORS,
            processors=_render_chain(log_format),
        )
    )

    root = logging.getLogger()
    for old in root.handlers[:]:
        root.removeHandler(old)
    root.addHandler(handler)
    root.setLevel(numeric_level)


def get_logger(
    name: str | None = None,
    **initial_context: object,
) -> FilteringBoundLogger:
    """Return a structlog logger, optionally with bound context.

    Example:
        >>> logger = get_logger(__name__, component="orchestrator")
        >>> logger.info("stage_started", stage="segmentation")
    """
    logger: FilteringBoundLogger = structlog.get_logger(name)
    return logger.bind(**initial_context) if initial_context else logger
