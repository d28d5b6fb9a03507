"""Observability (structured logging)."""

from __future__ import annotations

from pageflow.observability.logging import (
    LogFormat,
    LogLevel,
    bind_session_id,
    clear_request_context,
    configure_logging,
    generate_request_id,
    get_logger,
    get_request_id,
    set_request_id,
)


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
