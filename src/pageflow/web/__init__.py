"""Web API (FastAPI)."""

from __future__ import annotations

from pageflow.web.app import (
    create_app,
    get_app_settings,
    get_orchestrator,
    get_session,
    get_session_store,
)


__all__ = [
    "create_app",
    "get_app_settings",
    "get_orchestrator",
    "get_session",
    "get_session_store",
]
