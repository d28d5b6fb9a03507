"""API routes."""

from __future__ import annotations

from pageflow.web.routes.health import (
    router as health_router,
)
from pageflow.web.routes.process_flow import (
    router as process_flow_router,
)
from pageflow.web.routes.session import (
    router as session_router,
)


__all__ = ["health_router", "process_flow_router", "session_router"]
