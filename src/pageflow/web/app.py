"""FastAPI application factory for pageflow.

``create_app`` wires three layers around the routers:

* middleware: request ID (outermost), then the session cookie;
* exception handlers: every error leaves as ``{"detail", "error_type"}``
  JSON, with ``ProcessFlowError`` subclasses keeping their own status;
* lifespan: builds the orchestrator and session store and sweeps idle
  sessions in the background.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import (
    BaseHTTPMiddleware,
    RequestResponseEndpoint,
)
from starlette.responses import Response  # noqa: TC002

from pageflow.flow import ProcessFlowError
from pageflow.observability import (
    clear_request_context,
    get_logger,
    set_request_id,
)
from pageflow.web.session import get_session_id


if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from pageflow.config import Settings
    from pageflow.flow import (
        ProcessFlowOrchestrator,
        SessionState,
        SessionStore,
        StageRegistry,
    )


__all__ = [
    "create_app",
    "get_app_settings",
    "get_orchestrator",
    "get_session",
    "get_session_store",
]

logger = get_logger(__name__)

SESSION_SWEEP_INTERVAL_SECONDS = 60


# -------------------------------------------------------------------
# Lifespan
# -------------------------------------------------------------------


async def _sweep_sessions(store: SessionStore, interval: float) -> None:
    """Drop idle sessions every ``interval`` seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        removed = await store.cleanup_expired()
        if removed:
            logger.debug("sessions_expired", removed=removed)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the flow services on startup and stop the sweeper on shutdown.

    A registry passed to ``create_app`` is used as is. Otherwise one
    command worker per stage is built from ``settings.stages``.
    """
    from pageflow.flow import ProcessFlowOrchestrator, SessionStore
    from pageflow.stages import create_registry

    settings: Settings = app.state.settings
    registry: StageRegistry | None = app.state.registry
    if registry is None:
        registry = create_registry(settings)
        if missing := settings.stages.unconfigured():
            logger.warning(
                "stages_unconfigured",
                stages=[stage.value for stage in missing],
            )

    store = SessionStore(idle_ttl_seconds=settings.sessions.idle_ttl_seconds)
    app.state.session_store = store
    app.state.orchestrator = ProcessFlowOrchestrator(registry=registry)

    sweeper = asyncio.create_task(
        _sweep_sessions(store, SESSION_SWEEP_INTERVAL_SECONDS),
    )
    logger.info(
        "app_started",
        host=settings.web.host,
        port=settings.web.port,
        stages=len(registry),
    )
    try:
        yield
    finally:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
        logger.info("app_stopped", sessions=len(store))


# -------------------------------------------------------------------
# Middleware
# -------------------------------------------------------------------


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Bind a request ID to the log context and echo it back.

    An incoming ``X-Request-ID`` header is reused; otherwise a new ID is
    generated. The context is cleared first so nothing leaks between
    requests served by the same task.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        clear_request_context()
        request_id = set_request_id(request.headers.get("x-request-id"))

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# -------------------------------------------------------------------
# Exception handlers
# -------------------------------------------------------------------


def _error_response(status_code: int, detail: str, error_type: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "error_type": error_type},
    )


def _register_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers.

    Args:
        app: The FastAPI application.
    """

    @app.exception_handler(ProcessFlowError)
    async def flow_error_handler(
        _request: Request,
        exc: ProcessFlowError,
    ) -> JSONResponse:
        """Answer a rejected flow request with the error's own status."""
        logger.warning(
            "request_failed",
            error=str(exc),
            error_type=type(exc).__name__,
            status_code=exc.status_code,
        )
        return _error_response(exc.status_code, str(exc), type(exc).__name__)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        _request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        """Answer a malformed request body or query with 400."""
        problems = [
            ".".join(str(part) for part in error.get("loc", ()))
            + f": {error.get('msg', 'invalid')}"
            for error in exc.errors()
        ]
        logger.info("request_rejected", problems=problems)
        return _error_response(
            400,
            "; ".join(problems) or "Malformed request",
            "RequestValidationError",
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(
        _request: Request,
        exc: Exception,
    ) -> JSONResponse:
        logger.exception("unhandled_error", error_type=type(exc).__name__)
        return _error_response(500, "Internal server error", type(exc).__name__)


# -------------------------------------------------------------------
# Dependency helpers
# -------------------------------------------------------------------


def get_app_settings(request: Request) -> Settings:
    """FastAPI dependency: get application settings."""
    return request.app.state.settings  # type: ignore[no-any-return]


def get_session_store(request: Request) -> SessionStore:
    """FastAPI dependency: get the session store."""
    return request.app.state.session_store  # type: ignore[no-any-return]


def get_orchestrator(request: Request) -> ProcessFlowOrchestrator:
    """FastAPI dependency: get the process flow orchestrator."""
    return request.app.state.orchestrator  # type: ignore[no-any-return]


async def get_session(request: Request) -> SessionState:
    """FastAPI dependency: get the request's session, creating it if new."""
    return await get_session_store(request).get_or_create(get_session_id(request))


# -------------------------------------------------------------------
# Application factory
# -------------------------------------------------------------------


def create_app(
    settings: Settings | None = None,
    *,
    registry: StageRegistry | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings. If None, loads from default
            configuration sources via ``get_settings()``.
        registry: Stage workers to use. If None, command workers are
            built from ``settings.stages`` at startup.

    Returns:
        Configured FastAPI application instance.
    """
    from pageflow import __version__
    from pageflow.config import get_settings
    from pageflow.web.routes import (
        health_router,
        process_flow_router,
        session_router,
    )
    from pageflow.web.session import SessionMiddleware

    app = FastAPI(
        title="pageflow",
        version=__version__,
        description="Process flow orchestration for page-image pipelines",
        lifespan=_lifespan,
    )
    app.state.settings = settings or get_settings()
    app.state.registry = registry

    # Added last runs first: request IDs are bound before the session ID.
    app.add_middleware(SessionMiddleware)
    app.add_middleware(RequestIDMiddleware)

    _register_exception_handlers(app)

    for router in (health_router, session_router, process_flow_router):
        app.include_router(router)

    return app
