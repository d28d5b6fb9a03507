"""Liveness and readiness probes."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from pageflow import __version__
from pageflow.config import Settings  # noqa: TC001
from pageflow.web.app import get_app_settings


__all__ = ["router"]

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health() -> dict[str, Any]:
    """Report that the process is up, with its version."""
    return {"status": "ok", "version": __version__}


@router.get("/ready")
async def ready(
    request: Request,
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> JSONResponse:
    """Report whether process flows can be served.

    Two checks must pass: the lifespan has created the orchestrator, and
    every stage has a worker able to run. An injected registry counts as
    complete; command workers need a configured command each. When stages
    are missing their wire names are listed under ``unconfigured_stages``.

    Returns:
        200 when ready, 503 otherwise.
    """
    state = request.app.state
    missing = [] if state.registry is not None else settings.stages.unconfigured()

    checks = {
        "orchestrator": getattr(state, "orchestrator", None) is not None,
        "stages": not missing,
    }
    ready_now = all(checks.values())

    body: dict[str, Any] = {
        "status": "ready" if ready_now else "not_ready",
        "checks": checks,
    }
    if missing:
        body["unconfigured_stages"] = [stage.value for stage in missing]
    return JSONResponse(body, status_code=200 if ready_now else 503)
