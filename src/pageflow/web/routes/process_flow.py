"""Process flow execution, status, and cancellation endpoints.

All three act on the caller's session. ``execute`` answers with the
run's final status code and no body; stage failures therefore surface
as their stage-specific codes (e.g. 531).
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import PlainTextResponse

from pageflow.flow import (  # noqa: TC001
    ProcessFlowOrchestrator,
    ProcessFlowRequest,
    SessionState,
)
from pageflow.web.app import get_orchestrator, get_session


__all__ = ["router"]

router = APIRouter(prefix="/api/process-flow", tags=["process-flow"])

OrchestratorDep = Annotated[ProcessFlowOrchestrator, Depends(get_orchestrator)]
SessionDep = Annotated[SessionState, Depends(get_session)]


@router.post("/execute")
async def execute_process_flow(
    body: ProcessFlowRequest,
    orchestrator: OrchestratorDep,
    session: SessionDep,
) -> Response:
    """Run the requested stages for the session's project.

    The request returns once the run has finished, failed, or been
    cancelled. Status and cancel requests are served meanwhile.

    Args:
        body: Page ids, stages to run, and per-stage settings.
        orchestrator: The process flow orchestrator.
        session: The caller's session.

    Returns:
        Empty response with the run's final status code.
    """
    result = await orchestrator.execute(body, session)

    headers = {}
    if result.stopped_at is not None:
        headers["X-Stopped-At"] = result.stopped_at.value
    if result.cancelled:
        headers["X-Cancelled"] = "true"
    return Response(status_code=int(result.status_code), headers=headers)


@router.get("/current", response_class=PlainTextResponse)
async def current_process(
    orchestrator: OrchestratorDep,
    session: SessionDep,
) -> PlainTextResponse:
    """Return the wire name of the running stage, or an empty string."""
    stage = await orchestrator.current_stage(session)
    return PlainTextResponse(stage.value if stage is not None else "")


@router.post("/cancel")
async def cancel_process_flow(
    orchestrator: OrchestratorDep,
    session: SessionDep,
    terminate: bool = Query(default=False),  # noqa: FBT001
) -> dict[str, Any]:
    """Stop the session's run after its current stage.

    Args:
        orchestrator: The process flow orchestrator.
        session: The caller's session.
        terminate: Also signal the running stage to stop at once.

    Returns:
        The stage that was running when the cancel was accepted.
    """
    stage = await orchestrator.cancel(session, terminate_current=terminate)
    return {
        "cancelled_stage": stage.value,
        "terminate": terminate,
    }
