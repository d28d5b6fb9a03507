"""Session endpoints: inspect the session and open a project."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from pageflow.flow import BadRequestError, ImageType, SessionState
from pageflow.observability import get_logger
from pageflow.web.app import get_session


__all__ = ["SetProjectRequest", "router"]

router = APIRouter(prefix="/api/session", tags=["session"])

logger = get_logger(__name__)

SessionDep = Annotated[SessionState, Depends(get_session)]


class SetProjectRequest(BaseModel):
    """Body of ``POST /api/session/project``.

    Attributes:
        project_dir: Existing project root directory.
        image_type: Image type the project's pages use.
    """

    model_config = ConfigDict(populate_by_name=True)

    project_dir: Path = Field(alias="projectDir")
    image_type: ImageType = Field(alias="imageType")


@router.get("")
async def get_session_info(session: SessionDep) -> dict[str, Any]:
    """Return the caller's session, including the running stage."""
    async with session.lock:
        return session.to_dict()


@router.post("/project")
async def set_project(
    body: SetProjectRequest,
    session: SessionDep,
) -> dict[str, Any]:
    """Point the caller's session at a project directory.

    Args:
        body: Project directory and image type.
        session: The caller's session.

    Returns:
        The updated session.

    Raises:
        BadRequestError: If the directory does not exist.
        FlowAlreadyRunningError: If the session has a run in progress.
    """
    project_dir = body.project_dir.expanduser()
    if not project_dir.is_dir():
        msg = f"Project directory does not exist: {project_dir}"
        raise BadRequestError(msg)

    await session.set_project(project_dir.resolve(), body.image_type)
    logger.info(
        "session_project_set",
        project_dir=str(project_dir),
        image_type=body.image_type.value,
    )

    async with session.lock:
        return session.to_dict()
