"""Cooperative and forceful cancellation of a session's process flow.

Cooperative cancellation only sets the session's ``cancel_requested``
flag; the orchestrator checks it after every stage and starts no further
stage. Forceful cancellation additionally signals the worker of the
running stage to stop its in-flight work. The controller does not wait
for the worker to acknowledge.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pageflow.flow.exceptions import NothingToCancelError
from pageflow.observability import get_logger


if TYPE_CHECKING:
    from pageflow.flow.models import Stage
    from pageflow.flow.registry import StageRegistry
    from pageflow.flow.sessions import SessionState


__all__ = ["CancellationController"]


class CancellationController:
    """Owns cancel requests for sessions.

    Example:
        ```python
        controller = CancellationController(registry)
        stage = await controller.request_cancel(session, terminate_current=True)
        ```
    """

    def __init__(self, registry: StageRegistry) -> None:
        """Initialize the controller.

        Args:
            registry: Registry used to find the running stage's worker.
        """
        self._registry = registry
        self._logger = get_logger(__name__)

    async def request_cancel(
        self,
        session: SessionState,
        *,
        terminate_current: bool = False,
    ) -> Stage:
        """Request cancellation of the session's running process flow.

        Args:
            session: The session whose run should stop.
            terminate_current: Also ask the running stage's worker to stop.

        Returns:
            The stage that was running when the request arrived.

        Raises:
            NothingToCancelError: If no stage is running for the session.
        """
        async with session.lock:
            stage = session.run.current_stage
            if stage is None:
                raise NothingToCancelError
            session.run.cancel_requested = True
            context = session.context()

        self._logger.info(
            "process_flow_cancel_requested",
            session_id=session.session_id,
            current_stage=stage.value,
            terminate=terminate_current,
        )

        if terminate_current:
            try:
                self._registry.worker(stage).cancel(context)
            except Exception as exc:
                self._logger.exception(
                    "stage_cancel_failed",
                    session_id=session.session_id,
                    stage=stage.value,
                    error=str(exc),
                )

        return stage
