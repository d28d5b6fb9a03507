"""Stage workers that run an external command per stage.

Each stage is bound to a configured command. A run executes

    <command> <stage arguments from settings> <page id> [<page id> ...]

in the project directory, with ``PAGEFLOW_PROJECT_DIR``,
``PAGEFLOW_IMAGE_TYPE`` and ``PAGEFLOW_STAGE`` in the environment. Exit
code 0 means success. Forceful cancellation terminates the subprocess
of the cancelling session.
"""

from __future__ import annotations

import asyncio
import os
from contextlib import suppress
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from pageflow.flow.exceptions import StageWorkerError
from pageflow.flow.models import Stage, StatusCode
from pageflow.flow.registry import StageRegistry
from pageflow.observability import get_logger
from pageflow.stages.settings import parse_stage_settings


if TYPE_CHECKING:
    from pageflow.config import Settings, StageCommandConfig
    from pageflow.flow.models import StageContext


__all__ = [
    "CommandStageWorker",
    "create_registry",
]


# Characters of stderr kept in the failure log event.
_STDERR_TAIL = 2000


class CommandStageWorker:
    """Runs one stage as an external command.

    At most one subprocess per session is tracked; the orchestrator never
    runs two stages of one session at the same time.

    Example:
        ```python
        worker = CommandStageWorker(
            Stage.SEGMENTATION,
            StageCommandConfig(command=["ocr4all-segment"]),
        )
        status = await worker.execute(
            ["0001", "0002"],
            {"imageType": "binary", "replace": "false"},
            context,
        )
        ```
    """

    def __init__(self, stage: Stage, config: StageCommandConfig) -> None:
        """Initialize the worker.

        Args:
            stage: The stage this worker executes.
            config: Command configuration for the stage.
        """
        self._stage = stage
        self._config = config
        self._processes: dict[str, asyncio.subprocess.Process] = {}
        # Sessions inside ``execute``, and those of them cancelled before
        # their subprocess was spawned.
        self._active: set[str] = set()
        self._pending_cancel: set[str] = set()
        self._logger = get_logger(__name__, stage=stage.value)

    @property
    def stage(self) -> Stage:
        """Return the stage this worker executes."""
        return self._stage

    def is_running(self, context: StageContext) -> bool:
        """Return True if a subprocess is running for the session."""
        process = self._processes.get(context.session_id)
        return process is not None and process.returncode is None

    async def execute(
        self,
        page_ids: list[str],
        settings: dict[str, Any],
        context: StageContext,
    ) -> int:
        """Run the stage command for the given pages.

        Args:
            page_ids: Pages to process. Must not be empty.
            settings: The stage's settings bag from the request.
            context: Session handle with project directory and image type.

        Returns:
            200 on success, 531 on empty pages or malformed settings,
            500 if the command is unconfigured or exits non-zero.

        Raises:
            StageWorkerError: If the command cannot be started.
        """
        session_id = context.session_id
        self._active.add(session_id)
        try:
            return await self._execute(page_ids, settings, context)
        finally:
            self._active.discard(session_id)
            self._pending_cancel.discard(session_id)

    async def _execute(
        self,
        page_ids: list[str],
        settings: dict[str, Any],
        context: StageContext,
    ) -> int:
        if not page_ids:
            self._logger.warning("stage_invalid_input", reason="no page ids")
            return StatusCode.INVALID_INPUT

        try:
            stage_settings = parse_stage_settings(self._stage, settings)
        except ValidationError as exc:
            self._logger.warning(
                "stage_invalid_input",
                reason="malformed settings",
                error_count=exc.error_count(),
                errors=[error["msg"] for error in exc.errors()],
            )
            return StatusCode.INVALID_INPUT

        if not self._config.configured:
            self._logger.error("stage_command_not_configured")
            return StatusCode.INTERNAL_ERROR

        argv = [*self._config.command, *stage_settings.to_args(), *page_ids]
        env = {
            **os.environ,
            **self._config.env,
            "PAGEFLOW_PROJECT_DIR": str(context.project_dir),
            "PAGEFLOW_IMAGE_TYPE": context.image_type.value,
            "PAGEFLOW_STAGE": self._stage.value,
        }

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=context.project_dir,
                env=env,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            msg = f"Failed to start stage command: {argv[0]}"
            raise StageWorkerError(msg, stage=self._stage, cause=exc) from exc

        self._processes[context.session_id] = process
        self._logger.debug(
            "stage_command_started",
            pid=process.pid,
            argv=argv,
            session_id=context.session_id,
        )
        if context.session_id in self._pending_cancel:
            self._terminate(process, context)

        try:
            _, stderr = await process.communicate()
        finally:
            if process.returncode is None:
                with suppress(ProcessLookupError):
                    process.kill()
            if self._processes.get(context.session_id) is process:
                del self._processes[context.session_id]

        if process.returncode != 0:
            self._logger.warning(
                "stage_command_failed",
                returncode=process.returncode,
                session_id=context.session_id,
                stderr=stderr.decode(errors="replace")[-_STDERR_TAIL:],
            )
            return StatusCode.INTERNAL_ERROR

        return StatusCode.OK

    def cancel(self, context: StageContext) -> None:
        """Terminate the session's running subprocess, if any.

        A cancel that arrives while ``execute`` is still preparing the
        command is remembered, and the subprocess is terminated as soon as
        it has been spawned. Safe to call repeatedly and when nothing is
        running.
        """
        if self.is_running(context):
            self._terminate(self._processes[context.session_id], context)
        elif context.session_id in self._active:
            self._pending_cancel.add(context.session_id)
            self._logger.info(
                "stage_command_cancel_pending",
                session_id=context.session_id,
            )

    def _terminate(
        self,
        process: asyncio.subprocess.Process,
        context: StageContext,
    ) -> None:
        with suppress(ProcessLookupError):
            process.terminate()
        self._logger.info(
            "stage_command_terminated",
            pid=process.pid,
            session_id=context.session_id,
        )


def create_registry(settings: Settings) -> StageRegistry:
    """Build a registry with one command worker per stage.

    Args:
        settings: Application settings with the stage commands.

    Returns:
        StageRegistry covering every stage.
    """
    return StageRegistry(
        {
            stage: CommandStageWorker(stage, settings.stages.for_stage(stage))
            for stage in Stage
        }
    )
