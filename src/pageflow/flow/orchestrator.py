"""Process flow orchestrator.

This module provides the ProcessFlowOrchestrator, which runs the
requested subset of the fixed stage sequence for one session: it rejects
invalid or concurrent requests, invokes each stage worker in canonical
order, narrows the page ids between stages, and stops early on a stage
failure or a cancel request.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

from pageflow.flow.cancellation import CancellationController
from pageflow.flow.exceptions import (
    BadRequestError,
    FlowAlreadyRunningError,
    MissingSettingsError,
    StageWorkerError,
)
from pageflow.flow.models import ProcessFlowResult, StatusCode, settings_for
from pageflow.flow.page_filter import PageIdFilter
from pageflow.flow.validation import SettingsValidator
from pageflow.observability import get_logger


if TYPE_CHECKING:
    from typing import Any

    from pageflow.flow.models import ProcessFlowRequest, Stage, StageContext
    from pageflow.flow.registry import StageRegistry
    from pageflow.flow.sessions import SessionState


__all__ = ["ProcessFlowOrchestrator"]


class ProcessFlowOrchestrator:
    """Runs process flows, one at a time per session.

    The session lock is held only for short reads and writes of the run
    state, never while a stage worker executes, so ``current_stage`` and
    ``cancel`` stay responsive during long stages.

    Example:
        ```python
        orchestrator = ProcessFlowOrchestrator(registry=registry)
        session = await store.get_or_create(session_id)
        await session.set_project(project_dir, ImageType.BINARY)

        result = await orchestrator.execute(request, session)
        if not result.success:
            print(f"Stopped at {result.stopped_at}: {result.status_code}")
        ```
    """

    def __init__(
        self,
        *,
        registry: StageRegistry,
        page_filter: PageIdFilter | None = None,
        validator: SettingsValidator | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            registry: Stage workers, one per stage.
            page_filter: Page id filter applied between stages.
            validator: Settings validator run before any stage.
        """
        self._registry = registry
        self._page_filter = page_filter or PageIdFilter()
        self._validator = validator or SettingsValidator()
        self._cancellation = CancellationController(registry)
        self._logger = get_logger(__name__)

    @property
    def registry(self) -> StageRegistry:
        """Return the stage registry."""
        return self._registry

    async def execute(
        self,
        request: ProcessFlowRequest,
        session: SessionState,
    ) -> ProcessFlowResult:
        """Execute a process flow for a session.

        Stage failures and cancellation are reported in the returned
        result; only rejections that happen before any stage runs raise.

        Args:
            request: Page ids, stages to run, and per-stage settings.
            session: The session the run belongs to.

        Returns:
            ProcessFlowResult describing how the run ended.

        Raises:
            SessionContextError: If the session has no project context.
            BadRequestError: If a request field is absent.
            FlowAlreadyRunningError: If the session already has a run.
            MissingSettingsError: If a requested stage has no settings.
        """
        context = session.context()

        if (
            request.page_ids is None
            or request.processes_to_execute is None
            or request.process_settings is None
        ):
            msg = "pageIds, processesToExecute and processSettings are required"
            raise BadRequestError(msg)

        stages = self._registry.ordered(request.processes_to_execute)
        await self._claim(session, request, stages)

        if not stages:
            return ProcessFlowResult(page_ids=list(request.page_ids))

        start_time = time.monotonic()
        self._logger.info(
            "process_flow_started",
            session_id=session.session_id,
            stages=[stage.value for stage in stages],
            page_count=len(request.page_ids),
        )

        try:
            result = await self._run(
                session,
                context,
                stages,
                list(request.page_ids),
                request.process_settings,
            )
        finally:
            # No await here: the session must be released even while this
            # task is being cancelled.
            session.run.current_stage = None

        self._logger.info(
            "process_flow_finished",
            session_id=session.session_id,
            status_code=int(result.status_code),
            executed=[stage.value for stage in result.executed],
            cancelled=result.cancelled,
            processing_time_seconds=time.monotonic() - start_time,
        )
        return result

    async def current_stage(self, session: SessionState) -> Stage | None:
        """Return the stage the session is executing, or None when idle."""
        async with session.lock:
            return session.run.current_stage

    async def cancel(
        self,
        session: SessionState,
        *,
        terminate_current: bool = False,
    ) -> Stage:
        """Request cancellation of the session's run.

        Args:
            session: The session whose run should stop.
            terminate_current: Also signal the running stage's worker.

        Returns:
            The stage that was running.

        Raises:
            NothingToCancelError: If no stage is running.
        """
        return await self._cancellation.request_cancel(
            session,
            terminate_current=terminate_current,
        )

    async def _claim(
        self,
        session: SessionState,
        request: ProcessFlowRequest,
        stages: list[Stage],
    ) -> None:
        """Atomically check single-flight, validate, and take the session."""
        async with session.lock:
            if session.run.current_stage is not None:
                self._logger.warning(
                    "process_flow_rejected_running",
                    session_id=session.session_id,
                    current_stage=session.run.current_stage.value,
                )
                raise FlowAlreadyRunningError(session.run.current_stage)

            session.run.cancel_requested = False
            try:
                self._validator.validate(stages, request.process_settings)
            except MissingSettingsError as exc:
                self._logger.warning(
                    "process_flow_rejected_settings",
                    session_id=session.session_id,
                    missing=[stage.value for stage in exc.missing],
                )
                raise

            if stages:
                session.run.current_stage = stages[0]

    async def _run(
        self,
        session: SessionState,
        context: StageContext,
        stages: list[Stage],
        page_ids: list[str],
        process_settings: dict[Stage, dict[str, Any] | None],
    ) -> ProcessFlowResult:
        """Invoke the stages in order until done, failed, or cancelled."""
        result = ProcessFlowResult(page_ids=list(page_ids))

        for index, stage in enumerate(stages):
            async with session.lock:
                session.run.current_stage = stage

            gate = self._registry.gate(stage)
            if index > 0 and gate is not None:
                page_ids = await asyncio.to_thread(
                    self._page_filter.filter_valid,
                    page_ids,
                    gate,
                    context,
                )

            # A forceful cancel may have landed before the worker had
            # anything to terminate.
            async with session.lock:
                if session.run.cancel_requested:
                    session.run.current_stage = None
                    result.stopped_at = stage
                    result.cancelled = True
            if result.stopped_at is not None:
                self._logger.info(
                    "process_flow_stopped",
                    session_id=session.session_id,
                    stage=stage.value,
                    status_code=result.status_code,
                    cancelled=True,
                    invoked=False,
                )
                return result

            status = await self._invoke(
                stage,
                page_ids,
                settings_for(process_settings, stage),
                context,
            )
            result.executed.append(stage)
            result.page_ids = list(page_ids)
            result.status_code = status

            async with session.lock:
                cancelled = session.run.cancel_requested
                if status != StatusCode.OK or cancelled:
                    session.run.current_stage = None
                    result.stopped_at = stage
                    result.cancelled = cancelled and status == StatusCode.OK

            if result.stopped_at is not None:
                self._logger.info(
                    "process_flow_stopped",
                    session_id=session.session_id,
                    stage=stage.value,
                    status_code=status,
                    cancelled=result.cancelled,
                )
                return result

        return result

    async def _invoke(
        self,
        stage: Stage,
        page_ids: list[str],
        settings: dict[str, Any],
        context: StageContext,
    ) -> int:
        """Call a stage worker and translate errors into a status code."""
        worker = self._registry.worker(stage)
        self._logger.info(
            "stage_started",
            session_id=context.session_id,
            stage=stage.value,
            page_count=len(page_ids),
        )

        start_time = time.monotonic()
        try:
            status = int(await worker.execute(list(page_ids), settings, context))
        except StageWorkerError as exc:
            self._logger.exception(
                "stage_error",
                session_id=context.session_id,
                stage=stage.value,
                error=str(exc),
            )
            status = int(exc.status_code)
        except Exception as exc:
            self._logger.exception(
                "stage_error",
                session_id=context.session_id,
                stage=stage.value,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            status = int(StatusCode.INTERNAL_ERROR)

        self._logger.info(
            "stage_completed",
            session_id=context.session_id,
            stage=stage.value,
            status_code=status,
            processing_time_seconds=time.monotonic() - start_time,
        )
        return status
