"""Process flow exceptions.

Every exception raised before a run starts carries the status code the
web layer reports for it. Stage failures are not exceptions; they are
returned in the run's ``ProcessFlowResult``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pageflow.flow.models import StatusCode


if TYPE_CHECKING:
    from pageflow.flow.models import Stage


__all__ = [
    "BadRequestError",
    "FlowAlreadyRunningError",
    "MissingSettingsError",
    "NothingToCancelError",
    "ProcessFlowError",
    "SessionContextError",
    "StageWorkerError",
]


class ProcessFlowError(Exception):
    """Base exception for all process flow errors.

    Attributes:
        message: Human-readable error description.
        status_code: Status code reported to the caller.
    """

    status_code: int = StatusCode.INTERNAL_ERROR

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            status_code: Overrides the class default status code.
        """
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def __str__(self) -> str:
        """Return string representation."""
        return self.message


class SessionContextError(ProcessFlowError):
    """Raised when the session has no project directory or image type."""

    status_code = StatusCode.INTERNAL_ERROR

    def __init__(self, message: str = "Session has no project context") -> None:
        super().__init__(message)


class BadRequestError(ProcessFlowError):
    """Raised when a required request field is absent or malformed."""

    status_code = StatusCode.BAD_REQUEST


class FlowAlreadyRunningError(ProcessFlowError):
    """Raised when a run is already active for the session.

    Attributes:
        current_stage: The stage the active run is executing.
    """

    status_code = StatusCode.FLOW_RUNNING

    def __init__(self, current_stage: Stage) -> None:
        """Initialize the exception.

        Args:
            current_stage: The stage the active run is executing.
        """
        super().__init__(
            f"Process flow already running (current_stage={current_stage})"
        )
        self.current_stage = current_stage


class MissingSettingsError(ProcessFlowError):
    """Raised when a requested stage has no settings entry.

    Attributes:
        stage: The first requested stage without settings.
        missing: Every requested stage without settings, in canonical
            order.
    """

    status_code = StatusCode.MISSING_SETTINGS

    def __init__(
        self,
        stage: Stage,
        *,
        missing: list[Stage] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            stage: The first requested stage without settings.
            missing: Every requested stage without settings. Defaults to
                ``[stage]``.
        """
        super().__init__(f"Missing settings for stage: {stage}")
        self.stage = stage
        self.missing = missing if missing is not None else [stage]


class NothingToCancelError(ProcessFlowError):
    """Raised when a cancel is requested but no stage is running."""

    status_code = StatusCode.NOTHING_TO_CANCEL

    def __init__(self) -> None:
        super().__init__("No process flow execution to cancel")


class StageWorkerError(ProcessFlowError):
    """Error inside a stage worker.

    Workers raise this for problems they cannot express as a status
    code; the orchestrator logs it and reports the carried status.

    Attributes:
        stage: The stage whose worker failed.
        cause: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        stage: Stage,
        status_code: int = StatusCode.INTERNAL_ERROR,
        cause: BaseException | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            stage: The stage whose worker failed.
            status_code: Status reported for the failed stage.
            cause: The underlying exception, if any.
        """
        super().__init__(message, status_code=status_code)
        self.stage = stage
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        """Return string representation with the stage name."""
        return f"{self.message} (stage={self.stage})"
