"""Process flow orchestration.

This package runs the fixed stage sequence for a session:

- **StageRegistry**: canonical stage order, gating table, worker per stage.
- **SettingsValidator**: every requested stage must have settings.
- **PageIdFilter**: narrows page ids to those a gating stage produced
  output for.
- **CancellationController**: cooperative and forceful cancellation.
- **ProcessFlowOrchestrator**: validates, runs, and stops runs.

Example:
    ```python
    from pageflow.flow import (
        ImageType,
        ProcessFlowOrchestrator,
        ProcessFlowRequest,
        SessionStore,
    )
    from pageflow.stages import create_registry

    orchestrator = ProcessFlowOrchestrator(registry=create_registry(settings))
    store = SessionStore()
    session = await store.get_or_create("abc")
    await session.set_project(Path("/data/project"), ImageType.BINARY)

    request = ProcessFlowRequest.model_validate(
        {
            "pageIds": ["0001", "0002"],
            "processesToExecute": ["preprocessing", "segmentation"],
            "processSettings": {
                "preprocessing": {"cmdArgs": []},
                "segmentation": {"imageType": "Binary", "replace": "true"},
            },
        }
    )
    result = await orchestrator.execute(request, session)
    ```
"""

from __future__ import annotations

from pageflow.flow.cancellation import CancellationController
from pageflow.flow.exceptions import (
    BadRequestError,
    FlowAlreadyRunningError,
    MissingSettingsError,
    NothingToCancelError,
    ProcessFlowError,
    SessionContextError,
    StageWorkerError,
)
from pageflow.flow.models import (
    ImageType,
    ProcessFlowRequest,
    ProcessFlowResult,
    Stage,
    StageContext,
    StatusCode,
)
from pageflow.flow.orchestrator import ProcessFlowOrchestrator
from pageflow.flow.page_filter import PageIdFilter, has_stage_output
from pageflow.flow.registry import STAGE_GATES, StageRegistry, StageWorker
from pageflow.flow.sessions import SessionRunState, SessionState, SessionStore
from pageflow.flow.validation import SettingsValidator


__all__ = [
    "STAGE_GATES",
    "BadRequestError",
    "CancellationController",
    "FlowAlreadyRunningError",
    "ImageType",
    "MissingSettingsError",
    "NothingToCancelError",
    "PageIdFilter",
    "ProcessFlowError",
    "ProcessFlowOrchestrator",
    "ProcessFlowRequest",
    "ProcessFlowResult",
    "SessionContextError",
    "SessionRunState",
    "SessionState",
    "SessionStore",
    "SettingsValidator",
    "Stage",
    "StageContext",
    "StageRegistry",
    "StageWorker",
    "StageWorkerError",
    "StatusCode",
    "has_stage_output",
]
