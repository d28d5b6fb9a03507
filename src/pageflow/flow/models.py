"""Data models for process flow execution.

This module defines the closed stage enumeration, the status codes a
process flow run can end with, and the request/result values passed
between the web layer, the orchestrator, and the stage workers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum, StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path


__all__ = [
    "ImageType",
    "ProcessFlowRequest",
    "ProcessFlowResult",
    "Stage",
    "StageContext",
    "StatusCode",
    "settings_for",
]


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Stage(StrEnum):
    """Pipeline stages in canonical execution order.

    Member order is the execution order. Values are the wire names used
    by clients in ``processesToExecute`` and ``processSettings``.

    Attributes:
        PREPROCESSING: Binarization and normalization of page images.
        DESPECKLING: Removal of small contours from binary images.
        SEGMENTATION: Page layout segmentation into regions.
        REGION_EXTRACTION: Cutting region images out of segmented pages.
        LINE_SEGMENTATION: Splitting region images into text lines.
        RECOGNITION: Text recognition on line images.
    """

    PREPROCESSING = "preprocessing"
    DESPECKLING = "despeckling"
    SEGMENTATION = "segmentation"
    REGION_EXTRACTION = "regionExtraction"
    LINE_SEGMENTATION = "lineSegmentation"
    RECOGNITION = "recognition"

    @property
    def position(self) -> int:
        """Zero-based position of the stage in the canonical order."""
        return list(Stage).index(self)


class ImageType(StrEnum):
    """Image type a project works on after preprocessing."""

    BINARY = "Binary"
    GRAY = "Gray"


class StatusCode(IntEnum):
    """HTTP-style status codes reported by a process flow.

    Stage workers may return any other integer as a stage-specific failure.

    Attributes:
        OK: Success.
        BAD_REQUEST: A required request field is absent or malformed.
        INTERNAL_ERROR: Session context missing, or a stage failed.
        INVALID_INPUT: A stage received empty or malformed input.
        FLOW_RUNNING: A run is already active for the session.
        MISSING_SETTINGS: Settings missing for a requested stage.
        NOTHING_TO_CANCEL: No run is active that could be cancelled.
    """

    OK = 200
    BAD_REQUEST = 400
    INTERNAL_ERROR = 500
    INVALID_INPUT = 531
    FLOW_RUNNING = 532
    MISSING_SETTINGS = 533
    NOTHING_TO_CANCEL = 534


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


class ProcessFlowRequest(BaseModel):
    """Caller input for a process flow execution.

    All three fields are optional at parse time so that an absent field
    reaches the orchestrator, which rejects it as a bad request.

    Attributes:
        page_ids: Ordered page identifiers (e.g. ``"0001"``).
        processes_to_execute: Stages to run, in any order.
        process_settings: Settings bag per stage. Keys that name no stage
            are dropped.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    page_ids: list[str] | None = Field(default=None, alias="pageIds")
    processes_to_execute: set[Stage] | None = Field(
        default=None,
        alias="processesToExecute",
    )
    process_settings: dict[Stage, dict[str, Any] | None] | None = Field(
        default=None,
        alias="processSettings",
    )

    @field_validator("process_settings", mode="before")
    @classmethod
    def drop_unknown_settings(cls, v: Any) -> Any:
        """Settings for names that are not stages are never looked up."""
        if isinstance(v, dict):
            known = {stage.value for stage in Stage}
            return {key: bag for key, bag in v.items() if key in known}
        return v

    @field_validator("page_ids")
    @classmethod
    def reject_duplicate_page_ids(cls, v: list[str] | None) -> list[str] | None:
        """Page ids must be unique within one request."""
        if v is not None and len(set(v)) != len(v):
            msg = "pageIds must not contain duplicates"
            raise ValueError(msg)
        return v


# ---------------------------------------------------------------------------
# Execution values
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StageContext:
    """Session handle passed to every stage worker call.

    Attributes:
        session_id: Identifier of the owning session.
        project_dir: Root directory of the project being processed.
        image_type: Image type selected for the project.
    """

    session_id: str
    project_dir: Path
    image_type: ImageType

    @property
    def processing_dir(self) -> Path:
        """Directory holding per-page stage output."""
        return self.project_dir / "processing"


@dataclass
class ProcessFlowResult:
    """Outcome of a process flow execution.

    Attributes:
        status_code: Final status; the failing stage's code on failure.
        executed: Stages whose worker was invoked, in invocation order.
        stopped_at: Stage at which the run stopped early, if any.
        cancelled: Whether the run halted because of a cancel request.
        page_ids: Page ids handed to the last invoked stage, or the
            requested ones when no stage was invoked.
    """

    status_code: int = StatusCode.OK
    executed: list[Stage] = field(default_factory=list)
    stopped_at: Stage | None = None
    cancelled: bool = False
    page_ids: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Return True if the run ended with the success code."""
        return self.status_code == StatusCode.OK

    def to_dict(self) -> dict[str, Any]:
        """Convert the result to a dictionary for CLI and API output."""
        return {
            "status_code": int(self.status_code),
            "success": self.success,
            "executed": [stage.value for stage in self.executed],
            "stopped_at": self.stopped_at.value if self.stopped_at else None,
            "cancelled": self.cancelled,
            "page_ids": list(self.page_ids),
        }


def settings_for(
    process_settings: Mapping[Stage, Mapping[str, Any] | None],
    stage: Stage,
) -> dict[str, Any]:
    """Return a copy of one stage's settings bag (empty if unset)."""
    return dict(process_settings.get(stage) or {})
