"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import pytest

from pageflow.flow import (
    ImageType,
    ProcessFlowOrchestrator,
    SessionState,
    Stage,
    StageContext,
    StageRegistry,
    StatusCode,
)


if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


class FakeWorker:
    """Stage worker double that records every call.

    Attributes:
        status: Status returned by ``execute``.
        error: Exception raised by ``execute`` instead of returning.
        hold: Block ``execute`` until ``release`` is set (or ``cancel``).
        calls: ``(page_ids, settings, context)`` per ``execute`` call.
        cancel_calls: Number of ``cancel`` calls.
    """

    def __init__(
        self,
        stage: Stage,
        *,
        status: int = StatusCode.OK,
        error: Exception | None = None,
        hold: bool = False,
    ) -> None:
        self.stage = stage
        self.status = status
        self.error = error
        self.hold = hold
        self.calls: list[tuple[list[str], dict[str, Any], StageContext]] = []
        self.cancel_calls = 0
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.on_execute: Callable[[list[str], StageContext], None] | None = None

    @property
    def page_ids_seen(self) -> list[list[str]]:
        return [call[0] for call in self.calls]

    async def execute(
        self,
        page_ids: list[str],
        settings: dict[str, Any],
        context: StageContext,
    ) -> int:
        self.calls.append((list(page_ids), dict(settings), context))
        self.started.set()
        if self.hold:
            await self.release.wait()
        if self.on_execute is not None:
            self.on_execute(page_ids, context)
        if self.error is not None:
            raise self.error
        return self.status

    def cancel(self, context: StageContext) -> None:  # noqa: ARG002
        self.cancel_calls += 1
        self.release.set()


# ---------------------------------------------------------------------------
# Project fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Return an empty project directory with a ``processing`` folder."""
    project = tmp_path / "project"
    (project / "processing").mkdir(parents=True)
    return project


@pytest.fixture
def context(project_dir: Path) -> StageContext:
    """Return a stage context for a binary project."""
    return StageContext(
        session_id="session-1",
        project_dir=project_dir,
        image_type=ImageType.BINARY,
    )


@pytest.fixture
def make_output() -> Callable[[StageContext, str, Stage], None]:
    """Return a helper that writes one page's output for a stage."""

    def _make_output(context: StageContext, page_id: str, stage: Stage) -> None:
        processing = context.processing_dir
        if stage is Stage.PREPROCESSING:
            binary = context.image_type is ImageType.BINARY
            suffix = ".bin.png" if binary else ".nrm.png"
            (processing / f"{page_id}{suffix}").write_bytes(b"png")
        elif stage is Stage.DESPECKLING:
            (processing / f"{page_id}.desp.png").write_bytes(b"png")
        elif stage is Stage.SEGMENTATION:
            (processing / f"{page_id}.xml").write_text("<PcGts/>")
        else:
            region_dir = processing / page_id / f"{page_id}__000__paragraph"
            region_dir.mkdir(parents=True, exist_ok=True)
            if stage is Stage.REGION_EXTRACTION:
                (processing / page_id / f"{page_id}__000__paragraph.png").write_bytes(
                    b"png"
                )
            elif stage is Stage.LINE_SEGMENTATION:
                (region_dir / "01.bin.png").write_bytes(b"png")
            else:
                (region_dir / "01.txt").write_text("text")

    return _make_output


# ---------------------------------------------------------------------------
# Orchestration fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def workers() -> dict[Stage, FakeWorker]:
    """Return one FakeWorker per stage."""
    return {stage: FakeWorker(stage) for stage in Stage}


@pytest.fixture
def registry(workers: dict[Stage, FakeWorker]) -> StageRegistry:
    """Return a registry backed by the fake workers."""
    return StageRegistry(workers)


@pytest.fixture
def orchestrator(registry: StageRegistry) -> ProcessFlowOrchestrator:
    """Return an orchestrator over the fake registry."""
    return ProcessFlowOrchestrator(registry=registry)


@pytest.fixture
def session(project_dir: Path) -> SessionState:
    """Return a session pointed at the test project."""
    return SessionState(
        session_id="session-1",
        project_dir=project_dir,
        image_type=ImageType.BINARY,
    )
