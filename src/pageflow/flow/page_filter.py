"""Filesystem-backed page id filtering between stages.

A stage worker may silently skip single pages (e.g. an image it judges
unsuitable) and still report success. Before the next stage runs, the
page ids are narrowed to those for which the gating stage actually left
usable output in the project's ``processing`` directory.

Layout of ``<project>/processing`` as read here::

    0001.bin.png / 0001.nrm.png   preprocessing (binary / gray)
    0001.desp.png                 despeckling
    0001.xml                      segmentation (PageXML)
    0001/0001__000__paragraph.png region extraction
    0001/<region>/<line>.bin.png  line segmentation
    0001/<region>/<line>.txt      recognition
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pageflow.flow.models import ImageType, Stage
from pageflow.observability import get_logger


if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from pathlib import Path

    from pageflow.flow.models import StageContext


__all__ = ["PageIdFilter", "has_stage_output"]


_PREPROCESSING_SUFFIX = {
    ImageType.BINARY: ".bin.png",
    ImageType.GRAY: ".nrm.png",
}


def _has_any(directory: Path, pattern: str) -> bool:
    if not directory.is_dir():
        return False
    return any(path.is_file() for path in directory.glob(pattern))


def _preprocessed(page_id: str, context: StageContext) -> bool:
    suffix = _PREPROCESSING_SUFFIX[context.image_type]
    return (context.processing_dir / f"{page_id}{suffix}").is_file()


def _despeckled(page_id: str, context: StageContext) -> bool:
    return (context.processing_dir / f"{page_id}.desp.png").is_file()


def _segmented(page_id: str, context: StageContext) -> bool:
    return (context.processing_dir / f"{page_id}.xml").is_file()


def _regions_extracted(page_id: str, context: StageContext) -> bool:
    return _has_any(context.processing_dir / page_id, "*.png")


def _lines_segmented(page_id: str, context: StageContext) -> bool:
    return _has_any(context.processing_dir / page_id, "*/*.bin.png")


def _recognized(page_id: str, context: StageContext) -> bool:
    return _has_any(context.processing_dir / page_id, "*/*.txt")


_PREDICATES: dict[Stage, Callable[[str, StageContext], bool]] = {
    Stage.PREPROCESSING: _preprocessed,
    Stage.DESPECKLING: _despeckled,
    Stage.SEGMENTATION: _segmented,
    Stage.REGION_EXTRACTION: _regions_extracted,
    Stage.LINE_SEGMENTATION: _lines_segmented,
    Stage.RECOGNITION: _recognized,
}


def has_stage_output(page_id: str, stage: Stage, context: StageContext) -> bool:
    """Check whether ``stage`` left usable output for one page.

    Args:
        page_id: Page identifier (e.g. ``"0001"``).
        stage: The stage whose output is checked.
        context: Session handle with project directory and image type.

    Returns:
        True if the stage's output for the page exists on disk.
    """
    return _PREDICATES[stage](page_id, context)


class PageIdFilter:
    """Restricts page ids to those with output from a preceding stage.

    Results are never cached; every call inspects the filesystem again.
    """

    def __init__(self) -> None:
        self._logger = get_logger(__name__)

    def filter_valid(
        self,
        page_ids: Sequence[str],
        preceding_stage: Stage,
        context: StageContext,
    ) -> list[str]:
        """Return the page ids the preceding stage produced output for.

        Args:
            page_ids: Candidate page ids, in order.
            preceding_stage: Stage whose output gates the next stage.
            context: Session handle with project directory and image type.

        Returns:
            Order-preserving subset of ``page_ids``. May be empty.
        """
        valid = [
            page_id
            for page_id in page_ids
            if has_stage_output(page_id, preceding_stage, context)
        ]
        if len(valid) != len(page_ids):
            kept = set(valid)
            self._logger.info(
                "page_ids_filtered",
                preceding_stage=preceding_stage.value,
                kept=len(valid),
                dropped=[p for p in page_ids if p not in kept],
            )
        return valid
