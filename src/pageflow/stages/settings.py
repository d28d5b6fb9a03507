"""Settings models for the individual stages.

The orchestrator passes each stage its settings bag untouched. Each
stage validates the bag against its own model here and turns it into
command-line arguments. Field aliases are the keys clients send.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pageflow.flow.models import Stage


__all__ = [
    "CommandArgsSettings",
    "DespecklingSettings",
    "RegionExtractionSettings",
    "SegmentationSettings",
    "StageSettings",
    "parse_stage_settings",
    "settings_model_for",
]


class StageSettings(BaseModel):
    """Base class of all stage settings models."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    def to_args(self) -> list[str]:
        """Return the command-line arguments for this stage."""
        raise NotImplementedError


class CommandArgsSettings(StageSettings):
    """Settings passing raw command-line arguments through.

    Used by preprocessing, line segmentation, and recognition.

    Attributes:
        cmd_args: Arguments appended to the stage command as given.
    """

    cmd_args: list[str] = Field(alias="cmdArgs")

    def to_args(self) -> list[str]:
        return list(self.cmd_args)


class DespecklingSettings(StageSettings):
    """Despeckling settings.

    Attributes:
        max_contour_removal_size: Contours up to this size are removed.
    """

    max_contour_removal_size: float = Field(alias="maxContourRemovalSize", ge=0)

    def to_args(self) -> list[str]:
        return ["--max-contour-removal-size", str(self.max_contour_removal_size)]


class SegmentationSettings(StageSettings):
    """Segmentation settings.

    Attributes:
        image_type: Input image variant to segment (e.g. ``binary``,
            ``despeckled``).
        replace: Overwrite existing segmentation output.
    """

    image_type: str = Field(alias="imageType", min_length=1)
    replace: bool = False

    def to_args(self) -> list[str]:
        args = ["--image-type", self.image_type]
        if self.replace:
            args.append("--replace")
        return args


class RegionExtractionSettings(StageSettings):
    """Region extraction settings.

    Attributes:
        spacing: Padding in pixels around each extracted region.
        use_spacing: Whether ``spacing`` is applied.
        avg_background: Fill padding with the average background colour.
    """

    spacing: int = Field(ge=0)
    use_spacing: bool = Field(default=False, alias="usespacing")
    avg_background: bool = Field(default=False, alias="avgbackground")

    def to_args(self) -> list[str]:
        args = ["--spacing", str(self.spacing)]
        if self.use_spacing:
            args.append("--use-spacing")
        if self.avg_background:
            args.append("--avg-background")
        return args


_MODELS: dict[Stage, type[StageSettings]] = {
    Stage.PREPROCESSING: CommandArgsSettings,
    Stage.DESPECKLING: DespecklingSettings,
    Stage.SEGMENTATION: SegmentationSettings,
    Stage.REGION_EXTRACTION: RegionExtractionSettings,
    Stage.LINE_SEGMENTATION: CommandArgsSettings,
    Stage.RECOGNITION: CommandArgsSettings,
}


def settings_model_for(stage: Stage) -> type[StageSettings]:
    """Return the settings model used by ``stage``."""
    return _MODELS[stage]


def parse_stage_settings(stage: Stage, settings: dict[str, Any]) -> StageSettings:
    """Validate a settings bag for ``stage``.

    Raises:
        pydantic.ValidationError: If the bag does not match the model.
    """
    return settings_model_for(stage).model_validate(settings)
