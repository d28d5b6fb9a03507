"""Stage workers.

Each pipeline stage is executed by a worker bound to it in the
StageRegistry. The workers shipped here run a configured external
command per stage and validate their own settings bags.
"""

from __future__ import annotations

from pageflow.stages.command import CommandStageWorker, create_registry
from pageflow.stages.settings import (
    CommandArgsSettings,
    DespecklingSettings,
    RegionExtractionSettings,
    SegmentationSettings,
    StageSettings,
    parse_stage_settings,
    settings_model_for,
)


__all__ = [
    "CommandArgsSettings",
    "CommandStageWorker",
    "DespecklingSettings",
    "RegionExtractionSettings",
    "SegmentationSettings",
    "StageSettings",
    "create_registry",
    "parse_stage_settings",
    "settings_model_for",
]
