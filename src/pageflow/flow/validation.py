"""Up-front settings validation for a process flow request."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pageflow.flow.exceptions import MissingSettingsError
from pageflow.flow.registry import StageRegistry


if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from pageflow.flow.models import Stage


__all__ = ["SettingsValidator"]


class SettingsValidator:
    """Checks that every requested stage has a settings entry.

    The content of each entry belongs to the stage worker and is not
    inspected here.
    """

    def validate(
        self,
        processes_to_execute: Iterable[Stage] | None,
        process_settings: Mapping[Stage, Any] | None,
    ) -> None:
        """Validate settings presence for the requested stages.

        Stages are checked in canonical order and the first stage without
        an entry is reported.

        Args:
            processes_to_execute: Requested stages (may be None or empty).
            process_settings: Settings per stage (may be None).

        Raises:
            MissingSettingsError: If a requested stage has no entry, or
                its entry is None. The error lists every such stage.
        """
        missing = self.missing(processes_to_execute, process_settings)
        if missing:
            raise MissingSettingsError(missing[0], missing=missing)

    def missing(
        self,
        processes_to_execute: Iterable[Stage] | None,
        process_settings: Mapping[Stage, Any] | None,
    ) -> list[Stage]:
        """Return every requested stage lacking settings, in canonical order."""
        settings = process_settings or {}
        return [
            stage
            for stage in StageRegistry.ordered(processes_to_execute or ())
            if settings.get(stage) is None
        ]
