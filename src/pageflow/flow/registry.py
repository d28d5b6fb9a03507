"""Stage registry and the stage worker contract."""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pageflow.flow.models import Stage


if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from pageflow.flow.models import StageContext


__all__ = [
    "STAGE_GATES",
    "StageRegistry",
    "StageWorker",
]


# Stage whose on-disk output decides which page ids may enter a stage.
# Despeckling gates nothing; region extraction reads segmentation output.
STAGE_GATES: Mapping[Stage, Stage | None] = MappingProxyType(
    {
        Stage.PREPROCESSING: None,
        Stage.DESPECKLING: Stage.PREPROCESSING,
        Stage.SEGMENTATION: Stage.PREPROCESSING,
        Stage.REGION_EXTRACTION: Stage.SEGMENTATION,
        Stage.LINE_SEGMENTATION: Stage.REGION_EXTRACTION,
        Stage.RECOGNITION: Stage.LINE_SEGMENTATION,
    }
)


@runtime_checkable
class StageWorker(Protocol):
    """Capability every stage worker provides.

    ``execute`` returns 200 on success and any other integer on failure.
    ``cancel`` is best-effort, idempotent, and must not block.
    """

    async def execute(
        self,
        page_ids: list[str],
        settings: dict[str, Any],
        context: StageContext,
    ) -> int: ...

    def cancel(self, context: StageContext) -> None: ...


class StageRegistry:
    """Immutable mapping of every stage to its worker.

    Example:
        ```python
        registry = StageRegistry({stage: MyWorker(stage) for stage in Stage})
        for stage in registry.ordered({Stage.SEGMENTATION, Stage.PREPROCESSING}):
            worker = registry.worker(stage)
        ```
    """

    def __init__(self, workers: Mapping[Stage, StageWorker]) -> None:
        """Initialize the registry.

        Args:
            workers: One worker per stage.

        Raises:
            ValueError: If a key is not a Stage or a stage has no worker.
        """
        unknown = [key for key in workers if not isinstance(key, Stage)]
        if unknown:
            msg = f"Unknown stages in registry: {unknown}"
            raise ValueError(msg)

        missing = [stage for stage in Stage if stage not in workers]
        if missing:
            names = ", ".join(stage.value for stage in missing)
            msg = f"No worker registered for stages: {names}"
            raise ValueError(msg)

        self._workers: Mapping[Stage, StageWorker] = MappingProxyType(
            {stage: workers[stage] for stage in Stage}
        )

    def __iter__(self) -> Iterator[Stage]:
        return iter(self._workers)

    def __len__(self) -> int:
        return len(self._workers)

    def worker(self, stage: Stage) -> StageWorker:
        """Return the worker registered for a stage."""
        return self._workers[stage]

    @staticmethod
    def ordered(stages: Iterable[Stage]) -> list[Stage]:
        """Return the given stages in canonical order, without duplicates."""
        return sorted(set(stages), key=lambda stage: stage.position)

    @staticmethod
    def gate(stage: Stage) -> Stage | None:
        """Return the stage whose output filters page ids for ``stage``."""
        return STAGE_GATES[stage]
