"""Stage-weighted progress aggregation.

Inner components report a local fraction in [0, 1]; the aggregator projects it onto the
stage's slice of the global [0, 100] range so components never need to know where they
sit in the pipeline.
"""

import logging
from dataclasses import dataclass
from typing import Callable

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Stage:
    name: str
    start: float
    end: float
    description: str = ""

    @property
    def span(self) -> float:
        return self.end - self.start


DEFAULT_STAGES: tuple[Stage, ...] = (
    Stage("initialize", 0.0, 10.0, "Initializing"),
    Stage("analyze", 10.0, 30.0, "Analyzing cut changes"),
    Stage("extract", 30.0, 80.0, "Extracting artifacts"),
    Stage("import", 80.0, 95.0, "Importing to library"),
    Stage("finalize", 95.0, 100.0, "Finalizing"),
)


@dataclass(frozen=True)
class ProgressEvent:
    """One notification to listeners. percent is global (0-100); local is the stage fraction."""

    kind: str
    percent: float
    stage: str | None = None
    local: float | None = None
    message: str = ""
    batch_current: int | None = None
    batch_total: int | None = None


ProgressListener = Callable[[ProgressEvent], None]
StageReporter = Callable[..., None]


def _validate_stages(stages: tuple[Stage, ...]) -> None:
    """Stages must be contiguous, non-overlapping, and cover exactly [0, 100]."""
    if not stages:
        raise ValueError("At least one stage is required")
    names = [s.name for s in stages]
    if len(set(names)) != len(names):
        raise ValueError(f"Duplicate stage names: {names}")
    expected_start = 0.0
    for stage in stages:
        if stage.end <= stage.start:
            raise ValueError(f"Stage {stage.name!r} has an empty or inverted range")
        if abs(stage.start - expected_start) > 1e-9:
            raise ValueError(
                f"Stage {stage.name!r} starts at {stage.start}, expected {expected_start} (gap or overlap)"
            )
        expected_start = stage.end
    if abs(expected_start - 100.0) > 1e-9:
        raise ValueError(f"Stages end at {expected_start}, expected 100")


class ProgressAggregator:
    """
    Blends stage-local progress into one global percentage.

    global = stage.start + clamp(local, 0, 1) * (stage.end - stage.start)
    """

    def __init__(
        self,
        stages: tuple[Stage, ...] | list[Stage] = DEFAULT_STAGES,
        listeners: list[ProgressListener] | None = None,
    ) -> None:
        stages = tuple(stages)
        _validate_stages(stages)
        self._stages = {s.name: s for s in stages}
        self._order = stages
        self._listeners: list[ProgressListener] = list(listeners or [])
        self.percent = 0.0
        self.current_stage: str | None = None
        self.active = False
        self.batch_current = 0
        self.batch_total = 0

    @property
    def stages(self) -> tuple[Stage, ...]:
        return self._order

    def add_listener(self, listener: ProgressListener) -> None:
        self._listeners.append(listener)

    def _notify(self, kind: str, *, stage: str | None = None, local: float | None = None, message: str = "") -> None:
        event = ProgressEvent(
            kind=kind,
            percent=self.percent,
            stage=stage,
            local=local,
            message=message,
            batch_current=self.batch_current if self.batch_total else None,
            batch_total=self.batch_total or None,
        )
        for listener in self._listeners:
            listener(event)

    def _stage(self, name: str) -> Stage:
        try:
            return self._stages[name]
        except KeyError:
            raise KeyError(f"Undefined progress stage: {name}") from None

    def project(self, name: str, local: float) -> float:
        """Global percentage for a local fraction of stage name (no side effects)."""
        stage = self._stage(name)
        clamped = min(1.0, max(0.0, local))
        return stage.start + clamped * stage.span

    def start(self, message: str = "Starting") -> None:
        self.active = True
        self.percent = 0.0
        self.current_stage = None
        self._notify("start", message=message)

    def update(self, name: str, local: float, message: str | None = None) -> float:
        """Record local progress for stage name and notify listeners. Returns the global percent."""
        stage = self._stage(name)
        clamped = min(1.0, max(0.0, local))
        self.current_stage = name
        self.percent = stage.start + clamped * stage.span
        self._notify("stage_progress", stage=name, local=clamped, message=message or stage.description)
        return self.percent

    def start_stage(self, name: str, message: str | None = None) -> None:
        self.update(name, 0.0, message)

    def complete_stage(self, name: str, message: str | None = None) -> None:
        self.update(name, 1.0, message)
        _log.debug("Stage complete: %s", name)

    def reporter(self, name: str) -> StageReporter:
        """Callable(local, message=None) bound to stage name, for inner components."""
        self._stage(name)

        def report(local: float, message: str | None = None) -> None:
            self.update(name, local, message)

        return report

    def complete(self, message: str = "Done") -> None:
        self.percent = 100.0
        self.active = False
        self.current_stage = None
        self._notify("complete", message=message)

    def cancel(self, message: str = "Cancelled") -> None:
        self.active = False
        self.current_stage = None
        self._notify("cancel", message=message)

    def start_batch(self, total: int, message: str = "Starting batch") -> None:
        self.batch_total = total
        self.batch_current = 0
        self._notify("batch_start", message=message)

    def complete_batch_item(self, message: str = "") -> None:
        self.batch_current = min(self.batch_current + 1, self.batch_total)
        self._notify("batch_progress", message=message)
