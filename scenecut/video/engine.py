"""Shared scaffolding for extraction engines: one task -> one Artifact, run through the scheduler."""

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Sequence

from scenecut.core.errors import ExtractionFailure, OutputMissing
from scenecut.core.io_utils import file_non_empty
from scenecut.models.entities import Artifact, ArtifactKind, ExtractionReport, ExtractionTask
from scenecut.video.ffmpeg import FFmpegAttempt, run_process
from scenecut.workers.scheduler import ExtractionScheduler, ProgressCallback, SchedulerRun

_log = logging.getLogger(__name__)


class ExtractionEngine(ABC):
    """
    Base for frame and clip engines.

    extract(task) produces exactly one Artifact or raises ExtractionFailure; extract_all()
    fans tasks out through an ExtractionScheduler and folds the run into an ExtractionReport.
    """

    kind: ArtifactKind

    def __init__(
        self,
        output_dir: str | Path,
        *,
        ffmpeg: str = "ffmpeg",
        max_concurrency: int | None = None,
        cpu_count: int | None = None,
        cancel_event: asyncio.Event | None = None,
        kill_on_cancel: bool = False,
    ) -> None:
        self.output_dir = Path(output_dir)
        self.ffmpeg = ffmpeg
        self._max_concurrency = max_concurrency
        self._cpu_count = cpu_count
        self._cancel_event = cancel_event
        self._kill_on_cancel = kill_on_cancel

    @abstractmethod
    async def extract(self, task: ExtractionTask) -> Artifact:
        ...

    def _scheduler(self, worker: Callable, on_progress: ProgressCallback | None) -> ExtractionScheduler:
        return ExtractionScheduler(
            worker,
            max_concurrency=self._max_concurrency,
            cpu_count=self._cpu_count,
            on_progress=on_progress,
            cancel_event=self._cancel_event,
            kill_on_cancel=self._kill_on_cancel,
        )

    async def extract_all(
        self,
        tasks: Sequence[ExtractionTask],
        *,
        on_progress: ProgressCallback | None = None,
    ) -> ExtractionReport:
        run = await self._scheduler(self.extract, on_progress).run(tasks)
        return self._report(run, {"strategy": "per_task"})

    def _report(self, run: SchedulerRun, metadata: dict[str, Any]) -> ExtractionReport:
        metadata = {
            **metadata,
            "max_concurrency": run.max_concurrency,
            "peak_active": run.peak_active,
            "cancelled": run.cancelled,
        }
        report = ExtractionReport(
            kind=self.kind,
            artifacts=list(run.results),
            failures=sorted(run.failures, key=lambda f: f.original_index),
            metadata=metadata,
        )
        _log.info(
            "%s extraction: %d/%d succeeded, %d failed",
            self.kind.value,
            len(report.successful),
            report.total,
            report.failure_count,
        )
        return report

    async def _run_checked(self, cmd: list[str], dest: Path, *, what: str, timeout: float | None) -> FFmpegAttempt:
        """
        Run one FFmpeg invocation that must leave a non-empty dest behind.

        Raises ExtractionFailure on spawn errors, timeouts and non-zero exits; OutputMissing when
        FFmpeg exits 0 but dest is absent or empty.
        """
        # Deterministic names: a file from an earlier run must not pass the output check.
        dest.unlink(missing_ok=True)
        try:
            attempt = await run_process(cmd, timeout=timeout)
        except OSError as e:
            raise ExtractionFailure(f"Could not start FFmpeg ({cmd[0]}) for {what}: {e}") from e
        if not attempt.ok:
            reason = f"timed out after {timeout}s" if attempt.timed_out else f"exited with code {attempt.returncode}"
            raise ExtractionFailure(
                f"FFmpeg {reason} for {what}. Repro: {attempt.repro}\n{attempt.stderr_tail()}".rstrip(),
                attempt=attempt,
            )
        if not file_non_empty(dest):
            dest.unlink(missing_ok=True)
            raise OutputMissing(
                f"FFmpeg exited 0 but {dest} is missing or empty for {what}. Repro: {attempt.repro}",
                attempt=attempt,
            )
        return attempt
