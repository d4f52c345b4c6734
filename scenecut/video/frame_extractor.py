"""Representative-frame extraction: one still image per segment, taken at the segment midpoint."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from scenecut.core.config import ExtractionMethod
from scenecut.core.io_utils import file_size
from scenecut.models.entities import (
    Artifact,
    ArtifactKind,
    ExtractionReport,
    ExtractionTask,
    Segment,
    TaskFailure,
)
from scenecut.video.artifacts import artifact_filename, image_qscale
from scenecut.video.cut_refiner import round_half_up
from scenecut.video.engine import ExtractionEngine
from scenecut.workers.scheduler import ProgressCallback, SchedulerRun

_log = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 8
FRAME_TIMEOUT_SEC = 60.0


def frame_position(segment: Segment, fps: float | None) -> tuple[float, int | None]:
    """
    (time_seconds, frame_number) of the frame representing segment.

    With frame bounds and a known fps the middle frame round_half_up((in + out) / 2) is used;
    otherwise the time midpoint start + duration / 2.
    """
    if segment.has_frame_bounds and fps:
        frame_number = round_half_up((segment.in_frame + segment.out_frame) / 2)
        return frame_number * (1.0 / fps), frame_number
    time_seconds = segment.start_time + segment.duration / 2
    frame_number = round_half_up(time_seconds * fps) if fps else None
    return time_seconds, frame_number


def frame_cmd(
    source: Path,
    dest: Path,
    time_seconds: float,
    qscale: int,
    *,
    ffmpeg: str = "ffmpeg",
    hwaccel: bool = False,
) -> list[str]:
    cmd = [ffmpeg, "-hide_banner", "-loglevel", "error"]
    if hwaccel:
        cmd += ["-hwaccel", "auto"]
    cmd += [
        "-ss",
        f"{time_seconds:.3f}",
        "-i",
        str(source),
        "-frames:v",
        "1",
        "-q:v",
        str(qscale),
        "-y",
        str(dest),
    ]
    return cmd


@dataclass
class _FrameChunk:
    """A run of consecutive frame tasks extracted sequentially by one scheduler worker."""

    original_index: int
    tasks: list[ExtractionTask]
    outcomes: list[Artifact | TaskFailure] = field(default_factory=list)


def chunk_tasks(tasks: Sequence[ExtractionTask], chunk_size: int) -> list[_FrameChunk]:
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
    ordered = sorted(tasks, key=lambda t: t.original_index)
    return [
        _FrameChunk(original_index=i, tasks=ordered[start : start + chunk_size])
        for i, start in enumerate(range(0, len(ordered), chunk_size))
    ]


class FrameExtractor(ExtractionEngine):
    """
    Extracts one frame per segment with FFmpeg.

    Strategies:
    - per_task: every segment is its own scheduler task (one FFmpeg process each).
    - chunked: segments are grouped into chunks of chunk_size; chunks run in parallel and
      frames inside a chunk run one after another. Failures are still recorded per frame.
    """

    kind = ArtifactKind.frame

    def __init__(self, output_dir: str | Path, *, chunk_size: int = DEFAULT_CHUNK_SIZE, **kwargs) -> None:
        super().__init__(output_dir, **kwargs)
        self.chunk_size = chunk_size

    async def extract(self, task: ExtractionTask) -> Artifact:
        settings = task.settings
        time_seconds, frame_number = frame_position(task.segment, settings.fps)
        filename = artifact_filename(
            task.source_path.stem,
            self.kind.value,
            task.sequence,
            settings.image_format,
            naming=settings.naming,
            time_seconds=time_seconds,
            total_duration=settings.total_duration,
        )
        dest = self.output_dir / filename
        cmd = frame_cmd(
            task.source_path,
            dest,
            time_seconds,
            image_qscale(settings.quality, settings.image_format),
            ffmpeg=self.ffmpeg,
            hwaccel=settings.hwaccel,
        )
        await self._run_checked(
            cmd,
            dest,
            what=f"frame {task.sequence} at {time_seconds:.3f}s",
            timeout=FRAME_TIMEOUT_SEC,
        )
        _log.debug("Extracted frame %s (%.3fs)", filename, time_seconds)
        return Artifact(
            path=dest,
            filename=filename,
            kind=self.kind,
            time_seconds=time_seconds,
            index=task.sequence,
            file_size=file_size(dest),
            format=settings.image_format,
            quality=settings.quality,
            frame_number=frame_number,
        )

    async def _extract_chunk(self, chunk: _FrameChunk) -> _FrameChunk:
        for task in chunk.tasks:
            try:
                chunk.outcomes.append(await self.extract(task))
            except Exception as e:
                _log.warning("Frame %d failed: %s", task.sequence, e)
                chunk.outcomes.append(TaskFailure(task.original_index, str(e), type(e).__name__))
        return chunk

    async def extract_all(
        self,
        tasks: Sequence[ExtractionTask],
        *,
        on_progress: ProgressCallback | None = None,
        strategy: ExtractionMethod = ExtractionMethod.per_task,
    ) -> ExtractionReport:
        if strategy == ExtractionMethod.per_task:
            return await super().extract_all(tasks, on_progress=on_progress)
        if strategy != ExtractionMethod.chunked:
            raise ValueError(f"Unknown extraction strategy: {strategy}")

        chunks = chunk_tasks(tasks, self.chunk_size)
        _log.info("Chunked frame extraction: %d frames in %d chunks of <=%d", len(tasks), len(chunks), self.chunk_size)
        chunk_run = await self._scheduler(self._extract_chunk, on_progress).run(chunks)
        return self._report(self._flatten(chunk_run, chunks, len(tasks)), {"strategy": "chunked", "chunks": len(chunks)})

    def _flatten(self, chunk_run: SchedulerRun, chunks: list[_FrameChunk], total: int) -> SchedulerRun:
        """
        Per-frame view of a chunk-level run: one slot and at most one failure per frame.

        Outcomes are read from every chunk, so frames a killed chunk finished before
        cancellation keep their slots.
        """
        run = SchedulerRun(
            results=[None] * total,
            total=total,
            max_concurrency=chunk_run.max_concurrency,
            peak_active=chunk_run.peak_active,
            cancelled=chunk_run.cancelled,
        )
        chunk_failures = {f.original_index: f for f in chunk_run.failures}
        for chunk in chunks:
            for task, outcome in zip(chunk.tasks, chunk.outcomes):
                run.processed += 1
                if isinstance(outcome, TaskFailure):
                    run.failures.append(outcome)
                else:
                    run.results[task.original_index] = outcome
            # A chunk worker only fails as a whole on unexpected errors; charge its remaining frames.
            failure = chunk_failures.get(chunk.original_index)
            if failure is not None:
                for task in chunk.tasks[len(chunk.outcomes) :]:
                    run.processed += 1
                    run.failures.append(TaskFailure(task.original_index, failure.error, failure.error_type))
        return run

