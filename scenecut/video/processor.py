"""
End-to-end pipeline for one or more videos: probe -> detect -> refine -> extract -> import -> sidecar.

VideoProcessor is constructed with explicit Settings and host collaborators; nothing is read
from globals. Fatal errors (ConfigurationError, ProbeFailure, DetectionFailure) abort the run
for that video; per-artifact extraction and import failures are counted and reported.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Sequence

from scenecut.core.collaborators import Collaborators
from scenecut.core.config import ImageFormat, Settings, ToolPaths, resolve_tool_paths
from scenecut.core.errors import ConfigurationError, ScenecutError
from scenecut.core.progress import ProgressAggregator
from scenecut.models.entities import (
    ExtractionReport,
    ExtractionSettings,
    ExtractionTask,
    NamingMode,
    ProcessingResult,
    Segment,
    VideoInfo,
)
from scenecut.models.sidecar import write_sidecar
from scenecut.video.clip_extractor import ClipExtractor
from scenecut.video.cut_refiner import refine_cut_points
from scenecut.video.frame_extractor import FrameExtractor
from scenecut.video.frame_selector import FrameSelector
from scenecut.video.probe import probe_video_info
from scenecut.video.scene_detector import detect_scene_changes

_log = logging.getLogger(__name__)

SELECTION_DIR = "grouped"


class ExtractionMode(str, Enum):
    frames = "frames"
    clips = "clips"
    all = "all"


@dataclass
class AnalysisResult:
    source_path: Path
    video_info: VideoInfo
    cut_points: list[float]
    segments: list[Segment]


@dataclass
class BatchResult:
    """Outcome of process_batch: one ProcessingResult per finished video, errors keyed by handle."""

    results: list[ProcessingResult] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


class VideoProcessor:
    """Runs the segmentation and extraction pipeline with injected settings and collaborators."""

    def __init__(
        self,
        settings: Settings,
        *,
        collaborators: Collaborators | None = None,
        progress: ProgressAggregator | None = None,
        cancel_event: asyncio.Event | None = None,
        tool_paths: ToolPaths | None = None,
        cpu_count: int | None = None,
    ) -> None:
        self.settings = settings
        self.collaborators = collaborators or Collaborators()
        self.progress = progress or ProgressAggregator()
        self.cancel_event = cancel_event or asyncio.Event()
        self._tool_paths = tool_paths
        self._cpu_count = cpu_count

    @property
    def tool_paths(self) -> ToolPaths:
        """Resolved ffmpeg/ffprobe paths; raises ConfigurationError before anything is spawned."""
        if self._tool_paths is None:
            self._tool_paths = resolve_tool_paths(self.settings)
        return self._tool_paths

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def _extraction_settings(self, video_info: VideoInfo) -> ExtractionSettings:
        out = self.settings.output
        image_format = out.image_format.value if isinstance(out.image_format, ImageFormat) else str(out.image_format)
        return ExtractionSettings(
            image_format=image_format,
            quality=out.quality,
            naming=NamingMode.ratio if out.ratio_naming else NamingMode.sequence,
            total_duration=video_info.duration,
            fps=video_info.fps,
            hwaccel=self.settings.performance.hwaccel,
            max_clip_seconds=out.max_clip_seconds,
        )

    def _engine_kwargs(self) -> dict:
        perf = self.settings.performance
        return {
            "ffmpeg": self.tool_paths.ffmpeg,
            "max_concurrency": perf.max_concurrency,
            "cpu_count": self._cpu_count,
            "cancel_event": self.cancel_event,
            "kill_on_cancel": perf.kill_on_cancel,
        }

    async def analyze(self, handle: str | Path) -> AnalysisResult:
        """Resolve, probe, detect and refine one video. Covers the initialize and analyze stages."""
        tools = self.tool_paths
        self.progress.start_stage("initialize", f"Resolving {handle}")
        source = self.collaborators.path_resolver.resolve(handle)
        video_info = await probe_video_info(source, ffprobe=tools.ffprobe)
        self.progress.complete_stage("initialize", f"Probed {source.name}")

        proc = self.settings.processing
        analyze = self.progress.reporter("analyze")
        analyze(0.0, "Detecting cut changes")
        cut_points = await detect_scene_changes(
            source,
            proc.sensitivity,
            ffmpeg=tools.ffmpeg,
            min_gap=proc.min_gap_seconds,
            duration=video_info.duration,
            on_progress=lambda fraction: analyze(fraction, "Detecting cut changes"),
        )
        segments = refine_cut_points(
            cut_points,
            video_info,
            proc.in_handle,
            proc.out_handle,
            default_interval=proc.default_interval_seconds,
        )
        self.progress.complete_stage("analyze", f"{len(segments)} segments from {len(cut_points)} cuts")
        return AnalysisResult(source, video_info, cut_points, segments)

    async def _extract(
        self,
        analysis: AnalysisResult,
        output_dir: Path,
        mode: ExtractionMode,
    ) -> tuple[ExtractionReport | None, ExtractionReport | None]:
        extraction_settings = self._extraction_settings(analysis.video_info)
        tasks = [
            ExtractionTask(segment=s, source_path=analysis.source_path, settings=extraction_settings, original_index=i)
            for i, s in enumerate(analysis.segments)
        ]
        kinds = ["frames", "clips"] if mode == ExtractionMode.all else [mode.value]
        share = 1.0 / len(kinds)
        frames: ExtractionReport | None = None
        clips: ExtractionReport | None = None

        for slot, kind in enumerate(kinds):
            if self.cancelled:
                break
            offset = slot * share

            def on_progress(fraction: float, message: str, offset: float = offset, kind: str = kind) -> None:
                self.progress.update("extract", offset + fraction * share, f"{kind}: {message}")

            if kind == "frames":
                engine = FrameExtractor(output_dir, chunk_size=self.settings.processing.chunk_size, **self._engine_kwargs())
                frames = await engine.extract_all(
                    tasks,
                    on_progress=on_progress,
                    strategy=self.settings.processing.extraction_method,
                )
            else:
                engine = ClipExtractor(output_dir, **self._engine_kwargs())
                clips = await engine.extract_all(tasks, on_progress=on_progress)
        return frames, clips

    async def _select_frames(self, result: ProcessingResult) -> None:
        """Copy representative frames into <output_dir>/grouped when there are more than the target."""
        proc = self.settings.processing
        if not proc.smart_selection or result.frames is None:
            return
        frames = result.frames.successful
        if len(frames) <= proc.target_frame_count:
            _log.debug("Skipping frame selection: %d frames, target %d", len(frames), proc.target_frame_count)
            return
        self.progress.update("extract", 1.0, f"Selecting {proc.target_frame_count} of {len(frames)} frames")
        selector = FrameSelector(proc.target_frame_count)
        selected = await asyncio.to_thread(selector.select, frames)
        try:
            result.selected_paths = selector.copy_selected(selected, result.output_dir / SELECTION_DIR)
        except OSError as e:
            _log.warning("Could not copy selected frames for %s: %s", result.source_path, e)

    def _import(self, result: ProcessingResult) -> None:
        importer = self.collaborators.library_importer
        artifacts = [a for report in result.reports for a in report.successful]
        if not artifacts:
            self.progress.complete_stage("import", "Nothing to import")
            return
        tags = list(self.settings.library.tags)
        for i, artifact in enumerate(artifacts, start=1):
            if self.cancelled:
                break
            try:
                imported = importer.import_file(
                    artifact.path,
                    name=Path(artifact.filename).stem,
                    tags=tags + [result.source_path.stem, artifact.kind.value],
                    annotation=f"{result.source_path.name} @ {artifact.time_seconds:.3f}s",
                )
            except Exception as e:
                result.import_failures += 1
                _log.warning("Library import failed for %s: %s", artifact.path, e)
            else:
                if imported is not None:
                    result.imported_count += 1
            self.progress.update("import", i / len(artifacts), f"Imported {i}/{len(artifacts)}")

    def _write_sidecars(self, result: ProcessingResult) -> None:
        if not self.settings.output.write_metadata:
            return
        settings_snapshot = {
            "sensitivity": self.settings.processing.sensitivity,
            "inHandle": self.settings.processing.in_handle,
            "outHandle": self.settings.processing.out_handle,
            "quality": self.settings.output.quality,
        }
        for report in result.reports:
            path = write_sidecar(
                report,
                source_path=result.source_path,
                output_dir=result.output_dir,
                settings={**settings_snapshot, **report.metadata},
            )
            result.sidecar_paths.append(path)
            _log.info("Wrote metadata sidecar %s", path)

    async def process(
        self,
        handle: str | Path,
        *,
        mode: ExtractionMode = ExtractionMode.frames,
        output_root: str | Path | None = None,
    ) -> ProcessingResult:
        """
        Run the whole pipeline for one video and return its ProcessingResult.

        Raises ConfigurationError, ProbeFailure or DetectionFailure (and FileNotFoundError for
        an unresolvable handle). Extraction and import failures are reported on the result.
        """
        self.progress.start(f"Processing {handle}")
        analysis = await self.analyze(handle)

        root = Path(output_root) if output_root is not None else Path(self.settings.output.root_dir)
        output_dir = self.collaborators.directory_ensurer.ensure(root / analysis.source_path.stem)
        result = ProcessingResult(
            source_path=analysis.source_path,
            video_info=analysis.video_info,
            segments=analysis.segments,
            output_dir=output_dir,
        )

        self.progress.start_stage("extract", f"Extracting {mode.value} for {len(analysis.segments)} segments")
        result.frames, result.clips = await self._extract(analysis, output_dir, mode)

        if self.cancelled or any(r.metadata.get("cancelled") for r in result.reports):
            result.cancelled = True
            result.finished_at = datetime.now(timezone.utc)
            _log.warning("Processing of %s cancelled", analysis.source_path)
            self.progress.cancel(f"Cancelled {analysis.source_path.name}")
            return result
        await self._select_frames(result)
        self.progress.complete_stage("extract")

        self.progress.start_stage("import")
        self._import(result)
        self.progress.complete_stage("import")

        self.progress.start_stage("finalize", "Writing metadata")
        self._write_sidecars(result)
        result.finished_at = datetime.now(timezone.utc)
        self.progress.complete(f"Finished {analysis.source_path.name}")
        _log.info(
            "Processed %s: %d segments, %d artifacts, %d failed, %d imported",
            analysis.source_path,
            len(analysis.segments),
            sum(len(r.successful) for r in result.reports),
            sum(r.failure_count for r in result.reports),
            result.imported_count,
        )
        return result

    async def process_batch(
        self,
        handles: Sequence[str | Path],
        *,
        mode: ExtractionMode = ExtractionMode.frames,
        output_root: str | Path | None = None,
    ) -> BatchResult:
        """
        Process several videos one after another.

        A fatal error for one video is recorded and the batch moves on; ConfigurationError
        aborts the whole batch since no video could succeed.
        """
        batch = BatchResult()
        if self._tool_paths is None:
            self._tool_paths = resolve_tool_paths(self.settings)
        self.progress.start_batch(len(handles), f"Processing {len(handles)} videos")
        for handle in handles:
            if self.cancelled:
                _log.warning("Batch cancelled; %d videos not started", len(handles) - len(batch.results) - len(batch.errors))
                break
            try:
                batch.results.append(await self.process(handle, mode=mode, output_root=output_root))
            except ConfigurationError:
                raise
            except (ScenecutError, OSError, ValueError) as e:
                _log.error("Processing %s failed: %s", handle, e)
                batch.errors[str(handle)] = f"{type(e).__name__}: {e}"
            self.progress.complete_batch_item(f"Finished {handle}")
        return batch
