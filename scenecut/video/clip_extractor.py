"""FFmpeg-based extraction of web-safe H.264/AAC MP4 sub-clips, one per segment."""

import asyncio
import logging
from pathlib import Path

from scenecut.core.errors import ExtractionFailure
from scenecut.core.io_utils import file_size
from scenecut.models.entities import Artifact, ArtifactKind, ExtractionTask, Segment
from scenecut.video.artifacts import artifact_filename, clip_crf
from scenecut.video.engine import ExtractionEngine

_log = logging.getLogger(__name__)

CLIP_FORMAT = "mp4"
MIN_CLIP_SEC = 0.5
DEFAULT_MAX_CLIP_SEC = 30.0
MAX_ATTEMPTS = 3
RETRY_BACKOFF_SEC = 0.1
SHORT_CLIP_TIMEOUT_SEC = 60.0
LONG_CLIP_TIMEOUT_SEC = 120.0
LONG_CLIP_THRESHOLD_SEC = 10.0


def clip_window(segment: Segment, max_clip_seconds: float = DEFAULT_MAX_CLIP_SEC) -> tuple[float, float]:
    """(start, duration) for segment, with duration clamped to [MIN_CLIP_SEC, max_clip_seconds]."""
    duration = min(max(segment.duration, MIN_CLIP_SEC), max_clip_seconds)
    return max(0.0, segment.start_time), duration


def clip_timeout(duration: float) -> float:
    return LONG_CLIP_TIMEOUT_SEC if duration > LONG_CLIP_THRESHOLD_SEC else SHORT_CLIP_TIMEOUT_SEC


def clip_cmd(
    source: Path,
    dest: Path,
    start: float,
    duration: float,
    crf: int,
    *,
    ffmpeg: str = "ffmpeg",
) -> list[str]:
    """
    Accurate-seek re-encode (-ss after -i) so the clip starts on the requested frame.

    No B-frames, no scene-cut keyframes, faststart for instant web playback.
    """
    return [
        ffmpeg,
        "-hide_banner",
        "-loglevel",
        "error",
        "-i",
        str(source),
        "-ss",
        f"{start:.3f}",
        "-t",
        f"{duration:.3f}",
        "-c:v",
        "libx264",
        "-crf",
        str(crf),
        "-preset",
        "medium",
        "-pix_fmt",
        "yuv420p",
        "-bf",
        "0",
        "-sc_threshold",
        "0",
        "-c:a",
        "aac",
        "-movflags",
        "+faststart",
        "-fflags",
        "+genpts",
        "-y",
        str(dest),
    ]


class ClipExtractor(ExtractionEngine):
    """Extracts one MP4 clip per segment, retrying transient FFmpeg failures with linear backoff."""

    kind = ArtifactKind.clip

    def __init__(
        self,
        output_dir: str | Path,
        *,
        max_attempts: int = MAX_ATTEMPTS,
        retry_backoff: float = RETRY_BACKOFF_SEC,
        **kwargs,
    ) -> None:
        super().__init__(output_dir, **kwargs)
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self.max_attempts = max_attempts
        self.retry_backoff = retry_backoff

    async def extract(self, task: ExtractionTask) -> Artifact:
        settings = task.settings
        start, duration = clip_window(task.segment, settings.max_clip_seconds)
        filename = artifact_filename(
            task.source_path.stem,
            self.kind.value,
            task.sequence,
            CLIP_FORMAT,
            naming=settings.naming,
            time_seconds=start,
            total_duration=settings.total_duration,
        )
        dest = self.output_dir / filename
        cmd = clip_cmd(task.source_path, dest, start, duration, clip_crf(settings.quality), ffmpeg=self.ffmpeg)
        timeout = clip_timeout(duration)
        what = f"clip {task.sequence} ({start:.3f}s +{duration:.3f}s)"

        last_error: ExtractionFailure | None = None
        for attempt_no in range(1, self.max_attempts + 1):
            try:
                await self._run_checked(cmd, dest, what=what, timeout=timeout)
            except ExtractionFailure as e:
                last_error = e
                if attempt_no < self.max_attempts:
                    _log.info("Retrying %s (attempt %d/%d failed): %s", what, attempt_no, self.max_attempts, e)
                    await asyncio.sleep(self.retry_backoff * attempt_no)
                continue
            _log.debug("Extracted %s -> %s", what, filename)
            return Artifact(
                path=dest,
                filename=filename,
                kind=self.kind,
                time_seconds=start,
                index=task.sequence,
                file_size=file_size(dest),
                format=CLIP_FORMAT,
                quality=settings.quality,
                start_time=start,
                end_time=start + duration,
            )

        assert last_error is not None
        _log.warning("Giving up on %s after %d attempts", what, self.max_attempts)
        raise last_error
